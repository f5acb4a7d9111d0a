# core/collection.py
from typing import Dict, Iterable, Iterator, List, Optional

from .models import CollectionKind, LineItem


class Collection:
    """
    Ordered product_id -> LineItem mapping for one cart or wishlist.

    `version` is bumped on every mutation so a suspended revalidation pass
    can tell whether the items it looked at are still the current ones.
    Readers get copies; only the reconciler mutates.
    """

    def __init__(self, kind: CollectionKind, items: Iterable[LineItem] = ()):
        self.kind = kind
        self._items: Dict[str, LineItem] = {}
        self.version = 0
        for it in items:
            self._put(it)

    def _put(self, item: LineItem) -> None:
        if not self.kind.stock_aware:
            item = item.copy(quantity=1)
        # dict keeps first-insertion order on overwrite
        self._items[item.product_id] = item

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(list(self._items.values()))

    def get(self, product_id: str) -> Optional[LineItem]:
        return self._items.get(product_id)

    def product_ids(self) -> List[str]:
        return list(self._items)

    def items(self) -> List[LineItem]:
        return [it.copy() for it in self._items.values()]

    def put(self, item: LineItem) -> None:
        self._put(item)
        self.version += 1

    def discard(self, product_id: str) -> bool:
        if self._items.pop(product_id, None) is None:
            return False
        self.version += 1
        return True

    def clear(self) -> None:
        self._items.clear()
        self.version += 1

    def replace_all(self, items: Iterable[LineItem]) -> None:
        self._items.clear()
        for it in items:
            self._put(it)
        self.version += 1

    def item_count(self) -> int:
        return sum(it.quantity for it in self._items.values())

    def subtotal(self) -> float:
        return round(sum(it.unit_price * it.quantity for it in self._items.values()), 2)

    def snapshot(self) -> Dict[str, int]:
        """product_id -> quantity, in order."""
        return {pid: it.quantity for pid, it in self._items.items()}
