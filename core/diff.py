# core/diff.py
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .models import LineItem, StockSnapshot

REMOVE_UNAVAILABLE = "removed_unavailable"
REMOVE_OUT_OF_STOCK = "removed_out_of_stock"
ADJUST_QUANTITY = "quantity_adjusted"
REFRESH = "refresh"


@dataclass
class Correction:
    """
    One change revalidation wants to make to a line item.
    `after` is None for removals.
    """
    action: str
    before: LineItem
    after: Optional[LineItem]

    @property
    def destructive(self) -> bool:
        return self.after is None


def diff_stock(
    items: Iterable[LineItem],
    snapshots: Dict[str, StockSnapshot],
    enforce: bool = True,
) -> List[Correction]:
    """
    Compare line items against fresh stock snapshots.
    - items: current line items, in collection order
    - snapshots: product_id -> StockSnapshot; missing ids mean "no information"
    - enforce: False for collections that only track stock (wishlist)
    Returns corrections in item order. Items whose snapshot matches their
    cached attributes and need no fix produce nothing, so a second pass
    over an unchanged response is empty.
    """
    out: List[Correction] = []
    for it in items:
        snap = snapshots.get(it.product_id)
        if snap is None:
            continue

        refreshed = it.copy(cached_stock=snap.stock, cached_in_stock=snap.in_stock)

        if enforce:
            if not snap.in_stock:
                out.append(Correction(REMOVE_UNAVAILABLE, it, None))
                continue
            if snap.stock == 0:
                out.append(Correction(REMOVE_OUT_OF_STOCK, it, None))
                continue
            if snap.stock < it.quantity:
                out.append(
                    Correction(ADJUST_QUANTITY, it, refreshed.copy(quantity=snap.stock))
                )
                continue

        if refreshed != it:
            out.append(Correction(REFRESH, it, refreshed))

    return out
