# core/models.py
import datetime
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

import pytz


class CollectionKind(str, Enum):
    CART = "cart"
    WISHLIST = "wishlist"

    @property
    def stock_aware(self) -> bool:
        return self is CollectionKind.CART


@dataclass
class Product:
    """
    Catalog entry as the UI hands it to the reconciler.
    `stock` and `in_stock` are whatever the page last saw.
    """
    product_id: str
    name: str
    price: float = 0.0
    image: str = ""
    stock: int = 0
    in_stock: bool = False


@dataclass
class LineItem:
    """
    One product inside a cart or wishlist.
    cached_stock is None when the stock has never been observed
    (e.g. rows served by the backend without stock fields).
    """
    product_id: str
    name: str
    unit_price: float = 0.0
    image: str = ""
    quantity: int = 1
    cached_stock: Optional[int] = None
    cached_in_stock: bool = True

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "LineItem":
        return cls(
            product_id=product.product_id,
            name=product.name,
            unit_price=product.price,
            image=product.image,
            quantity=quantity,
            cached_stock=product.stock,
            cached_in_stock=product.in_stock,
        )

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "LineItem":
        """Build from the backend's camelCase item payload."""
        stock = data.get("stock")
        try:
            cached_stock = max(0, int(stock)) if stock is not None else None
        except (TypeError, ValueError):
            cached_stock = None
        try:
            quantity = int(data.get("quantity") or 1)
        except (TypeError, ValueError):
            quantity = 1
        return cls(
            product_id=str(data.get("productId") or data.get("id") or ""),
            name=str(data.get("name") or ""),
            unit_price=float(data.get("price") or 0.0),
            image=str(data.get("image") or ""),
            quantity=max(1, quantity),
            cached_stock=cached_stock,
            cached_in_stock=bool(data.get("inStock", True)),
        )

    def to_payload(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "productId": self.product_id,
            "name": self.name,
            "price": self.unit_price,
            "image": self.image,
            "quantity": self.quantity,
            "inStock": self.cached_in_stock,
        }
        if self.cached_stock is not None:
            out["stock"] = self.cached_stock
        return out

    def copy(self, **changes) -> "LineItem":
        return replace(self, **changes)


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=pytz.UTC)


@dataclass(frozen=True)
class StockSnapshot:
    product_id: str
    stock: int
    in_stock: bool
    fetched_at: datetime.datetime = field(default_factory=now_utc, compare=False)

    @classmethod
    def from_payload(cls, product_id: str, data: Dict[str, Any]) -> "StockSnapshot":
        return cls(
            product_id=product_id,
            stock=max(0, int(data.get("stock") or 0)),
            in_stock=bool(data.get("inStock", False)),
        )


def stock_label(stock: int, in_stock: bool) -> str:
    """Badge wording shown next to a product."""
    if not in_stock or stock == 0:
        return "Out of Stock"
    if stock <= 5:
        return f"Only {stock} left!"
    if stock <= 10:
        return f"Low Stock ({stock} left)"
    return f"In Stock ({stock} available)"
