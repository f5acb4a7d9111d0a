# core/notices.py
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from jinja2 import Environment, FileSystemLoader

from .logger import get_logger

logger = get_logger(__name__)

# Resolve template directory relative to this file
TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)))

REJECTED_OUT_OF_STOCK = "rejected_out_of_stock"
REJECTED_AT_CAPACITY = "rejected_at_capacity"
REMOVED_UNAVAILABLE = "removed_unavailable"
REMOVED_OUT_OF_STOCK = "removed_out_of_stock"
QUANTITY_ADJUSTED = "quantity_adjusted"

TITLES = {
    REJECTED_OUT_OF_STOCK: "Out of stock",
    REJECTED_AT_CAPACITY: "Cannot add more",
    REMOVED_UNAVAILABLE: "Item out of stock",
    REMOVED_OUT_OF_STOCK: "Item out of stock",
    QUANTITY_ADJUSTED: "Quantity adjusted",
}

DESTRUCTIVE = {
    REJECTED_OUT_OF_STOCK,
    REJECTED_AT_CAPACITY,
    REMOVED_UNAVAILABLE,
    REMOVED_OUT_OF_STOCK,
}


@dataclass(frozen=True)
class Notice:
    kind: str
    product_id: str
    title: str
    message: str
    variant: str = "default"


def build_notice(
    kind: str,
    product_id: str,
    name: str = "",
    collection: str = "cart",
    quantity: Optional[int] = None,
    stock: Optional[int] = None,
) -> Notice:
    template = env.get_template("notice.txt")
    message = template.render(
        kind=kind,
        name=name or product_id,
        collection=collection,
        quantity=quantity,
        stock=stock,
    ).strip()
    return Notice(
        kind=kind,
        product_id=product_id,
        title=TITLES.get(kind, "Updated"),
        message=message,
        variant="destructive" if kind in DESTRUCTIVE else "default",
    )


NoticeHandler = Callable[[Notice], None]


class NoticeCollector:
    """Handler that keeps every notice; handy for the runner and tests."""

    def __init__(self):
        self.notices: List[Notice] = []

    def __call__(self, notice: Notice) -> None:
        self.notices.append(notice)

    def kinds(self) -> List[str]:
        return [n.kind for n in self.notices]

    def clear(self) -> None:
        self.notices.clear()
