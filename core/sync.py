# core/sync.py
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from .errors import RemoteWriteFailed
from .logger import get_logger
from .models import LineItem

logger = get_logger(__name__)


@dataclass(frozen=True)
class Mutation:
    action: str  # add | remove | updateQuantity | clear
    item: Optional[Dict[str, Any]] = field(default=None, hash=False)

    @classmethod
    def add(cls, item: LineItem) -> "Mutation":
        return cls("add", item.to_payload())

    @classmethod
    def remove(cls, product_id: str) -> "Mutation":
        return cls("remove", {"productId": product_id})

    @classmethod
    def update_quantity(cls, product_id: str, quantity: int) -> "Mutation":
        return cls("updateQuantity", {"productId": product_id, "quantity": quantity})

    @classmethod
    def clear(cls) -> "Mutation":
        return cls("clear")

    @property
    def product_id(self) -> Optional[str]:
        return (self.item or {}).get("productId")


class RemoteWriter(Protocol):
    def post(self, action: str, item: Optional[Dict[str, Any]] = None) -> None:
        ...


FailureHandler = Callable[[Mutation, RemoteWriteFailed], None]


class BestEffortSync:
    """
    Mirrors mutations to the remote collection without letting a failed
    write reach the caller. Failures are logged and handed to `on_failure`.
    """

    def __init__(self, writer: RemoteWriter, on_failure: Optional[FailureHandler] = None):
        self.writer = writer
        self.on_failure = on_failure
        self.failures = 0

    def push(self, mutation: Mutation) -> bool:
        try:
            self.writer.post(mutation.action, mutation.item)
        except RemoteWriteFailed as e:
            self.failures += 1
            logger.error(
                "Remote %s failed for %s: %s",
                mutation.action, mutation.product_id or "<all>", e,
            )
            if self.on_failure is not None:
                try:
                    self.on_failure(mutation, e)
                except Exception as cb_err:
                    logger.exception("Sync failure callback raised: %s", cb_err)
            return False
        return True

    def push_all(self, mutations: List[Mutation]) -> int:
        """Push each mutation independently; returns how many landed."""
        return sum(1 for m in mutations if self.push(m))
