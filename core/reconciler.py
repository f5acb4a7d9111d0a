# core/reconciler.py
"""
Stock-aware cart / wishlist reconciliation.

A Reconciler owns one in-memory Collection and keeps it consistent with
three things that can change underneath it: the user's own edits, the
session (guest -> signed in -> signed out) and the live stock counts.

Changes are applied to memory first and then handed to the session's
backing: the local sqlite store while browsing as a guest, the backend
collection (best-effort, never blocking the caller) once signed in.
"""
import os
import sqlite3
from dataclasses import replace
from typing import List, Optional, Protocol

from . import diff as stockdiff
from . import notices as nt
from .backing import CollectionBacking, LocalBacking, RemoteBacking
from .collection import Collection
from .errors import AddRejected, AtCapacity, OutOfStock, RemoteReadFailed
from .logger import get_logger
from .models import CollectionKind, LineItem, Product, StockSnapshot
from .scheduler import Scheduler
from .session import Session
from .storage import LocalCollectionStore
from .sync import BestEffortSync, FailureHandler, Mutation

logger = get_logger(__name__)

MERGE_REVALIDATE_DELAY = float(os.getenv("MERGE_REVALIDATE_DELAY", "1"))
# Retry delay when a pass is dropped because the collection moved under it.
STALE_RETRY_DELAY = float(os.getenv("STALE_RETRY_DELAY", "1"))

_CORRECTION_NOTICES = {
    stockdiff.REMOVE_UNAVAILABLE: nt.REMOVED_UNAVAILABLE,
    stockdiff.REMOVE_OUT_OF_STOCK: nt.REMOVED_OUT_OF_STOCK,
    stockdiff.ADJUST_QUANTITY: nt.QUANTITY_ADJUSTED,
}


class StockSource(Protocol):
    def get_stock(self, product_id: str) -> Optional[StockSnapshot]:
        ...

    def get_stock_batch(self, product_ids) -> dict:
        ...

    def invalidate(self, product_id: Optional[str] = None) -> None:
        ...

    def update_local(self, product_id: str, stock: int) -> StockSnapshot:
        ...


class Reconciler:
    def __init__(
        self,
        kind: CollectionKind,
        session: Session,
        oracle: StockSource,
        local_store: LocalCollectionStore,
        remote_client,
        scheduler: Optional[Scheduler] = None,
        on_notice: Optional[nt.NoticeHandler] = None,
        on_sync_failure: Optional[FailureHandler] = None,
        merge_revalidate_delay: float = MERGE_REVALIDATE_DELAY,
    ):
        self.kind = kind
        self.session = session
        self.oracle = oracle
        self.scheduler = scheduler or Scheduler()
        self.on_notice = on_notice
        self.merge_revalidate_delay = merge_revalidate_delay

        self.collection = Collection(kind)
        self.local = LocalBacking(local_store, kind)
        self.remote = RemoteBacking(remote_client, BestEffortSync(remote_client, on_sync_failure))
        self.backing: CollectionBacking = self.remote if session.authenticated else self.local

        session.subscribe_login(self.on_login)
        session.subscribe_logout(self.on_logout)

    # -- reading -------------------------------------------------------

    @property
    def revalidate_key(self) -> str:
        return f"revalidate-{self.kind.value}"

    def items(self) -> List[LineItem]:
        return self.collection.items()

    def get(self, product_id: str) -> Optional[LineItem]:
        item = self.collection.get(product_id)
        return item.copy() if item else None

    def contains(self, product_id: str) -> bool:
        return product_id in self.collection

    __contains__ = contains

    def __len__(self) -> int:
        return len(self.collection)

    def item_count(self) -> int:
        return self.collection.item_count()

    def subtotal(self) -> float:
        return self.collection.subtotal()

    # -- plumbing ------------------------------------------------------

    def _emit(self, kind: str, item_or_id, quantity: Optional[int] = None,
              stock: Optional[int] = None) -> nt.Notice:
        if isinstance(item_or_id, (LineItem, Product)):
            product_id, name = item_or_id.product_id, item_or_id.name
        else:
            product_id, name = str(item_or_id), ""
        notice = nt.build_notice(
            kind, product_id, name=name, collection=self.kind.value,
            quantity=quantity, stock=stock,
        )
        logger.info("[%s] %s: %s", self.kind.value, notice.title, notice.message)
        if self.on_notice is not None:
            self.on_notice(notice)
        return notice

    def _commit(self, *mutations: Mutation) -> None:
        try:
            self.backing.commit(self.collection, mutations)
        except sqlite3.Error as e:
            # memory stays authoritative for this run
            logger.error("Failed to persist local %s: %s", self.kind.value, e)

    @staticmethod
    def _insert_mutations(item: LineItem) -> List[Mutation]:
        # the server stores a new row with quantity 1 whatever the payload says
        mutations = [Mutation.add(item)]
        if item.quantity > 1:
            mutations.append(Mutation.update_quantity(item.product_id, item.quantity))
        return mutations

    def _with_live_stock(self, product: Product) -> Product:
        self.oracle.invalidate(product.product_id)
        snap = self.oracle.get_stock(product.product_id)
        if snap is None:
            return product
        return replace(product, stock=snap.stock, in_stock=snap.in_stock)

    # -- startup / session transitions --------------------------------

    def start(self) -> None:
        """Load the collection for the current session state."""
        if self.session.authenticated:
            self.backing = self.remote
            self.sync()
            return
        self.backing = self.local
        try:
            self.collection.replace_all(self.local.load())
        except sqlite3.Error as e:
            logger.error("Could not read local %s; starting empty: %s", self.kind.value, e)
            self.collection.clear()
        logger.info("Loaded guest %s with %d items.", self.kind.value, len(self.collection))

    def sync(self) -> bool:
        """Replace memory with the backend collection. Signed-in only."""
        if not self.session.authenticated:
            return False
        try:
            items = self.remote.load()
        except RemoteReadFailed as e:
            logger.warning("Could not sync %s from server: %s", self.kind.value, e)
            return False
        self.collection.replace_all(items)
        return True

    def on_login(self) -> None:
        try:
            self.merge()
        except Exception as e:
            logger.exception("Merge of %s failed; falling back to server copy: %s",
                             self.kind.value, e)
            self.backing = self.remote
            self.sync()

    def on_logout(self) -> None:
        self.scheduler.cancel(self.revalidate_key)
        self.collection.clear()
        self.backing = self.local
        self._commit(Mutation.clear())
        logger.info("Reset %s after logout.", self.kind.value)

    def merge(self) -> Collection:
        """
        One-shot union of the guest collection into the account's.
        Server rows are the base; a product in both keeps the larger
        quantity. Local rows are written back one by one and a failed
        write does not undo the others.
        """
        try:
            local_items = self.local.load()
        except sqlite3.Error as e:
            logger.error("Could not read guest %s for merge: %s", self.kind.value, e)
            local_items = self.collection.items()

        try:
            remote_items = self.remote.load()
        except RemoteReadFailed as e:
            logger.warning("Server %s unavailable during merge; treating as empty: %s",
                           self.kind.value, e)
            remote_items = []

        merged = Collection(self.kind, remote_items)
        mutations: List[Mutation] = []
        for local in local_items:
            existing = merged.get(local.product_id)
            if existing is None:
                merged.put(local)
                mutations.extend(self._insert_mutations(merged.get(local.product_id)))
                continue
            if not self.kind.stock_aware:
                continue
            quantity = max(existing.quantity, local.quantity)
            stock = existing.cached_stock
            in_stock = existing.cached_in_stock
            if stock is None:
                stock, in_stock = local.cached_stock, local.cached_in_stock
            if stock is not None and quantity > stock:
                # stale bound; the follow-up revalidation decides
                stock = None
            merged.put(existing.copy(quantity=quantity, cached_stock=stock,
                                     cached_in_stock=in_stock))
            mutations.append(Mutation.update_quantity(local.product_id, quantity))

        landed = self.remote.sync.push_all(mutations)
        if landed < len(mutations):
            logger.warning("Merged %s: %d of %d writes reached the server.",
                           self.kind.value, landed, len(mutations))

        self.backing = self.remote
        self.collection.replace_all(merged)
        try:
            self.local.discard()
        except sqlite3.Error as e:
            logger.error("Could not discard guest %s: %s", self.kind.value, e)

        logger.info("Merged %d guest items into %s (%d items).",
                    len(local_items), self.kind.value, len(self.collection))
        self.schedule_revalidation(self.merge_revalidate_delay)
        return self.collection

    # -- mutations -----------------------------------------------------

    def _admit(self, product: Product, requested_qty: int) -> int:
        if not product.in_stock or product.stock <= 0:
            raise OutOfStock(product.product_id, product.stock)
        existing = self.collection.get(product.product_id)
        if existing is None:
            return min(requested_qty, product.stock)
        if existing.quantity >= product.stock:
            raise AtCapacity(product.product_id, product.stock)
        return min(existing.quantity + requested_qty, product.stock)

    def add(self, product: Product, requested_qty: int = 1) -> bool:
        """
        Add `requested_qty` of a product, bounded by its stock.
        Returns False when nothing changed; a refusal comes with a notice.
        """
        if requested_qty < 1:
            raise ValueError(f"requested quantity must be >= 1, got {requested_qty}")

        existing = self.collection.get(product.product_id)

        if not self.kind.stock_aware:
            if existing is not None:
                return False
            item = LineItem.from_product(product, 1)
            self.collection.put(item)
            self._commit(Mutation.add(item))
            return True

        product = self._with_live_stock(product)
        try:
            quantity = self._admit(product, requested_qty)
        except AddRejected as e:
            kind = nt.REJECTED_OUT_OF_STOCK if isinstance(e, OutOfStock) else nt.REJECTED_AT_CAPACITY
            self._emit(kind, product, stock=e.stock)
            return False

        if existing is None:
            item = LineItem.from_product(product, quantity)
            self.collection.put(item)
            self._commit(*self._insert_mutations(item))
        else:
            item = existing.copy(
                quantity=quantity,
                cached_stock=product.stock,
                cached_in_stock=product.in_stock,
            )
            self.collection.put(item)
            self._commit(Mutation.update_quantity(item.product_id, quantity))
        return True

    def remove(self, product_id: str) -> bool:
        if not self.collection.discard(product_id):
            return False
        self._commit(Mutation.remove(product_id))
        return True

    def set_quantity(self, product_id: str, qty: int) -> bool:
        if qty <= 0:
            return self.remove(product_id)

        item = self.collection.get(product_id)
        if item is None or not self.kind.stock_aware:
            return False

        new_qty = qty
        if item.cached_stock is not None and qty > item.cached_stock:
            new_qty = item.cached_stock
            if new_qty <= 0:
                self.collection.discard(product_id)
                self._commit(Mutation.remove(product_id))
                self._emit(nt.REMOVED_OUT_OF_STOCK, item)
                return True
            self._emit(nt.QUANTITY_ADJUSTED, item, quantity=new_qty)

        if new_qty == item.quantity:
            return False
        self.collection.put(item.copy(quantity=new_qty))
        self._commit(Mutation.update_quantity(product_id, new_qty))
        return True

    def clear(self) -> None:
        self.collection.clear()
        self._commit(Mutation.clear())

    def record_purchase(self, product_id: str, quantity_purchased: int) -> Optional[LineItem]:
        """Lower the cached stock after a checkout bought `quantity_purchased`."""
        item = self.collection.get(product_id)
        if item is None:
            return None
        base = item.cached_stock if item.cached_stock is not None else 0
        stock = max(0, base - quantity_purchased)
        updated = item.copy(cached_stock=stock, cached_in_stock=stock > 0)
        self.collection.put(updated)
        self.oracle.update_local(product_id, stock)
        self._commit()
        return updated.copy()

    # -- revalidation --------------------------------------------------

    def schedule_revalidation(self, delay: float = 0.0) -> str:
        return self.scheduler.call_later(delay, self.revalidate, key=self.revalidate_key)

    def revalidate(self) -> List[nt.Notice]:
        """
        Check every line against live stock and fix what no longer fits.
        Products the stock service says nothing about are left alone.
        """
        if not self.collection:
            return []

        version = self.collection.version
        snapshots = self.oracle.get_stock_batch(self.collection.product_ids())

        if self.collection.version != version:
            logger.info("%s changed during revalidation; discarding stale results.",
                        self.kind.value.capitalize())
            self.schedule_revalidation(STALE_RETRY_DELAY)
            return []

        corrections = stockdiff.diff_stock(
            self.collection, snapshots, enforce=self.kind.stock_aware
        )
        if not corrections:
            logger.debug("Revalidated %s: no changes.", self.kind.value)
            return []

        mutations: List[Mutation] = []
        emitted: List[nt.Notice] = []
        for c in corrections:
            pid = c.before.product_id
            if c.destructive:
                self.collection.discard(pid)
                mutations.append(Mutation.remove(pid))
            else:
                self.collection.put(c.after)
                if c.action == stockdiff.ADJUST_QUANTITY:
                    mutations.append(Mutation.update_quantity(pid, c.after.quantity))

            notice_kind = _CORRECTION_NOTICES.get(c.action)
            if notice_kind is not None:
                quantity = c.after.quantity if c.after is not None else None
                emitted.append(self._emit(notice_kind, c.before, quantity=quantity))

        self._commit(*mutations)
        return emitted
