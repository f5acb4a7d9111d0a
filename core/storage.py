# core/storage.py
import os
import sqlite3
from typing import List

from .collection import Collection
from .logger import get_logger
from .models import CollectionKind, LineItem, now_utc

logger = get_logger(__name__)

DB_PATH = os.getenv("DB_PATH", "/data/storefront_state.sqlite3")
SCOPE = os.getenv("STOREFRONT_SCOPE", "guest")


def now_utc_iso() -> str:
    return now_utc().isoformat()


class LocalCollectionStore:
    """
    Guest-mode persistence: one saved collection per (scope, kind),
    read at startup and rewritten on every guest mutation.
    """

    def __init__(self, db_path: str = DB_PATH, scope: str = SCOPE):
        self.db_path = db_path
        self.scope = scope
        self.ensure_db()

    def _connect(self):
        dirname = os.path.dirname(self.db_path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)
        return sqlite3.connect(self.db_path)

    def ensure_db(self):
        with self._connect() as con:
            cur = con.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS line_items (
                    scope TEXT,
                    kind TEXT,
                    product_id TEXT,
                    position INTEGER,
                    name TEXT,
                    unit_price REAL,
                    image TEXT,
                    quantity INTEGER,
                    cached_stock INTEGER,   -- NULL when never observed
                    cached_in_stock INTEGER,
                    updated_at TEXT,
                    PRIMARY KEY (scope, kind, product_id)
                )
            """
            )
            con.commit()

    def load(self, kind: CollectionKind) -> Collection:
        with self._connect() as con:
            cur = con.cursor()
            cur.execute(
                """
                SELECT product_id, name, unit_price, image, quantity,
                       cached_stock, cached_in_stock
                FROM line_items
                WHERE scope=? AND kind=?
                ORDER BY position
            """,
                (self.scope, kind.value),
            )
            rows = cur.fetchall()

        items: List[LineItem] = []
        for row in rows:
            product_id, name, unit_price, image, quantity, cached_stock, cached_in_stock = row
            items.append(
                LineItem(
                    product_id=product_id,
                    name=name or "",
                    unit_price=unit_price or 0.0,
                    image=image or "",
                    quantity=max(1, quantity or 1),
                    cached_stock=cached_stock,
                    cached_in_stock=bool(cached_in_stock),
                )
            )
        logger.debug("Loaded %d %s items for scope %s.", len(items), kind.value, self.scope)
        return Collection(kind, items)

    def save(self, collection: Collection):
        """
        Replace the persisted copy with the given collection.
        """
        ts = now_utc_iso()
        kind = collection.kind.value
        with self._connect() as con:
            cur = con.cursor()
            cur.execute(
                "DELETE FROM line_items WHERE scope=? AND kind=?",
                (self.scope, kind),
            )
            for position, it in enumerate(collection):
                cur.execute(
                    """
                    INSERT INTO line_items (
                        scope, kind, product_id, position, name, unit_price,
                        image, quantity, cached_stock, cached_in_stock, updated_at
                    )
                    VALUES (?,?,?,?,?,?,?,?,?,?,?)
                """,
                    (
                        self.scope,
                        kind,
                        it.product_id,
                        position,
                        it.name,
                        it.unit_price,
                        it.image,
                        it.quantity,
                        it.cached_stock,
                        1 if it.cached_in_stock else 0,
                        ts,
                    ),
                )
            con.commit()

    def discard(self, kind: CollectionKind):
        with self._connect() as con:
            cur = con.cursor()
            cur.execute(
                "DELETE FROM line_items WHERE scope=? AND kind=?",
                (self.scope, kind.value),
            )
            con.commit()
        logger.debug("Discarded local %s for scope %s.", kind.value, self.scope)
