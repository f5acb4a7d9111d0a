# clients/stock.py
import os
import time
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import requests

from core.errors import OracleUnreachable
from core.logger import get_logger
from core.models import StockSnapshot

from .http import API_URL, HTTP_RETRY_ATTEMPTS, HTTP_TIMEOUT, new_session, retrying

logger = get_logger(__name__)

CACHE_TTL = float(os.getenv("STOCK_CACHE_TTL", "30"))


class StockOracle:
    """
    Cached read path to the authoritative stock counts.

    get_stock() answers from cache while an entry is younger than `ttl`
    seconds. Failures never raise to callers: a single lookup returns None
    and a batch lookup simply omits what it could not learn.
    """

    def __init__(
        self,
        base_url: str = API_URL,
        ttl: float = CACHE_TTL,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
        attempts: int = HTTP_RETRY_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl
        self.session = session or new_session()
        self.timeout = timeout
        self.attempts = attempts
        self.clock = clock
        # product_id -> (snapshot, stored_at per self.clock)
        self._cache: Dict[str, Tuple[StockSnapshot, float]] = {}

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            for attempt in retrying(self.attempts):
                with attempt:
                    r = self.session.request(method, url, timeout=self.timeout, **kwargs)
                    r.raise_for_status()
                    data = r.json()
        except (requests.RequestException, ValueError) as e:
            raise OracleUnreachable(f"{method} {url}: {e}") from e
        if not isinstance(data, dict):
            raise OracleUnreachable(f"{method} {url}: unexpected payload {type(data).__name__}")
        return data

    def _store(self, snap: StockSnapshot) -> None:
        self._cache[snap.product_id] = (snap, self.clock())

    def cached(self, product_id: str) -> Optional[StockSnapshot]:
        entry = self._cache.get(product_id)
        if entry is None:
            return None
        snap, stored_at = entry
        if self.clock() - stored_at >= self.ttl:
            return None
        return snap

    def get_stock(self, product_id: str) -> Optional[StockSnapshot]:
        snap = self.cached(product_id)
        if snap is not None:
            logger.debug("Stock cache hit for %s.", product_id)
            return snap

        try:
            data = self._request("GET", f"{self.base_url}/api/products/{product_id}")
            payload = data.get("product", data)
            snap = StockSnapshot.from_payload(product_id, payload)
        except (OracleUnreachable, TypeError, ValueError, AttributeError) as e:
            logger.warning("Stock lookup for %s failed: %s", product_id, e)
            return None

        self._store(snap)
        return snap

    def get_stock_batch(self, product_ids: Iterable[str]) -> Dict[str, StockSnapshot]:
        ids = list(dict.fromkeys(product_ids))
        if not ids:
            return {}

        try:
            data = self._request(
                "POST",
                f"{self.base_url}/api/products/stock",
                json={"productIds": ids},
            )
        except OracleUnreachable as e:
            logger.warning("Batch stock lookup for %d products failed: %s", len(ids), e)
            return {}

        info = data.get("stockInfo")
        if not isinstance(info, dict):
            logger.warning("Batch stock response missing 'stockInfo'; got: %s", type(info))
            return {}

        out: Dict[str, StockSnapshot] = {}
        for pid, entry in info.items():
            if not isinstance(entry, dict):
                continue
            try:
                snap = StockSnapshot.from_payload(str(pid), entry)
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring malformed stock entry for %s: %s", pid, e)
                continue
            self._store(snap)
            out[snap.product_id] = snap

        missing = [pid for pid in ids if pid not in out]
        if missing:
            logger.debug("Batch stock lookup returned nothing for %s.", missing)
        return out

    def invalidate(self, product_id: Optional[str] = None) -> None:
        if product_id is None:
            self._cache.clear()
        else:
            self._cache.pop(product_id, None)

    def update_local(self, product_id: str, stock: int) -> StockSnapshot:
        """Record a stock value we learned ourselves (e.g. after a purchase)."""
        stock = max(0, int(stock))
        snap = StockSnapshot(product_id=product_id, stock=stock, in_stock=stock > 0)
        self._store(snap)
        return snap
