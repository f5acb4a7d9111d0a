# clients/remote.py
from typing import Any, Callable, Dict, List, Optional

import requests

from core.errors import RemoteReadFailed, RemoteWriteFailed
from core.logger import get_logger
from core.models import CollectionKind, LineItem

from .http import (
    API_URL,
    HTTP_RETRY_ATTEMPTS,
    HTTP_TIMEOUT,
    HTTP_WRITE_ATTEMPTS,
    new_session,
    retrying,
)

logger = get_logger(__name__)

ACTIONS = ("add", "remove", "updateQuantity", "clear")


class RemoteCollectionClient:
    """
    The backend's per-user cart or wishlist at /api/<kind>.
    `token_provider` returns the current bearer token (None when signed out).
    Reads retry transient failures `attempts` times; writes use
    `write_attempts`, since `add` is not idempotent on the server.
    """

    def __init__(
        self,
        kind: CollectionKind,
        token_provider: Callable[[], Optional[str]],
        base_url: str = API_URL,
        session: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
        attempts: int = HTTP_RETRY_ATTEMPTS,
        write_attempts: int = HTTP_WRITE_ATTEMPTS,
    ):
        self.kind = kind
        self.token_provider = token_provider
        self.base_url = base_url.rstrip("/")
        self.session = session or new_session()
        self.timeout = timeout
        self.attempts = attempts
        self.write_attempts = write_attempts

    @property
    def url(self) -> str:
        return f"{self.base_url}/api/{self.kind.value}"

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider()
        if not token:
            raise PermissionError(f"no session token for remote {self.kind.value}")
        return {"Authorization": f"Bearer {token}"}

    def _send(self, method: str, attempts: int, **kwargs) -> requests.Response:
        headers = self._headers()
        for attempt in retrying(attempts):
            with attempt:
                r = self.session.request(
                    method, self.url, headers=headers, timeout=self.timeout, **kwargs
                )
                r.raise_for_status()
        return r

    def fetch(self) -> List[LineItem]:
        try:
            data = self._send("GET", self.attempts).json()
            rows = data.get("items") if isinstance(data, dict) else None
            if not isinstance(rows, list):
                raise ValueError(f"response from {self.url} has no 'items' list")
        except (requests.RequestException, ValueError, PermissionError) as e:
            raise RemoteReadFailed(f"GET {self.url}: {e}") from e
        return [LineItem.from_payload(row) for row in rows if isinstance(row, dict)]

    def post(self, action: str, item: Optional[Dict[str, Any]] = None) -> None:
        """Send one mutation. A 2xx status means it landed; the body is not read."""
        if action not in ACTIONS:
            raise ValueError(f"unknown {self.kind.value} action {action!r}")
        body: Dict[str, Any] = {"action": action}
        if item is not None:
            body["item"] = item
        try:
            self._send("POST", self.write_attempts, json=body)
        except (requests.RequestException, PermissionError) as e:
            raise RemoteWriteFailed(f"{action} on {self.url}: {e}") from e
        logger.debug("%s %s on %s", action, (item or {}).get("productId", "<all>"), self.url)
