# core/session.py
from typing import Callable, List, Optional

from .logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[], None]


class Session:
    """
    Minimal view of the auth collaborator: who is signed in and the
    login/logout events the reconcilers subscribe to.
    """

    def __init__(self, user_id: Optional[str] = None, token: Optional[str] = None):
        self.user_id = user_id if token else None
        self.token = token if user_id else None
        self._on_login: List[Listener] = []
        self._on_logout: List[Listener] = []

    @property
    def authenticated(self) -> bool:
        return bool(self.user_id and self.token)

    def subscribe_login(self, fn: Listener) -> None:
        self._on_login.append(fn)

    def subscribe_logout(self, fn: Listener) -> None:
        self._on_logout.append(fn)

    def login(self, user_id: str, token: str) -> None:
        if self.authenticated and self.user_id == user_id:
            # token refresh, not a new login event
            self.token = token
            return
        self.user_id = user_id
        self.token = token
        logger.info("Session authenticated as %s.", user_id)
        for fn in list(self._on_login):
            fn()

    def logout(self) -> None:
        if not self.authenticated:
            return
        logger.info("Session for %s logged out.", self.user_id)
        self.user_id = None
        self.token = None
        for fn in list(self._on_logout):
            fn()
