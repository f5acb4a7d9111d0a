# core/scheduler.py
import itertools
import time
from typing import Callable, Dict, List, Optional, Tuple

from .logger import get_logger

logger = get_logger(__name__)


class Scheduler:
    """
    Deferred calls for a single-threaded event loop. Nothing runs on its
    own: the owner calls run_due() from its loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._seq = itertools.count()
        # key -> (deadline, seq, fn)
        self._pending: Dict[str, Tuple[float, int, Callable[[], None]]] = {}

    def call_later(
        self, delay: float, fn: Callable[[], None], key: Optional[str] = None
    ) -> str:
        seq = next(self._seq)
        key = key or f"call-{seq}"
        self._pending[key] = (self.clock() + max(0.0, delay), seq, fn)
        logger.debug("Scheduled %s in %.1fs.", key, delay)
        return key

    def cancel(self, key: str) -> bool:
        return self._pending.pop(key, None) is not None

    def pending(self) -> List[str]:
        return sorted(self._pending, key=lambda k: self._pending[k][:2])

    def run_due(self) -> int:
        now = self.clock()
        due = sorted(
            ((deadline, seq, key, fn) for key, (deadline, seq, fn) in self._pending.items()
             if deadline <= now),
        )
        ran = 0
        for _, seq, key, fn in due:
            # a callback may have replaced or cancelled this entry
            entry = self._pending.get(key)
            if entry is None or entry[1] != seq:
                continue
            del self._pending[key]
            try:
                fn()
            except Exception as e:
                logger.exception("Scheduled call %s failed: %s", key, e)
            ran += 1
        return ran
