"""Single-flight cache of run results keyed by fingerprint.

The first caller for a fingerprint computes the result; concurrent callers
for the same fingerprint block on the same future instead of starting a
second computation. Failed computations are evicted so a later call can
retry.
"""

import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Generic, Optional, TypeVar

from .logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class FingerprintCache(Generic[T]):
    """Thread-safe fingerprint-keyed result cache.

    Args:
        max_entries: Completed entries to retain (least recently used are
            dropped first); None keeps everything
    """

    def __init__(self, max_entries: Optional[int] = None):
        self.max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Future]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, fingerprint: str, compute: Callable[[], T]) -> T:
        """Return the cached result, computing it at most once.

        Args:
            fingerprint: Run fingerprint
            compute: Zero-argument callable producing the result

        Returns:
            The result for ``fingerprint``

        Raises:
            Exception: Whatever ``compute`` raised, for the computing caller
                and every caller waiting on it
        """
        with self._lock:
            future = self._entries.get(fingerprint)
            if future is not None:
                self.hits += 1
                self._entries.move_to_end(fingerprint)
                owner = False
            else:
                self.misses += 1
                future = Future()
                self._entries[fingerprint] = future
                owner = True

        if not owner:
            return future.result()

        try:
            result = compute()
        except BaseException as e:
            with self._lock:
                if self._entries.get(fingerprint) is future:
                    del self._entries[fingerprint]
            future.set_exception(e)
            logger.debug(f"Evicted failed computation for {fingerprint[:12]}")
            raise

        future.set_result(result)
        self._evict()
        return result

    def get(self, fingerprint: str) -> Optional[T]:
        """Completed result for ``fingerprint`` or None; never blocks."""
        with self._lock:
            future = self._entries.get(fingerprint)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def _evict(self) -> None:
        if self.max_entries is None:
            return
        with self._lock:
            completed = [key for key, future in self._entries.items() if future.done()]
            excess = len(completed) - self.max_entries
            for key in completed[:max(excess, 0)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, fingerprint: str) -> bool:
        with self._lock:
            return fingerprint in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
