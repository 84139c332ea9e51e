"""De-duplicating work queue for reconcile requests."""

import logging
import threading
from collections import deque
from typing import Dict, Optional, Set

from .config import RETRY_BASE_DELAY_SECONDS, RETRY_MAX_DELAY_SECONDS

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    Thread-safe queue of object keys.

    A key is queued at most once. A key handed out by get() is not handed
    out again until done() is called for it; adds that arrive while it is
    being processed are held back and queued by done(). Together this
    guarantees that a single key is never reconciled by two workers at once.
    """

    def __init__(
        self,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_delay: float = RETRY_MAX_DELAY_SECONDS
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay

        self._queue = deque()
        self._dirty: Set[str] = set()
        self._processing: Set[str] = set()
        self._failures: Dict[str, int] = {}
        self._timers: Set[threading.Timer] = set()
        self._cond = threading.Condition()
        self._shutting_down = False

    def add(self, key: str) -> None:
        """Queue a key unless it is already waiting."""
        with self._cond:
            if self._shutting_down or key in self._dirty:
                return
            self._dirty.add(key)
            if key in self._processing:
                return
            self._queue.append(key)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Take the next key, blocking until one is available.

        Returns:
            The key, or None on timeout or shutdown
        """
        with self._cond:
            if not self._queue and not self._shutting_down:
                self._cond.wait_for(
                    lambda: self._queue or self._shutting_down,
                    timeout=timeout
                )
            if self._shutting_down or not self._queue:
                return None

            key = self._queue.popleft()
            self._processing.add(key)
            self._dirty.discard(key)
            return key

    def done(self, key: str) -> None:
        """Mark a key as processed, queueing it again if it was re-added meanwhile."""
        with self._cond:
            self._processing.discard(key)
            if key in self._dirty and not self._shutting_down:
                self._queue.append(key)
                self._cond.notify()

    def add_after(self, key: str, delay: float) -> None:
        """Queue a key after a delay in seconds."""
        if delay <= 0:
            self.add(key)
            return

        with self._cond:
            if self._shutting_down:
                return
            timer = threading.Timer(delay, lambda: self._fire(key, timer))
            timer.daemon = True
            self._timers.add(timer)
        timer.start()

    def _fire(self, key: str, timer: threading.Timer) -> None:
        with self._cond:
            self._timers.discard(timer)
        self.add(key)

    def add_rate_limited(self, key: str) -> float:
        """
        Queue a key after an exponential backoff for its failure count.

        Returns:
            The delay used, in seconds
        """
        with self._cond:
            failures = self._failures.get(key, 0)
            self._failures[key] = failures + 1
        delay = min(self.base_delay * (2 ** min(failures, 32)), self.max_delay)
        logger.debug(f"Requeueing {key} in {delay:.2f}s (failure {failures + 1})")
        self.add_after(key, delay)
        return delay

    def forget(self, key: str) -> None:
        """Reset the failure count of a key."""
        with self._cond:
            self._failures.pop(key, None)

    def num_requeues(self, key: str) -> int:
        with self._cond:
            return self._failures.get(key, 0)

    def shut_down(self) -> None:
        """Stop handing out keys and cancel pending delayed adds."""
        with self._cond:
            self._shutting_down = True
            timers = list(self._timers)
            self._timers.clear()
            self._cond.notify_all()
        for timer in timers:
            timer.cancel()

    @property
    def shutting_down(self) -> bool:
        with self._cond:
            return self._shutting_down

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)
