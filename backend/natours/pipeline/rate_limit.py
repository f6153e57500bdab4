"""
Natours Backend — Rate Limiting Stage
=======================================

What:  Per-IP fixed window admission control for API traffic.
How:   Each client IP owns a RateWindow {window_start, count}. The counter
       store performs the reset-and-increment atomically per key; the
       RequestLimiter stage turns the resulting snapshot into an admission
       decision.
When:  First pipeline stage. Requests outside the API prefix (views,
       static assets, health checks) skip it.

Algorithm: Fixed Window Counter
    1. No window for the IP, or now > window_start + duration:
       start a new window (window_start = now, count = 0)
    2. count += 1
    3. count > max_requests → reject with 429

    A clock that moves backward never resets the window; the current
    window is kept until time passes its end again.

Counter stores:
    RateWindowStore is the seam for swapping storage. The in-memory store
    keeps one lock per IP, so requests from different clients never wait
    on each other. The critical section contains no await, so a cancelled
    request cannot leave a window half updated.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from natours.exceptions import AdmissionDeniedError
from natours.pipeline.request import PipelineRequest, path_has_prefix

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def monotonic_ms() -> float:
    """Default limiter clock: monotonic milliseconds."""
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class RateWindow:
    """Snapshot of one client's window after a hit."""

    window_start: float
    count: int


class RateWindowStore(ABC):
    """Storage seam for rate windows keyed by client identifier."""

    @abstractmethod
    def hit(self, key: str, now: float, window_duration: float) -> RateWindow:
        """
        Atomically reset (if expired) and increment the window for `key`.

        Returns a snapshot taken inside the same atomic section.
        """

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget the window for `key`."""

    @abstractmethod
    def get(self, key: str) -> Optional[RateWindow]:
        """Current window for `key`, or None if the client is unknown."""


class InMemoryRateWindowStore(RateWindowStore):
    """
    Process-local store with per-key locking.

    Thread Safety:
        Safe for a single process, including threadpool handlers.
        NOT shared across worker processes.

    Lock lifecycle:
        A key's lock lives exactly as long as its window. reset() and
        prune() remove both under the registry lock; hit() re-checks that
        the lock it holds is still registered and retries otherwise.
    """

    def __init__(self) -> None:
        self._windows: Dict[str, RateWindow] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        lock = self._locks.get(key)
        if lock is None:
            with self._registry_lock:
                lock = self._locks.setdefault(key, threading.Lock())
        return lock

    def hit(self, key: str, now: float, window_duration: float) -> RateWindow:
        while True:
            lock = self._lock_for(key)
            with lock:
                # retired by reset()/prune() between lookup and acquire
                if self._locks.get(key) is not lock:
                    continue
                window = self._windows.get(key)
                if window is None or now > window.window_start + window_duration:
                    window = RateWindow(window_start=now, count=0)
                window = RateWindow(window_start=window.window_start, count=window.count + 1)
                self._windows[key] = window
                return window

    def _retire(self, key: str, expired_at: Optional[float] = None, duration: float = 0) -> bool:
        # caller holds _registry_lock
        lock = self._locks.get(key)
        if lock is None:
            self._windows.pop(key, None)
            return False
        with lock:
            window = self._windows.get(key)
            if expired_at is not None and window is not None:
                if expired_at <= window.window_start + duration:
                    return False
            self._windows.pop(key, None)
            del self._locks[key]
        return True

    def reset(self, key: str) -> None:
        with self._registry_lock:
            self._retire(key)

    def get(self, key: str) -> Optional[RateWindow]:
        return self._windows.get(key)

    def prune(self, now: float, window_duration: float) -> int:
        """
        Drop windows (and their locks) that expired before `now`.

        Returns the number of removed client entries.
        """
        removed = 0
        with self._registry_lock:
            for key, window in list(self._windows.items()):
                if now > window.window_start + window_duration:
                    if self._retire(key, expired_at=now, duration=window_duration):
                        removed += 1
        if removed:
            logger.debug("Pruned %d expired rate windows", removed)
        return removed

    def __len__(self) -> int:
        return len(self._windows)


class RequestLimiter:
    """
    Pipeline stage enforcing the per-client request quota.

    Configuration:
        max_requests:     Admitted requests per window (default: 100)
        window_duration:  Window length in milliseconds (default: 1 hour)
        prefix:           Only paths under this prefix are limited

    Response headers (set on admitted and rejected requests):
        X-RateLimit-Limit, X-RateLimit-Remaining, X-RateLimit-Reset,
        and Retry-After on rejection.
    """

    name = "rate_limit"
    PRUNE_EVERY = 1000

    def __init__(
        self,
        max_requests: int = 100,
        window_duration: float = 60 * 60 * 1000,
        prefix: str = "/api",
        store: Optional[RateWindowStore] = None,
        clock: Optional[Clock] = None,
        message: Optional[str] = None,
    ):
        self.max_requests = max_requests
        self.window_duration = window_duration
        self.prefix = prefix
        self.store = store if store is not None else InMemoryRateWindowStore()
        self.clock = clock or monotonic_ms
        self.message = message
        self._hits = 0

    def applies_to(self, path: str) -> bool:
        return path_has_prefix(path, self.prefix)

    def admit(self, client_id: str) -> RateWindow:
        """
        Count one request for `client_id` and decide admission.

        Raises:
            AdmissionDeniedError: the window quota is exhausted
        """
        now = self.clock()
        window = self.store.hit(client_id, now, self.window_duration)

        self._hits += 1
        if self._hits % self.PRUNE_EVERY == 0 and isinstance(self.store, InMemoryRateWindowStore):
            self.store.prune(now, self.window_duration)

        if window.count > self.max_requests:
            retry_after = self.seconds_until_reset(window, now)
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %dms window",
                client_id,
                window.count,
                self.window_duration,
            )
            raise AdmissionDeniedError(
                message=self.message,
                retry_after=retry_after,
                context={"client_id": client_id, "count": window.count},
            )
        return window

    def seconds_until_reset(self, window: RateWindow, now: float) -> int:
        remaining_ms = window.window_start + self.window_duration - now
        return max(0, math.ceil(remaining_ms / 1000.0))

    def rate_headers(self, window: RateWindow, now: float) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.max_requests),
            "X-RateLimit-Remaining": str(max(0, self.max_requests - window.count)),
            "X-RateLimit-Reset": str(self.seconds_until_reset(window, now)),
        }

    async def __call__(self, request: PipelineRequest) -> PipelineRequest:
        if not self.applies_to(request.path):
            return request

        try:
            window = self.admit(request.client_id)
        except AdmissionDeniedError:
            window = self.store.get(request.client_id)
            if window is not None:
                request.response_headers.update(self.rate_headers(window, self.clock()))
            raise

        request.response_headers.update(self.rate_headers(window, self.clock()))
        return request
