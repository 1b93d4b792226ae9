"""Process-local admission control: concurrency ceiling and per-key rate limit.

State lives on one `GuardService` instance constructed per process and passed
to whichever component needs admission control. Limits are not coordinated
across processes.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager

ReleaseFn = Callable[[], None]

NO_GROUP_KEY = "no-group"
DEFAULT_MAX_CONCURRENCY = 2
DEFAULT_MAX_PER_MINUTE = 30
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_CLEANUP_THRESHOLD = 5000


class GuardService:
    """Bounded concurrency semaphore with FIFO hand-off plus sliding-window limiter."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        max_per_minute: int = DEFAULT_MAX_PER_MINUTE,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        cleanup_threshold: int = DEFAULT_CLEANUP_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        if max_per_minute < 1:
            raise ValueError("max_per_minute must be >= 1")
        self.max_concurrency = max_concurrency
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight = 0
        self._waiters: deque[threading.Event] = deque()
        self._usage: dict[str, list[float]] = {}

    @property
    def in_flight(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def waiting(self) -> int:
        with self._lock:
            return len(self._waiters)

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._usage)

    def acquire(self) -> ReleaseFn:
        """Block until a slot is free and return an idempotent release callable."""

        with self._lock:
            if self._in_flight < self.max_concurrency and not self._waiters:
                self._in_flight += 1
                return self._create_release()
            waiter = threading.Event()
            self._waiters.append(waiter)

        # The releasing thread hands its slot over before setting the event.
        waiter.wait()
        return self._create_release()

    @contextmanager
    def slot(self) -> Iterator[None]:
        """Hold one concurrency slot for the duration of the block."""

        release = self.acquire()
        try:
            yield
        finally:
            release()

    def try_consume(self, key: str | None) -> bool:
        """Record one event for `key` unless its trailing window is already full."""

        bucket = key or NO_GROUP_KEY
        with self._lock:
            now = self._clock()
            cutoff = now - self.window_seconds
            recent = [stamp for stamp in self._usage.get(bucket, ()) if stamp >= cutoff]
            if len(recent) >= self.max_per_minute:
                self._usage[bucket] = recent
                self._cleanup_if_needed(now)
                return False
            recent.append(now)
            self._usage[bucket] = recent
            self._cleanup_if_needed(now)
            return True

    def _create_release(self) -> ReleaseFn:
        released = False

        def _release() -> None:
            nonlocal released
            with self._lock:
                if released:
                    return
                released = True
                if self._waiters:
                    self._waiters.popleft().set()
                    return
                self._in_flight = max(0, self._in_flight - 1)

        return _release

    def _cleanup_if_needed(self, now: float) -> None:
        if len(self._usage) <= self.cleanup_threshold:
            return
        cutoff = now - self.window_seconds
        for bucket in list(self._usage):
            recent = [stamp for stamp in self._usage[bucket] if stamp >= cutoff]
            if recent:
                self._usage[bucket] = recent
            else:
                del self._usage[bucket]
