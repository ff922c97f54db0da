"""A consecutive-failure circuit breaker with a sliding window."""

from __future__ import annotations

import queue
import threading
import time
from typing import Any, Callable, Optional


class BreakerError(RuntimeError):
    """Base class for circuit breaker errors."""


class BreakerOpenError(BreakerError):
    """Raised when the breaker refuses a call."""

    def __init__(self, message: str = "breaker open") -> None:
        super().__init__(message)


class BreakerTimeoutError(BreakerError):
    """Raised when a guarded call does not finish in time."""

    def __init__(self, message: str = "breaker time out") -> None:
        super().__init__(message)


def _run_with_timeout(fn: Callable[[], Any], timeout: float) -> Any:
    outcome: queue.Queue = queue.Queue(maxsize=1)

    def runner() -> None:
        try:
            outcome.put((True, fn()))
        except Exception as exc:  # handed back to the caller
            outcome.put((False, exc))

    threading.Thread(target=runner, daemon=True).start()
    try:
        ok, value = outcome.get(timeout=timeout)
    except queue.Empty:
        raise BreakerTimeoutError() from None
    if ok:
        return value
    raise value


class ConsecCircuitBreaker:
    """Opens after ``failure_threshold`` failures within ``window`` seconds."""

    def __init__(self, failure_threshold: int, window: float) -> None:
        self.failure_threshold = failure_threshold
        self.window = window
        self._failures = 0
        self._last_failure: Optional[float] = None
        self._lock = threading.Lock()

    def call(self, fn: Callable[[], Any], timeout: float = 0) -> Any:
        """Run ``fn`` through the breaker and return its result.

        A ``timeout`` of zero runs ``fn`` without a time limit.
        """
        if not self.ready():
            raise BreakerOpenError()
        try:
            result = fn() if not timeout else _run_with_timeout(fn, timeout)
        except Exception:
            self.fail()
            raise
        self.success()
        return result

    def ready(self) -> bool:
        """Whether the breaker lets a call through."""
        with self._lock:
            now = time.monotonic()
            if self._last_failure is None or now - self._last_failure > self.window:
                self._reset(now)
                return True
            return self._failures < self.failure_threshold

    def success(self) -> None:
        """Record a successful call."""
        with self._lock:
            self._reset(time.monotonic())

    def fail(self) -> None:
        """Record a failed call."""
        with self._lock:
            self._failures += 1
            self._last_failure = time.monotonic()

    def _reset(self, now: float) -> None:
        self._failures = 0
        self._last_failure = now