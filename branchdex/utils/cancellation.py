"""Cooperative cancellation for query-time I/O."""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, wait
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import TypeVar

from branchdex.index.errors import SearchCancelled

T = TypeVar("T")


class CancelToken:
    """Thread-safe cancellation signal shared between a caller and workers.

    Waiting helpers return as soon as the token is cancelled, so a pending
    fetch or debounce rejects immediately with :class:`SearchCancelled`.

    Example:
        >>> token = CancelToken()
        >>> future = executor.submit(fetch)
        >>> token.wait_for(future)  # raises SearchCancelled after token.cancel()
    """

    def __init__(self) -> None:
        self._signal: Future[None] = Future()
        self._lock = threading.Lock()
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._signal.done()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation. Repeated calls are no-ops."""
        with self._lock:
            if self._signal.done():
                return
            self._reason = reason
            self._signal.set_result(None)

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation (immediately if already cancelled)."""
        self._signal.add_done_callback(lambda _: callback())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise SearchCancelled(f"Operation cancelled: {self._reason}")

    def sleep(self, seconds: float) -> None:
        """Debounce helper that wakes early and raises when cancelled."""
        try:
            self._signal.result(timeout=seconds)
        except FuturesTimeoutError:
            return
        self.raise_if_cancelled()

    def wait_for(self, future: Future[T], timeout: float | None = None) -> T:
        """Block until ``future`` resolves or the token is cancelled.

        The underlying work is not interrupted; its result is simply discarded
        when cancellation wins.

        Raises:
            SearchCancelled: If the token is cancelled first
            TimeoutError: If ``timeout`` elapses first
        """
        self.raise_if_cancelled()
        done, _ = wait([future, self._signal], timeout=timeout, return_when=FIRST_COMPLETED)
        if self._signal in done:
            self.raise_if_cancelled()
        if future not in done:
            raise TimeoutError("Timed out waiting for operation")
        return future.result()
