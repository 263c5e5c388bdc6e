from __future__ import annotations

import asyncio
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

DEFAULT_SEARCH_DEBOUNCE_SECONDS = 0.3


class Debouncer(Generic[T]):
    """
    Delivers the latest pushed value once no new value has arrived for `delay`
    seconds. Runs on the current asyncio loop; performs no I/O itself.
    """

    def __init__(self, callback: Callable[[T], None], delay: float = DEFAULT_SEARCH_DEBOUNCE_SECONDS):
        self.callback = callback
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending: Optional[T] = None
        self._has_pending = False

    @property
    def pending(self) -> bool:
        return self._has_pending

    def push(self, value: T) -> None:
        self.cancel()
        self._pending = value
        self._has_pending = True
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Deliver the pending value immediately, if any."""
        if self._has_pending:
            self.cancel_timer()
            self._fire()

    def cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def cancel(self) -> None:
        self.cancel_timer()
        self._pending = None
        self._has_pending = False

    def _fire(self) -> None:
        value = self._pending
        self._handle = None
        self._pending = None
        self._has_pending = False
        self.callback(value)  # type: ignore[arg-type]
