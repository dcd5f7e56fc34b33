"""
Keyed debounce timers on the running event loop.

``schedule(key, delay, fn)`` (re)starts the timer for key: every call
within the window pushes the deadline back, and fn runs once when the
window passes without a new call. fn may return an awaitable, which is run
as a task tracked until it finishes.
"""

import asyncio
import inspect
from typing import Any, Callable

from invoice_sync.lib import logs

LOG = logs.logger(__file__)


class Debouncer:
    """Per-key debounce timers. Must be used from the event loop thread."""

    def __init__(self) -> None:
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()

    def schedule(self, key: str, delay: float, fn: Callable[[], Any]) -> None:
        """
        Run fn after delay seconds unless key is scheduled or cancelled again first.

        Args:
            key: Timer identity; one pending timer per key.
            delay: Window in seconds.
            fn: Callback, sync or returning an awaitable.
        """
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._timers[key] = loop.call_later(max(delay, 0.0), self._fire, key, fn)

    def cancel(self, key: str) -> bool:
        """Cancel the pending timer for key. Returns True if one was pending."""
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        for key in list(self._timers):
            self.cancel(key)

    def pending(self, key: str) -> bool:
        return key in self._timers

    async def drain(self) -> None:
        """Wait for callbacks that already fired to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _fire(self, key: str, fn: Callable[[], Any]) -> None:
        self._timers.pop(key, None)
        LOG.debug("Debounce window for %s elapsed", key)
        result = fn()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            LOG.error("Debounced callback failed", exc_info=task.exception())
