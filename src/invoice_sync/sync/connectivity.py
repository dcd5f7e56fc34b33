"""
Reachability of the remote store.

ConnectivityMonitor keeps one ``online`` flag for the signed-in session. It
is updated from two directions: a periodic ``ping`` of the backend every
``interval`` seconds, and the outcome of ordinary remote calls reported by
loaders and operations. Only transitions are announced, one notification
when the connection is lost and one when it comes back, and listeners are
called with the new state.
"""

import asyncio
from typing import Callable

from invoice_sync.errors import ApiError, ErrorType
from invoice_sync.lib import logs
from invoice_sync.models.common import Notification
from invoice_sync.services.remote_backend import RemoteBackend
from invoice_sync.sync.notify import Notifier

LOG = logs.logger(__file__)

LOST_MESSAGE = "Connection lost. Showing saved data"
RESTORED_MESSAGE = "Connection restored"


def is_network_failure(error: Exception) -> bool:
    """True when error means the store could not be reached at all."""
    return isinstance(error, ApiError) and error.error_type == ErrorType.NETWORK


class ConnectivityMonitor:
    """
    Tracks whether the remote store is reachable.

    Attributes:
        backend: Remote store to ping.
        notifier: Receives the lost and restored notifications.
        interval: Seconds between pings; 0 disables periodic checks.
        online: Last known reachability. Starts out True.
    """

    def __init__(self, backend: RemoteBackend, notifier: Notifier, interval: float = 30.0) -> None:
        self.backend = backend
        self.notifier = notifier
        self.interval = interval
        self.online = True
        self._listeners: list[Callable[[bool], None]] = []
        self._task: asyncio.Task | None = None

    def add_listener(self, listener: Callable[[bool], None]) -> None:
        """Call listener(online) on every transition."""
        self._listeners.append(listener)

    def report(self, online: bool, reason: Exception | None = None) -> None:
        """Record the reachability seen by a remote call or ping."""
        if online == self.online:
            return
        self.online = online
        if online:
            LOG.info("Remote store reachable again")
            self.notifier.notify(Notification("info", RESTORED_MESSAGE))
        else:
            LOG.warning("Remote store unreachable: %s", reason)
            self.notifier.notify(Notification("error", LOST_MESSAGE))
        for listener in list(self._listeners):
            listener(online)

    def report_failure(self, error: Exception) -> bool:
        """
        Record a failed remote call.

        Returns:
            True if the failure was a connectivity failure and has been
            accounted for here.
        """
        if not is_network_failure(error):
            return False
        self.report(False, error)
        return True

    async def check(self) -> bool:
        """Ping the store once and return the resulting state."""
        try:
            await self.backend.ping()
        except ApiError as exc:
            self.report(False, exc)
        else:
            self.report(True)
        return self.online

    def start(self) -> None:
        """Begin periodic pings. Must be called from the event loop thread."""
        if self._task is not None or self.interval <= 0:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """Stop periodic pings and forget the last known state."""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self.online = True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check()
