"""
Non-blocking user notifications ("toasts").

The sync layer reports recoverable failures and completed writes through a
Notifier instead of raising. Implementations:

- LogNotifier: writes notifications to the log
- BroadcastNotifier: pushes them to connected WebSocket clients
- FanoutNotifier: forwards to several notifiers
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable

from invoice_sync import ws_server
from invoice_sync.lib import logs
from invoice_sync.models.common import Notification

LOG = logs.logger(__file__)

_LEVELS = {"error": logging.ERROR, "success": logging.INFO, "info": logging.INFO}


class Notifier(ABC):
    """Receives notifications meant for the user."""

    @abstractmethod
    def notify(self, notification: Notification) -> None:
        """Deliver a notification. Must not block or raise."""


class LogNotifier(Notifier):
    def notify(self, notification: Notification) -> None:
        LOG.log(
            _LEVELS.get(notification.level, logging.INFO),
            "[%s] %s",
            notification.level,
            notification.message,
        )


class BroadcastNotifier(Notifier):
    """
    Pushes notifications to WebSocket clients.

    Attributes:
        broadcast: Function sending a JSON-serializable dict to every client.
    """

    def __init__(self, broadcast: Callable[[dict], object] | None = None) -> None:
        self.broadcast = broadcast or ws_server.broadcast

    def notify(self, notification: Notification) -> None:
        self.broadcast(notification.to_dict())


class FanoutNotifier(Notifier):
    def __init__(self, *notifiers: Notifier) -> None:
        self.notifiers = list(notifiers)

    def notify(self, notification: Notification) -> None:
        for notifier in self.notifiers:
            notifier.notify(notification)
