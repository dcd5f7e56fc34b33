"""
Push-channel subscriptions that keep loaded resources current.

ChangeSubscriptionManager opens one channel per resource, filtered on the
server to the signed-in user's rows, and reacts to each change:

- INSERT/DELETE on resources whose events carry the whole row (payment
  methods) patch memory in place: append if the id is new, remove by id.
- Anything else (re)starts the resource's debounce timer; when the window
  passes quietly the loader runs a forced reload. A burst of N events in
  one window costs one reload.

Channel callbacks may arrive on a websocket reader thread, so they are
marshalled onto the event loop before touching any state. Each ``open``
starts a new generation; events and errors from channels of an earlier
generation are ignored, so nothing from a previous session leaks into the
next one.

A channel that fails to open or drops is retried with exponential backoff
(``retry_base`` doubling up to ``retry_max``). A successful retry schedules
a reload to pick up changes missed while disconnected.
"""

import asyncio
from functools import partial
from typing import Any, Mapping

from invoice_sync.errors import SubscriptionError
from invoice_sync.lib import logs
from invoice_sync.models.common import (
    ChangeEvent,
    Delete,
    Insert,
    Resource,
    Session,
    decode_change_event,
)
from invoice_sync.services.remote_backend import ChannelHandle, RemoteBackend
from invoice_sync.settings import SyncSettings
from invoice_sync.sync.debounce import Debouncer
from invoice_sync.sync.loader import ResourceLoader

LOG = logs.logger(__file__)


class ChangeSubscriptionManager:
    """
    Owner of the push channels of one session.

    Attributes:
        backend: Remote store providing the channels.
        loaders: Loader per watched resource.
        debouncer: Timers coalescing reloads, keyed by resource name.
        settings: Debounce windows and retry backoff.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        loaders: Mapping[Resource, ResourceLoader],
        debouncer: Debouncer,
        settings: SyncSettings,
    ) -> None:
        self.backend = backend
        self.loaders = loaders
        self.debouncer = debouncer
        self.settings = settings
        self._loop: asyncio.AbstractEventLoop | None = None
        self._session: Session | None = None
        self._generation = 0
        self._channels: dict[Resource, ChannelHandle] = {}
        self._retries: dict[Resource, asyncio.TimerHandle] = {}
        self._attempts: dict[Resource, int] = {}

    @property
    def channels(self) -> dict[Resource, ChannelHandle]:
        """Open channels by resource."""
        return dict(self._channels)

    def open(self, session: Session) -> None:
        """
        Close any existing channels and open one per resource for session.

        Must be called from the event loop thread.
        """
        self.close()
        self._loop = asyncio.get_running_loop()
        self._session = session
        for resource in self.loaders:
            self._attempts[resource] = 0
            self._subscribe(resource, self._generation)

    def close(self) -> None:
        """Close every channel and cancel pending retries and reloads."""
        self._generation += 1
        for timer in self._retries.values():
            timer.cancel()
        self._retries.clear()
        for resource, handle in list(self._channels.items()):
            try:
                self.backend.unsubscribe(handle)
            except SubscriptionError as exc:
                LOG.warning("Error closing %s channel: %s", resource.value, exc)
        for resource in self.loaders:
            self.debouncer.cancel(resource.value)
        if self._channels:
            LOG.info("Closed %s realtime channels", len(self._channels))
        self._channels.clear()
        self._attempts.clear()
        self._session = None

    def _subscribe(self, resource: Resource, generation: int) -> None:
        if generation != self._generation or self._session is None:
            return
        try:
            handle = self.backend.subscribe(
                resource.value,
                self._session.row_filter,
                partial(self._threadsafe, self._on_payload, resource, generation),
                partial(self._threadsafe, self._on_error, resource, generation),
            )
        except SubscriptionError as exc:
            LOG.warning("Cannot subscribe to %s: %s", resource.value, exc)
            self._schedule_retry(resource, generation)
            return

        reconnected = self._attempts.get(resource, 0) > 0
        self._channels[resource] = handle
        self._attempts[resource] = 0
        LOG.info("Subscribed to %s changes", resource.value)
        if reconnected:
            self._schedule_reload(resource)

    def _threadsafe(self, handler: Any, *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(handler, *args)

    def _on_payload(self, resource: Resource, generation: int, payload: dict) -> None:
        if generation != self._generation:
            return
        event = decode_change_event(payload)
        LOG.debug("%s change: %s", resource.value, event)
        loader = self.loaders[resource]
        if isinstance(event, (Insert, Delete)) and loader.spec.row_from_wire is not None:
            self._patch(loader, event)
        else:
            self._schedule_reload(resource)

    def _patch(self, loader: ResourceLoader, event: ChangeEvent) -> None:
        current = list(loader.value or [])
        if isinstance(event, Insert):
            owner = event.record.get("user_id")
            if self._session is None or (owner is not None and owner != self._session.user_id):
                return
            if any(item.id == event.id for item in current):
                return
            patched = current + [loader.spec.row_from_wire(event.record)]
        else:
            patched = [item for item in current if item.id != event.id]
            if len(patched) == len(current):
                return
        # Setting discards a fetch in flight, so fetch again after the patch
        if loader.busy:
            self._schedule_reload(loader.resource)
        loader.set(patched)

    def _schedule_reload(self, resource: Resource) -> None:
        loader = self.loaders[resource]
        self.debouncer.schedule(
            resource.value,
            self.settings.debounce_for(resource.value),
            partial(loader.load, force=True),
        )

    def _on_error(self, resource: Resource, generation: int, error: Exception) -> None:
        if generation != self._generation:
            return
        LOG.warning("%s channel failed: %s", resource.value, error)
        handle = self._channels.pop(resource, None)
        if handle is not None:
            try:
                self.backend.unsubscribe(handle)
            except SubscriptionError as exc:
                LOG.warning("Cannot release failed %s channel: %s", resource.value, exc)
        self._schedule_retry(resource, generation)

    def _schedule_retry(self, resource: Resource, generation: int) -> None:
        if self._loop is None or resource in self._retries:
            return
        attempt = self._attempts.get(resource, 0)
        delay = min(self.settings.retry_max, self.settings.retry_base * (2**attempt))
        self._attempts[resource] = attempt + 1
        LOG.info(
            "Retrying %s subscription in %.1fs (attempt %s)", resource.value, delay, attempt + 1
        )
        self._retries[resource] = self._loop.call_later(delay, self._retry, resource, generation)

    def _retry(self, resource: Resource, generation: int) -> None:
        self._retries.pop(resource, None)
        if resource not in self._channels:
            self._subscribe(resource, generation)
