"""
Start-up, session lifecycle and public surface of the sync layer.

SyncOrchestrator wires one ResourceLoader per resource to a shared
PersistedStore, a RemoteDataSource and a ChangeSubscriptionManager.

``start()`` hydrates every resource from its snapshot synchronously, so
values are available before any network round trip. With a session it
then opens the push channels and, after ``initial_load_delay``, runs the
first remote pass. ``is_loading`` is True only until that first pass
settles (immediately False in offline mode).

``sign_in``/``sign_out`` tear down channels, timers and in-flight loads,
reset the loaded flags and start again for the new session.

While signed in a ConnectivityMonitor pings the store. When it comes back
after an outage, every resource that is not loaded yet is loaded again.
"""

import asyncio
from typing import Any, Callable

from invoice_sync.lib import logs
from invoice_sync.lib.caches import STORAGE_ERRORS
from invoice_sync.models.common import LoadedResources, Resource, Session
from invoice_sync.services.remote_backend import RemoteBackend
from invoice_sync.services.remote_data_source import RemoteDataSource
from invoice_sync.settings import SyncSettings
from invoice_sync.sync.connectivity import ConnectivityMonitor
from invoice_sync.sync.debounce import Debouncer
from invoice_sync.sync.loader import RESOURCE_SPECS, ResourceLoader, size_of
from invoice_sync.sync.notify import LogNotifier, Notifier
from invoice_sync.sync.operations import (
    CustomerOperations,
    DocumentOperations,
    PaymentMethodOperations,
    SettingsOperations,
)
from invoice_sync.sync.store import PersistedStore
from invoice_sync.sync.subscriptions import ChangeSubscriptionManager

LOG = logs.logger(__file__)


class SyncOrchestrator:
    """
    Entry point of the sync layer.

    Attributes:
        settings: Sync settings.
        backend: Remote store.
        store: Persisted snapshots.
        notifier: Receives user notifications.
        loaded: Loaded flag per resource for the current session.
        loaders: Loader per resource.
        subscriptions: Push channels of the current session.
        connectivity: Reachability of the remote store.
        documents / customers / payment_methods / settings_operations:
            Write-through entity operations.
        session: Current session, or None in offline mode.
        is_loading: True during the first hydration pass only.
    """

    def __init__(
        self,
        backend: RemoteBackend,
        store: PersistedStore,
        settings: SyncSettings | None = None,
        notifier: Notifier | None = None,
        session: Session | None = None,
    ) -> None:
        self.settings = settings or SyncSettings()
        self.backend = backend
        self.store = store
        self.notifier = notifier or LogNotifier()
        self.source = RemoteDataSource(backend)
        self.loaded = LoadedResources()
        self.debouncer = Debouncer()
        self.connectivity = ConnectivityMonitor(
            backend, self.notifier, self.settings.connectivity_interval
        )
        self.connectivity.add_listener(self._on_connectivity)
        self.loaders: dict[Resource, ResourceLoader] = {
            spec.resource: ResourceLoader(
                spec,
                store.slot(spec.resource.value, spec.initial, spec.decode, spec.encode),
                self.source,
                self.loaded,
                self.notifier,
                self.settings.empty_result_policy,
                self.connectivity,
            )
            for spec in RESOURCE_SPECS
        }
        self.subscriptions = ChangeSubscriptionManager(
            backend, self.loaders, self.debouncer, self.settings
        )
        self.documents = DocumentOperations(
            self.loaders[Resource.DOCUMENTS], self.source, self.notifier
        )
        self.customers = CustomerOperations(
            self.loaders[Resource.CUSTOMERS], self.source, self.notifier
        )
        self.payment_methods = PaymentMethodOperations(
            self.loaders[Resource.PAYMENT_METHODS], self.source, self.notifier
        )
        self.settings_operations = SettingsOperations(
            self.loaders[Resource.COMPANY_INFO],
            self.loaders[Resource.TEMPLATE_PREFERENCES],
            self.source,
            self.notifier,
        )
        self.session = session
        self.is_loading = False
        self._initial_pass: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._reconnect: asyncio.Task | None = None

    def add_listener(self, listener: Callable[[Resource, Any], None]) -> None:
        """Call listener(resource, value) whenever any resource's value is replaced."""
        for loader in self.loaders.values():
            loader.add_listener(listener)

    def resource(self, resource: Resource) -> tuple:
        """Return ``(value, load, set)`` for a resource."""
        return self.loaders[resource].as_tuple()

    def value(self, resource: Resource) -> Any:
        return self.loaders[resource].value

    def start(self) -> None:
        """
        Hydrate from snapshots and, with a session, begin remote sync.

        Must be called from the event loop thread.
        """
        loop = asyncio.get_running_loop()
        self.is_loading = True
        self._bind_session()
        for loader in self.loaders.values():
            loader.hydrate()
        LOG.info(
            "Hydrated from snapshots (%s)",
            ", ".join(f"{r.value}={size_of(loader.value)}" for r, loader in self.loaders.items()),
        )

        if self.session is None:
            LOG.info("No session, running offline")
            self.is_loading = False
        else:
            self.subscriptions.open(self.session)
            self.connectivity.start()
            self._initial_pass = loop.create_task(self._initial_load())

        if self._poll_task is None and self.settings.storage_poll_interval > 0:
            self._poll_task = loop.create_task(self._poll_storage())

    async def sign_in(self, session: Session) -> None:
        """Switch to session, discarding all state of the previous one."""
        LOG.info("Signing in %s", session.user_id)
        self._teardown()
        self.session = session
        self.start()

    async def sign_out(self) -> None:
        """Discard the session's state and continue offline."""
        LOG.info("Signing out")
        self._teardown()
        self.session = None
        self.start()

    async def reload(self, resource: Resource) -> Any:
        """Force a remote reload of one resource."""
        return await self.loaders[resource].load(force=True)

    async def load_all(self, force: bool = False) -> dict[Resource, Any]:
        values = await asyncio.gather(
            *(loader.load(force=force) for loader in self.loaders.values())
        )
        return dict(zip(self.loaders, values))

    async def wait_idle(self) -> None:
        """Wait for the first pass, reconnect loads, debounce reloads and fetches in flight."""
        if self._initial_pass is not None:
            await asyncio.gather(self._initial_pass, return_exceptions=True)
        if self._reconnect is not None:
            await asyncio.gather(self._reconnect, return_exceptions=True)
        await self.debouncer.drain()
        await asyncio.gather(*(loader.settle() for loader in self.loaders.values()))

    def status(self) -> dict:
        """Summarize the sync state for status endpoints."""
        return {
            "is_loading": self.is_loading,
            "online": self.session is not None and self.connectivity.online,
            "connected": self.connectivity.online,
            "user_id": self.session.user_id if self.session else None,
            "resources": {
                resource.value: {
                    "state": loader.state.value,
                    "loaded": loader.loaded,
                    "busy": loader.busy,
                    "size": size_of(loader.value),
                }
                for resource, loader in self.loaders.items()
            },
        }

    async def close(self) -> None:
        """Stop all background work and release the backend and store."""
        for loader in self.loaders.values():
            loader.cancel()
        self._teardown()
        if self._poll_task is not None:
            self._poll_task.cancel()
            await asyncio.gather(self._poll_task, return_exceptions=True)
            self._poll_task = None
        self.backend.close()
        self.store.close()

    def _bind_session(self) -> None:
        self.source.user_id = self.session.user_id if self.session else None
        self.backend.set_session(self.session)
        for loader in self.loaders.values():
            loader.session = self.session

    def _teardown(self) -> None:
        self.subscriptions.close()
        self.connectivity.stop()
        if self._reconnect is not None and not self._reconnect.done():
            self._reconnect.cancel()
        self._reconnect = None
        self.debouncer.cancel_all()
        if self._initial_pass is not None and not self._initial_pass.done():
            self._initial_pass.cancel()
        self._initial_pass = None
        for loader in self.loaders.values():
            loader.reset()
        self.is_loading = False

    async def _initial_load(self) -> None:
        try:
            await asyncio.sleep(self.settings.initial_load_delay)
            await self.load_all()
            LOG.info("Initial load complete: %s", self.loaded.to_dict())
        finally:
            self.is_loading = False

    def _on_connectivity(self, online: bool) -> None:
        if not online or self.session is None:
            return
        if self._reconnect is None or self._reconnect.done():
            LOG.info("Reconnected, loading resources missed while offline")
            self._reconnect = asyncio.get_running_loop().create_task(self.load_all())

    async def _poll_storage(self) -> None:
        while True:
            await asyncio.sleep(self.settings.storage_poll_interval)
            try:
                changes = await asyncio.to_thread(self.store.storage.poll_changes)
            except STORAGE_ERRORS as exc:
                LOG.warning("Storage poll failed: %s", exc)
                continue
            for change in changes:
                self.store.dispatch(change.key, change.new_value)
