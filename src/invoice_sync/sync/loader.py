"""
Per-resource loading with a loaded flag, forced reloads and fallbacks.

A ResourceLoader owns the in-memory value of one resource and decides
whether a load needs the network:

1. Loaded, not forced and holding a value: return memory, no I/O.
2. No session: return the persisted snapshot (offline mode).
3. Otherwise fetch from the remote store scoped to the signed-in user.
   Success replaces memory, writes through to the snapshot and marks the
   resource loaded. An empty result is handled by EmptyResultPolicy.
   Failure notifies the user once and falls back to the snapshot without
   touching the loaded flag. A failure to reach the store at all is handed
   to the ConnectivityMonitor instead, which announces the outage once.

While the monitor reports the store unreachable, unforced loads return the
snapshot without trying the network. A snapshot that cannot be read is
reported to the user once, until it reads cleanly again.

Every remote fetch takes a sequence number. Its result is applied only if
no later fetch was issued, no value was set and the loader was not reset
meanwhile, so a slow stale response never overwrites fresher data, such
as a write-through from an operation. Concurrent non-forced calls share
the fetch already in flight.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from invoice_sync import formatters
from invoice_sync.errors import ApiError, AuthRequired, failure_message
from invoice_sync.lib import logs
from invoice_sync.models.common import (
    LoadedResources,
    Notification,
    Resource,
    ResourceState,
    Session,
)
from invoice_sync.models.entities import (
    CompanyInfo,
    Customer,
    Document,
    PaymentMethod,
    TemplatePreferences,
)
from invoice_sync.services.remote_data_source import RemoteDataSource
from invoice_sync.settings import EmptyResultPolicy
from invoice_sync.sync.connectivity import ConnectivityMonitor
from invoice_sync.sync.notify import Notifier
from invoice_sync.sync.store import PersistedSlot

LOG = logs.logger(__file__)

T = TypeVar("T")

ChangeListener = Callable[[Resource, Any], None]


@dataclass(frozen=True)
class ResourceSpec(Generic[T]):
    """
    How one resource is fetched, persisted and patched.

    Attributes:
        resource: Resource identity; its value is also the snapshot key.
        label: Human readable name used in notifications.
        fetch: Fetches the user's value from a RemoteDataSource.
        initial: Factory for the empty value.
        decode: Snapshot JSON to value; raises on bad shape.
        encode: Value to snapshot JSON.
        singleton: True for one-record-per-user resources.
        row_from_wire: Builds one item from a pushed row, for resources whose
                       change events carry enough detail to patch in place.
    """

    resource: Resource
    label: str
    fetch: Callable[[RemoteDataSource], Awaitable[T]]
    initial: Callable[[], T]
    decode: Callable[[Any], T]
    encode: Callable[[T], Any]
    singleton: bool = False
    row_from_wire: Callable[[Any], Any] | None = None


def _list_codec(entity: Any) -> tuple[Callable[[Any], list], Callable[[list], list]]:
    def decode(data: Any) -> list:
        if not isinstance(data, list):
            raise TypeError(f"expected a list of {entity.__name__}, got {type(data).__name__}")
        return [entity.from_dict(item) for item in data]

    def encode(values: list) -> list:
        return [value.to_dict() for value in values]

    return decode, encode


def _optional_codec(entity: Any) -> tuple[Callable[[Any], Any], Callable[[Any], Any]]:
    def decode(data: Any) -> Any:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise TypeError(f"expected {entity.__name__}, got {type(data).__name__}")
        return entity.from_dict(data)

    def encode(value: Any) -> Any:
        return None if value is None else value.to_dict()

    return decode, encode


def _list_spec(
    resource: Resource, label: str, entity: Any, fetch: Callable, **kwargs: Any
) -> ResourceSpec:
    decode, encode = _list_codec(entity)
    return ResourceSpec(resource, label, fetch, list, decode, encode, **kwargs)


_company_decode, _company_encode = _optional_codec(CompanyInfo)
_template_decode, _template_encode = _optional_codec(TemplatePreferences)

DOCUMENTS = _list_spec(
    Resource.DOCUMENTS, "documents", Document, RemoteDataSource.fetch_documents
)
CUSTOMERS = _list_spec(
    Resource.CUSTOMERS, "customers", Customer, RemoteDataSource.fetch_customers
)
PAYMENT_METHODS = _list_spec(
    Resource.PAYMENT_METHODS,
    "payment methods",
    PaymentMethod,
    RemoteDataSource.fetch_payment_methods,
    row_from_wire=formatters.payment_method_from_wire,
)
COMPANY_INFO = ResourceSpec(
    Resource.COMPANY_INFO,
    "company information",
    RemoteDataSource.fetch_company_info,
    lambda: None,
    _company_decode,
    _company_encode,
    singleton=True,
)
TEMPLATE_PREFERENCES = ResourceSpec(
    Resource.TEMPLATE_PREFERENCES,
    "template preferences",
    RemoteDataSource.fetch_template_preferences,
    TemplatePreferences,
    lambda data: _template_decode(data) or TemplatePreferences(),
    _template_encode,
    singleton=True,
)

RESOURCE_SPECS: tuple[ResourceSpec, ...] = (
    DOCUMENTS,
    CUSTOMERS,
    COMPANY_INFO,
    TEMPLATE_PREFERENCES,
    PAYMENT_METHODS,
)


def has_value(value: Any) -> bool:
    """True for a non-empty collection or a present singleton."""
    if isinstance(value, list):
        return len(value) > 0
    return value is not None


def size_of(value: Any) -> int:
    if isinstance(value, list):
        return len(value)
    return 0 if value is None else 1


class ResourceLoader(Generic[T]):
    """
    Loader and in-memory owner of one resource.

    Attributes:
        spec: What is loaded and how.
        slot: Persisted snapshot of the resource.
        source: User-scoped remote operations.
        flags: Loaded flags shared by all loaders; this loader touches only its own.
        notifier: Receives load failure notifications.
        empty_result_policy: Treatment of empty remote results.
        connectivity: Shared reachability monitor, if any.
        session: Signed-in session, or None for offline mode.
        value: Current in-memory value.
    """

    def __init__(
        self,
        spec: ResourceSpec[T],
        slot: PersistedSlot[T],
        source: RemoteDataSource,
        flags: LoadedResources,
        notifier: Notifier,
        empty_result_policy: EmptyResultPolicy = EmptyResultPolicy.KEEP,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self.spec = spec
        self.slot = slot
        self.source = source
        self.flags = flags
        self.notifier = notifier
        self.empty_result_policy = empty_result_policy
        self.connectivity = connectivity
        self.session: Session | None = None
        self.value: T = spec.initial()
        self._seq = 0
        self._inflight: asyncio.Task | None = None
        self._snapshot_error_reported = False
        self._listeners: list[ChangeListener] = []
        slot.add_listener(self._on_external_change)

    @property
    def resource(self) -> Resource:
        return self.spec.resource

    @property
    def loaded(self) -> bool:
        return self.flags.is_loaded(self.resource)

    @property
    def state(self) -> ResourceState:
        """Caller-visible state: UNLOADED or LOADED."""
        return ResourceState.LOADED if self.loaded else ResourceState.UNLOADED

    @property
    def busy(self) -> bool:
        """True while a remote fetch is in flight."""
        return self._inflight is not None and not self._inflight.done()

    @property
    def sequence(self) -> int:
        return self._seq

    def add_listener(self, listener: ChangeListener) -> None:
        """Call listener(resource, value) whenever the in-memory value is replaced."""
        self._listeners.append(listener)

    def as_tuple(self) -> tuple[T, Callable[..., Awaitable[T]], Callable[[T], None]]:
        """Return ``(value, load, set)`` for consumers of this resource."""
        return self.value, self.load, self.set

    def hydrate(self) -> T:
        """Populate memory from the persisted snapshot without any remote call."""
        self._replace(self._snapshot())
        return self.value

    def set(self, value: T) -> None:
        """
        Replace the value in memory and write it through to the snapshot.

        The result of any fetch still in flight is discarded.
        """
        self._seq += 1
        self._commit(value)

    def reset(self) -> None:
        """
        Forget the session's state: clear the loaded flag and discard the
        result of any fetch in flight.
        """
        self._seq += 1
        self.flags.mark(self.resource, False)
        self._inflight = None
        self._replace(self.spec.initial())

    async def settle(self) -> None:
        """Wait for the fetch in flight, if any, to finish."""
        if self.busy:
            await asyncio.gather(self._inflight, return_exceptions=True)

    def cancel(self) -> None:
        """Cancel the fetch in flight, if any."""
        self._seq += 1
        task, self._inflight = self._inflight, None
        if task is not None and not task.done():
            task.cancel()

    async def load(self, force: bool = False) -> T:
        """
        Return the resource, fetching it only when needed.

        Args:
            force: Fetch even when already loaded.

        Returns:
            The in-memory value after the load. Never raises for remote or
            snapshot failures.
        """
        if self.loaded and not force and has_value(self.value):
            LOG.debug("%s cache hit", self.resource.value)
            return self.value

        if self.session is None:
            LOG.debug("%s offline, using snapshot", self.resource.value)
            return self.hydrate()

        if not force and self.connectivity is not None and not self.connectivity.online:
            LOG.debug("%s unreachable, using snapshot", self.resource.value)
            return self.hydrate()

        if not force and self.busy:
            return await asyncio.shield(self._inflight)

        self._seq += 1
        task = asyncio.ensure_future(self._fetch(self._seq))
        self._inflight = task
        return await asyncio.shield(task)

    async def _fetch(self, seq: int) -> T:
        resource = self.resource.value
        LOG.info("Loading %s from remote (seq %s)", resource, seq)
        try:
            result = await self.spec.fetch(self.source)
        except AuthRequired:
            if seq != self._seq:
                return self.value
            LOG.info("%s: session no longer valid, using snapshot", resource)
            return self.hydrate()
        except ApiError as exc:
            if seq != self._seq:
                LOG.info("Ignoring failure of stale %s load (seq %s)", resource, seq)
                return self.value
            LOG.warning("Loading %s failed: %s", resource, exc)
            if self.connectivity is None or not self.connectivity.report_failure(exc):
                self.notifier.notify(
                    Notification(
                        "error", failure_message("load", self.spec.label, exc), self.resource
                    )
                )
            return self.hydrate()

        if self.connectivity is not None:
            self.connectivity.report(True)
        if seq != self._seq:
            LOG.info("Discarding stale %s result (seq %s, latest %s)", resource, seq, self._seq)
            return self.value

        if has_value(result):
            self._commit(result)
            self.flags.mark(self.resource)
            LOG.info("Loaded %s from remote (%s)", resource, size_of(result))
        elif self.empty_result_policy == EmptyResultPolicy.AUTHORITATIVE:
            self._commit(self.spec.initial())
            self.flags.mark(self.resource)
            LOG.info("Remote %s is empty, cleared local copy", resource)
        else:
            LOG.info("Remote %s is empty, keeping snapshot", resource)
            self.hydrate()
        return self.value

    def _snapshot(self) -> T:
        value = self.slot.read()
        if self.slot.error is None:
            self._snapshot_error_reported = False
        elif not self._snapshot_error_reported:
            self._snapshot_error_reported = True
            self.notifier.notify(
                Notification("error", f"Saved {self.spec.label} could not be read", self.resource)
            )
        if self._foreign(self.slot.owner):
            LOG.info("Ignoring %s snapshot owned by another user", self.resource.value)
            return self.spec.initial()
        return value

    def _foreign(self, owner: str | None) -> bool:
        return self.session is not None and owner is not None and owner != self.session.user_id

    def _commit(self, value: T) -> None:
        self._replace(value)
        self.slot.write(value, owner=self.session.user_id if self.session else None)

    def _replace(self, value: T) -> None:
        self.value = value
        for listener in list(self._listeners):
            listener(self.resource, value)

    def _on_external_change(self, value: T, owner: str | None) -> None:
        if self._foreign(owner):
            return
        LOG.info("Adopting %s written by another process", self.resource.value)
        self._replace(value)
