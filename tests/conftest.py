"""Shared fixtures for the sync layer tests."""

import pytest

from invoice_sync.lib.caches import MemoryStorage
from invoice_sync.models.common import Notification, Session
from invoice_sync.services.remote_backend_demo import DemoRemoteBackend
from invoice_sync.settings import SyncSettings
from invoice_sync.sync.notify import Notifier
from invoice_sync.sync.orchestrator import SyncOrchestrator
from invoice_sync.sync.store import PersistedStore

from factories import USER_ID


class RecordingNotifier(Notifier):
    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def errors(self) -> list[Notification]:
        return [n for n in self.notifications if n.level == "error"]


@pytest.fixture
def session() -> Session:
    return Session(USER_ID, "token-1")


@pytest.fixture
def settings(tmp_path) -> SyncSettings:
    return SyncSettings(
        storage_dir=tmp_path / "store",
        initial_load_delay=0.0,
        debounce={
            "documents": 0.05,
            "customers": 0.05,
            "payment_methods": 0.02,
            "company_info": 0.02,
            "template_preferences": 0.02,
        },
        retry_base=0.01,
        retry_max=0.04,
        storage_poll_interval=0.0,
        connectivity_interval=0.0,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def store(storage) -> PersistedStore:
    return PersistedStore(storage)


@pytest.fixture
def backend() -> DemoRemoteBackend:
    return DemoRemoteBackend()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def make_orchestrator(backend, store, settings, notifier):
    """Build an orchestrator over the shared backend, store and notifier."""

    def factory(session: Session | None = None, **overrides) -> SyncOrchestrator:
        return SyncOrchestrator(
            backend,
            store,
            settings=overrides.pop("settings", settings),
            notifier=notifier,
            session=session,
        )

    return factory
