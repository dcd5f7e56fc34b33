"""
Remote backend factory for the sync layer.

This module provides the get_remote_backend() factory function that returns
the RemoteBackend implementation selected by configuration.

Available Implementations:
- demo: In-process tables seeded with demo rows (no network required)
- impl: Hosted store over PostgREST with realtime push channels

Configure via the INVOICE_SYNC_BACKEND environment variable.
"""

from typing import Callable, Dict

from invoice_sync.data import demo_rows
from invoice_sync.lib import logs
from invoice_sync.services.remote_backend import ChannelHandle, RemoteBackend
from invoice_sync.services.remote_backend_demo import DemoRemoteBackend
from invoice_sync.services.remote_backend_impl import RemoteBackendImpl
from invoice_sync.services.remote_data_source import RemoteDataSource
from invoice_sync.settings import SyncSettings

LOG = logs.logger(__file__)

_BACKEND_REGISTRY: Dict[str, Callable[[SyncSettings], RemoteBackend]] = {
    "demo": lambda settings: DemoRemoteBackend(seed=demo_rows.seed()),
    "impl": lambda settings: RemoteBackendImpl(
        settings.remote_url, settings.api_key, timeout=settings.request_timeout
    ),
}


def get_remote_backend(
    kind: str | None = None, settings: SyncSettings | None = None
) -> RemoteBackend:
    """Return the configured remote backend implementation."""
    settings = settings or SyncSettings.from_env()
    resolved_kind = (kind or settings.backend).lower()
    LOG.info("get_remote_backend - kind:%s resolved_kind:%s", kind, resolved_kind)
    try:
        factory = _BACKEND_REGISTRY[resolved_kind]
    except KeyError as exc:
        msg = f"Unknown remote backend kind: {resolved_kind}"
        raise ValueError(msg) from exc
    return factory(settings)


__all__ = [
    "ChannelHandle",
    "DemoRemoteBackend",
    "RemoteBackend",
    "RemoteBackendImpl",
    "RemoteDataSource",
    "get_remote_backend",
]
