"""
Local library modules used across the sync layer.

Modules:
    logs: Logging utilities
    objects: JSON serialization helpers
    paths: Path utilities
    caches: Durable key/value storage with change polling (diskcache)
    realtime: Push-channel client for the hosted store (simple-websocket)
    clients: Shared HTTP session and realtime client factories
"""

from invoice_sync.lib import caches, clients, logs, objects, paths, realtime

__all__ = ["caches", "clients", "logs", "objects", "paths", "realtime"]
