"""
The synchronization layer.

Modules:
    store: Persisted snapshots with cross-process change propagation
    connectivity: Reachability of the remote store
    debounce: Keyed debounce timers
    notify: User notifications
    loader: Per-resource loading with fallbacks and stale-result discard
    subscriptions: Push channels driving incremental patches and reloads
    operations: Write-through entity operations
    orchestrator: Start-up, session lifecycle and public surface
"""

from invoice_sync.sync.connectivity import ConnectivityMonitor
from invoice_sync.sync.debounce import Debouncer
from invoice_sync.sync.loader import RESOURCE_SPECS, ResourceLoader, ResourceSpec
from invoice_sync.sync.notify import BroadcastNotifier, FanoutNotifier, LogNotifier, Notifier
from invoice_sync.sync.orchestrator import SyncOrchestrator
from invoice_sync.sync.store import PersistedSlot, PersistedStore
from invoice_sync.sync.subscriptions import ChangeSubscriptionManager

__all__ = [
    "BroadcastNotifier",
    "ChangeSubscriptionManager",
    "ConnectivityMonitor",
    "Debouncer",
    "FanoutNotifier",
    "LogNotifier",
    "Notifier",
    "PersistedSlot",
    "PersistedStore",
    "RESOURCE_SPECS",
    "ResourceLoader",
    "ResourceSpec",
    "SyncOrchestrator",
]
