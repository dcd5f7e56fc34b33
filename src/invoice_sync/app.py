"""
Status server entry point for the sync layer.

Runs the SyncOrchestrator on a background event loop and exposes it over
Flask:

- ``GET /api/sync/status``: first-pass flag and per-resource state
- ``POST /api/sync/<resource>/reload``: forced reload of one resource
- ``POST /api/sync/session``: sign in with ``{"user_id", "access_token"}``
- ``DELETE /api/sync/session``: sign out and continue offline
- ``/ws/sync``: WebSocket stream of the status, then notifications and
  resource changes
"""

import asyncio
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Coroutine

from flask import Flask, jsonify, request

from invoice_sync import ws_server
from invoice_sync.data.defaults import DEMO_USER_ID
from invoice_sync.lib import logs
from invoice_sync.lib.caches import DiskStorage
from invoice_sync.models.common import Resource, ResourceChangedMessage, Session
from invoice_sync.services import get_remote_backend
from invoice_sync.settings import SyncSettings, flag
from invoice_sync.sync.loader import size_of
from invoice_sync.sync.notify import BroadcastNotifier, FanoutNotifier, LogNotifier
from invoice_sync.sync.orchestrator import SyncOrchestrator
from invoice_sync.sync.store import PersistedStore
from invoice_sync.utils import is_valid_uuid

LOG = logs.logger(__file__)


class SyncRuntime:
    """
    Runs an orchestrator on its own event loop thread.

    Flask handlers run on server threads; they reach the orchestrator only
    through ``call``, which executes a coroutine on the loop and waits for
    its result.
    """

    def __init__(self, orchestrator: SyncOrchestrator, timeout: float = 30.0) -> None:
        self.orchestrator = orchestrator
        self.timeout = timeout
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name="sync-loop", daemon=True)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def call(self, coro: Coroutine[Any, Any, Any]) -> Any:
        """Run a coroutine on the sync loop and return its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop).result(self.timeout)

    def start(self) -> None:
        self._thread.start()
        self.call(self._start())

    async def _start(self) -> None:
        self.orchestrator.start()

    async def _status(self) -> dict:
        return self.orchestrator.status()

    def status(self) -> dict:
        return self.call(self._status())

    def stop(self) -> None:
        """Close the orchestrator and stop the loop thread."""
        if self._thread.is_alive():
            self.call(self.orchestrator.close())
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join()
        self.loop.close()


def create_app(runtime: SyncRuntime) -> Flask:
    """
    Build the Flask app for a running SyncRuntime.

    Args:
        runtime: Started runtime whose orchestrator the routes control.
    """
    app = Flask(__name__)
    ws_server.init_websocket(app, greeting=lambda: {"type": "status", **runtime.status()})
    orchestrator = runtime.orchestrator

    @app.get("/api/sync/status")
    def sync_status():
        return jsonify(runtime.status())

    @app.post("/api/sync/<name>/reload")
    def reload_resource(name: str):
        try:
            resource = Resource(name)
        except ValueError:
            return jsonify({"error": f"Unknown resource: {name}"}), 404
        value = runtime.call(orchestrator.reload(resource))
        return jsonify(
            {
                "resource": resource.value,
                "size": size_of(value),
                "loaded": orchestrator.loaded.is_loaded(resource),
            }
        )

    @app.post("/api/sync/session")
    def sign_in():
        body = request.get_json(silent=True) or {}
        user_id = body.get("user_id")
        if not is_valid_uuid(user_id):
            return jsonify({"error": "user_id must be a UUID"}), 400
        runtime.call(orchestrator.sign_in(Session(user_id, body.get("access_token", ""))))
        return jsonify(runtime.status())

    @app.delete("/api/sync/session")
    def sign_out():
        runtime.call(orchestrator.sign_out())
        return jsonify(runtime.status())

    return app


class BroadcastWorker:
    """
    Sends WebSocket messages from one worker thread.

    Resource listeners and notifiers run on the sync loop; a slow client
    must not stall it. Messages leave in the order they were queued.
    """

    def __init__(self, send: Callable[[dict], object] | None = None) -> None:
        self.send = send or ws_server.broadcast
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ws-broadcast")

    def __call__(self, message: dict) -> None:
        self._executor.submit(self._send, message)

    def _send(self, message: dict) -> None:
        try:
            self.send(message)
        except Exception:
            LOG.exception("Broadcast of %s message failed", message.get("type"))

    def close(self) -> None:
        """Send what is queued, then stop the worker."""
        self._executor.shutdown(wait=True)


def resource_listener(
    orchestrator: SyncOrchestrator, broadcast: Callable[[dict], object]
) -> Callable[[Resource, Any], None]:
    """Build a listener that announces every resource replacement."""

    def listener(resource: Resource, value: Any) -> None:
        broadcast(
            ResourceChangedMessage(
                resource, size_of(value), orchestrator.loaded.is_loaded(resource)
            ).to_dict()
        )

    return listener


def _initial_session(settings: SyncSettings) -> Session | None:
    user_id = os.getenv("INVOICE_SYNC_USER_ID")
    if not user_id and not settings.live and flag("DEMO_SIGNED_IN", True):
        user_id = DEMO_USER_ID
    if not is_valid_uuid(user_id):
        return None
    return Session(user_id, os.getenv("INVOICE_SYNC_ACCESS_TOKEN", ""))


def main() -> None:
    """Wire settings, backend and orchestrator, then serve until interrupted."""
    settings = SyncSettings.from_env()
    logs.set_level(settings.log_level)
    LOG.info("Starting sync server - backend:%s port:%s", settings.backend, settings.port)

    broadcast = BroadcastWorker()
    orchestrator = SyncOrchestrator(
        get_remote_backend(settings=settings),
        PersistedStore(DiskStorage(settings.storage_dir)),
        settings=settings,
        notifier=FanoutNotifier(LogNotifier(), BroadcastNotifier(broadcast)),
        session=_initial_session(settings),
    )
    orchestrator.add_listener(resource_listener(orchestrator, broadcast))

    runtime = SyncRuntime(orchestrator)
    runtime.start()
    try:
        create_app(runtime).run(host="0.0.0.0", port=settings.port)
    finally:
        runtime.stop()
        broadcast.close()


if __name__ == "__main__":
    main()
