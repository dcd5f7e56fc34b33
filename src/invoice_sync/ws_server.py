"""
WebSocket integration for pushing sync events to UI clients.

Uses flask-sock to add WebSocket support to the status server on the same
port. Clients connected to ``/ws/sync`` first receive a ``status`` frame
with the current sync state, then every notification and
``resource_changed`` message as a JSON text frame.

Usage:
    from invoice_sync.ws_server import init_websocket, broadcast

    # Initialize with Flask app (call once during app setup)
    init_websocket(app, greeting=lambda: {"type": "status", **runtime.status()})

    # Broadcast messages (any thread)
    broadcast(notification.to_dict())
"""

import json
from collections.abc import Set
from threading import Lock
from typing import Callable

from flask import Flask
from flask_sock import Sock
from simple_websocket import ConnectionClosed
from simple_websocket import Server as WebSocketServer

from invoice_sync.lib import logs

LOG = logs.logger(__file__)

# Seconds a client may stay silent before the read loop wakes up
_RECEIVE_TIMEOUT = 30

_sock: Sock | None = None
_clients: Set[WebSocketServer] = set()
_clients_lock = Lock()


def init_websocket(flask_app: Flask, greeting: Callable[[], dict] | None = None) -> None:
    """
    Register the ``/ws/sync`` route on the Flask server.

    Args:
        flask_app: The Flask app instance.
        greeting: Builds the first frame sent to each new client.
    """
    global _sock
    _sock = Sock(flask_app)

    @_sock.route("/ws/sync")
    def sync_ws(ws: WebSocketServer) -> None:
        if greeting is not None:
            try:
                ws.send(json.dumps(greeting()))
            except ConnectionClosed:
                return
        with _clients_lock:
            _clients.add(ws)
        LOG.info("Sync client connected (%s total)", client_count())

        try:
            # Clients only listen; incoming frames are ignored
            while True:
                try:
                    ws.receive(timeout=_RECEIVE_TIMEOUT)
                except ConnectionClosed:
                    break
        finally:
            with _clients_lock:
                _clients.discard(ws)
            LOG.info("Sync client disconnected")


def client_count() -> int:
    with _clients_lock:
        return len(_clients)


def broadcast(message: dict) -> int:
    """
    Send a message to every connected sync client. Safe from any thread.

    Args:
        message: JSON-serializable dictionary, e.g. Notification.to_dict().

    Returns:
        Number of clients the message reached.
    """
    payload = json.dumps(message)
    with _clients_lock:
        clients = list(_clients)

    sent = 0
    for client in clients:
        try:
            client.send(payload)
            sent += 1
        except ConnectionClosed:
            with _clients_lock:
                _clients.discard(client)
    if clients:
        LOG.debug("Broadcast %s to %s/%s clients", message.get("type"), sent, len(clients))
    return sent
