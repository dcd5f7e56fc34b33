"""
Realtime push-channel client for the hosted store.

Speaks the Phoenix channel protocol used by the store's realtime endpoint
over a ``simple_websocket.Client`` connection. Each watched table gets its
own channel joined with a ``postgres_changes`` config, server-side filtered
to the current user's rows.

A daemon reader thread receives frames, sends heartbeats, and invokes the
channel callbacks. Callbacks therefore run on the reader thread; callers
that own event-loop state must marshal them (see
``sync.subscriptions``).
"""

import itertools
import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib.parse import urlencode, urlsplit, urlunsplit

from simple_websocket import Client, ConnectionClosed

from invoice_sync.errors import SubscriptionError
from invoice_sync.lib import logs

LOG = logs.logger(__file__)

ChangeCallback = Callable[[dict[str, Any]], None]
ErrorCallback = Callable[[Exception], None]


def realtime_url(base_url: str, api_key: str) -> str:
    """
    Build the websocket endpoint for a store base URL.

    Args:
        base_url: Store URL such as ``https://project.supabase.co``.
        api_key: Public API key.

    Returns:
        ``wss://project.supabase.co/realtime/v1/websocket?apikey=...&vsn=1.0.0``
    """
    parts = urlsplit(base_url.rstrip("/"))
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = f"{parts.path}/realtime/v1/websocket"
    query = urlencode({"apikey": api_key, "vsn": "1.0.0"})
    return urlunsplit((scheme, parts.netloc, path, query, ""))


@dataclass
class RealtimeChannel:
    """
    A joined channel for one table.

    Attributes:
        topic: Phoenix topic, unique per channel.
        table: Watched table.
        filter: Row filter such as ``user_id=eq.<uid>``.
        callback: Receives the raw ``data`` object of each change.
        on_error: Receives a SubscriptionError if the channel fails.
        join_ref: Ref of the join message, used to match the reply.
        joined: True once the server acknowledged the join.
    """

    topic: str
    table: str
    filter: str | None
    callback: ChangeCallback
    on_error: ErrorCallback | None = None
    join_ref: str = ""
    joined: bool = False
    closed: bool = field(default=False, repr=False)

    def fail(self, error: Exception) -> None:
        if self.closed:
            return
        self.closed = True
        if self.on_error is not None:
            self.on_error(error)


class RealtimeClient:
    """
    Client for the store's realtime websocket.

    Attributes:
        url: Websocket endpoint including the API key.
    """

    # Interval between heartbeats; the server drops silent sockets after 60s
    _HEARTBEAT_INTERVAL = 25.0
    # Reader wakes up at least this often to check for heartbeats and shutdown
    _RECEIVE_TIMEOUT = 1.0

    def __init__(
        self,
        base_url: str,
        api_key: str,
        connect: Callable[[str], Any] | None = None,
    ) -> None:
        """
        Initialize the client. No connection is made until a channel opens.

        Args:
            base_url: Store base URL.
            api_key: Public API key.
            connect: Factory returning a connected websocket for a URL.
                     Defaults to ``simple_websocket.Client.connect``.
        """
        self.url = realtime_url(base_url, api_key)
        self._connect = connect or Client.connect
        self._access_token: str | None = None
        self._ws: Any = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._refs = itertools.count(1)
        self._topics = itertools.count(1)
        self._channels: dict[str, RealtimeChannel] = {}
        self._last_heartbeat = 0.0

    def set_access_token(self, token: str | None) -> None:
        """Set the user token sent with subsequent channel joins."""
        self._access_token = token

    def channel(
        self,
        table: str,
        filter: str | None,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> RealtimeChannel:
        """
        Open a channel that delivers row changes for a table.

        Args:
            table: Table in the ``public`` schema.
            filter: PostgREST-style filter, e.g. ``user_id=eq.<uid>``.
            callback: Called with each change's ``data`` payload.
            on_error: Called once if the channel fails or the socket drops.

        Returns:
            The joined RealtimeChannel.

        Raises:
            SubscriptionError: If the websocket cannot be opened.
        """
        self._ensure_connected()
        topic = f"realtime:{table}-changes-{next(self._topics)}"
        ref = str(next(self._refs))
        channel = RealtimeChannel(
            topic=topic,
            table=table,
            filter=filter,
            callback=callback,
            on_error=on_error,
            join_ref=ref,
        )
        changes = {"event": "*", "schema": "public", "table": table}
        if filter:
            changes["filter"] = filter
        payload: dict[str, Any] = {
            "config": {
                "broadcast": {"ack": False, "self": False},
                "presence": {"key": ""},
                "postgres_changes": [changes],
                "private": False,
            }
        }
        if self._access_token:
            payload["access_token"] = self._access_token
        with self._lock:
            self._channels[topic] = channel
        self._send(
            {
                "topic": topic,
                "event": "phx_join",
                "payload": payload,
                "ref": ref,
                "join_ref": ref,
            }
        )
        LOG.info("Joining realtime channel %s (filter=%s)", topic, filter)
        return channel

    def remove(self, channel: RealtimeChannel) -> None:
        """Leave a channel. Closing the last channel keeps the socket open."""
        channel.closed = True
        with self._lock:
            known = self._channels.pop(channel.topic, None)
        if known is None or self._ws is None:
            return
        try:
            self._send(
                {
                    "topic": channel.topic,
                    "event": "phx_leave",
                    "payload": {},
                    "ref": str(next(self._refs)),
                    "join_ref": channel.join_ref,
                }
            )
        except SubscriptionError:
            LOG.warning("Could not send leave for %s", channel.topic)

    def close(self) -> None:
        """Leave every channel and close the socket."""
        with self._lock:
            channels = list(self._channels.values())
            self._channels.clear()
            ws, self._ws = self._ws, None
        for channel in channels:
            channel.closed = True
        if ws is not None:
            try:
                ws.close()
            except Exception:
                LOG.debug("Error closing realtime socket", exc_info=True)

    def _ensure_connected(self) -> None:
        with self._lock:
            if self._ws is not None:
                return
            try:
                self._ws = self._connect(self.url)
            except Exception as exc:
                raise SubscriptionError(f"Cannot open realtime socket: {exc}") from exc
            self._last_heartbeat = time.monotonic()
            self._thread = threading.Thread(
                target=self._run, args=(self._ws,), name="realtime-reader", daemon=True
            )
            self._thread.start()
        LOG.info("Realtime socket connected")

    def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise SubscriptionError("Realtime socket is not connected")
        try:
            with self._lock:
                ws.send(json.dumps(message))
        except ConnectionClosed as exc:
            raise SubscriptionError("Realtime socket closed") from exc

    def _run(self, ws: Any) -> None:
        try:
            while self._ws is ws:
                raw = ws.receive(timeout=self._RECEIVE_TIMEOUT)
                if raw is not None:
                    self._dispatch(raw)
                if time.monotonic() - self._last_heartbeat >= self._HEARTBEAT_INTERVAL:
                    self._heartbeat()
        except ConnectionClosed:
            LOG.warning("Realtime socket closed by server")
        except Exception:
            LOG.error("Realtime reader failed", exc_info=True)
        finally:
            self._drop(ws)

    def _heartbeat(self) -> None:
        self._last_heartbeat = time.monotonic()
        self._send(
            {
                "topic": "phoenix",
                "event": "heartbeat",
                "payload": {},
                "ref": str(next(self._refs)),
            }
        )

    def _drop(self, ws: Any) -> None:
        with self._lock:
            if self._ws is not ws:
                return
            self._ws = None
            channels = list(self._channels.values())
            self._channels.clear()
        for channel in channels:
            channel.fail(SubscriptionError(f"Realtime channel {channel.topic} dropped"))

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            LOG.warning("Ignoring malformed realtime frame: %r", raw)
            return
        topic = message.get("topic")
        event = message.get("event")
        payload = message.get("payload") or {}
        with self._lock:
            channel = self._channels.get(topic)
        if channel is None:
            return

        if event == "postgres_changes":
            data = payload.get("data")
            if isinstance(data, dict):
                channel.callback(data)
        elif event == "phx_reply" and message.get("ref") == channel.join_ref:
            if payload.get("status") == "ok":
                channel.joined = True
                LOG.info("Realtime channel %s joined", topic)
            else:
                self._fail(channel, f"join rejected: {payload.get('response')}")
        elif event in ("phx_error", "phx_close"):
            self._fail(channel, event)
        elif event == "system" and payload.get("status") == "error":
            self._fail(channel, payload.get("message", "system error"))

    def _fail(self, channel: RealtimeChannel, reason: Any) -> None:
        with self._lock:
            self._channels.pop(channel.topic, None)
        LOG.warning("Realtime channel %s failed: %s", channel.topic, reason)
        channel.fail(SubscriptionError(f"Realtime channel {channel.topic} failed: {reason}"))
