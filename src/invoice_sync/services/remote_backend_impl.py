"""
Hosted-store implementation of RemoteBackend.

Talks to the store's PostgREST interface over HTTP and to its realtime
endpoint over a websocket:

- REST: ``/rest/v1/<table>`` with ``apikey`` and bearer ``Authorization``
  headers, ``eq.`` filters, ``order=<column>.<dir>``, and
  ``Prefer: return=representation`` so writes return the stored row
- Realtime: one Phoenix channel per subscription via RealtimeClient

requests is blocking, so every call runs in a worker thread through
``asyncio.to_thread``; the event loop never waits on the network.
Failures are classified into ApiError / RemoteUnavailable here, once.
"""

import asyncio
from typing import Any

import requests

from invoice_sync.errors import ApiError, ErrorType, classify_error
from invoice_sync.lib import clients, logs
from invoice_sync.lib.realtime import RealtimeClient
from invoice_sync.models.common import Session
from invoice_sync.services.remote_backend import (
    ChangeCallback,
    ChannelHandle,
    ErrorCallback,
    Filters,
    RemoteBackend,
    Row,
)

LOG = logs.logger(__file__)


def _params(filters: Filters | None, order: str | None = None) -> dict[str, str]:
    params = {column: f"eq.{value}" for column, value in (filters or {}).items()}
    if order:
        params["order"] = order
    return params


def _change_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a realtime ``postgres_changes`` data object to ``{eventType, new, old}``."""
    return {
        "eventType": str(data.get("type") or data.get("eventType") or "").upper(),
        "new": data.get("record") or {},
        "old": data.get("old_record") or {},
    }


class RemoteBackendImpl(RemoteBackend):
    """
    PostgREST and realtime backed remote store.

    Attributes:
        base_url: Store base URL without trailing slash.
        api_key: Public API key.
        timeout: HTTP timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        http: requests.Session | None = None,
        realtime: RealtimeClient | None = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            base_url: Store base URL, e.g. ``https://project.supabase.co``.
            api_key: Public API key.
            timeout: HTTP timeout in seconds.
            http: Session to use instead of the shared one.
            realtime: Realtime client to use instead of the shared one.

        Raises:
            AssertionError: If base_url or api_key is empty.
        """
        assert base_url, "INVOICE_SYNC_REMOTE_URL is not set"
        assert api_key, "INVOICE_SYNC_API_KEY is not set"
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._http = http or clients.http_session()
        self._realtime = realtime or clients.realtime_client(self.base_url, api_key)
        self._session: Session | None = None

    def set_session(self, session: Session | None) -> None:
        self._session = session
        self._realtime.set_access_token(session.access_token if session else None)

    def _headers(self) -> dict[str, str]:
        token = self._session.access_token if self._session and self._session.access_token else None
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token or self.api_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request(
        self,
        method: str,
        table: str,
        operation: str,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        url = f"{self.base_url}/rest/v1/{table}"
        LOG.debug("%s %s params:%s", method, url, params)
        try:
            response = self._http.request(
                method,
                url,
                params=params,
                json=json,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise classify_error(operation, exc, table) from exc

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {"message": response.text}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            body.setdefault("status", response.status_code)
            error = classify_error(operation, body, table)
            LOG.warning(
                "%s %s failed - status:%s type:%s",
                operation,
                table,
                response.status_code,
                error.error_type.value,
            )
            raise error

        if not response.content:
            return []
        try:
            return response.json()
        except ValueError as exc:
            raise classify_error(operation, exc, table) from exc

    def _head_request(self) -> None:
        try:
            self._http.request(
                "HEAD", f"{self.base_url}/rest/v1/", headers=self._headers(), timeout=self.timeout
            )
        except requests.RequestException as exc:
            raise classify_error("ping", exc) from exc

    async def ping(self) -> None:
        # Any HTTP response, even an error status, means the store is reachable
        await asyncio.to_thread(self._head_request)

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order: str | None = "created_at.desc",
    ) -> list[Row]:
        params = _params(filters, order)
        params["select"] = "*"
        rows = await asyncio.to_thread(self._request, "GET", table, "select", params)
        return list(rows or [])

    async def insert(self, table: str, record: Row) -> Row:
        rows = await asyncio.to_thread(self._request, "POST", table, "insert", None, record)
        return self._single(rows, table, "insert")

    async def update(
        self, table: str, row_id: str, patch: Row, filters: Filters | None = None
    ) -> Row:
        params = _params({**(filters or {}), "id": row_id})
        rows = await asyncio.to_thread(self._request, "PATCH", table, "update", params, patch)
        return self._single(rows, table, "update")

    async def delete(self, table: str, row_id: str, filters: Filters | None = None) -> bool:
        params = _params({**(filters or {}), "id": row_id})
        rows = await asyncio.to_thread(self._request, "DELETE", table, "delete", params)
        return bool(rows)

    @staticmethod
    def _single(rows: Any, table: str, operation: str) -> Row:
        if isinstance(rows, dict):
            return rows
        if not rows:
            raise ApiError(f"{operation} on {table} returned no row", ErrorType.NOT_FOUND)
        return rows[0]

    def subscribe(
        self,
        table: str,
        filter: str | None,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> ChannelHandle:
        handle = ChannelHandle(table=table, filter=filter)

        def _on_error(error: Exception) -> None:
            handle.closed = True
            if on_error is not None:
                on_error(error)

        handle.native = self._realtime.channel(
            table,
            filter,
            lambda data: callback(_change_payload(data)),
            _on_error,
        )
        return handle

    def unsubscribe(self, handle: ChannelHandle) -> None:
        if handle.closed and handle.native is None:
            return
        handle.closed = True
        if handle.native is not None:
            self._realtime.remove(handle.native)
            handle.native = None

    def close(self) -> None:
        self._realtime.close()
