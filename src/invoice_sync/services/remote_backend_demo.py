"""
In-process implementation of RemoteBackend for development and testing.

Tables live in plain dicts and behave like the hosted store closely
enough to exercise the whole sync layer without a network:

- ``id``, ``created_at`` and ``updated_at`` are generated on insert
- equality filters and ``column.asc|desc`` ordering on select
- every mutation is fanned out synchronously to matching subscribers as
  ``{eventType, new, old}`` payloads

Tests use ``fail_next`` to inject failures and ``calls`` to count remote
round trips.
"""

import copy
from collections import Counter, defaultdict
from typing import Any, Iterable, Mapping

from invoice_sync.errors import ApiError, ErrorType, RemoteUnavailable, SubscriptionError
from invoice_sync.lib import logs
from invoice_sync.services.remote_backend import (
    ChangeCallback,
    ChannelHandle,
    ErrorCallback,
    Filters,
    RemoteBackend,
    Row,
)
from invoice_sync.utils import new_local_id, utc_now_iso

LOG = logs.logger(__file__)


def _parse_filter(filter: str | None) -> tuple[str, str] | None:
    """Parse ``column=eq.value`` into (column, value)."""
    if not filter:
        return None
    column, _, condition = filter.partition("=")
    if not condition.startswith("eq."):
        raise SubscriptionError(f"Unsupported filter: {filter}")
    return column, condition[3:]


def _matches(row: Mapping[str, Any], filters: Filters | None) -> bool:
    return all(row.get(column) == value for column, value in (filters or {}).items())


class DemoRemoteBackend(RemoteBackend):
    """
    In-memory remote store.

    Attributes:
        tables: Rows per table name, keyed by row id.
        calls: Number of CRUD calls per ``"<operation>:<table>"``.
        fail_subscriptions: When set, subscribe() raises it.
        reachable: When False, ping() and every CRUD call raise
            RemoteUnavailable as if the network were down.
        pings: Number of ping() calls.
    """

    def __init__(self, seed: Mapping[str, Iterable[Row]] | None = None) -> None:
        """
        Initialize the store.

        Args:
            seed: Initial rows per table. Rows without an id get one.
        """
        self.tables: dict[str, dict[str, Row]] = defaultdict(dict)
        self.calls: Counter = Counter()
        self.fail_subscriptions: Exception | None = None
        self.reachable = True
        self.pings = 0
        self._failures: dict[str, list[Exception]] = defaultdict(list)
        self._channels: list[ChannelHandle] = []
        self._callbacks: dict[int, tuple[ChangeCallback, ErrorCallback | None]] = {}
        for table, rows in (seed or {}).items():
            for row in rows:
                stored = copy.deepcopy(dict(row))
                stored.setdefault("id", new_local_id())
                self.tables[table][stored["id"]] = stored

    def fail_next(self, table: str, error: Exception) -> None:
        """Make the next CRUD call on table raise error."""
        self._failures[table].append(error)

    def total_calls(self, table: str | None = None) -> int:
        """Return the number of CRUD calls, optionally for one table."""
        if table is None:
            return sum(self.calls.values())
        return sum(count for key, count in self.calls.items() if key.endswith(f":{table}"))

    @property
    def open_channels(self) -> list[ChannelHandle]:
        return [handle for handle in self._channels if not handle.closed]

    def _enter(self, operation: str, table: str) -> None:
        self.calls[f"{operation}:{table}"] += 1
        if not self.reachable:
            raise RemoteUnavailable(f"Demo store unreachable ({operation} {table})")
        if self._failures.get(table):
            raise self._failures[table].pop(0)

    async def ping(self) -> None:
        self.pings += 1
        if not self.reachable:
            raise RemoteUnavailable("Demo store unreachable")

    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order: str | None = "created_at.desc",
    ) -> list[Row]:
        self._enter("select", table)
        rows = [copy.deepcopy(row) for row in self.tables[table].values() if _matches(row, filters)]
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda row: str(row.get(column) or ""), reverse=direction == "desc")
        return rows

    async def insert(self, table: str, record: Row) -> Row:
        self._enter("insert", table)
        now = utc_now_iso()
        row = copy.deepcopy(dict(record))
        row.setdefault("id", new_local_id())
        row.setdefault("created_at", now)
        row["updated_at"] = now
        if row["id"] in self.tables[table]:
            raise ApiError(
                "duplicate key value violates unique constraint",
                ErrorType.DUPLICATE,
                original={"code": "23505"},
            )
        self.tables[table][row["id"]] = row
        self.emit(table, "INSERT", new=row)
        return copy.deepcopy(row)

    async def update(
        self, table: str, row_id: str, patch: Row, filters: Filters | None = None
    ) -> Row:
        self._enter("update", table)
        current = self.tables[table].get(row_id)
        if current is None or not _matches(current, filters):
            raise ApiError(f"No {table} row {row_id}", ErrorType.NOT_FOUND)
        old = copy.deepcopy(current)
        current.update(copy.deepcopy(dict(patch)))
        current["id"] = row_id
        current["updated_at"] = utc_now_iso()
        self.emit(table, "UPDATE", new=current, old=old)
        return copy.deepcopy(current)

    async def delete(self, table: str, row_id: str, filters: Filters | None = None) -> bool:
        self._enter("delete", table)
        current = self.tables[table].get(row_id)
        if current is None or not _matches(current, filters):
            return False
        del self.tables[table][row_id]
        self.emit(table, "DELETE", old=current)
        return True

    def subscribe(
        self,
        table: str,
        filter: str | None,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> ChannelHandle:
        if self.fail_subscriptions is not None:
            raise self.fail_subscriptions
        handle = ChannelHandle(table=table, filter=filter, native=_parse_filter(filter))
        self._channels.append(handle)
        self._callbacks[id(handle)] = (callback, on_error)
        LOG.debug("Demo channel opened for %s (%s)", table, filter)
        return handle

    def unsubscribe(self, handle: ChannelHandle) -> None:
        handle.closed = True
        self._callbacks.pop(id(handle), None)
        if handle in self._channels:
            self._channels.remove(handle)

    def drop_channels(self, table: str | None = None) -> None:
        """Simulate the server dropping open channels."""
        for handle in list(self.open_channels):
            if table is not None and handle.table != table:
                continue
            _, on_error = self._callbacks.pop(id(handle), (None, None))
            self.unsubscribe(handle)
            if on_error is not None:
                on_error(SubscriptionError(f"Channel for {handle.table} dropped"))

    def emit(
        self,
        table: str,
        event_type: str,
        new: Mapping[str, Any] | None = None,
        old: Mapping[str, Any] | None = None,
    ) -> int:
        """
        Deliver a change payload to matching subscribers.

        Public so tests can push events that did not come from a CRUD call.

        Returns:
            Number of callbacks invoked.
        """
        row = new or old or {}
        delivered = 0
        for handle in list(self.open_channels):
            if handle.table != table:
                continue
            if handle.native is not None:
                column, value = handle.native
                if str(row.get(column)) != value:
                    continue
            callback, _ = self._callbacks[id(handle)]
            callback(
                {
                    "eventType": event_type,
                    "new": copy.deepcopy(dict(new or {})),
                    "old": copy.deepcopy(dict(old or {})),
                }
            )
            delivered += 1
        return delivered

    def close(self) -> None:
        for handle in list(self._channels):
            self.unsubscribe(handle)
