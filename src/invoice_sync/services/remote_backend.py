"""
Abstract base class defining the remote store contract.

All remote backend implementations must extend RemoteBackend and provide
row-level CRUD over named tables plus push subscriptions. Rows are plain
wire dicts; conversion to domain entities happens in
``invoice_sync.formatters`` and scoping by user in ``RemoteDataSource``.

Implementations:
- DemoRemoteBackend: In-process tables for development, demos and tests
- RemoteBackendImpl: PostgREST over HTTP with a realtime websocket
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from invoice_sync.models.common import Session

Row = dict[str, Any]
Filters = Mapping[str, Any]
# Receives {"eventType": "INSERT"|"UPDATE"|"DELETE", "new": row, "old": row}
ChangeCallback = Callable[[dict[str, Any]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(eq=False)
class ChannelHandle:
    """
    An open push subscription.

    Attributes:
        table: Watched table.
        filter: Server-side row filter, e.g. ``user_id=eq.<uid>``.
        native: Backend-specific channel object.
        closed: True once unsubscribed or dropped.
    """

    table: str
    filter: str | None
    native: Any = field(default=None, repr=False)
    closed: bool = False


class RemoteBackend(ABC):
    """
    Abstract base class for remote row storage.

    Every method that talks to the store may raise ApiError (or its
    RemoteUnavailable subclass); subscribe raises SubscriptionError.
    """

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Filters | None = None,
        order: str | None = "created_at.desc",
    ) -> list[Row]:
        """
        Return rows matching every equality filter.

        Args:
            table: Table name.
            filters: Column -> value equality filters.
            order: ``column.asc`` or ``column.desc``, or None for store order.
        """

    @abstractmethod
    async def insert(self, table: str, record: Row) -> Row:
        """Insert a row and return it as stored (with generated columns)."""

    @abstractmethod
    async def update(
        self, table: str, row_id: str, patch: Row, filters: Filters | None = None
    ) -> Row:
        """
        Update one row and return it as stored.

        Args:
            table: Table name.
            row_id: Primary key of the row.
            patch: Columns to change.
            filters: Additional equality filters the row must match.

        Raises:
            ApiError: NOT_FOUND when no row matches.
        """

    @abstractmethod
    async def delete(self, table: str, row_id: str, filters: Filters | None = None) -> bool:
        """Delete one row. Returns True when a row was removed."""

    @abstractmethod
    def subscribe(
        self,
        table: str,
        filter: str | None,
        callback: ChangeCallback,
        on_error: ErrorCallback | None = None,
    ) -> ChannelHandle:
        """
        Open a push channel for a table.

        Callbacks may run on another thread; subscribers marshal them onto
        their own event loop.

        Raises:
            SubscriptionError: If the channel cannot be opened.
        """

    @abstractmethod
    def unsubscribe(self, handle: ChannelHandle) -> None:
        """Close a push channel. Closing twice is a no-op."""

    async def ping(self) -> None:
        """
        Check that the store is reachable.

        Default implementation assumes it always is.

        Raises:
            RemoteUnavailable: If the store cannot be reached.
        """

    def set_session(self, session: Session | None) -> None:
        """
        Set the authenticated session used for subsequent calls.

        Default implementation ignores the session.
        """

    def close(self) -> None:
        """Release connections. Default implementation does nothing."""
