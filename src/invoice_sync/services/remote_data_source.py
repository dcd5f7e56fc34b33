"""
Typed, user-scoped access to the remote store.

RemoteDataSource sits between the sync layer and a RemoteBackend. Every
operation:

1. requires a valid signed-in user id (AuthRequired otherwise),
2. adds the ``user_id`` equality filter so the store never returns or
   touches another user's rows,
3. drops any returned row owned by someone else, and
4. converts between wire rows and domain entities with the formatters.

Company info and template preferences are one row per user; their save
operations update that row when it exists and insert it otherwise.
"""

from typing import Any, Callable, TypeVar

from invoice_sync import formatters
from invoice_sync.errors import AuthRequired
from invoice_sync.lib import logs
from invoice_sync.models.common import Resource
from invoice_sync.models.entities import (
    CompanyInfo,
    Customer,
    Document,
    PaymentMethod,
    TemplatePreferences,
)
from invoice_sync.services.remote_backend import RemoteBackend, Row
from invoice_sync.utils import is_valid_uuid

LOG = logs.logger(__file__)

T = TypeVar("T")

# Columns the store owns; never sent in a write
_GENERATED = ("id", "user_id", "created_at", "updated_at")


def _writable(row: Row) -> Row:
    return {key: value for key, value in row.items() if key not in _GENERATED}


class RemoteDataSource:
    """
    Entity-level remote operations scoped to one user.

    Attributes:
        backend: Row-level remote store.
        user_id: Owner of every row read or written, or None when signed out.
    """

    def __init__(self, backend: RemoteBackend, user_id: str | None = None) -> None:
        self.backend = backend
        self.user_id = user_id

    def _require_user(self) -> str:
        if not is_valid_uuid(self.user_id):
            raise AuthRequired("A signed-in user is required for remote access")
        return self.user_id

    async def _fetch(self, table: str, from_wire: Callable[[Any], T]) -> list[T]:
        user_id = self._require_user()
        rows = await self.backend.select(table, {"user_id": user_id})
        owned = formatters.owned_rows(rows, user_id)
        LOG.debug("Fetched %s %s rows for %s", len(owned), table, user_id)
        return [from_wire(row) for row in owned]

    async def _create(self, table: str, row: Row, from_wire: Callable[[Any], T]) -> T:
        user_id = self._require_user()
        record = _writable(row)
        record["user_id"] = user_id
        stored = await self.backend.insert(table, record)
        return from_wire(stored)

    async def _update(self, table: str, row_id: str, row: Row) -> Row:
        user_id = self._require_user()
        return await self.backend.update(table, row_id, _writable(row), {"user_id": user_id})

    async def _delete(self, table: str, row_id: str) -> bool:
        user_id = self._require_user()
        return await self.backend.delete(table, row_id, {"user_id": user_id})

    async def _upsert(self, table: str, row: Row, from_wire: Callable[[Any], T]) -> T:
        user_id = self._require_user()
        existing = await self.backend.select(table, {"user_id": user_id}, order=None)
        existing = formatters.owned_rows(existing, user_id)
        if existing:
            stored = await self._update(table, str(existing[0]["id"]), row)
            return from_wire(stored)
        return await self._create(table, row, from_wire)

    # Documents

    async def fetch_documents(self) -> list[Document]:
        return await self._fetch(Resource.DOCUMENTS.value, formatters.document_from_wire)

    async def create_document(self, document: Document) -> Document:
        return await self._create(
            Resource.DOCUMENTS.value,
            formatters.document_to_wire(document),
            formatters.document_from_wire,
        )

    async def update_document(self, document: Document) -> Document:
        """
        Update a document and return it as stored.

        Columns the store does not echo back are filled from ``document``.
        """
        stored = await self._update(
            Resource.DOCUMENTS.value, document.id, formatters.document_to_wire(document)
        )
        return formatters.document_from_wire(stored, existing=document)

    async def delete_document(self, document_id: str) -> bool:
        return await self._delete(Resource.DOCUMENTS.value, document_id)

    # Customers

    async def fetch_customers(self) -> list[Customer]:
        return await self._fetch(Resource.CUSTOMERS.value, formatters.customer_from_wire)

    async def create_customer(self, customer: Customer) -> Customer:
        return await self._create(
            Resource.CUSTOMERS.value,
            formatters.customer_to_wire(customer),
            formatters.customer_from_wire,
        )

    async def update_customer(self, customer: Customer) -> Customer:
        stored = await self._update(
            Resource.CUSTOMERS.value, customer.id, formatters.customer_to_wire(customer)
        )
        return formatters.customer_from_wire(stored)

    async def delete_customer(self, customer_id: str) -> bool:
        return await self._delete(Resource.CUSTOMERS.value, customer_id)

    # Payment methods

    async def fetch_payment_methods(self) -> list[PaymentMethod]:
        return await self._fetch(
            Resource.PAYMENT_METHODS.value, formatters.payment_method_from_wire
        )

    async def create_payment_method(self, method: PaymentMethod) -> PaymentMethod:
        return await self._create(
            Resource.PAYMENT_METHODS.value,
            formatters.payment_method_to_wire(method),
            formatters.payment_method_from_wire,
        )

    async def update_payment_method(self, method: PaymentMethod) -> PaymentMethod:
        stored = await self._update(
            Resource.PAYMENT_METHODS.value,
            method.id,
            formatters.payment_method_to_wire(method),
        )
        return formatters.payment_method_from_wire(stored)

    async def delete_payment_method(self, method_id: str) -> bool:
        return await self._delete(Resource.PAYMENT_METHODS.value, method_id)

    # Settings

    async def fetch_company_info(self) -> CompanyInfo | None:
        """Return the user's company info, or None if it was never saved."""
        found = await self._fetch(Resource.COMPANY_INFO.value, formatters.company_info_from_wire)
        return found[0] if found else None

    async def save_company_info(self, info: CompanyInfo) -> CompanyInfo:
        return await self._upsert(
            Resource.COMPANY_INFO.value,
            formatters.company_info_to_wire(info),
            formatters.company_info_from_wire,
        )

    async def fetch_template_preferences(self) -> TemplatePreferences | None:
        """Return the user's template preferences, or None if never saved."""
        found = await self._fetch(
            Resource.TEMPLATE_PREFERENCES.value, formatters.template_preferences_from_wire
        )
        return found[0] if found else None

    async def save_template_preferences(
        self, preferences: TemplatePreferences
    ) -> TemplatePreferences:
        return await self._upsert(
            Resource.TEMPLATE_PREFERENCES.value,
            formatters.template_preferences_to_wire(preferences),
            formatters.template_preferences_from_wire,
        )
