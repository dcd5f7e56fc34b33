"""
Entity operations with write-through to memory and the persisted snapshot.

Signed in, every mutation goes to the remote store first; the stored
result is then mirrored into the loader's memory and snapshot before the
call returns. Signed out, mutations apply locally with a locally generated
id. Failures are logged and surfaced as a notification; the call reports
them through a None or False return and never raises. A failure to reach
the store is also reported to the loader's ConnectivityMonitor.
"""

from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any, Generic, TypeVar

from invoice_sync.errors import SyncError, failure_message
from invoice_sync.lib import logs
from invoice_sync.models.common import Notification
from invoice_sync.models.entities import (
    CompanyInfo,
    Customer,
    Document,
    PaymentMethod,
    TemplatePreferences,
)
from invoice_sync.services.remote_data_source import RemoteDataSource
from invoice_sync.sync.loader import ResourceLoader
from invoice_sync.sync.notify import Notifier
from invoice_sync.utils import new_local_id, utc_now_iso

LOG = logs.logger(__file__)

T = TypeVar("T")


class _Operations:
    entity = "record"

    def __init__(self, source: RemoteDataSource, notifier: Notifier) -> None:
        self.source = source
        self.notifier = notifier

    def _failed(
        self, action: str, loader: ResourceLoader, error: SyncError, entity: str | None = None
    ) -> None:
        entity = entity or self.entity
        LOG.warning("Failed to %s %s: %s", action, entity, error)
        if loader.connectivity is not None:
            loader.connectivity.report_failure(error)
        self.notifier.notify(
            Notification("error", failure_message(action, entity, error), loader.resource)
        )

    def _succeeded(self, message: str, loader: ResourceLoader) -> None:
        if loader.session is not None and loader.connectivity is not None:
            loader.connectivity.report(True)
        self.notifier.notify(Notification("success", message, loader.resource))


class _CollectionOperations(_Operations, ABC, Generic[T]):
    """Create, update and delete over a list resource whose items have an ``id``."""

    def __init__(
        self, loader: ResourceLoader, source: RemoteDataSource, notifier: Notifier
    ) -> None:
        super().__init__(source, notifier)
        self.loader = loader

    @property
    def online(self) -> bool:
        return self.loader.session is not None

    @property
    def items(self) -> list[T]:
        return list(self.loader.value or [])

    def get(self, item_id: str) -> T | None:
        return next((item for item in self.items if item.id == item_id), None)

    @abstractmethod
    async def _remote_create(self, item: T) -> T:
        """Create item in the remote store and return it as stored."""

    @abstractmethod
    async def _remote_update(self, item: T) -> T:
        """Update item in the remote store and return it as stored."""

    @abstractmethod
    async def _remote_delete(self, item_id: str) -> bool:
        """Delete an item from the remote store."""

    def _local(self, item: T, **changes: Any) -> T:
        return replace(item, **changes)

    async def create(self, item: T) -> T | None:
        """
        Create an item.

        Returns:
            The item as stored (with its new id), or None on failure.
        """
        if self.online:
            try:
                created = await self._remote_create(item)
            except SyncError as exc:
                self._failed("create", self.loader, exc)
                return None
        else:
            created = self._local(item, id=new_local_id())
        self.loader.set([created] + [i for i in self.items if i.id != created.id])
        self._succeeded(f"{self.entity.capitalize()} created", self.loader)
        return created

    async def update(self, item: T) -> T | None:
        """
        Update an item.

        Returns:
            The item as stored, or None on failure.
        """
        if self.online:
            try:
                updated = await self._remote_update(item)
            except SyncError as exc:
                self._failed("update", self.loader, exc)
                return None
        else:
            updated = self._local(item)
        items = self.items
        if any(i.id == updated.id for i in items):
            items = [updated if i.id == updated.id else i for i in items]
        else:
            items = [updated] + items
        self.loader.set(items)
        self._succeeded(f"{self.entity.capitalize()} updated", self.loader)
        return updated

    async def delete(self, item_id: str) -> bool:
        """
        Delete an item.

        Returns:
            True if the item is gone from memory and snapshot.
        """
        if self.online:
            try:
                await self._remote_delete(item_id)
            except SyncError as exc:
                self._failed("delete", self.loader, exc)
                return False
        self.loader.set([i for i in self.items if i.id != item_id])
        self._succeeded(f"{self.entity.capitalize()} deleted", self.loader)
        return True


class DocumentOperations(_CollectionOperations[Document]):
    entity = "document"

    def _local(self, item: Document, **changes: Any) -> Document:
        now = utc_now_iso()
        if "id" in changes:
            changes.setdefault("created_at", now)
        return replace(item, updated_at=now, **changes)

    async def _remote_create(self, item: Document) -> Document:
        return await self.source.create_document(item)

    async def _remote_update(self, item: Document) -> Document:
        return await self.source.update_document(item)

    async def _remote_delete(self, item_id: str) -> bool:
        return await self.source.delete_document(item_id)


class CustomerOperations(_CollectionOperations[Customer]):
    entity = "customer"

    async def _remote_create(self, item: Customer) -> Customer:
        return await self.source.create_customer(item)

    async def _remote_update(self, item: Customer) -> Customer:
        return await self.source.update_customer(item)

    async def _remote_delete(self, item_id: str) -> bool:
        return await self.source.delete_customer(item_id)


class PaymentMethodOperations(_CollectionOperations[PaymentMethod]):
    entity = "payment method"

    async def _remote_create(self, item: PaymentMethod) -> PaymentMethod:
        return await self.source.create_payment_method(item)

    async def _remote_update(self, item: PaymentMethod) -> PaymentMethod:
        return await self.source.update_payment_method(item)

    async def _remote_delete(self, item_id: str) -> bool:
        return await self.source.delete_payment_method(item_id)

    async def save_yappy(self, phone: str, logo: str = "") -> PaymentMethod | None:
        """
        Create or update the user's single Yappy wallet.

        Args:
            phone: Yappy phone number.
            logo: Logo image URL or data URI.
        """
        existing = next((method for method in self.items if method.is_yappy), None)
        if existing is not None:
            return await self.update(replace(existing, yappy_phone=phone, yappy_logo=logo))
        return await self.create(
            PaymentMethod(bank="Yappy", is_yappy=True, yappy_phone=phone, yappy_logo=logo)
        )


class SettingsOperations(_Operations):
    """Saves the per-user singletons: company info and template preferences."""

    def __init__(
        self,
        company_info: ResourceLoader,
        template_preferences: ResourceLoader,
        source: RemoteDataSource,
        notifier: Notifier,
    ) -> None:
        super().__init__(source, notifier)
        self.company_info = company_info
        self.template_preferences = template_preferences

    async def _save(self, loader: ResourceLoader, value: Any, remote_save: Any, label: str) -> Any:
        if loader.session is not None:
            try:
                saved = await remote_save(value)
            except SyncError as exc:
                self._failed("save", loader, exc, entity=label)
                return None
        else:
            current = loader.value
            saved = replace(value, id=value.id or getattr(current, "id", "") or new_local_id())
        loader.set(saved)
        self._succeeded(f"{label.capitalize()} saved", loader)
        return saved

    async def save_company_info(self, info: CompanyInfo) -> CompanyInfo | None:
        return await self._save(
            self.company_info, info, self.source.save_company_info, "company information"
        )

    async def save_template_preferences(
        self, preferences: TemplatePreferences
    ) -> TemplatePreferences | None:
        return await self._save(
            self.template_preferences,
            preferences,
            self.source.save_template_preferences,
            "template preferences",
        )
