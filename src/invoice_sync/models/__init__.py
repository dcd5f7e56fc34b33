"""
Data models for the sync layer.

This package provides:
- Domain entities (Document, Customer, PaymentMethod, ...) with snapshot
  serialization
- Sync value types (Resource, LoadedResources, Session, ChangeEvent, ...)

All models use Python dataclasses for type safety and IDE support.
"""

from invoice_sync.models.common import (
    ChangeEvent,
    Delete,
    Insert,
    LoadedResources,
    Notification,
    Resource,
    ResourceChangedMessage,
    ResourceState,
    Session,
    Update,
    decode_change_event,
)
from invoice_sync.models.entities import (
    CompanyInfo,
    Customer,
    CustomerType,
    Document,
    DocumentStatus,
    DocumentType,
    LineItem,
    PaymentMethod,
    TemplatePreferences,
)

__all__ = [
    "ChangeEvent",
    "CompanyInfo",
    "Customer",
    "CustomerType",
    "Delete",
    "Document",
    "DocumentStatus",
    "DocumentType",
    "Insert",
    "LineItem",
    "LoadedResources",
    "Notification",
    "PaymentMethod",
    "Resource",
    "ResourceChangedMessage",
    "ResourceState",
    "Session",
    "TemplatePreferences",
    "Update",
    "decode_change_event",
]
