"""
Shared value types of the sync layer.

This module defines the objects that flow between sync components:

- Resource / ResourceState / LoadedResources: what is tracked and how far
  each resource has been hydrated this session
- Session: the signed-in user, or its absence (offline mode)
- ChangeEvent (Insert | Update | Delete): push-channel events, decoded once
  at the channel boundary
- Notification / ResourceChangedMessage: messages pushed to UI clients

Messages include to_dict methods for JSON transmission over WebSocket.
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Mapping, Union


class Resource(str, Enum):
    """The entity collections tracked independently by the sync layer."""

    DOCUMENTS = "documents"
    CUSTOMERS = "customers"
    COMPANY_INFO = "company_info"
    TEMPLATE_PREFERENCES = "template_preferences"
    PAYMENT_METHODS = "payment_methods"


class ResourceState(str, Enum):
    """
    Hydration state of one resource.

    ``LOADING`` is internal; callers only observe UNLOADED and LOADED.
    """

    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"


@dataclass
class LoadedResources:
    """
    Per-resource flags recording a successful remote hydration this session.

    Never persisted; reset on sign-in, sign-out and restart.
    """

    documents: bool = False
    customers: bool = False
    company_info: bool = False
    template_preferences: bool = False
    payment_methods: bool = False

    def is_loaded(self, resource: Resource) -> bool:
        return getattr(self, resource.value)

    def mark(self, resource: Resource, loaded: bool = True) -> None:
        setattr(self, resource.value, loaded)

    def reset(self) -> None:
        for item in fields(self):
            setattr(self, item.name, False)

    def to_dict(self) -> dict:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(frozen=True)
class Session:
    """
    An authenticated user session.

    Attributes:
        user_id: Owning user of every remote row the client may touch.
        access_token: Bearer token for the hosted store.
    """

    user_id: str
    access_token: str = ""

    @property
    def row_filter(self) -> str:
        """Server-side push-channel filter selecting this user's rows."""
        return f"user_id=eq.{self.user_id}"


@dataclass(frozen=True)
class Insert:
    """A row was inserted; ``record`` is the full new row."""

    record: Mapping[str, Any]

    @property
    def id(self) -> str:
        return str(self.record.get("id", ""))


@dataclass(frozen=True)
class Update:
    """A row changed; ``patch`` holds the new column values."""

    id: str
    patch: Mapping[str, Any]


@dataclass(frozen=True)
class Delete:
    """A row was removed."""

    id: str


ChangeEvent = Union[Insert, Update, Delete]


def decode_change_event(payload: Mapping[str, Any]) -> ChangeEvent | None:
    """
    Decode a raw push payload into a ChangeEvent.

    Accepts the ``{eventType, new, old}`` shape produced by the remote
    backends. Returns None for payloads that do not identify a row, which
    callers treat as "something changed" and reload.

    Args:
        payload: Raw change payload.

    Returns:
        Insert, Update or Delete, or None if the payload is unusable.
    """
    event_type = str(payload.get("eventType") or payload.get("type") or "").upper()
    new = payload.get("new") or payload.get("record") or {}
    old = payload.get("old") or payload.get("old_record") or {}
    if event_type == "INSERT" and new.get("id"):
        return Insert(record=dict(new))
    if event_type == "UPDATE":
        row_id = new.get("id") or old.get("id")
        if row_id:
            return Update(id=str(row_id), patch=dict(new))
    if event_type == "DELETE" and old.get("id"):
        return Delete(id=str(old["id"]))
    return None


@dataclass(frozen=True)
class Notification:
    """
    A non-blocking user-facing message (toast).

    Attributes:
        level: ``info``, ``success`` or ``error``.
        message: Text shown to the user.
        resource: Resource the message is about, if any.
    """

    level: str
    message: str
    resource: Resource | None = None

    def to_dict(self) -> dict:
        """Serialize to JSON for WebSocket transmission."""
        return {
            "type": "notification",
            "level": self.level,
            "message": self.message,
            "resource": self.resource.value if self.resource else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Notification":
        resource = data.get("resource")
        return cls(
            level=data.get("level", "info"),
            message=data.get("message", ""),
            resource=Resource(resource) if resource else None,
        )


@dataclass(frozen=True)
class ResourceChangedMessage:
    """Tells UI clients that a resource's in-memory value was replaced."""

    resource: Resource
    size: int
    loaded: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "type": "resource_changed",
            "resource": self.resource.value,
            "size": self.size,
            "loaded": self.loaded,
            **self.extra,
        }
