"""
Typed persisted snapshots over a raw key/value Storage.

PersistedStore hands out one PersistedSlot per key. A slot holds the last
value read or written for its key and converts between domain values and
the stored JSON envelope:

    {"owner": "<user id>" | null, "data": <domain JSON>}

Slots never raise to their callers. A snapshot that cannot be decoded or a
storage that cannot be read is logged, recorded in ``PersistedSlot.error``
and the slot's initial value is returned instead; a write that fails
is logged, reported by a False return, and leaves the stored content as it
was.

Changes made by another process reach slots through ``dispatch`` (or
``poll``, which asks the storage for them) and are republished to the slot's
listeners, last write wins.
"""

from typing import Any, Callable, Generic, TypeVar

from invoice_sync.errors import DeserializationFailure
from invoice_sync.lib import logs, objects
from invoice_sync.lib.caches import STORAGE_ERRORS, Storage

LOG = logs.logger(__file__)

T = TypeVar("T")

SlotListener = Callable[[Any, "str | None"], None]

_ENVELOPE_KEYS = {"owner", "data"}


class PersistedSlot(Generic[T]):
    """
    The persisted value of one key.

    Attributes:
        key: Storage key.
        value: Last value read, written or received from another process.
        owner: User id the current value belongs to, or None.
        error: Why the last read fell back to the initial value, or None if
            it succeeded.
    """

    def __init__(
        self,
        store: "PersistedStore",
        key: str,
        initial: Callable[[], T],
        decode: Callable[[Any], T],
        encode: Callable[[T], Any],
    ) -> None:
        self._store = store
        self.key = key
        self._initial = initial
        self._decode = decode
        self._encode = encode
        self._listeners: list[SlotListener] = []
        self.value: T = initial()
        self.owner: str | None = None
        self.error: Exception | None = None

    def initial(self) -> T:
        return self._initial()

    def add_listener(self, listener: SlotListener) -> None:
        """Call listener(value, owner) whenever another process changes the key."""
        self._listeners.append(listener)

    def decode_raw(self, raw: str | None) -> tuple[T, str | None]:
        """
        Decode a stored string.

        Bare values written before snapshots carried an owner are accepted
        as owner-less.

        Raises:
            DeserializationFailure: If the string is not a valid snapshot.
        """
        if raw is None:
            return self._initial(), None
        try:
            parsed = objects.from_json(raw)
        except ValueError as exc:
            raise DeserializationFailure(f"{self.key}: invalid JSON") from exc
        if isinstance(parsed, dict) and set(parsed) == _ENVELOPE_KEYS:
            owner, data = parsed["owner"], parsed["data"]
        else:
            owner, data = None, parsed
        try:
            return self._decode(data), owner
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise DeserializationFailure(f"{self.key}: {exc!r}") from exc

    def read(self) -> T:
        """
        Load the key from storage into the slot.

        Returns:
            The stored value, or the initial value when the key is absent,
            unreadable or corrupt. ``error`` tells which.
        """
        try:
            raw = self._store.storage.get(self.key)
            self.value, self.owner = self.decode_raw(raw)
        except DeserializationFailure as exc:
            LOG.error("Discarding corrupt snapshot %s: %s", self.key, exc)
            self.value, self.owner, self.error = self._initial(), None, exc
        except STORAGE_ERRORS as exc:
            LOG.error("Cannot read snapshot %s: %s", self.key, exc)
            self.value, self.owner, self.error = self._initial(), None, exc
        else:
            self.error = None
        return self.value

    def write(self, value: T, owner: str | None = None) -> bool:
        """
        Persist a value.

        Returns:
            True if the value was stored; False if encoding or storage failed,
            in which case the previous snapshot is untouched.
        """
        try:
            raw = objects.to_json({"owner": owner, "data": self._encode(value)})
            self._store.storage.set(self.key, raw)
        except Exception as exc:
            LOG.error("Cannot write snapshot %s: %s", self.key, exc)
            return False
        self.value, self.owner = value, owner
        return True

    def receive(self, raw: str | None) -> None:
        """Adopt a value written by another process and notify listeners."""
        try:
            value, owner = self.decode_raw(raw)
        except DeserializationFailure as exc:
            LOG.warning("Ignoring corrupt external change to %s: %s", self.key, exc)
            return
        self.value, self.owner = value, owner
        LOG.debug("Snapshot %s changed externally (owner=%s)", self.key, owner)
        for listener in list(self._listeners):
            listener(value, owner)


class PersistedStore:
    """
    Registry of persisted slots over one Storage.

    Attributes:
        storage: Raw string storage.
    """

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self._slots: dict[str, PersistedSlot] = {}

    def slot(
        self,
        key: str,
        initial: Callable[[], T],
        decode: Callable[[Any], T],
        encode: Callable[[T], Any],
    ) -> PersistedSlot[T]:
        """
        Return the slot for key, creating and watching it on first use.

        Args:
            key: Storage key.
            initial: Factory for the value used when nothing valid is stored.
            decode: Converts snapshot JSON to a value; raises on bad shape.
            encode: Converts a value to snapshot JSON.
        """
        existing = self._slots.get(key)
        if existing is not None:
            return existing
        slot = PersistedSlot(self, key, initial, decode, encode)
        self._slots[key] = slot
        try:
            self.storage.watch(key)
        except STORAGE_ERRORS as exc:
            LOG.error("Cannot watch snapshot %s: %s", key, exc)
        return slot

    def dispatch(self, key: str, new_value: str | None) -> bool:
        """
        Route an external change notification to its slot.

        Returns:
            True if a slot watches key.
        """
        slot = self._slots.get(key)
        if slot is None:
            return False
        slot.receive(new_value)
        return True

    def poll(self) -> int:
        """Dispatch every pending external change. Returns the number of changes."""
        changes = self.storage.poll_changes()
        for change in changes:
            self.dispatch(change.key, change.new_value)
        return len(changes)

    def close(self) -> None:
        self.storage.close()
