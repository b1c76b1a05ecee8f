"""
Household Store

Holds the one household the user explicitly chose to act in, and persists it
to local storage so the choice survives reloads.

CRITICAL: set() is the only writer of the selection, and only explicit user
actions (or the first-load fallback) call it. Nothing here expires the
record; it stays until clear().

Write order inside set()/clear():
1. Swap the in-process record (one assignment of an immutable record)
2. Persist to local storage (failure is logged and ignored)
3. Notify same-process observers synchronously through the event bus

Other processes sharing the storage see step 2 as a change notification,
reload, and re-publish only if id, name or role changed.
"""

import json
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from household_core.audit import AuditLogger
from household_core.events import EventBus, HouseholdSelected, HouseholdSelectionCleared
from household_core.models.audit import AuditEventBuilder
from household_core.models.household import HouseholdRole, SelectionRecord
from household_core.services.storage import KeyValueStorageInterface, StorageError


STORAGE_KEY = "household_id"
TIMESTAMP_KEY = "household_id_timestamp"

_UNLOADED = object()


class HouseholdStore:
    """
    Persistent, process-shared holder of the selected household.
    """

    def __init__(
        self,
        storage: KeyValueStorageInterface,
        bus: Optional[EventBus] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._bus = bus or EventBus()
        self._audit = audit_logger or AuditLogger()
        self._record = _UNLOADED
        self._unsubscribe_storage = storage.subscribe(self._on_storage_change)

    @property
    def bus(self) -> EventBus:
        return self._bus

    # =========================================================================
    # READ
    # =========================================================================

    def get(self) -> Optional[SelectionRecord]:
        """Current selection. Loads from local storage on first call only."""
        if self._record is _UNLOADED:
            self._record = self._load()
        return self._record

    @property
    def household_id(self) -> Optional[str]:
        record = self.get()
        return record.id if record else None

    # =========================================================================
    # WRITE
    # =========================================================================

    def set(
        self,
        household_id: str,
        name: Optional[str] = None,
        role: Optional[HouseholdRole] = None,
        user_action: bool = True,
    ) -> SelectionRecord:
        """
        Select a household.

        Raises:
            ValueError: If household_id is empty
        """
        if not household_id:
            raise ValueError("household_id must be non-empty")

        previous = self.get()
        record = SelectionRecord(id=household_id, name=name, role=role)
        self._record = record
        self._persist(record)

        if record.id != (previous.id if previous else None):
            self._audit.log(AuditEventBuilder.household_selected(
                household_id=record.id,
                name=record.name,
                previous_id=previous.id if previous else None,
                user_action=user_action,
            ))
        self._bus.publish(HouseholdSelected(record=record, previous=previous))
        return record

    def clear(self, reason: str = "explicit") -> None:
        previous = self.get()
        self._record = None
        for key in (STORAGE_KEY, TIMESTAMP_KEY):
            try:
                self._storage.remove(key)
            except StorageError as e:
                self._audit.log(AuditEventBuilder.cache_write_failed(key, str(e)))

        if previous is not None:
            self._audit.log(AuditEventBuilder.household_cleared(previous.id, reason))
            self._bus.publish(HouseholdSelectionCleared(previous=previous))

    def subscribe_selected(
        self,
        handler: Callable[[HouseholdSelected], None],
    ) -> Callable[[], None]:
        return self._bus.subscribe(HouseholdSelected, handler)

    def subscribe_cleared(
        self,
        handler: Callable[[HouseholdSelectionCleared], None],
    ) -> Callable[[], None]:
        return self._bus.subscribe(HouseholdSelectionCleared, handler)

    def close(self) -> None:
        self._unsubscribe_storage()

    # =========================================================================
    # CROSS-PROCESS
    # =========================================================================

    def reload_from_storage(self) -> bool:
        """
        Re-read the stored record after another process wrote it.

        Returns:
            True if observers were notified (id, name or role changed)
        """
        previous = self.get()
        fresh = self._load()

        if fresh is None:
            if previous is None:
                return False
            self._record = None
            self._audit.log(AuditEventBuilder.household_cleared(previous.id, "external"))
            self._bus.publish(HouseholdSelectionCleared(previous=previous, external=True))
            return True

        if fresh.same_selection(previous):
            return False

        self._record = fresh
        self._bus.publish(HouseholdSelected(record=fresh, previous=previous, external=True))
        return True

    def _on_storage_change(self, key: str) -> None:
        if key == STORAGE_KEY:
            self.reload_from_storage()

    # =========================================================================
    # SERIALIZATION
    # =========================================================================

    def _persist(self, record: SelectionRecord) -> None:
        payload = json.dumps({
            "id": record.id,
            "name": record.name,
            "role": record.role.value if record.role else None,
            "timestamp": int(record.timestamp.timestamp() * 1000),
        })
        try:
            self._storage.set(STORAGE_KEY, payload)
            self._storage.set(TIMESTAMP_KEY, str(int(record.timestamp.timestamp() * 1000)))
        except StorageError as e:
            self._audit.log(AuditEventBuilder.cache_write_failed(STORAGE_KEY, str(e)))

    def _load(self) -> Optional[SelectionRecord]:
        """Stored record, or None when absent, corrupt, or id-less."""
        try:
            raw = self._storage.get(STORAGE_KEY)
        except StorageError:
            return None
        if not raw:
            return None

        try:
            data = json.loads(raw)
        except ValueError:
            return None
        if not isinstance(data, dict) or not data.get("id"):
            return None

        role = data.get("role")
        if not isinstance(role, str) or role not in {r.value for r in HouseholdRole}:
            role = None
        timestamp = data.get("timestamp")
        if isinstance(timestamp, (int, float)):
            timestamp = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
        else:
            timestamp = None

        try:
            return SelectionRecord(
                id=str(data["id"]),
                name=data.get("name") if isinstance(data.get("name"), str) else None,
                role=role,
                **({"timestamp": timestamp} if timestamp is not None else {}),
            )
        except ValidationError:
            return None
