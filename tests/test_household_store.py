"""Tests for the persisted household selection and local storage."""

import json

import pytest

from household_core.audit import AuditLogger
from household_core.events import HouseholdSelected, HouseholdSelectionCleared
from household_core.households import STORAGE_KEY, TIMESTAMP_KEY, HouseholdStore
from household_core.models.audit import AuditEventType
from household_core.models.household import HouseholdRole
from household_core.services.storage import (
    InMemoryKeyValueStorage,
    JsonFileKeyValueStorage,
)
from household_core.services.storage.interface import CorruptStorageError, StorageWriteError


class FailingStorage(InMemoryKeyValueStorage):
    """Storage whose writes always fail, like a full or read-only disk."""

    def set(self, key: str, value: str) -> None:
        raise StorageWriteError("disk full")


class TestHouseholdStore:
    """Tests for HouseholdStore reads and writes."""

    def test_empty_storage_has_no_selection(self, storage):
        store = HouseholdStore(storage)
        assert store.get() is None
        assert store.household_id is None

    def test_set_persists_record_and_timestamp(self, storage):
        """The record is written as JSON with an epoch-millisecond timestamp."""
        store = HouseholdStore(storage)
        store.set("h1", "Home", HouseholdRole.OWNER)

        data = json.loads(storage.get(STORAGE_KEY))
        assert data["id"] == "h1"
        assert data["name"] == "Home"
        assert data["role"] == "OWNER"
        assert str(data["timestamp"]) == storage.get(TIMESTAMP_KEY)

    def test_record_survives_reload(self, storage):
        HouseholdStore(storage).set("h1", "Home", HouseholdRole.EDITOR)

        reloaded = HouseholdStore(storage)
        record = reloaded.get()
        assert record.id == "h1"
        assert record.name == "Home"
        assert record.role == HouseholdRole.EDITOR

    def test_set_rejects_empty_id(self, storage):
        with pytest.raises(ValueError):
            HouseholdStore(storage).set("")

    @pytest.mark.parametrize("raw", [
        "not json",
        "[]",
        json.dumps({"name": "no id"}),
        json.dumps({"id": ""}),
    ])
    def test_corrupt_record_reads_as_none(self, raw):
        """Unparseable or id-less records are treated as no selection."""
        store = HouseholdStore(InMemoryKeyValueStorage({STORAGE_KEY: raw}))
        assert store.get() is None

    def test_unknown_role_in_storage_is_dropped(self):
        raw = json.dumps({"id": "h1", "role": "ADMIN"})
        store = HouseholdStore(InMemoryKeyValueStorage({STORAGE_KEY: raw}))
        assert store.get().role is None

    def test_observers_notified_synchronously(self, storage):
        """Subscribers see the new record before set() returns."""
        store = HouseholdStore(storage)
        seen = []
        store.subscribe_selected(lambda event: seen.append(event.record.id))

        store.set("h1")
        assert seen == ["h1"]

    def test_selection_audited_only_on_id_change(self, storage):
        audit = AuditLogger()
        store = HouseholdStore(storage, audit_logger=audit)

        store.set("h1", "Home")
        store.set("h1", "Renamed")
        store.set("h2", "Other")

        selected = audit.events_of_type(AuditEventType.HOUSEHOLD_SELECTED)
        assert [e.entity_id for e in selected] == ["h1", "h2"]

    def test_clear_removes_record(self, storage):
        store = HouseholdStore(storage)
        cleared = []
        store.subscribe_cleared(lambda event: cleared.append(event.previous.id))

        store.set("h1")
        store.clear()

        assert store.get() is None
        assert storage.get(STORAGE_KEY) is None
        assert storage.get(TIMESTAMP_KEY) is None
        assert cleared == ["h1"]

    def test_write_failure_is_logged_not_raised(self):
        """The in-process selection still changes when storage cannot be written."""
        audit = AuditLogger()
        store = HouseholdStore(FailingStorage(), audit_logger=audit)

        store.set("h1")

        assert store.household_id == "h1"
        assert audit.events_of_type(AuditEventType.CACHE_WRITE_FAILED)


class TestCrossProcessSelection:
    """Two stores sharing one storage behave like two tabs."""

    def test_other_store_sees_switch(self, storage):
        first = HouseholdStore(storage)
        second = HouseholdStore(storage)
        second.get()
        events: list[HouseholdSelected] = []
        second.subscribe_selected(events.append)

        first.set("h2", "Shared", HouseholdRole.EDITOR)

        assert second.household_id == "h2"
        assert len(events) == 1
        assert events[0].external is True

    def test_no_republish_when_nothing_changed(self, storage):
        """Re-saving the same id, name and role does not notify the other store."""
        first = HouseholdStore(storage)
        second = HouseholdStore(storage)
        first.set("h1", "Home", HouseholdRole.OWNER)
        second.get()
        events = []
        second.subscribe_selected(events.append)

        first.set("h1", "Home", HouseholdRole.OWNER)
        assert events == []

        first.set("h1", "Home renamed", HouseholdRole.OWNER)
        assert len(events) == 1

    def test_external_removal_clears(self, storage):
        first = HouseholdStore(storage)
        second = HouseholdStore(storage)
        first.set("h1")
        second.get()
        cleared: list[HouseholdSelectionCleared] = []
        second.subscribe_cleared(cleared.append)

        first.clear()

        assert second.get() is None
        assert cleared[0].external is True

    def test_own_writes_do_not_echo(self, storage):
        """A store hearing its own storage write does not re-publish."""
        store = HouseholdStore(storage)
        events = []
        store.subscribe_selected(events.append)

        store.set("h1", "Home")
        assert len(events) == 1
        assert events[0].external is False

    def test_closed_store_stops_listening(self, storage):
        first = HouseholdStore(storage)
        second = HouseholdStore(storage)
        second.get()
        second.close()

        first.set("h1")
        assert second.household_id is None


class TestJsonFileStorage:
    """Tests for the file-backed storage."""

    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / "local.json"
        JsonFileKeyValueStorage(path).set("k", "v")
        assert JsonFileKeyValueStorage(path).get("k") == "v"

    def test_remove_missing_key_is_noop(self, tmp_path):
        storage = JsonFileKeyValueStorage(tmp_path / "local.json")
        storage.remove("absent")
        assert storage.get("absent") is None

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("{broken", encoding="utf-8")
        with pytest.raises(CorruptStorageError):
            JsonFileKeyValueStorage(path)

    def test_poll_reports_external_changes(self, tmp_path):
        """A write by another instance is picked up and announced by poll."""
        path = tmp_path / "local.json"
        mine = JsonFileKeyValueStorage(path)
        theirs = JsonFileKeyValueStorage(path)
        changed = []
        mine.subscribe(changed.append)

        theirs.set("household_id", "x")

        assert mine.poll_external_changes() == ["household_id"]
        assert mine.get("household_id") == "x"
        assert changed == ["household_id"]

    def test_store_over_file_storage_follows_other_process(self, tmp_path):
        path = tmp_path / "local.json"
        mine = JsonFileKeyValueStorage(path)
        theirs = JsonFileKeyValueStorage(path)
        my_store = HouseholdStore(mine)
        my_store.get()

        HouseholdStore(theirs).set("h9", "Elsewhere")
        mine.poll_external_changes()

        assert my_store.household_id == "h9"

    def test_unrelated_write_keeps_other_process_selection(self, tmp_path):
        path = tmp_path / "local.json"
        mine = JsonFileKeyValueStorage(path)
        theirs = JsonFileKeyValueStorage(path)
        my_store = HouseholdStore(mine)
        their_store = HouseholdStore(theirs)

        my_store.set("h1")
        theirs.poll_external_changes()
        my_store.set("h2")
        theirs.set("user_data", "{}")
        mine.poll_external_changes()

        assert my_store.household_id == "h2"
        assert their_store.household_id == "h2"
        assert JsonFileKeyValueStorage(path).get("user_data") == "{}"

    def test_write_announces_keys_changed_on_disk(self, tmp_path):
        path = tmp_path / "local.json"
        mine = JsonFileKeyValueStorage(path)
        theirs = JsonFileKeyValueStorage(path)
        changed = []
        mine.subscribe(changed.append)

        theirs.set("household_id", "x")
        mine.set("user_data", "{}")

        assert changed == ["household_id", "user_data"]
        assert mine.get("household_id") == "x"

    def test_remove_keeps_other_keys_written_elsewhere(self, tmp_path):
        path = tmp_path / "local.json"
        mine = JsonFileKeyValueStorage(path)
        mine.set("k", "v")
        theirs = JsonFileKeyValueStorage(path)
        theirs.set("other", "1")

        mine.remove("k")

        reread = JsonFileKeyValueStorage(path)
        assert reread.get("k") is None
        assert reread.get("other") == "1"
