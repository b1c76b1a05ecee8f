"""Tests for the query cache, the reconciliation log and the profile cache."""

import asyncio

from household_core.audit import AuditLogger
from household_core.cache import (
    HOUSEHOLDS,
    PendingOp,
    ProfileCache,
    QueryCache,
    ReconciliationLog,
    collection_key,
)
from household_core.cache.keys import (
    available_accounts_key,
    format_key,
    household_of,
    members_key,
)
from household_core.models.audit import AuditEventType
from household_core.models.household import UserProfile
from household_core.services.storage import InMemoryKeyValueStorage

from tests.test_household_store import FailingStorage


TX_H1 = collection_key("transactions", "h1")


class Selection:
    """Mutable stand-in for the store's current household id."""

    def __init__(self, household_id=None):
        self.household_id = household_id

    def __call__(self):
        return self.household_id


def gated(result, calls=None):
    """A fetcher that answers only after its gate is set."""
    gate = asyncio.Event()

    async def fetch():
        if calls is not None:
            calls.append(1)
        await gate.wait()
        return result

    return fetch, gate


class TestCacheKeys:
    def test_household_of(self):
        assert household_of(TX_H1) == "h1"
        assert household_of(members_key("h2")) == "h2"
        assert household_of(HOUSEHOLDS) is None

    def test_format_key(self):
        assert format_key(available_accounts_key("h1", True)) == "accounts/h1/available/all"


class TestQueryCache:
    """Tests for fetch de-duplication, generations and the arrival check."""

    def test_fetch_stores_result(self):
        cache = QueryCache(Selection("h1"))

        async def fetch():
            return [{"id": "t1"}]

        result = asyncio.run(cache.fetch(TX_H1, "h1", fetch))

        assert result == [{"id": "t1"}]
        assert cache.get(TX_H1).household_id == "h1"
        assert cache.read(TX_H1) == [{"id": "t1"}]

    def test_concurrent_fetches_share_one_request(self):
        cache = QueryCache(Selection("h1"))
        calls = []

        async def scenario():
            fetch, gate = gated([{"id": "t1"}], calls)
            first = asyncio.ensure_future(cache.fetch(TX_H1, "h1", fetch))
            second = asyncio.ensure_future(cache.fetch(TX_H1, "h1", fetch))
            await asyncio.sleep(0)
            assert cache.is_inflight(TX_H1)
            gate.set()
            return await asyncio.gather(first, second)

        results = asyncio.run(scenario())

        assert calls == [1]
        assert results == [[{"id": "t1"}], [{"id": "t1"}]]
        assert cache.is_inflight(TX_H1) is False

    def test_response_for_removed_key_discarded(self):
        audit = AuditLogger()
        cache = QueryCache(Selection("h1"), audit_logger=audit)

        async def scenario():
            fetch, gate = gated([{"id": "old"}])
            pending = asyncio.ensure_future(cache.fetch(TX_H1, "h1", fetch))
            await asyncio.sleep(0)
            cache.remove(TX_H1)
            gate.set()
            return await pending

        assert asyncio.run(scenario()) is None
        assert cache.get(TX_H1) is None
        discarded = audit.events_of_type(AuditEventType.STALE_RESPONSE_DISCARDED)
        assert discarded[0].details["reason"] == "dropped while in flight"

    def test_response_for_unselected_household_discarded(self):
        """The selection is read when the response arrives, not when it was issued."""
        selection = Selection("h1")
        audit = AuditLogger()
        cache = QueryCache(selection, audit_logger=audit)

        async def scenario():
            fetch, gate = gated([{"id": "h1-tx"}])
            pending = asyncio.ensure_future(cache.fetch(TX_H1, "h1", fetch))
            await asyncio.sleep(0)
            selection.household_id = "h2"
            gate.set()
            return await pending

        assert asyncio.run(scenario()) is None
        assert cache.get(TX_H1) is None
        assert audit.events_of_type(AuditEventType.STALE_RESPONSE_DISCARDED)

    def test_global_keys_ignore_selection(self):
        cache = QueryCache(Selection(None))

        async def fetch():
            return ["households"]

        assert asyncio.run(cache.fetch(HOUSEHOLDS, None, fetch)) == ["households"]

    def test_fetch_after_remove_is_not_shared(self):
        """A fetch issued after a drop does not join the orphaned one."""
        cache = QueryCache(Selection("h1"))
        calls = []

        async def scenario():
            old_fetch, old_gate = gated([{"id": "old"}], calls)
            new_fetch, new_gate = gated([{"id": "new"}], calls)
            old = asyncio.ensure_future(cache.fetch(TX_H1, "h1", old_fetch))
            await asyncio.sleep(0)
            cache.remove(TX_H1)
            new = asyncio.ensure_future(cache.fetch(TX_H1, "h1", new_fetch))
            await asyncio.sleep(0)
            new_gate.set()
            old_gate.set()
            return await asyncio.gather(old, new)

        old_result, new_result = asyncio.run(scenario())

        assert len(calls) == 2
        assert old_result is None
        assert new_result == [{"id": "new"}]
        assert cache.read(TX_H1) == [{"id": "new"}]

    def test_remove_by_prefix(self):
        cache = QueryCache(Selection("h1"))
        cache.set(TX_H1, [])
        cache.set(("transactions", "h1", "summary"), {})
        cache.set(collection_key("transactions", "h2"), [])

        removed = cache.remove(TX_H1)

        assert sorted(removed) == [TX_H1, ("transactions", "h1", "summary")]
        assert cache.keys() == [collection_key("transactions", "h2")]

    def test_invalidate_keeps_data_marked_stale(self):
        cache = QueryCache(Selection("h1"))
        cache.set(HOUSEHOLDS, ["h1"])

        cache.invalidate(HOUSEHOLDS, exact=True)

        entry = cache.get(HOUSEHOLDS)
        assert entry.stale is True
        assert entry.data == ["h1"]
        assert cache.generation(HOUSEHOLDS) == 1

    def test_fetcher_errors_propagate(self):
        cache = QueryCache(Selection("h1"))

        async def fetch():
            raise RuntimeError("boom")

        async def scenario():
            try:
                await cache.fetch(TX_H1, "h1", fetch)
            except RuntimeError as e:
                return str(e)

        assert asyncio.run(scenario()) == "boom"
        assert cache.is_inflight(TX_H1) is False


class TestReconciliation:
    """Tests for optimistic writes overlaid on cached collections."""

    def test_pending_write_overlays_read(self):
        cache = QueryCache(Selection("h1"))
        cache.set(TX_H1, [{"id": "t1", "amount": 1}])

        cache.reconciliation.record("m1", TX_H1, {"id": "t1", "amount": 2})
        cache.reconciliation.record("m2", TX_H1, {"description": "new"})

        assert cache.read(TX_H1) == [
            {"id": "t1", "amount": 2},
            {"description": "new"},
        ]

    def test_delete_overlay(self):
        log = ReconciliationLog()
        log.record("m1", TX_H1, {"id": "t1"}, op=PendingOp.DELETE)
        assert log.overlay(TX_H1, [{"id": "t1"}, {"id": "t2"}]) == [{"id": "t2"}]

    def test_discard_rejected_mutation(self):
        log = ReconciliationLog()
        log.record("m1", TX_H1, {"id": "t1"})
        assert log.discard("m1") == 1
        assert log.pending() == []

    def test_fetch_issued_after_write_retires_it(self):
        cache = QueryCache(Selection("h1"))
        cache.reconciliation.record("m1", TX_H1, {"id": "t9"})

        async def fetch():
            return [{"id": "t9"}]

        asyncio.run(cache.fetch(TX_H1, "h1", fetch))

        assert cache.reconciliation.pending(TX_H1) == []
        assert cache.read(TX_H1) == [{"id": "t9"}]

    def test_fetch_issued_before_write_keeps_it(self):
        """A response that could not contain the write does not retire it."""
        cache = QueryCache(Selection("h1"))

        async def scenario():
            fetch, gate = gated([{"id": "t1"}])
            pending = asyncio.ensure_future(cache.fetch(TX_H1, "h1", fetch))
            await asyncio.sleep(0)
            cache.reconciliation.record("m1", TX_H1, {"id": "t-new"})
            gate.set()
            await pending

        asyncio.run(scenario())

        assert len(cache.reconciliation.pending(TX_H1)) == 1
        assert cache.read(TX_H1) == [{"id": "t1"}, {"id": "t-new"}]

    def test_drop_household(self):
        log = ReconciliationLog()
        log.record("m1", TX_H1, {"id": "a"})
        log.record("m2", collection_key("transactions", "h2"), {"id": "b"})

        log.drop_household("h1")

        assert [w.mutation_id for w in log.pending()] == ["m2"]

    def test_clear_drops_pending(self):
        cache = QueryCache(Selection("h1"))
        cache.reconciliation.record("m1", TX_H1, {"id": "a"})
        cache.clear()
        assert cache.reconciliation.pending() == []


class TestProfileCache:
    """Tests for the stale-after-an-hour profile cache."""

    PROFILE = UserProfile(id="user-1", email="u1@example.com")

    def test_fresh_profile_returned(self):
        now = [1_000.0]
        cache = ProfileCache(InMemoryKeyValueStorage(), 3600, clock=lambda: now[0])
        cache.set(self.PROFILE)

        now[0] += 3599
        assert cache.get() == self.PROFILE

    def test_stale_profile_is_none(self):
        now = [1_000.0]
        cache = ProfileCache(InMemoryKeyValueStorage(), 3600, clock=lambda: now[0])
        cache.set(self.PROFILE)

        now[0] += 3601
        assert cache.get() is None

    def test_corrupt_profile_is_none(self):
        storage = InMemoryKeyValueStorage({
            "user_data": "{not json",
            "user_data_timestamp": "1000000",
        })
        assert ProfileCache(storage, 3600, clock=lambda: 1000.0).get() is None

    def test_clear(self):
        storage = InMemoryKeyValueStorage()
        cache = ProfileCache(storage, 3600)
        cache.set(self.PROFILE)
        cache.clear()
        assert storage.keys() == []

    def test_write_failure_logged(self):
        audit = AuditLogger()
        cache = ProfileCache(FailingStorage(), 3600, audit_logger=audit)

        cache.set(self.PROFILE)

        assert cache.get() is None
        assert audit.events_of_type(AuditEventType.CACHE_WRITE_FAILED)
