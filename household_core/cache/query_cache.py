"""
Query Cache

Keyed cache of server collections with three guarantees:

1. In-flight de-duplication: concurrent fetches of one key share one request.
2. Per-key generations: remove() and invalidate() bump the generation of
   every matching key, including keys with a fetch in flight.
3. Arrival check: a response is stored only if, when it ARRIVES, its key's
   generation is unchanged and its household is still the current
   selection. Otherwise it is discarded and audited.

CRITICAL: The household check reads the selection at arrival time, not at
issue time. A response for H1 that lands after a switch to H2 is dropped
even if nothing else touched its key.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from household_core.audit import AuditLogger
from household_core.cache.keys import CacheKey, format_key, household_of
from household_core.cache.reconciliation import ReconciliationLog
from household_core.models.audit import AuditEventBuilder


Fetcher = Callable[[], Awaitable[Any]]
SelectionProvider = Callable[[], Optional[str]]


class CacheEntry(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: CacheKey
    data: Any
    household_id: Optional[str] = None
    generation: int = 0
    stale: bool = False
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class QueryCache:
    """
    Household-aware query cache.

    Usage:
        cache = QueryCache(selection=store_household_id_getter)
        data = await cache.fetch(("transactions", "h1"), "h1", fetch_fn)
    """

    def __init__(
        self,
        selection: SelectionProvider,
        reconciliation: Optional[ReconciliationLog] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._selection = selection
        self._reconciliation = reconciliation or ReconciliationLog()
        self._audit = audit_logger or AuditLogger()
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._generations: dict[CacheKey, int] = {}
        self._inflight: dict[CacheKey, tuple[int, asyncio.Task]] = {}

    @property
    def reconciliation(self) -> ReconciliationLog:
        return self._reconciliation

    def generation(self, key: CacheKey) -> int:
        return self._generations.get(key, 0)

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def read(self, key: CacheKey) -> Optional[Any]:
        """Cached data with pending optimistic writes applied."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if isinstance(entry.data, list):
            return self._reconciliation.overlay(key, entry.data)
        return entry.data

    def set(self, key: CacheKey, data: Any, household_id: Optional[str] = None) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            data=data,
            household_id=household_id if household_id is not None else household_of(key),
            generation=self.generation(key),
        )
        self._entries[key] = entry
        return entry

    def keys(self) -> list[CacheKey]:
        return list(self._entries)

    def is_inflight(self, key: CacheKey) -> bool:
        return key in self._inflight

    # =========================================================================
    # DROP / INVALIDATE
    # =========================================================================

    def _matching(self, prefix: CacheKey, exact: bool) -> list[CacheKey]:
        candidates = set(self._entries) | set(self._inflight)
        if exact:
            return [prefix] if prefix in candidates else []
        size = len(prefix)
        return sorted(k for k in candidates if k[:size] == prefix)

    def _bump(self, key: CacheKey) -> None:
        self._generations[key] = self.generation(key) + 1
        self._inflight.pop(key, None)

    def remove(self, prefix: CacheKey, exact: bool = False) -> list[CacheKey]:
        """
        Drop matching entries. Fetches in flight for them are orphaned:
        their responses will be discarded on arrival.
        """
        keys = self._matching(prefix, exact)
        for key in keys:
            self._entries.pop(key, None)
            self._bump(key)
        return keys

    def invalidate(self, prefix: CacheKey, exact: bool = False) -> list[CacheKey]:
        """Mark matching entries stale, keeping their data until refetched."""
        keys = self._matching(prefix, exact)
        for key in keys:
            self._bump(key)
            entry = self._entries.get(key)
            if entry is not None:
                self._entries[key] = entry.model_copy(
                    update={"stale": True, "generation": self.generation(key)}
                )
        return keys

    def clear(self) -> None:
        for key in list(set(self._entries) | set(self._inflight)):
            self._bump(key)
        self._entries.clear()
        self._reconciliation.clear()

    # =========================================================================
    # FETCH
    # =========================================================================

    async def fetch(
        self,
        key: CacheKey,
        household_id: Optional[str],
        fetcher: Fetcher,
    ) -> Optional[Any]:
        """
        Fetch key through fetcher, sharing any identical fetch in flight.

        Returns:
            The fetched data if it was stored, None if it arrived stale

        Raises:
            Whatever fetcher raises; fetches are not retried.
        """
        generation = self.generation(key)
        inflight = self._inflight.get(key)
        if inflight is not None and inflight[0] == generation:
            return await asyncio.shield(inflight[1])

        task = asyncio.ensure_future(
            self._run(key, household_id, generation, self._reconciliation.marker(), fetcher)
        )
        self._inflight[key] = (generation, task)
        task.add_done_callback(lambda done: self._forget(key, done))
        return await asyncio.shield(task)

    def _forget(self, key: CacheKey, task: asyncio.Task) -> None:
        current = self._inflight.get(key)
        if current is not None and current[1] is task:
            del self._inflight[key]

    async def _run(
        self,
        key: CacheKey,
        household_id: Optional[str],
        generation: int,
        marker: int,
        fetcher: Fetcher,
    ) -> Optional[Any]:
        data = await fetcher()

        current_household = self._selection()
        if self.generation(key) != generation:
            reason = "dropped while in flight"
        elif household_id is not None and household_id != current_household:
            reason = "household no longer selected"
        else:
            self.set(key, data, household_id)
            self._reconciliation.confirm(key, marker)
            return data

        self._audit.log(AuditEventBuilder.stale_response_discarded(
            key=format_key(key),
            household_id=household_id,
            current_household_id=current_household,
            reason=reason,
        ))
        return None
