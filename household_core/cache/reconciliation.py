"""
Reconciliation Log

Optimistic writes the client has made but the server has not yet confirmed
through a fresh fetch. Reads overlay these on the cached collection.

An entry is retired when an authoritative fetch of the same key that was
issued AFTER the write lands. A fetch issued before the write cannot
contain it, so it does not retire the entry.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from household_core.cache.keys import CacheKey, household_of


class PendingOp(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class PendingWrite(BaseModel):
    model_config = ConfigDict(frozen=True)

    mutation_id: str
    seq: int = Field(..., description="Position in the write/fetch order")
    key: CacheKey
    op: PendingOp = PendingOp.UPSERT
    item_id: Optional[str] = None
    item: dict[str, Any] = Field(default_factory=dict)


class ReconciliationLog:
    """Ordered log of pending optimistic writes."""

    def __init__(self):
        self._seq = 0
        self._pending: list[PendingWrite] = []

    def marker(self) -> int:
        """The sequence number a fetch issued right now is ordered after."""
        return self._seq

    def record(
        self,
        mutation_id: str,
        key: CacheKey,
        item: dict[str, Any],
        op: PendingOp = PendingOp.UPSERT,
    ) -> PendingWrite:
        self._seq += 1
        write = PendingWrite(
            mutation_id=mutation_id,
            seq=self._seq,
            key=key,
            op=op,
            item_id=item.get("id"),
            item=item,
        )
        self._pending.append(write)
        return write

    def discard(self, mutation_id: str) -> int:
        """Drop a mutation's writes (the server rejected it). Returns how many."""
        before = len(self._pending)
        self._pending = [w for w in self._pending if w.mutation_id != mutation_id]
        return before - len(self._pending)

    def confirm(self, key: CacheKey, fetch_marker: int) -> int:
        """Retire writes to key that a fetch issued at fetch_marker has seen."""
        before = len(self._pending)
        self._pending = [
            w for w in self._pending
            if not (w.key == key and w.seq <= fetch_marker)
        ]
        return before - len(self._pending)

    def drop_household(self, household_id: str) -> None:
        self._pending = [w for w in self._pending if household_of(w.key) != household_id]

    def clear(self) -> None:
        self._pending = []

    def pending(self, key: Optional[CacheKey] = None) -> list[PendingWrite]:
        if key is None:
            return list(self._pending)
        return [w for w in self._pending if w.key == key]

    def overlay(self, key: CacheKey, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """items with this key's pending writes applied in order."""
        result = list(items)
        for write in self.pending(key):
            if write.op == PendingOp.DELETE:
                result = [i for i in result if i.get("id") != write.item_id]
                continue
            replaced = False
            if write.item_id is not None:
                for index, existing in enumerate(result):
                    if existing.get("id") == write.item_id:
                        result[index] = {**existing, **write.item}
                        replaced = True
                        break
            if not replaced:
                result.append(dict(write.item))
        return result
