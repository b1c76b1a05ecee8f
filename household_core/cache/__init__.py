"""
Cache Package

Query cache with household-aware arrival checks, the optimistic-write
reconciliation log, the coherence controller that drives invalidation,
and the local user profile cache.
"""

from household_core.cache.coherence import (
    CacheCoherenceController,
    MutationAction,
    ResourceKind,
)
from household_core.cache.keys import (
    AUTH_ME,
    HOUSEHOLD_COLLECTIONS,
    HOUSEHOLDS,
    CacheKey,
    available_accounts_key,
    collection_key,
    members_key,
)
from household_core.cache.profile import ProfileCache
from household_core.cache.query_cache import CacheEntry, QueryCache
from household_core.cache.reconciliation import PendingOp, PendingWrite, ReconciliationLog

__all__ = [
    # Keys
    "AUTH_ME",
    "HOUSEHOLD_COLLECTIONS",
    "HOUSEHOLDS",
    "CacheKey",
    "available_accounts_key",
    "collection_key",
    "members_key",
    # Cache
    "CacheEntry",
    "QueryCache",
    "PendingOp",
    "PendingWrite",
    "ReconciliationLog",
    # Coherence
    "CacheCoherenceController",
    "MutationAction",
    "ResourceKind",
    # Profile
    "ProfileCache",
]
