"""
Cache Coherence Controller

Keeps cached server data consistent with the selected household and with
the mutations this client makes.

HOUSEHOLD SWITCH (strict order):
a. Persist the new selection through the HouseholdStore
b. Drop every cached collection keyed by the old household
c. Invalidate the household list and auth/me
d. Refetch the same collections keyed by the new household

Because the selection is persisted (a) before anything is refetched (d),
every response for the old household that is still in flight fails the
arrival check in QueryCache and is discarded.

MUTATION: drop the resource's collection and every aggregate derived from
it for the owning household. The next read refetches.
"""

import asyncio
from enum import Enum
from typing import Optional
from uuid import UUID

from household_core.audit import AuditLogger, create_correlation_id
from household_core.cache.keys import (
    AUTH_ME,
    HOUSEHOLD_COLLECTIONS,
    HOUSEHOLDS,
    CacheKey,
    account_summary_key,
    collection_key,
    dashboard_key,
    format_key,
    members_key,
)
from household_core.cache.query_cache import QueryCache
from household_core.events import HouseholdSelected, HouseholdSelectionCleared
from household_core.households.store import HouseholdStore
from household_core.models.audit import AuditEventBuilder
from household_core.models.household import HouseholdRole
from household_core.services.api import HouseholdApiInterface


class ResourceKind(str, Enum):
    ACCOUNT = "accounts"
    TRANSACTION = "transactions"
    BUDGET = "budgets"
    RECURRING_TRANSACTION = "recurring-transactions"
    SAVINGS_GOAL = "savings-goals"
    CATEGORY = "categories"
    MEMBERSHIP = "members"
    HOUSEHOLD = "households"


class MutationAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Other collections whose contents change when a resource changes
_DEPENDENTS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.ACCOUNT: ("transactions",),
    ResourceKind.TRANSACTION: ("accounts",),
    ResourceKind.RECURRING_TRANSACTION: ("transactions", "accounts"),
    ResourceKind.SAVINGS_GOAL: ("accounts",),
}


class CacheCoherenceController:
    """
    Drives QueryCache invalidation for household switches and mutations.
    """

    def __init__(
        self,
        cache: QueryCache,
        store: HouseholdStore,
        api: HouseholdApiInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._cache = cache
        self._store = store
        self._api = api
        self._audit = audit_logger or AuditLogger()
        self._unsubscribes = [
            store.subscribe_selected(self._on_external_selected),
            store.subscribe_cleared(self._on_external_cleared),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()

    # =========================================================================
    # HOUSEHOLD SWITCH
    # =========================================================================

    async def on_household_switch(
        self,
        old_id: Optional[str],
        new_id: str,
        name: Optional[str] = None,
        role: Optional[HouseholdRole] = None,
    ) -> bool:
        """
        Switch the selected household.

        Returns:
            False when new_id is already selected (nothing happened)

        Raises:
            Errors from the refetch step; the switch itself has already been
            persisted by then.
        """
        if old_id == new_id or self._store.household_id == new_id:
            return False

        correlation_id = create_correlation_id()
        # (a)
        self._store.set(new_id, name, role)
        # (b) + (c)
        self.drop_household(old_id, reason="household_switch", correlation_id=correlation_id)
        # (d)
        await self.refetch_household(new_id, correlation_id)
        return True

    def drop_household(
        self,
        household_id: Optional[str],
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[CacheKey]:
        dropped: list[CacheKey] = []
        if household_id:
            for resource in HOUSEHOLD_COLLECTIONS:
                dropped += self._cache.remove(collection_key(resource, household_id))
            dropped += self._cache.remove(dashboard_key(household_id))
            dropped += self._cache.remove(members_key(household_id))
            self._cache.reconciliation.drop_household(household_id)
        dropped += self._cache.invalidate(HOUSEHOLDS, exact=True)
        dropped += self._cache.invalidate(AUTH_ME, exact=True)

        self._audit.log(AuditEventBuilder.cache_invalidated(
            household_id, [format_key(k) for k in dropped], reason, correlation_id
        ))
        return dropped

    async def refetch_household(
        self,
        household_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> list[CacheKey]:
        keys = [collection_key(r, household_id) for r in HOUSEHOLD_COLLECTIONS]
        await asyncio.gather(*(
            self._cache.fetch(key, household_id, self._collection_fetcher(key[0], household_id))
            for key in keys
        ))
        self._audit.log(AuditEventBuilder.cache_refetched(
            household_id, [format_key(k) for k in keys], correlation_id
        ))
        return keys

    def _collection_fetcher(self, resource: str, household_id: str):
        async def fetch():
            return await self._api.list_collection(resource, household_id)
        return fetch

    def _on_external_selected(self, event: HouseholdSelected) -> None:
        """Another process switched households: drop what we hold for the old one."""
        if not event.external:
            return
        previous_id = event.previous.id if event.previous else None
        if previous_id != event.record.id:
            self.drop_household(previous_id, reason="external_switch")

    def _on_external_cleared(self, event: HouseholdSelectionCleared) -> None:
        if event.external and event.previous is not None:
            self.drop_household(event.previous.id, reason="external_clear")

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    def on_mutation(
        self,
        resource: ResourceKind,
        action: MutationAction,
        affected_household_id: Optional[str],
        first_resource: bool = False,
    ) -> list[CacheKey]:
        """
        Drop whatever a committed mutation made stale.

        Args:
            resource: What was mutated
            action: create / update / delete
            affected_household_id: Household that owns the resource
            first_resource: The user's first resource of this kind, which
                changes onboarding state in the household list and auth/me
        """
        hid = affected_household_id
        dropped: list[CacheKey] = []

        if hid and resource == ResourceKind.MEMBERSHIP:
            dropped += self._cache.remove(members_key(hid))
            dropped += self._cache.remove(("accounts", hid, "available"))
        elif hid and resource == ResourceKind.HOUSEHOLD:
            if action == MutationAction.DELETE:
                for collection in HOUSEHOLD_COLLECTIONS:
                    dropped += self._cache.remove(collection_key(collection, hid))
                dropped += self._cache.remove(dashboard_key(hid))
                dropped += self._cache.remove(members_key(hid))
        elif hid:
            dropped += self._cache.remove(collection_key(resource.value, hid))
            for dependent in _DEPENDENTS.get(resource, ()):
                dropped += self._cache.remove(collection_key(dependent, hid))
            dropped += self._cache.remove(account_summary_key(hid))
            dropped += self._cache.remove(dashboard_key(hid))

        if resource in (ResourceKind.TRANSACTION, ResourceKind.HOUSEHOLD) or first_resource:
            dropped += self._cache.invalidate(AUTH_ME, exact=True)
        if resource == ResourceKind.HOUSEHOLD or first_resource:
            dropped += self._cache.invalidate(HOUSEHOLDS, exact=True)

        self._audit.log(AuditEventBuilder.cache_invalidated(
            hid,
            [format_key(k) for k in dropped],
            f"{resource.value}_{action.value}",
        ))
        return dropped
