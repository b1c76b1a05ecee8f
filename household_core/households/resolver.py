"""
Household Resolver

Decides which household the user is acting in, from the stored selection
and the server's household list.

Algorithm:
1. Unauthenticated: clear the selection; nothing is resolved.
2. A stored selection exists: it wins. The server record is used when the
   list contains it; otherwise a degraded copy is built from the local
   record. A different household is never substituted.
3. No stored selection and a loaded, non-empty list: the personal household
   (oldest by created_at) is selected and persisted.
4. A loaded list with the same id but a different name or role updates the
   stored copy in place. The id never changes here.

CRITICAL: household_id None means "not ready". Callers wait; they do not
pick a household of their own.
"""

from typing import Optional

from household_core.audit import AuditLogger
from household_core.config import HouseholdSettings, get_settings
from household_core.households.store import HouseholdStore
from household_core.models.audit import AuditEventBuilder
from household_core.models.household import (
    AuthUser,
    Household,
    HouseholdRole,
    ResolvedHousehold,
    SelectionRecord,
)


# =============================================================================
# HELPERS
# =============================================================================

def sort_households(households: list[Household]) -> list[Household]:
    """Oldest first by created_at, then joined_at. Ties keep server order."""
    return sorted(households, key=lambda h: h.sort_key)


def personal_household(households: list[Household]) -> Optional[Household]:
    ordered = sort_households(households)
    return ordered[0] if ordered else None


def split_households(
    households: list[Household],
) -> tuple[Optional[Household], list[Household]]:
    """(personal household, shared households in age order)."""
    ordered = sort_households(households)
    if not ordered:
        return None, []
    return ordered[0], ordered[1:]


def is_shared_household(household_id: str, households: list[Household]) -> bool:
    """
    True if household_id is one of the user's households and not the oldest.

    An id missing from the list is treated as not shared.
    """
    _, shared = split_households(households)
    return any(h.id == household_id for h in shared)


# =============================================================================
# RESOLVER
# =============================================================================

class HouseholdResolver:
    """
    Resolves the current household. Never raises.
    """

    def __init__(
        self,
        store: HouseholdStore,
        settings: Optional[HouseholdSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().household
        self._audit = audit_logger or AuditLogger()
        self._reported_missing: set[str] = set()

    def resolve(
        self,
        user: Optional[AuthUser],
        households: Optional[list[Household]],
        is_loading: bool,
    ) -> ResolvedHousehold:
        """
        Args:
            user: The authenticated identity, or None when signed out
            households: The last household list fetched, or None if never fetched
            is_loading: True while a household list fetch is in flight
        """
        if user is None:
            if self._store.get() is not None:
                self._store.clear(reason="signed_out")
            return ResolvedHousehold()

        loaded = not is_loading and households is not None
        record = self._store.get()

        if record is not None:
            return self._resolve_stored(record, households or [], loaded, is_loading)

        if loaded and households:
            personal = personal_household(households)
            self._store.set(personal.id, personal.name, personal.role, user_action=False)
            self._audit.log(
                AuditEventBuilder.household_fallback_selected(personal.id, personal.name)
            )
            return ResolvedHousehold(household_id=personal.id, household=personal)

        return ResolvedHousehold(is_loading=is_loading)

    def _resolve_stored(
        self,
        record: SelectionRecord,
        households: list[Household],
        loaded: bool,
        is_loading: bool,
    ) -> ResolvedHousehold:
        match = next((h for h in households if h.id == record.id), None)

        if match is not None:
            self._reported_missing.discard(record.id)
            if loaded and record.differs_from(match):
                self._store.set(record.id, match.name, match.role, user_action=False)
                self._audit.log(AuditEventBuilder.household_reconciled(
                    household_id=record.id,
                    old_name=record.name,
                    new_name=match.name,
                    old_role=record.role.value if record.role else None,
                    new_role=match.role.value,
                ))
            return ResolvedHousehold(
                household_id=record.id,
                household=match,
                is_loading=is_loading,
            )

        if loaded and record.id not in self._reported_missing:
            self._reported_missing.add(record.id)
            self._audit.log(AuditEventBuilder.household_not_found(
                record.id, [h.id for h in households]
            ))

        return ResolvedHousehold(
            household_id=record.id,
            household=self.degraded_household(record),
            is_loading=is_loading,
            is_degraded=True,
            not_found=loaded,
        )

    def degraded_household(self, record: SelectionRecord) -> Household:
        """Stand-in household built only from the local record."""
        return Household(
            id=record.id,
            name=record.name or self._settings.default_household_name,
            role=record.role or HouseholdRole.OWNER,
        )

    def handle_household_removed(self, household_id: str) -> bool:
        """
        Forget the selection if it points at a household the user lost.

        The next resolve() then falls back to the personal household.

        Returns:
            True if the current selection was cleared
        """
        was_selected = self._store.household_id == household_id
        self._audit.log(AuditEventBuilder.household_removed(household_id, was_selected))
        if was_selected:
            self._store.clear(reason="household_removed")
        return was_selected
