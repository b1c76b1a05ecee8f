"""
Households Package

The persisted household selection, the resolver that turns it (plus the
server list) into the current household, and household limits.
"""

from household_core.households.policy import HouseholdPolicy, PolicyViolationError
from household_core.households.resolver import (
    HouseholdResolver,
    is_shared_household,
    personal_household,
    sort_households,
    split_households,
)
from household_core.households.store import STORAGE_KEY, TIMESTAMP_KEY, HouseholdStore

__all__ = [
    "HouseholdPolicy",
    "HouseholdResolver",
    "HouseholdStore",
    "PolicyViolationError",
    "STORAGE_KEY",
    "TIMESTAMP_KEY",
    "is_shared_household",
    "personal_household",
    "sort_households",
    "split_households",
]
