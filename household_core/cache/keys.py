"""
Cache keys.

A key is a tuple. Household-scoped keys put the resource first and the
household id second, so a prefix like ("transactions", "h1") covers the
collection and every aggregate derived from it for that household.
"""

from typing import Optional

CacheKey = tuple[str, ...]

# Collections dropped and refetched on a household switch
HOUSEHOLD_COLLECTIONS = (
    "transactions",
    "accounts",
    "budgets",
    "recurring-transactions",
    "savings-goals",
    "categories",
)

HOUSEHOLDS: CacheKey = ("households",)
AUTH_ME: CacheKey = ("auth", "me")


def collection_key(resource: str, household_id: str) -> CacheKey:
    return (resource, household_id)


def dashboard_key(household_id: str) -> CacheKey:
    return ("dashboard", household_id)


def account_summary_key(household_id: str) -> CacheKey:
    return ("accounts", household_id, "summary")


def members_key(household_id: str) -> CacheKey:
    return ("households", household_id, "members")


def available_accounts_key(household_id: str, include_inactive: bool = False) -> CacheKey:
    return ("accounts", household_id, "available", "all" if include_inactive else "active")


def household_of(key: CacheKey) -> Optional[str]:
    """The household a key is scoped to, or None for global keys."""
    if key in (HOUSEHOLDS, AUTH_ME) or len(key) < 2:
        return None
    return key[1]


def format_key(key: CacheKey) -> str:
    return "/".join(key)
