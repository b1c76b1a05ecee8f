"""
Shared fixtures and fakes.

No test talks to a real backend: FakeHouseholdApi keeps households,
members, accounts and collections in memory and records every call.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest

from household_core.audit import AuditLogger
from household_core.config import HouseholdSettings, SyncSettings
from household_core.models.account import Account, AccountType, AvailableAccounts
from household_core.models.household import (
    AuthUser,
    Household,
    HouseholdMember,
    HouseholdRole,
    MemberUser,
    UserProfile,
)
from household_core.models.transaction import Transaction
from household_core.services.api import HouseholdApiInterface, NotFoundError
from household_core.services.storage import InMemoryKeyValueStorage


BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# FACTORIES
# =============================================================================

def make_household(
    household_id: str,
    age_days: int = 0,
    role: HouseholdRole = HouseholdRole.OWNER,
    name: Optional[str] = None,
) -> Household:
    """age_days orders households: a smaller value is older."""
    return Household(
        id=household_id,
        name=name if name is not None else f"Household {household_id}",
        role=role,
        created_at=BASE_TIME + timedelta(days=age_days),
    )


def make_member(
    user_id: str,
    role: HouseholdRole = HouseholdRole.EDITOR,
    household_id: str = "h-shared",
    email: Optional[str] = "default",
    allow: bool = False,
    shared: Optional[list[str]] = None,
) -> HouseholdMember:
    if email == "default":
        email = f"{user_id}@example.com"
    return HouseholdMember(
        id=f"m-{user_id}",
        household_id=household_id,
        user_id=user_id,
        role=role,
        allow_personal_account_access=allow,
        shared_account_ids=shared or [],
        user=MemberUser(id=user_id, email=email or ""),
    )


def make_account(
    account_id: str,
    household_id: str = "h-shared",
    account_type: AccountType = AccountType.CHECKING,
    available: str = "1000.00",
    owner: Optional[str] = None,
    active: bool = True,
) -> Account:
    return Account(
        id=account_id,
        household_id=household_id,
        name=account_id,
        type=account_type,
        available_balance=Decimal(available),
        is_active=active,
        is_personal=owner is not None,
        account_owner_id=owner,
    )


# =============================================================================
# FAKE API
# =============================================================================

class FakeHouseholdApi(HouseholdApiInterface):
    """
    In-memory backend.

    errors: method name -> exception raised by the next call(s) to it
    gates: (resource, household_id) -> asyncio.Event a list_collection call
           waits on before answering, to hold a response in flight
    """

    def __init__(self):
        self.households: list[Household] = []
        self.members: dict[str, list[HouseholdMember]] = {}
        self.available: dict[str, list[Account]] = {}
        self.collections: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.profile: Optional[UserProfile] = None
        self.errors: dict[str, Exception] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}
        self.calls: list[tuple] = []
        self._next_id = 0

    def _enter(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        error = self.errors.get(name)
        if error is not None:
            raise error

    def calls_to(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def list_households(self) -> list[Household]:
        self._enter("list_households")
        return list(self.households)

    async def get_household(self, household_id: str) -> Household:
        self._enter("get_household", household_id)
        for household in self.households:
            if household.id == household_id:
                return household
        raise NotFoundError(f"Household {household_id} not found", status=404)

    async def delete_household(self, household_id: str) -> None:
        self._enter("delete_household", household_id)
        self.households = [h for h in self.households if h.id != household_id]

    async def leave_household(self, household_id: str) -> None:
        self._enter("leave_household", household_id)
        self.households = [h for h in self.households if h.id != household_id]

    async def list_members(self, household_id: str) -> list[HouseholdMember]:
        self._enter("list_members", household_id)
        return list(self.members.get(household_id, []))

    def _me(self, household_id: str) -> HouseholdMember:
        user_id = self.profile.id if self.profile else "u1"
        return next(m for m in self.members[household_id] if m.user_id == user_id)

    def _replace_me(self, household_id: str, updated: HouseholdMember) -> HouseholdMember:
        self.members[household_id] = [
            updated if m.id == updated.id else m for m in self.members[household_id]
        ]
        return updated

    async def update_personal_account_access(
        self,
        household_id: str,
        allow: bool,
    ) -> HouseholdMember:
        self._enter("update_personal_account_access", household_id, allow)
        me = self._me(household_id)
        return self._replace_me(
            household_id, me.model_copy(update={"allow_personal_account_access": allow})
        )

    async def update_shared_account_ids(
        self,
        household_id: str,
        account_ids: list[str],
    ) -> HouseholdMember:
        self._enter("update_shared_account_ids", household_id, tuple(account_ids))
        me = self._me(household_id)
        return self._replace_me(
            household_id, me.model_copy(update={"shared_account_ids": list(account_ids)})
        )

    async def list_available_accounts(
        self,
        household_id: str,
        include_inactive: bool = False,
    ) -> AvailableAccounts:
        self._enter("list_available_accounts", household_id, include_inactive)
        accounts = self.available.get(household_id, [])
        if not include_inactive:
            accounts = [a for a in accounts if a.is_active]
        return AvailableAccounts(
            accounts=accounts,
            has_personal_accounts=any(a.is_personal for a in accounts),
        )

    async def list_collection(self, resource: str, household_id: str) -> list[dict[str, Any]]:
        self._enter("list_collection", resource, household_id)
        gate = self.gates.get((resource, household_id))
        if gate is not None:
            await gate.wait()
        return [dict(item) for item in self.collections.get((resource, household_id), [])]

    async def create_transaction(self, transaction: Transaction) -> dict[str, Any]:
        self._enter("create_transaction", transaction)
        self._next_id += 1
        saved = {"id": f"t-{self._next_id}", **transaction.to_payload()}
        key = ("transactions", transaction.household_id)
        self.collections.setdefault(key, []).append(saved)
        return saved

    async def update_transaction(
        self,
        transaction_id: str,
        transaction: Transaction,
    ) -> dict[str, Any]:
        self._enter("update_transaction", transaction_id, transaction)
        return {"id": transaction_id, **transaction.to_payload()}

    async def sync_identity(self, uid: str, email: Optional[str]) -> UserProfile:
        self._enter("sync_identity", uid, email)
        return self.profile or UserProfile(id=f"user-{uid}", email=email or f"{uid}@example.com")


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def storage():
    return InMemoryKeyValueStorage()


@pytest.fixture
def fake_api():
    return FakeHouseholdApi()


@pytest.fixture
def household_settings():
    return HouseholdSettings()


@pytest.fixture
def fast_sync_settings():
    """No debounce wait and no backoff, so retries run immediately."""
    return SyncSettings(
        debounce_ms=0,
        max_attempts=3,
        backoff_initial_seconds=0,
        backoff_max_seconds=0,
    )


@pytest.fixture
def auth_user():
    return AuthUser(uid="firebase-u1", email="u1@example.com")
