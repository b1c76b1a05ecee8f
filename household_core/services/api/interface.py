"""
Abstract Household API Interface

DESIGN DECISION: Every component talks to the backend through this
interface. This allows us to:
1. Swap the HTTP client for an in-memory fake in tests
2. Keep the household, permission and cache logic free of transport details

All methods return already-normalized models: malformed household and
member entries from the server are dropped before they reach the core.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from household_core.models.account import AvailableAccounts
from household_core.models.household import Household, HouseholdMember, UserProfile
from household_core.models.transaction import Transaction


class HouseholdApiInterface(ABC):
    """
    Abstract interface for the household finance REST backend.
    """

    # =========================================================================
    # HOUSEHOLDS
    # =========================================================================

    @abstractmethod
    async def list_households(self) -> list[Household]:
        """
        GET /households

        Returns:
            The households the current user belongs to, normalized
        """
        pass

    @abstractmethod
    async def get_household(self, household_id: str) -> Household:
        """
        GET /households/:id

        Raises:
            NotFoundError: If the household does not exist or is not visible
        """
        pass

    @abstractmethod
    async def delete_household(self, household_id: str) -> None:
        """DELETE /households/:id (OWNER only)."""
        pass

    @abstractmethod
    async def leave_household(self, household_id: str) -> None:
        """POST /households/:id/leave"""
        pass

    # =========================================================================
    # MEMBERS AND SHARING POSTURE
    # =========================================================================

    @abstractmethod
    async def list_members(self, household_id: str) -> list[HouseholdMember]:
        """
        GET /households/:id/members

        Members without id, user or user email are dropped.
        """
        pass

    @abstractmethod
    async def update_personal_account_access(
        self,
        household_id: str,
        allow: bool,
    ) -> HouseholdMember:
        """PATCH /households/:id/members/me/personal-account-access"""
        pass

    @abstractmethod
    async def update_shared_account_ids(
        self,
        household_id: str,
        account_ids: list[str],
    ) -> HouseholdMember:
        """PATCH /households/:id/members/me/shared-account-ids"""
        pass

    # =========================================================================
    # ACCOUNTS, COLLECTIONS, TRANSACTIONS
    # =========================================================================

    @abstractmethod
    async def list_available_accounts(
        self,
        household_id: str,
        include_inactive: bool = False,
    ) -> AvailableAccounts:
        """GET /accounts/available?householdId=&includeInactive="""
        pass

    @abstractmethod
    async def list_collection(
        self,
        resource: str,
        household_id: str,
    ) -> list[dict[str, Any]]:
        """
        GET /{resource}?householdId=

        Args:
            resource: Collection path, e.g. 'transactions' or 'savings-goals'
        """
        pass

    @abstractmethod
    async def create_transaction(self, transaction: Transaction) -> dict[str, Any]:
        """POST /transactions"""
        pass

    @abstractmethod
    async def update_transaction(
        self,
        transaction_id: str,
        transaction: Transaction,
    ) -> dict[str, Any]:
        """PATCH /transactions/:id"""
        pass

    # =========================================================================
    # IDENTITY
    # =========================================================================

    @abstractmethod
    async def sync_identity(self, uid: str, email: Optional[str]) -> UserProfile:
        """
        POST /auth/sync

        Creates or refreshes the backend user for the authenticated identity.
        """
        pass


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ApiError(Exception):
    """Base exception for backend errors; carries the backend's message."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class NetworkError(ApiError):
    """No response: connection refused, DNS failure or timeout."""

    def __init__(self, message: str = "Network error: No response from server"):
        super().__init__(message, status=None)


class NotFoundError(ApiError):
    """The referenced household, member or record does not exist (404)."""
    pass


class PermissionDeniedError(ApiError):
    """The backend refused an operation the client believed allowed (403)."""
    pass


class BadRequestError(ApiError):
    """The backend rejected the request body (400/409/422)."""
    pass
