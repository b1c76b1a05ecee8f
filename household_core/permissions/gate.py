"""
Permission Gate

Decides which accounts a user may pick when recording a transaction in a
household. Pure functions of their inputs; nothing here talks to the
backend.

Rules:
- Personal household: only accounts that belong to that household.
- Shared household: the household's own accounts, plus every personal
  account a member chose to share, plus all of the current user's own
  personal accounts.
- A member shares a personal account only when allow_personal_account_access
  is on AND the account id is in shared_account_ids. Either flag alone
  exposes nothing.
- INVESTMENT accounts are left out unless asked for; inactive accounts are
  left out unless asked for.

The server enforces the same rules. A disagreement is a bug signal, not
something to reconcile silently (see find_divergence).
"""

from typing import Optional

from household_core.households.resolver import is_shared_household
from household_core.models.account import Account, AccountType
from household_core.models.household import Household, HouseholdMember


class PermissionGate:
    """Computes the accounts visible to one user in one household."""

    def available_accounts(
        self,
        household_id: str,
        current_user_id: str,
        members: list[HouseholdMember],
        accounts: list[Account],
        households: list[Household],
        include_investment: bool = False,
        include_inactive: bool = False,
    ) -> list[Account]:
        """
        Args:
            household_id: The household the transaction is recorded in
            current_user_id: Backend user id of the acting user
            members: Members of household_id
            accounts: Candidate pool (household accounts and personal accounts)
            households: The acting user's households, to tell personal from shared

        Returns:
            Allowed accounts, de-duplicated by id, in pool order
        """
        if is_shared_household(household_id, households):
            allowed = self._shared_household_accounts(
                household_id, current_user_id, members, accounts
            )
        else:
            allowed = [a for a in accounts if a.household_id == household_id]

        return self.filter_accounts(allowed, include_investment, include_inactive)

    def _shared_household_accounts(
        self,
        household_id: str,
        current_user_id: str,
        members: list[HouseholdMember],
        accounts: list[Account],
    ) -> list[Account]:
        sharing = {
            member.user_id: member
            for member in members
            if member.allow_personal_account_access and member.shared_account_ids
        }

        allowed = []
        for account in accounts:
            if account.household_id == household_id:
                allowed.append(account)
            elif self._is_own_personal(account, current_user_id):
                allowed.append(account)
            elif account.account_owner_id in sharing:
                if sharing[account.account_owner_id].shares_account(account.id):
                    allowed.append(account)
        return allowed

    @staticmethod
    def _is_own_personal(account: Account, user_id: str) -> bool:
        return account.account_owner_id is not None and account.account_owner_id == user_id

    @staticmethod
    def filter_accounts(
        accounts: list[Account],
        include_investment: bool,
        include_inactive: bool,
    ) -> list[Account]:
        seen: set[str] = set()
        result = []
        for account in accounts:
            if account.id in seen:
                continue
            if not include_investment and account.type == AccountType.INVESTMENT:
                continue
            if not include_inactive and not account.is_active:
                continue
            seen.add(account.id)
            result.append(account)
        return result

    # =========================================================================
    # SPLIT PARTICIPANTS
    # =========================================================================

    @staticmethod
    def accounts_for_member(
        accounts: list[Account],
        member_user_id: str,
        is_current_user: bool,
    ) -> list[Account]:
        """
        Accounts a split participant can settle their share against.

        The acting user may use anything available to them. Another member
        is limited to household (non-personal) accounts and their own
        personal accounts.
        """
        if is_current_user:
            return list(accounts)
        return [
            a for a in accounts
            if a.account_owner_id == member_user_id or not a.is_personal
        ]

    def default_account_for_member(
        self,
        accounts: list[Account],
        member_user_id: str,
        is_current_user: bool,
    ) -> Optional[str]:
        """The only eligible account, or None when there is a choice to make."""
        options = self.accounts_for_member(accounts, member_user_id, is_current_user)
        return options[0].id if len(options) == 1 else None

    # =========================================================================
    # DIVERGENCE
    # =========================================================================

    @staticmethod
    def find_divergence(local: list[Account], server: list[Account]) -> list[str]:
        """
        Ids the server offered that the local rules would not.

        Non-empty means the client and server disagree on permissions.
        """
        allowed = {a.id for a in local}
        return [a.id for a in server if a.id not in allowed]
