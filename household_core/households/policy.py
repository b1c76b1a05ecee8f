"""
Household Policy

Product limits on households and membership. They are configuration, not
invariants of the data model: raising max_active_members or
max_shared_households needs no change anywhere else.

Checks run before any request is sent and raise PolicyViolationError.
"""

from typing import Optional

from household_core.config import HouseholdSettings, get_settings
from household_core.households.resolver import split_households
from household_core.models.household import Household, HouseholdMember, HouseholdRole


class PolicyViolationError(Exception):
    """A household action is not allowed by the current limits."""

    def __init__(self, rule: str, message: str):
        super().__init__(message)
        self.rule = rule
        self.message = message


class HouseholdPolicy:
    """Limit checks for household creation and invitations."""

    def __init__(self, settings: Optional[HouseholdSettings] = None):
        self._settings = settings or get_settings().household

    @property
    def max_active_members(self) -> int:
        return self._settings.max_active_members

    @property
    def max_shared_households(self) -> int:
        return self._settings.max_shared_households

    def can_create_shared(self, households: list[Household]) -> bool:
        _, shared = split_households(households)
        return len(shared) < self.max_shared_households

    def ensure_can_create_shared(self, households: list[Household]) -> None:
        if not self.can_create_shared(households):
            raise PolicyViolationError(
                "shared_household_limit",
                f"At most {self.max_shared_households} shared household(s) allowed",
            )

    @staticmethod
    def active_member_count(members: list[HouseholdMember]) -> int:
        """Members with a resolvable user and email."""
        return sum(1 for member in members if member.email)

    def is_at_member_limit(self, members: list[HouseholdMember]) -> bool:
        return self.active_member_count(members) >= self.max_active_members

    def ensure_can_invite(
        self,
        members: list[HouseholdMember],
        email: str,
        inviter_email: Optional[str],
        inviter_role: Optional[HouseholdRole] = None,
    ) -> str:
        """
        Validate an invitation.

        Returns:
            The normalized (trimmed, lower-cased) email to invite

        Raises:
            PolicyViolationError: On self-invite, an existing member, a
                non-owner inviter, or a full household
        """
        invited = (email or "").strip().lower()
        if not invited:
            raise PolicyViolationError("email_required", "An email address is required")

        mine = (inviter_email or "").strip().lower()
        if mine and invited == mine:
            raise PolicyViolationError("self_invite", "You cannot invite yourself")

        if inviter_role is not None and inviter_role != HouseholdRole.OWNER:
            raise PolicyViolationError("not_owner", "Only the household owner can invite members")

        if any((member.email or "").strip().lower() == invited for member in members):
            raise PolicyViolationError("already_member", f"{invited} is already a member")

        if self.is_at_member_limit(members):
            raise PolicyViolationError(
                "member_limit",
                f"A household can have at most {self.max_active_members} active members",
            )

        return invited
