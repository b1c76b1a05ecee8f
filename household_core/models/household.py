"""
Household Data Models

Models for households, memberships, the locally persisted household
selection, and the resolver's output.

Wire format is camelCase JSON; attributes are snake_case.

IMPORTANT: A member's sharing posture (allow_personal_account_access plus
shared_account_ids) belongs to the membership, not to the account.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)
from pydantic.alias_generators import to_camel


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WireModel(BaseModel):
    """Base for models exchanged with the REST backend."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
    )


# =============================================================================
# ENUMS
# =============================================================================

class HouseholdRole(str, Enum):
    """Role of a user inside one household."""
    OWNER = "OWNER"
    EDITOR = "EDITOR"
    VIEWER = "VIEWER"


SETTLEMENT_ROLES = frozenset({HouseholdRole.OWNER, HouseholdRole.EDITOR})


# =============================================================================
# IDENTITY
# =============================================================================

class AuthUser(WireModel):
    """The authenticated identity, as issued by the auth collaborator."""

    uid: str = Field(..., min_length=1)
    email: Optional[str] = None


class UserProfile(WireModel):
    """Backend user record returned by identity sync and /auth/me."""

    id: str = Field(..., min_length=1)
    email: str
    display_name: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# HOUSEHOLDS
# =============================================================================

class Household(WireModel):
    """
    A household the current user belongs to.

    The oldest household (by created_at, then joined_at) is the user's
    personal household; any other is a shared household.
    """

    id: str = Field(..., min_length=1)
    name: str = ""
    role: HouseholdRole = HouseholdRole.VIEWER
    created_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "joined_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _utc(v)

    @property
    def sort_key(self) -> datetime:
        return self.created_at or self.joined_at or EPOCH


class MemberUser(WireModel):
    id: str = Field(..., min_length=1)
    email: str = ""
    display_name: Optional[str] = None


class HouseholdMember(WireModel):
    """One user's participation and sharing posture inside one household."""

    id: str = Field(..., min_length=1)
    household_id: str = ""
    user_id: str = Field(..., min_length=1)
    role: HouseholdRole = HouseholdRole.VIEWER
    allow_personal_account_access: bool = False
    shared_account_ids: list[str] = Field(
        default_factory=list,
        description="Personal accounts this member exposes to the household, in order"
    )
    user: Optional[MemberUser] = None

    @field_validator("shared_account_ids")
    @classmethod
    def ids_unique(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("shared_account_ids must not contain duplicates")
        return v

    @property
    def email(self) -> Optional[str]:
        return self.user.email if self.user and self.user.email else None

    @property
    def is_settlement_eligible(self) -> bool:
        """EDITOR/OWNER members with a resolvable user+email can take a split share."""
        return self.role in SETTLEMENT_ROLES and self.email is not None

    def shares_account(self, account_id: str) -> bool:
        """Both sharing flags are required for other members to see an account."""
        return self.allow_personal_account_access and account_id in self.shared_account_ids


# =============================================================================
# LOCAL SELECTION
# =============================================================================

class SelectionRecord(BaseModel):
    """
    The household the user explicitly chose to act in.

    CRITICAL: The id is only ever replaced by an explicit user action, or
    cleared when the household is gone. There is no expiry.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    role: Optional[HouseholdRole] = None
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def differs_from(self, household: Household) -> bool:
        """True when the server copy carries a different name or role."""
        return self.name != household.name or self.role != household.role

    def same_selection(self, other: Optional["SelectionRecord"]) -> bool:
        return (
            other is not None
            and other.id == self.id
            and other.name == self.name
            and other.role == self.role
        )


class ResolvedHousehold(BaseModel):
    """
    Output of the household resolver.

    household_id None means "not ready"; consumers must never treat it as
    a reason to pick some other household.
    """

    model_config = ConfigDict(frozen=True)

    household_id: Optional[str] = None
    household: Optional[Household] = None
    is_loading: bool = False
    is_degraded: bool = Field(
        default=False,
        description="household is the local cached copy, not the server record"
    )
    not_found: bool = Field(
        default=False,
        description="The server list loaded and does not contain household_id"
    )

    @property
    def is_ready(self) -> bool:
        return self.household_id is not None
