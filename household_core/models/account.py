"""
Account Data Models

An account belongs to exactly one household. Personal accounts also carry
the user id of the member who owns them (account_owner_id).
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from household_core.models.household import WireModel
from household_core.models.money import ZERO, to_money


class AccountType(str, Enum):
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"
    CASH = "CASH"
    INVESTMENT = "INVESTMENT"


class AccountBalance(BaseModel):
    """Derived balances; total always equals available + allocated."""

    model_config = ConfigDict(frozen=True)

    total: Decimal
    available: Decimal
    allocated: Decimal


class Account(WireModel):
    id: str = Field(..., min_length=1)
    household_id: str = ""
    name: str = ""
    type: AccountType
    balance: Decimal = Field(
        default=ZERO,
        description="Legacy balance, used only when no split balances are present"
    )
    total_balance: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None
    allocated_balance: Optional[Decimal] = None
    credit_limit: Optional[Decimal] = None
    is_active: bool = True
    is_personal: bool = False
    account_owner_id: Optional[str] = None

    @field_validator(
        "balance", "total_balance", "available_balance", "allocated_balance", "credit_limit"
    )
    @classmethod
    def quantize(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return to_money(v) if v is not None else None

    @property
    def is_credit(self) -> bool:
        return self.type == AccountType.CREDIT

    def balances(self) -> AccountBalance:
        """
        Derive total/available/allocated the way the backend defines them.

        - allocated: backend value, else 0
        - total: backend value, else available + allocated when either is
          present, else the legacy balance
        - available: backend value, else max(0, total - allocated)
        """
        allocated = self.allocated_balance if self.allocated_balance is not None else ZERO

        if self.total_balance is not None:
            total = self.total_balance
        elif self.available_balance is not None or self.allocated_balance is not None:
            total = (self.available_balance or ZERO) + (self.allocated_balance or ZERO)
        else:
            total = self.balance

        if self.available_balance is not None:
            available = self.available_balance
        else:
            available = max(ZERO, total - allocated)

        return AccountBalance(
            total=available + allocated,
            available=available,
            allocated=allocated,
        )

    @property
    def available(self) -> Decimal:
        return self.balances().available


class AvailableAccounts(WireModel):
    """Response of GET /accounts/available."""

    accounts: list[Account] = Field(default_factory=list)
    has_personal_accounts: bool = False
