"""
Transaction Data Models

A split expense carries one Split per participating member. The model only
enforces structure (a split transaction has splits, a plain one has none);
settlement rules that need the member list and account balances live in
household_core.settlement.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from household_core.models.household import WireModel
from household_core.models.money import to_money


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"
    ALLOCATION = "ALLOCATION"


class Split(WireModel):
    """One member's share of an expense, settled against account_id."""

    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    account_id: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def quantize(cls, v: Any) -> Decimal:
        return to_money(v)

    def to_payload(self) -> dict:
        payload = {"userId": self.user_id, "amount": float(self.amount)}
        if self.account_id:
            payload["accountId"] = self.account_id
        return payload


class Transaction(WireModel):
    """
    A transaction as created or updated by the client.

    amount is always positive; the type carries the direction.
    """

    id: Optional[str] = None
    household_id: Optional[str] = None
    type: TransactionType = TransactionType.EXPENSE
    amount: Decimal = Field(..., gt=0)
    description: str = ""
    category_name: Optional[str] = None
    transaction_date: Optional[date] = Field(default=None, alias="date")
    paid: bool = True
    account_id: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    is_split: bool = False
    splits: list[Split] = Field(default_factory=list)

    @field_validator("amount", mode="before")
    @classmethod
    def quantize(cls, v: Any) -> Decimal:
        return to_money(v)

    @model_validator(mode="after")
    def validate_split_shape(self) -> "Transaction":
        if self.is_split:
            if self.type != TransactionType.EXPENSE:
                raise ValueError("Only expenses can be split")
            if not self.splits:
                raise ValueError("A split transaction needs at least one split")
        elif self.splits:
            raise ValueError("Splits given for a transaction that is not split")
        if (
            self.type == TransactionType.TRANSFER
            and self.from_account_id
            and self.from_account_id == self.to_account_id
        ):
            raise ValueError("Transfer source and destination must differ")
        return self

    def to_payload(self) -> dict:
        """Body for POST /transactions and PATCH /transactions/:id."""
        payload: dict[str, Any] = {
            "type": self.type.value,
            "amount": float(self.amount),
            "description": self.description,
            "paid": self.paid,
        }
        if self.household_id:
            payload["householdId"] = self.household_id
        if self.category_name:
            payload["categoryName"] = self.category_name
        if self.transaction_date:
            payload["date"] = self.transaction_date.isoformat()
        if self.type == TransactionType.TRANSFER:
            payload["fromAccountId"] = self.from_account_id
            payload["toAccountId"] = self.to_account_id
        elif self.account_id:
            payload["accountId"] = self.account_id
        if self.is_split:
            payload["isSplit"] = True
            payload["splits"] = [split.to_payload() for split in self.splits]
        return payload


class ValidationIssue(BaseModel):
    """A single reason a mutation was rejected before being sent."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., description="Field or participant the issue is about")
    issue_type: str = Field(..., description="Machine-readable issue kind")
    message: str = Field(..., description="Human-readable description of the issue")
    user_id: Optional[str] = None
