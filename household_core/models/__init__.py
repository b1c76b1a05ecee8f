"""
Data Models Package

Pydantic models for households, memberships, accounts, transactions,
the local household selection, and audit events.
"""

from household_core.models.account import (
    Account,
    AccountBalance,
    AccountType,
    AvailableAccounts,
)
from household_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from household_core.models.household import (
    AuthUser,
    Household,
    HouseholdMember,
    HouseholdRole,
    MemberUser,
    ResolvedHousehold,
    SelectionRecord,
    UserProfile,
)
from household_core.models.money import CENT, ZERO, money_sum, to_money
from household_core.models.transaction import (
    Split,
    Transaction,
    TransactionType,
    ValidationIssue,
)

__all__ = [
    # Households
    "AuthUser",
    "Household",
    "HouseholdMember",
    "HouseholdRole",
    "MemberUser",
    "ResolvedHousehold",
    "SelectionRecord",
    "UserProfile",
    # Accounts
    "Account",
    "AccountBalance",
    "AccountType",
    "AvailableAccounts",
    # Transactions
    "Split",
    "Transaction",
    "TransactionType",
    "ValidationIssue",
    # Money
    "CENT",
    "ZERO",
    "money_sum",
    "to_money",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
