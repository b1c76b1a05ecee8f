"""
Split Settlement Engine

Divides a shared expense among household members and checks, before a
transaction is sent, that every share can actually be settled.

MONEY: All arithmetic is Decimal, quantized to cents with ROUND_HALF_UP.
Every participant but the last gets the rounded equal share; the last gets
whatever is left, so the shares always sum to the amount exactly.

    10.00 / 2 -> 5.00, 5.00
    10.01 / 2 -> 5.01, 5.00
    0.10 / 4 -> 0.03, 0.03, 0.03, 0.01
    100.00 / 3 -> 33.33, 33.33, 33.34

IMPORTANT: check_mutation() never fixes anything. It reports every issue it
finds and the transaction is not sent.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Iterable, Optional

from household_core.config import get_settings
from household_core.models.account import Account
from household_core.models.household import HouseholdMember
from household_core.models.money import CENT, ZERO, Numeric, money_sum, to_money
from household_core.models.transaction import (
    Split,
    Transaction,
    TransactionType,
    ValidationIssue,
)
from household_core.permissions import PermissionGate


DefaultAccountFn = Callable[[str], Optional[str]]


class SplitErrorKind(str, Enum):
    INSUFFICIENT_BALANCE = "insufficient_balance"


class SettlementValidationError(Exception):
    """A transaction failed client-side checks and must not be sent."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        summary = "; ".join(issue.message for issue in issues)
        super().__init__(f"Transaction rejected: {summary}")

    @property
    def user_errors(self) -> dict[str, str]:
        """Per-participant messages, for showing next to each share."""
        return {i.user_id: i.message for i in self.issues if i.user_id}


def equal_shares(amount: Numeric, count: int) -> list[Decimal]:
    """Equal cent shares of amount; the last one absorbs the rounding."""
    if count <= 0:
        return []
    total = to_money(amount)
    if total < ZERO:
        raise ValueError("Cannot split a negative amount")
    share = (total / count).quantize(CENT, rounding=ROUND_HALF_UP)
    if count > 1:
        # rounding up must not leave the last share negative: 0.05 / 7 would
        # give six 0.01 shares and -0.01, so the share is capped at 0.00
        share = min(share, (total / (count - 1)).quantize(CENT, rounding=ROUND_DOWN))
    shares = [share] * (count - 1)
    shares.append(total - money_sum(shares))
    return shares


class SplitSettlementEngine:
    """
    Split arithmetic and pre-submit settlement checks.
    """

    def __init__(self, tolerance: Optional[Decimal] = None):
        """
        Args:
            tolerance: Allowed |sum(splits) - amount|. Defaults to the
                       configured split tolerance (one cent).
        """
        self._tolerance = (
            tolerance if tolerance is not None else get_settings().household.split_tolerance
        )

    @property
    def tolerance(self) -> Decimal:
        return self._tolerance

    @staticmethod
    def participants(members: Iterable[HouseholdMember]) -> list[HouseholdMember]:
        """EDITOR/OWNER members with a resolvable email, in membership order."""
        return [m for m in members if m.is_settlement_eligible]

    # =========================================================================
    # SPLIT
    # =========================================================================

    def split(
        self,
        amount: Numeric,
        members: list[HouseholdMember],
        existing: Optional[list[Split]] = None,
        default_account_for: Optional[DefaultAccountFn] = None,
    ) -> list[Split]:
        """
        Divide amount equally among eligible members.

        Args:
            amount: Total to divide (>= 0)
            members: Household members; ineligible ones are skipped
            existing: Previous splits; their account choices are kept per user
            default_account_for: Supplies an account for users without one

        Returns:
            One Split per participant, summing exactly to amount
        """
        participants = self.participants(members)
        shares = equal_shares(amount, len(participants))
        previous = {s.user_id: s for s in existing or []}

        splits = []
        for member, share in zip(participants, shares):
            account_id = previous[member.user_id].account_id if member.user_id in previous else None
            if account_id is None and default_account_for is not None:
                account_id = default_account_for(member.user_id)
            splits.append(Split(user_id=member.user_id, amount=share, account_id=account_id))
        return splits

    # =========================================================================
    # BALANCE VALIDATION
    # =========================================================================

    @staticmethod
    def validate(
        splits: list[Split],
        accounts: list[Account],
        paid: bool = True,
    ) -> dict[str, SplitErrorKind]:
        """
        Per-participant balance errors.

        Unpaid transactions have none. Splits without an account, with an
        account not in `accounts`, or on a CREDIT account are not checked.
        """
        if not paid:
            return {}

        by_id = {a.id: a for a in accounts}
        errors: dict[str, SplitErrorKind] = {}
        for split in splits:
            account = by_id.get(split.account_id) if split.account_id else None
            if account is None or account.is_credit:
                continue
            if split.amount > account.available:
                errors[split.user_id] = SplitErrorKind.INSUFFICIENT_BALANCE
        return errors

    # =========================================================================
    # PRE-SUBMIT CHECK
    # =========================================================================

    def collect_issues(
        self,
        transaction: Transaction,
        members: list[HouseholdMember],
        accounts: list[Account],
        current_user_id: Optional[str] = None,
    ) -> list[ValidationIssue]:
        """
        Every reason the transaction must not be sent.

        `accounts` is the set the acting user may pick; any account outside
        it is reported as not_permitted. With current_user_id, each split is
        also held to the accounts its participant may settle against.
        """
        if transaction.type == TransactionType.TRANSFER:
            issues = self._transfer_issues(transaction, accounts)
            return issues + self._permission_issues(transaction, accounts, current_user_id)

        issues = []
        if not transaction.account_id:
            issues.append(ValidationIssue(
                field="account_id",
                issue_type="missing",
                message="An account or card is required",
            ))

        if transaction.is_split:
            issues.extend(self._split_issues(transaction, members, accounts))
        elif transaction.type == TransactionType.EXPENSE and transaction.paid:
            issues.extend(self._expense_balance_issues(transaction, accounts))
        issues.extend(self._permission_issues(transaction, accounts, current_user_id))
        return issues

    def check_mutation(
        self,
        transaction: Transaction,
        members: list[HouseholdMember],
        accounts: list[Account],
        current_user_id: Optional[str] = None,
    ) -> None:
        """
        Raises:
            SettlementValidationError: If the transaction must not be sent
        """
        issues = self.collect_issues(transaction, members, accounts, current_user_id)
        if issues:
            raise SettlementValidationError(issues)

    def _split_issues(
        self,
        transaction: Transaction,
        members: list[HouseholdMember],
        accounts: list[Account],
    ) -> list[ValidationIssue]:
        splits = transaction.splits
        if not splits:
            return [ValidationIssue(
                field="splits",
                issue_type="missing",
                message="Split the expense between members",
            )]

        issues = []
        eligible = {m.user_id for m in self.participants(members)}
        seen: set[str] = set()
        for split in splits:
            if split.user_id in seen:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="duplicate_participant",
                    message=f"User {split.user_id} appears in more than one split",
                    user_id=split.user_id,
                ))
            seen.add(split.user_id)
            if split.user_id not in eligible:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="not_a_participant",
                    message=f"User {split.user_id} is not an editor or owner of this household",
                    user_id=split.user_id,
                ))

        total = money_sum(s.amount for s in splits)
        if abs(total - transaction.amount) > self._tolerance:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="sum_mismatch",
                message=f"Splits add up to {total}, expected {transaction.amount}",
            ))

        by_id = {a.id: a for a in accounts}
        for user_id in self.validate(splits, accounts, transaction.paid):
            split = next(s for s in splits if s.user_id == user_id)
            available = by_id[split.account_id].available
            issues.append(ValidationIssue(
                field="splits",
                issue_type=SplitErrorKind.INSUFFICIENT_BALANCE.value,
                message=f"Available balance {available} is less than the share {split.amount}",
                user_id=user_id,
            ))
        return issues

    @staticmethod
    def _expense_balance_issues(
        transaction: Transaction,
        accounts: list[Account],
    ) -> list[ValidationIssue]:
        account = next((a for a in accounts if a.id == transaction.account_id), None)
        if account is None or account.is_credit:
            return []
        if transaction.amount > account.available:
            return [ValidationIssue(
                field="account_id",
                issue_type=SplitErrorKind.INSUFFICIENT_BALANCE.value,
                message=f"Available balance {account.available} is less than {transaction.amount}",
            )]
        return []

    @staticmethod
    def _permission_issues(
        transaction: Transaction,
        accounts: list[Account],
        current_user_id: Optional[str],
    ) -> list[ValidationIssue]:
        permitted = {a.id for a in accounts}
        issues = []
        for field in ("account_id", "from_account_id", "to_account_id"):
            account_id = getattr(transaction, field)
            if account_id and account_id not in permitted:
                issues.append(ValidationIssue(
                    field=field,
                    issue_type="not_permitted",
                    message=f"Account {account_id} is not available in this household",
                ))

        if not transaction.is_split:
            return issues
        for split in transaction.splits:
            if not split.account_id:
                continue
            if current_user_id is None:
                allowed = permitted
            else:
                allowed = {a.id for a in PermissionGate.accounts_for_member(
                    accounts, split.user_id, split.user_id == current_user_id
                )}
            if split.account_id not in allowed:
                issues.append(ValidationIssue(
                    field="splits",
                    issue_type="not_permitted",
                    message=f"Account {split.account_id} cannot settle the share of {split.user_id}",
                    user_id=split.user_id,
                ))
        return issues

    @staticmethod
    def _transfer_issues(
        transaction: Transaction,
        accounts: list[Account],
    ) -> list[ValidationIssue]:
        if not transaction.from_account_id or not transaction.to_account_id:
            return [ValidationIssue(
                field="from_account_id",
                issue_type="missing",
                message="Transfers need a source and a destination account",
            )]
        if transaction.from_account_id == transaction.to_account_id:
            return [ValidationIssue(
                field="to_account_id",
                issue_type="same_account",
                message="Source and destination accounts must differ",
            )]

        source = next((a for a in accounts if a.id == transaction.from_account_id), None)
        if source is not None and transaction.amount > source.available:
            return [ValidationIssue(
                field="from_account_id",
                issue_type=SplitErrorKind.INSUFFICIENT_BALANCE.value,
                message=f"Available balance {source.available} is less than {transaction.amount}",
            )]
        return []
