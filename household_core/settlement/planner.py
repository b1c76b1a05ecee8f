"""
Split Planner

Keeps the splits of one expense being edited, and decides when they are
recomputed.

CRITICAL: An automatic re-split happens only when splitting is first
activated or when the set of participants changes. Changing the amount never
re-splits, so manual edits survive; divide_equally() is the explicit way to
start over.
"""

from decimal import Decimal
from typing import Optional

from household_core.models.household import HouseholdMember
from household_core.models.money import ZERO, Numeric, to_money
from household_core.models.transaction import Split
from household_core.settlement.engine import (
    DefaultAccountFn,
    SplitSettlementEngine,
    equal_shares,
)


class SplitPlanner:
    """Editable split state for a single expense."""

    def __init__(
        self,
        engine: SplitSettlementEngine,
        default_account_for: Optional[DefaultAccountFn] = None,
    ):
        self._engine = engine
        self._default_account_for = default_account_for
        self._amount: Decimal = ZERO
        self._members: list[HouseholdMember] = []
        self._splits: list[Split] = []
        self._active = False
        self._auto_split_done = False
        self._participant_ids: tuple[str, ...] = ()

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def amount(self) -> Decimal:
        return self._amount

    @property
    def splits(self) -> list[Split]:
        return list(self._splits)

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    def activate(self, amount: Numeric, members: list[HouseholdMember]) -> list[Split]:
        self._amount = to_money(amount)
        self._members = list(members)
        self._active = True
        self._maybe_auto_split()
        return self.splits

    def deactivate(self) -> None:
        self._active = False
        self._splits = []
        self._auto_split_done = False
        self._participant_ids = ()

    def update_members(self, members: list[HouseholdMember]) -> list[Split]:
        self._members = list(members)
        if self._active:
            self._maybe_auto_split()
        return self.splits

    def update_amount(self, amount: Numeric) -> list[Split]:
        """Record a new total. Existing shares are left as they are."""
        self._amount = to_money(amount)
        return self.splits

    def set_account(self, user_id: str, account_id: Optional[str]) -> list[Split]:
        self._splits = [
            s.model_copy(update={"account_id": account_id}) if s.user_id == user_id else s
            for s in self._splits
        ]
        return self.splits

    def divide_equally(self) -> list[Split]:
        if self._active:
            self._resplit()
        return self.splits

    def _maybe_auto_split(self) -> None:
        if self._amount <= ZERO:
            return
        current = self._current_participant_ids()
        if not self._auto_split_done or current != self._participant_ids:
            self._resplit()

    def _resplit(self) -> None:
        if self._amount <= ZERO:
            return
        self._splits = self._engine.split(
            self._amount,
            self._members,
            existing=self._splits,
            default_account_for=self._default_account_for,
        )
        if self._splits:
            self._auto_split_done = True
            self._participant_ids = self._current_participant_ids()

    def _current_participant_ids(self) -> tuple[str, ...]:
        return tuple(m.user_id for m in self._engine.participants(self._members))

    # =========================================================================
    # MANUAL EDIT
    # =========================================================================

    def edit_share(self, user_id: str, amount: Numeric) -> list[Split]:
        """
        Set one participant's share and spread the rest over the others.

        The share is clamped to [0, total] and rounded to cents. The
        remainder is divided equally over the other participants, the last
        one taking the rounding difference.

        Raises:
            KeyError: If user_id has no split
        """
        index = next(
            (i for i, s in enumerate(self._splits) if s.user_id == user_id), None
        )
        if index is None:
            raise KeyError(user_id)

        share = min(max(to_money(amount), ZERO), self._amount)
        updated = list(self._splits)
        updated[index] = updated[index].model_copy(update={"amount": share})

        others = [i for i in range(len(updated)) if i != index]
        if others:
            for i, other_share in zip(others, equal_shares(self._amount - share, len(others))):
                updated[i] = updated[i].model_copy(update={"amount": other_share})

        self._splits = updated
        return self.splits
