"""Split-expense settlement: arithmetic, balance checks and edit state."""

from household_core.settlement.engine import (
    SettlementValidationError,
    SplitErrorKind,
    SplitSettlementEngine,
    equal_shares,
)
from household_core.settlement.planner import SplitPlanner

__all__ = [
    "SettlementValidationError",
    "SplitErrorKind",
    "SplitPlanner",
    "SplitSettlementEngine",
    "equal_shares",
]
