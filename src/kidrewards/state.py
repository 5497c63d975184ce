"""Child state snapshots and the measures criteria read from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet, Optional, Protocol, Union

from .exceptions import MissingMeasureError

MeasureValue = Union[int, Decimal, None]


class MeasureKind(str, Enum):
    COUNT = "count"
    AMOUNT = "amount"
    STREAK = "streak"
    PERCENTAGE = "percentage"


@dataclass(frozen=True, slots=True)
class Measure:
    """A named child-state quantity.

    ``lifetime`` measures only ever grow (cumulative totals and counters), so
    progress derived from them can be treated as a high-water mark. Live
    measures such as the current balance may drop between events.
    """

    name: str
    kind: MeasureKind
    lifetime: bool


MEASURES: Dict[str, Measure] = {
    measure.name: measure
    for measure in (
        Measure("current_balance", MeasureKind.AMOUNT, lifetime=False),
        Measure("savings_balance", MeasureKind.AMOUNT, lifetime=False),
        Measure("total_saved", MeasureKind.AMOUNT, lifetime=True),
        Measure("total_earned", MeasureKind.AMOUNT, lifetime=True),
        Measure("transaction_count", MeasureKind.COUNT, lifetime=True),
        Measure("task_count", MeasureKind.COUNT, lifetime=True),
        Measure("goals_completed", MeasureKind.COUNT, lifetime=True),
        Measure("saving_streak", MeasureKind.STREAK, lifetime=False),
        Measure("approved_task_streak", MeasureKind.STREAK, lifetime=False),
        Measure("budget_streak", MeasureKind.STREAK, lifetime=False),
        Measure("monthly_savings_rate", MeasureKind.PERCENTAGE, lifetime=False),
        Measure("lifetime_savings_rate", MeasureKind.PERCENTAGE, lifetime=False),
    )
}


def get_measure(name: str) -> Measure:
    try:
        return MEASURES[name]
    except KeyError as exc:
        raise MissingMeasureError(f"Unknown measure field '{name}'.") from exc


@dataclass(frozen=True, slots=True)
class ChildSnapshot:
    """Point-in-time view of the child state the evaluator reads.

    Amounts are :class:`~decimal.Decimal` dollars, percentages are
    :class:`~decimal.Decimal` percent (``None`` when the period had no
    allowance to compare against).
    """

    child_id: str
    as_of: datetime
    current_balance: Decimal = Decimal("0.00")
    savings_balance: Decimal = Decimal("0.00")
    total_saved: Decimal = Decimal("0.00")
    total_earned: Decimal = Decimal("0.00")
    transaction_count: int = 0
    task_count: int = 0
    goals_created: int = 0
    goals_completed: int = 0
    saving_streak: int = 0
    last_saving_date: Optional[date] = None
    approved_task_streak: int = 0
    budget_streak: int = 0
    monthly_savings_rate: Optional[Decimal] = None
    lifetime_savings_rate: Optional[Decimal] = None
    last_allowance_at: Optional[datetime] = None
    actions: FrozenSet[str] = field(default_factory=frozenset)

    def measure(self, name: str) -> MeasureValue:
        """Return the value of the measure called ``name``."""

        get_measure(name)
        return getattr(self, name)

    def has_done(self, action_type: str) -> bool:
        return action_type in self.actions


class ChildStateReader(Protocol):
    """Collaborator that owns child state and answers one bounded read."""

    def snapshot(self, child_id: str, *, as_of: datetime) -> ChildSnapshot:
        ...


__all__ = [
    "MEASURES",
    "ChildSnapshot",
    "ChildStateReader",
    "Measure",
    "MeasureKind",
    "MeasureValue",
    "get_measure",
]
