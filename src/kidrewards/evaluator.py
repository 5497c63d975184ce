"""Pure evaluation of badge criteria against a child snapshot."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Optional

from .criteria import (
    AllOf,
    AmountThreshold,
    CountThreshold,
    Criteria,
    GoalThreshold,
    PercentageThreshold,
    SingleAction,
    StreakThreshold,
    TimeCondition,
)
from .exceptions import MissingMeasureError
from .models import PERIOD_CLOSE_TRIGGERS, DomainEvent, as_utc
from .money import to_cents, whole_percent
from .state import ChildSnapshot, get_measure


@dataclass(frozen=True, slots=True)
class Evaluation:
    progress: int
    target: int
    earned: bool


def evaluate(
    criteria: Criteria,
    snapshot: ChildSnapshot,
    prior: Optional[int] = None,
    *,
    event: Optional[DomainEvent] = None,
    target: Optional[int] = None,
) -> Evaluation:
    """Compute progress toward ``criteria`` and whether it is now satisfied.

    ``prior`` is the progress stored for the badge before this event, if any.
    Progress for lifetime measures never falls below it; live measures report
    whatever the snapshot currently says. ``target`` overrides the descriptor's
    own target, so a stored progress record keeps the goal it was created with.
    """

    handler = _HANDLERS.get(type(criteria))
    if handler is None:
        raise TypeError(f"Unsupported criteria descriptor: {criteria!r}")
    if target is None or not criteria.tracks_progress:
        target = criteria.target_units
    return handler(criteria, snapshot, prior, event, target)


def _threshold(progress: int, target: int) -> Evaluation:
    return Evaluation(progress=progress, target=target, earned=progress >= target)


def _high_water(value: int, prior: Optional[int]) -> int:
    if prior is None:
        return value
    return max(value, prior)


def _require(snapshot: ChildSnapshot, field: str):
    value = snapshot.measure(field)
    if value is None:
        raise MissingMeasureError(f"Snapshot for '{snapshot.child_id}' has no value for '{field}'.")
    return value


def _single_action(criteria: SingleAction, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    done = snapshot.has_done(criteria.action_type)
    return Evaluation(progress=1 if done else 0, target=1, earned=done)


def _count(criteria: CountThreshold, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    value = int(_require(snapshot, criteria.measure_field))
    return _threshold(_high_water(value, prior), target)


def _goal(criteria: GoalThreshold, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    return _threshold(_high_water(snapshot.goals_completed, prior), target)


def _amount(criteria: AmountThreshold, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    cents = to_cents(_require(snapshot, criteria.measure_field))
    if get_measure(criteria.measure_field).lifetime:
        cents = _high_water(cents, prior)
    return _threshold(cents, target)


def _streak(criteria: StreakThreshold, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    value = int(_require(snapshot, criteria.measure_field))
    return _threshold(value, target)


def _percentage(criteria: PercentageThreshold, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    if event is not None and event.kind not in PERIOD_CLOSE_TRIGGERS:
        # Ratios are only final once the period closes.
        return Evaluation(progress=prior or 0, target=target, earned=False)
    ratio = snapshot.measure(criteria.measure_field)
    if ratio is None:
        ratio = Decimal("0")
    return Evaluation(
        progress=whole_percent(Decimal(ratio)),
        target=target,
        earned=Decimal(ratio) >= Decimal(target),
    )


def _time_condition(criteria: TimeCondition, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    moment = event.timestamp if event is not None else as_utc(snapshot.as_of)
    held = _TIME_PREDICATES[criteria.condition](moment, snapshot)
    return Evaluation(progress=1 if held else 0, target=1, earned=held)


def _all_of(criteria: AllOf, snapshot: ChildSnapshot, prior, event, target: int) -> Evaluation:
    satisfied = sum(1 for item in criteria.criteria if evaluate(item, snapshot, event=event).earned)
    return _threshold(satisfied, target)


def _same_day_as_allowance(moment: datetime, snapshot: ChildSnapshot) -> bool:
    if snapshot.last_allowance_at is None:
        return False
    return as_utc(snapshot.last_allowance_at).date() == moment.date()


def _end_of_month(moment: datetime, snapshot: ChildSnapshot) -> bool:
    days_in_month = calendar.monthrange(moment.year, moment.month)[1]
    return moment.day >= days_in_month - 2


_TIME_PREDICATES: Dict[str, Callable[[datetime, ChildSnapshot], bool]] = {
    "same_day_as_allowance": _same_day_as_allowance,
    "weekend": lambda moment, _snapshot: moment.weekday() >= 5,
    "early_bird": lambda moment, _snapshot: moment.hour < 9,
    "night_owl": lambda moment, _snapshot: moment.hour >= 21,
    "start_of_month": lambda moment, _snapshot: moment.day <= 3,
    "end_of_month": _end_of_month,
}

_HANDLERS: Dict[type, Callable[..., Evaluation]] = {
    SingleAction: _single_action,
    CountThreshold: _count,
    GoalThreshold: _goal,
    AmountThreshold: _amount,
    StreakThreshold: _streak,
    PercentageThreshold: _percentage,
    TimeCondition: _time_condition,
    AllOf: _all_of,
}


__all__ = ["Evaluation", "evaluate"]
