"""Badge criteria descriptors.

Each criteria kind is its own frozen dataclass so a descriptor can only carry
the target that makes sense for it. Raw catalog configuration is turned into
descriptors by :func:`parse_criteria`, which rejects configurations that
populate the wrong target field, more than one target, or a measure of the
wrong kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, FrozenSet, Mapping, Tuple, Union

from .exceptions import CriteriaConfigError, MissingMeasureError
from .money import to_cents, to_decimal
from .state import Measure, MeasureKind, get_measure


class CriteriaKind(str, Enum):
    SINGLE_ACTION = "single_action"
    COUNT_THRESHOLD = "count_threshold"
    AMOUNT_THRESHOLD = "amount_threshold"
    STREAK_THRESHOLD = "streak_threshold"
    PERCENTAGE_THRESHOLD = "percentage_threshold"
    GOAL_THRESHOLD = "goal_threshold"
    TIME_CONDITION = "time_condition"
    ALL_OF = "all_of"


TIME_CONDITIONS: FrozenSet[str] = frozenset(
    {
        "same_day_as_allowance",
        "weekend",
        "early_bird",
        "night_owl",
        "start_of_month",
        "end_of_month",
    }
)


@dataclass(frozen=True, slots=True)
class SingleAction:
    kind: ClassVar[CriteriaKind] = CriteriaKind.SINGLE_ACTION
    tracks_progress: ClassVar[bool] = False

    action_type: str

    @property
    def target_units(self) -> int:
        return 1


@dataclass(frozen=True, slots=True)
class CountThreshold:
    kind: ClassVar[CriteriaKind] = CriteriaKind.COUNT_THRESHOLD
    tracks_progress: ClassVar[bool] = True

    measure_field: str
    count_target: int

    @property
    def target_units(self) -> int:
        return self.count_target


@dataclass(frozen=True, slots=True)
class AmountThreshold:
    kind: ClassVar[CriteriaKind] = CriteriaKind.AMOUNT_THRESHOLD
    tracks_progress: ClassVar[bool] = True

    measure_field: str
    amount_target: Decimal

    @property
    def target_units(self) -> int:
        return to_cents(self.amount_target)


@dataclass(frozen=True, slots=True)
class StreakThreshold:
    kind: ClassVar[CriteriaKind] = CriteriaKind.STREAK_THRESHOLD
    tracks_progress: ClassVar[bool] = True

    measure_field: str
    streak_target: int

    @property
    def target_units(self) -> int:
        return self.streak_target


@dataclass(frozen=True, slots=True)
class PercentageThreshold:
    kind: ClassVar[CriteriaKind] = CriteriaKind.PERCENTAGE_THRESHOLD
    tracks_progress: ClassVar[bool] = True

    measure_field: str
    percentage_target: int

    @property
    def target_units(self) -> int:
        return self.percentage_target


@dataclass(frozen=True, slots=True)
class GoalThreshold:
    kind: ClassVar[CriteriaKind] = CriteriaKind.GOAL_THRESHOLD
    tracks_progress: ClassVar[bool] = True

    goal_target: int

    @property
    def target_units(self) -> int:
        return self.goal_target


@dataclass(frozen=True, slots=True)
class TimeCondition:
    kind: ClassVar[CriteriaKind] = CriteriaKind.TIME_CONDITION
    tracks_progress: ClassVar[bool] = False

    condition: str

    @property
    def target_units(self) -> int:
        return 1


@dataclass(frozen=True, slots=True)
class AllOf:
    """Compound criteria: every sub-criterion must hold at the same time."""

    kind: ClassVar[CriteriaKind] = CriteriaKind.ALL_OF
    tracks_progress: ClassVar[bool] = True

    criteria: Tuple["Criteria", ...]

    @property
    def target_units(self) -> int:
        return len(self.criteria)


Criteria = Union[
    SingleAction,
    CountThreshold,
    AmountThreshold,
    StreakThreshold,
    PercentageThreshold,
    GoalThreshold,
    TimeCondition,
    AllOf,
]

# Target field each kind must populate, and nothing else.
TARGET_FIELDS: Dict[CriteriaKind, str] = {
    CriteriaKind.SINGLE_ACTION: "action_type",
    CriteriaKind.COUNT_THRESHOLD: "count_target",
    CriteriaKind.AMOUNT_THRESHOLD: "amount_target",
    CriteriaKind.STREAK_THRESHOLD: "streak_target",
    CriteriaKind.PERCENTAGE_THRESHOLD: "percentage_target",
    CriteriaKind.GOAL_THRESHOLD: "goal_target",
    CriteriaKind.TIME_CONDITION: "time_condition",
    CriteriaKind.ALL_OF: "all_of",
}

MEASURE_KINDS: Dict[CriteriaKind, MeasureKind] = {
    CriteriaKind.COUNT_THRESHOLD: MeasureKind.COUNT,
    CriteriaKind.AMOUNT_THRESHOLD: MeasureKind.AMOUNT,
    CriteriaKind.STREAK_THRESHOLD: MeasureKind.STREAK,
    CriteriaKind.PERCENTAGE_THRESHOLD: MeasureKind.PERCENTAGE,
}


def parse_criteria(config: Mapping[str, Any]) -> Criteria:
    """Build a criteria descriptor from a raw configuration mapping."""

    if not isinstance(config, Mapping):
        raise CriteriaConfigError("Criteria configuration must be a mapping.")
    raw_kind = config.get("type")
    try:
        kind = CriteriaKind(raw_kind)
    except ValueError as exc:
        raise CriteriaConfigError(f"Unknown criteria type {raw_kind!r}.") from exc

    expected = TARGET_FIELDS[kind]
    populated = [name for name in TARGET_FIELDS.values() if config.get(name) not in (None, "", [])]
    if populated != [expected]:
        if expected not in populated:
            raise CriteriaConfigError(f"Criteria '{kind.value}' requires '{expected}'.")
        extra = ", ".join(name for name in populated if name != expected)
        raise CriteriaConfigError(f"Criteria '{kind.value}' must not set: {extra}.")

    measure = None
    if kind in MEASURE_KINDS:
        measure = _measure_for(kind, config.get("measure_field"))
    elif config.get("measure_field"):
        raise CriteriaConfigError(f"Criteria '{kind.value}' does not take a measure_field.")

    return _BUILDERS[kind](config[expected], measure)


def _measure_for(kind: CriteriaKind, name: Any) -> Measure:
    if not name:
        raise CriteriaConfigError(f"Criteria '{kind.value}' requires 'measure_field'.")
    try:
        measure = get_measure(str(name))
    except MissingMeasureError as exc:
        raise CriteriaConfigError(str(exc)) from exc
    if measure.kind is not MEASURE_KINDS[kind]:
        raise CriteriaConfigError(
            f"Measure '{measure.name}' is a {measure.kind.value} measure and cannot back '{kind.value}'."
        )
    return measure


def _positive_int(value: Any, label: str) -> int:
    if isinstance(value, bool):
        raise CriteriaConfigError(f"{label} must be a whole number.")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise CriteriaConfigError(f"{label} must be a whole number.") from exc
    if number != value and str(number) != str(value):
        raise CriteriaConfigError(f"{label} must be a whole number.")
    if number <= 0:
        raise CriteriaConfigError(f"{label} must be greater than zero.")
    return number


def _required(measure: Measure | None, kind: CriteriaKind) -> Measure:
    if measure is None:
        raise CriteriaConfigError(f"Criteria '{kind.value}' requires 'measure_field'.")
    return measure


def _build_single_action(value: Any, _measure: Measure | None) -> Criteria:
    return SingleAction(action_type=str(value))


def _build_count(value: Any, measure: Measure | None) -> Criteria:
    measure = _required(measure, CriteriaKind.COUNT_THRESHOLD)
    return CountThreshold(measure_field=measure.name, count_target=_positive_int(value, "count_target"))


def _build_amount(value: Any, measure: Measure | None) -> Criteria:
    measure = _required(measure, CriteriaKind.AMOUNT_THRESHOLD)
    try:
        amount = to_decimal(value)
    except (TypeError, InvalidOperation) as exc:
        raise CriteriaConfigError("amount_target must be a monetary amount.") from exc
    if amount <= Decimal("0"):
        raise CriteriaConfigError("amount_target must be greater than zero.")
    return AmountThreshold(measure_field=measure.name, amount_target=amount)


def _build_streak(value: Any, measure: Measure | None) -> Criteria:
    measure = _required(measure, CriteriaKind.STREAK_THRESHOLD)
    return StreakThreshold(measure_field=measure.name, streak_target=_positive_int(value, "streak_target"))


def _build_percentage(value: Any, measure: Measure | None) -> Criteria:
    measure = _required(measure, CriteriaKind.PERCENTAGE_THRESHOLD)
    target = _positive_int(value, "percentage_target")
    if target > 100:
        raise CriteriaConfigError("percentage_target must be between 1 and 100.")
    return PercentageThreshold(measure_field=measure.name, percentage_target=target)


def _build_goal(value: Any, _measure: Measure | None) -> Criteria:
    return GoalThreshold(goal_target=_positive_int(value, "goal_target"))


def _build_time(value: Any, _measure: Measure | None) -> Criteria:
    condition = str(value)
    if condition not in TIME_CONDITIONS:
        raise CriteriaConfigError(f"Unknown time condition '{condition}'.")
    return TimeCondition(condition=condition)


def _build_all_of(value: Any, _measure: Measure | None) -> Criteria:
    if not isinstance(value, (list, tuple)):
        raise CriteriaConfigError("all_of must be a list of criteria.")
    return AllOf(criteria=tuple(parse_criteria(item) for item in value))


_BUILDERS: Dict[CriteriaKind, Callable[[Any, Measure | None], Criteria]] = {
    CriteriaKind.SINGLE_ACTION: _build_single_action,
    CriteriaKind.COUNT_THRESHOLD: _build_count,
    CriteriaKind.AMOUNT_THRESHOLD: _build_amount,
    CriteriaKind.STREAK_THRESHOLD: _build_streak,
    CriteriaKind.PERCENTAGE_THRESHOLD: _build_percentage,
    CriteriaKind.GOAL_THRESHOLD: _build_goal,
    CriteriaKind.TIME_CONDITION: _build_time,
    CriteriaKind.ALL_OF: _build_all_of,
}


def criteria_to_config(criteria: Criteria) -> Dict[str, Any]:
    """Inverse of :func:`parse_criteria`, used when exporting a catalog."""

    config: Dict[str, Any] = {"type": criteria.kind.value}
    if isinstance(criteria, AllOf):
        config["all_of"] = [criteria_to_config(item) for item in criteria.criteria]
        return config
    if isinstance(criteria, SingleAction):
        config["action_type"] = criteria.action_type
    elif isinstance(criteria, CountThreshold):
        config.update(measure_field=criteria.measure_field, count_target=criteria.count_target)
    elif isinstance(criteria, AmountThreshold):
        config.update(measure_field=criteria.measure_field, amount_target=str(criteria.amount_target))
    elif isinstance(criteria, StreakThreshold):
        config.update(measure_field=criteria.measure_field, streak_target=criteria.streak_target)
    elif isinstance(criteria, PercentageThreshold):
        config.update(measure_field=criteria.measure_field, percentage_target=criteria.percentage_target)
    elif isinstance(criteria, GoalThreshold):
        config["goal_target"] = criteria.goal_target
    elif isinstance(criteria, TimeCondition):
        config["time_condition"] = criteria.condition
    return config


__all__ = [
    "AllOf",
    "AmountThreshold",
    "CountThreshold",
    "Criteria",
    "CriteriaKind",
    "GoalThreshold",
    "PercentageThreshold",
    "SingleAction",
    "StreakThreshold",
    "TIME_CONDITIONS",
    "TimeCondition",
    "criteria_to_config",
    "parse_criteria",
]
