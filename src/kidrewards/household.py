"""In-memory household ledger that feeds the achievement engine.

The ledger owns every piece of child state badges are judged on (balances,
savings, tasks, goals, allowance and streak counters). Each mutation emits a
:class:`~kidrewards.models.DomainEvent` to the registered listeners, and
:meth:`Household.snapshot` answers the single state read the dispatcher makes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from .exceptions import (
    ChildNotFoundError,
    DuplicateChildError,
    GoalNotFoundError,
    InsufficientFundsError,
    TaskNotFoundError,
)
from .models import DomainEvent, TriggerKind, as_utc, utcnow
from .money import AmountLike, format_currency, percentage_of, require_positive, to_decimal
from .state import ChildSnapshot

EventListener = Callable[[DomainEvent], Any]


class EntryType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class EntryCategory(str, Enum):
    ALLOWANCE = "allowance"
    TASK = "task"
    GIFT = "gift"
    TRANSFER = "transfer"
    PURCHASE = "purchase"
    MANUAL = "manual"


@dataclass(slots=True)
class LedgerEntry:
    amount: Decimal
    type: EntryType
    description: str
    balance_after: Decimal
    category: EntryCategory = EntryCategory.MANUAL
    timestamp: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class SavingsGoal:
    name: str
    target_amount: Decimal
    saved_amount: Decimal = Decimal("0.00")
    family: bool = False
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None


@dataclass(slots=True)
class TaskCompletion:
    completion_id: str
    title: str
    reward_amount: Decimal
    completed_at: datetime
    approved: Optional[bool] = None


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _moment(at: datetime | None) -> datetime:
    return as_utc(at) if at is not None else utcnow()


class ChildLedger:
    """All household state for one child."""

    __slots__ = (
        "child_id",
        "name",
        "birthday",
        "balance",
        "savings_balance",
        "total_saved",
        "total_earned",
        "task_count",
        "approved_task_streak",
        "budget_streak",
        "saving_streak",
        "last_saving_date",
        "last_allowance_at",
        "closed_savings_rate",
        "_entries",
        "_goals",
        "_tasks",
        "_actions",
        "_monthly_saved",
        "_monthly_allowance",
    )

    def __init__(self, child_id: str, name: str, *, birthday: date | None = None) -> None:
        self.child_id = child_id
        self.name = name
        self.birthday = birthday
        self.balance = Decimal("0.00")
        self.savings_balance = Decimal("0.00")
        self.total_saved = Decimal("0.00")
        self.total_earned = Decimal("0.00")
        self.task_count = 0
        self.approved_task_streak = 0
        self.budget_streak = 0
        self.saving_streak = 0
        self.last_saving_date: Optional[date] = None
        self.last_allowance_at: Optional[datetime] = None
        self.closed_savings_rate: Optional[Decimal] = None
        self._entries: list[LedgerEntry] = []
        self._goals: dict[str, SavingsGoal] = {}
        self._tasks: dict[str, TaskCompletion] = {}
        self._actions: set[str] = set()
        self._monthly_saved: Dict[Tuple[int, int], Decimal] = {}
        self._monthly_allowance: Dict[Tuple[int, int], Decimal] = {}

    @property
    def entries(self) -> Tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    @property
    def goals(self) -> Tuple[SavingsGoal, ...]:
        return tuple(self._goals.values())

    @property
    def actions(self) -> frozenset[str]:
        return frozenset(self._actions)

    def credit(self, amount: Decimal, description: str, category: EntryCategory, at: datetime) -> LedgerEntry:
        self.balance += amount
        self.total_earned += amount
        return self._log(amount, EntryType.CREDIT, description, category, at)

    def debit(self, amount: Decimal, description: str, category: EntryCategory, at: datetime) -> LedgerEntry:
        self._ensure_sufficient_funds(amount)
        self.balance -= amount
        return self._log(amount, EntryType.DEBIT, description, category, at)

    def mark(self, action: str) -> None:
        self._actions.add(action)

    def monthly_savings_rate(self, year: int, month: int) -> Optional[Decimal]:
        """Share of the month's allowance moved to savings, ``None`` without allowance."""

        allowance = self._monthly_allowance.get((year, month), Decimal("0.00"))
        saved = self._monthly_saved.get((year, month), Decimal("0.00"))
        return percentage_of(saved, allowance)

    def _log(
        self, amount: Decimal, entry_type: EntryType, description: str, category: EntryCategory, at: datetime
    ) -> LedgerEntry:
        entry = LedgerEntry(
            amount=amount,
            type=entry_type,
            description=description,
            balance_after=self.balance,
            category=category,
            timestamp=at,
        )
        self._entries.append(entry)
        self.mark("first_transaction")
        return entry

    def _ensure_sufficient_funds(self, amount: Decimal) -> None:
        if self.balance < amount:
            raise InsufficientFundsError(
                f"'{self.name}' has insufficient funds for {format_currency(amount)}."
            )


class Household:
    """Manage children's money and activity, announcing every change."""

    __slots__ = ("_children", "_listeners")

    def __init__(self) -> None:
        self._children: Dict[str, ChildLedger] = {}
        self._listeners: List[EventListener] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def subscribe(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _emit(self, kind: TriggerKind, child_id: str, at: datetime, **payload: Any) -> None:
        event = DomainEvent(kind=kind, child_id=child_id, timestamp=at, payload=payload)
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Children
    # ------------------------------------------------------------------
    def add_child(
        self, child_id: str, name: str, *, birthday: date | None = None, at: datetime | None = None
    ) -> ChildLedger:
        if child_id in self._children:
            raise DuplicateChildError(f"Child '{child_id}' already exists.")
        ledger = ChildLedger(child_id, name, birthday=birthday)
        ledger.mark("account_created")
        self._children[child_id] = ledger
        self._emit(TriggerKind.ACCOUNT_CREATED, child_id, _moment(at))
        return ledger

    def child(self, child_id: str) -> ChildLedger:
        try:
            return self._children[child_id]
        except KeyError as exc:
            raise ChildNotFoundError(f"Child '{child_id}' does not exist.") from exc

    def children(self) -> Tuple[ChildLedger, ...]:
        return tuple(self._children.values())

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------
    def record_transaction(
        self,
        child_id: str,
        amount: AmountLike,
        entry_type: EntryType | str = EntryType.CREDIT,
        description: str = "",
        *,
        category: EntryCategory = EntryCategory.MANUAL,
        at: datetime | None = None,
    ) -> LedgerEntry:
        """Credit or debit a child's spending balance."""

        ledger = self.child(child_id)
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        if EntryType(entry_type) is EntryType.CREDIT:
            entry = ledger.credit(value, description or "Money added", category, moment)
        else:
            entry = ledger.debit(value, description or "Purchase", category, moment)
        self._announce_transaction(ledger, entry)
        return entry

    def pay_allowance(self, child_id: str, amount: AmountLike, *, at: datetime | None = None) -> LedgerEntry:
        ledger = self.child(child_id)
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        entry = ledger.credit(value, "Weekly allowance", EntryCategory.ALLOWANCE, moment)
        ledger.last_allowance_at = moment
        key = (moment.year, moment.month)
        ledger._monthly_allowance[key] = ledger._monthly_allowance.get(key, Decimal("0.00")) + value
        self._announce_transaction(ledger, entry)
        return entry

    def give_gift(
        self, child_id: str, amount: AmountLike, *, giver: str = "Family", at: datetime | None = None
    ) -> LedgerEntry:
        """Credit a gift. Gifts received on the child's birthday are remembered."""

        ledger = self.child(child_id)
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        birthday = ledger.birthday
        if birthday is not None and (birthday.month, birthday.day) == (moment.month, moment.day):
            ledger.mark("birthday_gift")
        entry = ledger.credit(value, f"Gift from {giver}", EntryCategory.GIFT, moment)
        self._announce_transaction(ledger, entry)
        return entry

    def transfer_to_sibling(
        self, from_child: str, to_child: str, amount: AmountLike, *, at: datetime | None = None
    ) -> tuple[LedgerEntry, LedgerEntry]:
        if from_child == to_child:
            raise ValueError("Cannot transfer to the same child.")
        sender = self.child(from_child)
        receiver = self.child(to_child)
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        outgoing = sender.debit(value, f"Gift to {receiver.name}", EntryCategory.TRANSFER, moment)
        incoming = receiver.credit(value, f"Gift from {sender.name}", EntryCategory.TRANSFER, moment)
        sender.mark("sibling_transfer")
        self._announce_transaction(sender, outgoing)
        self._announce_transaction(receiver, incoming)
        return outgoing, incoming

    def _announce_transaction(self, ledger: ChildLedger, entry: LedgerEntry) -> None:
        self._emit(
            TriggerKind.TRANSACTION_CREATED,
            ledger.child_id,
            entry.timestamp,
            amount=str(entry.amount),
            type=entry.type.value,
            category=entry.category.value,
        )
        self._emit(TriggerKind.BALANCE_CHANGED, ledger.child_id, entry.timestamp, new_balance=str(ledger.balance))

    # ------------------------------------------------------------------
    # Savings
    # ------------------------------------------------------------------
    def deposit_to_savings(self, child_id: str, amount: AmountLike, *, at: datetime | None = None) -> Decimal:
        """Move money from the spending balance into savings."""

        ledger = self.child(child_id)
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        ledger._ensure_sufficient_funds(value)
        ledger.balance -= value
        ledger.savings_balance += value
        ledger.total_saved += value
        key = (moment.year, moment.month)
        ledger._monthly_saved[key] = ledger._monthly_saved.get(key, Decimal("0.00")) + value
        ledger.mark("first_savings_deposit")
        streak_changed = self._advance_saving_streak(ledger, moment.date())

        self._emit(TriggerKind.SAVINGS_DEPOSIT, child_id, moment, amount=str(value))
        self._emit(TriggerKind.BALANCE_CHANGED, child_id, moment, new_balance=str(ledger.balance))
        if streak_changed:
            self._emit(TriggerKind.STREAK_UPDATED, child_id, moment, saving_streak=ledger.saving_streak)
        return ledger.savings_balance

    def withdraw_from_savings(self, child_id: str, amount: AmountLike, *, at: datetime | None = None) -> Decimal:
        ledger = self.child(child_id)
        value = require_positive(to_decimal(amount))
        if ledger.savings_balance < value:
            raise InsufficientFundsError(
                f"'{ledger.name}' has only {format_currency(ledger.savings_balance)} in savings."
            )
        moment = _moment(at)
        ledger.savings_balance -= value
        ledger.balance += value
        self._emit(TriggerKind.BALANCE_CHANGED, child_id, moment, new_balance=str(ledger.balance))
        return ledger.savings_balance

    @staticmethod
    def _advance_saving_streak(ledger: ChildLedger, day: date) -> bool:
        """Count consecutive calendar weeks (Monday start) with a deposit."""

        previous = ledger.last_saving_date
        ledger.last_saving_date = day
        if previous is not None:
            gap = (_week_start(day) - _week_start(previous)).days
            if gap == 0:
                return False
            if gap == 7:
                ledger.saving_streak += 1
                return True
        ledger.saving_streak = 1
        return True

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------
    def create_goal(
        self,
        child_id: str,
        name: str,
        target_amount: AmountLike,
        *,
        family: bool = False,
        at: datetime | None = None,
    ) -> SavingsGoal:
        ledger = self.child(child_id)
        if name in ledger._goals:
            raise ValueError(f"A goal named '{name}' already exists.")
        moment = _moment(at)
        goal = SavingsGoal(
            name=name,
            target_amount=require_positive(to_decimal(target_amount)),
            family=family,
            created_at=moment,
        )
        ledger._goals[name] = goal
        ledger.mark("first_goal_created")
        if family:
            ledger.mark("family_goal_participant")
        self._emit(TriggerKind.GOAL_CREATED, child_id, moment, goal=name, family=family)
        return goal

    def contribute_to_goal(
        self, child_id: str, name: str, amount: AmountLike, *, at: datetime | None = None
    ) -> SavingsGoal:
        """Move spending money into a goal; the goal completes once fully funded."""

        ledger = self.child(child_id)
        goal = ledger._goals.get(name)
        if goal is None:
            raise GoalNotFoundError(f"Goal '{name}' does not exist.")
        if goal.is_complete:
            raise ValueError(f"Goal '{name}' is already complete.")
        value = require_positive(to_decimal(amount))
        moment = _moment(at)
        ledger.debit(value, f"Contribution to goal: {name}", EntryCategory.MANUAL, moment)
        goal.saved_amount += value
        self._emit(TriggerKind.BALANCE_CHANGED, child_id, moment, new_balance=str(ledger.balance))
        if goal.saved_amount >= goal.target_amount:
            goal.completed_at = moment
            self._emit(TriggerKind.GOAL_COMPLETED, child_id, moment, goal=name)
        return goal

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------
    def complete_task(
        self, child_id: str, title: str, *, reward_amount: AmountLike = 0, at: datetime | None = None
    ) -> TaskCompletion:
        ledger = self.child(child_id)
        moment = _moment(at)
        completion = TaskCompletion(
            completion_id=uuid4().hex,
            title=title,
            reward_amount=to_decimal(reward_amount),
            completed_at=moment,
        )
        ledger._tasks[completion.completion_id] = completion
        ledger.mark("first_task_completed")
        self._emit(TriggerKind.TASK_COMPLETED, child_id, moment, task=title)
        return completion

    def review_task(
        self, child_id: str, completion_id: str, *, approved: bool, at: datetime | None = None
    ) -> TaskCompletion:
        """Approve or reject a completed task. Rejection breaks the approval streak."""

        ledger = self.child(child_id)
        completion = ledger._tasks.get(completion_id)
        if completion is None or completion.approved is not None:
            raise TaskNotFoundError(f"No pending task completion '{completion_id}'.")
        moment = _moment(at)
        completion.approved = approved
        if not approved:
            ledger.approved_task_streak = 0
            return completion

        ledger.task_count += 1
        ledger.approved_task_streak += 1
        if completion.reward_amount > Decimal("0"):
            entry = ledger.credit(completion.reward_amount, f"Task: {completion.title}", EntryCategory.TASK, moment)
            self._announce_transaction(ledger, entry)
        self._emit(
            TriggerKind.TASK_APPROVED,
            child_id,
            moment,
            task=completion.title,
            reward_amount=str(completion.reward_amount),
        )
        return completion

    def approve_task(
        self, child_id: str, title: str, *, reward_amount: AmountLike = 0, at: datetime | None = None
    ) -> TaskCompletion:
        completion = self.complete_task(child_id, title, reward_amount=reward_amount, at=at)
        return self.review_task(child_id, completion.completion_id, approved=True, at=at)

    # ------------------------------------------------------------------
    # Budgets and periods
    # ------------------------------------------------------------------
    def check_budget(
        self, child_id: str, spent: AmountLike, limit: AmountLike, *, at: datetime | None = None
    ) -> int:
        """Record a weekly budget check and return the under-budget streak."""

        ledger = self.child(child_id)
        spent_value = to_decimal(spent)
        limit_value = require_positive(to_decimal(limit))
        if spent_value <= limit_value:
            ledger.budget_streak += 1
        else:
            ledger.budget_streak = 0
        self._emit(
            TriggerKind.BUDGET_CHECKED,
            child_id,
            _moment(at),
            spent=str(spent_value),
            limit=str(limit_value),
        )
        return ledger.budget_streak

    def close_month(self, child_id: str, year: int, month: int, *, at: datetime | None = None) -> Optional[Decimal]:
        """Close a month and publish its savings rate."""

        ledger = self.child(child_id)
        rate = ledger.monthly_savings_rate(year, month)
        ledger.closed_savings_rate = rate
        self._emit(
            TriggerKind.PERIOD_CLOSED,
            child_id,
            _moment(at),
            period=f"{year:04d}-{month:02d}",
            savings_rate=str(rate) if rate is not None else None,
        )
        return rate

    # ------------------------------------------------------------------
    # State reads
    # ------------------------------------------------------------------
    def snapshot(self, child_id: str, *, as_of: datetime) -> ChildSnapshot:
        ledger = self.child(child_id)
        goals = ledger._goals.values()
        return ChildSnapshot(
            child_id=child_id,
            as_of=as_of,
            current_balance=ledger.balance,
            savings_balance=ledger.savings_balance,
            total_saved=ledger.total_saved,
            total_earned=ledger.total_earned,
            transaction_count=len(ledger._entries),
            task_count=ledger.task_count,
            goals_created=len(ledger._goals),
            goals_completed=sum(1 for goal in goals if goal.is_complete),
            saving_streak=ledger.saving_streak,
            last_saving_date=ledger.last_saving_date,
            approved_task_streak=ledger.approved_task_streak,
            budget_streak=ledger.budget_streak,
            monthly_savings_rate=ledger.closed_savings_rate,
            lifetime_savings_rate=percentage_of(ledger.total_saved, ledger.total_earned),
            last_allowance_at=ledger.last_allowance_at,
            actions=ledger.actions,
        )


__all__ = [
    "ChildLedger",
    "EntryCategory",
    "EntryType",
    "EventListener",
    "Household",
    "LedgerEntry",
    "SavingsGoal",
    "TaskCompletion",
]
