"""Per-child progress counters toward unearned badges."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import case, delete, exists, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .criteria import AmountThreshold, CountThreshold, Criteria, GoalThreshold
from .evaluator import Evaluation
from .models import BadgeDefinition, ProgressRecord, utcnow
from .persistence import BadgeProgress, ChildBadge, open_session
from .state import get_measure


def is_monotonic(criteria: Criteria) -> bool:
    """True when progress for ``criteria`` may only ever increase."""

    if isinstance(criteria, (CountThreshold, GoalThreshold)):
        return True
    if isinstance(criteria, AmountThreshold):
        return get_measure(criteria.measure_field).lifetime
    return False


def _to_record(row: BadgeProgress) -> ProgressRecord:
    return ProgressRecord(
        child_id=row.child_id,
        badge_id=row.badge_id,
        current_progress=row.current_progress,
        target_progress=row.target_progress,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _not_awarded(child_id: str, badge_id: str):
    return ~exists().where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)


class ProgressStore:
    """Reads and writes :class:`BadgeProgress` rows.

    Every write is a single statement guarded by the (child, badge) unique
    constraint or a conditional ``WHERE`` so concurrent events for the same
    child never lose an increment or move a counter backwards.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, child_id: str, badge_id: str) -> Optional[ProgressRecord]:
        with open_session(self._engine) as session:
            row = session.exec(
                select(BadgeProgress).where(
                    BadgeProgress.child_id == child_id, BadgeProgress.badge_id == badge_id
                )
            ).first()
            return _to_record(row) if row else None

    def get_or_create(self, child_id: str, badge_id: str, target: int, *, initial: int = 0) -> ProgressRecord:
        existing = self.get(child_id, badge_id)
        if existing is not None:
            return existing
        now = utcnow()
        with open_session(self._engine) as session:
            row = BadgeProgress(
                child_id=child_id,
                badge_id=badge_id,
                current_progress=initial,
                target_progress=target,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                return _to_record(row)
        # Another writer created the row first.
        winner = self.get(child_id, badge_id)
        if winner is None:
            raise RuntimeError(f"Progress row for {child_id}/{badge_id} vanished after a conflicting insert.")
        return winner

    def update(self, record: ProgressRecord, new_progress: int, *, monotonic: bool) -> bool:
        """Store ``new_progress`` for ``record``.

        Monotonic updates only apply when they raise the stored value. Either
        way nothing is written once the badge has been awarded. Returns True
        when a row changed.
        """

        condition = (
            BadgeProgress.current_progress < new_progress
            if monotonic
            else BadgeProgress.current_progress != new_progress
        )
        now = utcnow()
        with open_session(self._engine) as session:
            result = session.connection().execute(
                update(BadgeProgress)
                .where(
                    BadgeProgress.child_id == record.child_id,
                    BadgeProgress.badge_id == record.badge_id,
                    condition,
                    _not_awarded(record.child_id, record.badge_id),
                )
                .values(current_progress=new_progress, updated_at=now)
            )
            changed = result.rowcount
            session.commit()
        if changed:
            record.current_progress = new_progress
            record.updated_at = now
            return True
        return False

    def record(self, child_id: str, badge: BadgeDefinition, evaluation: Evaluation) -> Optional[ProgressRecord]:
        """Persist the outcome of an evaluation that did not earn the badge."""

        if not badge.criteria.tracks_progress or self._is_awarded(child_id, badge.badge_id):
            return None
        record = self.get_or_create(
            child_id, badge.badge_id, evaluation.target, initial=evaluation.progress
        )
        if record.current_progress != evaluation.progress:
            self.update(record, evaluation.progress, monotonic=is_monotonic(badge.criteria))
        return record

    def increment(self, child_id: str, badge: BadgeDefinition, amount: int = 1) -> Optional[ProgressRecord]:
        """Add ``amount`` to the stored progress, capped at the record's target.

        The addition happens in a single statement so concurrent increments
        are never lost. Returns None for binary badges and earned badges.
        """

        if amount <= 0:
            raise ValueError("Progress increments must be positive.")
        if not badge.criteria.tracks_progress or self._is_awarded(child_id, badge.badge_id):
            return None
        record = self.get_or_create(child_id, badge.badge_id, badge.criteria.target_units)
        raised = BadgeProgress.current_progress + amount
        with open_session(self._engine) as session:
            session.connection().execute(
                update(BadgeProgress)
                .where(
                    BadgeProgress.child_id == child_id,
                    BadgeProgress.badge_id == badge.badge_id,
                    _not_awarded(child_id, badge.badge_id),
                )
                .values(
                    current_progress=case(
                        (raised > BadgeProgress.target_progress, BadgeProgress.target_progress),
                        else_=raised,
                    ),
                    updated_at=utcnow(),
                )
            )
            session.commit()
        return self.get(child_id, badge.badge_id) or record

    def set_value(self, child_id: str, badge: BadgeDefinition, value: int) -> Optional[ProgressRecord]:
        """Overwrite the stored progress with ``value``, capped at the record's target."""

        if value < 0:
            raise ValueError("Progress cannot be negative.")
        if not badge.criteria.tracks_progress or self._is_awarded(child_id, badge.badge_id):
            return None
        record = self.get_or_create(child_id, badge.badge_id, badge.criteria.target_units)
        self.update(record, min(value, record.target_progress), monotonic=False)
        return record

    def delete(self, child_id: str, badge_id: str) -> bool:
        with open_session(self._engine) as session:
            result = session.connection().execute(
                delete(BadgeProgress).where(
                    BadgeProgress.child_id == child_id, BadgeProgress.badge_id == badge_id
                )
            )
            removed = result.rowcount
            session.commit()
        return bool(removed)

    def in_progress(self, child_id: str) -> List[ProgressRecord]:
        """Progress rows for badges the child has not earned, closest first."""

        with open_session(self._engine) as session:
            rows = session.exec(
                select(BadgeProgress).where(
                    BadgeProgress.child_id == child_id,
                    ~exists().where(
                        ChildBadge.child_id == BadgeProgress.child_id,
                        ChildBadge.badge_id == BadgeProgress.badge_id,
                    ),
                )
            ).all()
        records = [_to_record(row) for row in rows]
        records.sort(key=lambda record: (-record.ratio, record.badge_id))
        return records

    def _is_awarded(self, child_id: str, badge_id: str) -> bool:
        with open_session(self._engine) as session:
            found = session.exec(
                select(ChildBadge.id).where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)
            ).first()
        return found is not None


__all__ = ["ProgressStore", "is_monotonic"]
