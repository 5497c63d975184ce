"""Award ledger: earned badges and the points they credit."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Set

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .exceptions import BadgeNotFoundError, ChildNotFoundError
from .models import AwardRecord, BadgeDefinition, utcnow
from .ops import StructuredLogger
from .persistence import BadgeProgress, ChildBadge, ChildProfile, open_session


def _to_award(row: ChildBadge) -> AwardRecord:
    return AwardRecord(
        child_id=row.child_id,
        badge_id=row.badge_id,
        points_awarded=row.points_awarded,
        earned_at=row.earned_at,
        is_new=row.is_new,
        is_displayed=row.is_displayed,
        earned_context=json.loads(row.earned_context) if row.earned_context else None,
    )


class AwardLedger:
    """Owns :class:`ChildBadge` rows and the point totals on :class:`ChildProfile`."""

    def __init__(self, engine: Engine, *, logger: StructuredLogger | None = None) -> None:
        self._engine = engine
        self._logger = logger or StructuredLogger()

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------
    def ensure_profile(self, child_id: str) -> ChildProfile:
        """Create the points profile for ``child_id`` if it does not exist yet."""

        existing = self.find_profile(child_id)
        if existing is not None:
            return existing
        with open_session(self._engine) as session:
            profile = ChildProfile(child_id=child_id)
            session.add(profile)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
            else:
                return profile
        return self.profile(child_id)

    def find_profile(self, child_id: str) -> Optional[ChildProfile]:
        with open_session(self._engine) as session:
            return session.get(ChildProfile, child_id)

    def profile(self, child_id: str) -> ChildProfile:
        profile = self.find_profile(child_id)
        if profile is None:
            raise ChildNotFoundError(f"Child '{child_id}' is not enrolled.")
        return profile

    # ------------------------------------------------------------------
    # Awarding
    # ------------------------------------------------------------------
    def try_award(
        self,
        child_id: str,
        badge: BadgeDefinition,
        context: Optional[Mapping[str, Any]] = None,
        *,
        earned_at: Optional[datetime] = None,
    ) -> bool:
        """Record ``badge`` for ``child_id`` and credit its points.

        The award row, the point credit and the removal of the progress row
        commit together. Returns False when the child already holds the badge,
        in which case nothing changes.
        """

        with open_session(self._engine) as session:
            session.add(
                ChildBadge(
                    child_id=child_id,
                    badge_id=badge.badge_id,
                    points_awarded=badge.points,
                    earned_at=earned_at or utcnow(),
                    earned_context=json.dumps(dict(context), default=str) if context else None,
                )
            )
            try:
                session.flush()
            except IntegrityError:
                session.rollback()
                self._logger.log("badge_award_conflict", child_id=child_id, badge=badge.code)
                return False

            connection = session.connection()
            credited = connection.execute(
                update(ChildProfile)
                .where(ChildProfile.child_id == child_id)
                .values(
                    total_points=ChildProfile.total_points + badge.points,
                    available_points=ChildProfile.available_points + badge.points,
                    updated_at=utcnow(),
                )
            ).rowcount
            if not credited:
                session.rollback()
                raise ChildNotFoundError(f"Child '{child_id}' is not enrolled.")
            connection.execute(
                delete(BadgeProgress).where(
                    BadgeProgress.child_id == child_id, BadgeProgress.badge_id == badge.badge_id
                )
            )
            session.commit()

        self._logger.log("badge_awarded", child_id=child_id, badge=badge.code, points=badge.points)
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def earned(self, child_id: str, *, new_only: bool = False) -> List[AwardRecord]:
        """Awards for ``child_id``, most recent first."""

        query = select(ChildBadge).where(ChildBadge.child_id == child_id)
        if new_only:
            query = query.where(ChildBadge.is_new == True)  # noqa: E712
        with open_session(self._engine) as session:
            rows = session.exec(query.order_by(ChildBadge.earned_at.desc(), ChildBadge.id.desc())).all()
        return [_to_award(row) for row in rows]

    def earned_badge_ids(self, child_id: str) -> Set[str]:
        with open_session(self._engine) as session:
            return set(session.exec(select(ChildBadge.badge_id).where(ChildBadge.child_id == child_id)).all())

    def get(self, child_id: str, badge_id: str) -> Optional[AwardRecord]:
        with open_session(self._engine) as session:
            row = session.exec(
                select(ChildBadge).where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)
            ).first()
        return _to_award(row) if row else None

    # ------------------------------------------------------------------
    # Flags
    # ------------------------------------------------------------------
    def acknowledge(self, child_id: str, badge_ids: Optional[Iterable[str]] = None) -> int:
        """Clear the ``is_new`` flag. Without ``badge_ids`` every new badge is acknowledged."""

        statement = update(ChildBadge).where(
            ChildBadge.child_id == child_id, ChildBadge.is_new == True  # noqa: E712
        )
        if badge_ids is not None:
            ids = list(badge_ids)
            if not ids:
                return 0
            statement = statement.where(ChildBadge.badge_id.in_(ids))
        with open_session(self._engine) as session:
            cleared = session.connection().execute(statement.values(is_new=False)).rowcount
            session.commit()
        if cleared:
            self._logger.log("badges_acknowledged", child_id=child_id, count=cleared)
        return cleared

    def set_displayed(self, child_id: str, badge_id: str, displayed: bool) -> AwardRecord:
        with open_session(self._engine) as session:
            changed = session.connection().execute(
                update(ChildBadge)
                .where(ChildBadge.child_id == child_id, ChildBadge.badge_id == badge_id)
                .values(is_displayed=displayed)
            ).rowcount
            session.commit()
        award = self.get(child_id, badge_id) if changed else None
        if award is None:
            raise BadgeNotFoundError(f"Child '{child_id}' has not earned badge '{badge_id}'.")
        return award


__all__ = ["AwardLedger"]
