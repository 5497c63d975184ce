"""Rewards gate: spending points on cosmetic rewards and equipping them."""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from .catalog import RewardCatalog
from .exceptions import (
    AlreadyUnlockedError,
    ChildNotFoundError,
    InsufficientPointsError,
    UnlockNotFoundError,
)
from .models import RewardKind, RewardListing, RewardUnlock, utcnow
from .ops import StructuredLogger
from .persistence import EQUIPPED_COLUMNS, ChildProfile, ChildReward, open_session


def _to_unlock(row: ChildReward) -> RewardUnlock:
    return RewardUnlock(
        child_id=row.child_id,
        reward_id=row.reward_id,
        reward_kind=RewardKind(row.reward_kind),
        points_spent=row.points_spent,
        unlocked_at=row.unlocked_at,
        is_equipped=row.is_equipped,
    )


class RewardsGate:
    """State machine per (child, reward): locked, unlocked, equipped.

    Points are debited with one conditional ``UPDATE`` so two concurrent
    purchases can never take ``available_points`` below zero.
    """

    def __init__(
        self,
        engine: Engine,
        catalog: RewardCatalog,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._engine = engine
        self._catalog = catalog
        self._logger = logger or StructuredLogger()

    def unlock(self, child_id: str, reward_id: str) -> RewardUnlock:
        reward = self._catalog.get(reward_id, active_only=True)
        with open_session(self._engine) as session:
            if session.get(ChildProfile, child_id) is None:
                raise ChildNotFoundError(f"Child '{child_id}' is not enrolled.")
            if self._find(session, child_id, reward_id) is not None:
                raise AlreadyUnlockedError(f"Reward '{reward.name}' is already unlocked.")

            debited = session.connection().execute(
                update(ChildProfile)
                .where(
                    ChildProfile.child_id == child_id,
                    ChildProfile.available_points >= reward.points_cost,
                )
                .values(
                    available_points=ChildProfile.available_points - reward.points_cost,
                    updated_at=utcnow(),
                )
            ).rowcount
            if not debited:
                session.rollback()
                raise InsufficientPointsError(
                    f"Reward '{reward.name}' costs {reward.points_cost} points."
                )
            row = ChildReward(
                child_id=child_id,
                reward_id=reward.reward_id,
                reward_kind=reward.kind.value,
                points_spent=reward.points_cost,
                unlocked_at=utcnow(),
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise AlreadyUnlockedError(f"Reward '{reward.name}' is already unlocked.") from exc

        self._logger.log(
            "reward_unlocked", child_id=child_id, reward=reward.name, points_spent=reward.points_cost
        )
        return _to_unlock(row)

    def equip(self, child_id: str, reward_id: str) -> RewardUnlock:
        """Equip an unlocked reward, replacing whatever held the same slot."""

        reward = self._catalog.get(reward_id)
        with open_session(self._engine) as session:
            row = self._require_unlock(session, child_id, reward_id)
            connection = session.connection()
            # Profile first: it serialises concurrent equips for the same child.
            connection.execute(
                update(ChildProfile)
                .where(ChildProfile.child_id == child_id)
                .values({EQUIPPED_COLUMNS[row.reward_kind]: reward.value, "updated_at": utcnow()})
            )
            connection.execute(
                update(ChildReward)
                .where(
                    ChildReward.child_id == child_id,
                    ChildReward.reward_kind == row.reward_kind,
                    ChildReward.reward_id != reward_id,
                    ChildReward.is_equipped == True,  # noqa: E712
                )
                .values(is_equipped=False)
            )
            connection.execute(
                update(ChildReward).where(ChildReward.id == row.id).values(is_equipped=True)
            )
            session.commit()

        self._logger.log("reward_equipped", child_id=child_id, reward=reward.name, kind=row.reward_kind)
        unlock = _to_unlock(row)
        unlock.is_equipped = True
        return unlock

    def unequip(self, child_id: str, reward_id: str) -> RewardUnlock:
        reward = self._catalog.get(reward_id)
        with open_session(self._engine) as session:
            row = self._require_unlock(session, child_id, reward_id)
            if not row.is_equipped:
                return _to_unlock(row)
            column = EQUIPPED_COLUMNS[row.reward_kind]
            connection = session.connection()
            connection.execute(
                update(ChildProfile)
                .where(ChildProfile.child_id == child_id, getattr(ChildProfile, column) == reward.value)
                .values({column: None, "updated_at": utcnow()})
            )
            connection.execute(
                update(ChildReward).where(ChildReward.id == row.id).values(is_equipped=False)
            )
            session.commit()

        self._logger.log("reward_unequipped", child_id=child_id, reward=reward.name, kind=row.reward_kind)
        unlock = _to_unlock(row)
        unlock.is_equipped = False
        return unlock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def unlocks(self, child_id: str) -> List[RewardUnlock]:
        with open_session(self._engine) as session:
            rows = session.exec(
                select(ChildReward)
                .where(ChildReward.child_id == child_id)
                .order_by(ChildReward.unlocked_at, ChildReward.id)
            ).all()
        return [_to_unlock(row) for row in rows]

    def listing(self, child_id: Optional[str] = None, *, kind: RewardKind | None = None) -> List[RewardListing]:
        """Active rewards, annotated for ``child_id`` when one is given."""

        rewards = self._catalog.listing(kind=kind)
        if child_id is None:
            return [RewardListing(reward=reward) for reward in rewards]
        with open_session(self._engine) as session:
            profile = session.get(ChildProfile, child_id)
            if profile is None:
                raise ChildNotFoundError(f"Child '{child_id}' is not enrolled.")
            owned = {
                row.reward_id: row
                for row in session.exec(select(ChildReward).where(ChildReward.child_id == child_id)).all()
            }
        return [
            RewardListing(
                reward=reward,
                is_unlocked=reward.reward_id in owned,
                is_equipped=reward.reward_id in owned and owned[reward.reward_id].is_equipped,
                can_afford=profile.available_points >= reward.points_cost,
            )
            for reward in rewards
        ]

    @staticmethod
    def _find(session, child_id: str, reward_id: str) -> Optional[ChildReward]:
        return session.exec(
            select(ChildReward).where(ChildReward.child_id == child_id, ChildReward.reward_id == reward_id)
        ).first()

    def _require_unlock(self, session, child_id: str, reward_id: str) -> ChildReward:
        row = self._find(session, child_id, reward_id)
        if row is None:
            raise UnlockNotFoundError(f"Reward '{reward_id}' has not been unlocked by '{child_id}'.")
        return row


__all__ = ["RewardsGate"]
