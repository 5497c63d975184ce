"""High level service wiring catalogs, storage and dispatch together."""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.engine import Engine

from .awards import AwardLedger
from .catalog import BadgeCatalog, RewardCatalog, load_catalog_file
from .config import RECENT_BADGE_LIMIT, SUMMARY_PROGRESS_LIMIT, Settings
from .dispatcher import AwardListener, TriggerDispatcher
from .exceptions import BadgeNotFoundError
from .models import (
    AchievementSummary,
    BadgeCategory,
    BadgeDefinition,
    BadgeListing,
    BadgeProgressView,
    ChildPoints,
    DispatchResult,
    DomainEvent,
    EarnedBadge,
    RewardKind,
    RewardListing,
    RewardUnlock,
    TriggerKind,
)
from .ops import StructuredLogger
from .persistence import EQUIPPED_COLUMNS, build_engine, create_db_and_tables
from .progress import ProgressStore
from .rewards import RewardsGate
from .seed import default_catalogs
from .state import ChildStateReader


class AchievementEngine:
    """Badges, points and cosmetic rewards for every child in a household."""

    __slots__ = (
        "_settings",
        "_logger",
        "_engine",
        "_badges",
        "_rewards",
        "_progress",
        "_ledger",
        "_gate",
        "_dispatcher",
    )

    def __init__(
        self,
        reader: ChildStateReader,
        *,
        settings: Settings | None = None,
        engine: Engine | None = None,
        badges: BadgeCatalog | None = None,
        rewards: RewardCatalog | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._settings = settings or Settings.from_env()
        self._logger = logger or StructuredLogger(path=self._settings.log_path)
        if badges is None or rewards is None:
            loaded_badges, loaded_rewards = self._load_catalogs()
            badges = loaded_badges if badges is None else badges
            rewards = loaded_rewards if rewards is None else rewards
        self._badges = badges
        self._rewards = rewards
        self._engine = engine or build_engine(self._settings)
        create_db_and_tables(self._engine)
        self._progress = ProgressStore(self._engine)
        self._ledger = AwardLedger(self._engine, logger=self._logger)
        self._gate = RewardsGate(self._engine, rewards, logger=self._logger)
        self._dispatcher = TriggerDispatcher(
            badges, reader, self._progress, self._ledger, logger=self._logger
        )

    def _load_catalogs(self) -> Tuple[BadgeCatalog, RewardCatalog]:
        if self._settings.catalog_path is not None:
            return load_catalog_file(self._settings.catalog_path, logger=self._logger)
        return default_catalogs(logger=self._logger)

    @property
    def badges(self) -> BadgeCatalog:
        return self._badges

    @property
    def rewards(self) -> RewardCatalog:
        return self._rewards

    @property
    def logger(self) -> StructuredLogger:
        return self._logger

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def enroll_child(self, child_id: str) -> ChildPoints:
        self._ledger.ensure_profile(child_id)
        return self.child_points(child_id)

    def dispatch(self, event: DomainEvent) -> DispatchResult:
        """Evaluate every badge listening for ``event``.

        ``account_created`` enrolls the child; any other event for a child
        that was never enrolled raises :class:`ChildNotFoundError`.
        """

        if event.kind is TriggerKind.ACCOUNT_CREATED:
            self._ledger.ensure_profile(event.child_id)
        else:
            self._ledger.profile(event.child_id)
        return self._dispatcher.dispatch(event)

    def on_award(self, listener: AwardListener) -> AwardListener:
        """Register ``listener`` to be called after each new award."""

        self._dispatcher.register(listener)
        return listener

    def remove_award_listener(self, listener: AwardListener) -> None:
        self._dispatcher.unregister(listener)

    def acknowledge_badges(self, child_id: str, badge_ids: Optional[Iterable[str]] = None) -> int:
        self._ledger.profile(child_id)
        return self._ledger.acknowledge(child_id, badge_ids)

    def set_badge_displayed(self, child_id: str, badge_id: str, displayed: bool) -> EarnedBadge:
        badge = self._badges.get(badge_id)
        award = self._ledger.set_displayed(child_id, badge_id, displayed)
        return EarnedBadge(badge=badge, award=award)

    def award_badge(
        self, child_id: str, code: str, context: Optional[Mapping[str, Any]] = None
    ) -> Optional[EarnedBadge]:
        """Grant the active badge ``code`` outside of event dispatch.

        Returns None when no active badge has that code or the child already
        holds it. Award listeners are not called since there is no event.
        """

        self._ledger.profile(child_id)
        badge = self._active_by_code(code)
        if badge is None:
            self._logger.log("badge_award_skipped", child_id=child_id, badge=code, reason="unknown")
            return None
        if not self._ledger.try_award(child_id, badge, {"source": "manual", **(context or {})}):
            return None
        award = self._ledger.get(child_id, badge.badge_id)
        return EarnedBadge(badge=badge, award=award) if award else None

    def increment_progress(self, child_id: str, code: str, increment: int = 1) -> Optional[BadgeProgressView]:
        """Raise the stored progress for ``code`` by ``increment``, capped at its target.

        Returns None for badges that do not track progress or are already earned.
        """

        self._ledger.profile(child_id)
        badge = self._badges.by_code(code)
        record = self._progress.increment(child_id, badge, increment)
        return BadgeProgressView(badge=badge, record=record) if record else None

    def set_progress(self, child_id: str, code: str, value: int) -> Optional[BadgeProgressView]:
        """Overwrite the stored progress for ``code``, capped at its target."""

        self._ledger.profile(child_id)
        badge = self._badges.by_code(code)
        record = self._progress.set_value(child_id, badge, value)
        return BadgeProgressView(badge=badge, record=record) if record else None

    def _active_by_code(self, code: str) -> Optional[BadgeDefinition]:
        try:
            badge = self._badges.by_code(code)
        except BadgeNotFoundError:
            return None
        return badge if badge.active else None

    def unlock_reward(self, child_id: str, reward_id: str) -> RewardUnlock:
        return self._gate.unlock(child_id, reward_id)

    def equip_reward(self, child_id: str, reward_id: str) -> RewardUnlock:
        return self._gate.equip(child_id, reward_id)

    def unequip_reward(self, child_id: str, reward_id: str) -> RewardUnlock:
        return self._gate.unequip(child_id, reward_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_badges(
        self,
        *,
        category: BadgeCategory | None = None,
        include_secret: bool = False,
        child_id: str | None = None,
    ) -> List[BadgeListing]:
        """Active badges, annotated with earned state and progress for ``child_id``.

        Secret badges are hidden unless ``include_secret`` is set or the child
        has already earned them.
        """

        earned = {}
        progress = {}
        if child_id is not None:
            self._ledger.profile(child_id)
            earned = {award.badge_id: award for award in self._ledger.earned(child_id)}
            progress = {record.badge_id: record for record in self._progress.in_progress(child_id)}

        listings: List[BadgeListing] = []
        for badge in self._badges.active():
            if category is not None and badge.category is not category:
                continue
            award = earned.get(badge.badge_id)
            if badge.secret and not include_secret and award is None:
                continue
            record = progress.get(badge.badge_id) if award is None else None
            listings.append(
                BadgeListing(
                    badge=badge,
                    is_earned=award is not None,
                    earned_at=award.earned_at if award else None,
                    current_progress=record.current_progress if record else None,
                    target_progress=record.target_progress if record else None,
                )
            )
        return listings

    def earned_badges(
        self, child_id: str, *, new_only: bool = False, category: BadgeCategory | None = None
    ) -> List[EarnedBadge]:
        self._ledger.profile(child_id)
        earned = [
            EarnedBadge(badge=self._badges.get(award.badge_id), award=award)
            for award in self._ledger.earned(child_id, new_only=new_only)
            if award.badge_id in self._badges
        ]
        if category is not None:
            earned = [item for item in earned if item.badge.category is category]
        return earned

    def badge_progress(self, child_id: str) -> List[BadgeProgressView]:
        self._ledger.profile(child_id)
        views: List[BadgeProgressView] = []
        for record in self._progress.in_progress(child_id):
            if record.badge_id not in self._badges:
                continue
            badge = self._badges.get(record.badge_id)
            if badge.active:
                views.append(BadgeProgressView(badge=badge, record=record))
        return views

    def child_points(self, child_id: str) -> ChildPoints:
        profile = self._ledger.profile(child_id)
        return ChildPoints(
            child_id=child_id,
            total_points=profile.total_points,
            available_points=profile.available_points,
            badges_earned=len(self._ledger.earned_badge_ids(child_id)),
            rewards_unlocked=len(self._gate.unlocks(child_id)),
            equipped={kind: getattr(profile, EQUIPPED_COLUMNS[kind.value]) for kind in RewardKind},
        )

    def achievement_summary(self, child_id: str) -> AchievementSummary:
        earned = self.earned_badges(child_id)
        categories = Counter(item.badge.category for item in earned)
        return AchievementSummary(
            total_badges=len(self._badges.active()),
            earned_badges=len(earned),
            points=self.child_points(child_id),
            recent_badges=tuple(earned[:RECENT_BADGE_LIMIT]),
            in_progress=tuple(self.badge_progress(child_id)[:SUMMARY_PROGRESS_LIMIT]),
            badges_by_category=dict(categories),
        )

    def reward_catalog(self, child_id: str | None = None, *, kind: RewardKind | None = None) -> List[RewardListing]:
        return self._gate.listing(child_id, kind=kind)

    def child_rewards(self, child_id: str) -> List[RewardListing]:
        """Rewards the child owns, most recently unlocked first."""

        self._ledger.profile(child_id)
        unlocks = sorted(self._gate.unlocks(child_id), key=lambda unlock: unlock.unlocked_at, reverse=True)
        return [
            RewardListing(
                reward=self._rewards.get(unlock.reward_id),
                is_unlocked=True,
                is_equipped=unlock.is_equipped,
                can_afford=True,
            )
            for unlock in unlocks
        ]


__all__ = ["AchievementEngine"]
