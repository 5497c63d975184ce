"""Domain models used by the kidrewards package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .criteria import AmountThreshold, Criteria
from .money import from_cents


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""

    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Return ``moment`` as an aware UTC datetime. Naive values are read as UTC."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class TriggerKind(str, Enum):
    """Categories of domain events that can cause badge re-evaluation."""

    ACCOUNT_CREATED = "account_created"
    TRANSACTION_CREATED = "transaction_created"
    BALANCE_CHANGED = "balance_changed"
    SAVINGS_DEPOSIT = "savings_deposit"
    STREAK_UPDATED = "streak_updated"
    GOAL_CREATED = "goal_created"
    GOAL_COMPLETED = "goal_completed"
    TASK_COMPLETED = "task_completed"
    TASK_APPROVED = "task_approved"
    BUDGET_CHECKED = "budget_checked"
    PERIOD_CLOSED = "period_closed"


PERIOD_CLOSE_TRIGGERS: FrozenSet[TriggerKind] = frozenset({TriggerKind.PERIOD_CLOSED})


class BadgeCategory(str, Enum):
    SAVING = "saving"
    SPENDING = "spending"
    GOALS = "goals"
    CHORES = "chores"
    STREAKS = "streaks"
    MILESTONES = "milestones"
    SPECIAL = "special"


class BadgeRarity(str, Enum):
    """Rarity tiers, ordered from most to least common."""

    COMMON = "common"
    UNCOMMON = "uncommon"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"

    @property
    def level(self) -> int:
        return list(BadgeRarity).index(self) + 1


class RewardKind(str, Enum):
    """Cosmetic slots a reward can occupy. One reward per kind may be equipped."""

    AVATAR = "avatar"
    THEME = "theme"
    TITLE = "title"
    FRAME = "frame"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """An event emitted by a collaborator that may cause badges to be earned."""

    kind: TriggerKind
    child_id: str
    timestamp: datetime = field(default_factory=utcnow)
    payload: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", TriggerKind(self.kind))
        object.__setattr__(self, "timestamp", as_utc(self.timestamp))
        if not self.child_id:
            raise ValueError("DomainEvent requires a child_id.")


@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    """Immutable badge loaded from the catalog."""

    badge_id: str
    code: str
    name: str
    description: str
    category: BadgeCategory
    rarity: BadgeRarity
    points: int
    criteria: Criteria
    triggers: FrozenSet[TriggerKind]
    icon_url: str = ""
    secret: bool = False
    active: bool = True
    sort_order: int = 0
    available_until: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.available_until is not None:
            object.__setattr__(self, "available_until", as_utc(self.available_until))

    def is_available(self, at: datetime) -> bool:
        """True when the badge can still be earned at ``at``."""

        if not self.active:
            return False
        return self.available_until is None or as_utc(at) <= self.available_until


@dataclass(frozen=True, slots=True)
class RewardDefinition:
    """Immutable reward that can be bought with points."""

    reward_id: str
    name: str
    description: str
    kind: RewardKind
    value: str
    points_cost: int
    preview_url: Optional[str] = None
    active: bool = True
    sort_order: int = 0


@dataclass(slots=True)
class ProgressRecord:
    """Running counter toward a badge the child has not yet earned."""

    child_id: str
    badge_id: str
    current_progress: int
    target_progress: int
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def ratio(self) -> float:
        if self.target_progress <= 0:
            return 0.0
        return min(self.current_progress / self.target_progress, 1.0)


@dataclass(slots=True)
class AwardRecord:
    """A badge a child has earned. Created once per (child, badge)."""

    child_id: str
    badge_id: str
    points_awarded: int
    earned_at: datetime = field(default_factory=utcnow)
    is_new: bool = True
    is_displayed: bool = True
    earned_context: Optional[Dict[str, Any]] = None


@dataclass(slots=True)
class RewardUnlock:
    """A reward a child has bought."""

    child_id: str
    reward_id: str
    reward_kind: RewardKind
    points_spent: int
    unlocked_at: datetime = field(default_factory=utcnow)
    is_equipped: bool = False


@dataclass(slots=True)
class DispatchResult:
    """Outcome of dispatching one domain event."""

    event: DomainEvent
    evaluated: Tuple[str, ...] = ()
    awarded: Tuple[str, ...] = ()
    failures: Dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Views handed to the presentation layer
# ---------------------------------------------------------------------------
def _badge_fields(badge: BadgeDefinition) -> Dict[str, Any]:
    return {
        "badge_id": badge.badge_id,
        "code": badge.code,
        "name": badge.name,
        "description": badge.description,
        "icon_url": badge.icon_url,
        "category": badge.category.value,
        "rarity": badge.rarity.value,
        "points": badge.points,
        "secret": badge.secret,
    }


@dataclass(slots=True)
class BadgeListing:
    badge: BadgeDefinition
    is_earned: bool = False
    earned_at: Optional[datetime] = None
    current_progress: Optional[int] = None
    target_progress: Optional[int] = None

    @property
    def progress_percentage(self) -> Optional[float]:
        if self.current_progress is None or not self.target_progress:
            return None
        return round(self.current_progress / self.target_progress * 100, 1)

    def as_dict(self) -> Dict[str, Any]:
        payload = _badge_fields(self.badge)
        payload.update(
            {
                "is_earned": self.is_earned,
                "earned_at": self.earned_at.isoformat() if self.earned_at else None,
                "current_progress": self.current_progress,
                "target_progress": self.target_progress,
                "progress_percentage": self.progress_percentage,
            }
        )
        return payload


@dataclass(slots=True)
class EarnedBadge:
    badge: BadgeDefinition
    award: AwardRecord

    def as_dict(self) -> Dict[str, Any]:
        payload = _badge_fields(self.badge)
        payload.update(
            {
                "earned_at": self.award.earned_at.isoformat(),
                "is_new": self.award.is_new,
                "is_displayed": self.award.is_displayed,
                "points_awarded": self.award.points_awarded,
                "earned_context": self.award.earned_context,
            }
        )
        return payload


@dataclass(slots=True)
class BadgeProgressView:
    badge: BadgeDefinition
    record: ProgressRecord

    @property
    def progress_text(self) -> str:
        current, target = self.record.current_progress, self.record.target_progress
        if isinstance(self.badge.criteria, AmountThreshold):
            return f"${from_cents(current)}/${from_cents(target)}"
        return f"{current}/{target}"

    def as_dict(self) -> Dict[str, Any]:
        payload = _badge_fields(self.badge)
        payload.update(
            {
                "current_progress": self.record.current_progress,
                "target_progress": self.record.target_progress,
                "progress_percentage": round(self.record.ratio * 100, 1),
                "progress_text": self.progress_text,
            }
        )
        return payload


@dataclass(slots=True)
class RewardListing:
    reward: RewardDefinition
    is_unlocked: bool = False
    is_equipped: bool = False
    can_afford: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "reward_id": self.reward.reward_id,
            "name": self.reward.name,
            "description": self.reward.description,
            "kind": self.reward.kind.value,
            "value": self.reward.value,
            "preview_url": self.reward.preview_url,
            "points_cost": self.reward.points_cost,
            "is_unlocked": self.is_unlocked,
            "is_equipped": self.is_equipped,
            "can_afford": self.can_afford,
        }


@dataclass(slots=True)
class ChildPoints:
    """Snapshot of a child's points and equipped cosmetics."""

    child_id: str
    total_points: int
    available_points: int
    badges_earned: int = 0
    rewards_unlocked: int = 0
    equipped: Dict[RewardKind, Optional[str]] = field(default_factory=dict)

    @property
    def spent_points(self) -> int:
        return self.total_points - self.available_points

    def as_dict(self) -> Dict[str, Any]:
        return {
            "child_id": self.child_id,
            "total_points": self.total_points,
            "available_points": self.available_points,
            "spent_points": self.spent_points,
            "badges_earned": self.badges_earned,
            "rewards_unlocked": self.rewards_unlocked,
            "equipped": {kind.value: value for kind, value in self.equipped.items()},
        }


@dataclass(slots=True)
class AchievementSummary:
    total_badges: int
    earned_badges: int
    points: ChildPoints
    recent_badges: Tuple[EarnedBadge, ...]
    in_progress: Tuple[BadgeProgressView, ...]
    badges_by_category: Dict[BadgeCategory, int]

    @property
    def completion(self) -> Decimal:
        if not self.total_badges:
            return Decimal("0.00")
        return (Decimal(self.earned_badges) / Decimal(self.total_badges)).quantize(Decimal("0.01"))

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_badges": self.total_badges,
            "earned_badges": self.earned_badges,
            "completion": float(self.completion),
            "points": self.points.as_dict(),
            "recent_badges": [item.as_dict() for item in self.recent_badges],
            "in_progress": [item.as_dict() for item in self.in_progress],
            "badges_by_category": {category.value: count for category, count in self.badges_by_category.items()},
        }
