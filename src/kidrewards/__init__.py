"""KidRewards: achievement badges, points and cosmetic rewards for children."""

from .awards import AwardLedger
from .catalog import BadgeCatalog, RewardCatalog, load_catalog_file
from .config import Settings
from .criteria import (
    AllOf,
    AmountThreshold,
    CountThreshold,
    CriteriaKind,
    GoalThreshold,
    PercentageThreshold,
    SingleAction,
    StreakThreshold,
    TimeCondition,
    parse_criteria,
)
from .dispatcher import TriggerDispatcher
from .evaluator import Evaluation, evaluate
from .exceptions import (
    AlreadyUnlockedError,
    BadgeNotFoundError,
    CatalogError,
    ChildNotFoundError,
    CriteriaConfigError,
    InsufficientPointsError,
    KidRewardsError,
    MissingMeasureError,
    NotFoundError,
    RewardNotFoundError,
    UnlockNotFoundError,
)
from .household import Household
from .models import (
    AchievementSummary,
    AwardRecord,
    BadgeCategory,
    BadgeDefinition,
    BadgeListing,
    BadgeRarity,
    ChildPoints,
    DispatchResult,
    DomainEvent,
    ProgressRecord,
    RewardDefinition,
    RewardKind,
    RewardListing,
    RewardUnlock,
    TriggerKind,
)
from .ops import StructuredLogger
from .progress import ProgressStore
from .rewards import RewardsGate
from .seed import default_catalogs
from .service import AchievementEngine
from .state import ChildSnapshot, ChildStateReader

__all__ = [
    "AchievementEngine",
    "AchievementSummary",
    "AllOf",
    "AlreadyUnlockedError",
    "AmountThreshold",
    "AwardLedger",
    "AwardRecord",
    "BadgeCatalog",
    "BadgeCategory",
    "BadgeDefinition",
    "BadgeListing",
    "BadgeNotFoundError",
    "BadgeRarity",
    "CatalogError",
    "ChildNotFoundError",
    "ChildPoints",
    "ChildSnapshot",
    "ChildStateReader",
    "CountThreshold",
    "CriteriaConfigError",
    "CriteriaKind",
    "DispatchResult",
    "DomainEvent",
    "Evaluation",
    "GoalThreshold",
    "Household",
    "InsufficientPointsError",
    "KidRewardsError",
    "MissingMeasureError",
    "NotFoundError",
    "PercentageThreshold",
    "ProgressRecord",
    "ProgressStore",
    "RewardCatalog",
    "RewardDefinition",
    "RewardKind",
    "RewardListing",
    "RewardNotFoundError",
    "RewardUnlock",
    "RewardsGate",
    "Settings",
    "SingleAction",
    "StreakThreshold",
    "StructuredLogger",
    "TimeCondition",
    "TriggerDispatcher",
    "TriggerKind",
    "UnlockNotFoundError",
    "default_catalogs",
    "evaluate",
    "load_catalog_file",
    "parse_criteria",
]
