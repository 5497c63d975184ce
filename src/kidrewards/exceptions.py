"""Custom exception hierarchy for the kidrewards package."""

from __future__ import annotations


class KidRewardsError(Exception):
    """Base class for all kidrewards specific errors."""


class CatalogError(KidRewardsError):
    """Raised when a badge or reward catalog entry cannot be loaded."""


class CriteriaConfigError(CatalogError):
    """Raised when a badge criteria configuration is malformed."""


class MissingMeasureError(KidRewardsError):
    """Raised when a criteria references a measure the snapshot cannot supply."""


class NotFoundError(KidRewardsError, LookupError):
    """Base class for failed lookups."""


class ChildNotFoundError(NotFoundError):
    """Raised when a child has not been enrolled with the engine."""


class BadgeNotFoundError(NotFoundError):
    """Raised when a badge identifier or code is unknown."""


class RewardNotFoundError(NotFoundError):
    """Raised when a reward does not exist or is no longer offered."""


class UnlockNotFoundError(NotFoundError):
    """Raised when equipping or unequipping a reward the child never unlocked."""


class InsufficientPointsError(KidRewardsError):
    """Raised when a child cannot afford a reward."""


class AlreadyUnlockedError(KidRewardsError):
    """Raised when a child tries to unlock a reward they already own."""


class HouseholdError(KidRewardsError):
    """Base class for errors raised by the in-memory household ledger."""


class DuplicateChildError(HouseholdError):
    """Raised when attempting to add a child that already exists."""


class InsufficientFundsError(HouseholdError):
    """Raised when a ledger operation would result in a negative balance."""


class GoalNotFoundError(HouseholdError, LookupError):
    """Raised when a requested savings goal cannot be found."""


class TaskNotFoundError(HouseholdError, LookupError):
    """Raised when a task completion cannot be found or was already reviewed."""
