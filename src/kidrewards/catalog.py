"""Badge and reward catalogs.

Catalogs are built once from raw mappings (the built-in seed or a JSON file)
and never change afterwards. Entries that fail validation are left out and
reported through the structured logger so one bad badge cannot take the rest
of the catalog down with it.
"""

from __future__ import annotations

import json
import uuid
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .criteria import criteria_to_config, parse_criteria
from .exceptions import BadgeNotFoundError, CatalogError, RewardNotFoundError
from .models import (
    BadgeCategory,
    BadgeDefinition,
    BadgeRarity,
    RewardDefinition,
    RewardKind,
    TriggerKind,
    as_utc,
)
from .ops import StructuredLogger

CATALOG_NAMESPACE = uuid.UUID("6f1c2b9e-4d0a-4c55-9f3e-8a2d7b1c0e11")


def stable_id(code: str) -> str:
    """Deterministic identifier so re-seeding keeps existing awards valid."""

    return str(uuid.uuid5(CATALOG_NAMESPACE, code))


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    try:
        return as_utc(datetime.fromisoformat(str(value)))
    except ValueError as exc:
        raise CatalogError(f"Invalid timestamp {value!r}.") from exc


def badge_from_mapping(raw: Mapping[str, Any], *, sort_order: int = 0) -> BadgeDefinition:
    """Validate one raw badge entry and build its definition."""

    code = str(raw.get("code") or "").strip().upper()
    if not code:
        raise CatalogError("Badge entry is missing a code.")
    try:
        category = BadgeCategory(raw.get("category"))
        rarity = BadgeRarity(raw.get("rarity", BadgeRarity.COMMON.value))
        triggers = frozenset(TriggerKind(trigger) for trigger in raw.get("triggers") or ())
    except ValueError as exc:
        raise CatalogError(f"Badge '{code}': {exc}") from exc
    if not triggers:
        raise CatalogError(f"Badge '{code}' has no triggers and could never be evaluated.")
    points = raw.get("points", 0)
    if isinstance(points, bool) or not isinstance(points, int) or points < 0:
        raise CatalogError(f"Badge '{code}' has an invalid point value {points!r}.")
    criteria = parse_criteria(raw.get("criteria") or {})
    return BadgeDefinition(
        badge_id=str(raw.get("badge_id") or stable_id(code)),
        code=code,
        name=str(raw.get("name") or code.replace("_", " ").title()),
        description=str(raw.get("description") or ""),
        category=category,
        rarity=rarity,
        points=points,
        criteria=criteria,
        triggers=triggers,
        icon_url=str(raw.get("icon_url") or f"/badges/{code.lower().replace('_', '-')}.png"),
        secret=bool(raw.get("secret", False)),
        active=bool(raw.get("active", True)),
        sort_order=int(raw.get("sort_order", sort_order)),
        available_until=_parse_timestamp(raw.get("available_until")),
    )


def reward_from_mapping(raw: Mapping[str, Any], *, sort_order: int = 0) -> RewardDefinition:
    name = str(raw.get("name") or "").strip()
    if not name:
        raise CatalogError("Reward entry is missing a name.")
    try:
        kind = RewardKind(raw.get("kind"))
    except ValueError as exc:
        raise CatalogError(f"Reward '{name}': {exc}") from exc
    cost = raw.get("points_cost")
    if isinstance(cost, bool) or not isinstance(cost, int) or cost <= 0:
        raise CatalogError(f"Reward '{name}' has an invalid points cost {cost!r}.")
    value = str(raw.get("value") or "")
    if not value:
        raise CatalogError(f"Reward '{name}' has no value.")
    return RewardDefinition(
        reward_id=str(raw.get("reward_id") or stable_id(f"REWARD_{name.upper().replace(' ', '_')}")),
        name=name,
        description=str(raw.get("description") or ""),
        kind=kind,
        value=value,
        points_cost=cost,
        preview_url=raw.get("preview_url"),
        active=bool(raw.get("active", True)),
        sort_order=int(raw.get("sort_order", sort_order)),
    )


class BadgeCatalog:
    """Immutable set of badges plus the trigger index used for dispatch."""

    __slots__ = ("_badges", "_by_code", "_by_trigger", "_rejected")

    def __init__(self, badges: Iterable[BadgeDefinition], *, rejected: Mapping[str, str] | None = None) -> None:
        ordered = sorted(badges, key=lambda badge: (badge.sort_order, badge.name))
        self._badges: Dict[str, BadgeDefinition] = {}
        self._by_code: Dict[str, BadgeDefinition] = {}
        for badge in ordered:
            if badge.code in self._by_code:
                raise CatalogError(f"Duplicate badge code '{badge.code}'.")
            if badge.badge_id in self._badges:
                raise CatalogError(f"Duplicate badge id '{badge.badge_id}'.")
            self._badges[badge.badge_id] = badge
            self._by_code[badge.code] = badge

        index: Dict[TriggerKind, List[str]] = defaultdict(list)
        for badge in self._badges.values():
            for trigger in badge.triggers:
                index[trigger].append(badge.badge_id)
        self._by_trigger: Dict[TriggerKind, Tuple[str, ...]] = {
            trigger: tuple(ids) for trigger, ids in index.items()
        }
        self._rejected: Dict[str, str] = dict(rejected or {})

    @classmethod
    def from_mappings(
        cls,
        entries: Iterable[Mapping[str, Any]],
        *,
        logger: StructuredLogger | None = None,
    ) -> "BadgeCatalog":
        """Build a catalog, excluding (and logging) malformed entries."""

        badges: List[BadgeDefinition] = []
        rejected: Dict[str, str] = {}
        seen: set[str] = set()
        for position, raw in enumerate(entries):
            label = str(raw.get("code") or f"#{position}")
            try:
                badge = badge_from_mapping(raw, sort_order=position)
                if badge.code in seen:
                    raise CatalogError(f"Duplicate badge code '{badge.code}'.")
            except CatalogError as exc:
                rejected[label] = str(exc)
                if logger is not None:
                    logger.warning("catalog_badge_rejected", badge=label, reason=str(exc))
                continue
            seen.add(badge.code)
            badges.append(badge)
        return cls(badges, rejected=rejected)

    def __len__(self) -> int:
        return len(self._badges)

    def __iter__(self):
        return iter(self._badges.values())

    def __contains__(self, badge_id: object) -> bool:
        return badge_id in self._badges

    @property
    def rejected(self) -> Mapping[str, str]:
        """Codes of entries excluded at load time, with the reason."""

        return dict(self._rejected)

    def get(self, badge_id: str) -> BadgeDefinition:
        try:
            return self._badges[badge_id]
        except KeyError as exc:
            raise BadgeNotFoundError(f"Badge '{badge_id}' does not exist.") from exc

    def by_code(self, code: str) -> BadgeDefinition:
        try:
            return self._by_code[code.upper()]
        except KeyError as exc:
            raise BadgeNotFoundError(f"Badge code '{code}' does not exist.") from exc

    def for_trigger(self, trigger: TriggerKind, *, at: datetime | None = None) -> Tuple[BadgeDefinition, ...]:
        """Badges that listen to ``trigger`` and can still be earned at ``at``."""

        badges = (self._badges[badge_id] for badge_id in self._by_trigger.get(TriggerKind(trigger), ()))
        if at is None:
            return tuple(badge for badge in badges if badge.active)
        return tuple(badge for badge in badges if badge.is_available(at))

    def active(self) -> Tuple[BadgeDefinition, ...]:
        return tuple(badge for badge in self._badges.values() if badge.active)

    def as_config(self) -> List[Dict[str, Any]]:
        return [
            {
                "code": badge.code,
                "name": badge.name,
                "description": badge.description,
                "category": badge.category.value,
                "rarity": badge.rarity.value,
                "points": badge.points,
                "criteria": criteria_to_config(badge.criteria),
                "triggers": sorted(trigger.value for trigger in badge.triggers),
                "secret": badge.secret,
                "active": badge.active,
                "sort_order": badge.sort_order,
                "available_until": badge.available_until.isoformat() if badge.available_until else None,
            }
            for badge in self._badges.values()
        ]


class RewardCatalog:
    """Immutable set of rewards purchasable with points."""

    __slots__ = ("_rewards", "_rejected")

    def __init__(self, rewards: Iterable[RewardDefinition], *, rejected: Mapping[str, str] | None = None) -> None:
        ordered = sorted(rewards, key=lambda reward: (reward.sort_order, reward.points_cost))
        self._rewards: Dict[str, RewardDefinition] = {}
        for reward in ordered:
            if reward.reward_id in self._rewards:
                raise CatalogError(f"Duplicate reward id '{reward.reward_id}'.")
            self._rewards[reward.reward_id] = reward
        self._rejected: Dict[str, str] = dict(rejected or {})

    @classmethod
    def from_mappings(
        cls,
        entries: Iterable[Mapping[str, Any]],
        *,
        logger: StructuredLogger | None = None,
    ) -> "RewardCatalog":
        rewards: List[RewardDefinition] = []
        rejected: Dict[str, str] = {}
        for position, raw in enumerate(entries):
            label = str(raw.get("name") or f"#{position}")
            try:
                rewards.append(reward_from_mapping(raw, sort_order=position))
            except CatalogError as exc:
                rejected[label] = str(exc)
                if logger is not None:
                    logger.warning("catalog_reward_rejected", reward=label, reason=str(exc))
        return cls(rewards, rejected=rejected)

    def __len__(self) -> int:
        return len(self._rewards)

    def __iter__(self):
        return iter(self._rewards.values())

    @property
    def rejected(self) -> Mapping[str, str]:
        return dict(self._rejected)

    def get(self, reward_id: str, *, active_only: bool = False) -> RewardDefinition:
        reward = self._rewards.get(reward_id)
        if reward is None or (active_only and not reward.active):
            raise RewardNotFoundError(f"Reward '{reward_id}' does not exist.")
        return reward

    def by_name(self, name: str) -> RewardDefinition:
        for reward in self._rewards.values():
            if reward.name.lower() == name.lower():
                return reward
        raise RewardNotFoundError(f"Reward '{name}' does not exist.")

    def listing(self, *, kind: RewardKind | None = None) -> Tuple[RewardDefinition, ...]:
        return tuple(
            reward
            for reward in self._rewards.values()
            if reward.active and (kind is None or reward.kind is kind)
        )


def load_catalog_file(
    path: Path, *, logger: StructuredLogger | None = None
) -> Tuple[BadgeCatalog, RewardCatalog]:
    """Load ``{"badges": [...], "rewards": [...]}`` from a JSON file."""

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"Could not read catalog file '{path}': {exc}") from exc
    if not isinstance(payload, dict):
        raise CatalogError(f"Catalog file '{path}' must contain a JSON object.")
    badges = _entries(payload, "badges", path)
    rewards = _entries(payload, "rewards", path)
    return (
        BadgeCatalog.from_mappings(badges, logger=logger),
        RewardCatalog.from_mappings(rewards, logger=logger),
    )


def _entries(payload: Mapping[str, Any], key: str, path: Path) -> Sequence[Mapping[str, Any]]:
    entries = payload.get(key, [])
    if not isinstance(entries, list) or not all(isinstance(item, dict) for item in entries):
        raise CatalogError(f"'{key}' in catalog file '{path}' must be a list of objects.")
    return entries


__all__ = [
    "BadgeCatalog",
    "RewardCatalog",
    "badge_from_mapping",
    "load_catalog_file",
    "reward_from_mapping",
    "stable_id",
]
