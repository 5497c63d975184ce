from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Tuple

import pytest

from kidrewards.catalog import BadgeCatalog, RewardCatalog, badge_from_mapping
from kidrewards.config import Settings
from kidrewards.household import Household
from kidrewards.models import BadgeDefinition
from kidrewards.ops import StructuredLogger
from kidrewards.persistence import build_engine, create_db_and_tables
from kidrewards.seed import SEED_BADGES, SEED_REWARDS
from kidrewards.service import AchievementEngine


def seed_badge(code: str) -> dict:
    for entry in SEED_BADGES:
        if entry["code"] == code:
            return dict(entry)
    raise KeyError(code)


def action_badge(code: str, points: int, action: str, trigger: str, **extra: Any) -> dict:
    return {
        "code": code,
        "name": code.replace("_", " ").title(),
        "category": "special",
        "rarity": "common",
        "points": points,
        "criteria": {"type": "single_action", "action_type": action},
        "triggers": [trigger],
        **extra,
    }


def build_badges(badges: Iterable[str | Mapping[str, Any] | BadgeDefinition]) -> BadgeCatalog:
    definitions = []
    for position, item in enumerate(badges):
        if isinstance(item, BadgeDefinition):
            definitions.append(item)
        elif isinstance(item, str):
            definitions.append(badge_from_mapping(seed_badge(item), sort_order=position))
        else:
            definitions.append(badge_from_mapping(item, sort_order=position))
    return BadgeCatalog(definitions)


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite://")


@pytest.fixture
def logger() -> StructuredLogger:
    return StructuredLogger()


@pytest.fixture
def db_engine(settings: Settings):
    engine = build_engine(settings)
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def file_engine(tmp_path):
    engine = build_engine(Settings(database_url=f"sqlite:///{tmp_path / 'kidrewards.db'}"))
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def reward_catalog() -> RewardCatalog:
    return RewardCatalog.from_mappings(SEED_REWARDS)


@pytest.fixture
def make_engine(
    settings: Settings, logger: StructuredLogger, reward_catalog: RewardCatalog
) -> Callable[..., Tuple[Household, AchievementEngine]]:
    def factory(*badges: Any, rewards: RewardCatalog | None = None) -> Tuple[Household, AchievementEngine]:
        household = Household()
        engine = AchievementEngine(
            household,
            settings=settings,
            badges=build_badges(badges),
            rewards=rewards or reward_catalog,
            logger=logger,
        )
        household.subscribe(engine.dispatch)
        return household, engine

    return factory
