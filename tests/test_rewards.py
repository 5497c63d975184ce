import threading

import pytest

from kidrewards.awards import AwardLedger
from kidrewards.catalog import RewardCatalog, badge_from_mapping
from kidrewards.exceptions import (
    AlreadyUnlockedError,
    ChildNotFoundError,
    InsufficientPointsError,
    RewardNotFoundError,
    UnlockNotFoundError,
)
from kidrewards.models import RewardKind
from kidrewards.rewards import RewardsGate
from kidrewards.seed import SEED_REWARDS

from conftest import action_badge


def welcome_bonus(points: int) -> dict:
    return action_badge("WELCOME_BONUS", points, "account_created", "account_created")


def test_unlock_scenario_debits_available_points_only(make_engine) -> None:
    household, engine = make_engine(
        welcome_bonus(40),
        action_badge("SAVER_BONUS", 20, "first_savings_deposit", "savings_deposit"),
    )
    household.add_child("ava", "Ava")
    star = engine.rewards.by_name("Super Star")

    with pytest.raises(InsufficientPointsError):
        engine.unlock_reward("ava", star.reward_id)
    points = engine.child_points("ava")
    assert (points.total_points, points.available_points) == (40, 40)
    assert engine.child_rewards("ava") == []

    household.pay_allowance("ava", 5)
    household.deposit_to_savings("ava", 1)
    unlock = engine.unlock_reward("ava", star.reward_id)

    assert unlock.points_spent == 50
    assert unlock.reward_kind is RewardKind.AVATAR
    points = engine.child_points("ava")
    assert (points.total_points, points.available_points, points.spent_points) == (60, 10, 50)
    assert points.rewards_unlocked == 1

    with pytest.raises(AlreadyUnlockedError):
        engine.unlock_reward("ava", star.reward_id)
    assert engine.child_points("ava").available_points == 10


def test_reward_catalog_is_annotated_for_the_child(make_engine) -> None:
    household, engine = make_engine(welcome_bonus(60))
    household.add_child("ava", "Ava")
    cat = engine.rewards.by_name("Cool Cat")
    engine.unlock_reward("ava", cat.reward_id)

    listings = {item.reward.name: item for item in engine.reward_catalog("ava", kind=RewardKind.AVATAR)}

    assert len(listings) == 5
    assert listings["Cool Cat"].is_unlocked
    assert listings["Super Star"].can_afford is False
    assert listings["Super Star"].is_unlocked is False
    assert [item.as_dict()["kind"] for item in engine.reward_catalog()].count("title") == 5
    owned = engine.child_rewards("ava")
    assert [item.reward.name for item in owned] == ["Cool Cat"]
    assert owned[0].as_dict()["is_unlocked"] is True


def test_equip_is_exclusive_per_kind(make_engine) -> None:
    household, engine = make_engine(welcome_bonus(200))
    household.add_child("ava", "Ava")
    cat = engine.rewards.by_name("Cool Cat")
    star = engine.rewards.by_name("Super Star")
    ocean = engine.rewards.by_name("Ocean Blue")
    for reward in (cat, star, ocean):
        engine.unlock_reward("ava", reward.reward_id)

    engine.equip_reward("ava", cat.reward_id)
    engine.equip_reward("ava", ocean.reward_id)
    equipped = engine.equip_reward("ava", star.reward_id)

    assert equipped.is_equipped
    states = {item.reward.name: item.is_equipped for item in engine.child_rewards("ava")}
    assert states == {"Cool Cat": False, "Super Star": True, "Ocean Blue": True}
    points = engine.child_points("ava")
    assert points.equipped[RewardKind.AVATAR] == "avatars/super-star.png"
    assert points.equipped[RewardKind.THEME] == "theme-ocean"
    assert points.equipped[RewardKind.TITLE] is None


def test_unequip_clears_the_slot(make_engine, logger) -> None:
    household, engine = make_engine(welcome_bonus(100))
    household.add_child("ava", "Ava")
    cat = engine.rewards.by_name("Cool Cat")
    saver = engine.rewards.by_name("Saver")
    engine.unlock_reward("ava", cat.reward_id)
    engine.unlock_reward("ava", saver.reward_id)
    engine.equip_reward("ava", cat.reward_id)

    assert engine.unequip_reward("ava", saver.reward_id).is_equipped is False
    assert engine.child_points("ava").equipped[RewardKind.AVATAR] == "avatars/cool-cat.png"

    engine.unequip_reward("ava", cat.reward_id)

    assert engine.child_points("ava").equipped[RewardKind.AVATAR] is None
    assert not any(item.is_equipped for item in engine.child_rewards("ava"))
    assert [entry["event"] for entry in logger.tail(event="reward_unequipped")] == ["reward_unequipped"]


def test_equip_requires_an_unlock(make_engine) -> None:
    household, engine = make_engine(welcome_bonus(10))
    household.add_child("ava", "Ava")
    star = engine.rewards.by_name("Super Star")

    with pytest.raises(UnlockNotFoundError):
        engine.equip_reward("ava", star.reward_id)
    with pytest.raises(UnlockNotFoundError):
        engine.unequip_reward("ava", star.reward_id)


def test_unknown_reward_and_child(make_engine) -> None:
    retired = {"name": "Retired Frame", "kind": "frame", "value": "frame-old", "points_cost": 5, "active": False}
    household, engine = make_engine(welcome_bonus(50), rewards=RewardCatalog.from_mappings([*SEED_REWARDS, retired]))
    household.add_child("ava", "Ava")

    with pytest.raises(RewardNotFoundError):
        engine.unlock_reward("ava", "no-such-reward")
    with pytest.raises(RewardNotFoundError):
        engine.unlock_reward("ava", engine.rewards.by_name("Retired Frame").reward_id)
    with pytest.raises(ChildNotFoundError):
        engine.unlock_reward("ghost", engine.rewards.by_name("Saver").reward_id)
    assert engine.child_points("ava").available_points == 50


def test_concurrent_unlocks_never_overspend(file_engine) -> None:
    rewards = RewardCatalog.from_mappings(SEED_REWARDS)
    ledger = AwardLedger(file_engine)
    gate = RewardsGate(file_engine, rewards)
    ledger.ensure_profile("ava")
    ledger.try_award("ava", badge_from_mapping(welcome_bonus(60)))
    names = ["Cool Cat", "Saver", "Bronze Frame", "Ocean Blue", "Super Star", "Forest Green"]
    barrier = threading.Barrier(len(names))
    outcomes: dict[str, str] = {}

    def buy(name: str) -> None:
        barrier.wait()
        try:
            gate.unlock("ava", rewards.by_name(name).reward_id)
        except InsufficientPointsError:
            outcomes[name] = "declined"
        else:
            outcomes[name] = "unlocked"

    threads = [threading.Thread(target=buy, args=(name,)) for name in names]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    profile = ledger.profile("ava")
    spent = sum(unlock.points_spent for unlock in gate.unlocks("ava"))
    assert len(outcomes) == len(names)
    assert profile.total_points == 60
    assert profile.available_points >= 0
    assert profile.available_points + spent == profile.total_points
    assert sum(1 for outcome in outcomes.values() if outcome == "unlocked") == len(gate.unlocks("ava"))


def test_racing_unlocks_of_one_reward_charge_once(file_engine) -> None:
    rewards = RewardCatalog.from_mappings(SEED_REWARDS)
    ledger = AwardLedger(file_engine)
    gate = RewardsGate(file_engine, rewards)
    ledger.ensure_profile("ava")
    ledger.try_award("ava", badge_from_mapping(welcome_bonus(500)))
    cat = rewards.by_name("Cool Cat")
    barrier = threading.Barrier(6)
    outcomes: list[str] = []

    def buy() -> None:
        barrier.wait()
        try:
            gate.unlock("ava", cat.reward_id)
        except AlreadyUnlockedError:
            outcomes.append("duplicate")
        else:
            outcomes.append("unlocked")

    threads = [threading.Thread(target=buy) for _ in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["duplicate"] * 5 + ["unlocked"]
    assert len(gate.unlocks("ava")) == 1
    assert ledger.profile("ava").available_points == 500 - cat.points_cost
