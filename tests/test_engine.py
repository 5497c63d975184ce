import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from kidrewards.criteria import CountThreshold
from kidrewards.exceptions import BadgeNotFoundError, ChildNotFoundError
from kidrewards.household import Household
from kidrewards.models import (
    BadgeCategory,
    BadgeDefinition,
    BadgeRarity,
    DomainEvent,
    TriggerKind,
)
from kidrewards.service import AchievementEngine

from conftest import action_badge, build_badges, seed_badge


def test_penny_pincher_awards_once_and_clears_progress(make_engine) -> None:
    household, engine = make_engine("PENNY_PINCHER")
    household.add_child("ava", "Ava")
    household.pay_allowance("ava", 20)
    household.deposit_to_savings("ava", "9.50")

    [view] = engine.badge_progress("ava")
    assert view.badge.code == "PENNY_PINCHER"
    assert view.progress_text == "$9.50/$10.00"

    household.deposit_to_savings("ava", "0.50")

    points = engine.child_points("ava")
    assert (points.total_points, points.available_points) == (15, 15)
    assert engine.badge_progress("ava") == []
    [earned] = engine.earned_badges("ava")
    assert earned.badge.code == "PENNY_PINCHER"
    assert earned.award.earned_context["trigger"] == "savings_deposit"

    household.deposit_to_savings("ava", 5)
    assert engine.child_points("ava").total_points == 15


def test_hard_worker_progress_then_award(make_engine) -> None:
    household, engine = make_engine("HARD_WORKER")
    household.add_child("ava", "Ava")

    for _ in range(9):
        household.approve_task("ava", "Dishes")

    [view] = engine.badge_progress("ava")
    assert view.progress_text == "9/10"
    assert view.as_dict()["progress_percentage"] == 90.0

    household.approve_task("ava", "Dishes")

    assert engine.badge_progress("ava") == []
    assert engine.child_points("ava").total_points == 20


def test_earned_badges_are_skipped_before_evaluation(make_engine) -> None:
    household, engine = make_engine(action_badge("STARTER", 5, "account_created", "task_approved"))
    household.add_child("ava", "Ava")
    event = DomainEvent(kind=TriggerKind.TASK_APPROVED, child_id="ava", timestamp=datetime(2026, 3, 4))

    first = engine.dispatch(event)
    second = engine.dispatch(event)

    assert first.awarded == ("STARTER",)
    assert second.evaluated == ()
    assert second.awarded == ()
    assert engine.child_points("ava").total_points == 5


def test_one_broken_badge_does_not_stop_the_others(make_engine, logger) -> None:
    broken = BadgeDefinition(
        badge_id="broken",
        code="BROKEN",
        name="Broken",
        description="",
        category=BadgeCategory.SPECIAL,
        rarity=BadgeRarity.COMMON,
        points=5,
        criteria=CountThreshold(measure_field="cookies_eaten", count_target=1),
        triggers=frozenset({TriggerKind.TASK_APPROVED}),
    )
    household, engine = make_engine(broken, action_badge("STARTER", 5, "account_created", "task_approved"))
    household.add_child("ava", "Ava")

    result = engine.dispatch(DomainEvent(kind=TriggerKind.TASK_APPROVED, child_id="ava"))

    assert result.awarded == ("STARTER",)
    assert set(result.failures) == {"BROKEN"}
    [entry] = logger.tail(event="badge_evaluation_failed")
    assert entry["badge"] == "BROKEN"
    assert entry["level"] == "error"


def test_award_listeners_run_and_failures_are_contained(make_engine, logger) -> None:
    household, engine = make_engine("WELCOME")
    seen: list[str] = []
    engine.on_award(lambda event, badge: seen.append(f"{event.child_id}:{badge.code}"))

    @engine.on_award
    def push_notification(event, badge) -> None:
        raise RuntimeError("push service unavailable")

    household.add_child("ava", "Ava")

    assert seen == ["ava:WELCOME"]
    assert engine.child_points("ava").total_points == 5
    assert len(logger.tail(event="award_listener_failed")) == 1


def test_dispatch_for_unknown_child(make_engine) -> None:
    _, engine = make_engine("WELCOME")

    with pytest.raises(ChildNotFoundError):
        engine.dispatch(DomainEvent(kind=TriggerKind.TASK_APPROVED, child_id="ghost"))
    with pytest.raises(ChildNotFoundError):
        engine.child_points("ghost")


def test_enroll_child_is_idempotent(make_engine) -> None:
    _, engine = make_engine("WELCOME")

    first = engine.enroll_child("ava")
    second = engine.enroll_child("ava")

    assert first.as_dict() == second.as_dict()
    assert first.total_points == 0


def test_savings_rate_badges_wait_for_period_close(make_engine) -> None:
    household, engine = make_engine("SUPER_SAVER", "FRUGAL_MASTER")
    household.add_child("ava", "Ava", at=datetime(2026, 3, 1, 9, 0))
    household.pay_allowance("ava", 10, at=datetime(2026, 3, 2, 8, 0))
    household.deposit_to_savings("ava", 6, at=datetime(2026, 3, 2, 10, 0))

    assert engine.earned_badges("ava") == []

    rate = household.close_month("ava", 2026, 3, at=datetime(2026, 3, 31, 23, 0))

    assert rate == Decimal("60.00")
    assert [item.badge.code for item in engine.earned_badges("ava")] == ["SUPER_SAVER"]
    [frugal] = engine.badge_progress("ava")
    assert frugal.badge.code == "FRUGAL_MASTER"
    assert frugal.progress_text == "60/75"


def test_early_bird_saves_on_allowance_day(make_engine) -> None:
    household, engine = make_engine("EARLY_BIRD")
    household.add_child("ava", "Ava")
    household.pay_allowance("ava", 10, at=datetime(2026, 3, 2, 7, 0))
    household.deposit_to_savings("ava", 1, at=datetime(2026, 3, 3, 7, 0))

    assert engine.earned_badges("ava") == []

    household.pay_allowance("ava", 10, at=datetime(2026, 3, 9, 7, 0))
    household.deposit_to_savings("ava", 1, at=datetime(2026, 3, 9, 18, 0))

    assert [item.badge.code for item in engine.earned_badges("ava")] == ["EARLY_BIRD"]


def test_weekly_saving_streak(make_engine) -> None:
    household, engine = make_engine("STREAK_STARTER")
    household.add_child("ava", "Ava")
    household.pay_allowance("ava", 20, at=datetime(2026, 3, 2, 8, 0))
    household.deposit_to_savings("ava", 1, at=datetime(2026, 3, 2, 9, 0))
    household.deposit_to_savings("ava", 1, at=datetime(2026, 3, 6, 9, 0))

    [view] = engine.badge_progress("ava")
    assert view.progress_text == "1/2"

    household.deposit_to_savings("ava", 1, at=datetime(2026, 3, 10, 9, 0))

    assert engine.child_points("ava").total_points == 15


def test_balance_badges_report_the_live_balance(make_engine) -> None:
    household, engine = make_engine("DOUBLE_DIGITS")
    household.add_child("ava", "Ava")
    household.record_transaction("ava", 8, "credit", "Lemonade stand")
    household.record_transaction("ava", 5, "debit", "Stickers")

    [view] = engine.badge_progress("ava")
    assert view.progress_text == "$3.00/$10.00"

    household.record_transaction("ava", 7, "credit", "Car wash")

    assert [item.badge.code for item in engine.earned_badges("ava")] == ["DOUBLE_DIGITS"]


def test_special_actions(make_engine) -> None:
    household, engine = make_engine("GENEROUS_HEART", "FAMILY_FIRST", "GOAL_SETTER", "GOAL_CRUSHER")
    household.add_child("ava", "Ava")
    household.add_child("ben", "Ben")
    household.pay_allowance("ava", 10)

    household.transfer_to_sibling("ava", "ben", 2)
    household.create_goal("ava", "Bike", 5, family=True)
    household.contribute_to_goal("ava", "Bike", 5)

    codes = {item.badge.code for item in engine.earned_badges("ava")}
    assert codes == {"GENEROUS_HEART", "FAMILY_FIRST", "GOAL_SETTER", "GOAL_CRUSHER"}
    assert engine.earned_badges("ben") == []
    assert engine.child_points("ava").total_points == 40 + 40 + 10 + 20


def test_expired_badges_are_not_evaluated(make_engine) -> None:
    household, engine = make_engine(
        action_badge("LAUNCH_WEEK", 10, "account_created", "account_created", available_until="2026-01-07T00:00:00")
    )

    household.add_child("late", "Late", at=datetime(2026, 2, 1))
    household.add_child("early", "Early", at=datetime(2026, 1, 2))

    assert engine.earned_badges("late") == []
    assert [item.badge.code for item in engine.earned_badges("early")] == ["LAUNCH_WEEK"]


def test_secret_badges_are_hidden_until_earned(make_engine) -> None:
    household, engine = make_engine("WELCOME", "BIRTHDAY_BONUS", "PENNY_PINCHER")
    household.add_child("ava", "Ava", birthday=date(2016, 5, 4), at=datetime(2026, 1, 1))

    assert [item.badge.code for item in engine.list_badges()] == ["WELCOME", "PENNY_PINCHER"]
    assert len(engine.list_badges(include_secret=True)) == 3
    listing = {item.badge.code: item for item in engine.list_badges(child_id="ava")}
    assert set(listing) == {"WELCOME", "PENNY_PINCHER"}
    assert listing["WELCOME"].is_earned
    assert not listing["PENNY_PINCHER"].is_earned

    household.give_gift("ava", 10, giver="Grandma", at=datetime(2026, 5, 4, 12, 0))

    listing = {item.badge.code: item for item in engine.list_badges(child_id="ava")}
    assert listing["BIRTHDAY_BONUS"].is_earned
    assert listing["BIRTHDAY_BONUS"].earned_at == datetime(2026, 5, 4, 12, 0, tzinfo=timezone.utc)
    assert [item.badge.code for item in engine.list_badges(category=BadgeCategory.SAVING)] == ["PENNY_PINCHER"]


def test_summary_acknowledge_and_display(make_engine) -> None:
    household, engine = make_engine("WELCOME", "FIRST_SAVER", "PENNY_PINCHER", "GOAL_SETTER")
    household.add_child("ava", "Ava")
    household.pay_allowance("ava", 10)
    household.deposit_to_savings("ava", 4)

    summary = engine.achievement_summary("ava")

    assert summary.total_badges == 4
    assert summary.earned_badges == 2
    assert summary.completion == Decimal("0.50")
    assert summary.points.total_points == 15
    assert summary.badges_by_category == {BadgeCategory.SPECIAL: 1, BadgeCategory.SAVING: 1}
    assert [item.badge.code for item in summary.in_progress] == ["PENNY_PINCHER"]
    assert summary.as_dict()["in_progress"][0]["progress_text"] == "$4.00/$10.00"

    assert len(engine.earned_badges("ava", new_only=True)) == 2
    assert engine.acknowledge_badges("ava") == 2
    assert engine.earned_badges("ava", new_only=True) == []

    welcome = engine.badges.by_code("WELCOME")
    hidden = engine.set_badge_displayed("ava", welcome.badge_id, False)
    assert hidden.as_dict()["is_displayed"] is False


def test_aware_event_times_work_with_expiring_badges(make_engine) -> None:
    household, engine = make_engine(
        {**seed_badge("FIRST_SAVER"), "available_until": "2099-01-01T00:00:00"},
        "PENNY_PINCHER",
    )
    berlin = timezone(timedelta(hours=1))
    household.add_child("ava", "Ava", at=datetime(2026, 3, 1, 9, 0, tzinfo=berlin))
    household.pay_allowance("ava", 20, at=datetime(2026, 3, 2, 8, 0, tzinfo=berlin))

    result = engine.dispatch(
        DomainEvent(kind=TriggerKind.SAVINGS_DEPOSIT, child_id="ava", timestamp=datetime(2026, 3, 2, 9, 0, tzinfo=berlin))
    )
    assert result.evaluated == ("FIRST_SAVER", "PENNY_PINCHER")

    household.deposit_to_savings("ava", 10, at=datetime(2026, 3, 2, 9, 30, tzinfo=berlin))

    earned = {item.badge.code: item.award for item in engine.earned_badges("ava")}
    assert set(earned) == {"FIRST_SAVER", "PENNY_PINCHER"}
    assert earned["PENNY_PINCHER"].earned_at == datetime(2026, 3, 2, 8, 30, tzinfo=timezone.utc)


def test_progress_keeps_the_target_it_started_with(db_engine, settings, logger, reward_catalog) -> None:
    household = Household()
    before = AchievementEngine(
        household,
        settings=settings,
        engine=db_engine,
        badges=build_badges(["HARD_WORKER"]),
        rewards=reward_catalog,
        logger=logger,
    )
    household.subscribe(before.dispatch)
    household.add_child("ava", "Ava")
    for _ in range(9):
        household.approve_task("ava", "Dishes")
    household.unsubscribe(before.dispatch)

    raised = {
        **seed_badge("HARD_WORKER"),
        "criteria": {"type": "count_threshold", "measure_field": "task_count", "count_target": 12},
    }
    after = AchievementEngine(
        household,
        settings=settings,
        engine=db_engine,
        badges=build_badges([raised]),
        rewards=reward_catalog,
        logger=logger,
    )
    household.subscribe(after.dispatch)
    [view] = after.badge_progress("ava")
    assert view.progress_text == "9/10"

    household.approve_task("ava", "Dishes")

    assert after.badge_progress("ava") == []
    assert after.child_points("ava").total_points == 20


def test_event_payload_cannot_replace_award_context(make_engine) -> None:
    household, engine = make_engine(action_badge("STARTER", 5, "account_created", "task_approved"))
    household.add_child("ava", "Ava")

    engine.dispatch(
        DomainEvent(
            kind=TriggerKind.TASK_APPROVED,
            child_id="ava",
            payload={"task": "Dishes", "trigger": "gift_received", "progress": 99},
        )
    )

    [earned] = engine.earned_badges("ava")
    assert earned.award.earned_context == {"task": "Dishes", "trigger": "task_approved", "progress": 1}


def test_award_badge_by_code(make_engine, logger) -> None:
    household, engine = make_engine(
        "WELCOME",
        "HARD_WORKER",
        action_badge("RETIRED", 5, "account_created", "task_approved", active=False),
    )
    household.add_child("ava", "Ava")
    for _ in range(3):
        household.approve_task("ava", "Dishes")

    granted = engine.award_badge("ava", "hard_worker", {"reason": "Helped grandma"})

    assert granted.badge.code == "HARD_WORKER"
    assert granted.award.earned_context == {"source": "manual", "reason": "Helped grandma"}
    assert engine.child_points("ava").total_points == 25
    assert engine.badge_progress("ava") == []
    assert engine.award_badge("ava", "HARD_WORKER") is None
    assert engine.award_badge("ava", "NO_SUCH_BADGE") is None
    assert engine.award_badge("ava", "RETIRED") is None
    assert len(logger.tail(event="badge_award_skipped")) == 2
    with pytest.raises(ChildNotFoundError):
        engine.award_badge("ghost", "HARD_WORKER")

    assert [item.badge.code for item in engine.earned_badges("ava", category=BadgeCategory.CHORES)] == ["HARD_WORKER"]
    assert [item.badge.code for item in engine.earned_badges("ava", category=BadgeCategory.SPECIAL)] == ["WELCOME"]
    assert engine.earned_badges("ava", category=BadgeCategory.SAVING) == []


def test_manual_progress_is_capped_and_counts_toward_the_next_event(make_engine) -> None:
    household, engine = make_engine("WELCOME", "HARD_WORKER", "PENNY_PINCHER")
    household.add_child("ava", "Ava")

    assert engine.increment_progress("ava", "HARD_WORKER").progress_text == "1/10"
    assert engine.increment_progress("ava", "HARD_WORKER", 20).progress_text == "10/10"
    assert engine.set_progress("ava", "PENNY_PINCHER", 450).progress_text == "$4.50/$10.00"
    assert engine.set_progress("ava", "PENNY_PINCHER", 5000).record.current_progress == 1000
    assert engine.increment_progress("ava", "WELCOME") is None
    with pytest.raises(BadgeNotFoundError):
        engine.set_progress("ava", "NO_SUCH_BADGE", 1)
    with pytest.raises(ChildNotFoundError):
        engine.increment_progress("ghost", "HARD_WORKER")

    assert engine.child_points("ava").total_points == 5
    household.approve_task("ava", "Dishes")

    assert [item.badge.code for item in engine.earned_badges("ava", category=BadgeCategory.CHORES)] == ["HARD_WORKER"]


def test_concurrent_dispatch_awards_once(file_engine, settings, logger, reward_catalog) -> None:
    household = Household()
    engine = AchievementEngine(
        household,
        settings=settings,
        engine=file_engine,
        badges=build_badges(["PENNY_PINCHER"]),
        rewards=reward_catalog,
        logger=logger,
    )
    household.add_child("ava", "Ava")
    household.pay_allowance("ava", 20)
    household.deposit_to_savings("ava", 10)
    engine.enroll_child("ava")
    barrier = threading.Barrier(8)
    results: list = []

    def deliver() -> None:
        barrier.wait()
        results.append(engine.dispatch(DomainEvent(kind=TriggerKind.SAVINGS_DEPOSIT, child_id="ava")))

    threads = [threading.Thread(target=deliver) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == 8
    assert sum(len(result.awarded) for result in results) == 1
    assert all(result.failures == {} for result in results)
    points = engine.child_points("ava")
    assert (points.total_points, points.badges_earned) == (15, 1)
