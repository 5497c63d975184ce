"""Built-in badge and reward catalog."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from .catalog import BadgeCatalog, RewardCatalog
from .ops import StructuredLogger


def _badge(code, name, description, category, rarity, points, criteria, triggers, *, secret=False):
    return {
        "code": code,
        "name": name,
        "description": description,
        "category": category,
        "rarity": rarity,
        "points": points,
        "criteria": criteria,
        "triggers": list(triggers),
        "secret": secret,
    }


def _amount(measure: str, target: int) -> Dict[str, Any]:
    return {"type": "amount_threshold", "measure_field": measure, "amount_target": target}


def _count(measure: str, target: int) -> Dict[str, Any]:
    return {"type": "count_threshold", "measure_field": measure, "count_target": target}


def _streak(measure: str, target: int) -> Dict[str, Any]:
    return {"type": "streak_threshold", "measure_field": measure, "streak_target": target}


def _action(action_type: str) -> Dict[str, Any]:
    return {"type": "single_action", "action_type": action_type}


SEED_BADGES: List[Dict[str, Any]] = [
    # Saving
    _badge("FIRST_SAVER", "First Saver", "Made your first deposit to savings",
           "saving", "common", 10, _action("first_savings_deposit"), ["savings_deposit"]),
    _badge("PENNY_PINCHER", "Penny Pincher", "Saved $10 total",
           "saving", "common", 15, _amount("total_saved", 10), ["savings_deposit"]),
    _badge("MONEY_STACKER", "Money Stacker", "Saved $50 total",
           "saving", "uncommon", 25, _amount("total_saved", 50), ["savings_deposit"]),
    _badge("SAVINGS_STAR", "Savings Star", "Saved $100 total",
           "saving", "rare", 50, _amount("total_saved", 100), ["savings_deposit"]),
    _badge("SAVINGS_CHAMPION", "Savings Champion", "Saved $500 total",
           "saving", "epic", 100, _amount("total_saved", 500), ["savings_deposit"]),
    _badge("EARLY_BIRD", "Early Bird", "Saved on the same day as allowance",
           "saving", "uncommon", 20, {"type": "time_condition", "time_condition": "same_day_as_allowance"},
           ["savings_deposit"]),
    _badge("SUPER_SAVER", "Super Saver", "Saved 50% of allowance in a month",
           "saving", "rare", 40,
           {"type": "percentage_threshold", "measure_field": "monthly_savings_rate", "percentage_target": 50},
           ["streak_updated", "period_closed"]),
    _badge("FRUGAL_MASTER", "Frugal Master", "Saved 75% of allowance in a month",
           "saving", "epic", 75,
           {"type": "percentage_threshold", "measure_field": "monthly_savings_rate", "percentage_target": 75},
           ["streak_updated", "period_closed"]),
    # Goals
    _badge("GOAL_SETTER", "Goal Setter", "Created your first savings goal",
           "goals", "common", 10, _action("first_goal_created"), ["goal_created"]),
    _badge("GOAL_CRUSHER", "Goal Crusher", "Completed your first savings goal",
           "goals", "common", 20, {"type": "goal_threshold", "goal_target": 1}, ["goal_completed"]),
    _badge("DREAM_ACHIEVER", "Dream Achiever", "Completed 5 savings goals",
           "goals", "rare", 50, {"type": "goal_threshold", "goal_target": 5}, ["goal_completed"]),
    _badge("GOAL_MACHINE", "Goal Machine", "Completed 10 savings goals",
           "goals", "epic", 100, {"type": "goal_threshold", "goal_target": 10}, ["goal_completed"]),
    # Chores
    _badge("HELPER", "Helper", "Completed your first task",
           "chores", "common", 10, _action("first_task_completed"), ["task_completed"]),
    _badge("HARD_WORKER", "Hard Worker", "Completed 10 tasks",
           "chores", "common", 20, _count("task_count", 10), ["task_approved"]),
    _badge("CHORE_CHAMPION", "Chore Champion", "Completed 50 tasks",
           "chores", "rare", 50, _count("task_count", 50), ["task_approved"]),
    _badge("TASK_MASTER", "Task Master", "Completed 100 tasks",
           "chores", "epic", 100, _count("task_count", 100), ["task_approved"]),
    _badge("PERFECT_RECORD", "Perfect Record", "Had 10 tasks approved in a row",
           "chores", "rare", 40, _streak("approved_task_streak", 10), ["task_approved"]),
    # Streaks
    _badge("STREAK_STARTER", "Streak Starter", "Saved for 2 weeks in a row",
           "streaks", "common", 15, _streak("saving_streak", 2), ["streak_updated"]),
    _badge("CONSISTENCY_KING", "Consistency King", "Saved for 4 weeks in a row",
           "streaks", "uncommon", 30, _streak("saving_streak", 4), ["streak_updated"]),
    _badge("STREAK_MASTER", "Streak Master", "Saved for 10 weeks in a row",
           "streaks", "rare", 60, _streak("saving_streak", 10), ["streak_updated"]),
    _badge("UNSTOPPABLE", "Unstoppable", "Saved for 26 weeks in a row",
           "streaks", "epic", 100, _streak("saving_streak", 26), ["streak_updated"]),
    _badge("LEGENDARY_STREAK", "Legendary Streak", "Saved for 52 weeks in a row",
           "streaks", "legendary", 200, _streak("saving_streak", 52), ["streak_updated"]),
    # Milestones
    _badge("FIRST_PURCHASE", "First Purchase", "Made your first transaction",
           "milestones", "common", 5, _action("first_transaction"), ["transaction_created"]),
    _badge("DOUBLE_DIGITS", "Double Digits", "Reached $10 balance",
           "milestones", "common", 10, _amount("current_balance", 10), ["balance_changed"]),
    _badge("FIFTY_CLUB", "Fifty Club", "Reached $50 balance",
           "milestones", "uncommon", 25, _amount("current_balance", 50), ["balance_changed"]),
    _badge("CENTURY_CLUB", "Century Club", "Reached $100 balance",
           "milestones", "rare", 50, _amount("current_balance", 100), ["balance_changed"]),
    _badge("HIGH_ROLLER", "High Roller", "Reached $500 balance",
           "milestones", "epic", 100, _amount("current_balance", 500), ["balance_changed"]),
    # Spending
    _badge("BUDGET_AWARE", "Budget Aware", "Stayed under budget for a week",
           "spending", "common", 15, _streak("budget_streak", 1), ["budget_checked"]),
    _badge("BUDGET_BOSS", "Budget Boss", "Stayed under budget for 4 weeks",
           "spending", "rare", 50, _streak("budget_streak", 4), ["budget_checked"]),
    _badge("SMART_SPENDER", "Smart Spender", "Tracked 50 transactions",
           "spending", "uncommon", 25, _count("transaction_count", 50), ["transaction_created"]),
    _badge("TRANSACTION_TRACKER", "Transaction Tracker", "Tracked 200 transactions",
           "spending", "rare", 50, _count("transaction_count", 200), ["transaction_created"]),
    # Special
    _badge("WELCOME", "Welcome", "Joined the app",
           "special", "common", 5, _action("account_created"), ["account_created"]),
    _badge("BIRTHDAY_BONUS", "Birthday Bonus", "Received a gift on your birthday",
           "special", "uncommon", 25, _action("birthday_gift"), ["transaction_created"], secret=True),
    _badge("GENEROUS_HEART", "Generous Heart", "Gave money to a sibling",
           "special", "rare", 40, _action("sibling_transfer"), ["transaction_created"]),
    _badge("FAMILY_FIRST", "Family First", "Part of a family savings goal",
           "special", "rare", 40, _action("family_goal_participant"), ["goal_created"]),
]


def _reward(name, description, kind, value, preview_url, cost):
    return {
        "name": name,
        "description": description,
        "kind": kind,
        "value": value,
        "preview_url": preview_url,
        "points_cost": cost,
    }


SEED_REWARDS: List[Dict[str, Any]] = [
    _reward("Cool Cat", "A stylish cat avatar", "avatar", "avatars/cool-cat.png", "/previews/cool-cat.png", 25),
    _reward("Super Star", "A shining star avatar", "avatar", "avatars/super-star.png", "/previews/super-star.png", 50),
    _reward("Money Dragon", "A dragon guarding treasure", "avatar",
            "avatars/money-dragon.png", "/previews/money-dragon.png", 100),
    _reward("Piggy Pro", "A professional piggy bank", "avatar", "avatars/piggy-pro.png", "/previews/piggy-pro.png", 75),
    _reward("Coin Collector", "A coin collector character", "avatar",
            "avatars/coin-collector.png", "/previews/coin-collector.png", 150),
    _reward("Ocean Blue", "A calming ocean theme", "theme", "theme-ocean", "/previews/theme-ocean.png", 50),
    _reward("Forest Green", "A refreshing forest theme", "theme", "theme-forest", "/previews/theme-forest.png", 50),
    _reward("Sunset Orange", "A warm sunset theme", "theme", "theme-sunset", "/previews/theme-sunset.png", 75),
    _reward("Galaxy Purple", "A cosmic galaxy theme", "theme", "theme-galaxy", "/previews/theme-galaxy.png", 100),
    _reward("Golden Luxury", "A premium gold theme", "theme", "theme-gold", "/previews/theme-gold.png", 200),
    _reward("Saver", "The 'Saver' title", "title", "Saver", None, 25),
    _reward("Budget Master", "The 'Budget Master' title", "title", "Budget Master", None, 50),
    _reward("Money Expert", "The 'Money Expert' title", "title", "Money Expert", None, 100),
    _reward("Financial Wizard", "The 'Financial Wizard' title", "title", "Financial Wizard", None, 150),
    _reward("Legendary Investor", "The 'Legendary Investor' title", "title", "Legendary Investor", None, 300),
    _reward("Bronze Frame", "A bronze profile frame", "frame", "frame-bronze", "/previews/frame-bronze.png", 30),
    _reward("Silver Frame", "A silver profile frame", "frame", "frame-silver", "/previews/frame-silver.png", 60),
    _reward("Gold Frame", "A gold profile frame", "frame", "frame-gold", "/previews/frame-gold.png", 100),
    _reward("Diamond Frame", "A diamond profile frame", "frame", "frame-diamond", "/previews/frame-diamond.png", 200),
]


def default_catalogs(*, logger: StructuredLogger | None = None) -> Tuple[BadgeCatalog, RewardCatalog]:
    return (
        BadgeCatalog.from_mappings(SEED_BADGES, logger=logger),
        RewardCatalog.from_mappings(SEED_REWARDS, logger=logger),
    )


__all__ = ["SEED_BADGES", "SEED_REWARDS", "default_catalogs"]
