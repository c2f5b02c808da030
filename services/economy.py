import math
from datetime import datetime, timedelta
from typing import List, Optional

from services.schemas import Milestone, Reward, UserStats

# --- Leveling ---

BASE_THRESHOLD = 100
THRESHOLD_GROWTH = 1.2


def level_threshold(level: int) -> int:
    """XP needed to go from `level` to `level + 1`."""
    return math.floor(BASE_THRESHOLD * THRESHOLD_GROWTH ** (level - 1))


def apply_xp(stats: UserStats, amount: int) -> UserStats:
    """
    Adds xp and rolls over into as many level-ups as the total covers.
    Returns a new UserStats; the input is left untouched.
    """
    updated = stats.model_copy()
    updated.xp += amount
    while updated.xp >= updated.xp_to_next_level:
        updated.xp -= updated.xp_to_next_level
        updated.level += 1
        updated.xp_to_next_level = level_threshold(updated.level)
    return updated


def apply_gold(stats: UserStats, amount: int) -> UserStats:
    updated = stats.model_copy()
    updated.gold += amount
    return updated


def apply_rewards(stats: UserStats, xp: int, gold: Optional[int] = None) -> UserStats:
    updated = apply_xp(stats, xp)
    if gold:
        updated = apply_gold(updated, gold)
    return updated


def remove_rewards(stats: UserStats, xp: int, gold: Optional[int] = None) -> UserStats:
    # Clamped at zero; levels already gained are kept.
    updated = stats.model_copy()
    updated.xp = max(0, updated.xp - xp)
    if gold:
        updated.gold = max(0, updated.gold - gold)
    return updated


def xp_percent(stats: UserStats) -> int:
    return min(round(stats.xp / stats.xp_to_next_level * 100), 100)


# --- Missions ---

def mission_progress(milestones: List[Milestone]) -> int:
    if not milestones:
        return 0
    completed = sum(1 for m in milestones if m.completed)
    return math.floor(completed * 100 / len(milestones))


# --- Rewards ---

def can_afford(stats: UserStats, reward: Reward) -> bool:
    if stats.xp < reward.xp_cost:
        return False
    if reward.gold_cost and stats.gold < reward.gold_cost:
        return False
    return True


# --- Streak ---

def _local_day(moment: datetime):
    return moment.astimezone().date()


def update_streak(stats: UserStats, now: datetime) -> UserStats:
    """
    Compares the calendar day of the last visit with today.
    Same day: unchanged. Yesterday: streak + 1. Anything else: streak restarts at 1.
    """
    today = _local_day(now)
    last_day = _local_day(stats.last_active_date) if stats.last_active_date else None
    if last_day == today:
        return stats

    updated = stats.model_copy()
    updated.last_active_date = now
    if last_day is not None and last_day == today - timedelta(days=1):
        updated.streak += 1
    else:
        updated.streak = 1
    return updated
