"""
Domain mutators.

Every mutator reads the current slots from the store, computes the new state,
writes it back wholesale and returns a tagged result. The record/stats pairs
(quest + stats, mission + stats, reward + stats) are written one slot after
the other, not atomically.
"""
import enum
import time
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from services import economy
from services.schemas import Milestone, Mission, Quest, Reward, UserStats
from services.storage import (
    KeyValueStore, get_missions, get_quests, get_rewards, get_user_stats,
    save_missions, save_quests, save_rewards, save_user_stats, utcnow,
)


class Status(str, enum.Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


@dataclass
class QuestResult:
    status: Status
    quest: Optional[Quest]
    stats: UserStats


@dataclass
class MissionResult:
    status: Status
    mission: Optional[Mission]
    stats: UserStats


@dataclass
class PurchaseResult:
    status: Status
    reward: Optional[Reward]
    stats: UserStats
    purchased: bool = False


def _find(items, item_id):
    return next((item for item in items if item.id == item_id), None)


def _timestamp_id(prefix: str, suffix: Optional[int] = None, taken=()) -> str:
    millis = int(time.time() * 1000)
    while True:
        ident = f"{prefix}-{millis}" if suffix is None else f"{prefix}-{millis}-{suffix}"
        if ident not in taken:
            return ident
        millis += 1


# --- Quests ---

def complete_quest(store: KeyValueStore, quest_id: str, now: Optional[datetime] = None) -> QuestResult:
    quests = get_quests(store)
    quest = _find(quests, quest_id)
    stats = get_user_stats(store)
    if quest is None:
        return QuestResult(Status.NOT_FOUND, None, stats)
    if quest.completed:
        return QuestResult(Status.UNCHANGED, quest, stats)

    quest.completed = True
    quest.completed_at = now or utcnow()
    save_quests(store, quests)

    stats = economy.apply_rewards(stats, quest.xp_reward, quest.gold_reward)
    save_user_stats(store, stats)
    return QuestResult(Status.APPLIED, quest, stats)


def uncomplete_quest(store: KeyValueStore, quest_id: str) -> QuestResult:
    quests = get_quests(store)
    quest = _find(quests, quest_id)
    stats = get_user_stats(store)
    if quest is None:
        return QuestResult(Status.NOT_FOUND, None, stats)
    if not quest.completed:
        return QuestResult(Status.UNCHANGED, quest, stats)

    quest.completed = False
    quest.completed_at = None
    save_quests(store, quests)

    stats = economy.remove_rewards(stats, quest.xp_reward, quest.gold_reward)
    save_user_stats(store, stats)
    return QuestResult(Status.APPLIED, quest, stats)


def toggle_quest(store: KeyValueStore, quest_id: str, now: Optional[datetime] = None) -> QuestResult:
    quest = _find(get_quests(store), quest_id)
    if quest is not None and quest.completed:
        return uncomplete_quest(store, quest_id)
    return complete_quest(store, quest_id, now)


def add_quest(store: KeyValueStore, title: str, description: str = "", xp_reward: int = 10,
              gold_reward: Optional[int] = None, category: str = "side-hustle",
              repeatable: bool = False, now: Optional[datetime] = None) -> Quest:
    quests = get_quests(store)
    quest = Quest(
        id=_timestamp_id("quest", taken={q.id for q in quests}),
        title=title,
        description=description,
        xp_reward=xp_reward,
        gold_reward=gold_reward,
        completed=False,
        repeatable=repeatable,
        category=category,
        created_at=now or utcnow(),
    )
    quests.append(quest)
    save_quests(store, quests)
    return quest


def reset_daily_quests(store: KeyValueStore) -> List[Quest]:
    """Clears completion on repeatable daily quests. Meant for a scheduled midnight job."""
    quests = get_quests(store)
    for quest in quests:
        if quest.repeatable and quest.category == "daily":
            quest.completed = False
            quest.completed_at = None
    save_quests(store, quests)
    return quests


# --- Missions ---

def _refresh_progress(mission: Mission, now: datetime) -> None:
    mission.progress = economy.mission_progress(mission.milestones)
    if mission.progress == 100:
        if mission.completed_at is None:
            mission.completed_at = now
    else:
        mission.completed_at = None


def _find_milestone(missions: List[Mission], mission_id: str, milestone_id: str):
    mission = _find(missions, mission_id)
    if mission is None:
        return None, None
    return mission, _find(mission.milestones, milestone_id)


def complete_milestone(store: KeyValueStore, mission_id: str, milestone_id: str,
                       now: Optional[datetime] = None) -> MissionResult:
    now = now or utcnow()
    missions = get_missions(store)
    mission, milestone = _find_milestone(missions, mission_id, milestone_id)
    stats = get_user_stats(store)
    if milestone is None:
        return MissionResult(Status.NOT_FOUND, mission, stats)
    if milestone.completed:
        return MissionResult(Status.UNCHANGED, mission, stats)

    milestone.completed = True
    milestone.completed_at = now
    _refresh_progress(mission, now)
    save_missions(store, missions)

    stats = economy.apply_rewards(stats, milestone.xp_reward, milestone.gold_reward)
    save_user_stats(store, stats)
    return MissionResult(Status.APPLIED, mission, stats)


def uncomplete_milestone(store: KeyValueStore, mission_id: str, milestone_id: str,
                         now: Optional[datetime] = None) -> MissionResult:
    now = now or utcnow()
    missions = get_missions(store)
    mission, milestone = _find_milestone(missions, mission_id, milestone_id)
    stats = get_user_stats(store)
    if milestone is None:
        return MissionResult(Status.NOT_FOUND, mission, stats)
    if not milestone.completed:
        return MissionResult(Status.UNCHANGED, mission, stats)

    milestone.completed = False
    milestone.completed_at = None
    _refresh_progress(mission, now)
    save_missions(store, missions)

    stats = economy.remove_rewards(stats, milestone.xp_reward, milestone.gold_reward)
    save_user_stats(store, stats)
    return MissionResult(Status.APPLIED, mission, stats)


def toggle_milestone(store: KeyValueStore, mission_id: str, milestone_id: str,
                     now: Optional[datetime] = None) -> MissionResult:
    _, milestone = _find_milestone(get_missions(store), mission_id, milestone_id)
    if milestone is not None and milestone.completed:
        return uncomplete_milestone(store, mission_id, milestone_id, now)
    return complete_milestone(store, mission_id, milestone_id, now)


def add_mission(store: KeyValueStore, title: str, milestones: List[Milestone],
                description: str = "", now: Optional[datetime] = None) -> Mission:
    if not milestones:
        raise ValueError("A mission needs at least one milestone")
    missions = get_missions(store)
    mission = Mission(
        id=_timestamp_id("mission", taken={m.id for m in missions}),
        title=title,
        description=description,
        milestones=milestones,
        progress=0,
        created_at=now or utcnow(),
    )
    missions.append(mission)
    save_missions(store, missions)
    return mission


def new_milestone(title: str, index: int, xp_reward: int = 10, gold_reward: Optional[int] = None,
                  description: Optional[str] = None) -> Milestone:
    return Milestone(
        id=_timestamp_id("milestone", index),
        title=title,
        description=description,
        xp_reward=xp_reward,
        gold_reward=gold_reward,
        completed=False,
    )


# --- Rewards ---

def purchase_reward(store: KeyValueStore, reward_id: str, now: Optional[datetime] = None) -> PurchaseResult:
    rewards = get_rewards(store)
    reward = _find(rewards, reward_id)
    stats = get_user_stats(store)
    if reward is None:
        return PurchaseResult(Status.NOT_FOUND, None, stats)
    if reward.purchased or not economy.can_afford(stats, reward):
        return PurchaseResult(Status.UNCHANGED, reward, stats)

    stats = stats.model_copy()
    stats.xp -= reward.xp_cost
    if reward.gold_cost:
        stats.gold -= reward.gold_cost

    reward.purchased = True
    reward.purchased_at = now or utcnow()

    save_user_stats(store, stats)
    save_rewards(store, rewards)
    return PurchaseResult(Status.APPLIED, reward, stats, purchased=True)
