import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from services import economy, mutators
from services.schemas import Milestone, Mission, Quest, Reward, UserStats
from services.storage import (
    KeyValueStore, get_missions, get_quests, get_rewards, get_user_stats,
    initialize_default_data, save_user_stats, utcnow,
)

logger = logging.getLogger(__name__)


class AppStore:
    """
    In-memory cache of stats, quests, missions and rewards for one session.

    The injected KeyValueStore is the persistence port. The mutating methods
    below are the only write path: each goes through a mutator, which persists,
    and then refreshes the cache from the mutator's result.
    """

    def __init__(self, storage: KeyValueStore):
        self.storage = storage
        self.stats: UserStats = UserStats()
        self.quests: List[Quest] = []
        self.missions: List[Mission] = []
        self.rewards: List[Reward] = []
        self.is_loaded = False

    def load(self, now: Optional[datetime] = None) -> "AppStore":
        """Bootstraps defaults, reads every slot and applies the once-per-load streak check."""
        now = now or utcnow()
        initialize_default_data(self.storage, now)
        self.stats = get_user_stats(self.storage)
        self.quests = get_quests(self.storage)
        self.missions = get_missions(self.storage)
        self.rewards = get_rewards(self.storage)

        streaked = economy.update_streak(self.stats, now)
        if streaked is not self.stats:
            logger.info("Streak is now %s", streaked.streak)
            self.stats = streaked
            save_user_stats(self.storage, self.stats)

        self.is_loaded = True
        return self

    # --- Mutations ---

    def toggle_quest_completion(self, quest_id: str, now: Optional[datetime] = None) -> mutators.QuestResult:
        result = mutators.toggle_quest(self.storage, quest_id, now)
        if result.status is mutators.Status.APPLIED:
            self.quests = [result.quest if q.id == quest_id else q for q in self.quests]
            self.stats = result.stats
        return result

    def toggle_milestone_completion(self, mission_id: str, milestone_id: str,
                                    now: Optional[datetime] = None) -> mutators.MissionResult:
        result = mutators.toggle_milestone(self.storage, mission_id, milestone_id, now)
        if result.status is mutators.Status.APPLIED:
            self.missions = [result.mission if m.id == mission_id else m for m in self.missions]
            self.stats = result.stats
        return result

    def purchase_reward_item(self, reward_id: str, now: Optional[datetime] = None) -> bool:
        result = mutators.purchase_reward(self.storage, reward_id, now)
        if result.purchased:
            self.rewards = [result.reward if r.id == reward_id else r for r in self.rewards]
            self.stats = result.stats
        return result.purchased

    def add_mission(self, title: str, milestones: List[Milestone], description: str = "",
                    now: Optional[datetime] = None) -> Mission:
        mission = mutators.add_mission(self.storage, title, milestones, description, now)
        self.missions = self.missions + [mission]
        return mission

    def add_quest(self, title: str, description: str = "", xp_reward: int = 10,
                  gold_reward: Optional[int] = None, category: str = "side-hustle",
                  now: Optional[datetime] = None) -> Quest:
        quest = mutators.add_quest(self.storage, title, description, xp_reward, gold_reward,
                                   category, now=now)
        self.quests = self.quests + [quest]
        return quest

    def reset_daily_quests(self) -> None:
        self.quests = mutators.reset_daily_quests(self.storage)

    # --- Read helpers ---

    def quests_by_category(self, category: str) -> List[Quest]:
        return [q for q in self.quests if q.category == category]

    def side_hustle_weeks(self) -> List[Dict]:
        """
        Groups side-hustle quests by the week they were created in
        (weeks start on Sunday), most recent week first.
        """
        weeks: Dict = {}
        for quest in self.quests_by_category("side-hustle"):
            created = quest.created_at.astimezone().date()
            week_start = created - timedelta(days=(created.weekday() + 1) % 7)
            weeks.setdefault(week_start, []).append(quest)

        groups = []
        for week_start in sorted(weeks, reverse=True):
            week_quests = weeks[week_start]
            done = [q for q in week_quests if q.completed]
            groups.append({
                "week_start": week_start,
                "week_end": week_start + timedelta(days=6),
                "quests": week_quests,
                "completed": len(done),
                "total_xp": sum(q.xp_reward for q in done),
                "total_gold": sum(q.gold_reward or 0 for q in done),
            })
        return groups

    def dashboard(self) -> Dict:
        daily = self.quests_by_category("daily")
        return {
            "stats": self.stats,
            "xp_percent": economy.xp_percent(self.stats),
            "daily_quests": daily,
            "daily_completed": completed_count(daily),
            "missions": self.missions,
        }


def completed_count(quests: List[Quest]) -> int:
    return sum(1 for q in quests if q.completed)
