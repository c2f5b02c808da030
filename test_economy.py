from datetime import datetime

from services import economy
from services.schemas import Milestone, Reward, UserStats


def test_level_threshold_curve():
    assert economy.level_threshold(1) == 100
    assert economy.level_threshold(2) == 120
    assert economy.level_threshold(3) == 144


def test_level_threshold_strictly_increases():
    for level in range(1, 60):
        assert economy.level_threshold(level + 1) > economy.level_threshold(level)


def test_apply_xp_rolls_over_into_next_level():
    stats = UserStats(level=1, xp=90, xp_to_next_level=100, gold=0)
    updated = economy.apply_xp(stats, 15)
    assert (updated.level, updated.xp, updated.xp_to_next_level) == (2, 5, 120)
    # input untouched
    assert stats.xp == 90


def test_apply_xp_cascades_multiple_levels():
    updated = economy.apply_xp(UserStats(), 100 + 120 + 144 + 7)
    assert updated.level == 4
    assert updated.xp == 7
    assert updated.xp_to_next_level == economy.level_threshold(4)


def test_apply_xp_keeps_invariant():
    stats = UserStats()
    for amount in (0, 1, 15, 99, 250, 1000, 5000):
        before = stats
        stats = economy.apply_xp(stats, amount)
        assert stats.xp < stats.xp_to_next_level
        assert stats.level >= before.level


def test_apply_zero_xp_is_noop():
    stats = UserStats(level=3, xp=40, xp_to_next_level=144)
    updated = economy.apply_xp(stats, 0)
    assert (updated.level, updated.xp) == (3, 40)


def test_apply_gold():
    assert economy.apply_gold(UserStats(gold=5), 20).gold == 25


def test_remove_rewards_clamps_without_level_down():
    stats = UserStats(level=2, xp=5, xp_to_next_level=120, gold=3)
    updated = economy.remove_rewards(stats, 15, 10)
    assert (updated.level, updated.xp, updated.gold) == (2, 0, 0)


def test_mission_progress():
    def milestones(done, total):
        return [Milestone(id=str(i), title="m", completed=i < done) for i in range(total)]

    assert economy.mission_progress(milestones(0, 3)) == 0
    assert economy.mission_progress(milestones(1, 3)) == 33
    assert economy.mission_progress(milestones(2, 3)) == 66
    assert economy.mission_progress(milestones(3, 3)) == 100
    assert economy.mission_progress([]) == 0


def test_can_afford():
    created = datetime(2026, 1, 1)
    watch = Reward(id="r", title="Watch", xp_cost=100, gold_cost=500, created_at=created)
    food = Reward(id="f", title="Food", xp_cost=100, created_at=created)
    assert not economy.can_afford(UserStats(xp=99, xp_to_next_level=100), food)
    assert economy.can_afford(UserStats(xp=99, xp_to_next_level=200, gold=0), food.model_copy(update={"xp_cost": 99}))
    assert not economy.can_afford(UserStats(xp=100, xp_to_next_level=200, gold=400), watch)
    assert economy.can_afford(UserStats(xp=100, xp_to_next_level=200, gold=500), watch)


def test_xp_percent():
    assert economy.xp_percent(UserStats(xp=60, xp_to_next_level=120)) == 50
    assert economy.xp_percent(UserStats(xp=0)) == 0


class TestStreak:
    def test_first_visit_starts_streak(self, now):
        updated = economy.update_streak(UserStats(), now)
        assert updated.streak == 1
        assert updated.last_active_date == now

    def test_same_day_is_unchanged(self, now):
        stats = UserStats(streak=4, last_active_date=now.replace(hour=8))
        assert economy.update_streak(stats, now) is stats

    def test_consecutive_day_increments(self, now):
        stats = UserStats(streak=4, last_active_date=datetime(2026, 10, 18, 23, 0))
        updated = economy.update_streak(stats, now)
        assert updated.streak == 5
        assert updated.last_active_date == now

    def test_gap_resets_to_one(self, now):
        stats = UserStats(streak=9, last_active_date=datetime(2026, 10, 16, 12, 0))
        assert economy.update_streak(stats, now).streak == 1
