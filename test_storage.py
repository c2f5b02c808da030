import json

import pytest

from services import mutators, storage
from services.schemas import UserStats
from services.storage import KeyValueStore, SqlKeyValueStore


def test_get_item_returns_default_when_absent(store):
    default = {"a": [1]}
    value = storage.get_item(store, "missing", default)
    assert value == default
    value["a"].append(2)
    assert default == {"a": [1]}


def test_get_item_falls_back_on_malformed_json(store):
    store.set(storage.QUESTS_KEY, "{not json")
    assert storage.get_item(store, storage.QUESTS_KEY, []) == []
    assert storage.get_quests(store) == []


def test_get_item_falls_back_on_oversized_or_deep_json(store):
    store.set(storage.STATS_KEY, "1" * 5000)
    assert storage.get_user_stats(store) == storage.DEFAULT_STATS
    store.set(storage.QUESTS_KEY, "[" * 100000 + "]" * 100000)
    assert storage.get_quests(store) == []


def test_invalid_records_fall_back_to_default(store):
    store.set(storage.STATS_KEY, json.dumps({"level": 0, "xp": -3}))
    assert storage.get_user_stats(store) == storage.DEFAULT_STATS
    store.set(storage.REWARDS_KEY, json.dumps({"not": "a list"}))
    assert storage.get_rewards(store) == []


def test_invalid_record_is_dropped_without_losing_the_rest(store, now):
    storage.initialize_default_data(store, now)
    raw = json.loads(store.get(storage.QUESTS_KEY))
    raw[3]["xpReward"] = -5
    store.set(storage.QUESTS_KEY, json.dumps(raw))

    assert [q.id for q in storage.get_quests(store)] == ["quest-1", "quest-2", "quest-3"]

    added = mutators.add_quest(store, "New", now=now)
    assert [q.id for q in storage.get_quests(store)] == ["quest-1", "quest-2", "quest-3", added.id]


def test_stats_round_trip_uses_camel_case(store, now):
    stats = UserStats(level=2, xp=5, xp_to_next_level=120, gold=7, streak=3, last_active_date=now)
    storage.save_user_stats(store, stats)
    raw = json.loads(store.get(storage.STATS_KEY))
    assert raw["xpToNextLevel"] == 120
    assert raw["lastActiveDate"].startswith("2026-10-19T12:00:00")
    assert storage.get_user_stats(store) == stats


def test_reads_records_written_by_the_browser_app(store):
    store.set(storage.QUESTS_KEY, json.dumps([{
        "id": "quest-1", "title": "Code", "description": "", "xpReward": 15,
        "completed": True, "repeatable": True, "category": "daily",
        "createdAt": "2026-10-01T08:00:00.000Z", "completedAt": "2026-10-01T09:00:00.000Z",
    }]))
    quest = storage.get_quests(store)[0]
    assert quest.xp_reward == 15
    assert quest.completed_at.hour == 9


def test_initialize_default_data_seeds_first_run(store, now):
    seeded = storage.initialize_default_data(store, now)
    assert set(seeded) == {storage.STATS_KEY, storage.QUESTS_KEY, storage.REWARDS_KEY}
    assert store.get(storage.MISSIONS_KEY) is None

    stats = storage.get_user_stats(store)
    assert (stats.level, stats.xp, stats.xp_to_next_level, stats.gold, stats.streak) == (1, 0, 100, 0, 0)

    quests = storage.get_quests(store)
    assert [q.id for q in quests] == ["quest-1", "quest-2", "quest-3", "quest-4"]
    assert all(q.category == "daily" and q.repeatable for q in quests)

    rewards = {r.id: r for r in storage.get_rewards(store)}
    assert rewards["reward-3"].gold_cost == 500
    assert rewards["reward-4"].xp_cost == 1500
    assert rewards["reward-1"].gold_cost is None


def test_initialize_default_data_never_overwrites(store, now):
    storage.save_quests(store, [])
    storage.save_user_stats(store, UserStats(level=5, xp_to_next_level=207))
    seeded = storage.initialize_default_data(store, now)
    assert seeded == [storage.REWARDS_KEY]
    assert storage.get_quests(store) == []
    assert storage.get_user_stats(store).level == 5
    assert storage.initialize_default_data(store, now) == []


def test_reset_all_and_export(store, now):
    storage.initialize_default_data(store, now)
    exported = storage.export_all(store)
    assert len(exported["quests"]) == 4
    assert exported["missions"] == []
    storage.reset_all(store)
    assert all(store.get(key) is None for key in storage.ALL_KEYS)


def test_sql_store_namespaces_slots(session_factory):
    db = session_factory()
    alice = SqlKeyValueStore(db, namespace="alice")
    bob = SqlKeyValueStore(db, namespace="bob")

    alice.set(storage.STATS_KEY, '{"level": 3}')
    assert alice.get(storage.STATS_KEY) == '{"level": 3}'
    assert bob.get(storage.STATS_KEY) is None

    alice.set(storage.STATS_KEY, '{"level": 4}')
    assert alice.get(storage.STATS_KEY) == '{"level": 4}'

    alice.delete(storage.STATS_KEY)
    assert alice.get(storage.STATS_KEY) is None
    db.close()


def test_store_port_requires_every_method():
    class ReadOnly(KeyValueStore):
        def get(self, key):
            return None

    with pytest.raises(TypeError):
        ReadOnly()
