import abc
import copy
import json
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from database.models import StorageSlot
from services.schemas import Mission, Quest, Reward, UserStats

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# Slot keys
STATS_KEY = "lifeleveler-stats"
QUESTS_KEY = "lifeleveler-quests"
MISSIONS_KEY = "lifeleveler-missions"
REWARDS_KEY = "lifeleveler-rewards"

ALL_KEYS = (STATS_KEY, QUESTS_KEY, MISSIONS_KEY, REWARDS_KEY)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueStore(abc.ABC):
    """Persistence port: named slots holding JSON text."""

    @abc.abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abc.abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abc.abstractmethod
    def delete(self, key: str) -> None:
        ...


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.slots: Dict[str, str] = dict(initial or {})

    def get(self, key):
        return self.slots.get(key)

    def set(self, key, value):
        self.slots[key] = value

    def delete(self, key):
        self.slots.pop(key, None)


class SqlKeyValueStore(KeyValueStore):
    """
    Slots kept in the storage_slots table. Each write commits on its own,
    so the last writer wins.
    A namespace (the user id) keeps each user's four slots apart.
    """

    def __init__(self, db: Session, namespace: Optional[str] = None):
        self.db = db
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def _slot(self, key: str) -> Optional[StorageSlot]:
        return self.db.query(StorageSlot).filter(StorageSlot.key == self._key(key)).first()

    def get(self, key):
        slot = self._slot(key)
        return slot.value if slot else None

    def set(self, key, value):
        slot = self._slot(key)
        if slot:
            slot.value = value
        else:
            self.db.add(StorageSlot(key=self._key(key), value=value))
        self.db.commit()

    def delete(self, key):
        self.db.query(StorageSlot).filter(StorageSlot.key == self._key(key)).delete()
        self.db.commit()


# --- Raw helpers ---

def get_item(store: KeyValueStore, key: str, default: T) -> T:
    """Parses the slot as JSON, falling back to a copy of default when absent or malformed."""
    raw = store.get(key)
    if raw is None:
        return copy.deepcopy(default)
    try:
        return json.loads(raw)
    # ValueError covers JSONDecodeError and oversized integer literals.
    except (ValueError, TypeError, RecursionError) as e:
        logger.warning("Malformed data in slot %s: %s. Using default.", key, e)
        return copy.deepcopy(default)


def set_item(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False))


def _get_record(store: KeyValueStore, key: str, model: Type[M], default: M) -> M:
    data = get_item(store, key, None)
    if data is None:
        return default.model_copy(deep=True)
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning("Invalid record in slot %s: %s. Using default.", key, e)
        return default.model_copy(deep=True)


def _get_list(store: KeyValueStore, key: str, model: Type[M]) -> List[M]:
    """Validates each record on its own; invalid records are dropped, the rest are kept."""
    data = get_item(store, key, [])
    if not isinstance(data, list):
        logger.warning("Slot %s does not hold a list. Using empty list.", key)
        return []
    records = []
    for index, item in enumerate(data):
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("Dropping invalid record %s in slot %s: %s", index, key, e)
    return records


def _save_list(store: KeyValueStore, key: str, items: List[BaseModel]) -> None:
    set_item(store, key, [item.to_json() for item in items])


# --- User Stats ---

DEFAULT_STATS = UserStats(level=1, xp=0, xp_to_next_level=100, gold=0, streak=0)


def get_user_stats(store: KeyValueStore) -> UserStats:
    return _get_record(store, STATS_KEY, UserStats, DEFAULT_STATS)


def save_user_stats(store: KeyValueStore, stats: UserStats) -> None:
    set_item(store, STATS_KEY, stats.to_json())


# --- Quests / Missions / Rewards ---

def get_quests(store: KeyValueStore) -> List[Quest]:
    return _get_list(store, QUESTS_KEY, Quest)


def save_quests(store: KeyValueStore, quests: List[Quest]) -> None:
    _save_list(store, QUESTS_KEY, quests)


def get_missions(store: KeyValueStore) -> List[Mission]:
    return _get_list(store, MISSIONS_KEY, Mission)


def save_missions(store: KeyValueStore, missions: List[Mission]) -> None:
    _save_list(store, MISSIONS_KEY, missions)


def get_rewards(store: KeyValueStore) -> List[Reward]:
    return _get_list(store, REWARDS_KEY, Reward)


def save_rewards(store: KeyValueStore, rewards: List[Reward]) -> None:
    _save_list(store, REWARDS_KEY, rewards)


# --- Default data ---

def default_quests(now: datetime) -> List[Quest]:
    catalog = [
        ("quest-1", "Code for 45 mins", "Spend at least 45 minutes coding on a personal project", 15),
        ("quest-2", "Study for 30 mins", "Dedicate 30 minutes to learning something new", 10),
        ("quest-3", "No junk food", "Avoid eating junk food for the entire day", 10),
        ("quest-4", "Sleep before 12:30AM", "Get to bed before 12:30AM", 10),
    ]
    return [
        Quest(id=qid, title=title, description=desc, xp_reward=xp,
              completed=False, repeatable=True, category="daily", created_at=now)
        for qid, title, desc, xp in catalog
    ]


def default_rewards(now: datetime) -> List[Reward]:
    catalog = [
        ("reward-1", "Order food", "Treat yourself to a nice meal delivery", 100, None),
        ("reward-2", "Buy accessory", "Get yourself a small accessory", 200, None),
        ("reward-3", "Buy a watch", "Reward yourself with a new watch", 600, 500),
        ("reward-4", "Buy a bike", "Get that bike you've been wanting", 1500, 1000),
    ]
    return [
        Reward(id=rid, title=title, description=desc, xp_cost=xp, gold_cost=gold,
               purchased=False, created_at=now)
        for rid, title, desc, xp, gold in catalog
    ]


def initialize_default_data(store: KeyValueStore, now: Optional[datetime] = None) -> List[str]:
    """
    Seeds stats, daily quests and rewards on first run.
    Only slots whose key is absent are written; returns the keys that were seeded.
    """
    now = now or utcnow()
    seeders: Dict[str, Callable[[], None]] = {
        STATS_KEY: lambda: save_user_stats(store, DEFAULT_STATS),
        QUESTS_KEY: lambda: save_quests(store, default_quests(now)),
        REWARDS_KEY: lambda: save_rewards(store, default_rewards(now)),
    }
    seeded = []
    for key, seed in seeders.items():
        if store.get(key) is None:
            seed()
            seeded.append(key)
    if seeded:
        logger.info("Seeded default data for %s", ", ".join(seeded))
    return seeded


def reset_all(store: KeyValueStore) -> None:
    """Deletes every slot so the next load starts from defaults."""
    for key in ALL_KEYS:
        store.delete(key)


def export_all(store: KeyValueStore) -> Dict[str, Any]:
    return {
        "stats": get_user_stats(store).to_json(),
        "quests": [q.to_json() for q in get_quests(store)],
        "missions": [m.to_json() for m in get_missions(store)],
        "rewards": [r.to_json() for r in get_rewards(store)],
        "exported_at": utcnow().isoformat(),
    }
