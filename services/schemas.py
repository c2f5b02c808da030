"""
Record schemas

Pydantic models for everything kept in the storage slots, plus the two
records read back from the auth backend (profiles and user roles).

Stored JSON uses camelCase keys (xpToNextLevel, goldReward, ...); the models
accept both camelCase and snake_case on input.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

QuestCategory = Literal["daily", "weekly", "side-hustle"]


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UserStats(Record):
    level: int = Field(1, ge=1)
    xp: int = Field(0, ge=0)
    xp_to_next_level: int = Field(100, gt=0)
    gold: int = Field(0, ge=0)
    streak: int = Field(0, ge=0)
    last_active_date: Optional[datetime] = None


class Quest(Record):
    id: str
    title: str
    description: str = ""
    xp_reward: int = Field(0, ge=0)
    gold_reward: Optional[int] = Field(None, ge=0)
    completed: bool = False
    repeatable: bool = False
    category: QuestCategory = "daily"
    created_at: datetime
    completed_at: Optional[datetime] = None


class Milestone(Record):
    id: str
    title: str
    description: Optional[str] = None
    xp_reward: int = Field(0, ge=0)
    gold_reward: Optional[int] = Field(None, ge=0)
    completed: bool = False
    completed_at: Optional[datetime] = None


class Mission(Record):
    id: str
    title: str
    description: str = ""
    milestones: List[Milestone] = Field(default_factory=list)
    progress: int = Field(0, ge=0, le=100)
    created_at: datetime
    completed_at: Optional[datetime] = None


class Reward(Record):
    id: str
    title: str
    description: str = ""
    xp_cost: int = Field(0, ge=0)
    gold_cost: Optional[int] = Field(None, ge=0)
    purchased: bool = False
    purchased_at: Optional[datetime] = None
    created_at: datetime


# --------- Remote records (auth backend tables) ---------

class Profile(BaseModel):
    id: str
    username: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    plan: str = "free"
    email: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UserRole(BaseModel):
    id: str
    user_id: str
    role: Literal["admin", "user"]
    created_at: Optional[str] = None
