"""
Tamagotcho Database Schemas

Each Pydantic model represents a MongoDB collection.
Collection name is the lowercase class name.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MonsterState(str, Enum):
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    HUNGRY = "hungry"
    SLEEPY = "sleepy"


class QuestStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CLAIMED = "claimed"
    EXPIRED = "expired"


class QuestType(str, Enum):
    FEED_MONSTER = "feed_monster"
    PLAY_WITH_MONSTER = "play_with_monster"
    LEVEL_UP_MONSTER = "level_up_monster"
    BUY_ACCESSORY = "buy_accessory"
    EQUIP_ACCESSORY = "equip_accessory"
    VISIT_GALLERY = "visit_gallery"
    EARN_COINS = "earn_coins"


class QuestDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class AccessoryCategory(str, Enum):
    HAT = "hat"
    GLASSES = "glasses"
    SHOES = "shoes"
    BACKGROUND = "background"
    EFFECT = "effect"


class AccessoryRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


class _Document(BaseModel):
    # enums are stored as their plain string values
    model_config = ConfigDict(use_enum_values=True)

    id: Optional[str] = Field(None, description="Stringified _id, absent before insert")


class XpLevel(_Document):
    level: int = Field(..., ge=1, le=5)
    xp_required: int = Field(..., ge=0, description="XP needed to enter this level from the previous one")
    is_max_level: bool = False


class Monster(_Document):
    name: str
    owner_id: str
    state: MonsterState = MonsterState.HAPPY
    level_id: Optional[str] = Field(None, description="Id of the XpLevel the monster is at")
    xp: int = Field(0, ge=0, description="XP accumulated inside the current level")
    traits: Optional[str] = Field(None, description="JSON serialized look of the monster")
    is_public: bool = False
    version: int = Field(0, ge=0, description="Bumped on every write, used for compare-and-swap")


class Wallet(_Document):
    owner_id: str
    coin: int = Field(0, ge=0)


class DailyQuest(_Document):
    owner_id: str
    type: QuestType
    difficulty: QuestDifficulty
    title: str
    description: str
    target_count: int = Field(..., ge=1)
    current_progress: int = Field(0, ge=0)
    coin_reward: int = Field(..., ge=0)
    xp_reward: int = Field(0, ge=0)
    status: QuestStatus = QuestStatus.ACTIVE
    expires_at: datetime


class OwnedAccessory(_Document):
    owner_id: str
    accessory_id: str
    monster_id: Optional[str] = None
    is_equipped: bool = False
    purchased_at: Optional[datetime] = None


class StripeEvent(_Document):
    event_id: str
    type: str
    owner_id: Optional[str] = None
    koins: int = 0


"""
Note: The database viewer reads these schemas via GET /schema.
"""
