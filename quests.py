"""
Daily quests.

A quest moves active -> completed -> claimed. The renewal job may move
active or completed quests to expired once their day is over. Claimed and
expired are terminal.

The transition functions are pure: they take a quest and return a new one,
or raise `PreconditionFailedError`. Writes go through `_save_transition`,
which only matches when the stored status is still the one we read, so a
quest cannot be claimed twice even by two requests racing.
"""
import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence

from pymongo.database import Database
from pymongo.errors import PyMongoError

from database import create_document, to_object_id, utcnow
from errors import ConflictError, InvalidArgumentError, NotFoundError, PreconditionFailedError
from logger import get_logger
from schemas import DailyQuest, QuestDifficulty, QuestStatus, QuestType
import wallet as wallet_service

logger = get_logger(__name__)

QUESTS_PER_DAY = 5
BASE_COIN_REWARD = 50
BASE_XP_REWARD = 10
DIFFICULTY_MULTIPLIERS: Mapping[QuestDifficulty, float] = MappingProxyType({
    QuestDifficulty.EASY: 1,
    QuestDifficulty.MEDIUM: 1.5,
    QuestDifficulty.HARD: 2,
})

ALLOWED_TRANSITIONS: Mapping[QuestStatus, FrozenSet[QuestStatus]] = MappingProxyType({
    QuestStatus.ACTIVE: frozenset({QuestStatus.COMPLETED, QuestStatus.EXPIRED}),
    QuestStatus.COMPLETED: frozenset({QuestStatus.CLAIMED, QuestStatus.EXPIRED}),
    QuestStatus.CLAIMED: frozenset(),
    QuestStatus.EXPIRED: frozenset(),
})

LIVE_STATUSES = (QuestStatus.ACTIVE.value, QuestStatus.COMPLETED.value, QuestStatus.CLAIMED.value)


@dataclass(frozen=True)
class QuestTemplate:
    type: QuestType
    difficulty: QuestDifficulty
    title: str
    description: str
    target_count: int

    @property
    def coin_reward(self) -> int:
        return int(BASE_COIN_REWARD * DIFFICULTY_MULTIPLIERS[self.difficulty])

    @property
    def xp_reward(self) -> int:
        return int(BASE_XP_REWARD * DIFFICULTY_MULTIPLIERS[self.difficulty])


QUEST_TEMPLATES = (
    QuestTemplate(QuestType.FEED_MONSTER, QuestDifficulty.EASY, "Breakfast time", "Feed your monster 3 times", 3),
    QuestTemplate(QuestType.FEED_MONSTER, QuestDifficulty.MEDIUM, "Head chef", "Feed your monster 5 times", 5),
    QuestTemplate(QuestType.FEED_MONSTER, QuestDifficulty.HARD, "Royal feast", "Feed your monster 10 times", 10),
    QuestTemplate(QuestType.PLAY_WITH_MONSTER, QuestDifficulty.EASY, "Playtime", "Play with your monster 3 times", 3),
    QuestTemplate(QuestType.PLAY_WITH_MONSTER, QuestDifficulty.MEDIUM, "Playmate", "Play with your monster 5 times", 5),
    QuestTemplate(QuestType.PLAY_WITH_MONSTER, QuestDifficulty.HARD, "Play marathon", "Play with your monster 10 times", 10),
    QuestTemplate(QuestType.LEVEL_UP_MONSTER, QuestDifficulty.EASY, "First evolution", "Level up a monster once", 1),
    QuestTemplate(QuestType.BUY_ACCESSORY, QuestDifficulty.EASY, "Window shopper", "Buy 1 accessory", 1),
    QuestTemplate(QuestType.BUY_ACCESSORY, QuestDifficulty.MEDIUM, "Collector", "Buy 3 accessories", 3),
    QuestTemplate(QuestType.EQUIP_ACCESSORY, QuestDifficulty.EASY, "Fashionista", "Equip 1 accessory on your monster", 1),
    QuestTemplate(QuestType.EQUIP_ACCESSORY, QuestDifficulty.MEDIUM, "Stylist", "Equip 3 accessories", 3),
    QuestTemplate(QuestType.VISIT_GALLERY, QuestDifficulty.EASY, "Explorer", "Visit the monster gallery", 1),
    QuestTemplate(QuestType.EARN_COINS, QuestDifficulty.MEDIUM, "Koin collector", "Earn 100 koins", 100),
    QuestTemplate(QuestType.EARN_COINS, QuestDifficulty.HARD, "Treasurer", "Earn 250 koins", 250),
)


def random_templates(count: int = QUESTS_PER_DAY, rng: Optional[random.Random] = None,
                     templates: Sequence[QuestTemplate] = QUEST_TEMPLATES) -> List[QuestTemplate]:
    """`count` distinct templates, in random order."""
    rng = rng or random.Random()
    return rng.sample(list(templates), min(count, len(templates)))


def next_midnight(now: datetime) -> datetime:
    return (now + timedelta(days=1)).replace(hour=0, minute=0, second=0, microsecond=0)


# -----------------------------
# State machine
# -----------------------------

def _transition(quest: DailyQuest, target: QuestStatus, **changes: Any) -> DailyQuest:
    current = QuestStatus(quest.status)
    if target not in ALLOWED_TRANSITIONS[current]:
        raise PreconditionFailedError(
            f"Cannot move quest from {current.value} to {target.value}",
            {"quest_id": quest.id, "status": current.value},
        )
    return quest.model_copy(update={"status": target.value, **changes})


def is_trackable(quest: DailyQuest, now: datetime) -> bool:
    return QuestStatus(quest.status) == QuestStatus.ACTIVE and quest.expires_at > now


def track_progress(quest: DailyQuest, increment_by: int, now: datetime) -> DailyQuest:
    """Bump progress, never past the target; reaching it completes the quest."""
    if increment_by < 1:
        raise InvalidArgumentError("Increment must be at least 1", {"increment_by": increment_by})
    if not is_trackable(quest, now):
        raise PreconditionFailedError(
            "Quest is not active",
            {"quest_id": quest.id, "status": QuestStatus(quest.status).value},
        )

    progress = min(quest.current_progress + increment_by, quest.target_count)
    if progress >= quest.target_count:
        return _transition(quest, QuestStatus.COMPLETED, current_progress=progress)
    return quest.model_copy(update={"current_progress": progress})


def complete_quest(quest: DailyQuest) -> DailyQuest:
    if quest.current_progress < quest.target_count:
        raise PreconditionFailedError(
            "Quest target not reached yet",
            {"quest_id": quest.id, "progress": quest.current_progress, "target": quest.target_count},
        )
    return _transition(quest, QuestStatus.COMPLETED)


def claim_quest(quest: DailyQuest) -> DailyQuest:
    return _transition(quest, QuestStatus.CLAIMED)


def expire_quest(quest: DailyQuest, now: datetime) -> DailyQuest:
    if quest.expires_at > now:
        raise PreconditionFailedError("Quest has not expired yet", {"quest_id": quest.id})
    return _transition(quest, QuestStatus.EXPIRED)


# -----------------------------
# Persistence
# -----------------------------

def _quest_from_doc(doc: Dict) -> DailyQuest:
    data = {k: v for k, v in doc.items() if k in DailyQuest.model_fields and k != "id"}
    return DailyQuest(id=str(doc["_id"]), **data)


def _save_transition(db: Database, before: DailyQuest, after: DailyQuest) -> DailyQuest:
    result = db.dailyquest.update_one(
        {
            "_id": to_object_id(before.id),
            "owner_id": before.owner_id,
            "status": QuestStatus(before.status).value,
            "current_progress": before.current_progress,
        },
        {"$set": {
            "status": QuestStatus(after.status).value,
            "current_progress": after.current_progress,
            "updated_at": utcnow(),
        }},
    )
    if result.matched_count == 0:
        raise ConflictError("Quest was modified concurrently", {"quest_id": before.id})
    return after


def get_quest(db: Database, owner_id: str, quest_id: str) -> DailyQuest:
    doc = db.dailyquest.find_one({"_id": to_object_id(quest_id), "owner_id": owner_id})
    if doc is None:
        raise NotFoundError("DailyQuest", quest_id)
    return _quest_from_doc(doc)


def generate_daily_quests(db: Database, owner_id: str, now: Optional[datetime] = None,
                          rng: Optional[random.Random] = None, count: int = QUESTS_PER_DAY) -> List[DailyQuest]:
    now = now or utcnow()
    expires_at = next_midnight(now)

    created = []
    for template in random_templates(count, rng):
        quest = DailyQuest(
            owner_id=owner_id,
            type=template.type,
            difficulty=template.difficulty,
            title=template.title,
            description=template.description,
            target_count=template.target_count,
            coin_reward=template.coin_reward,
            xp_reward=template.xp_reward,
            expires_at=expires_at,
        )
        quest_id = create_document("dailyquest", quest, database=db)
        created.append(quest.model_copy(update={"id": quest_id}))

    logger.info("Generated %d daily quests for %s", len(created), owner_id)
    return created


def expire_old_quests(db: Database, now: Optional[datetime] = None, owner_id: Optional[str] = None) -> int:
    now = now or utcnow()
    query: Dict[str, Any] = {
        "status": {"$in": [QuestStatus.ACTIVE.value, QuestStatus.COMPLETED.value]},
        "expires_at": {"$lte": now},
    }
    if owner_id is not None:
        query["owner_id"] = owner_id
    result = db.dailyquest.update_many(query, {"$set": {"status": QuestStatus.EXPIRED.value, "updated_at": now}})
    return result.modified_count


def get_daily_quests(db: Database, owner_id: str, now: Optional[datetime] = None,
                     rng: Optional[random.Random] = None) -> List[DailyQuest]:
    """Today's quests; a fresh batch is generated when none are live."""
    now = now or utcnow()
    docs = list(
        db.dailyquest.find({
            "owner_id": owner_id,
            "status": {"$in": list(LIVE_STATUSES)},
            "expires_at": {"$gt": now},
        }).sort("created_at", 1)
    )
    if docs:
        return [_quest_from_doc(d) for d in docs]

    expire_old_quests(db, now, owner_id)
    return generate_daily_quests(db, owner_id, now, rng)


def update_quest_progress(db: Database, owner_id: str, quest_id: str, increment_by: int = 1,
                          now: Optional[datetime] = None) -> DailyQuest:
    now = now or utcnow()
    quest = get_quest(db, owner_id, quest_id)
    return _save_transition(db, quest, track_progress(quest, increment_by, now))


def track_quest_progress(db: Database, owner_id: str, quest_type: QuestType, increment_by: int = 1,
                         now: Optional[datetime] = None) -> List[DailyQuest]:
    """Advance every live quest of `quest_type` for this owner."""
    now = now or utcnow()
    docs = db.dailyquest.find({
        "owner_id": owner_id,
        "type": QuestType(quest_type).value,
        "status": QuestStatus.ACTIVE.value,
        "expires_at": {"$gt": now},
    })

    updated = []
    for doc in docs:
        quest = _quest_from_doc(doc)
        updated.append(_save_transition(db, quest, track_progress(quest, increment_by, now)))
    return updated


def track_quietly(db: Database, owner_id: str, quest_type: QuestType, increment_by: int = 1) -> None:
    """`track_quest_progress` for side effects of other features: failures are logged, not raised."""
    try:
        track_quest_progress(db, owner_id, quest_type, increment_by)
    except (PyMongoError, ConflictError) as e:
        logger.warning("Failed to track %s quest progress for %s: %s", QuestType(quest_type).value, owner_id, e)


def complete_daily_quest(db: Database, owner_id: str, quest_id: str, now: Optional[datetime] = None) -> DailyQuest:
    now = now or utcnow()
    quest = get_quest(db, owner_id, quest_id)
    if quest.expires_at <= now:
        raise PreconditionFailedError("Quest has expired", {"quest_id": quest_id})
    return _save_transition(db, quest, complete_quest(quest))


def _take_back_coins(db: Database, owner_id: str, amount: int) -> bool:
    try:
        wallet_service.subtract_coins(db, owner_id, amount)
    except PreconditionFailedError:
        return False
    return True


def claim_quest_reward(db: Database, owner_id: str, quest_id: str, monster_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Mark a completed quest claimed and pay it out. Coins go to the wallet;
    XP goes to `monster_id` when one is given.

    If paying fails after the claim was written, credited coins are taken
    back and the quest returns to completed before the error is re-raised.
    When those coins were already spent the quest stays claimed.
    """
    import monsters as monster_service

    quest = get_quest(db, owner_id, quest_id)
    claimed = claim_quest(quest)
    grants_xp = monster_id is not None and quest.xp_reward > 0
    if grants_xp:
        # fail before touching anything if the monster is not ours
        monster_service.get_monster(db, owner_id, monster_id)

    _save_transition(db, quest, claimed)
    credited = False
    try:
        wallet = wallet_service.add_coins(db, owner_id, quest.coin_reward)
        credited = True
        progress = monster_service.grant_xp(db, owner_id, monster_id, quest.xp_reward) if grants_xp else None
    except Exception:
        if credited and quest.coin_reward and not _take_back_coins(db, owner_id, quest.coin_reward):
            # coins stay paid, so the quest must stay claimed
            logger.exception("Claim of quest %s for %s kept: reward already spent", quest_id, owner_id)
            raise
        _save_transition(db, claimed, quest)
        logger.exception("Rolled back claim of quest %s for %s", quest_id, owner_id)
        raise

    xp_unapplied = quest.xp_reward if not grants_xp else 0
    if xp_unapplied:
        logger.warning("Quest %s claimed by %s without a monster: %d XP not applied",
                       quest_id, owner_id, xp_unapplied)
    logger.info("Quest %s claimed by %s: +%d koins", quest_id, owner_id, quest.coin_reward)
    return {"quest": claimed, "wallet": wallet, "monster": progress, "xp_reward_unapplied": xp_unapplied}


# -----------------------------
# Daily renewal
# -----------------------------

@dataclass
class RenewalSummary:
    users_processed: int = 0
    total_quests_expired: int = 0
    total_quests_created: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)


def known_owners(db: Database) -> List[str]:
    owners = set(db.monster.distinct("owner_id"))
    owners.update(db.dailyquest.distinct("owner_id"))
    owners.update(db.wallet.distinct("owner_id"))
    return sorted(o for o in owners if o)


def renew_daily_quests(db: Database, now: Optional[datetime] = None, owner_id: Optional[str] = None,
                       rng: Optional[random.Random] = None) -> RenewalSummary:
    """Expire yesterday's quests and hand out a new batch to anyone left without live ones."""
    now = now or utcnow()
    owners = [owner_id] if owner_id is not None else known_owners(db)
    summary = RenewalSummary()

    for owner in owners:
        try:
            summary.total_quests_expired += expire_old_quests(db, now, owner)
            live = db.dailyquest.count_documents({
                "owner_id": owner,
                "status": {"$in": list(LIVE_STATUSES)},
                "expires_at": {"$gt": now},
            })
            if live == 0:
                summary.total_quests_created += len(generate_daily_quests(db, owner, now, rng))
            summary.users_processed += 1
        except Exception as e:
            logger.error("Quest renewal failed for %s: %s", owner, e)
            summary.errors.append({"user_id": owner, "error": str(e)})

    return summary
