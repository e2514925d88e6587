"""
Monster aggregate: adoption, lookups, the gallery, and applying care
actions (mood + XP + koins + quest counters) to a stored monster.
"""
import random
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pymongo.database import Database

import levels as level_engine
import quests as quest_service
import wallet as wallet_service
from database import create_document, to_object_id, utcnow
from errors import ConfigurationError, ConflictError, NotFoundError, PreconditionFailedError
from logger import get_logger
from monster_actions import ACTION_QUEST_TYPES, ACTIONS_CONFIG, ActionConfig, MonsterAction, parse_action, parse_state, resolve
from schemas import Monster, MonsterState, QuestType, XpLevel

logger = get_logger(__name__)

# Moods the cron job can push a monster into
NEEDY_STATES = (MonsterState.SAD, MonsterState.ANGRY, MonsterState.HUNGRY, MonsterState.SLEEPY)


@dataclass(frozen=True)
class MonsterProgress:
    monster_id: str
    level: int
    xp: int
    level_up: bool


@dataclass(frozen=True)
class ActionResult:
    action: str
    xp_gained: int
    koins_earned: int
    is_correct_action: bool
    level_up: bool
    new_state: str
    level: int
    xp: int
    balance: int

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, **asdict(self)}


def _monster_from_doc(doc: Dict) -> Monster:
    data = {k: v for k, v in doc.items() if k in Monster.model_fields and k != "id"}
    return Monster(id=str(doc["_id"]), **data)


def _level_of(monster: Monster, levels: Sequence[XpLevel]) -> XpLevel:
    for level in levels:
        if level.id == monster.level_id:
            return level
    raise ConfigurationError("Monster points at an unknown XP level", {"monster_id": monster.id})


def monster_to_response(monster: Monster, levels: Sequence[XpLevel]) -> Dict[str, Any]:
    level = _level_of(monster, levels)
    out = monster.model_dump()
    out["level"] = level.model_dump()
    out["xp_to_next_level"] = level_engine.xp_required_for_next_level(level.level, levels)
    return out


def _save_monster(db: Database, before: Monster, changes: Dict[str, Any]) -> Monster:
    """Write `changes` only if nobody else wrote since `before` was read."""
    result = db.monster.update_one(
        {"_id": to_object_id(before.id), "owner_id": before.owner_id, "version": before.version},
        {"$set": {**changes, "updated_at": utcnow()}, "$inc": {"version": 1}},
    )
    if result.matched_count == 0:
        raise ConflictError("Monster was modified concurrently", {"monster_id": before.id})
    return before.model_copy(update={**changes, "version": before.version + 1})


def create_monster(db: Database, owner_id: str, name: str, state: Any = MonsterState.HAPPY,
                   traits: Optional[str] = None) -> Monster:
    first_level = level_engine.get_level_by_number(db, 1)
    if first_level is None:
        raise PreconditionFailedError("XP levels not initialized. Seed them first.")

    monster = Monster(
        name=name,
        owner_id=owner_id,
        state=parse_state(state),
        level_id=first_level.id,
        xp=0,
        traits=traits,
    )
    monster_id = create_document("monster", monster, database=db)
    logger.info("Monster %s (%s) adopted by %s", monster_id, name, owner_id)
    return monster.model_copy(update={"id": monster_id})


def list_monsters(db: Database, owner_id: str) -> List[Monster]:
    return [_monster_from_doc(d) for d in db.monster.find({"owner_id": owner_id}).sort("created_at", -1)]


def get_monster(db: Database, owner_id: str, monster_id: str) -> Monster:
    doc = db.monster.find_one({"_id": to_object_id(monster_id), "owner_id": owner_id})
    if doc is None:
        raise NotFoundError("Monster", monster_id)
    return _monster_from_doc(doc)


def set_public(db: Database, owner_id: str, monster_id: str, is_public: bool) -> Monster:
    monster = get_monster(db, owner_id, monster_id)
    return _save_monster(db, monster, {"is_public": is_public})


def list_public_monsters(db: Database, page: int = 1, per_page: int = 12) -> Tuple[List[Monster], int]:
    query = {"is_public": True}
    total = db.monster.count_documents(query)
    docs = db.monster.find(query).sort("created_at", -1).skip((page - 1) * per_page).limit(per_page)
    return [_monster_from_doc(d) for d in docs], total


def grant_xp(db: Database, owner_id: str, monster_id: str, gain: int,
             levels: Optional[Sequence[XpLevel]] = None) -> MonsterProgress:
    levels = levels or level_engine.load_levels(db)
    monster = get_monster(db, owner_id, monster_id)
    current = _level_of(monster, levels)

    progress = level_engine.apply_xp(current.level, monster.xp, gain, levels)
    _save_monster(db, monster, {"level_id": progress.level.id, "xp": progress.xp})
    if progress.level_up:
        logger.info("Monster %s reached level %d", monster_id, progress.level.level)
        quest_service.track_quietly(db, owner_id, QuestType.LEVEL_UP_MONSTER, 1)

    return MonsterProgress(monster_id=monster_id, level=progress.level.level, xp=progress.xp,
                           level_up=progress.level_up)


def do_action(db: Database, owner_id: str, monster_id: str, action: Any,
              actions: Mapping[MonsterAction, ActionConfig] = ACTIONS_CONFIG) -> ActionResult:
    """
    Apply a care action: new mood and XP are written in one compare-and-swap
    on the monster, then koins are credited and quest counters advanced.
    """
    parsed = parse_action(action)
    monster = get_monster(db, owner_id, monster_id)
    levels = level_engine.load_levels(db)
    current = _level_of(monster, levels)

    outcome = resolve(monster, parsed, actions)
    progress = level_engine.apply_xp(current.level, monster.xp, outcome.xp_gained, levels)

    saved = _save_monster(db, monster, {
        "state": outcome.next_state.value,
        "level_id": progress.level.id,
        "xp": progress.xp,
    })
    try:
        wallet = wallet_service.add_coins(db, owner_id, outcome.koins_earned)
    except Exception:
        _save_monster(db, saved, {"state": monster.state, "level_id": monster.level_id, "xp": monster.xp})
        logger.exception("Rolled back %s on monster %s for %s", parsed.value, monster_id, owner_id)
        raise

    quest_service.track_quietly(db, owner_id, ACTION_QUEST_TYPES[parsed], 1)
    if progress.level_up:
        logger.info("Monster %s reached level %d", monster_id, progress.level.level)
        quest_service.track_quietly(db, owner_id, QuestType.LEVEL_UP_MONSTER, 1)
    if outcome.koins_earned:
        quest_service.track_quietly(db, owner_id, QuestType.EARN_COINS, outcome.koins_earned)

    return ActionResult(
        action=parsed.value,
        xp_gained=outcome.xp_gained,
        koins_earned=outcome.koins_earned,
        is_correct_action=outcome.is_correct_action,
        level_up=progress.level_up,
        new_state=outcome.next_state.value,
        level=progress.level.level,
        xp=progress.xp,
        balance=wallet.coin,
    )


def randomize_states(db: Database, owner_id: Optional[str] = None,
                     rng: Optional[random.Random] = None) -> List[Dict[str, str]]:
    """Cron: give every monster (or every monster of one owner) a new need."""
    rng = rng or random.Random()
    query = {"owner_id": owner_id} if owner_id is not None else {}
    now = utcnow()

    updates = []
    for doc in db.monster.find(query):
        new_state = rng.choice(NEEDY_STATES).value
        db.monster.update_one(
            {"_id": doc["_id"]},
            {"$set": {"state": new_state, "updated_at": now, "last_cron_update": now}, "$inc": {"version": 1}},
        )
        updates.append({"id": str(doc["_id"]), "old_state": doc.get("state", "unknown"), "new_state": new_state})
    return updates
