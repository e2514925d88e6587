"""
XP levels: the level table, the walk that turns a total XP counter into
(level, xp inside that level), and its inverse.

A monster only stores (level_id, xp). To add a gain we rebuild the absolute
counter with `total_xp_before_level`, add the gain, then walk the table
again with `calculate_level_from_total_xp`. A different level at the end of
the walk is a level-up.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from pymongo.database import Database

from database import utcnow
from errors import ConfigurationError, InvalidArgumentError
from logger import get_logger
from schemas import XpLevel

logger = get_logger(__name__)

XP_LEVELS_DATA = (
    {"level": 1, "xp_required": 0, "is_max_level": False},
    {"level": 2, "xp_required": 50, "is_max_level": False},
    {"level": 3, "xp_required": 100, "is_max_level": False},
    {"level": 4, "xp_required": 150, "is_max_level": False},
    {"level": 5, "xp_required": 200, "is_max_level": True},
)


@dataclass(frozen=True)
class LevelResult:
    level: XpLevel
    remaining_xp: int


@dataclass(frozen=True)
class LevelProgress:
    level: XpLevel
    xp: int
    level_up: bool


def validate_levels(levels: Sequence[XpLevel]) -> List[XpLevel]:
    """Fail fast on an empty table, a gap in the numbering or a misplaced max level."""
    if not levels:
        raise ConfigurationError("XP levels not initialized")

    ordered = list(levels)
    for index, level in enumerate(ordered, start=1):
        if level.level != index:
            raise ConfigurationError(
                "XP level table must be contiguous from 1",
                {"expected": index, "found": level.level},
            )
    if ordered[0].xp_required != 0:
        raise ConfigurationError("Level 1 must require 0 XP")

    max_levels = [lvl.level for lvl in ordered if lvl.is_max_level]
    if max_levels != [ordered[-1].level]:
        raise ConfigurationError(
            "Exactly one max level, and it must be the highest",
            {"max_levels": max_levels},
        )
    return ordered


def calculate_level_from_total_xp(total_xp: int, levels: Sequence[XpLevel]) -> LevelResult:
    """
    Walk the table accumulating xp_required; stop before the first level
    whose cumulative threshold is above total_xp.

    Past the max level the walk simply ends there, the remainder is not clamped.
    """
    if total_xp < 0:
        raise InvalidArgumentError("Total XP cannot be negative", {"total_xp": total_xp})

    ordered = validate_levels(levels)
    accumulated = 0
    current = ordered[0]
    for level in ordered:
        if total_xp < accumulated + level.xp_required:
            break
        current = level
        accumulated += level.xp_required

    return LevelResult(level=current, remaining_xp=total_xp - accumulated)


def total_xp_before_level(level_number: int, current_xp_in_level: int, levels: Sequence[XpLevel]) -> int:
    """Absolute XP for a monster at `level_number` holding `current_xp_in_level`."""
    ordered = validate_levels(levels)
    if not 1 <= level_number <= len(ordered):
        raise InvalidArgumentError("Unknown level", {"level": level_number})

    threshold = sum(lvl.xp_required for lvl in ordered if lvl.level <= level_number)
    return threshold + current_xp_in_level


def max_total_xp(levels: Sequence[XpLevel]) -> int:
    return sum(lvl.xp_required for lvl in validate_levels(levels))


def apply_xp(level_number: int, current_xp: int, gain: int, levels: Sequence[XpLevel]) -> LevelProgress:
    """
    Add `gain` XP to a monster and resolve its new level.

    XP is clamped at the max level threshold: a maxed monster keeps xp == 0.
    """
    if gain < 0:
        raise InvalidArgumentError("XP gain cannot be negative", {"gain": gain})

    ordered = validate_levels(levels)
    current_total = total_xp_before_level(level_number, current_xp, ordered)
    new_total = min(current_total + gain, max_total_xp(ordered))

    result = calculate_level_from_total_xp(new_total, ordered)
    return LevelProgress(
        level=result.level,
        xp=result.remaining_xp,
        level_up=result.level.level != level_number,
    )


def xp_required_for_next_level(level_number: int, levels: Sequence[XpLevel]) -> Optional[int]:
    for level in validate_levels(levels):
        if level.level == level_number + 1:
            return level.xp_required
    return None


# -----------------------------
# Persistence
# -----------------------------

def _level_from_doc(doc: Dict) -> XpLevel:
    return XpLevel(
        id=str(doc["_id"]),
        level=doc["level"],
        xp_required=doc["xp_required"],
        is_max_level=doc.get("is_max_level", False),
    )


def load_levels(db: Database) -> List[XpLevel]:
    """Levels sorted ascending, validated."""
    docs = db.xplevel.find({}).sort("level", 1)
    return validate_levels([_level_from_doc(d) for d in docs])


def get_level_by_number(db: Database, level_number: int) -> Optional[XpLevel]:
    doc = db.xplevel.find_one({"level": level_number})
    return _level_from_doc(doc) if doc else None


def seed_levels(db: Database, data: Sequence[Dict] = XP_LEVELS_DATA) -> List[XpLevel]:
    """
    Reset the table to `data`. Upserts on the level number, so ids of
    existing levels survive and monsters keep pointing at them.
    """
    seeded = [XpLevel(**row) for row in data]
    validate_levels(seeded)

    now = utcnow()
    for level in seeded:
        db.xplevel.update_one(
            {"level": level.level},
            {
                "$set": {
                    "xp_required": level.xp_required,
                    "is_max_level": level.is_max_level,
                    "updated_at": now,
                },
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
        )
    db.xplevel.delete_many({"level": {"$nin": [lvl.level for lvl in seeded]}})

    levels = load_levels(db)
    logger.info("Seeded %d XP levels", len(levels))
    return levels
