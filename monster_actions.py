"""
Care actions and how a monster reacts to them.

Each action fixes exactly one mood. Doing the right action for the current
mood makes the monster happy and pays more XP and koins; the wrong one
leaves the mood alone and pays the consolation amounts.
"""
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional

from errors import InvalidArgumentError, NotFoundError
from schemas import Monster, MonsterState, QuestType

XP_GAIN_CORRECT_ACTION = 10
XP_GAIN_INCORRECT_ACTION = 2


class MonsterAction(str, Enum):
    FEED = "feed"
    COMFORT = "comfort"
    HUG = "hug"
    WAKE = "wake"


# older clients still send "cuddle"
LEGACY_ACTION_ALIASES = {"cuddle": MonsterAction.HUG}


@dataclass(frozen=True)
class Reward:
    correct: int
    incorrect: int

    def pick(self, is_correct: bool) -> int:
        return self.correct if is_correct else self.incorrect


@dataclass(frozen=True)
class ActionConfig:
    correct_state: MonsterState
    next_state: MonsterState
    xp_gain: Reward
    koin_reward: Reward


@dataclass(frozen=True)
class ActionOutcome:
    xp_gained: int
    is_correct_action: bool
    next_state: MonsterState
    koins_earned: int


_XP = Reward(correct=XP_GAIN_CORRECT_ACTION, incorrect=XP_GAIN_INCORRECT_ACTION)
_KOINS = Reward(correct=1, incorrect=0)

ACTIONS_CONFIG: Mapping[MonsterAction, ActionConfig] = MappingProxyType({
    MonsterAction.FEED: ActionConfig(MonsterState.HUNGRY, MonsterState.HAPPY, _XP, _KOINS),
    MonsterAction.COMFORT: ActionConfig(MonsterState.ANGRY, MonsterState.HAPPY, _XP, _KOINS),
    MonsterAction.HUG: ActionConfig(MonsterState.SAD, MonsterState.HAPPY, _XP, _KOINS),
    MonsterAction.WAKE: ActionConfig(MonsterState.SLEEPY, MonsterState.HAPPY, _XP, _KOINS),
})

# Daily quest counters bumped by each action
ACTION_QUEST_TYPES: Mapping[MonsterAction, QuestType] = MappingProxyType({
    MonsterAction.FEED: QuestType.FEED_MONSTER,
    MonsterAction.COMFORT: QuestType.PLAY_WITH_MONSTER,
    MonsterAction.HUG: QuestType.PLAY_WITH_MONSTER,
    MonsterAction.WAKE: QuestType.PLAY_WITH_MONSTER,
})


def parse_action(value: Any) -> MonsterAction:
    if isinstance(value, MonsterAction):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        if key in LEGACY_ACTION_ALIASES:
            return LEGACY_ACTION_ALIASES[key]
        try:
            return MonsterAction(key)
        except ValueError:
            pass
    raise InvalidArgumentError("Invalid action", {"action": str(value)})


def parse_state(value: Any) -> MonsterState:
    try:
        return MonsterState(value)
    except ValueError:
        raise InvalidArgumentError("Invalid monster state", {"state": str(value)})


def resolve(monster: Optional[Monster], action: Any,
            actions: Mapping[MonsterAction, ActionConfig] = ACTIONS_CONFIG) -> ActionOutcome:
    """Decide what `action` does to `monster`. Pure; persisting the outcome is the caller's job."""
    if monster is None:
        raise NotFoundError("Monster", None)

    parsed = parse_action(action)
    if parsed not in actions:
        raise InvalidArgumentError("Action not configured", {"action": parsed.value})

    config = actions[parsed]
    state = parse_state(monster.state)
    is_correct = config.correct_state == state

    return ActionOutcome(
        xp_gained=config.xp_gain.pick(is_correct),
        is_correct_action=is_correct,
        next_state=config.next_state if is_correct else state,
        koins_earned=config.koin_reward.pick(is_correct),
    )
