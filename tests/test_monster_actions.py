"""
Unit tests for monster_actions.resolve. Pure, no database.
"""
import pytest

from errors import InvalidArgumentError, NotFoundError
from monster_actions import (
    ACTIONS_CONFIG,
    XP_GAIN_CORRECT_ACTION,
    XP_GAIN_INCORRECT_ACTION,
    ActionConfig,
    MonsterAction,
    Reward,
    parse_action,
    resolve,
)
from schemas import Monster, MonsterState


def make_monster(state):
    return Monster(name="Pixel", owner_id="user-1", state=state)


class TestResolve:

    def test_feeding_hungry_monster(self):
        outcome = resolve(make_monster(MonsterState.HUNGRY), "feed")
        assert outcome.is_correct_action
        assert outcome.next_state == MonsterState.HAPPY
        assert outcome.xp_gained == XP_GAIN_CORRECT_ACTION
        assert outcome.koins_earned == 1

    def test_feeding_happy_monster(self):
        outcome = resolve(make_monster(MonsterState.HAPPY), "feed")
        assert not outcome.is_correct_action
        assert outcome.next_state == MonsterState.HAPPY
        assert outcome.xp_gained == XP_GAIN_INCORRECT_ACTION
        assert outcome.koins_earned == 0

    def test_wrong_action_never_changes_mood(self):
        for action, config in ACTIONS_CONFIG.items():
            for state in MonsterState:
                if state == config.correct_state:
                    continue
                outcome = resolve(make_monster(state), action)
                assert outcome.next_state == state
                assert not outcome.is_correct_action

    def test_right_action_moves_to_next_state(self):
        for action, config in ACTIONS_CONFIG.items():
            outcome = resolve(make_monster(config.correct_state), action)
            assert outcome.is_correct_action
            assert outcome.next_state == config.next_state

    def test_same_input_same_output(self):
        monster = make_monster(MonsterState.SAD)
        assert resolve(monster, "hug") == resolve(monster, "hug")

    def test_cuddle_is_hug(self):
        assert parse_action("cuddle") == MonsterAction.HUG
        outcome = resolve(make_monster(MonsterState.SAD), "cuddle")
        assert outcome.is_correct_action

    def test_unknown_action(self):
        with pytest.raises(InvalidArgumentError):
            resolve(make_monster(MonsterState.SAD), "tickle")

    def test_missing_monster(self):
        with pytest.raises(NotFoundError):
            resolve(None, "feed")

    def test_injected_table(self):
        generous = {
            MonsterAction.FEED: ActionConfig(
                MonsterState.HUNGRY, MonsterState.SLEEPY, Reward(100, 5), Reward(7, 3)
            ),
        }
        outcome = resolve(make_monster(MonsterState.HUNGRY), "feed", generous)
        assert outcome.next_state == MonsterState.SLEEPY
        assert outcome.xp_gained == 100
        assert outcome.koins_earned == 7

        with pytest.raises(InvalidArgumentError):
            resolve(make_monster(MonsterState.SAD), "hug", generous)
