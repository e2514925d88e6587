"""
Unit tests for levels.py: the total XP walk, its inverse, and seeding.
"""
import pytest

from errors import ConfigurationError, InvalidArgumentError
from levels import (
    XP_LEVELS_DATA,
    apply_xp,
    calculate_level_from_total_xp,
    load_levels,
    max_total_xp,
    seed_levels,
    total_xp_before_level,
    xp_required_for_next_level,
)
from schemas import XpLevel


class TestCalculateLevel:

    def test_zero_is_level_one(self, levels):
        result = calculate_level_from_total_xp(0, levels)
        assert result.level.level == 1
        assert result.remaining_xp == 0

    def test_125_is_level_two_with_75_left(self, levels):
        """Thresholds accumulate: level 3 needs 50 + 100 = 150."""
        result = calculate_level_from_total_xp(125, levels)
        assert result.level.level == 2
        assert result.remaining_xp == 75

    def test_exact_threshold_enters_level(self, levels):
        result = calculate_level_from_total_xp(150, levels)
        assert result.level.level == 3
        assert result.remaining_xp == 0

    def test_past_max_stops_at_max_without_clamping(self, levels):
        result = calculate_level_from_total_xp(550, levels)
        assert result.level.level == 5
        assert result.level.is_max_level
        assert result.remaining_xp == 50

    def test_monotonic(self, levels):
        previous = 0
        for total in range(0, 601):
            current = calculate_level_from_total_xp(total, levels).level.level
            assert current >= previous
            previous = current

    def test_round_trip(self, levels):
        for total in range(0, max_total_xp(levels) + 1):
            result = calculate_level_from_total_xp(total, levels)
            assert total_xp_before_level(result.level.level, result.remaining_xp, levels) == total

    def test_negative_total_rejected(self, levels):
        with pytest.raises(InvalidArgumentError):
            calculate_level_from_total_xp(-1, levels)


class TestMalformedTables:

    def test_empty_table(self):
        with pytest.raises(ConfigurationError):
            calculate_level_from_total_xp(10, [])

    def test_gap_in_levels(self):
        table = [XpLevel(level=1, xp_required=0), XpLevel(level=3, xp_required=50, is_max_level=True)]
        with pytest.raises(ConfigurationError):
            calculate_level_from_total_xp(10, table)

    def test_unsorted_levels(self, levels):
        with pytest.raises(ConfigurationError):
            calculate_level_from_total_xp(10, list(reversed(levels)))

    def test_missing_max_level(self):
        table = [XpLevel(level=1, xp_required=0), XpLevel(level=2, xp_required=50)]
        with pytest.raises(ConfigurationError):
            calculate_level_from_total_xp(10, table)

    def test_level_one_must_be_free(self):
        table = [XpLevel(level=1, xp_required=10), XpLevel(level=2, xp_required=50, is_max_level=True)]
        with pytest.raises(ConfigurationError):
            calculate_level_from_total_xp(10, table)


class TestApplyXp:

    def test_gain_inside_level(self, levels):
        progress = apply_xp(1, 10, 10, levels)
        assert progress.level.level == 1
        assert progress.xp == 20
        assert not progress.level_up

    def test_gain_crossing_threshold_levels_up(self, levels):
        progress = apply_xp(1, 45, 10, levels)
        assert progress.level.level == 2
        assert progress.xp == 5
        assert progress.level_up

    def test_gain_can_skip_levels(self, levels):
        progress = apply_xp(1, 0, 160, levels)
        assert progress.level.level == 3
        assert progress.xp == 10

    def test_clamped_at_max_level(self, levels):
        progress = apply_xp(4, 190, 50, levels)
        assert progress.level.level == 5
        assert progress.xp == 0
        assert progress.level_up

        progress = apply_xp(5, 0, 100, levels)
        assert progress.xp == 0
        assert not progress.level_up

    def test_negative_gain_rejected(self, levels):
        with pytest.raises(InvalidArgumentError):
            apply_xp(1, 0, -5, levels)

    def test_next_level_requirement(self, levels):
        assert xp_required_for_next_level(1, levels) == 50
        assert xp_required_for_next_level(5, levels) is None


class TestSeeding:

    def test_seed_loads_five_levels(self, db):
        loaded = load_levels(db)
        assert [lvl.level for lvl in loaded] == [1, 2, 3, 4, 5]
        assert [lvl.xp_required for lvl in loaded] == [row["xp_required"] for row in XP_LEVELS_DATA]
        assert all(lvl.id for lvl in loaded)

    def test_reseed_keeps_ids(self, db):
        before = {lvl.level: lvl.id for lvl in load_levels(db)}
        seed_levels(db)
        after = {lvl.level: lvl.id for lvl in load_levels(db)}
        assert before == after
        assert db.xplevel.count_documents({}) == 5

    def test_reseed_drops_extra_levels(self, db):
        db.xplevel.insert_one({"level": 6, "xp_required": 300, "is_max_level": False})
        seed_levels(db)
        assert db.xplevel.count_documents({}) == 5

    def test_malformed_seed_rejected(self, db):
        with pytest.raises(ConfigurationError):
            seed_levels(db, [{"level": 1, "xp_required": 0, "is_max_level": False}])
