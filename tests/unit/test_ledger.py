"""Level and coin computation tests."""

import pytest

from pathquest.errors import InvalidArgument
from pathquest.gamification.ledger import coins_for, level_for, level_progress, xp_for_next_level


class TestLevelFor:
    """Level N starts at (N - 1)^2 * 1000 XP."""

    def test_level_1_at_zero_xp(self):
        assert level_for(0) == 1

    def test_level_boundary_999_xp(self):
        """999 XP is still level 1."""
        assert level_for(999) == 1

    def test_level_2_at_1000_xp(self):
        assert level_for(1000) == 2

    def test_level_2_just_below_level_3(self):
        assert level_for(3999) == 2

    def test_level_3_at_4000_xp(self):
        assert level_for(4000) == 3

    def test_level_4_at_9000_xp(self):
        assert level_for(9000) == 4

    def test_level_10_at_81000_xp(self):
        assert level_for(81_000) == 10

    def test_large_xp(self):
        assert level_for(10_000_000) == 101

    def test_negative_xp_rejected(self):
        with pytest.raises(InvalidArgument):
            level_for(-1)


class TestCoins:
    def test_ten_percent_rounded_down(self):
        assert coins_for(1200) == 120
        assert coins_for(59) == 5
        assert coins_for(9) == 0

    def test_negative_rejected(self):
        with pytest.raises(InvalidArgument):
            coins_for(-10)


class TestLevelProgress:
    def test_next_level_threshold(self):
        assert xp_for_next_level(1) == 1000
        assert xp_for_next_level(2) == 4000

    def test_progress_into_level_2(self):
        info = level_progress(1500)
        assert info["level"] == 2
        assert info["xp_into_level"] == 500
        assert info["xp_for_level"] == 3000
        assert info["next_level"] == 3
        assert info["next_level_xp"] == 4000

    def test_progress_at_zero(self):
        info = level_progress(0)
        assert info["level"] == 1
        assert info["xp_into_level"] == 0
        assert info["xp_for_level"] == 1000
