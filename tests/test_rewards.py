"""
Tests for CLUB reward calculation.
"""
from toppest.features.rewards import (
    calculate_club_rewards, quick_calculate_rewards, get_reward_preview, format_reward
)


class TestCalculateClubRewards:
    def test_medium_dash_trials_run(self):
        """1000 points, 2 fevers, 5 perfects, 10 coins at medium pays 12 CLUB"""
        result = calculate_club_rewards('dash-trials', 1000, fever_count=2, perfect_count=5,
                                        coin_count=10, difficulty='medium')
        assert result.base_reward == 10
        assert result.fever_bonus == 2
        assert result.perfect_bonus == 0
        assert result.coin_bonus == 0
        assert result.difficulty_multiplier == 1.0
        assert result.total_reward == 12
        assert result.breakdown == {
            'base': 10, 'fever': 2, 'perfect': 0, 'coins': 0, 'difficulty': 1.0, 'total': 12
        }

    def test_difficulty_multiplier_applies_to_subtotal(self):
        result = calculate_club_rewards('dash-trials', 1000, difficulty='hard')
        assert result.total_reward == 12

        result = calculate_club_rewards('dash-trials', 1000, difficulty='tutorial')
        assert result.total_reward == 5

    def test_unknown_difficulty_uses_neutral_multiplier(self):
        result = calculate_club_rewards('dash-trials', 1000, difficulty='nightmare')
        assert result.difficulty_multiplier == 1.0
        assert result.total_reward == 10

    def test_total_is_capped(self):
        result = calculate_club_rewards('dash-trials', 100000, fever_count=50, perfect_count=500,
                                        coin_count=1000, difficulty='extreme')
        assert result.total_reward == 100

    def test_unknown_game_uses_flat_rate(self):
        result = calculate_club_rewards('space-chess', 1234, fever_count=9, difficulty='extreme')
        assert result.total_reward == 123
        assert result.base_reward == 123
        assert result.fever_bonus == 0
        assert result.difficulty_multiplier == 1.0

    def test_game_without_table_uses_flat_rate(self):
        assert calculate_club_rewards('cosmic-flap', 57).total_reward == 5

    def test_flat_rate_capped_for_registered_game(self):
        result = calculate_club_rewards('cosmic-flap', 1000000, difficulty='extreme')
        assert result.total_reward == 100
        assert result.base_reward == 100
        # Unregistered games keep the uncapped flat rate
        assert calculate_club_rewards('space-chess', 1000000).total_reward == 100000

    def test_negative_score_clamps_to_zero(self):
        assert calculate_club_rewards('dash-trials', -500).total_reward == 0
        assert calculate_club_rewards('space-chess', -500).total_reward == 0

    def test_exact_decimal_products(self):
        # 29 * 0.01 and 0.07 style products must not lose a unit to float error
        assert calculate_club_rewards('dash-trials', 700).base_reward == 7
        assert calculate_club_rewards('dash-trials', 2900).base_reward == 29
        assert calculate_club_rewards('dash-trials', 0, coin_count=60).coin_bonus == 3

    def test_monotonic_in_score(self):
        previous = -1
        for score in range(0, 20000, 137):
            total = calculate_club_rewards('dash-trials', score, fever_count=1, perfect_count=3,
                                           coin_count=15, difficulty='hard').total_reward
            assert total >= previous
            assert total <= 100
            previous = total


class TestPreview:
    def test_quick_calculate(self):
        assert quick_calculate_rewards('dash-trials', 5000) == 50

    def test_reward_preview(self):
        preview = get_reward_preview('dash-trials')
        assert [row['score'] for row in preview] == [100, 500, 1000, 2000, 5000]
        assert [row['club'] for row in preview] == [1, 5, 10, 20, 50]

    def test_format_reward(self):
        assert format_reward(950) == '950'
        assert format_reward(1000) == '1.0K'
        assert format_reward(1234) == '1.2K'
