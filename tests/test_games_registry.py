"""
Tests for the typed game registry.
"""
from toppest.games import GAME_REGISTRY, GameType, get_game, get_games_list, FALLBACK_REWARD_RATE
from toppest.games.dash_trials import DashTrials
from toppest.games.cosmic_flap import CosmicFlap


class TestRegistry:
    def test_every_game_type_is_registered(self):
        for game_type in GameType:
            assert game_type in GAME_REGISTRY
            assert GAME_REGISTRY[game_type].game_type is game_type

    def test_lookup_by_string(self):
        assert isinstance(get_game('dash-trials'), DashTrials)
        assert isinstance(get_game('cosmic-flap'), CosmicFlap)
        assert isinstance(get_game(GameType.COSMIC_FLAP), CosmicFlap)

    def test_unknown_game_returns_none(self):
        assert get_game('space-chess') is None
        assert get_game('') is None

    def test_fallback_rate(self):
        assert FALLBACK_REWARD_RATE == 0.1

    def test_games_list(self):
        games = {g['game_type']: g for g in get_games_list()}
        assert set(games) == {'dash-trials', 'cosmic-flap'}
        assert games['dash-trials']['has_reward_table'] is True
        assert games['cosmic-flap']['has_reward_table'] is False


class TestLimits:
    def test_dash_trials_limits(self):
        limits = get_game('dash-trials').limits
        assert limits.max_speed_ms == 12
        assert limits.min_game_time_ms == 10000
        assert limits.max_game_time_ms == 600000
        assert limits.max_coins_per_100m == 15
        assert limits.max_potions_per_100m == 5
        assert limits.max_fever_count_per_100m == 1
        assert limits.max_perfect_per_100m == 5
        assert limits.max_club_per_game == 100

    def test_cosmic_flap_limits(self):
        game = get_game('cosmic-flap')
        assert game.limits.max_speed_ms == 10
        assert game.limits.min_game_time_ms == 5000
        assert game.limits.max_fever_count_per_100m == 0.5
        assert game.limits.max_perfect_per_100m == 0.2
        assert game.max_obstacles_per_100m == 50
        assert game.max_flaps_per_second == 15

    def test_dash_trials_reward_table(self):
        rewards = get_game('dash-trials').rewards
        assert rewards.club_per_unit == 0.01
        assert rewards.max_reward_per_game == 100
        assert rewards.multiplier_for('extreme') == 1.5
        assert rewards.multiplier_for('nightmare') == 1.0
