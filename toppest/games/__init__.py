from .base_game import BaseGame, GameType, GameLimits, RewardConfig
from .dash_trials import DashTrials
from .cosmic_flap import CosmicFlap

# CLUB per point for games without a reward table (and unknown games)
FALLBACK_REWARD_RATE = 0.1

GAME_REGISTRY = {game.game_type: game for game in (DashTrials(), CosmicFlap())}

_unregistered = [game_type.value for game_type in GameType if game_type not in GAME_REGISTRY]
if _unregistered:
    raise RuntimeError(f"Game types without a registered game: {', '.join(_unregistered)}")


def get_game(game_type):
    """Registered game for a game type string, or None for unknown games"""
    if isinstance(game_type, GameType):
        return GAME_REGISTRY[game_type]
    parsed = GameType.parse(game_type)
    return GAME_REGISTRY[parsed] if parsed else None


def get_games_list():
    return [game.get_game_config() for game in GAME_REGISTRY.values()]


__all__ = [
    'BaseGame', 'GameType', 'GameLimits', 'RewardConfig', 'DashTrials', 'CosmicFlap',
    'FALLBACK_REWARD_RATE', 'GAME_REGISTRY', 'get_game', 'get_games_list'
]
