# toppest/games/base_game.py
import logging
from enum import Enum
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class GameType(Enum):
    DASH_TRIALS = "dash-trials"
    COSMIC_FLAP = "cosmic-flap"

    @classmethod
    def parse(cls, value: str) -> Optional["GameType"]:
        try:
            return cls(value)
        except ValueError:
            return None


class GameLimits:
    """Physics and spawn-density limits a legitimate run can never exceed.

    Rates are per 100 distance units; speeds in units per second.
    """

    def __init__(self, max_speed_ms: float, min_game_time_ms: int, max_game_time_ms: int,
                 max_coins_per_100m: float, max_potions_per_100m: float,
                 max_fever_count_per_100m: float, max_perfect_per_100m: float,
                 max_club_per_game: int):
        self.max_speed_ms = max_speed_ms
        self.min_game_time_ms = min_game_time_ms
        self.max_game_time_ms = max_game_time_ms
        self.max_coins_per_100m = max_coins_per_100m
        self.max_potions_per_100m = max_potions_per_100m
        self.max_fever_count_per_100m = max_fever_count_per_100m
        self.max_perfect_per_100m = max_perfect_per_100m
        self.max_club_per_game = max_club_per_game

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


class RewardConfig:
    """CLUB reward table for one game"""

    def __init__(self, club_per_unit: float, fever_bonus_percent: float, perfect_dodge_bonus: float,
                 coin_bonus: float, max_reward_per_game: int, difficulty_multipliers: Dict[str, float]):
        self.club_per_unit = club_per_unit
        self.fever_bonus_percent = fever_bonus_percent
        self.perfect_dodge_bonus = perfect_dodge_bonus
        self.coin_bonus = coin_bonus
        self.max_reward_per_game = max_reward_per_game
        self.difficulty_multipliers = difficulty_multipliers

    def multiplier_for(self, difficulty: str) -> float:
        return self.difficulty_multipliers.get(difficulty, 1.0)


class BaseGame:
    """Base class for all registered games"""

    game_type: GameType = None
    name = ""

    def __init__(self, limits: GameLimits, rewards: Optional[RewardConfig] = None):
        self.limits = limits
        self.rewards = rewards
        logger.debug(f"Registered game {self.game_type.value}")

    def validate_specific(self, submission, result) -> None:
        """Game-specific checks; add errors/warnings to ``result``"""

    def get_game_config(self) -> Dict[str, Any]:
        return {
            "game_type": self.game_type.value,
            "name": self.name,
            "limits": self.limits.to_dict(),
            "has_reward_table": self.rewards is not None
        }
