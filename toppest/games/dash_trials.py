from .base_game import BaseGame, GameType, GameLimits, RewardConfig

# Score is the distance run; allow small rounding differences
SCORE_DISTANCE_TOLERANCE = 10


class DashTrials(BaseGame):
    game_type = GameType.DASH_TRIALS
    name = "Dash Trials"

    def __init__(self):
        super().__init__(
            limits=GameLimits(
                # Base speed 8 + max fever boost (~1.5x) = ~12 m/s sustained
                max_speed_ms=12,
                min_game_time_ms=10 * 1000,
                max_game_time_ms=10 * 60 * 1000,
                max_coins_per_100m=15,
                max_potions_per_100m=5,
                max_fever_count_per_100m=1,
                # Bounded by obstacle spawn rate
                max_perfect_per_100m=5,
                max_club_per_game=100
            ),
            rewards=RewardConfig(
                club_per_unit=0.01,  # 100m = 1 CLUB
                fever_bonus_percent=10,
                perfect_dodge_bonus=0.1,
                coin_bonus=0.05,
                max_reward_per_game=100,
                difficulty_multipliers={
                    'tutorial': 0.5,
                    'easy': 0.8,
                    'medium': 1.0,
                    'hard': 1.2,
                    'extreme': 1.5
                }
            )
        )

    def validate_specific(self, submission, result):
        if abs(submission.score - submission.distance) > SCORE_DISTANCE_TOLERANCE:
            result.add_warning(f"Score/distance mismatch: score={submission.score}, distance={submission.distance}")
