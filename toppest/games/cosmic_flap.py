import math

from .base_game import BaseGame, GameType, GameLimits

SCORE_OBSTACLE_TOLERANCE = 5
TUNNEL_MIN_DISTANCE = 500
UFO_MIN_DISTANCE = 1000


class CosmicFlap(BaseGame):
    """Flappy-style runner; pays out at the flat fallback rate"""

    game_type = GameType.COSMIC_FLAP
    name = "Cosmic Flap"

    # Pipe gap ~2.5 units, so ~40 obstacles per 100 at most
    max_obstacles_per_100m = 50
    # Human tap limit ~10/s
    max_flaps_per_second = 15

    def __init__(self):
        super().__init__(
            limits=GameLimits(
                # Initial speed 4 + max progression = ~8
                max_speed_ms=10,
                min_game_time_ms=5 * 1000,
                max_game_time_ms=10 * 60 * 1000,
                # Items spawn at ~15%, about 1 per 6 obstacles
                max_coins_per_100m=20,
                max_potions_per_100m=10,
                # Tunnels: 1 per 500 after the 500 mark
                max_fever_count_per_100m=0.5,
                # UFO dodges: 1 per 1000 after the 1000 mark
                max_perfect_per_100m=0.2,
                max_club_per_game=100
            )
        )

    def validate_specific(self, submission, result):
        extras = submission.extras
        obstacles_passed = extras.get('obstacles_passed', 0)
        flap_count = extras.get('flap_count', 0)
        tunnels_passed = extras.get('tunnels_passed', 0)
        ufos_passed = extras.get('ufos_passed', 0)
        time_seconds = submission.time_ms / 1000

        if abs(submission.score - obstacles_passed) > SCORE_OBSTACLE_TOLERANCE:
            result.add_warning(f"Score/obstacles mismatch: score={submission.score}, obstacles={obstacles_passed}")

        if time_seconds > 0:
            flaps_per_second = flap_count / time_seconds
            if flaps_per_second > self.max_flaps_per_second:
                result.add_error(
                    'TooManyFlaps',
                    f"Too many flaps: {flaps_per_second:.1f} flaps/sec > {self.max_flaps_per_second} max"
                )

        # Can't stay airborne without flapping: at least one flap per 2 seconds
        min_flaps_required = max(1, math.floor(time_seconds / 2))
        if flap_count < min_flaps_required and submission.distance > 50:
            result.add_error(
                'TooFewFlaps',
                f"Too few flaps: {flap_count} flaps in {time_seconds:.1f}s (min: {min_flaps_required})"
            )

        distance_units = max(submission.distance / 100, 1)
        if obstacles_passed / distance_units > self.max_obstacles_per_100m:
            result.add_error('TooManyObstacles', f"Too many obstacles: {obstacles_passed} in {submission.distance}m")

        if tunnels_passed > 0 and submission.distance < TUNNEL_MIN_DISTANCE:
            result.add_warning(f"Tunnels passed before {TUNNEL_MIN_DISTANCE}m threshold")

        if ufos_passed > 0 and submission.distance < UFO_MIN_DISTANCE:
            result.add_warning(f"UFOs passed before {UFO_MIN_DISTANCE}m threshold")
