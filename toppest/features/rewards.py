"""CLUB reward calculation.

All arithmetic runs on Decimal values built from the decimal string of each
input, so a product such as ``1000 * 0.01`` is exactly 10 and never floors
down to 9.
"""
from decimal import Decimal, ROUND_FLOOR

from toppest.games import get_game, FALLBACK_REWARD_RATE

PREVIEW_SCORES = [100, 500, 1000, 2000, 5000]


def _dec(value):
    return Decimal(str(value))


def _floor(value):
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


class RewardResult:
    def __init__(self, base_reward, fever_bonus=0, perfect_bonus=0, coin_bonus=0,
                 difficulty_multiplier=1.0, total_reward=0):
        self.base_reward = base_reward
        self.fever_bonus = fever_bonus
        self.perfect_bonus = perfect_bonus
        self.coin_bonus = coin_bonus
        self.difficulty_multiplier = difficulty_multiplier
        self.total_reward = total_reward

    @property
    def breakdown(self):
        return {
            'base': self.base_reward,
            'fever': self.fever_bonus,
            'perfect': self.perfect_bonus,
            'coins': self.coin_bonus,
            'difficulty': self.difficulty_multiplier,
            'total': self.total_reward
        }

    def to_dict(self):
        return {
            'base_reward': self.base_reward,
            'fever_bonus': self.fever_bonus,
            'perfect_bonus': self.perfect_bonus,
            'coin_bonus': self.coin_bonus,
            'difficulty_multiplier': self.difficulty_multiplier,
            'total_reward': self.total_reward,
            'breakdown': self.breakdown
        }


def calculate_club_rewards(game_type, score, fever_count=0, perfect_count=0, coin_count=0, difficulty='medium'):
    """Compute the CLUB payout for a validated run.

    Games without a reward table pay ``floor(score * FALLBACK_REWARD_RATE)``
    with no bonuses, capped at the game's ``max_club_per_game`` when it is
    registered. Otherwise: base from score, fever bonus as a percentage
    of base per activation, flat bonuses per perfect dodge and coin, then the
    difficulty multiplier and the per-game cap.
    """
    game = get_game(game_type)
    if game is None or game.rewards is None:
        flat = max(_floor(_dec(score) * _dec(FALLBACK_REWARD_RATE)), 0)
        if game is not None:
            flat = min(flat, game.limits.max_club_per_game)
        return RewardResult(base_reward=flat, total_reward=flat)

    table = game.rewards
    base = _floor(_dec(score) * _dec(table.club_per_unit))
    fever = _floor(_dec(base) * _dec(table.fever_bonus_percent) / 100 * _dec(fever_count))
    perfect = _floor(_dec(perfect_count) * _dec(table.perfect_dodge_bonus))
    coins = _floor(_dec(coin_count) * _dec(table.coin_bonus))

    subtotal = base + fever + perfect + coins
    multiplier = table.multiplier_for(difficulty)
    total = _floor(_dec(subtotal) * _dec(multiplier))
    total = min(total, table.max_reward_per_game)
    total = max(total, 0)

    return RewardResult(
        base_reward=base,
        fever_bonus=fever,
        perfect_bonus=perfect,
        coin_bonus=coins,
        difficulty_multiplier=multiplier,
        total_reward=total
    )


def quick_calculate_rewards(game_type, score):
    """Base-only estimate for a score at medium difficulty"""
    return calculate_club_rewards(game_type, score).total_reward


def get_reward_preview(game_type):
    return [
        {'score': score, 'club': quick_calculate_rewards(game_type, score)}
        for score in PREVIEW_SCORES
    ]


def format_reward(amount):
    """Display form of a CLUB amount: 950 -> '950', 1234 -> '1.2K'"""
    if amount >= 1000:
        return f"{amount / 1000:.1f}K"
    return str(amount)
