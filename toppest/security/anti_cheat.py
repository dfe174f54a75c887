import hashlib
import hmac
import json
import math
import secrets
import logging
from datetime import timedelta

from config import config
from toppest.errors import InvalidSubmission, StoreError
from toppest.games import get_game
from toppest.database.models import utcnow, as_utc
from toppest.utils.validators import is_valid_sui_address, is_valid_game_type, format_address

logger = logging.getLogger(__name__)

COUNTER_FIELDS = ('fever_count', 'perfect_count', 'coin_count', 'potion_count')
EXTRA_FIELDS = ('obstacles_passed', 'flap_count', 'tunnels_passed', 'ufos_passed', 'items_collected')

# (counter, limit attribute, error code, label)
COLLECTION_CHECKS = (
    ('coin_count', 'max_coins_per_100m', 'TooManyCoins', 'coins'),
    ('potion_count', 'max_potions_per_100m', 'TooManyPotions', 'potions'),
    ('fever_count', 'max_fever_count_per_100m', 'TooManyFevers', 'fever activations'),
    ('perfect_count', 'max_perfect_per_100m', 'TooManyPerfects', 'perfect dodges'),
)

COINS_PER_FEVER = 10

# Largest integer a JSON client can send exactly
MAX_SAFE_NUMBER = 2 ** 53 - 1


class ValidationResult:
    """Outcome of a validation pass. Errors reject, warnings are advisory."""

    def __init__(self):
        self.errors = []
        self.warnings = []
        self.codes = []

    @property
    def valid(self):
        return not self.errors

    def add_error(self, code, message):
        self.codes.append(code)
        self.errors.append(message)

    def add_warning(self, message):
        self.warnings.append(message)

    def to_dict(self):
        return {
            'valid': self.valid,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'codes': list(self.codes)
        }


class RateLimits:
    def __init__(self, max_per_hour=20, max_per_day=100, min_interval_ms=5000):
        self.max_per_hour = max_per_hour
        self.max_per_day = max_per_day
        self.min_interval_ms = min_interval_ms

    @classmethod
    def from_config(cls):
        return cls(
            max_per_hour=config.MAX_GAMES_PER_HOUR,
            max_per_day=config.MAX_GAMES_PER_DAY,
            min_interval_ms=config.MIN_SUBMISSION_INTERVAL_MS
        )


def _parse_number(data, field, required=False):
    value = data.get(field)
    if value is None:
        if required:
            raise InvalidSubmission(f"Missing required field: {field}", field=field)
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSubmission(f"Field must be a number: {field}", field=field)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidSubmission(f"Field must be finite: {field}", field=field)
    if abs(value) > MAX_SAFE_NUMBER:
        raise InvalidSubmission(f"Field out of range: {field}", field=field)
    return value


class GameSubmission:
    """A run result as reported by the client. Nothing here is trusted."""

    def __init__(self, wallet_address, game_type, score, distance, time_ms,
                 fever_count=0, perfect_count=0, coin_count=0, potion_count=0,
                 difficulty=None, session_token=None, extras=None):
        self.wallet_address = wallet_address
        self.game_type = game_type
        self.score = score
        self.distance = distance
        self.time_ms = time_ms
        self.fever_count = fever_count
        self.perfect_count = perfect_count
        self.coin_count = coin_count
        self.potion_count = potion_count
        self.difficulty = difficulty
        self.session_token = session_token
        self.extras = extras or {}

    @classmethod
    def from_payload(cls, data):
        if not isinstance(data, dict):
            raise InvalidSubmission("Missing JSON body")

        wallet_address = data.get('wallet_address')
        if not is_valid_sui_address(wallet_address):
            raise InvalidSubmission("Invalid wallet address", field='wallet_address')

        game_type = data.get('game_type')
        if not is_valid_game_type(game_type):
            raise InvalidSubmission("Invalid game type", field='game_type')

        difficulty = data.get('difficulty')
        if difficulty is not None and not isinstance(difficulty, str):
            raise InvalidSubmission("Field must be a string: difficulty", field='difficulty')

        session_token = data.get('session_token') or None
        if session_token is not None and not isinstance(session_token, str):
            raise InvalidSubmission("Field must be a string: session_token", field='session_token')

        extras = {field: _parse_number(data, field) for field in EXTRA_FIELDS if field in data}

        return cls(
            wallet_address=wallet_address,
            game_type=game_type,
            score=_parse_number(data, 'score', required=True),
            distance=_parse_number(data, 'distance', required=True),
            time_ms=_parse_number(data, 'time_ms', required=True),
            difficulty=difficulty,
            session_token=session_token,
            extras=extras,
            **{field: _parse_number(data, field) for field in COUNTER_FIELDS}
        )

    def counters(self):
        return {field: getattr(self, field) for field in COUNTER_FIELDS}


def validate_game_submission(submission):
    """Check a submission against the physics and spawn limits of its game.

    Never raises for bad numbers; every problem becomes an error or warning
    on the returned ValidationResult.
    """
    result = ValidationResult()

    for field in ('score', 'distance', 'time_ms') + COUNTER_FIELDS:
        value = getattr(submission, field)
        if value < 0:
            result.add_error('NegativeValue', f"Negative {field}: {value}")
    for field, value in submission.extras.items():
        if value < 0:
            result.add_error('NegativeValue', f"Negative {field}: {value}")

    game = get_game(submission.game_type)
    if game is None:
        result.add_warning(f"Unknown game type: {submission.game_type}")
        return result

    limits = game.limits

    if submission.time_ms < limits.min_game_time_ms:
        result.add_error(
            'GameTooShort',
            f"Game too short: {submission.time_ms}ms < {limits.min_game_time_ms}ms minimum"
        )
    if submission.time_ms > limits.max_game_time_ms:
        result.add_error(
            'GameTooLong',
            f"Game too long: {submission.time_ms}ms > {limits.max_game_time_ms}ms maximum"
        )

    time_seconds = submission.time_ms / 1000
    if time_seconds > 0:
        speed = submission.distance / time_seconds
    else:
        speed = math.inf if submission.distance > 0 else 0
    if speed > limits.max_speed_ms:
        result.add_error('ImpossibleSpeed', f"Impossible speed: {speed:.2f} m/s > {limits.max_speed_ms} m/s max")

    distance_units = max(submission.distance / 100, 1)
    for counter, limit_attr, code, label in COLLECTION_CHECKS:
        count = getattr(submission, counter)
        limit = getattr(limits, limit_attr)
        if count / distance_units > limit:
            result.add_error(
                code,
                f"Too many {label}: {count} in {submission.distance}m (max {math.floor(limit * distance_units)})"
            )

    if not validate_fever_count(submission.fever_count, submission.coin_count):
        result.add_error(
            'FeverCoinMismatch',
            f"Fever count {submission.fever_count} needs at least "
            f"{submission.fever_count * COINS_PER_FEVER} coins, got {submission.coin_count}"
        )

    game.validate_specific(submission, result)

    if not result.valid:
        logger.warning(
            f"[ANTI-CHEAT] Invalid {submission.game_type} submission from "
            f"{format_address(submission.wallet_address)}: {result.errors}"
        )
    elif result.warnings:
        logger.info(f"Submission warnings for {format_address(submission.wallet_address)}: {result.warnings}")

    return result


def check_rate_limit(recent_played_at, now=None, limits=None):
    """Check play history (``played_at`` values, any order) against the
    hourly, daily and minimum-interval limits."""
    now = now or utcnow()
    limits = limits or RateLimits.from_config()
    result = ValidationResult()

    played = [as_utc(played_at) for played_at in recent_played_at]
    hour_ago = now - timedelta(hours=1)
    day_ago = now - timedelta(hours=24)

    hourly = sum(1 for played_at in played if played_at > hour_ago)
    daily = sum(1 for played_at in played if played_at > day_ago)

    if hourly >= limits.max_per_hour:
        result.add_error('HourlyLimitExceeded', f"Hourly limit exceeded: {hourly}/{limits.max_per_hour} games")
    if daily >= limits.max_per_day:
        result.add_error('DailyLimitExceeded', f"Daily limit exceeded: {daily}/{limits.max_per_day} games")

    if played:
        elapsed_ms = (now - max(played)).total_seconds() * 1000
        if elapsed_ms < limits.min_interval_ms:
            result.add_error(
                'SubmissionTooFast',
                f"Submission too fast: {elapsed_ms / 1000:.1f}s since last game "
                f"(min {limits.min_interval_ms / 1000:.0f}s)"
            )

    return result


def calculate_server_difficulty(time_ms):
    """Difficulty reached, derived from how long the run lasted"""
    seconds = time_ms / 1000
    if seconds < 30:
        return 'easy'
    if seconds < 60:
        return 'medium'
    if seconds < 120:
        return 'hard'
    return 'extreme'


def validate_fever_count(fever_count, coin_count):
    """Each fever activation costs COINS_PER_FEVER coins"""
    return fever_count <= math.floor(coin_count / COINS_PER_FEVER)


def generate_session_token():
    """256-bit random session token as 64 hex chars"""
    return secrets.token_hex(32)


def sign_session_data(data, secret=None):
    payload = json.dumps(data, sort_keys=True, separators=(',', ':'), default=str)
    key = (secret or config.SECRET_KEY).encode()
    return hmac.new(key, payload.encode(), hashlib.sha256).hexdigest()


def verify_session_signature(data, signature, secret=None):
    if not isinstance(signature, str):
        return False
    return hmac.compare_digest(sign_session_data(data, secret), signature)


def log_suspicious_activity(wallet_address, reason, details=None, store=None):
    """Log a rejected action and keep it for the abuse report"""
    logger.warning(f"[ANTI-CHEAT] Suspicious activity from {format_address(wallet_address)}: {reason}")

    if store is None:
        from toppest.database import get_store
        store = get_store()

    try:
        store.log_suspicious_activity({
            'wallet_address': wallet_address,
            'reason': reason,
            'details': details or {},
            'created_at': utcnow()
        })
    except StoreError as e:
        logger.error(f"Failed to log suspicious activity for {format_address(wallet_address)}: {str(e)}")
