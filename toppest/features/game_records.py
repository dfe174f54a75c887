import logging
from datetime import timedelta

from config import config
from toppest.errors import ClientError, IdentityNotFound, SessionError, SessionNotFound, SubmissionRejected
from toppest.database.models import GameRecord, utcnow
from toppest.security.anti_cheat import (
    GameSubmission, validate_game_submission, calculate_server_difficulty, log_suspicious_activity
)
from toppest.utils.validators import format_address
from .rewards import calculate_club_rewards

logger = logging.getLogger(__name__)

LEADERBOARD_WINDOWS = {
    'daily': timedelta(days=1),
    'weekly': timedelta(days=7),
    'alltime': None
}

# Slack between the client's game clock and the server's session clock
SESSION_TIME_TOLERANCE_MS = 5000


class GameRecordService:
    """Turns a submitted run into a stored record and a CLUB payout"""

    def __init__(self, store, sessions, referrals, quests=None, strict_sessions=None, server_difficulty=None,
                 clock=utcnow):
        self.store = store
        self.sessions = sessions
        self.referrals = referrals
        self.quests = quests
        self.strict_sessions = config.STRICT_SESSION_MODE if strict_sessions is None else strict_sessions
        self.server_difficulty = (config.SERVER_AUTHORITATIVE_DIFFICULTY
                                  if server_difficulty is None else server_difficulty)
        self.clock = clock

    def _consume_session(self, submission):
        """Returns (session, error_reason). Raises only in strict mode."""
        try:
            if not submission.session_token:
                raise SessionNotFound("Session token required")
            return self.sessions.consume(submission.session_token, submission.wallet_address,
                                         submission.game_type), None
        except SessionError as e:
            if self.strict_sessions:
                log_suspicious_activity(submission.wallet_address, 'invalid_session', {
                    'game_type': submission.game_type,
                    'reason': e.reason
                }, store=self.store)
                raise
            logger.warning(f"Unverified session for {format_address(submission.wallet_address)}: {e.reason}")
            return None, e.reason

    def record_game(self, payload):
        submission = GameSubmission.from_payload(payload)
        wallet_address = submission.wallet_address

        if self.store.get_user(wallet_address) is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)

        session, session_error = self._consume_session(submission)

        validation = validate_game_submission(submission)
        if not validation.valid:
            log_suspicious_activity(wallet_address, 'validation_failed', {
                'game_type': submission.game_type,
                'errors': validation.errors,
                'codes': validation.codes,
                'score': submission.score,
                'distance': submission.distance,
                'time_ms': submission.time_ms
            }, store=self.store)
            raise SubmissionRejected(
                "Game validation failed",
                errors=validation.errors,
                warnings=validation.warnings,
                codes=validation.codes
            )

        warnings = list(validation.warnings)
        now = self.clock()

        session_duration_ms = None
        if session is not None:
            session_duration_ms = int((now - session.start_time).total_seconds() * 1000)
            if submission.time_ms > session_duration_ms + SESSION_TIME_TOLERANCE_MS:
                warnings.append(f"Reported time {submission.time_ms}ms exceeds session duration {session_duration_ms}ms")

        server_difficulty = calculate_server_difficulty(submission.time_ms)
        if self.server_difficulty:
            if submission.difficulty and submission.difficulty != server_difficulty:
                warnings.append(f"Client difficulty '{submission.difficulty}' differs from server '{server_difficulty}'")
            difficulty = server_difficulty
        else:
            difficulty = submission.difficulty or server_difficulty

        reward = calculate_club_rewards(
            submission.game_type,
            submission.score,
            fever_count=submission.fever_count,
            perfect_count=submission.perfect_count,
            coin_count=submission.coin_count,
            difficulty=difficulty
        )

        metadata = submission.counters()
        metadata['client_difficulty'] = submission.difficulty
        metadata.update(submission.extras)

        record = self.store.insert_record({
            'wallet_address': wallet_address,
            'game_type': submission.game_type,
            'score': submission.score,
            'distance': submission.distance,
            'time_ms': submission.time_ms,
            'club_earned': reward.total_reward,
            'difficulty': difficulty,
            'game_metadata': metadata,
            'session_token': submission.session_token,
            'session_verified': session is not None,
            'session_error': session_error,
            'session_start_time': session.start_time if session else None,
            'session_duration_ms': session_duration_ms,
            'validation_warnings': warnings,
            'played_at': now
        })

        if reward.total_reward > 0:
            self.store.increment_user(wallet_address, {'total_club': reward.total_reward})
            self._share_revenue(wallet_address, reward.total_reward, record['record_id'])
        self._advance_quests(wallet_address)

        logger.info(f"Game recorded for {format_address(wallet_address)}: {submission.game_type} "
                    f"score={submission.score} club={reward.total_reward}")

        return {
            'record': GameRecord(record).to_json(),
            'rewards': {
                'club': reward.total_reward,
                'breakdown': reward.breakdown
            },
            'warnings': warnings
        }

    def _share_revenue(self, wallet_address, amount, record_id):
        try:
            self.referrals.on_club_earned(wallet_address, amount, event_id=f"club:{record_id}")
        except Exception as e:
            logger.error(f"Revenue share failed for record {record_id}: {str(e)}")

    def _advance_quests(self, wallet_address):
        if self.quests is None:
            return
        try:
            self.quests.on_game_recorded(wallet_address)
        except Exception as e:
            logger.error(f"Quest progress update failed for {format_address(wallet_address)}: {str(e)}")

    def get_records(self, wallet_address, game_type=None, limit=10):
        records = self.store.get_records(wallet_address, game_type=game_type, limit=limit)
        return {
            'records': [GameRecord(record).to_json() for record in records],
            'high_score': max((record['score'] for record in records), default=0)
        }

    def get_total_club(self, wallet_address):
        profile = self.store.get_user(wallet_address)
        if profile is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)
        return profile.get('total_club', 0)

    def get_leaderboard(self, game_type, time_filter='weekly', user_address=None, limit=50):
        if time_filter not in LEADERBOARD_WINDOWS:
            raise ClientError(f"Invalid filter: {time_filter}", allowed=list(LEADERBOARD_WINDOWS))

        window = LEADERBOARD_WINDOWS[time_filter]
        since = self.clock() - window if window else None
        entries = [e for e in self.store.get_top_scores(game_type, since=since) if e['high_score'] > 0]

        top = entries[:limit]
        wallets = [e['wallet_address'] for e in top]
        if user_address:
            wallets.append(user_address)
        profiles = self.store.get_users(wallets)

        def to_entry(rank, entry):
            profile = profiles.get(entry['wallet_address'], {})
            return {
                'rank': rank,
                'wallet_address': entry['wallet_address'],
                'display_name': profile.get('nickname') or format_address(entry['wallet_address']),
                'high_score': entry['high_score'],
                'distance': entry['distance'],
                'games_played': entry['games_played']
            }

        leaderboard = [to_entry(index + 1, entry) for index, entry in enumerate(top)]

        user_rank = None
        if user_address:
            for index, entry in enumerate(entries):
                if entry['wallet_address'] == user_address:
                    user_rank = to_entry(index + 1, entry)
                    break

        return {
            'leaderboard': leaderboard,
            'user_rank': user_rank,
            'filter': time_filter,
            'game_type': game_type,
            'total_players': len(entries)
        }
