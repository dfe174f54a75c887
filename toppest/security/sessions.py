import logging
from datetime import timedelta

from config import config
from toppest.errors import (
    IdentityNotFound, RateLimited, SessionNotFound, SessionExpired,
    SessionAlreadyUsed, SessionMismatch
)
from toppest.database.models import GameSession, utcnow
from toppest.utils.validators import format_address
from .anti_cheat import RateLimits, check_rate_limit, generate_session_token, log_suspicious_activity

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Issues one-time session tokens and consumes them on submission.

    A token authorizes exactly one result submission: consumption flips
    ``used`` with a single conditional update, so concurrent consumers of the
    same token see exactly one winner.
    """

    def __init__(self, store, expiry_ms=None, rate_limits=None, clock=utcnow):
        self.store = store
        self.expiry_ms = expiry_ms if expiry_ms is not None else config.SESSION_TOKEN_EXPIRY_MS
        self.rate_limits = rate_limits or RateLimits.from_config()
        self.clock = clock

    def _require_identity(self, wallet_address):
        if self.store.get_user(wallet_address) is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)

    def check_rate_limit(self, wallet_address, now=None):
        now = now or self.clock()
        recent = self.store.get_recent_play_times(wallet_address, now - timedelta(hours=24))
        return check_rate_limit(recent, now, self.rate_limits)

    def _enforce_rate_limit(self, wallet_address, game_type, now):
        result = self.check_rate_limit(wallet_address, now)
        if not result.valid:
            log_suspicious_activity(wallet_address, 'rate_limit_exceeded', {
                'game_type': game_type,
                'errors': result.errors
            }, store=self.store)
            raise RateLimited("Rate limit exceeded", errors=result.errors, codes=result.codes)

    def _create(self, wallet_address, game_type, now):
        token = generate_session_token()
        expires_at = now + timedelta(milliseconds=self.expiry_ms)
        self.store.insert_session({
            'session_token': token,
            'wallet_address': wallet_address,
            'game_type': game_type,
            'start_time': now,
            'expires_at': expires_at,
            'used': False,
            'used_at': None
        })
        logger.info(f"Session issued for {format_address(wallet_address)} ({game_type})")
        return {'session_token': token, 'expires_at': expires_at}

    def issue(self, wallet_address, game_type):
        now = self.clock()
        self._require_identity(wallet_address)
        self._enforce_rate_limit(wallet_address, game_type, now)
        return self._create(wallet_address, game_type, now)

    def start_game(self, wallet_address, game_type, ledger):
        """Spend a ticket, then issue the session for that play.

        A failure after the ticket is spent costs the player that ticket;
        it never yields a session without one.
        """
        now = self.clock()
        self._require_identity(wallet_address)
        self._enforce_rate_limit(wallet_address, game_type, now)
        ticket = ledger.consume(wallet_address)
        session = self._create(wallet_address, game_type, now)
        session['ticket'] = ticket
        return session

    def consume(self, session_token, wallet_address, game_type):
        data = self.store.get_session(session_token) if session_token else None
        if data is None:
            raise SessionNotFound("Invalid session token")

        session = GameSession(data)
        now = self.clock()

        if session.used:
            raise SessionAlreadyUsed("Session token already used")
        if session.is_expired(now):
            raise SessionExpired("Session token expired")
        if session.wallet_address != wallet_address:
            raise SessionMismatch("Session wallet mismatch")
        if session.game_type != game_type:
            raise SessionMismatch("Session game type mismatch")

        if not self.store.mark_session_used(session_token, now):
            raise SessionAlreadyUsed("Session token already used")

        session.used = True
        session.used_at = now
        return session

    def cleanup_expired(self, grace_ms=None):
        grace_ms = grace_ms if grace_ms is not None else config.SESSION_CLEANUP_GRACE_MS
        cutoff = self.clock() - timedelta(milliseconds=grace_ms)
        deleted = self.store.delete_sessions_expired_before(cutoff)
        if deleted:
            logger.info(f"Cleaned up {deleted} expired sessions")
        return deleted
