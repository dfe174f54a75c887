from datetime import datetime, timezone


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Normalize stored datetimes (naive values are treated as UTC)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def today_str(now=None):
    """Today's date in YYYY-MM-DD format (UTC)"""
    return (now or utcnow()).astimezone(timezone.utc).strftime('%Y-%m-%d')


class UserProfile:
    def __init__(self, data):
        self.wallet_address = data.get('wallet_address')
        self.nickname = data.get('nickname', '')
        self.referral_code = data.get('referral_code')
        self.referred_by = data.get('referred_by')
        self.referral_count = data.get('referral_count', 0)
        self.total_club = data.get('total_club', 0)
        self.daily_tickets = data.get('daily_tickets')
        self.star_tickets = data.get('star_tickets', 0)
        self.last_ticket_reset = data.get('last_ticket_reset')
        self.created_at = as_utc(data.get('created_at'))

    def to_dict(self):
        return {
            'wallet_address': self.wallet_address,
            'nickname': self.nickname,
            'referral_code': self.referral_code,
            'referred_by': self.referred_by,
            'referral_count': self.referral_count,
            'total_club': self.total_club,
            'daily_tickets': self.daily_tickets,
            'star_tickets': self.star_tickets,
            'last_ticket_reset': self.last_ticket_reset,
            'created_at': self.created_at
        }


class TicketPool:
    """Daily + star ticket balances of one wallet.

    Daily tickets refill to ``max_daily`` once per UTC day; star tickets
    never expire. Consumption drains daily tickets before star tickets.
    """

    FIELDS = ('daily_tickets', 'star_tickets', 'last_ticket_reset')

    def __init__(self, data, max_daily):
        self.max_daily = max_daily
        daily = data.get('daily_tickets')
        self.daily_tickets = max_daily if daily is None else max(0, min(int(daily), max_daily))
        self.star_tickets = max(0, int(data.get('star_tickets') or 0))
        self.last_ticket_reset = data.get('last_ticket_reset')

    @classmethod
    def snapshot(cls, data):
        """Raw stored pool fields, used as the compare-and-set precondition"""
        return {field: data.get(field) for field in cls.FIELDS}

    @property
    def total(self):
        return self.daily_tickets + self.star_tickets

    @property
    def tickets_used(self):
        return self.max_daily - self.daily_tickets

    def refresh(self, today):
        """Refill daily tickets if the pool was last reset before ``today``.

        Returns True when a reset happened. Re-applying on the same day is a
        no-op, and the reset date never moves backwards.
        """
        if self.last_ticket_reset is not None and self.last_ticket_reset >= today:
            return False
        self.daily_tickets = self.max_daily
        self.last_ticket_reset = today
        return True

    def consume(self):
        """Take one ticket; returns 'daily' or 'star', or None if empty"""
        if self.daily_tickets > 0:
            self.daily_tickets -= 1
            return 'daily'
        if self.star_tickets > 0:
            self.star_tickets -= 1
            return 'star'
        return None

    def to_fields(self):
        return {
            'daily_tickets': self.daily_tickets,
            'star_tickets': self.star_tickets,
            'last_ticket_reset': self.last_ticket_reset
        }


class GameSession:
    def __init__(self, data):
        self.session_token = data.get('session_token')
        self.wallet_address = data.get('wallet_address')
        self.game_type = data.get('game_type')
        self.start_time = as_utc(data.get('start_time'))
        self.expires_at = as_utc(data.get('expires_at'))
        self.used = data.get('used', False)
        self.used_at = as_utc(data.get('used_at'))

    def is_expired(self, now):
        return now > self.expires_at

    def to_dict(self):
        return {
            'session_token': self.session_token,
            'wallet_address': self.wallet_address,
            'game_type': self.game_type,
            'start_time': self.start_time,
            'expires_at': self.expires_at,
            'used': self.used,
            'used_at': self.used_at
        }


class GameRecord:
    def __init__(self, data):
        self.record_id = data.get('record_id')
        self.wallet_address = data.get('wallet_address')
        self.game_type = data.get('game_type')
        self.score = data.get('score', 0)
        self.distance = data.get('distance', 0)
        self.time_ms = data.get('time_ms', 0)
        self.club_earned = data.get('club_earned', 0)
        self.difficulty = data.get('difficulty')
        self.game_metadata = data.get('game_metadata', {})
        self.session_token = data.get('session_token')
        self.session_verified = data.get('session_verified', False)
        self.session_error = data.get('session_error')
        self.session_start_time = as_utc(data.get('session_start_time'))
        self.session_duration_ms = data.get('session_duration_ms')
        self.validation_warnings = data.get('validation_warnings', [])
        self.played_at = as_utc(data.get('played_at'))

    def to_dict(self):
        return {
            'record_id': self.record_id,
            'wallet_address': self.wallet_address,
            'game_type': self.game_type,
            'score': self.score,
            'distance': self.distance,
            'time_ms': self.time_ms,
            'club_earned': self.club_earned,
            'difficulty': self.difficulty,
            'game_metadata': self.game_metadata,
            'session_token': self.session_token,
            'session_verified': self.session_verified,
            'session_error': self.session_error,
            'session_start_time': self.session_start_time,
            'session_duration_ms': self.session_duration_ms,
            'validation_warnings': self.validation_warnings,
            'played_at': self.played_at
        }

    def to_json(self):
        data = self.to_dict()
        for key in ('session_start_time', 'played_at'):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class Referral:
    def __init__(self, data):
        self.referral_id = data.get('referral_id')
        self.referrer_wallet = data.get('referrer_wallet')
        self.referred_wallet = data.get('referred_wallet')
        self.invitee_club_reward = data.get('invitee_club_reward', 0)
        self.invitee_ticket_reward = data.get('invitee_ticket_reward', 0)
        self.revenue_share_club = data.get('revenue_share_club', 0)
        self.status = data.get('status', 'completed')
        self.created_at = as_utc(data.get('created_at'))

    def to_dict(self):
        return {
            'referral_id': self.referral_id,
            'referrer_wallet': self.referrer_wallet,
            'referred_wallet': self.referred_wallet,
            'invitee_club_reward': self.invitee_club_reward,
            'invitee_ticket_reward': self.invitee_ticket_reward,
            'revenue_share_club': self.revenue_share_club,
            'status': self.status,
            'created_at': self.created_at
        }
