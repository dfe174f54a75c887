import logging

from config import config
from toppest.errors import IdentityNotFound, StoreError
from toppest.database.models import UserProfile, utcnow, today_str
from toppest.utils.validators import format_address

logger = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS = 3


class ProfileService:
    """Creates and reads player profiles"""

    def __init__(self, store, referrals, max_daily=None, clock=utcnow):
        self.store = store
        self.referrals = referrals
        self.max_daily = max_daily if max_daily is not None else config.MAX_DAILY_TICKETS
        self.clock = clock

    def ensure_profile(self, wallet_address, nickname=None):
        """Create the profile if missing. Returns (profile, created)."""
        existing = self.store.get_user(wallet_address)
        if existing:
            return existing, False

        for _ in range(MAX_CREATE_ATTEMPTS):
            now = self.clock()
            profile = UserProfile({
                'wallet_address': wallet_address,
                'nickname': nickname or f"Player{wallet_address[-4:]}",
                'referral_code': self.referrals.generate_referral_code(),
                'referred_by': None,
                'referral_count': 0,
                'total_club': 0,
                'daily_tickets': self.max_daily,
                'star_tickets': 0,
                'last_ticket_reset': today_str(now),
                'created_at': now
            }).to_dict()
            profile['updated_at'] = now

            if self.store.create_user(profile):
                logger.info(f"Created profile for {format_address(wallet_address)}")
                return self.store.get_user(wallet_address), True

            # Either a concurrent create won, or the referral code collided
            existing = self.store.get_user(wallet_address)
            if existing:
                return existing, False

        raise StoreError("Could not create profile")

    def get_profile(self, wallet_address):
        profile = self.store.get_user(wallet_address)
        if profile is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)
        return profile
