import secrets
import logging
from datetime import timedelta
from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

from config import config
from toppest.errors import StoreError
from toppest.database.models import Referral, utcnow, as_utc
from toppest.utils.validators import is_valid_sui_address, is_referral_code, format_address

logger = logging.getLogger(__name__)

REFERRAL_CODE_PREFIX = 'CLUB'
CODE_GENERATION_ATTEMPTS = 10


class ReferralSystem:
    """Referral graph and the revenue share paid along it.

    A wallet can be referred once, only while its profile is new. The
    referrer then receives a cut of everything the invitee earns or buys.
    """

    def __init__(self, store, clock=utcnow, quests=None):
        self.store = store
        self.clock = clock
        self.quests = quests
        self.earning_share_percent = config.EARNING_SHARE_PERCENT
        self.purchase_multiplier = config.PURCHASE_MULTIPLIER
        self.invitee_club_reward = config.INVITEE_CLUB_REWARD
        self.invitee_ticket_reward = config.INVITEE_TICKET_REWARD
        self.new_user_window = timedelta(seconds=config.NEW_USER_WINDOW_SECONDS)

    def generate_referral_code(self):
        """CLUB + 4 uppercase hex chars, not yet taken by any profile"""
        for _ in range(CODE_GENERATION_ATTEMPTS):
            code = REFERRAL_CODE_PREFIX + secrets.token_hex(2).upper()
            if not self.store.find_user_by_referral_code(code):
                return code
        raise StoreError("Could not allocate a unique referral code")

    def resolve_referrer(self, code_or_wallet):
        if is_valid_sui_address(code_or_wallet):
            return self.store.get_user(code_or_wallet)
        if is_referral_code(code_or_wallet):
            return self.store.find_user_by_referral_code(code_or_wallet.upper())
        return None

    def create_referral(self, code_or_wallet, referred_wallet):
        """Link a new user to the referrer and grant the invitee bonus"""
        referred = self.store.get_user(referred_wallet)
        if referred is None:
            return {'success': False, 'reason': 'referred_user_not_found'}

        referrer = self.resolve_referrer(code_or_wallet)
        if referrer is None:
            return {'success': False, 'reason': 'referrer_not_found'}

        referrer_wallet = referrer['wallet_address']
        if referrer_wallet == referred_wallet:
            return {'success': False, 'reason': 'self_referral'}

        if referred.get('referred_by') or self.store.get_referral_by_referred(referred_wallet):
            return {'success': False, 'reason': 'already_referred'}

        if self._reaches(referrer, referred_wallet):
            return {'success': False, 'reason': 'referral_cycle'}

        now = self.clock()
        created_at = as_utc(referred.get('created_at'))
        if created_at is None or now - created_at > self.new_user_window:
            return {'success': False, 'reason': 'not_new_user'}

        referral = Referral({
            'referral_id': secrets.token_hex(16),
            'referrer_wallet': referrer_wallet,
            'referred_wallet': referred_wallet,
            'invitee_club_reward': self.invitee_club_reward,
            'invitee_ticket_reward': self.invitee_ticket_reward,
            'revenue_share_club': 0,
            'status': 'completed',
            'created_at': now
        })

        # The unique edge decides concurrent attempts for the same invitee
        if not self.store.insert_referral(referral.to_dict()):
            return {'success': False, 'reason': 'already_referred'}

        if not self.store.compare_and_set_user(referred_wallet, {'referred_by': None},
                                               {'referred_by': referrer_wallet}):
            logger.error(f"referred_by already set for {format_address(referred_wallet)} "
                         f"while creating referral from {format_address(referrer_wallet)}")

        self.store.increment_user(referred_wallet, {
            'total_club': self.invitee_club_reward,
            'star_tickets': self.invitee_ticket_reward
        })
        self.store.increment_user(referrer_wallet, {'referral_count': 1})
        if self.quests is not None:
            try:
                self.quests.on_referral_created(referrer_wallet)
            except Exception as e:
                logger.error(f"Quest progress update failed for {format_address(referrer_wallet)}: {str(e)}")

        logger.info(f"New referral: {format_address(referrer_wallet)} -> {format_address(referred_wallet)}")
        return {
            'success': True,
            'referral': referral.to_dict(),
            'rewards': {
                'club': self.invitee_club_reward,
                'tickets': self.invitee_ticket_reward
            }
        }

    def _reaches(self, profile, wallet_address):
        """True if ``wallet_address`` is upstream of ``profile`` in the referral chain"""
        seen = set()
        upstream = profile.get('referred_by')
        while upstream and upstream not in seen:
            if upstream == wallet_address:
                return True
            seen.add(upstream)
            parent = self.store.get_user(upstream)
            upstream = parent.get('referred_by') if parent else None
        return False

    def on_club_earned(self, wallet_address, amount, event_id=None):
        """Pay the referrer EARNING_SHARE_PERCENT of CLUB the invitee earned"""
        if amount is None or amount <= 0:
            return 0
        share = int((Decimal(str(amount)) * Decimal(str(self.earning_share_percent)) / 100)
                    .to_integral_value(rounding=ROUND_FLOOR))
        return self._credit_referrer(wallet_address, share, event_id, 'club_earned')

    def on_purchase_completed(self, wallet_address, usd_amount, event_id=None):
        """Pay the referrer PURCHASE_MULTIPLIER CLUB per USD the invitee spent"""
        if usd_amount is None or usd_amount <= 0:
            return 0
        share = int((Decimal(str(usd_amount)) * Decimal(str(self.purchase_multiplier)))
                    .to_integral_value(rounding=ROUND_HALF_UP))
        return self._credit_referrer(wallet_address, share, event_id, 'purchase')

    def _credit_referrer(self, wallet_address, share, event_id, kind):
        if share <= 0:
            return 0

        user = self.store.get_user(wallet_address)
        referrer_wallet = user.get('referred_by') if user else None
        if not referrer_wallet:
            return 0

        if event_id and not self.store.claim_event(event_id, kind):
            logger.info(f"Revenue share for event {event_id} already processed")
            return 0

        try:
            updated = self.store.increment_user(referrer_wallet, {'total_club': share})
        except StoreError:
            if event_id:
                self.store.release_event(event_id)
            raise
        if updated is None:
            logger.warning(f"Referrer {format_address(referrer_wallet)} not found for revenue share")
            return 0

        # The referrer is paid; the claim stays so a retry cannot pay twice
        try:
            self.store.increment_referral_share(wallet_address, share)
        except StoreError as e:
            logger.error(f"Revenue share total not updated for {format_address(wallet_address)} "
                         f"(event {event_id}): {str(e)}")

        logger.info(f"Revenue share ({kind}): {share} CLUB to {format_address(referrer_wallet)} "
                    f"from {format_address(wallet_address)}")
        return share

    def get_referral_code(self, wallet_address):
        """Existing referral code of a profile, assigning one if missing"""
        user = self.store.get_user(wallet_address)
        if user is None:
            return None
        if user.get('referral_code'):
            return user['referral_code']

        code = self.generate_referral_code()
        if self.store.compare_and_set_user(wallet_address, {'referral_code': None}, {'referral_code': code}):
            return code
        return self.store.get_user(wallet_address).get('referral_code')

    def get_referrals(self, wallet_address, page=1, limit=20):
        page = max(int(page), 1)
        limit = max(min(int(limit), 100), 1)
        edges = self.store.get_referrals_by_referrer(wallet_address, skip=(page - 1) * limit, limit=limit)
        profiles = self.store.get_users([edge['referred_wallet'] for edge in edges])
        totals = self.store.get_referral_totals(wallet_address)

        referrals = []
        for edge in edges:
            profile = profiles.get(edge['referred_wallet'], {})
            referrals.append({
                'referred_wallet': edge['referred_wallet'],
                'nickname': profile.get('nickname', ''),
                'revenue_share_club': edge.get('revenue_share_club', 0),
                'created_at': as_utc(edge.get('created_at')).isoformat() if edge.get('created_at') else None
            })

        return {
            'referrals': referrals,
            'page': page,
            'limit': limit,
            'total': totals['total_count'],
            'has_more': page * limit < totals['total_count']
        }

    def get_referral_stats(self, wallet_address):
        totals = self.store.get_referral_totals(wallet_address)
        return {
            'total_count': totals['total_count'],
            # Referrers get no signup bonus, only revenue share
            'total_signup_rewards': 0,
            'total_revenue_share': totals['total_revenue_share']
        }
