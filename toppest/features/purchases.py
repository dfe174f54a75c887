# toppest/features/purchases.py
import logging

from toppest.errors import IdentityNotFound, InvalidAmount
from toppest.utils.validators import format_address

logger = logging.getLogger(__name__)


class PurchaseService:
    """Grants the goods of a verified shop payment.

    Payment verification happens upstream; a call here means the payment
    cleared. Each ``payment_id`` is granted at most once.
    """

    def __init__(self, store, tickets, referrals, quests=None):
        self.store = store
        self.tickets = tickets
        self.referrals = referrals
        self.quests = quests

    def complete_purchase(self, wallet_address, payment_id, star_tickets, usd_amount=0):
        if self.store.get_user(wallet_address) is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)
        if usd_amount is None or usd_amount < 0:
            raise InvalidAmount("USD amount must not be negative", usd_amount=usd_amount)

        event_id = f"purchase:{payment_id}"
        if not self.store.claim_event(event_id, 'purchase'):
            logger.info(f"Purchase {payment_id} already completed")
            return {'success': True, 'duplicate': True, 'payment_id': payment_id}

        try:
            credited = self.tickets.credit(wallet_address, star_tickets)
        except Exception:
            self.store.release_event(event_id)
            raise

        revenue_share = 0
        try:
            revenue_share = self.referrals.on_purchase_completed(
                wallet_address, usd_amount, event_id=f"purchase-share:{payment_id}")
        except Exception as e:
            logger.error(f"Purchase revenue share failed for {payment_id}: {str(e)}")

        if self.quests is not None:
            try:
                self.quests.on_purchase_completed(wallet_address, usd_amount)
            except Exception as e:
                logger.error(f"Quest progress update failed for purchase {payment_id}: {str(e)}")

        logger.info(f"Purchase {payment_id} completed for {format_address(wallet_address)}: "
                    f"{star_tickets} star tickets, ${usd_amount}")
        return {
            'success': True,
            'duplicate': False,
            'payment_id': payment_id,
            'star_tickets': credited['star_tickets'],
            'revenue_share': revenue_share
        }
