import logging
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from config import config
from toppest.errors import IdentityNotFound, InvalidAmount, NoTicketsRemaining, WriteConflict
from toppest.database.models import TicketPool, utcnow, today_str
from toppest.utils.validators import format_address

logger = logging.getLogger(__name__)


class TicketLedger:
    """Daily and star ticket balances.

    Every read or spend goes through one compare-and-set on the profile's
    pool fields, so the daily refill and the decrement land together or not
    at all. A lost race raises WriteConflict and the whole transition is
    replayed from a fresh read. Each round has a winner, so with
    fewer concurrent writers than ``TICKET_WRITE_ATTEMPTS`` every call
    completes; beyond that a WriteConflict (409, retryable) reaches the client.
    """

    def __init__(self, store, max_daily=None, clock=utcnow):
        self.store = store
        self.max_daily = max_daily if max_daily is not None else config.MAX_DAILY_TICKETS
        self.clock = clock

    @retry(
        retry=retry_if_exception_type(WriteConflict),
        stop=stop_after_attempt(config.TICKET_WRITE_ATTEMPTS),
        wait=wait_random_exponential(multiplier=0.01, max=0.2),
        reraise=True
    )
    def _transition(self, wallet_address, action=None):
        user = self.store.get_user(wallet_address)
        if user is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)

        expected = TicketPool.snapshot(user)
        pool = TicketPool(user, self.max_daily)
        today = today_str(self.clock())
        pool.refresh(today)
        outcome = action(pool) if action else None

        changes = pool.to_fields()
        if changes != expected and not self.store.compare_and_set_user(wallet_address, expected, changes):
            raise WriteConflict("Ticket pool changed concurrently")
        return pool, outcome, today

    def check_status(self, wallet_address):
        pool, _, today = self._transition(wallet_address)
        return {
            'can_play': pool.total > 0,
            'daily_tickets': pool.daily_tickets,
            'max_daily_tickets': self.max_daily,
            'star_tickets': pool.star_tickets,
            'total_tickets': pool.total,
            'tickets_used': pool.tickets_used,
            'date': today
        }

    def consume(self, wallet_address):
        pool, used_type, _ = self._transition(wallet_address, lambda p: p.consume())
        if used_type is None:
            raise NoTicketsRemaining(
                "No tickets remaining",
                daily_tickets=pool.daily_tickets,
                star_tickets=pool.star_tickets,
                total_tickets=pool.total,
                tickets_used=pool.tickets_used
            )

        logger.info(f"Ticket used by {format_address(wallet_address)}: {used_type} "
                    f"({pool.daily_tickets} daily, {pool.star_tickets} star left)")
        return {
            'success': True,
            'used_type': used_type,
            'daily_tickets': pool.daily_tickets,
            'star_tickets': pool.star_tickets,
            'total_tickets': pool.total,
            'tickets_used': pool.tickets_used
        }

    def credit(self, wallet_address, amount):
        """Add purchased or awarded tickets to the star pool"""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Ticket amount must be a positive integer", amount=amount)

        updated = self.store.increment_user(wallet_address, {'star_tickets': amount})
        if updated is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)

        logger.info(f"Credited {amount} star tickets to {format_address(wallet_address)}")
        return {'success': True, 'star_tickets': updated['star_tickets']}
