"""Daily, weekly and one-off quests.

Progress is pushed as things happen (a recorded run, a completed purchase, a
new invitee) and kept per quest per period: daily quests reset at UTC
midnight, weekly quests at Monday 00:00 UTC, special quests never. A
completed quest pays its reward once per period.
"""
import logging
from datetime import timedelta, timezone

from toppest.errors import (
    IdentityNotFound, QuestNotFound, QuestNotCompleted, QuestAlreadyClaimed, StoreError
)
from toppest.database.models import utcnow
from toppest.utils.validators import format_address

logger = logging.getLogger(__name__)

SPECIAL_PERIOD_START = '1970-01-01'
CATEGORIES = ('daily', 'weekly', 'special')

# Profile field credited for each reward type
REWARD_FIELDS = {
    'club': 'total_club',
    'star_ticket': 'star_tickets'
}


class Quest:
    def __init__(self, quest_id, title, description, category, condition_type, condition_value,
                 reward_amount, reward_type='club'):
        self.quest_id = quest_id
        self.title = title
        self.description = description
        self.category = category
        self.condition_type = condition_type
        self.condition_value = condition_value
        self.reward_type = reward_type
        self.reward_amount = reward_amount

    def to_dict(self):
        return {
            'id': self.quest_id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'condition_type': self.condition_type,
            'condition_value': self.condition_value,
            'reward_type': self.reward_type,
            'reward_amount': self.reward_amount
        }


QUESTS = [
    Quest('daily-first-game', 'First Game', 'Play any game once',
          'daily', 'games_played_daily', 1, 10),
    Quest('daily-purchase', 'Make Any Purchase', 'Complete any purchase',
          'daily', 'purchase_made_daily', 1, 20),
    Quest('daily-invite', 'Invite a Friend', 'Invite 1 friend today',
          'daily', 'referral_daily', 1, 15),
    Quest('weekly-play-10', 'Play 10 Games', 'Play 10 games this week',
          'weekly', 'games_played_weekly', 10, 100),
    Quest('weekly-spend-20', 'Over $20 Purchase', 'Spend $20 or more this week',
          'weekly', 'purchase_usd_weekly', 20, 150),
    Quest('weekly-invite-10', 'Invite 10 Friends', 'Invite 10 friends this week',
          'weekly', 'referral_weekly', 10, 200),
    Quest('welcome', 'Welcome', 'Play your first game',
          'special', 'first_game', 1, 50),
    Quest('first-purchase', 'First Purchase', 'Complete your first purchase',
          'special', 'first_purchase', 1, 50),
]


def _day_start(now):
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def period_start(category, now):
    """Date string identifying the period ``now`` falls in"""
    if category == 'daily':
        return _day_start(now).strftime('%Y-%m-%d')
    if category == 'weekly':
        day = _day_start(now)
        return (day - timedelta(days=day.weekday())).strftime('%Y-%m-%d')
    return SPECIAL_PERIOD_START


def format_duration(delta):
    """'5h 12m' under a day, '3d 4h' otherwise"""
    minutes = int(delta.total_seconds() // 60)
    hours, minutes = divmod(minutes, 60)
    if hours >= 24:
        return f"{hours // 24}d {hours % 24}h"
    return f"{hours}h {minutes}m"


def reset_times(now):
    today = _day_start(now)
    next_day = today + timedelta(days=1)
    next_monday = today + timedelta(days=7 - today.weekday())
    return {
        'daily': format_duration(next_day - now),
        'weekly': format_duration(next_monday - now)
    }


class QuestService:
    def __init__(self, store, quests=None, clock=utcnow):
        self.store = store
        self.quests = list(quests if quests is not None else QUESTS)
        self.clock = clock

    def _require_identity(self, wallet_address):
        if self.store.get_user(wallet_address) is None:
            raise IdentityNotFound("User not found", wallet_address=wallet_address)

    def _find(self, quest_id):
        for quest in self.quests:
            if quest.quest_id == quest_id:
                return quest
        return None

    def get_quests(self, wallet_address):
        """Quest board of a wallet with progress for the current periods"""
        self._require_identity(wallet_address)
        now = self.clock()
        rows = {
            (row['quest_id'], row['period_start']): row
            for row in self.store.get_quest_progress(wallet_address)
        }

        board = {category: [] for category in CATEGORIES}
        for quest in self.quests:
            row = rows.get((quest.quest_id, period_start(quest.category, now)), {})
            entry = quest.to_dict()
            entry.update({
                'progress': row.get('progress', 0),
                'completed': row.get('completed', False),
                'claimed': row.get('claimed', False)
            })
            board[quest.category].append(entry)

        board['stats'] = {
            'daily_completed': sum(1 for q in board['daily'] if q['completed']),
            'daily_total': len(board['daily']),
            'weekly_completed': sum(1 for q in board['weekly'] if q['completed']),
            'weekly_total': len(board['weekly']),
            'reset_in': reset_times(now)
        }
        return board

    def update_progress(self, wallet_address, condition_type, increment=1):
        """Advance every quest tracking ``condition_type``; returns the ids
        of quests completed by this update"""
        if increment <= 0:
            return []
        # BSON datetimes keep milliseconds; match that so completed_at compares equal
        now = self.clock()
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        completed = []
        for quest in self.quests:
            if quest.condition_type != condition_type:
                continue
            row = self.store.add_quest_progress(
                wallet_address, quest.quest_id, period_start(quest.category, now),
                increment, quest.condition_value, now
            )
            if row and row.get('completed') and row.get('completed_at') == now:
                completed.append(quest.quest_id)
                logger.info(f"Quest {quest.quest_id} completed by {format_address(wallet_address)}")
        return completed

    def on_game_recorded(self, wallet_address):
        completed = []
        for condition in ('games_played_daily', 'games_played_weekly', 'first_game'):
            completed += self.update_progress(wallet_address, condition)
        return completed

    def on_purchase_completed(self, wallet_address, usd_amount=0):
        completed = self.update_progress(wallet_address, 'purchase_made_daily')
        completed += self.update_progress(wallet_address, 'first_purchase')
        if usd_amount:
            completed += self.update_progress(wallet_address, 'purchase_usd_weekly', usd_amount)
        return completed

    def on_referral_created(self, referrer_wallet):
        completed = self.update_progress(referrer_wallet, 'referral_daily')
        completed += self.update_progress(referrer_wallet, 'referral_weekly')
        return completed

    def claim(self, wallet_address, quest_id):
        """Pay a completed quest's reward, once per period"""
        quest = self._find(quest_id)
        if quest is None:
            raise QuestNotFound("Quest not found", quest_id=quest_id)
        self._require_identity(wallet_address)

        now = self.clock()
        period = period_start(quest.category, now)
        if not self.store.claim_quest(wallet_address, quest_id, period, now):
            row = next((r for r in self.store.get_quest_progress(wallet_address)
                        if r['quest_id'] == quest_id and r['period_start'] == period), None)
            if row and row.get('claimed'):
                raise QuestAlreadyClaimed("Quest reward already claimed", quest_id=quest_id)
            raise QuestNotCompleted("Quest not completed", quest_id=quest_id,
                                    progress=row.get('progress', 0) if row else 0,
                                    target=quest.condition_value)

        try:
            updated = self.store.increment_user(wallet_address, {REWARD_FIELDS[quest.reward_type]: quest.reward_amount})
        except StoreError:
            self.store.release_quest_claim(wallet_address, quest_id, period)
            raise

        logger.info(f"Quest {quest_id} claimed by {format_address(wallet_address)}: "
                    f"{quest.reward_amount} {quest.reward_type}")
        return {
            'success': True,
            'quest_id': quest_id,
            'reward': {'type': quest.reward_type, 'amount': quest.reward_amount},
            'total_club': updated.get('total_club', 0),
            'star_tickets': updated.get('star_tickets', 0)
        }
