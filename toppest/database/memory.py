"""In-memory store for local development and tests.

All operations run under one re-entrant lock, which gives the same per-row
atomicity the Mongo backend gets from conditional updates.
"""
import copy
import threading
import uuid
import logging

from .base import BaseStore

logger = logging.getLogger(__name__)


class MemoryStore(BaseStore):
    name = 'memory'

    def __init__(self):
        self._lock = threading.RLock()
        self.users = {}
        self.sessions = {}
        self.records = []
        self.referrals = {}
        self.events = {}
        self.quests = {}
        self.suspicious_activity = []
        logger.info("In-memory store initialized")

    def ping(self):
        return True

    # ---- user profiles ----

    def get_user(self, wallet_address):
        with self._lock:
            user = self.users.get(wallet_address)
            return copy.deepcopy(user) if user else None

    def get_users(self, wallet_addresses):
        with self._lock:
            return {
                wallet: copy.deepcopy(self.users[wallet])
                for wallet in wallet_addresses if wallet in self.users
            }

    def find_user_by_referral_code(self, referral_code):
        with self._lock:
            for user in self.users.values():
                if user.get('referral_code') == referral_code:
                    return copy.deepcopy(user)
        return None

    def create_user(self, user_data):
        with self._lock:
            wallet = user_data['wallet_address']
            if wallet in self.users:
                return False
            self.users[wallet] = copy.deepcopy(user_data)
            return True

    def compare_and_set_user(self, wallet_address, expected, changes):
        with self._lock:
            user = self.users.get(wallet_address)
            if user is None:
                return False
            for field, value in expected.items():
                if user.get(field, None) != value:
                    return False
            user.update(copy.deepcopy(changes))
            return True

    def increment_user(self, wallet_address, increments):
        with self._lock:
            user = self.users.get(wallet_address)
            if user is None:
                return None
            for field, amount in increments.items():
                user[field] = (user.get(field) or 0) + amount
            return copy.deepcopy(user)

    # ---- game sessions ----

    def insert_session(self, session_data):
        with self._lock:
            self.sessions[session_data['session_token']] = copy.deepcopy(session_data)

    def get_session(self, session_token):
        with self._lock:
            session = self.sessions.get(session_token)
            return copy.deepcopy(session) if session else None

    def mark_session_used(self, session_token, used_at):
        with self._lock:
            session = self.sessions.get(session_token)
            if session is None or session.get('used'):
                return False
            session['used'] = True
            session['used_at'] = used_at
            return True

    def delete_sessions_expired_before(self, cutoff):
        with self._lock:
            expired = [token for token, session in self.sessions.items() if session['expires_at'] < cutoff]
            for token in expired:
                del self.sessions[token]
            return len(expired)

    # ---- game records ----

    def insert_record(self, record_data):
        with self._lock:
            record = copy.deepcopy(record_data)
            record.setdefault('record_id', uuid.uuid4().hex)
            self.records.append(record)
            return copy.deepcopy(record)

    def get_recent_play_times(self, wallet_address, since):
        with self._lock:
            times = [
                r['played_at'] for r in self.records
                if r['wallet_address'] == wallet_address and r['played_at'] >= since
            ]
        return sorted(times, reverse=True)

    def get_records(self, wallet_address, game_type=None, limit=10):
        with self._lock:
            records = [
                copy.deepcopy(r) for r in self.records
                if r['wallet_address'] == wallet_address and (game_type is None or r['game_type'] == game_type)
            ]
        records.sort(key=lambda r: r['played_at'], reverse=True)
        return records[:limit]

    def sum_club_earned(self, wallet_address):
        with self._lock:
            return sum(r.get('club_earned', 0) for r in self.records if r['wallet_address'] == wallet_address)

    def get_top_scores(self, game_type, since=None, limit=None):
        best = {}
        with self._lock:
            for record in self.records:
                if record['game_type'] != game_type:
                    continue
                if since is not None and record['played_at'] < since:
                    continue
                wallet = record['wallet_address']
                entry = best.get(wallet)
                if entry is None:
                    best[wallet] = entry = {
                        'wallet_address': wallet,
                        'high_score': record['score'],
                        'distance': record['distance'],
                        'games_played': 0
                    }
                elif record['score'] > entry['high_score']:
                    entry['high_score'] = record['score']
                    entry['distance'] = record['distance']
                entry['games_played'] += 1
        entries = sorted(best.values(), key=lambda e: e['high_score'], reverse=True)
        return entries if limit is None else entries[:limit]

    # ---- referrals ----

    def insert_referral(self, referral_data):
        with self._lock:
            referred = referral_data['referred_wallet']
            if referred in self.referrals:
                return False
            referral = copy.deepcopy(referral_data)
            referral.setdefault('referral_id', uuid.uuid4().hex)
            self.referrals[referred] = referral
            return True

    def get_referral_by_referred(self, referred_wallet):
        with self._lock:
            referral = self.referrals.get(referred_wallet)
            return copy.deepcopy(referral) if referral else None

    def get_referrals_by_referrer(self, referrer_wallet, skip=0, limit=50):
        with self._lock:
            referrals = [copy.deepcopy(r) for r in self.referrals.values() if r['referrer_wallet'] == referrer_wallet]
        referrals.sort(key=lambda r: r['created_at'], reverse=True)
        return referrals[skip:skip + limit]

    def get_referral_totals(self, referrer_wallet):
        with self._lock:
            mine = [r for r in self.referrals.values() if r['referrer_wallet'] == referrer_wallet]
            return {
                'total_count': len(mine),
                'total_revenue_share': sum(r.get('revenue_share_club', 0) for r in mine)
            }

    def increment_referral_share(self, referred_wallet, amount):
        with self._lock:
            referral = self.referrals.get(referred_wallet)
            if referral is None:
                return False
            referral['revenue_share_club'] = referral.get('revenue_share_club', 0) + amount
            return True

    # ---- quests ----

    def get_quest_progress(self, wallet_address):
        with self._lock:
            return [copy.deepcopy(row) for row in self.quests.values() if row['wallet_address'] == wallet_address]

    def add_quest_progress(self, wallet_address, quest_id, period_start, increment, target, now):
        key = (wallet_address, quest_id, period_start)
        with self._lock:
            row = self.quests.get(key)
            if row is None:
                row = self.quests[key] = {
                    'wallet_address': wallet_address,
                    'quest_id': quest_id,
                    'period_start': period_start,
                    'progress': 0,
                    'completed': False,
                    'claimed': False,
                    'completed_at': None,
                    'claimed_at': None
                }
            row['progress'] = min(row['progress'] + increment, target)
            if row['progress'] >= target and not row['completed']:
                row['completed'] = True
                row['completed_at'] = now
            return copy.deepcopy(row)

    def claim_quest(self, wallet_address, quest_id, period_start, claimed_at):
        with self._lock:
            row = self.quests.get((wallet_address, quest_id, period_start))
            if row is None or not row['completed'] or row['claimed']:
                return False
            row['claimed'] = True
            row['claimed_at'] = claimed_at
            return True

    def release_quest_claim(self, wallet_address, quest_id, period_start):
        with self._lock:
            row = self.quests.get((wallet_address, quest_id, period_start))
            if row is not None:
                row['claimed'] = False
                row['claimed_at'] = None

    # ---- idempotency ----

    def claim_event(self, event_id, kind):
        with self._lock:
            if event_id in self.events:
                return False
            self.events[event_id] = kind
            return True

    def release_event(self, event_id):
        with self._lock:
            self.events.pop(event_id, None)

    # ---- abuse monitoring ----

    def log_suspicious_activity(self, activity_data):
        with self._lock:
            self.suspicious_activity.append(copy.deepcopy(activity_data))

    def get_suspicious_wallets(self, since, min_incidents=3):
        grouped = {}
        with self._lock:
            for entry in self.suspicious_activity:
                if entry['created_at'] <= since:
                    continue
                wallet = entry['wallet_address']
                group = grouped.setdefault(wallet, {
                    'wallet_address': wallet,
                    'incident_count': 0,
                    'reasons': set(),
                    'first_incident': entry['created_at'],
                    'last_incident': entry['created_at']
                })
                group['incident_count'] += 1
                group['reasons'].add(entry['reason'])
                group['first_incident'] = min(group['first_incident'], entry['created_at'])
                group['last_incident'] = max(group['last_incident'], entry['created_at'])

        result = []
        for group in grouped.values():
            if group['incident_count'] >= min_incidents:
                group['reasons'] = sorted(group['reasons'])
                result.append(group)
        return sorted(result, key=lambda g: g['incident_count'], reverse=True)
