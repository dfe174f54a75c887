# toppest/database/mongo.py
import uuid
import logging
from functools import wraps
from pymongo import MongoClient, ReturnDocument, ASCENDING, DESCENDING
from pymongo.errors import PyMongoError, ConnectionFailure, DuplicateKeyError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from toppest.errors import StoreError, StoreUnavailable
from .base import BaseStore

logger = logging.getLogger(__name__)

NO_ID = {'_id': 0}

# Reads are safe to replay after a dropped connection; writes are not retried here
retry_read = retry(
    retry=retry_if_exception_type(ConnectionFailure),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
    reraise=True
)


def translate_errors(func):
    """Surface driver failures as retryable store errors"""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except ConnectionFailure as e:
            logger.error(f"MongoDB unavailable in {func.__name__}: {str(e)}")
            raise StoreUnavailable("Database temporarily unavailable") from e
        except DuplicateKeyError:
            raise
        except PyMongoError as e:
            logger.error(f"MongoDB error in {func.__name__}: {str(e)}")
            raise StoreError("Database error") from e
    return wrapper


class MongoStore(BaseStore):
    name = 'mongo'

    def __init__(self, uri=None, db_name=None, client=None):
        # tz_aware so stored datetimes come back comparable with utcnow()
        self.client = client or MongoClient(uri, tz_aware=True, serverSelectionTimeoutMS=5000)
        self.db = self.client[db_name]

    def initialize(self):
        try:
            self.db.users.create_index("wallet_address", unique=True)
            self.db.users.create_index("referral_code", unique=True, sparse=True)
            self.db.game_sessions.create_index("wallet_address")
            self.db.game_sessions.create_index("expires_at")
            self.db.game_records.create_index([("wallet_address", ASCENDING), ("played_at", DESCENDING)])
            self.db.game_records.create_index([("game_type", ASCENDING), ("played_at", DESCENDING)])
            self.db.referrals.create_index("referred_wallet", unique=True)
            self.db.referrals.create_index("referrer_wallet")
            self.db.user_quests.create_index(
                [("wallet_address", ASCENDING), ("quest_id", ASCENDING), ("period_start", ASCENDING)],
                unique=True
            )
            self.db.suspicious_activity.create_index([("wallet_address", ASCENDING), ("created_at", DESCENDING)])

            logger.info("✅ MongoDB initialized successfully")
            return True
        except PyMongoError as e:
            logger.error(f"❌ MongoDB initialization failed: {str(e)}")
            return False

    def ping(self):
        try:
            self.db.command('ping')
            return True
        except PyMongoError:
            return False

    # ---- user profiles ----

    @translate_errors
    @retry_read
    def get_user(self, wallet_address):
        return self.db.users.find_one({"wallet_address": wallet_address}, NO_ID)

    @translate_errors
    @retry_read
    def get_users(self, wallet_addresses):
        cursor = self.db.users.find({"wallet_address": {"$in": list(wallet_addresses)}}, NO_ID)
        return {user['wallet_address']: user for user in cursor}

    @translate_errors
    @retry_read
    def find_user_by_referral_code(self, referral_code):
        return self.db.users.find_one({"referral_code": referral_code}, NO_ID)

    @translate_errors
    def create_user(self, user_data):
        try:
            self.db.users.insert_one(dict(user_data))
            return True
        except DuplicateKeyError:
            return False

    @translate_errors
    def compare_and_set_user(self, wallet_address, expected, changes):
        query = {"wallet_address": wallet_address}
        query.update(expected)
        result = self.db.users.update_one(query, {"$set": changes})
        return result.matched_count == 1

    @translate_errors
    def increment_user(self, wallet_address, increments):
        return self.db.users.find_one_and_update(
            {"wallet_address": wallet_address},
            {"$inc": increments},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER
        )

    # ---- game sessions ----

    @translate_errors
    def insert_session(self, session_data):
        doc = dict(session_data)
        doc['_id'] = session_data['session_token']
        self.db.game_sessions.insert_one(doc)

    @translate_errors
    @retry_read
    def get_session(self, session_token):
        return self.db.game_sessions.find_one({"_id": session_token}, NO_ID)

    @translate_errors
    def mark_session_used(self, session_token, used_at):
        # The used=False filter makes this a single check-and-set
        result = self.db.game_sessions.update_one(
            {"_id": session_token, "used": False},
            {"$set": {"used": True, "used_at": used_at}}
        )
        return result.modified_count == 1

    @translate_errors
    def delete_sessions_expired_before(self, cutoff):
        result = self.db.game_sessions.delete_many({"expires_at": {"$lt": cutoff}})
        return result.deleted_count

    # ---- game records ----

    @translate_errors
    def insert_record(self, record_data):
        doc = dict(record_data)
        doc.setdefault('record_id', uuid.uuid4().hex)
        self.db.game_records.insert_one(dict(doc, _id=doc['record_id']))
        return doc

    @translate_errors
    @retry_read
    def get_recent_play_times(self, wallet_address, since):
        cursor = self.db.game_records.find(
            {"wallet_address": wallet_address, "played_at": {"$gte": since}},
            {"played_at": 1, "_id": 0}
        ).sort("played_at", DESCENDING)
        return [doc['played_at'] for doc in cursor]

    @translate_errors
    @retry_read
    def get_records(self, wallet_address, game_type=None, limit=10):
        query = {"wallet_address": wallet_address}
        if game_type:
            query["game_type"] = game_type
        return list(self.db.game_records.find(query, NO_ID).sort("played_at", DESCENDING).limit(limit))

    @translate_errors
    @retry_read
    def sum_club_earned(self, wallet_address):
        result = list(self.db.game_records.aggregate([
            {"$match": {"wallet_address": wallet_address}},
            {"$group": {"_id": None, "total": {"$sum": "$club_earned"}}}
        ]))
        return result[0]['total'] if result else 0

    @translate_errors
    @retry_read
    def get_top_scores(self, game_type, since=None, limit=None):
        match = {"game_type": game_type}
        if since is not None:
            match["played_at"] = {"$gte": since}
        pipeline = [
            {"$match": match},
            {"$sort": {"score": DESCENDING}},
            {"$group": {
                "_id": "$wallet_address",
                "high_score": {"$first": "$score"},
                "distance": {"$first": "$distance"},
                "games_played": {"$sum": 1}
            }},
            {"$sort": {"high_score": DESCENDING}},
            {"$project": {
                "_id": 0,
                "wallet_address": "$_id",
                "high_score": 1,
                "distance": 1,
                "games_played": 1
            }}
        ]
        if limit is not None:
            pipeline.append({"$limit": limit})
        return list(self.db.game_records.aggregate(pipeline))

    # ---- referrals ----

    @translate_errors
    def insert_referral(self, referral_data):
        doc = dict(referral_data)
        doc.setdefault('referral_id', uuid.uuid4().hex)
        try:
            self.db.referrals.insert_one(doc)
            return True
        except DuplicateKeyError:
            return False

    @translate_errors
    @retry_read
    def get_referral_by_referred(self, referred_wallet):
        return self.db.referrals.find_one({"referred_wallet": referred_wallet}, NO_ID)

    @translate_errors
    @retry_read
    def get_referrals_by_referrer(self, referrer_wallet, skip=0, limit=50):
        cursor = self.db.referrals.find({"referrer_wallet": referrer_wallet}, NO_ID)
        return list(cursor.sort("created_at", DESCENDING).skip(skip).limit(limit))

    @translate_errors
    @retry_read
    def get_referral_totals(self, referrer_wallet):
        result = list(self.db.referrals.aggregate([
            {"$match": {"referrer_wallet": referrer_wallet}},
            {"$group": {
                "_id": None,
                "total_count": {"$sum": 1},
                "total_revenue_share": {"$sum": "$revenue_share_club"}
            }}
        ]))
        if not result:
            return {'total_count': 0, 'total_revenue_share': 0}
        return {
            'total_count': result[0]['total_count'],
            'total_revenue_share': result[0]['total_revenue_share']
        }

    @translate_errors
    def increment_referral_share(self, referred_wallet, amount):
        result = self.db.referrals.update_one(
            {"referred_wallet": referred_wallet},
            {"$inc": {"revenue_share_club": amount}}
        )
        return result.modified_count == 1

    # ---- quests ----

    @translate_errors
    @retry_read
    def get_quest_progress(self, wallet_address):
        return list(self.db.user_quests.find({"wallet_address": wallet_address}, NO_ID))

    @translate_errors
    def add_quest_progress(self, wallet_address, quest_id, period_start, increment, target, now):
        key = {"wallet_address": wallet_address, "quest_id": quest_id, "period_start": period_start}
        added = {"$add": [{"$ifNull": ["$progress", 0]}, increment]}
        # Pipeline update so the cap and the completion stamp see the same value
        update = [
            {"$set": {
                "progress": {"$min": [added, target]},
                "claimed": {"$ifNull": ["$claimed", False]},
                "claimed_at": {"$ifNull": ["$claimed_at", None]},
                "completed_at": {"$ifNull": [
                    "$completed_at",
                    {"$cond": [{"$gte": [added, target]}, now, None]}
                ]}
            }},
            {"$set": {"completed": {"$gte": ["$progress", target]}}}
        ]
        try:
            return self._upsert_quest(key, update)
        except DuplicateKeyError:
            # Lost the insert race; the row exists now
            return self._upsert_quest(key, update)

    def _upsert_quest(self, key, update):
        return self.db.user_quests.find_one_and_update(
            key, update,
            upsert=True,
            projection=NO_ID,
            return_document=ReturnDocument.AFTER
        )

    @translate_errors
    def claim_quest(self, wallet_address, quest_id, period_start, claimed_at):
        result = self.db.user_quests.update_one(
            {"wallet_address": wallet_address, "quest_id": quest_id, "period_start": period_start,
             "completed": True, "claimed": False},
            {"$set": {"claimed": True, "claimed_at": claimed_at}}
        )
        return result.modified_count == 1

    @translate_errors
    def release_quest_claim(self, wallet_address, quest_id, period_start):
        self.db.user_quests.update_one(
            {"wallet_address": wallet_address, "quest_id": quest_id, "period_start": period_start},
            {"$set": {"claimed": False, "claimed_at": None}}
        )

    # ---- idempotency ----

    @translate_errors
    def claim_event(self, event_id, kind):
        try:
            self.db.processed_events.insert_one({"_id": event_id, "kind": kind})
            return True
        except DuplicateKeyError:
            return False

    @translate_errors
    def release_event(self, event_id):
        self.db.processed_events.delete_one({"_id": event_id})

    # ---- abuse monitoring ----

    @translate_errors
    def log_suspicious_activity(self, activity_data):
        self.db.suspicious_activity.insert_one(dict(activity_data))

    @translate_errors
    @retry_read
    def get_suspicious_wallets(self, since, min_incidents=3):
        return list(self.db.suspicious_activity.aggregate([
            {"$match": {"created_at": {"$gt": since}}},
            {"$group": {
                "_id": "$wallet_address",
                "incident_count": {"$sum": 1},
                "reasons": {"$addToSet": "$reason"},
                "first_incident": {"$min": "$created_at"},
                "last_incident": {"$max": "$created_at"}
            }},
            {"$match": {"incident_count": {"$gte": min_incidents}}},
            {"$sort": {"incident_count": DESCENDING}},
            {"$project": {
                "_id": 0,
                "wallet_address": "$_id",
                "incident_count": 1,
                "reasons": 1,
                "first_incident": 1,
                "last_incident": 1
            }}
        ]))
