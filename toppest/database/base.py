"""Storage interface used by the engine.

Two implementations exist: :class:`~toppest.database.mongo.MongoStore`
(durable) and :class:`~toppest.database.memory.MemoryStore` (local/dev and
tests). One of them is selected at startup; they are never mixed.

Every method that the engine relies on for atomicity is documented as such.
Implementations must guarantee those operations are linearizable per row.
"""


class BaseStore:
    name = 'base'

    def ping(self):
        raise NotImplementedError

    # ---- user profiles ----

    def get_user(self, wallet_address):
        """Return the profile dict or None"""
        raise NotImplementedError

    def get_users(self, wallet_addresses):
        """Return {wallet_address: profile} for the wallets that exist"""
        raise NotImplementedError

    def find_user_by_referral_code(self, referral_code):
        raise NotImplementedError

    def create_user(self, user_data):
        """Insert a profile; returns False if the wallet already exists"""
        raise NotImplementedError

    def compare_and_set_user(self, wallet_address, expected, changes):
        """Atomically apply ``changes`` iff every field in ``expected`` still
        holds its expected value. Returns True when the update was applied."""
        raise NotImplementedError

    def increment_user(self, wallet_address, increments):
        """Atomically add ``increments`` to numeric fields; returns the
        updated profile or None if the wallet does not exist"""
        raise NotImplementedError

    # ---- game sessions ----

    def insert_session(self, session_data):
        raise NotImplementedError

    def get_session(self, session_token):
        raise NotImplementedError

    def mark_session_used(self, session_token, used_at):
        """Atomically flip ``used`` from False to True. Returns True for
        exactly one caller per token."""
        raise NotImplementedError

    def delete_sessions_expired_before(self, cutoff):
        """Delete sessions with ``expires_at < cutoff``; returns the count"""
        raise NotImplementedError

    # ---- game records ----

    def insert_record(self, record_data):
        """Persist a validated record; returns the stored dict"""
        raise NotImplementedError

    def get_recent_play_times(self, wallet_address, since):
        """``played_at`` of records newer than ``since``, newest first"""
        raise NotImplementedError

    def get_records(self, wallet_address, game_type=None, limit=10):
        raise NotImplementedError

    def sum_club_earned(self, wallet_address):
        raise NotImplementedError

    def get_top_scores(self, game_type, since=None, limit=None):
        """Per-wallet best runs for a game, highest score first.

        Each entry: ``{wallet_address, high_score, distance, games_played}``.
        """
        raise NotImplementedError

    # ---- referrals ----

    def insert_referral(self, referral_data):
        """Insert an edge; returns False if the referred wallet already has one"""
        raise NotImplementedError

    def get_referral_by_referred(self, referred_wallet):
        raise NotImplementedError

    def get_referrals_by_referrer(self, referrer_wallet, skip=0, limit=50):
        raise NotImplementedError

    def get_referral_totals(self, referrer_wallet):
        """``{total_count, total_revenue_share}`` for a referrer"""
        raise NotImplementedError

    def increment_referral_share(self, referred_wallet, amount):
        raise NotImplementedError

    # ---- quests ----

    def get_quest_progress(self, wallet_address):
        """Every stored ``{quest_id, period_start, progress, completed, claimed,
        completed_at, claimed_at}`` row of a wallet"""
        raise NotImplementedError

    def add_quest_progress(self, wallet_address, quest_id, period_start, increment, target, now):
        """Atomically add ``increment`` to a quest row, creating it if needed.

        Progress is capped at ``target``; reaching it marks the row completed
        and stamps ``completed_at`` once. Returns the updated row.
        """
        raise NotImplementedError

    def claim_quest(self, wallet_address, quest_id, period_start, claimed_at):
        """Atomically flip ``claimed`` on a completed, unclaimed row. Returns
        True for exactly one caller per row."""
        raise NotImplementedError

    def release_quest_claim(self, wallet_address, quest_id, period_start):
        raise NotImplementedError

    # ---- idempotency ----

    def claim_event(self, event_id, kind):
        """Record ``event_id`` as processed. Returns False if it already was."""
        raise NotImplementedError

    def release_event(self, event_id):
        raise NotImplementedError

    # ---- abuse monitoring ----

    def log_suspicious_activity(self, activity_data):
        raise NotImplementedError

    def get_suspicious_wallets(self, since, min_incidents=3):
        """Wallets with at least ``min_incidents`` incidents since ``since``.

        Each entry: ``{wallet_address, incident_count, reasons,
        first_incident, last_incident}``, most incidents first.
        """
        raise NotImplementedError
