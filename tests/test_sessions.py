"""
Tests for the session registry lifecycle.
"""
import threading
from datetime import timedelta

import pytest

from toppest.errors import (
    IdentityNotFound, RateLimited, NoTicketsRemaining, SessionNotFound,
    SessionExpired, SessionAlreadyUsed, SessionMismatch
)
from conftest import WALLET, OTHER_WALLET


def add_plays(store, clock, count, spacing_minutes=2):
    for i in range(count):
        store.insert_record({
            'wallet_address': WALLET,
            'game_type': 'dash-trials',
            'score': 100,
            'distance': 100,
            'club_earned': 1,
            'played_at': clock() - timedelta(minutes=spacing_minutes * i + 1)
        })


class TestIssue:
    def test_issue_session(self, services, store, player, clock):
        session = services.sessions.issue(WALLET, 'dash-trials')
        assert len(session['session_token']) == 64
        assert session['expires_at'] == clock() + timedelta(minutes=10)

        stored = store.get_session(session['session_token'])
        assert stored['wallet_address'] == WALLET
        assert stored['used'] is False
        assert stored['start_time'] == clock()

    def test_unknown_identity(self, services):
        with pytest.raises(IdentityNotFound):
            services.sessions.issue(OTHER_WALLET, 'dash-trials')

    def test_rate_limited(self, services, store, player, clock):
        add_plays(store, clock, 20)
        with pytest.raises(RateLimited) as exc:
            services.sessions.issue(WALLET, 'dash-trials')
        assert exc.value.status_code == 429
        assert exc.value.details['codes'] == ['HourlyLimitExceeded']
        assert store.suspicious_activity[0]['reason'] == 'rate_limit_exceeded'
        assert store.sessions == {}


class TestConsume:
    def test_consume_once(self, services, player):
        token = services.sessions.issue(WALLET, 'dash-trials')['session_token']
        session = services.sessions.consume(token, WALLET, 'dash-trials')
        assert session.used is True

        with pytest.raises(SessionAlreadyUsed):
            services.sessions.consume(token, WALLET, 'dash-trials')

    def test_unknown_token(self, services, player):
        with pytest.raises(SessionNotFound):
            services.sessions.consume('f' * 64, WALLET, 'dash-trials')
        with pytest.raises(SessionNotFound):
            services.sessions.consume(None, WALLET, 'dash-trials')

    def test_expired(self, services, player, clock):
        token = services.sessions.issue(WALLET, 'dash-trials')['session_token']
        clock.advance(minutes=10)
        # Still valid at exactly expires_at
        assert services.sessions.store.get_session(token)['expires_at'] == clock()
        clock.advance(seconds=1)
        with pytest.raises(SessionExpired):
            services.sessions.consume(token, WALLET, 'dash-trials')

    def test_mismatch(self, services, player):
        services.profiles.ensure_profile(OTHER_WALLET)
        token = services.sessions.issue(WALLET, 'dash-trials')['session_token']
        with pytest.raises(SessionMismatch):
            services.sessions.consume(token, OTHER_WALLET, 'dash-trials')
        with pytest.raises(SessionMismatch):
            services.sessions.consume(token, WALLET, 'cosmic-flap')
        # A rejected attempt does not burn the token
        assert services.sessions.consume(token, WALLET, 'dash-trials').used

    def test_concurrent_consume_has_one_winner(self, services, player):
        token = services.sessions.issue(WALLET, 'dash-trials')['session_token']
        winners = []
        losers = []
        barrier = threading.Barrier(10)

        def worker():
            barrier.wait()
            try:
                winners.append(services.sessions.consume(token, WALLET, 'dash-trials'))
            except SessionAlreadyUsed as e:
                losers.append(e)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(winners) == 1
        assert len(losers) == 9


class TestStartGame:
    def test_ticket_then_session(self, services, store, player):
        result = services.sessions.start_game(WALLET, 'dash-trials', services.tickets)
        assert result['ticket']['used_type'] == 'daily'
        assert result['ticket']['daily_tickets'] == 2
        assert result['session_token'] in store.sessions

    def test_no_ticket_no_session(self, services, store, player):
        store.compare_and_set_user(WALLET, {}, {'daily_tickets': 0, 'star_tickets': 0})
        with pytest.raises(NoTicketsRemaining):
            services.sessions.start_game(WALLET, 'dash-trials', services.tickets)
        assert store.sessions == {}


class TestCleanup:
    def test_cleanup_respects_grace(self, services, store, player, clock):
        old = services.sessions.issue(WALLET, 'dash-trials')['session_token']
        clock.advance(hours=2)
        fresh = services.sessions.issue(WALLET, 'dash-trials')['session_token']

        assert services.sessions.cleanup_expired() == 1
        assert old not in store.sessions
        assert fresh in store.sessions

    def test_cleanup_keeps_sessions_within_grace(self, services, store, player, clock):
        services.sessions.issue(WALLET, 'dash-trials')
        clock.advance(minutes=30)
        assert services.sessions.cleanup_expired() == 0
        assert services.sessions.cleanup_expired(grace_ms=0) == 1
