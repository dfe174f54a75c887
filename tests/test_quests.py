"""
Tests for quest progress, periods and reward claims.
"""
import threading
from datetime import datetime, timezone

import pytest

from toppest.errors import (
    IdentityNotFound, QuestAlreadyClaimed, QuestNotCompleted, QuestNotFound, StoreError
)
from toppest.features.quests import period_start, reset_times
from conftest import WALLET, OTHER_WALLET, valid_dash_payload


def board_entry(board, quest_id):
    for category in ('daily', 'weekly', 'special'):
        for quest in board[category]:
            if quest['id'] == quest_id:
                return quest
    raise KeyError(quest_id)


class TestPeriods:
    @pytest.mark.parametrize('day, weekly', [
        (datetime(2025, 1, 13, 0, 0, tzinfo=timezone.utc), '2025-01-13'),
        (datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc), '2025-01-13'),
        (datetime(2025, 1, 19, 23, 59, tzinfo=timezone.utc), '2025-01-13'),
        (datetime(2025, 1, 20, 0, 0, tzinfo=timezone.utc), '2025-01-20'),
    ])
    def test_week_starts_on_monday(self, day, weekly):
        assert period_start('weekly', day) == weekly

    def test_daily_and_special(self, clock):
        assert period_start('daily', clock()) == '2025-01-15'
        assert period_start('special', clock()) == '1970-01-01'

    def test_reset_times(self, clock):
        assert reset_times(clock()) == {'daily': '12h 0m', 'weekly': '4d 12h'}


class TestProgress:
    def test_new_board(self, services, player):
        board = services.quests.get_quests(WALLET)
        assert board['stats']['daily_total'] == 3
        assert board['stats']['weekly_total'] == 3
        assert len(board['special']) == 2
        assert all(q['progress'] == 0 and not q['completed'] for q in board['daily'])

    def test_unknown_identity(self, services):
        with pytest.raises(IdentityNotFound):
            services.quests.get_quests(OTHER_WALLET)

    def test_game_completes_first_game_quests(self, services, player):
        assert services.quests.on_game_recorded(WALLET) == ['daily-first-game', 'welcome']
        board = services.quests.get_quests(WALLET)
        assert board_entry(board, 'weekly-play-10')['progress'] == 1
        assert board['stats']['daily_completed'] == 1

    def test_progress_is_capped(self, services, player, clock):
        for _ in range(12):
            services.quests.update_progress(WALLET, 'games_played_weekly')
            clock.advance(seconds=1)
        quest = board_entry(services.quests.get_quests(WALLET), 'weekly-play-10')
        assert quest['progress'] == 10
        assert quest['completed'] is True

    def test_recorded_run_advances_quests(self, services, player):
        services.games.record_game(valid_dash_payload())
        board = services.quests.get_quests(WALLET)
        assert board_entry(board, 'welcome')['completed'] is True
        assert board_entry(board, 'daily-first-game')['completed'] is True

    def test_purchase_advances_quests(self, services, player):
        services.purchases.complete_purchase(WALLET, 'pay_q1', 5, usd_amount=25)
        services.purchases.complete_purchase(WALLET, 'pay_q1', 5, usd_amount=25)
        board = services.quests.get_quests(WALLET)
        assert board_entry(board, 'daily-purchase')['completed'] is True
        assert board_entry(board, 'first-purchase')['completed'] is True
        spend = board_entry(board, 'weekly-spend-20')
        assert (spend['progress'], spend['completed']) == (20, True)

    def test_referral_advances_referrer_quests(self, services, player):
        referrer, _ = services.profiles.ensure_profile(OTHER_WALLET)
        services.referrals.create_referral(referrer['referral_code'], WALLET)
        board = services.quests.get_quests(OTHER_WALLET)
        assert board_entry(board, 'daily-invite')['completed'] is True
        assert board_entry(board, 'weekly-invite-10')['progress'] == 1

    def test_daily_progress_resets(self, services, player, clock):
        services.quests.on_game_recorded(WALLET)
        clock.advance(days=1)
        board = services.quests.get_quests(WALLET)
        assert board_entry(board, 'daily-first-game')['progress'] == 0
        assert board_entry(board, 'weekly-play-10')['progress'] == 1
        assert board_entry(board, 'welcome')['completed'] is True


class TestClaim:
    def test_claim_pays_once(self, services, store, player):
        services.quests.on_game_recorded(WALLET)
        result = services.quests.claim(WALLET, 'welcome')
        assert result['reward'] == {'type': 'club', 'amount': 50}
        assert result['total_club'] == 50

        with pytest.raises(QuestAlreadyClaimed):
            services.quests.claim(WALLET, 'welcome')
        assert store.get_user(WALLET)['total_club'] == 50

    def test_unfinished_quest(self, services, player):
        services.quests.on_game_recorded(WALLET)
        with pytest.raises(QuestNotCompleted) as exc:
            services.quests.claim(WALLET, 'weekly-play-10')
        assert exc.value.details['progress'] == 1
        assert exc.value.details['target'] == 10

    def test_never_started(self, services, player):
        with pytest.raises(QuestNotCompleted):
            services.quests.claim(WALLET, 'welcome')

    def test_unknown_quest(self, services, player):
        with pytest.raises(QuestNotFound):
            services.quests.claim(WALLET, 'moon-landing')

    def test_daily_quest_can_be_claimed_again_next_day(self, services, store, player, clock):
        services.quests.on_game_recorded(WALLET)
        services.quests.claim(WALLET, 'daily-first-game')
        clock.advance(days=1)
        with pytest.raises(QuestNotCompleted):
            services.quests.claim(WALLET, 'daily-first-game')
        services.quests.on_game_recorded(WALLET)
        services.quests.claim(WALLET, 'daily-first-game')
        assert store.get_user(WALLET)['total_club'] == 20

    def test_failed_credit_releases_claim(self, services, store, player, monkeypatch):
        services.quests.on_game_recorded(WALLET)
        original = store.increment_user

        def broken(*args):
            raise StoreError("down")

        monkeypatch.setattr(store, 'increment_user', broken)
        with pytest.raises(StoreError):
            services.quests.claim(WALLET, 'welcome')

        monkeypatch.setattr(store, 'increment_user', original)
        assert services.quests.claim(WALLET, 'welcome')['total_club'] == 50

    def test_concurrent_claims(self, services, store, player):
        services.quests.on_game_recorded(WALLET)
        successes = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                successes.append(services.quests.claim(WALLET, 'welcome'))
            except QuestAlreadyClaimed:
                pass

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(successes) == 1
        assert store.get_user(WALLET)['total_club'] == 50


class TestQuestRoutes:
    def test_board(self, client, player):
        response = client.get(f'/api/quests?address={WALLET}')
        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert [q['id'] for q in data['special']] == ['welcome', 'first-purchase']

    def test_claim(self, client, services, player):
        services.quests.on_game_recorded(WALLET)
        body = {'wallet_address': WALLET, 'quest_id': 'welcome'}

        response = client.post('/api/quests/claim', json=body)
        assert response.status_code == 200
        assert response.get_json()['reward']['amount'] == 50

        again = client.post('/api/quests/claim', json=body)
        assert again.status_code == 409
        assert again.get_json()['reason'] == 'already_claimed'

    def test_claim_errors(self, client, player):
        unknown = client.post('/api/quests/claim', json={'wallet_address': WALLET, 'quest_id': 'nope'})
        assert unknown.status_code == 404
        assert unknown.get_json()['reason'] == 'quest_not_found'

        unfinished = client.post('/api/quests/claim', json={'wallet_address': WALLET, 'quest_id': 'welcome'})
        assert unfinished.status_code == 400
        assert unfinished.get_json()['reason'] == 'quest_not_completed'
