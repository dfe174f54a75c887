"""
Tests for the referral graph and revenue share propagation.
"""
import re

import pytest

from toppest.errors import StoreError
from conftest import WALLET, OTHER_WALLET, THIRD_WALLET


@pytest.fixture
def referrer(services):
    profile, _ = services.profiles.ensure_profile(OTHER_WALLET, "Referrer")
    return profile


@pytest.fixture
def linked(services, player, referrer):
    result = services.referrals.create_referral(referrer['referral_code'], WALLET)
    assert result['success'] is True
    return result


class TestReferralCode:
    def test_code_format(self, services):
        code = services.referrals.generate_referral_code()
        assert re.match(r'^CLUB[0-9A-F]{4}$', code)

    def test_profile_gets_code(self, player):
        assert re.match(r'^CLUB[0-9A-F]{4}$', player['referral_code'])


class TestCreateReferral:
    def test_referral_by_code(self, services, store, linked):
        invitee = store.get_user(WALLET)
        assert invitee['referred_by'] == OTHER_WALLET
        assert invitee['total_club'] == 250
        assert invitee['star_tickets'] == 3
        assert store.get_user(OTHER_WALLET)['referral_count'] == 1
        assert linked['rewards'] == {'club': 250, 'tickets': 3}

    def test_referral_by_wallet(self, services, player, referrer):
        result = services.referrals.create_referral(OTHER_WALLET, WALLET)
        assert result['success'] is True

    def test_lowercase_code(self, services, player, referrer):
        result = services.referrals.create_referral(referrer['referral_code'].lower(), WALLET)
        assert result['success'] is True

    def test_self_referral(self, services, player):
        result = services.referrals.create_referral(player['referral_code'], WALLET)
        assert result == {'success': False, 'reason': 'self_referral'}

    def test_referrer_not_found(self, services, player):
        assert services.referrals.create_referral('CLUBZZZZ', WALLET)['reason'] == 'referrer_not_found'
        assert services.referrals.create_referral('nonsense', WALLET)['reason'] == 'referrer_not_found'

    def test_referred_user_not_found(self, services, referrer):
        result = services.referrals.create_referral(referrer['referral_code'], THIRD_WALLET)
        assert result['reason'] == 'referred_user_not_found'

    def test_already_referred(self, services, store, linked):
        third, _ = services.profiles.ensure_profile(THIRD_WALLET)
        result = services.referrals.create_referral(third['referral_code'], WALLET)
        assert result['reason'] == 'already_referred'
        assert store.get_user(WALLET)['referred_by'] == OTHER_WALLET
        assert store.get_user(WALLET)['total_club'] == 250

    def test_mutual_referral_rejected(self, services, store, linked):
        # WALLET was invited by OTHER_WALLET, so it cannot invite its own referrer
        result = services.referrals.create_referral(WALLET, OTHER_WALLET)
        assert result == {'success': False, 'reason': 'referral_cycle'}
        assert store.get_user(OTHER_WALLET)['referred_by'] is None

    def test_longer_cycle_rejected(self, services, store, linked):
        third, _ = services.profiles.ensure_profile(THIRD_WALLET)
        assert services.referrals.create_referral(WALLET, THIRD_WALLET)['success'] is True
        result = services.referrals.create_referral(third['referral_code'], OTHER_WALLET)
        assert result['reason'] == 'referral_cycle'

    def test_not_new_user(self, services, player, referrer, clock):
        clock.advance(seconds=61)
        result = services.referrals.create_referral(referrer['referral_code'], WALLET)
        assert result['reason'] == 'not_new_user'


class TestRevenueShare:
    def test_club_earned_share(self, services, store, linked):
        assert services.referrals.on_club_earned(WALLET, 150) == 1
        assert store.get_user(OTHER_WALLET)['total_club'] == 1
        assert store.get_referral_by_referred(WALLET)['revenue_share_club'] == 1

    def test_small_amounts_round_to_nothing(self, services, store, linked):
        assert services.referrals.on_club_earned(WALLET, 99) == 0
        assert services.referrals.on_club_earned(WALLET, 0) == 0
        assert services.referrals.on_club_earned(WALLET, -500) == 0
        assert store.get_user(OTHER_WALLET)['total_club'] == 0

    def test_same_event_credits_once(self, services, store, linked):
        assert services.referrals.on_club_earned(WALLET, 500, event_id='club:r1') == 5
        assert services.referrals.on_club_earned(WALLET, 500, event_id='club:r1') == 0
        assert store.get_user(OTHER_WALLET)['total_club'] == 5

    def test_no_referrer(self, services, store, player):
        assert services.referrals.on_club_earned(WALLET, 1000, event_id='club:r2') == 0
        # Unclaimed so a later retry after linking is not blocked
        assert 'club:r2' not in store.events

    def test_purchase_share(self, services, store, linked):
        assert services.referrals.on_purchase_completed(WALLET, 4.99) == 50
        assert services.referrals.on_purchase_completed(WALLET, 0.25) == 3
        assert store.get_user(OTHER_WALLET)['total_club'] == 53

    def test_store_failure_releases_event(self, services, store, linked, monkeypatch):
        def broken(*args):
            raise StoreError("down")

        monkeypatch.setattr(store, 'increment_user', broken)
        with pytest.raises(StoreError):
            services.referrals.on_club_earned(WALLET, 500, event_id='club:r3')
        assert 'club:r3' not in store.events

    def test_edge_total_failure_keeps_claim(self, services, store, linked, monkeypatch):
        def broken(*args):
            raise StoreError("down")

        monkeypatch.setattr(store, 'increment_referral_share', broken)
        assert services.referrals.on_club_earned(WALLET, 500, event_id='club:r4') == 5
        assert services.referrals.on_club_earned(WALLET, 500, event_id='club:r4') == 0
        assert store.get_user(OTHER_WALLET)['total_club'] == 5
        assert 'club:r4' in store.events


class TestReferralQueries:
    def test_stats(self, services, linked):
        services.referrals.on_club_earned(WALLET, 1000)
        stats = services.referrals.get_referral_stats(OTHER_WALLET)
        assert stats == {'total_count': 1, 'total_signup_rewards': 0, 'total_revenue_share': 10}

    def test_list_referrals(self, services, linked):
        result = services.referrals.get_referrals(OTHER_WALLET, page=1, limit=10)
        assert result['total'] == 1
        assert result['has_more'] is False
        assert result['referrals'][0]['referred_wallet'] == WALLET
        assert result['referrals'][0]['nickname'] == 'Runner'

        assert services.referrals.get_referrals(OTHER_WALLET, page=2, limit=10)['referrals'] == []

    def test_get_referral_code_assigns_missing(self, services, store, player):
        store.compare_and_set_user(WALLET, {}, {'referral_code': None})
        code = services.referrals.get_referral_code(WALLET)
        assert code.startswith('CLUB')
        assert store.get_user(WALLET)['referral_code'] == code
