"""
Test configuration and fixtures
"""
from datetime import datetime, timedelta, timezone

import pytest

from toppest.database.memory import MemoryStore
from toppest.web.flask_app import Services, create_app

WALLET = "0x" + "a" * 64
OTHER_WALLET = "0x" + "b" * 64
THIRD_WALLET = "0x" + "c" * 64


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def valid_dash_payload(wallet=WALLET, **overrides):
    """A run that passes every dash-trials check: 1000m in 100s"""
    payload = {
        'wallet_address': wallet,
        'game_type': 'dash-trials',
        'score': 1000,
        'distance': 1000,
        'time_ms': 100000,
        'fever_count': 2,
        'perfect_count': 5,
        'coin_count': 20,
        'potion_count': 3,
        'difficulty': 'hard'
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def services(store, clock):
    return Services(store, clock=clock)


@pytest.fixture
def player(services):
    profile, _ = services.profiles.ensure_profile(WALLET, "Runner")
    return profile


@pytest.fixture
def app(store, services):
    app = create_app(store=store, services=services)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
