"""
Tests for scheduled maintenance and the abuse report script.
"""
import csv
import importlib.util
from datetime import datetime, timedelta, timezone
from pathlib import Path

import schedule

from toppest.database.memory import MemoryStore
from toppest.tasks.scheduled import cleanup_expired_sessions, register_jobs
from conftest import WALLET, OTHER_WALLET

NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)
SCRIPT = Path(__file__).resolve().parent.parent / 'scripts' / 'generate_reports.py'


def load_report_script():
    spec = importlib.util.spec_from_file_location('generate_reports', SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestScheduledJobs:
    def test_cleanup_job_registered_every_30_minutes(self):
        scheduler = register_jobs(schedule.Scheduler(), store=MemoryStore())
        assert len(scheduler.jobs) == 1
        job = scheduler.jobs[0]
        assert job.interval == 30
        assert job.unit == 'minutes'

    def test_cleanup_expired_sessions(self):
        store = MemoryStore()
        long_ago = datetime.now(timezone.utc) - timedelta(days=1)
        store.insert_session({
            'session_token': 'old',
            'wallet_address': WALLET,
            'game_type': 'dash-trials',
            'start_time': long_ago,
            'expires_at': long_ago + timedelta(minutes=10),
            'used': False
        })
        assert cleanup_expired_sessions(store) == 1
        assert store.sessions == {}


class TestSuspiciousWalletsReport:
    def test_report_lists_repeat_offenders(self, tmp_path):
        store = MemoryStore()
        for minutes, wallet, reason in [
            (10, WALLET, 'validation_failed'),
            (20, WALLET, 'rate_limit_exceeded'),
            (30, WALLET, 'validation_failed'),
            (40, OTHER_WALLET, 'validation_failed'),
            (50, OTHER_WALLET, 'validation_failed'),
        ]:
            store.log_suspicious_activity({
                'wallet_address': wallet,
                'reason': reason,
                'details': {},
                'created_at': NOW - timedelta(minutes=minutes)
            })
        # Outside the 7 day window
        store.log_suspicious_activity({
            'wallet_address': OTHER_WALLET,
            'reason': 'validation_failed',
            'details': {},
            'created_at': NOW - timedelta(days=8)
        })

        module = load_report_script()
        filename = module.generate_suspicious_wallets_report(store=store, report_dir=str(tmp_path), now=NOW)

        with open(filename, newline='') as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 1
        assert rows[0]['wallet_address'] == WALLET
        assert rows[0]['incident_count'] == '3'
        assert rows[0]['reasons'] == 'rate_limit_exceeded;validation_failed'
