"""Tests for the quota ledger, including concurrent charging."""
from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from tts_api.core.errors import NotFoundError, QuotaExceeded, ValidationError
from tts_api.store.quota import QuotaLedger, User


class TestGetOrCreate:
    """Lazy user creation."""

    def test_get_absent(self, ledger):
        assert ledger.get(42) is None

    def test_creates_with_default_limit(self, ledger):
        user = ledger.get_or_create(42)
        assert user == User(id=42, account_status=0, character_count=0, character_limit=5000)

    def test_idempotent(self, ledger):
        first = ledger.get_or_create(42)
        second = ledger.get_or_create(42)
        assert first == second

    def test_custom_default_limit(self, db_engine):
        ledger = QuotaLedger(db_engine, default_limit=10)
        assert ledger.get_or_create(1).character_limit == 10

    def test_concurrent_first_use(self, ledger):
        with ThreadPoolExecutor(max_workers=6) as pool:
            users = list(pool.map(lambda _: ledger.get_or_create(77), range(6)))
        assert all(u == users[0] for u in users)
        assert ledger.get(77).character_count == 0


class TestUseCapacity:
    """Conditional charging."""

    def test_within_limit(self, ledger):
        ledger.get_or_create(42)
        ledger.use_capacity(42, 50)
        assert ledger.get(42).character_count == 50

    def test_exactly_to_limit(self, ledger):
        ledger.get_or_create(42)
        ledger.use_capacity(42, 5000)
        assert ledger.get(42).character_count == 5000
        ledger.use_capacity(42, 0)

    def test_over_limit_unchanged(self, ledger):
        ledger.get_or_create(42)
        ledger.use_capacity(42, 4990)
        with pytest.raises(QuotaExceeded) as exc_info:
            ledger.use_capacity(42, 11)
        assert exc_info.value.details["remaining"] == 10
        assert ledger.get(42).character_count == 4990

    def test_missing_user(self, ledger):
        with pytest.raises(NotFoundError):
            ledger.use_capacity(404, 1)

    def test_negative_length(self, ledger):
        ledger.get_or_create(42)
        with pytest.raises(ValidationError):
            ledger.use_capacity(42, -5)
        assert ledger.get(42).character_count == 0

    def test_ping(self, ledger):
        assert ledger.ping() is True


class TestConcurrentCharging:
    """Simultaneous charges never overshoot the limit."""

    def test_single_winner(self, ledger):
        ledger.get_or_create(1)
        size = 5000 // 2 + 1
        workers = 8
        barrier = threading.Barrier(workers)

        def charge(_):
            barrier.wait()
            try:
                ledger.use_capacity(1, size)
                return "ok"
            except QuotaExceeded:
                return "exceeded"

        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(charge, range(workers)))

        assert outcomes.count("ok") == 1
        assert outcomes.count("exceeded") == workers - 1
        assert ledger.get(1).character_count == size

    def test_many_small_charges(self, db_engine):
        ledger = QuotaLedger(db_engine, default_limit=100)
        ledger.get_or_create(2)

        def charge(_):
            try:
                ledger.use_capacity(2, 7)
                return True
            except QuotaExceeded:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(charge, range(30)))

        user = ledger.get(2)
        assert user.character_count <= user.character_limit
        assert user.character_count == 7 * sum(results)
        assert sum(results) == 100 // 7
