import sys
import os
from datetime import datetime, timedelta, timezone

import pytest

# Ensure the project root is in the python path for all tests
# This solves the 'ModuleNotFoundError' issues encountered when running tests
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from reseet.organizing import CategoryAssignmentService
from reseet.storage import InMemoryBackend, ReceiptRepository

USER_ID = "user-1"


class TickingClock:
    """Wall clock that moves forward one second per reading."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FlakyBackend(InMemoryBackend):
    """In-memory backend whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.failing = False
        self.writes = 0

    def _check(self):
        if self.failing:
            raise ConnectionError("storage unavailable")
        self.writes += 1

    async def upsert_receipt(self, user_id, row):
        self._check()
        await super().upsert_receipt(user_id, row)

    async def delete_receipt(self, user_id, receipt_id):
        self._check()
        await super().delete_receipt(user_id, receipt_id)

    async def upsert_category(self, user_id, row):
        self._check()
        await super().upsert_category(user_id, row)

    async def delete_category(self, user_id, category_id, updated_at):
        self._check()
        await super().delete_category(user_id, category_id, updated_at)


@pytest.fixture
def backend():
    return FlakyBackend()


@pytest.fixture
def wall_clock():
    return TickingClock()


@pytest.fixture
def monotonic():
    return ManualClock()


@pytest.fixture
def repo(backend, wall_clock):
    """Empty, unseeded repository over a flaky in-memory backend."""
    return ReceiptRepository(backend, USER_ID, clock=wall_clock)


@pytest.fixture
def service(repo, monotonic):
    return CategoryAssignmentService(repo, undo_window=5.0, clock=monotonic)
