"""Shared test fixtures and configuration.

Sets up environment variables before any knotter import so settings are
deterministic, and provides storage objects backed by a temp DB.
"""

import os

# Patch env vars BEFORE any knotter imports
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("DUE_SOON_DAYS", "7")
os.environ.setdefault("DEFAULT_CADENCE_DAYS", "")
os.environ.setdefault("TIMEZONE", "UTC")
os.environ.setdefault("LOOP_STRATEGY", "shortest")
os.environ.setdefault("LOOP_RULES", "")

from datetime import datetime, timezone

import pytest

# Tuesday noon, UTC; tests use UTC as the local timezone unless stated.
NOW = datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock the service reads "now" from."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_knotter.db")


@pytest.fixture
def contact_db(tmp_db_path):
    from knotter.data.db import ContactDB
    return ContactDB(db_path=tmp_db_path)


@pytest.fixture
def tag_db(tmp_db_path):
    from knotter.data.db import TagDB
    return TagDB(db_path=tmp_db_path)


@pytest.fixture
def interaction_db(tmp_db_path):
    from knotter.data.db import InteractionDB
    return InteractionDB(db_path=tmp_db_path)


@pytest.fixture
def date_db(tmp_db_path):
    from knotter.data.db import ContactDateDB
    return ContactDateDB(db_path=tmp_db_path)


@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def service(tmp_db_path, clock):
    """ContactService on a temp DB, UTC, 7-day soon window, no loops."""
    from knotter.core.contact_service import ContactService
    from knotter.core.loops import LoopPolicy
    return ContactService(
        tmp_db_path,
        soon_days=7,
        timezone="UTC",
        loop_policy=LoopPolicy(),
        clock=clock,
    )
