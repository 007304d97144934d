"""Fixtures for the Tandrum engine tests.

Every test gets its own SQLite database file under tmp_path, a fixed clock
(Monday 2026-01-05 10:00 UTC) and calendar boundaries evaluated in UTC.
"""

from __future__ import annotations

import random

import pytest

from helpers import FakeClock, ms
from tandrum.data_manager import create_duo
from tandrum.db_sqlite import SQLiteRepository
from tandrum.tree_items import seed_tree_items


@pytest.fixture(autouse=True)
def utc_calendar(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin day/week boundaries to UTC regardless of the developer's .env."""
    monkeypatch.setenv("TANDRUM_TIMEZONE", "UTC")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(ms(2026, 1, 5, 10))


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def repo(tmp_path) -> SQLiteRepository:
    return SQLiteRepository(str(tmp_path / "tandrum.db"))


@pytest.fixture
def seeded_repo(repo: SQLiteRepository, clock: FakeClock) -> SQLiteRepository:
    seed_tree_items(repo, clock=clock)
    return repo


@pytest.fixture
def duo_id(seeded_repo: SQLiteRepository, clock: FakeClock) -> str:
    return create_duo(seeded_repo, "alice", "bob", clock=clock)
