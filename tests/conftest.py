"""
Shared fixtures for the ROI engine test suite.

Persistence tests run against an in-memory SQLite database shared through a
StaticPool, so every session in a test sees the same data. Nothing here
touches the network.
"""

import sys
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from RoiEngine_core.db import init_db


class FakePriceSupplier:
    """In-process supplier serving fixed closes; records every call."""

    def __init__(self, closes=None):
        self.closes = closes or {}
        self.calls = []

    def get_daily_closes(self, symbols, start_date, end_date):
        self.calls.append((tuple(symbols), start_date, end_date))
        return {
            symbol: [
                (day, close)
                for day, close in sorted(self.closes.get(symbol, {}).items())
                if start_date <= day <= end_date
            ]
            for symbol in symbols
        }


class FakeClock:
    """Settable UTC clock for lock TTL tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def daily_closes(start: date, values) -> dict:
    """{day: Decimal(close)} for consecutive days starting at ``start``."""
    return {start + timedelta(days=i): Decimal(str(v)) for i, v in enumerate(values)}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def supplier():
    return FakePriceSupplier()


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))
