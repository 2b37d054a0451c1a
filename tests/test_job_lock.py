"""
Test suite for the database job lock.
"""

from datetime import timedelta

import pytest

from RoiEngine_core.errors import LockContentionError
from RoiEngine_core.tracking.lock import JobLockManager


@pytest.fixture
def locks(engine, clock):
    return JobLockManager(engine=engine, ttl=timedelta(minutes=30), now_fn=clock)


def test_acquire_free_lock(locks):
    acquisition = locks.try_acquire("run-1", holder="host:1", trigger="cron")

    assert acquisition
    assert not acquisition.stolen
    state = locks.get_state()
    assert state.run_id == "run-1"
    assert state.holder == "host:1"
    assert state.trigger == "cron"


def test_live_lock_blocks_other_runs(locks, clock):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")
    clock.advance(minutes=29)

    assert not locks.try_acquire("run-2", holder="b", trigger="manual")
    assert locks.get_state().run_id == "run-1"


def test_stale_lock_is_stolen(locks, clock):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")
    clock.advance(minutes=31)

    acquisition = locks.try_acquire("run-2", holder="b", trigger="cron")

    assert acquisition.acquired
    assert acquisition.stolen
    assert acquisition.previous_run_id == "run-1"
    assert acquisition.previous_holder == "a"
    state = locks.get_state()
    assert state.run_id == "run-2"
    assert state.stolen
    assert state.previous_run_id == "run-1"


def test_release_only_by_owner(locks, clock):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")
    clock.advance(hours=1)
    assert locks.try_acquire("run-2", holder="b", trigger="cron")

    # The original holder finishing late must not free the thief's lock
    assert locks.release("run-1") is False
    assert locks.get_state().run_id == "run-2"

    assert locks.release("run-2") is True
    assert locks.get_state() is None
    assert locks.release("run-2") is False


def test_lock_can_be_reacquired_after_release(locks):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")
    locks.release("run-1")
    assert locks.try_acquire("run-2", holder="b", trigger="cron")


def test_hold_releases_on_exit(locks):
    with locks.hold("run-1", holder="a", trigger="cron") as acquisition:
        assert acquisition.acquired
        assert locks.get_state().run_id == "run-1"
    assert locks.get_state() is None


def test_hold_raises_when_contended(locks):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")

    with pytest.raises(LockContentionError):
        with locks.hold("run-2", holder="b", trigger="cron"):
            pass

    assert locks.get_state().run_id == "run-1"


def test_lock_times_are_utc_aware_after_round_trip(locks, clock):
    assert locks.try_acquire("run-1", holder="a", trigger="cron")

    state = locks.get_state()

    assert state.locked_at == clock.now
    assert state.locked_at.utcoffset() == timedelta(0)
    # Stored updated_at comes back naive from SQLite; age math still works
    clock.advance(minutes=31)
    assert locks.try_acquire("run-2", holder="b", trigger="cron").stolen
