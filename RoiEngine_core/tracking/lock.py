"""
Database-backed mutual exclusion for the ROI job.

The lock is a single roi_dashboard_snapshot row (scope JOB_LOCK) whose
payload names the holder. Acquisition is insert-if-absent against the
(scope, portfolio_key) unique constraint. A lock older than the TTL is
considered abandoned and may be stolen, but only with a compare-and-swap on
updated_at so that two runs racing for the same stale lock cannot both win.
"""

import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator, Optional

from sqlalchemy import delete, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..config import JOB_LOCK_NAME, JOB_LOCK_TTL_MINUTES
from ..db import get_engine, get_session
from ..errors import LockContentionError
from utils.calendar_days import as_utc, utcnow
from .models import RoiDashboardSnapshot, Scopes

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class JobLockState:
    """Lock payload as stored in the JOB_LOCK row."""
    run_id: str
    holder: str
    trigger: str
    locked_at: datetime
    stolen: bool = False
    previous_run_id: Optional[str] = None
    previous_holder: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "runId": self.run_id,
            "holder": self.holder,
            "trigger": self.trigger,
            "lockedAt": self.locked_at.isoformat(),
            "stolen": self.stolen,
            "previousRunId": self.previous_run_id,
            "previousHolder": self.previous_holder,
        }

    @classmethod
    def from_payload(cls, payload: Optional[dict]) -> Optional["JobLockState"]:
        if not payload or not payload.get("runId"):
            return None
        locked_at = payload.get("lockedAt")
        return cls(
            run_id=payload["runId"],
            holder=payload.get("holder") or "",
            trigger=payload.get("trigger") or "",
            locked_at=as_utc(datetime.fromisoformat(locked_at)) if locked_at else _EPOCH,
            stolen=bool(payload.get("stolen")),
            previous_run_id=payload.get("previousRunId"),
            previous_holder=payload.get("previousHolder"),
        )


@dataclass(frozen=True)
class LockAcquisition:
    """Outcome of a lock attempt; truthy when the lock is ours."""
    acquired: bool
    stolen: bool = False
    previous_run_id: Optional[str] = None
    previous_holder: Optional[str] = None

    def __bool__(self) -> bool:
        return self.acquired


class JobLockManager:
    """
    Acquire and release the JOB_LOCK row.

    Example:
        locks = JobLockManager()
        with locks.hold(run_id, holder="cron", trigger="cron"):
            ...
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        lock_name: str = JOB_LOCK_NAME,
        ttl: timedelta = timedelta(minutes=JOB_LOCK_TTL_MINUTES),
        now_fn: Callable[[], datetime] = utcnow,
    ):
        self._engine = engine
        self.lock_name = lock_name
        self.ttl = ttl
        self.now_fn = now_fn

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            self._engine = get_engine()
        return self._engine

    def _select_lock(self):
        return select(RoiDashboardSnapshot).where(
            RoiDashboardSnapshot.scope == Scopes.JOB_LOCK,
            RoiDashboardSnapshot.portfolio_key == self.lock_name,
        )

    def try_acquire(self, run_id: str, holder: str, trigger: str) -> LockAcquisition:
        """
        Try to take the lock for ``run_id``.

        Returns:
            LockAcquisition; falsy if a valid lock is held by another run or
            a concurrent run won the race for a stale one.
        """
        now = as_utc(self.now_fn())
        state = JobLockState(run_id=run_id, holder=holder, trigger=trigger, locked_at=now)

        session = Session(self.engine)
        try:
            session.add(RoiDashboardSnapshot(
                scope=Scopes.JOB_LOCK,
                portfolio_key=self.lock_name,
                payload=state.to_payload(),
                created_at=now,
                updated_at=now,
            ))
            session.commit()
            logger.info(f"Job lock '{self.lock_name}' acquired by {holder} (run {run_id})")
            return LockAcquisition(acquired=True)
        except IntegrityError:
            # Row exists: somebody holds (or abandoned) the lock
            session.rollback()
        finally:
            session.close()

        return self._try_steal(state, now)

    def _try_steal(self, state: JobLockState, now: datetime) -> LockAcquisition:
        with get_session(self.engine) as session:
            existing = session.exec(self._select_lock()).first()
            if existing is None:
                # Released between our insert and this read; next run will pick it up
                logger.info(f"Job lock '{self.lock_name}' vanished during acquisition, not retrying")
                return LockAcquisition(acquired=False)

            current = JobLockState.from_payload(existing.payload)
            held_since = as_utc(existing.updated_at)
            age = now - held_since
            if age <= self.ttl:
                logger.info(
                    f"Job lock '{self.lock_name}' held by "
                    f"{current.holder if current else 'unknown'} "
                    f"(run {current.run_id if current else '?'}, age {age})"
                )
                return LockAcquisition(acquired=False)

            stolen_state = JobLockState(
                run_id=state.run_id,
                holder=state.holder,
                trigger=state.trigger,
                locked_at=now,
                stolen=True,
                previous_run_id=current.run_id if current else None,
                previous_holder=current.holder if current else None,
            )
            result = session.connection().execute(
                update(RoiDashboardSnapshot)
                .where(
                    RoiDashboardSnapshot.id == existing.id,
                    RoiDashboardSnapshot.updated_at == held_since,
                )
                .values(payload=stolen_state.to_payload(), updated_at=now)
            )
            if result.rowcount != 1:
                logger.info(f"Lost the race to steal stale job lock '{self.lock_name}'")
                return LockAcquisition(acquired=False)

        logger.warning(
            f"Stole stale job lock '{self.lock_name}' (age {age}) from "
            f"{stolen_state.previous_holder} (run {stolen_state.previous_run_id})"
        )
        return LockAcquisition(
            acquired=True,
            stolen=True,
            previous_run_id=stolen_state.previous_run_id,
            previous_holder=stolen_state.previous_holder,
        )

    def release(self, run_id: str) -> bool:
        """
        Delete the lock row if ``run_id`` still owns it.

        Returns:
            True if a row was deleted. A lock stolen from us is left alone.
        """
        with get_session(self.engine) as session:
            existing = session.exec(self._select_lock()).first()
            if existing is None:
                logger.debug(f"Job lock '{self.lock_name}' already released")
                return False
            current = JobLockState.from_payload(existing.payload)
            if current is None or current.run_id != run_id:
                logger.warning(
                    f"Not releasing job lock '{self.lock_name}': owned by run "
                    f"{current.run_id if current else 'unknown'}, not {run_id}"
                )
                return False
            session.connection().execute(
                delete(RoiDashboardSnapshot).where(RoiDashboardSnapshot.id == existing.id)
            )
        logger.info(f"Job lock '{self.lock_name}' released (run {run_id})")
        return True

    def get_state(self) -> Optional[JobLockState]:
        with get_session(self.engine) as session:
            existing = session.exec(self._select_lock()).first()
            return JobLockState.from_payload(existing.payload) if existing else None

    @contextlib.contextmanager
    def hold(self, run_id: str, holder: str, trigger: str) -> Iterator[LockAcquisition]:
        """
        Context manager around try_acquire/release.

        Raises:
            LockContentionError: The lock could not be acquired
        """
        acquisition = self.try_acquire(run_id, holder, trigger)
        if not acquisition:
            raise LockContentionError(details={"lock": self.lock_name, "run_id": run_id})
        try:
            yield acquisition
        finally:
            self.release(run_id)
