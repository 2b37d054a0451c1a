# RoiEngine_core/db.py
import contextlib
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlmodel import SQLModel, Session, create_engine

from RoiEngine_core import config

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None


def get_engine() -> Engine:
    """
    Return the process-wide engine, creating it on first use from DATABASE_URL.
    """
    global _engine
    if _engine is None:
        if not config.DATABASE_URL:
            raise RuntimeError(
                "DATABASE_URL is not set. Export it in the environment or add it "
                "to .streamlit/secrets.toml before running the ROI job."
            )
        _engine = create_engine(
            config.DATABASE_URL,
            echo=False,  # True for SQL logging while debugging
            pool_pre_ping=True,
        )
        logger.info(f"Database engine created (...{config.DATABASE_URL[-20:]})")
    return _engine


@contextlib.contextmanager
def get_session(engine: Optional[Engine] = None):
    """
    Provide a Session as a context manager that commits on success and
    rolls back on error.

    Usage:
        with get_session() as session:
            session.add(...)
    """
    session = Session(engine or get_engine())
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(engine: Optional[Engine] = None) -> None:
    """
    Create all tables registered on SQLModel.metadata.

    The table modules are imported here so that their classes are registered
    before create_all runs.
    """
    from RoiEngine_core import models  # noqa: F401
    from RoiEngine_core.tracking import models as tracking_models  # noqa: F401

    try:
        SQLModel.metadata.create_all(engine or get_engine())
        logger.info("SQLModel.metadata.create_all completed (tables created or already present)")
    except OperationalError as e:
        logger.error(f"create_all failed (database unreachable or missing permissions): {e}")
        raise
