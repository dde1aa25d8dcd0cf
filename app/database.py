import logging
import time

from fastapi import HTTPException, status
from sqlmodel import SQLModel, create_engine, Session
from sqlalchemy.exc import OperationalError
from sqlalchemy.pool import NullPool

from .config import settings

logger = logging.getLogger(__name__)


if settings.database_url.startswith("sqlite"):
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        connect_args={"check_same_thread": False, "timeout": 60},
        poolclass=NullPool,  # avoid multiple pooled connections holding write locks
    )
    # Configure SQLite pragmas to reduce locking
    try:
        with engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
            conn.exec_driver_sql("PRAGMA busy_timeout=60000;")
    except OperationalError:
        # Database may be momentarily locked during reloader startup.
        logger.warning("Could not set SQLite pragmas, continuing")
else:
    engine = create_engine(
        settings.database_url,
        echo=settings.sql_echo,
        pool_pre_ping=True,
    )


def get_session():
    with Session(engine) as session:
        yield session


def commit_with_retry(session: Session, *instances, attempts: int = 3) -> None:
    """Add ``instances`` and commit, retrying on transient SQLite locks.

    A rollback expunges pending rows, so they are re-added on every attempt.
    Raises a 500 HTTPException once the last attempt fails.
    """
    for attempt in range(attempts):
        try:
            for obj in instances:
                session.add(obj)
            session.commit()
            return
        except OperationalError:
            session.rollback()
            if attempt == attempts - 1:
                logger.error("Commit failed after %d attempts", attempts)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Database is busy, please retry",
                )
            time.sleep(0.25 * (attempt + 1))


def init_db(bind=None):
    # Register every table on the metadata
    from .models import (  # noqa: F401
        budget,
        category,
        expense,
        goal,
        recurring,
        split,
        user,
    )

    SQLModel.metadata.create_all(bind or engine)
    logger.info("Database initialized")
