"""Database engine, session factory and unit-of-work boundary"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from fintrack_engine.config import settings
from fintrack_engine.domain.exceptions import ConcurrentModification, PersistenceWriteFailed


def build_engine(database_url: str) -> Engine:
    """Create an engine; pooled for server databases, thread-shareable for SQLite"""
    if database_url.startswith("sqlite"):
        return create_engine(database_url, connect_args={"check_same_thread": False})

    # Pool: max 20 connections, recycle after 1 hour to avoid stale connections
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=10,
        pool_recycle=3600,
    )


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Iterator[Session]:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session, operation: str) -> Iterator[Session]:
    """
    Run a multi-step write as a single transaction.

    Commits when the block finishes, rolls back on any failure. Storage errors
    surface as PersistenceWriteFailed (ConcurrentModification for version
    conflicts); domain errors raised inside the block propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logging.warning(f"Concurrent modification during {operation}", extra={"step": operation})
        raise ConcurrentModification(f"{operation}: record was modified concurrently, retry") from e
    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"Persistence failure during {operation}: {e}", extra={"step": operation})
        raise PersistenceWriteFailed(f"{operation} failed to persist") from e
    except Exception:
        db.rollback()
        raise
