"""SQLAlchemy engine, session factory and unit-of-work helpers."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from groupdesk.config import settings
from groupdesk.services.exceptions import GroupDeskError, PersistenceError

logger = logging.getLogger(__name__)

_connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one session per request, always closed."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Run a block of writes as one unit: commit on success, roll back on any error.

    IntegrityError and domain errors propagate unchanged so callers can
    translate constraint violations; any other database failure is wrapped
    in PersistenceError.
    """
    try:
        yield db
        db.commit()
    except (GroupDeskError, IntegrityError):
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction rolled back after database error")
        raise PersistenceError("Database operation failed") from exc
    except Exception:
        db.rollback()
        raise
