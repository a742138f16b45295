# parkflow/database.py
"""
Database connection, session management, and table creation.
Uses SQLAlchemy with PostgreSQL. All models are auto-imported here
so create_tables() creates every table in one call.
"""

from contextlib import contextmanager
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from parkflow.config import settings
from parkflow.errors import Conflict, ParkingError, UpstreamFailure
from parkflow.utils.logger import get_logger

logger = get_logger(__name__)

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,          # Auto-reconnect if DB connection drops
    echo=False,                  # Set True to log all SQL queries (debug only)
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency: yields a DB session and closes it after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Unit of work around a manager operation.
    Commits on success; on any failure rolls back everything done inside the
    block so no half-applied state is ever visible. Driver errors surface as
    UpstreamFailure, business errors propagate unchanged.
    """
    try:
        yield db
        db.commit()
    except ParkingError:
        db.rollback()
        raise
    except IntegrityError as e:
        # A store-level uniqueness guard fired: a concurrent call got there first
        db.rollback()
        logger.warning(f"Constraint violation, transaction rolled back: {e.orig}")
        raise Conflict("concurrent update conflicted with an existing record") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Persistence failure, transaction rolled back: {e}", exc_info=True)
        raise UpstreamFailure("persistence layer failed") from e
    except Exception:
        db.rollback()
        raise


def create_tables(bind=None):
    """
    Creates all DB tables on startup. Safe to call multiple times.
    Import all models here so SQLAlchemy knows about them.
    """
    import parkflow.models  # noqa

    Base.metadata.create_all(bind=bind or engine)
