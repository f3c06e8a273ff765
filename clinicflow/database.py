import logging
import os
import time
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from .config import DATABASE_URL
from .errors import ConcurrentModificationError, ConflictError, DependencyError

logger = logging.getLogger(__name__)

# Get environment-specific pool settings
POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
ENABLE_QUERY_LOGGING = os.getenv("DB_LOG_SLOW_QUERIES", "true").lower() == "true"
SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))


def create_db_engine(url: str = DATABASE_URL):
    """Create an engine; SQLite gets no pool sizing and a thread-safe connection"""
    if url.startswith("sqlite"):
        engine = create_engine(url, connect_args={"check_same_thread": False}, echo=False)
    else:
        engine = create_engine(
            url,
            pool_pre_ping=True,  # Test connections before using
            pool_recycle=POOL_RECYCLE,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            echo=False,
        )

    # Slow query logging for performance monitoring
    if ENABLE_QUERY_LOGGING:

        @event.listens_for(engine, "before_cursor_execute")
        def before_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            conn.info.setdefault("query_start_time", []).append(time.time())

        @event.listens_for(engine, "after_cursor_execute")
        def after_cursor_execute(conn, _cursor, statement, _parameters, context, _executemany):
            total = time.time() - conn.info["query_start_time"].pop(-1)
            if total > SLOW_QUERY_THRESHOLD:
                logger.warning(f"🐌 Slow query ({total:.2f}s): {statement[:200]}...")

    return engine


try:
    engine = create_db_engine()
    logger.info("✅ Database engine created successfully")
except Exception as e:
    logger.error(f"❌ Failed to create database engine: {e}")
    raise

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session, integrity_message: str = "record conflicts with existing data"):
    """
    Run a read-modify-write as one unit.

    Commits on success and rolls back on any failure. Store-level failures are
    translated into the domain taxonomy:
      - StaleDataError (version check lost) -> ConcurrentModificationError
      - IntegrityError (unique slot index)   -> ConflictError
      - OperationalError / InterfaceError    -> DependencyError
    """
    try:
        yield db
        db.commit()
    except StaleDataError as e:
        db.rollback()
        logger.warning(f"⚠️ Lost optimistic race: {e}")
        raise ConcurrentModificationError("record was modified concurrently") from e
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"⚠️ Integrity conflict: {e.orig}")
        raise ConflictError(integrity_message) from e
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        logger.error(f"❌ Store unavailable: {e}")
        raise DependencyError("data store unavailable") from e
    except Exception:
        db.rollback()
        raise


@contextmanager
def store_access(db: Session):
    """Translate store outages on read paths into DependencyError"""
    try:
        yield db
    except (OperationalError, InterfaceError) as e:
        db.rollback()
        logger.error(f"❌ Store unavailable: {e}")
        raise DependencyError("data store unavailable") from e
