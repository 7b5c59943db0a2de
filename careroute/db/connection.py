"""
Database connection and session management for CareRoute.

Uses SQLAlchemy with SQLite for development and PostgreSQL for production.
"""
import logging
from contextlib import contextmanager
from typing import Generator, Optional, Tuple

from sqlalchemy import Column, DateTime, JSON, String, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from careroute.core.config import Config

logger = logging.getLogger(__name__)

# Create declarative base for ORM models
Base = declarative_base()


class RecordRow(Base):
    """One stored record: a JSON document addressed by (table, key)."""
    __tablename__ = "records"

    table_name = Column(String(64), primary_key=True)
    record_key = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime, nullable=True)


def init_db(database_url: Optional[str] = None) -> Tuple[Engine, sessionmaker]:
    """Create an engine and session factory, creating tables if needed."""
    db_url = database_url or Config.DATABASE_URL

    logger.info(f"Initializing database: {db_url}")

    # SQLite specific configuration
    if db_url.startswith("sqlite"):
        engine = create_engine(
            db_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=Config.DEBUG
        )

        # Enable foreign keys for SQLite
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        # PostgreSQL or other databases
        engine = create_engine(
            db_url,
            pool_pre_ping=True,
            echo=Config.DEBUG
        )

    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    # Create all tables
    Base.metadata.create_all(bind=engine)

    logger.info("Database initialized successfully")
    return engine, session_factory


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Transactional session: commit on success, roll back on error."""
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
