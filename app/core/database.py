"""PostgreSQL engine, session factory and the per-request session dependency."""

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)


def build_engine(app_settings: Settings) -> Engine:
    """Create the SQLAlchemy engine; no connection is opened until first use."""
    return create_engine(
        app_settings.DATABASE_URL,
        pool_pre_ping=True,
        echo=app_settings.DEBUG,
    )


engine = build_engine(settings)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """Dependency that yields one session per request and closes it when done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_connected(db: Session) -> bool:
    """Run a trivial query to verify the database is reachable."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning("Database health check failed: %s", e)
        return False
