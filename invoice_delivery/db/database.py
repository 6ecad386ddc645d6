"""SQLAlchemy engine and session factory."""

from datetime import UTC, datetime

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from invoice_delivery.config import settings
from invoice_delivery.utils.logger import logger


class Base(DeclarativeBase):
    """Declarative base for all tables."""


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(UTC).replace(tzinfo=None)


def create_db_engine(database_url: str | None = None) -> Engine:
    """Create an engine; SQLite connections may be shared across worker threads."""
    url = database_url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, future=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    # Import for side effect: registers the mappings on Base.metadata
    from invoice_delivery.db import tables  # noqa: F401

    Base.metadata.create_all(engine)
    logger.info(f"Database schema ready at {engine.url.render_as_string(hide_password=True)}")
