"""Database access."""

from invoice_delivery.db.database import (
    Base,
    create_db_engine,
    create_session_factory,
    init_db,
    utcnow,
)

__all__ = ["Base", "create_db_engine", "create_session_factory", "init_db", "utcnow"]
