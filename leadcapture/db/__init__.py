# leadcapture/db/__init__.py
"""
Database package for SQLAlchemy setup, session management, and base models.
"""

from leadcapture.db.base import Base
from leadcapture.db.session import (
    create_database_engine,
    create_schema,
    create_session_factory,
    session_scope,
)

__all__ = [
    "Base",
    "create_database_engine",
    "create_schema",
    "create_session_factory",
    "session_scope",
]
