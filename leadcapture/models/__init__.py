# leadcapture/models/__init__.py
"""
SQLAlchemy ORM models.
"""

from leadcapture.models.lead import Lead

__all__ = ["Lead"]
