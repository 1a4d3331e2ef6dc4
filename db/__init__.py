"""
Database module for the trust core.

Provides SQLAlchemy models and the async engine manager backing the
credential store.
"""

from db.engine import Base, DatabaseManager

__all__ = ["Base", "DatabaseManager"]
