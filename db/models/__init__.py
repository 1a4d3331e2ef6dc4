"""
SQLAlchemy models for the credential store.

All models inherit from db.engine.Base for Alembic migrations.
"""

from db.models.user import User
from db.models.auth import AuthSession
from db.models.oauth import OAuthAuthorizationCode, OAuthToken

__all__ = [
    # User
    "User",
    # Auth
    "AuthSession",
    # OAuth
    "OAuthAuthorizationCode",
    "OAuthToken",
]
