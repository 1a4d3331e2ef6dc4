"""
User model.

Holds credentials plus the brute-force lockout state. Time fields used by
the lockout policy are Unix seconds so the service owns the clock.
"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy.orm import relationship

from db.engine import Base


class User(Base):
    """
    User account for authentication.

    Never physically deleted here; account deletion belongs to the GDPR
    collaborator.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(Text, nullable=False)
    salt = Column(String(255), nullable=False)
    account_locked = Column(Boolean, nullable=False, default=False)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    last_login_attempt = Column(Integer, nullable=True)  # Unix timestamp
    created_at = Column(Integer, nullable=False)  # Unix timestamp
    updated_at = Column(Integer, nullable=False)  # Unix timestamp

    # Relationships
    auth_session = relationship(
        "AuthSession", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    oauth_tokens = relationship("OAuthToken", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"
