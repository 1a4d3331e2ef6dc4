"""
Auth models for refresh-token sessions.

AuthSession: one refresh session per user, replaced on every login/refresh
"""

from sqlalchemy import JSON, Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from db.engine import Base


class AuthSession(Base):
    """
    Refresh session of a user.

    ``user_id`` is unique, so issuing tokens is an upsert by user and the
    previous refresh token stops working.
    """
    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    refresh_token = Column(String(255), nullable=False, unique=True, index=True)
    expires_at = Column(Integer, nullable=False)  # Unix timestamp
    device_info = Column(JSON, nullable=True)
    created_at = Column(Integer, nullable=False)
    updated_at = Column(Integer, nullable=False)

    # Relationship
    user = relationship("User", back_populates="auth_session")

    def __repr__(self):
        return f"<AuthSession(user_id={self.user_id})>"
