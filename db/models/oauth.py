"""
OAuth models.

OAuthAuthorizationCode: short-lived, single-use consent codes
OAuthToken: long-lived access tokens granted to registered clients
"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from db.engine import Base


class OAuthAuthorizationCode(Base):
    """Authorization code bound to the client and redirect URI it was issued for."""
    __tablename__ = "oauth_codes"

    code = Column(String(128), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(String(255), nullable=False)
    redirect_uri = Column(Text, nullable=False)
    scope = Column(Text, nullable=False)  # space-delimited
    state = Column(Text, nullable=True)
    created_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False, index=True)
    used_at = Column(Integer, nullable=True)

    def __repr__(self):
        return f"<OAuthAuthorizationCode(code={self.code[:8]}..., client_id={self.client_id})>"


class OAuthToken(Base):
    """Access token held by an external client on behalf of a user."""
    __tablename__ = "oauth_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_id = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=False, unique=True)
    scopes = Column(Text, nullable=False)  # space-delimited
    created_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False)

    user = relationship("User", back_populates="oauth_tokens")

    def __repr__(self):
        return f"<OAuthToken(user_id={self.user_id}, client_id={self.client_id})>"
