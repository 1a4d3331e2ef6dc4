"""Security utilities for auth."""

from __future__ import annotations

import asyncio
import re
import secrets
import time
from typing import Any
from uuid import uuid4

import bcrypt
from jose import JWTError, jwt

from auth.config import AuthConfig
from auth.exceptions import Unauthorized, WeakPassword

DEFAULT_SCOPES = ["files:read", "files:write", "files:delete"]

_SPECIAL_CHARS = re.compile(r'[!@#$%^&*(),.?":{}|<>]')

# bcrypt only reads the first 72 bytes and newer releases reject longer input
MAX_PASSWORD_BYTES = 72


def validate_password_strength(password: str) -> None:
    """Raise WeakPassword unless the password meets the complexity policy."""
    if len(password) < 8:
        raise WeakPassword("Password must be at least 8 characters long")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise WeakPassword(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long")
    if not (
        re.search(r"[A-Z]", password)
        and re.search(r"[a-z]", password)
        and re.search(r"\d", password)
        and _SPECIAL_CHARS.search(password)
    ):
        raise WeakPassword()


class PasswordHasher:
    """bcrypt hashing with a per-user salt, run off the event loop."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> tuple[str, str]:
        salt = bcrypt.gensalt(rounds=self._rounds)
        hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
        return hashed.decode("utf-8"), salt.decode("utf-8")

    def verify(self, password: str, hashed_password: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))
        except ValueError:
            return False

    async def hash_async(self, password: str) -> tuple[str, str]:
        return await asyncio.to_thread(self.hash, password)

    async def verify_async(self, password: str, hashed_password: str) -> bool:
        return await asyncio.to_thread(self.verify, password, hashed_password)


class TokenService:
    """Signs and verifies JWTs and mints opaque tokens."""

    def __init__(self, config: AuthConfig, clock=time.time) -> None:
        self._config = config
        self._clock = clock

    def create_access_token(self, user_id: str, email: str, scopes: list[str] | None = None) -> tuple[str, int]:
        """Return a session access token and its lifetime in seconds."""
        ttl = self._config.access_token_ttl
        payload = {
            "userId": user_id,
            "email": email,
            "scopes": list(scopes or DEFAULT_SCOPES),
            "type": "access",
        }
        return self._encode(payload, ttl), ttl

    def create_oauth_access_token(self, user_id: str, client_id: str, scopes: list[str]) -> tuple[str, int, int]:
        """Return a long-lived client token, its issue time and its expiry (Unix seconds)."""
        now = int(self._clock())
        ttl = self._config.oauth_token_ttl
        payload = {
            "userId": user_id,
            "clientId": client_id,
            "scopes": list(scopes),
            "type": "oauth",
        }
        return self._encode(payload, ttl, issued_at=now), now, now + ttl

    def decode(self, token: str) -> dict[str, Any]:
        try:
            payload = jwt.decode(
                token,
                self._config.JWT_SECRET,
                algorithms=[self._config.JWT_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise Unauthorized() from exc
        # Expiry is checked against our own clock so it can be controlled in tests.
        if int(payload.get("exp", 0)) <= int(self._clock()):
            raise Unauthorized()
        return payload

    @staticmethod
    def generate_refresh_token() -> str:
        return secrets.token_hex(64)

    @staticmethod
    def generate_authorization_code() -> str:
        return secrets.token_hex(32)

    def _encode(self, payload: dict[str, Any], ttl: int, issued_at: int | None = None) -> str:
        now = issued_at if issued_at is not None else int(self._clock())
        claims = dict(payload)
        claims.update({"iat": now, "exp": now + ttl, "jti": uuid4().hex})
        return jwt.encode(claims, self._config.JWT_SECRET, algorithm=self._config.JWT_ALGORITHM)
