"""Core auth service: registration, login with lockout, rotating sessions."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from auth.config import AuthConfig
from auth.exceptions import (
    AccountLocked,
    InvalidCredentials,
    InvalidRefreshToken,
    MissingFields,
    MissingRefreshToken,
    Unauthorized,
    UserExists,
)
from auth.interfaces.oauth_store import OAuthTokenStore
from auth.interfaces.session_store import SessionStore
from auth.interfaces.user_store import UserStore
from auth.security import DEFAULT_SCOPES, PasswordHasher, TokenService, validate_password_strength

logger = logging.getLogger(__name__)


def is_account_locked(user: dict[str, Any], now: int, lockout_seconds: int) -> bool:
    """
    Lockout predicate.

    A lock only holds while the last attempt is inside the lockout window.
    The stored flag is left as is once the window passes; a successful
    login clears it.
    """
    if not user.get("account_locked"):
        return False
    last_attempt = user.get("last_login_attempt")
    if last_attempt is None:
        return True
    return now < int(last_attempt) + lockout_seconds


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": user["id"],
        "email": user["email"],
        "created_at": user.get("created_at"),
    }


class AuthService:
    def __init__(
        self,
        user_store: UserStore,
        session_store: SessionStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        config: AuthConfig,
        oauth_token_store: OAuthTokenStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._users = user_store
        self._sessions = session_store
        self._hasher = hasher
        self._tokens = tokens
        self._config = config
        self._oauth_tokens = oauth_token_store
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    async def register(self, email: str | None, password: str | None) -> dict[str, Any]:
        if not email or not password:
            raise MissingFields()

        email = email.strip().lower()
        if await self._users.get_by_email(email):
            logger.info("Registration rejected: email already registered")
            raise UserExists()
        validate_password_strength(password)

        password_hash, salt = await self._hasher.hash_async(password)
        user = await self._users.create_user(
            {
                "email": email,
                "password_hash": password_hash,
                "salt": salt,
                "created_at": self._now(),
            }
        )
        logger.info("User registered: user_id=%s", user["id"])
        return public_user(user)

    async def login(
        self,
        email: str | None,
        password: str | None,
        device_info: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if not email or not password:
            raise MissingFields()

        user = await self._users.get_by_email(email.strip().lower())
        if not user:
            raise InvalidCredentials()

        now = self._now()
        if is_account_locked(user, now, self._config.lockout_seconds):
            logger.warning("Login refused for locked account: user_id=%s", user["id"])
            raise AccountLocked()

        if not await self._hasher.verify_async(password, user["password_hash"]):
            state = await self._users.record_failed_login(
                user["id"], self._config.MAX_FAILED_LOGIN_ATTEMPTS, now
            )
            if state and state["account_locked"]:
                logger.warning(
                    "Account locked after %s failed attempts: user_id=%s",
                    state["failed_login_attempts"],
                    user["id"],
                )
            else:
                logger.info("Failed login: user_id=%s", user["id"])
            raise InvalidCredentials()

        await self._users.reset_failed_logins(user["id"], now)
        tokens = await self._issue_tokens(user, device_info)
        logger.info("Login succeeded: user_id=%s", user["id"])
        return tokens

    async def refresh(
        self, refresh_token: str | None, device_info: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        if not refresh_token:
            raise MissingRefreshToken()

        now = self._now()
        new_refresh = self._tokens.generate_refresh_token()
        user_id = await self._sessions.rotate_session(
            refresh_token,
            new_refresh,
            now + self._config.refresh_token_ttl,
            now,
            device_info,
        )
        if user_id is None:
            logger.warning("Refresh rejected: token unknown, reused or expired")
            raise InvalidRefreshToken()

        user = await self._users.get_by_id(user_id)
        if not user:
            await self._sessions.delete_session(new_refresh)
            raise InvalidRefreshToken()

        access_token, expires_in = self._tokens.create_access_token(user["id"], user["email"])
        return {
            "accessToken": access_token,
            "refreshToken": new_refresh,
            "expiresIn": expires_in,
        }

    async def logout(self, refresh_token: str | None) -> None:
        if not refresh_token:
            raise MissingRefreshToken()
        await self._sessions.delete_session(refresh_token)

    async def validate_access_token(self, token: str) -> dict[str, Any]:
        """Return ``{userId, email, scopes}`` for a valid session or OAuth access token."""
        payload = self._tokens.decode(token)
        token_type = payload.get("type")
        user_id = payload.get("userId")
        if not user_id or token_type not in {"access", "oauth"}:
            raise Unauthorized()

        principal: dict[str, Any] = {
            "userId": user_id,
            "email": payload.get("email"),
            "scopes": list(payload.get("scopes") or []),
        }
        if token_type == "oauth":
            if self._oauth_tokens is None or not await self._oauth_tokens.get_token(token):
                raise Unauthorized()
            principal["clientId"] = payload.get("clientId")
        return principal

    async def get_profile(self, user_id: str) -> dict[str, Any] | None:
        user = await self._users.get_by_id(user_id)
        return public_user(user) if user else None

    async def _issue_tokens(
        self, user: dict[str, Any], device_info: dict[str, Any] | None
    ) -> dict[str, Any]:
        access_token, expires_in = self._tokens.create_access_token(
            user["id"], user["email"], DEFAULT_SCOPES
        )
        refresh_token = self._tokens.generate_refresh_token()
        await self._sessions.upsert_session(
            user["id"],
            refresh_token,
            self._now() + self._config.refresh_token_ttl,
            device_info,
        )
        return {
            "accessToken": access_token,
            "refreshToken": refresh_token,
            "expiresIn": expires_in,
        }
