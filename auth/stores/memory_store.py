"""In-memory auth stores.

Each operation runs under the store's lock, which gives the same
all-or-nothing behavior the SQL stores get from single statements.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any
from uuid import uuid4

from auth.exceptions import UserExists


class MemoryUserStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users_by_email: dict[str, dict[str, Any]] = {}
        self._users_by_id: dict[str, dict[str, Any]] = {}

    async def get_by_email(self, email: str) -> dict | None:
        async with self._lock:
            user = self._users_by_email.get(email.lower())
            return dict(user) if user else None

    async def get_by_id(self, user_id: str) -> dict | None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            return dict(user) if user else None

    async def create_user(self, data: dict) -> dict:
        async with self._lock:
            email = data["email"].lower()
            if email in self._users_by_email:
                raise UserExists()
            now = int(time.time())
            payload = {
                "id": str(uuid4()),
                "email": email,
                "password_hash": data["password_hash"],
                "salt": data["salt"],
                "account_locked": False,
                "failed_login_attempts": 0,
                "last_login_attempt": None,
                "created_at": data.get("created_at", now),
                "updated_at": data.get("created_at", now),
            }
            self._users_by_email[email] = payload
            self._users_by_id[payload["id"]] = payload
            return dict(payload)

    async def record_failed_login(self, user_id: str, max_attempts: int, now: int) -> dict | None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            if not user:
                return None
            user["failed_login_attempts"] += 1
            user["last_login_attempt"] = now
            if user["failed_login_attempts"] >= max_attempts:
                user["account_locked"] = True
            user["updated_at"] = now
            return {
                "failed_login_attempts": user["failed_login_attempts"],
                "account_locked": user["account_locked"],
            }

    async def reset_failed_logins(self, user_id: str, now: int) -> None:
        async with self._lock:
            user = self._users_by_id.get(user_id)
            if user:
                user["failed_login_attempts"] = 0
                user["account_locked"] = False
                user["last_login_attempt"] = now
                user["updated_at"] = now


class MemorySessionStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._by_user: dict[str, dict[str, Any]] = {}
        self._by_token: dict[str, str] = {}

    async def upsert_session(
        self, user_id: str, refresh_token: str, expires_at: int, device_info: dict | None
    ) -> None:
        async with self._lock:
            previous = self._by_user.get(user_id)
            if previous:
                self._by_token.pop(previous["refresh_token"], None)
            now = int(time.time())
            self._by_user[user_id] = {
                "user_id": user_id,
                "refresh_token": refresh_token,
                "expires_at": expires_at,
                "device_info": device_info or {},
                "created_at": previous["created_at"] if previous else now,
                "updated_at": now,
            }
            self._by_token[refresh_token] = user_id

    async def rotate_session(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        expires_at: int,
        now: int,
        device_info: dict | None,
    ) -> str | None:
        async with self._lock:
            user_id = self._by_token.get(old_refresh_token)
            if user_id is None:
                return None
            session = self._by_user[user_id]
            if session["expires_at"] <= now:
                return None
            del self._by_token[old_refresh_token]
            session["refresh_token"] = new_refresh_token
            session["expires_at"] = expires_at
            session["updated_at"] = now
            if device_info:
                session["device_info"] = device_info
            self._by_token[new_refresh_token] = user_id
            return user_id

    async def delete_session(self, refresh_token: str) -> None:
        async with self._lock:
            user_id = self._by_token.pop(refresh_token, None)
            if user_id is not None:
                self._by_user.pop(user_id, None)


class MemoryOAuthCodeStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._codes: dict[str, dict[str, Any]] = {}

    async def save_code(self, record: dict) -> None:
        async with self._lock:
            payload = dict(record)
            payload.setdefault("used_at", None)
            self._codes[payload["code"]] = payload

    async def consume_code(
        self, code: str, client_id: str, redirect_uri: str, now: int
    ) -> dict | None:
        async with self._lock:
            record = self._codes.get(code)
            if (
                not record
                or record["client_id"] != client_id
                or record["redirect_uri"] != redirect_uri
                or record["expires_at"] <= now
                or record["used_at"] is not None
            ):
                return None
            record["used_at"] = now
            return dict(record)


class MemoryOAuthTokenStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._tokens: dict[str, dict[str, Any]] = {}

    async def save_token(self, record: dict) -> None:
        async with self._lock:
            self._tokens[record["access_token"]] = dict(record)

    async def get_token(self, access_token: str) -> dict | None:
        async with self._lock:
            record = self._tokens.get(access_token)
            return dict(record) if record else None

    async def list_tokens(self, user_id: str) -> list[dict]:
        async with self._lock:
            tokens = [dict(t) for t in self._tokens.values() if t["user_id"] == user_id]
        return sorted(tokens, key=lambda t: t["created_at"], reverse=True)

    async def delete_token(self, user_id: str, access_token: str) -> bool:
        async with self._lock:
            record = self._tokens.get(access_token)
            if not record or record["user_id"] != user_id:
                return False
            del self._tokens[access_token]
            return True


class MemoryCounterStore:
    """Fixed-window counters with TTL, for single-process deployments and tests."""

    def __init__(self, clock=time.time) -> None:
        self._lock = asyncio.Lock()
        self._clock = clock
        self._counters: dict[str, tuple[int, float]] = {}

    async def incr(self, key: str, ttl_seconds: int) -> int:
        now = self._clock()
        async with self._lock:
            count, expires_at = self._counters.get(key, (0, 0.0))
            if expires_at <= now:
                count, expires_at = 0, now + ttl_seconds
            count += 1
            self._counters[key] = (count, expires_at)
            if len(self._counters) > 10_000:
                self._purge(now)
            return count

    def _purge(self, now: float) -> None:
        self._counters = {k: v for k, v in self._counters.items() if v[1] > now}
