"""SQL auth stores using async SQLAlchemy.

Races between concurrent requests are settled by single statements:
counter bumps and code consumption are ``UPDATE ... RETURNING`` and session
replacement is ``INSERT ... ON CONFLICT (user_id) DO UPDATE``.
"""

from __future__ import annotations

import time
from typing import Any

from sqlalchemy import case, delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from auth.exceptions import UserExists
from db.engine import DatabaseManager
from db.models.auth import AuthSession
from db.models.oauth import OAuthAuthorizationCode, OAuthToken
from db.models.user import User


def _user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "password_hash": user.password_hash,
        "salt": user.salt,
        "account_locked": bool(user.account_locked),
        "failed_login_attempts": user.failed_login_attempts or 0,
        "last_login_attempt": user.last_login_attempt,
        "created_at": user.created_at,
        "updated_at": user.updated_at,
    }


class SqlStoreBase:
    def __init__(self, database: DatabaseManager) -> None:
        self._db = database

    def _insert(self, model):
        if self._db.dialect_name == "postgresql":
            return pg_insert(model)
        return sqlite_insert(model)


class SqlUserStore(SqlStoreBase):
    """User store backed by the relational database."""

    async def get_by_email(self, email: str) -> dict | None:
        async with self._db.session() as db:
            user = (
                await db.execute(select(User).where(User.email == email.lower()))
            ).scalar_one_or_none()
            return _user_to_dict(user) if user else None

    async def get_by_id(self, user_id: str) -> dict | None:
        async with self._db.session() as db:
            user = await db.get(User, user_id)
            return _user_to_dict(user) if user else None

    async def create_user(self, data: dict) -> dict:
        now = data.get("created_at", int(time.time()))
        user = User(
            email=data["email"].lower(),
            password_hash=data["password_hash"],
            salt=data["salt"],
            account_locked=False,
            failed_login_attempts=0,
            created_at=now,
            updated_at=now,
        )
        try:
            async with self._db.session() as db:
                db.add(user)
                await db.flush()
                return _user_to_dict(user)
        except IntegrityError as exc:
            raise UserExists() from exc

    async def record_failed_login(self, user_id: str, max_attempts: int, now: int) -> dict | None:
        attempts = User.failed_login_attempts + 1
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=attempts,
                account_locked=case((attempts >= max_attempts, True), else_=User.account_locked),
                last_login_attempt=now,
                updated_at=now,
            )
            .returning(User.failed_login_attempts, User.account_locked)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as db:
            row = (await db.execute(stmt)).one_or_none()
        if row is None:
            return None
        return {"failed_login_attempts": row[0], "account_locked": bool(row[1])}

    async def reset_failed_logins(self, user_id: str, now: int) -> None:
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=0,
                account_locked=False,
                last_login_attempt=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as db:
            await db.execute(stmt)


class SqlSessionStore(SqlStoreBase):
    """Refresh-session store backed by the relational database."""

    async def upsert_session(
        self, user_id: str, refresh_token: str, expires_at: int, device_info: dict | None
    ) -> None:
        now = int(time.time())
        stmt = self._insert(AuthSession).values(
            user_id=user_id,
            refresh_token=refresh_token,
            expires_at=expires_at,
            device_info=device_info or {},
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[AuthSession.user_id],
            set_={
                "refresh_token": stmt.excluded.refresh_token,
                "expires_at": stmt.excluded.expires_at,
                "device_info": stmt.excluded.device_info,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        async with self._db.session() as db:
            await db.execute(stmt)

    async def rotate_session(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        expires_at: int,
        now: int,
        device_info: dict | None,
    ) -> str | None:
        values: dict[str, Any] = {
            "refresh_token": new_refresh_token,
            "expires_at": expires_at,
            "updated_at": now,
        }
        if device_info:
            values["device_info"] = device_info
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.refresh_token == old_refresh_token,
                AuthSession.expires_at > now,
            )
            .values(**values)
            .returning(AuthSession.user_id)
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as db:
            return (await db.execute(stmt)).scalar_one_or_none()

    async def delete_session(self, refresh_token: str) -> None:
        async with self._db.session() as db:
            await db.execute(delete(AuthSession).where(AuthSession.refresh_token == refresh_token))


class SqlOAuthCodeStore(SqlStoreBase):
    """Authorization-code store backed by the relational database."""

    async def save_code(self, record: dict) -> None:
        async with self._db.session() as db:
            db.add(
                OAuthAuthorizationCode(
                    code=record["code"],
                    user_id=record["user_id"],
                    client_id=record["client_id"],
                    redirect_uri=record["redirect_uri"],
                    scope=record["scope"],
                    state=record.get("state"),
                    created_at=record["created_at"],
                    expires_at=record["expires_at"],
                    used_at=None,
                )
            )

    async def consume_code(
        self, code: str, client_id: str, redirect_uri: str, now: int
    ) -> dict | None:
        stmt = (
            update(OAuthAuthorizationCode)
            .where(
                OAuthAuthorizationCode.code == code,
                OAuthAuthorizationCode.client_id == client_id,
                OAuthAuthorizationCode.redirect_uri == redirect_uri,
                OAuthAuthorizationCode.expires_at > now,
                OAuthAuthorizationCode.used_at.is_(None),
            )
            .values(used_at=now)
            .returning(
                OAuthAuthorizationCode.code,
                OAuthAuthorizationCode.user_id,
                OAuthAuthorizationCode.client_id,
                OAuthAuthorizationCode.redirect_uri,
                OAuthAuthorizationCode.scope,
                OAuthAuthorizationCode.state,
                OAuthAuthorizationCode.created_at,
                OAuthAuthorizationCode.expires_at,
                OAuthAuthorizationCode.used_at,
            )
            .execution_options(synchronize_session=False)
        )
        async with self._db.session() as db:
            row = (await db.execute(stmt)).mappings().one_or_none()
        return dict(row) if row else None


class SqlOAuthTokenStore(SqlStoreBase):
    """OAuth access-token store backed by the relational database."""

    @staticmethod
    def _to_dict(token: OAuthToken) -> dict[str, Any]:
        return {
            "user_id": token.user_id,
            "client_id": token.client_id,
            "access_token": token.access_token,
            "scope": token.scopes,
            "created_at": token.created_at,
            "expires_at": token.expires_at,
        }

    async def save_token(self, record: dict) -> None:
        async with self._db.session() as db:
            db.add(
                OAuthToken(
                    user_id=record["user_id"],
                    client_id=record["client_id"],
                    access_token=record["access_token"],
                    scopes=record["scope"],
                    created_at=record["created_at"],
                    expires_at=record["expires_at"],
                )
            )

    async def get_token(self, access_token: str) -> dict | None:
        async with self._db.session() as db:
            token = (
                await db.execute(select(OAuthToken).where(OAuthToken.access_token == access_token))
            ).scalar_one_or_none()
            return self._to_dict(token) if token else None

    async def list_tokens(self, user_id: str) -> list[dict]:
        async with self._db.session() as db:
            tokens = (
                await db.execute(
                    select(OAuthToken)
                    .where(OAuthToken.user_id == user_id)
                    .order_by(OAuthToken.created_at.desc(), OAuthToken.id.desc())
                )
            ).scalars().all()
            return [self._to_dict(token) for token in tokens]

    async def delete_token(self, user_id: str, access_token: str) -> bool:
        async with self._db.session() as db:
            result = await db.execute(
                delete(OAuthToken).where(
                    OAuthToken.access_token == access_token,
                    OAuthToken.user_id == user_id,
                )
            )
            return result.rowcount > 0
