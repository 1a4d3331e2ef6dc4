"""Session store interface for refresh tokens."""

from __future__ import annotations

from typing import Protocol


class SessionStore(Protocol):
    async def upsert_session(
        self, user_id: str, refresh_token: str, expires_at: int, device_info: dict | None
    ) -> None:
        """Create or replace the single session row of ``user_id``."""
        ...

    async def rotate_session(
        self,
        old_refresh_token: str,
        new_refresh_token: str,
        expires_at: int,
        now: int,
        device_info: dict | None,
    ) -> str | None:
        """Swap a live refresh token for a new one; returns the owning user id."""
        ...

    async def delete_session(self, refresh_token: str) -> None:
        ...
