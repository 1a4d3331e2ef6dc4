"""User store interface."""

from __future__ import annotations

from typing import Protocol


class UserStore(Protocol):
    async def get_by_email(self, email: str) -> dict | None:
        ...

    async def get_by_id(self, user_id: str) -> dict | None:
        ...

    async def create_user(self, data: dict) -> dict:
        """Persist a user; raises UserExists when the email is taken."""
        ...

    async def record_failed_login(self, user_id: str, max_attempts: int, now: int) -> dict | None:
        """Atomically bump the failure counter and lock at ``max_attempts``.

        Returns the post-update ``failed_login_attempts`` and ``account_locked``.
        """
        ...

    async def reset_failed_logins(self, user_id: str, now: int) -> None:
        ...
