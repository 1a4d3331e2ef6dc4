"""OAuth authorization-code and access-token store interfaces."""

from __future__ import annotations

from typing import Protocol


class OAuthCodeStore(Protocol):
    async def save_code(self, record: dict) -> None:
        ...

    async def consume_code(
        self, code: str, client_id: str, redirect_uri: str, now: int
    ) -> dict | None:
        """Mark a matching, unexpired, unused code as used and return it.

        Only one caller can ever receive a given code.
        """
        ...


class OAuthTokenStore(Protocol):
    async def save_token(self, record: dict) -> None:
        ...

    async def get_token(self, access_token: str) -> dict | None:
        ...

    async def list_tokens(self, user_id: str) -> list[dict]:
        """Tokens of ``user_id``, newest first."""
        ...

    async def delete_token(self, user_id: str, access_token: str) -> bool:
        ...
