"""OAuth2 authorization-code server for registered AI-assistant clients."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from auth.clients import SCOPE_DESCRIPTIONS, OAuthClient, OAuthClientRegistry
from auth.config import AuthConfig
from auth.exceptions import OAuthError, TokenNotFound
from auth.interfaces.oauth_store import OAuthCodeStore, OAuthTokenStore
from auth.security import TokenService

logger = logging.getLogger(__name__)

FALLBACK_SCOPE = "files:read"


@dataclass(frozen=True)
class ConsentRequest:
    """A validated authorization request waiting for the user's decision."""

    client: OAuthClient
    redirect_uri: str
    scopes: list[str]
    state: str | None = None

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    @property
    def scope_details(self) -> list[dict[str, str]]:
        return [
            {"name": name, "description": SCOPE_DESCRIPTIONS.get(name, name)}
            for name in self.scopes
        ]


def filter_scopes(requested: str | None, allowed) -> list[str]:
    """Keep requested scopes the client may have, in request order, without duplicates."""
    granted: list[str] = []
    for name in (requested or "").split():
        if name in allowed and name not in granted:
            granted.append(name)
    return granted or [FALLBACK_SCOPE]


def append_query(url: str, params: dict[str, str | None]) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in params]
    query.extend((k, v) for k, v in params.items() if v is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))


class OAuthAuthorizationServer:
    def __init__(
        self,
        clients: OAuthClientRegistry,
        code_store: OAuthCodeStore,
        token_store: OAuthTokenStore,
        tokens: TokenService,
        config: AuthConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._clients = clients
        self._codes = code_store
        self._token_store = token_store
        self._tokens = tokens
        self._config = config
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _resolve_client(self, client_id: str | None, redirect_uri: str | None) -> OAuthClient:
        if not client_id or not redirect_uri:
            raise OAuthError("invalid_request", "Missing required parameters")
        client = self._clients.get(client_id)
        if client is None:
            raise OAuthError("invalid_client", "Unknown client_id")
        if not client.allows_redirect(redirect_uri):
            raise OAuthError("invalid_request", "Invalid redirect_uri")
        return client

    def authorize(
        self,
        client_id: str | None,
        redirect_uri: str | None,
        scope: str | None,
        state: str | None,
        response_type: str | None,
    ) -> ConsentRequest:
        if not client_id or not redirect_uri or not response_type:
            raise OAuthError("invalid_request", "Missing required parameters")
        client = self._resolve_client(client_id, redirect_uri)
        if response_type != "code":
            raise OAuthError(
                "unsupported_response_type", "Only authorization code flow is supported"
            )
        return ConsentRequest(
            client=client,
            redirect_uri=redirect_uri,
            scopes=filter_scopes(scope, client.allowed_scopes),
            state=state or None,
        )

    async def complete_authorization(
        self,
        client_id: str | None,
        redirect_uri: str | None,
        scope: str | None,
        state: str | None,
        action: str | None,
        user_id: str,
    ) -> str:
        """Record the user's decision and return the URL to redirect the browser to."""
        client = self._resolve_client(client_id, redirect_uri)
        state = state or None

        if action == "deny":
            logger.info("Authorization denied: client_id=%s user_id=%s", client.client_id, user_id)
            return append_query(
                redirect_uri,
                {
                    "error": "access_denied",
                    "error_description": "User denied authorization",
                    "state": state,
                },
            )
        if action != "approve":
            raise OAuthError("invalid_request", "Invalid action")

        now = self._now()
        code = self._tokens.generate_authorization_code()
        granted = filter_scopes(scope, client.allowed_scopes)
        await self._codes.save_code(
            {
                "code": code,
                "user_id": user_id,
                "client_id": client.client_id,
                "redirect_uri": redirect_uri,
                "scope": " ".join(granted),
                "state": state,
                "created_at": now,
                "expires_at": now + self._config.oauth_code_ttl,
            }
        )
        logger.info("Authorization code issued: client_id=%s user_id=%s", client.client_id, user_id)
        return append_query(redirect_uri, {"code": code, "state": state})

    async def exchange_token(
        self,
        grant_type: str | None,
        code: str | None,
        redirect_uri: str | None,
        client_id: str | None,
    ) -> dict[str, Any]:
        if grant_type != "authorization_code":
            raise OAuthError(
                "unsupported_grant_type", "Only authorization_code grant type is supported"
            )
        if not code or not redirect_uri or not client_id:
            raise OAuthError("invalid_grant", "Invalid or expired authorization code")

        record = await self._codes.consume_code(code, client_id, redirect_uri, self._now())
        if record is None:
            logger.warning("Code exchange rejected: client_id=%s", client_id)
            raise OAuthError("invalid_grant", "Invalid or expired authorization code")

        scopes = record["scope"].split()
        access_token, issued_at, expires_at = self._tokens.create_oauth_access_token(
            record["user_id"], record["client_id"], scopes
        )
        await self._token_store.save_token(
            {
                "user_id": record["user_id"],
                "client_id": record["client_id"],
                "access_token": access_token,
                "scope": record["scope"],
                "created_at": issued_at,
                "expires_at": expires_at,
            }
        )
        logger.info(
            "Access token granted: client_id=%s user_id=%s", record["client_id"], record["user_id"]
        )
        return {
            "access_token": access_token,
            "token_type": "Bearer",
            "expires_in": expires_at - issued_at,
            "scope": record["scope"],
        }

    async def list_tokens(self, user_id: str) -> list[dict[str, Any]]:
        now = self._now()
        return [
            {
                "client_id": token["client_id"],
                "access_token": token["access_token"],
                "scope": token["scope"],
                "created_at": token["created_at"],
                "expires_at": token["expires_at"],
                "is_expired": token["expires_at"] <= now,
            }
            for token in await self._token_store.list_tokens(user_id)
        ]

    async def revoke_token(self, user_id: str, access_token: str) -> None:
        if not await self._token_store.delete_token(user_id, access_token):
            raise TokenNotFound()
        logger.info("Access token revoked: user_id=%s", user_id)
