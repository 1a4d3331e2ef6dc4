"""OAuth2 authorization-code routes and token management."""

from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Form, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from auth.dependencies import (
    endpoint_rate_limit,
    get_current_principal,
    get_oauth_server,
    get_optional_principal,
    oauth_rate_limit,
    user_rate_limit,
)
from auth.exceptions import OAuthError
from auth.schemas import AccessTokenResponse, MessageResponse, TokenExchangeRequest, TokenListResponse
from auth.services.oauth_server import OAuthAuthorizationServer

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))

router = APIRouter(dependencies=[Depends(oauth_rate_limit())])


@router.get(
    "/authorize",
    response_class=HTMLResponse,
    dependencies=[Depends(endpoint_rate_limit("oauth/authorize", "oauth_authorize"))],
)
async def authorize(
    request: Request,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    response_type: str | None = None,
    principal: dict | None = Depends(get_optional_principal),
    oauth_server: OAuthAuthorizationServer = Depends(get_oauth_server),
):
    consent = oauth_server.authorize(client_id, redirect_uri, scope, state, response_type)
    return templates.TemplateResponse(
        request,
        "consent.html",
        {
            "client": consent.client,
            "redirect_uri": consent.redirect_uri,
            "scope": consent.scope,
            "scope_details": consent.scope_details,
            "state": consent.state,
            "signed_in": principal is not None,
            "action_url": request.url.path,
        },
    )


@router.post(
    "/authorize",
    dependencies=[Depends(endpoint_rate_limit("oauth/authorize_submit", "oauth_authorize_submit"))],
)
async def authorize_decision(
    client_id: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    scope: str | None = Form(None),
    state: str | None = Form(None),
    action: str | None = Form(None),
    principal: dict = Depends(get_current_principal),
    oauth_server: OAuthAuthorizationServer = Depends(get_oauth_server),
) -> RedirectResponse:
    location = await oauth_server.complete_authorization(
        client_id, redirect_uri, scope, state, action, principal["userId"]
    )
    return RedirectResponse(location, status_code=status.HTTP_302_FOUND)


async def _token_request(request: Request) -> TokenExchangeRequest:
    """Token requests arrive form-encoded per RFC 6749, JSON is accepted too."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            body = await request.json()
            if not isinstance(body, dict):
                raise OAuthError("invalid_request", "Malformed request body")
        else:
            body = dict(await request.form())
        return TokenExchangeRequest.model_validate(body)
    except (ValueError, ValidationError) as exc:
        raise OAuthError("invalid_request", "Malformed request body") from exc


@router.post(
    "/token",
    response_model=AccessTokenResponse,
    dependencies=[Depends(endpoint_rate_limit("oauth/token", "oauth_token"))],
)
async def token(
    payload: TokenExchangeRequest = Depends(_token_request),
    oauth_server: OAuthAuthorizationServer = Depends(get_oauth_server),
) -> AccessTokenResponse:
    result = await oauth_server.exchange_token(
        payload.grant_type, payload.code, payload.redirect_uri, payload.client_id
    )
    return AccessTokenResponse(**result)


@router.get("/tokens", response_model=TokenListResponse, dependencies=[Depends(user_rate_limit())])
async def list_tokens(
    principal: dict = Depends(get_current_principal),
    oauth_server: OAuthAuthorizationServer = Depends(get_oauth_server),
) -> TokenListResponse:
    return TokenListResponse(tokens=await oauth_server.list_tokens(principal["userId"]))


@router.delete(
    "/tokens/{access_token}",
    response_model=MessageResponse,
    dependencies=[Depends(user_rate_limit())],
)
async def revoke_token(
    access_token: str,
    principal: dict = Depends(get_current_principal),
    oauth_server: OAuthAuthorizationServer = Depends(get_oauth_server),
) -> MessageResponse:
    await oauth_server.revoke_token(principal["userId"], access_token)
    return MessageResponse(message="Token revoked successfully")
