"""Auth dependency helpers."""

from __future__ import annotations

from typing import Any

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.container import AuthContainer
from auth.exceptions import AuthException, InsufficientPermissions, Unauthorized
from auth.services.auth_service import AuthService
from auth.services.oauth_server import OAuthAuthorizationServer
from auth.services.rate_limiter import RateLimiter, RateLimitRule

_bearer = HTTPBearer(auto_error=False)


def get_container(request: Request) -> AuthContainer:
    return request.app.state.container


def get_auth_service(container: AuthContainer = Depends(get_container)) -> AuthService:
    return container.auth_service


def get_oauth_server(container: AuthContainer = Depends(get_container)) -> OAuthAuthorizationServer:
    return container.oauth_server


def get_rate_limiter(container: AuthContainer = Depends(get_container)) -> RateLimiter:
    return container.rate_limiter


def client_ip(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return "unknown"


def device_info(request: Request) -> dict[str, Any]:
    return {
        "userAgent": request.headers.get("user-agent"),
        "ipAddress": client_ip(request),
    }


async def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict[str, Any]:
    """Require a valid bearer token and return ``{userId, email, scopes}``."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Authentication required")
    return await _resolve_principal(request, credentials.credentials, auth_service)


async def get_optional_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    auth_service: AuthService = Depends(get_auth_service),
) -> dict[str, Any] | None:
    if credentials is None or not credentials.credentials:
        return None
    try:
        return await _resolve_principal(request, credentials.credentials, auth_service)
    except AuthException:
        return None


async def _resolve_principal(request: Request, token: str, auth_service: AuthService) -> dict[str, Any]:
    # A token is validated at most once per request
    principal = getattr(request.state, "principal", None)
    if principal is None:
        principal = await auth_service.validate_access_token(token)
        request.state.principal = principal
    return principal


def require_scopes(*required: str):
    """Dependency factory: the principal must hold every scope in ``required``."""

    async def dependency(principal: dict[str, Any] = Depends(get_current_principal)) -> dict[str, Any]:
        provided = principal.get("scopes") or []
        if not all(scope in provided for scope in required):
            raise InsufficientPermissions(
                data={"required": list(required), "provided": list(provided)}
            )
        return principal

    return dependency


async def _enforce(request: Request, limiter: RateLimiter, scope: str, identity: str, rule: RateLimitRule) -> None:
    decision = await limiter.hit_rule(scope, identity, rule)
    if decision is not None:
        # Copied onto the response by the request-context middleware.
        request.state.rate_limit_headers = decision.headers()


def ip_rate_limit(rule_name: str = "global_ip"):
    async def dependency(request: Request, container: AuthContainer = Depends(get_container)) -> None:
        rule = getattr(container.rate_limits, rule_name)
        await _enforce(request, container.rate_limiter, "ip", client_ip(request), rule)

    return dependency


def user_rate_limit(rule_name: str = "user"):
    """Per-user limit; anonymous callers are counted by IP under their own scope."""

    async def dependency(
        request: Request,
        container: AuthContainer = Depends(get_container),
        principal: dict[str, Any] | None = Depends(get_optional_principal),
    ) -> None:
        rule = getattr(container.rate_limits, rule_name)
        if principal:
            scope, identity = "user", principal["userId"]
        else:
            scope, identity = "user-ip", client_ip(request)
        await _enforce(request, container.rate_limiter, scope, identity, rule)

    return dependency


def endpoint_rate_limit(endpoint: str, rule_name: str):
    async def dependency(request: Request, container: AuthContainer = Depends(get_container)) -> None:
        rule = getattr(container.rate_limits, rule_name)
        await _enforce(
            request, container.rate_limiter, f"endpoint:{endpoint}", client_ip(request), rule
        )

    return dependency


def auth_rate_limit(rule_name: str = "auth"):
    """Strict per-IP limit on credential endpoints; every attempt counts."""

    async def dependency(request: Request, container: AuthContainer = Depends(get_container)) -> None:
        rule = getattr(container.rate_limits, rule_name)
        await _enforce(request, container.rate_limiter, "auth", client_ip(request), rule)

    return dependency


def oauth_rate_limit(rule_name: str = "oauth"):
    async def dependency(request: Request, container: AuthContainer = Depends(get_container)) -> None:
        rule = getattr(container.rate_limits, rule_name)
        await _enforce(request, container.rate_limiter, "oauth", client_ip(request), rule)

    return dependency
