"""Auth API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status

from auth.dependencies import (
    auth_rate_limit,
    device_info,
    endpoint_rate_limit,
    get_auth_service,
    get_current_principal,
)
from auth.exceptions import AuthException, LogoutFailed, Unauthorized
from auth.schemas import (
    LoginRequest,
    MessageResponse,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    TokenPairResponse,
)
from auth.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(auth_rate_limit())],
)
async def register(
    payload: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> RegisterResponse:
    user = await auth_service.register(payload.email, payload.password)
    return RegisterResponse(
        message="User created successfully",
        user={"id": user["id"], "email": user["email"], "createdAt": user["created_at"]},
    )


@router.post(
    "/login",
    response_model=TokenPairResponse,
    dependencies=[Depends(auth_rate_limit())],
)
async def login(
    payload: LoginRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    tokens = await auth_service.login(payload.email, payload.password, device_info(request))
    return TokenPairResponse(message="Login successful", **tokens)


@router.post(
    "/refresh",
    response_model=TokenPairResponse,
    dependencies=[Depends(endpoint_rate_limit("auth/refresh", "refresh"))],
)
async def refresh(
    payload: RefreshRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> TokenPairResponse:
    tokens = await auth_service.refresh(payload.refresh_token, device_info(request))
    return TokenPairResponse(message="Tokens refreshed successfully", **tokens)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    payload: RefreshRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    try:
        await auth_service.logout(payload.refresh_token)
    except AuthException:
        raise
    except Exception as exc:
        logger.error("Logout failed: %s", exc)
        raise LogoutFailed() from exc
    return MessageResponse(message="Logout successful")


@router.get("/profile", response_model=ProfileResponse)
async def profile(
    principal: dict = Depends(get_current_principal),
    auth_service: AuthService = Depends(get_auth_service),
) -> ProfileResponse:
    user = await auth_service.get_profile(principal["userId"])
    if user is None:
        raise Unauthorized("User no longer exists")
    return ProfileResponse(
        user={
            "id": user["id"],
            "email": user["email"],
            "createdAt": user["created_at"],
            "scopes": principal.get("scopes", []),
        }
    )
