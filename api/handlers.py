"""Exception handlers for the FastAPI application."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth.exceptions import AuthErrorCode, AuthException, OAuthError
from auth.services.rate_limiter import RateLimitExceeded

logger = logging.getLogger(__name__)


def create_error_response(
    status_code: int, message: str, code: str, data: dict | None = None, headers: dict | None = None
) -> JSONResponse:
    """Create a standardized ``{error, code, ...}`` response."""
    content = {"error": message, "code": code}
    if data:
        content.update(data)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def auth_exception_handler(request: Request, exc: AuthException) -> JSONResponse:
    return create_error_response(exc.status_code, exc.message, exc.code.value, exc.data)


async def oauth_exception_handler(request: Request, exc: OAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    decision = exc.decision
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=decision.to_body(),
        headers=decision.headers(),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation errors with standardized format."""
    error_details = []
    for error in exc.errors():
        field = error["loc"][-1] if error.get("loc") else "unknown"
        message = error.get("msg", "")

        # Remove "Value error, " prefix if present
        if message.startswith("Value error, "):
            message = message[13:]

        error_details.append({"field": field, "message": message})

    return create_error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation failed",
        AuthErrorCode.VALIDATION_FAILED.value,
        {"details": error_details},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return create_error_response(
            exc.status_code,
            "Route not found",
            AuthErrorCode.NOT_FOUND.value,
            {"path": request.url.path},
        )
    return create_error_response(
        exc.status_code,
        str(exc.detail),
        AuthErrorCode.INTERNAL_ERROR.value if exc.status_code >= 500 else f"ERR_HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


def general_exception_handler(production: bool):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle all other unhandled exceptions with error logging."""
        logger.exception(
            "Unhandled exception occurred",
            extra={"path": request.url.path, "method": request.method},
        )
        message = "Internal server error" if production else str(exc) or "Internal server error"
        return create_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, message, AuthErrorCode.INTERNAL_ERROR.value
        )

    return handler


def register_exception_handlers(app: FastAPI, production: bool = False) -> None:
    app.add_exception_handler(AuthException, auth_exception_handler)
    app.add_exception_handler(OAuthError, oauth_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler(production))
