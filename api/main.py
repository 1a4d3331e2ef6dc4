"""
FastAPI application for the file store trust core.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware

from api.auth import router as auth_router
from api.handlers import register_exception_handlers
from api.middleware import register_middleware
from api.oauth import router as oauth_router
from auth.config import AuthConfig
from auth.container import AuthContainer, build_container
from auth.dependencies import ip_rate_limit
from config import Config

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(container: AuthContainer | None = None) -> FastAPI:
    """Build the application; without a container one is built from the environment at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown."""
        owned = None
        if getattr(app.state, "container", None) is None:
            logger.info("Starting up: building auth container")
            owned = await build_container()
            app.state.container = owned
        yield
        if owned is not None:
            logger.info("Shutting down: releasing auth resources")
            await owned.close()

    auth_config = container.config if container else AuthConfig()

    app = FastAPI(
        title="File Store Trust API",
        description="Authentication, OAuth2 authorization and rate limiting",
        lifespan=lifespan,
        dependencies=[Depends(ip_rate_limit())],
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=Config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )
    register_middleware(app)
    register_exception_handlers(app, production=auth_config.is_production)

    app.include_router(auth_router, prefix="/auth", tags=["auth"])
    app.include_router(oauth_router, prefix="/oauth", tags=["oauth"])

    @app.get("/health")
    async def health():
        """Health check."""
        return {"status": "ok"}

    @app.get("/health/ready")
    async def readiness(request: Request, response: Response):
        """Readiness check: 503 while the credential database is unreachable."""
        is_ready, checks = await request.app.state.container.check_readiness()
        if not is_ready:
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "ready" if is_ready else "not_ready", "checks": checks}

    return app


configure_logging()
app = create_app()
