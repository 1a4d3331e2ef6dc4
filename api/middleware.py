"""Request-context middleware: request id, access log, rate-limit headers."""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request

logger = logging.getLogger("api.access")


def register_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or f"req_{uuid4().hex}"
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        # Rate-limit dependencies leave their headers on request.state so they
        # also reach responses that routes build themselves.
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(name, value)
        response.headers["X-Request-ID"] = request_id

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms) request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            request_id,
        )
        return response
