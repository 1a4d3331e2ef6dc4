"""Wiring of stores and services, built once per process and kept on ``app.state``."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from auth.clients import OAuthClientRegistry
from auth.config import AuthConfig
from auth.security import PasswordHasher, TokenService
from auth.services.auth_service import AuthService
from auth.services.oauth_server import OAuthAuthorizationServer
from auth.services.rate_limiter import RateLimiter, RateLimitRule
from auth.stores.memory_store import (
    MemoryCounterStore,
    MemoryOAuthCodeStore,
    MemoryOAuthTokenStore,
    MemorySessionStore,
    MemoryUserStore,
)
from auth.stores.redis_store import RedisCounterStore
from auth.stores.sql_store import (
    SqlOAuthCodeStore,
    SqlOAuthTokenStore,
    SqlSessionStore,
    SqlUserStore,
)
from config import Config
from db.engine import DatabaseManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRules:
    global_ip: RateLimitRule
    auth: RateLimitRule
    user: RateLimitRule
    oauth: RateLimitRule
    refresh: RateLimitRule
    oauth_authorize: RateLimitRule
    oauth_authorize_submit: RateLimitRule
    oauth_token: RateLimitRule

    @classmethod
    def from_config(cls, config: AuthConfig) -> "RateLimitRules":
        return cls(
            global_ip=RateLimitRule.parse(config.RATE_LIMIT_GLOBAL),
            auth=RateLimitRule.parse(config.RATE_LIMIT_AUTH),
            user=RateLimitRule.parse(config.RATE_LIMIT_USER),
            oauth=RateLimitRule.parse(config.RATE_LIMIT_OAUTH),
            refresh=RateLimitRule.parse(config.RATE_LIMIT_REFRESH),
            oauth_authorize=RateLimitRule.parse(config.RATE_LIMIT_OAUTH_AUTHORIZE),
            oauth_authorize_submit=RateLimitRule.parse(config.RATE_LIMIT_OAUTH_AUTHORIZE_SUBMIT),
            oauth_token=RateLimitRule.parse(config.RATE_LIMIT_OAUTH_TOKEN),
        )


@dataclass
class AuthContainer:
    config: AuthConfig
    auth_service: AuthService
    oauth_server: OAuthAuthorizationServer
    rate_limiter: RateLimiter
    rate_limits: RateLimitRules
    # Resources with an async close(), released on shutdown
    resources: list[Any] = field(default_factory=list)
    database: DatabaseManager | None = None
    redis: RedisCounterStore | None = None

    async def check_readiness(self) -> tuple[bool, dict[str, str]]:
        """Check backing stores; only the credential database gates readiness."""
        checks: dict[str, str] = {}
        if self.database is not None:
            checks["database"] = "ok" if await self.database.check_connection() else "unavailable"
        if self.redis is not None:
            # Rate limiting fails open while the counter store is down
            checks["counter_store"] = "ok" if await self.redis.ping() else "degraded"
        return checks.get("database", "ok") == "ok", checks

    async def close(self) -> None:
        for resource in self.resources:
            await resource.close()
        self.resources.clear()


def _assemble(
    config: AuthConfig,
    users,
    sessions,
    codes,
    oauth_tokens,
    counters,
    clock: Callable[[], float],
    resources: list[Any],
    database: DatabaseManager | None = None,
    redis: RedisCounterStore | None = None,
) -> AuthContainer:
    tokens = TokenService(config, clock=clock)
    auth_service = AuthService(
        user_store=users,
        session_store=sessions,
        hasher=PasswordHasher(rounds=config.BCRYPT_ROUNDS),
        tokens=tokens,
        config=config,
        oauth_token_store=oauth_tokens,
        clock=clock,
    )
    oauth_server = OAuthAuthorizationServer(
        clients=OAuthClientRegistry.from_config(config.OAUTH_CLIENTS_FILE),
        code_store=codes,
        token_store=oauth_tokens,
        tokens=tokens,
        config=config,
        clock=clock,
    )
    return AuthContainer(
        config=config,
        auth_service=auth_service,
        oauth_server=oauth_server,
        rate_limiter=RateLimiter(counters, clock=clock),
        rate_limits=RateLimitRules.from_config(config),
        resources=resources,
        database=database,
        redis=redis,
    )


def build_memory_container(
    config: AuthConfig | None = None, clock: Callable[[], float] = time.time
) -> AuthContainer:
    """In-process stores for development and tests."""
    config = config or AuthConfig()
    return _assemble(
        config,
        MemoryUserStore(),
        MemorySessionStore(),
        MemoryOAuthCodeStore(),
        MemoryOAuthTokenStore(),
        MemoryCounterStore(clock=clock),
        clock,
        resources=[],
    )


async def build_container(config: AuthConfig | None = None) -> AuthContainer:
    """Stores selected by ``AUTH_STORE``: SQL database plus Redis, or in-memory."""
    config = config or AuthConfig()
    config.validate()

    if config.AUTH_STORE == "memory":
        logger.warning("AUTH_STORE=memory: state is per-process and lost on restart")
        return build_memory_container(config)

    database = DatabaseManager()
    database.init(
        Config.async_database_url(),
        echo=Config.DB_ECHO,
        pool_size=Config.DB_POOL_SIZE,
    )
    counters = RedisCounterStore(Config.REDIS_URL, socket_timeout=Config.REDIS_SOCKET_TIMEOUT)
    return _assemble(
        config,
        SqlUserStore(database),
        SqlSessionStore(database),
        SqlOAuthCodeStore(database),
        SqlOAuthTokenStore(database),
        counters,
        time.time,
        resources=[counters, database],
        database=database,
        redis=counters,
    )
