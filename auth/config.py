"""Auth configuration management."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load .env file before reading config
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path, override=True)
else:
    load_dotenv(override=True)


_DEFAULT_JWT_SECRET = "change-me-development-secret"

_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_duration(value: str) -> int:
    """Parse a duration such as ``"15m"``, ``"1h"`` or ``"30d"`` into seconds."""
    value = value.strip()
    if value.isdigit():
        return int(value)
    amount, unit = value[:-1], value[-1:].lower()
    if unit not in _DURATION_UNITS or not amount.isdigit():
        raise ValueError(f"Invalid duration: {value!r}")
    return int(amount) * _DURATION_UNITS[unit]


@dataclass(frozen=True)
class AuthConfig:
    """Configuration values for auth flows."""

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    JWT_SECRET: str = os.getenv("JWT_SECRET", _DEFAULT_JWT_SECRET)
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_IN: str = os.getenv("JWT_EXPIRES_IN", "1h")
    REFRESH_TOKEN_EXPIRES_IN: str = os.getenv("REFRESH_TOKEN_EXPIRES_IN", "30d")

    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))
    MAX_FAILED_LOGIN_ATTEMPTS: int = int(os.getenv("MAX_FAILED_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_MINUTES: int = int(os.getenv("LOCKOUT_MINUTES", "15"))

    OAUTH_CODE_EXPIRE_MINUTES: int = int(os.getenv("OAUTH_CODE_EXPIRE_MINUTES", "10"))
    OAUTH_TOKEN_EXPIRE_DAYS: int = int(os.getenv("OAUTH_TOKEN_EXPIRE_DAYS", "30"))
    OAUTH_CLIENTS_FILE: str | None = os.getenv("OAUTH_CLIENTS_FILE")

    # Rate limits use the "<amount>/<multiples> <granularity>" notation
    RATE_LIMIT_GLOBAL: str = os.getenv("RATE_LIMIT_GLOBAL", "100/15 minutes")
    RATE_LIMIT_AUTH: str = os.getenv("RATE_LIMIT_AUTH", "5/15 minutes")
    RATE_LIMIT_USER: str = os.getenv("RATE_LIMIT_USER", "1000/15 minutes")
    RATE_LIMIT_OAUTH: str = os.getenv("RATE_LIMIT_OAUTH", "100/hour")
    RATE_LIMIT_REFRESH: str = os.getenv("RATE_LIMIT_REFRESH", "10/minute")
    RATE_LIMIT_OAUTH_AUTHORIZE: str = os.getenv("RATE_LIMIT_OAUTH_AUTHORIZE", "30/minute")
    RATE_LIMIT_OAUTH_AUTHORIZE_SUBMIT: str = os.getenv(
        "RATE_LIMIT_OAUTH_AUTHORIZE_SUBMIT", "10/minute"
    )
    RATE_LIMIT_OAUTH_TOKEN: str = os.getenv("RATE_LIMIT_OAUTH_TOKEN", "20/minute")

    # Auth store: "postgres" (production) or "memory" (testing)
    AUTH_STORE: str = os.getenv("AUTH_STORE", "postgres")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    @property
    def access_token_ttl(self) -> int:
        return parse_duration(self.JWT_EXPIRES_IN)

    @property
    def refresh_token_ttl(self) -> int:
        return parse_duration(self.REFRESH_TOKEN_EXPIRES_IN)

    @property
    def lockout_seconds(self) -> int:
        return self.LOCKOUT_MINUTES * 60

    @property
    def oauth_code_ttl(self) -> int:
        return self.OAUTH_CODE_EXPIRE_MINUTES * 60

    @property
    def oauth_token_ttl(self) -> int:
        return self.OAUTH_TOKEN_EXPIRE_DAYS * 86400

    def validate(self) -> None:
        """Reject settings that are unsafe outside development."""
        for duration in (self.JWT_EXPIRES_IN, self.REFRESH_TOKEN_EXPIRES_IN):
            parse_duration(duration)
        if not self.is_production:
            return
        if self.JWT_SECRET == _DEFAULT_JWT_SECRET or len(self.JWT_SECRET) < 32:
            raise ValueError(
                "JWT_SECRET must be set to at least 32 characters in production."
            )
        if self.BCRYPT_ROUNDS < 12:
            raise ValueError("BCRYPT_ROUNDS must be at least 12 in production.")
