"""Shared helpers for the test suite."""

from auth.config import AuthConfig

STRONG_PASSWORD = "Str0ng!Pass"
START_TIME = 1_700_000_000.0


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, start: float = START_TIME):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_config(**overrides) -> AuthConfig:
    values = {
        "ENVIRONMENT": "test",
        "JWT_SECRET": "test-secret-that-is-long-enough-for-hs256",
        "JWT_ALGORITHM": "HS256",
        "JWT_EXPIRES_IN": "1h",
        "REFRESH_TOKEN_EXPIRES_IN": "30d",
        "BCRYPT_ROUNDS": 4,
        "MAX_FAILED_LOGIN_ATTEMPTS": 5,
        "LOCKOUT_MINUTES": 15,
        "OAUTH_CODE_EXPIRE_MINUTES": 10,
        "OAUTH_TOKEN_EXPIRE_DAYS": 30,
        "OAUTH_CLIENTS_FILE": None,
        "AUTH_STORE": "memory",
        "RATE_LIMIT_GLOBAL": "1000/minute",
        "RATE_LIMIT_AUTH": "1000/minute",
        "RATE_LIMIT_USER": "1000/minute",
        "RATE_LIMIT_OAUTH": "1000/minute",
        "RATE_LIMIT_REFRESH": "1000/minute",
        "RATE_LIMIT_OAUTH_AUTHORIZE": "1000/minute",
        "RATE_LIMIT_OAUTH_AUTHORIZE_SUBMIT": "1000/minute",
        "RATE_LIMIT_OAUTH_TOKEN": "1000/minute",
    }
    values.update(overrides)
    return AuthConfig(**values)
