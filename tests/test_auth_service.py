import asyncio
import unittest

from auth.exceptions import (
    AccountLocked,
    InvalidCredentials,
    InvalidRefreshToken,
    MissingFields,
    MissingRefreshToken,
    Unauthorized,
    UserExists,
    WeakPassword,
)
from auth.security import PasswordHasher, TokenService
from auth.services.auth_service import AuthService
from auth.stores.memory_store import MemoryOAuthTokenStore, MemorySessionStore, MemoryUserStore

from support import STRONG_PASSWORD, FakeClock, make_config

EMAIL = "alice@filestore.io"


class AuthServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.config = make_config()
        self.users = MemoryUserStore()
        self.sessions = MemorySessionStore()
        self.oauth_tokens = MemoryOAuthTokenStore()
        self.tokens = TokenService(self.config, clock=self.clock)
        self.service = AuthService(
            user_store=self.users,
            session_store=self.sessions,
            hasher=PasswordHasher(rounds=self.config.BCRYPT_ROUNDS),
            tokens=self.tokens,
            config=self.config,
            oauth_token_store=self.oauth_tokens,
            clock=self.clock,
        )


class TestRegistration(AuthServiceTestCase):
    async def test_register_returns_public_user(self):
        user = await self.service.register("Alice@FileStore.io", STRONG_PASSWORD)

        self.assertEqual(user["email"], EMAIL)
        self.assertEqual(user["created_at"], int(self.clock()))
        self.assertNotIn("password_hash", user)

        stored = await self.users.get_by_email(EMAIL)
        self.assertNotEqual(stored["password_hash"], STRONG_PASSWORD)
        self.assertTrue(stored["salt"])

    async def test_duplicate_email_rejected(self):
        await self.service.register(EMAIL, STRONG_PASSWORD)
        with self.assertRaises(UserExists):
            await self.service.register(EMAIL.upper(), STRONG_PASSWORD)

    async def test_duplicate_checked_before_password_strength(self):
        await self.service.register(EMAIL, STRONG_PASSWORD)
        with self.assertRaises(UserExists):
            await self.service.register(EMAIL, "weak")

    async def test_overlong_password_rejected(self):
        with self.assertRaises(WeakPassword):
            await self.service.register(EMAIL, "Aa1!" + "x" * 76)
        self.assertIsNone(await self.users.get_by_email(EMAIL))

    async def test_weak_password_rejected(self):
        with self.assertRaises(WeakPassword):
            await self.service.register(EMAIL, "password")

    async def test_missing_fields(self):
        with self.assertRaises(MissingFields):
            await self.service.register(EMAIL, None)


class TestLogin(AuthServiceTestCase):
    async def asyncSetUp(self):
        self.user = await self.service.register(EMAIL, STRONG_PASSWORD)

    async def _fail(self, times):
        for _ in range(times):
            with self.assertRaises(InvalidCredentials):
                await self.service.login(EMAIL, "Wr0ng!Pass")

    async def test_login_returns_token_pair(self):
        tokens = await self.service.login(EMAIL, STRONG_PASSWORD, {"userAgent": "tests"})

        self.assertEqual(tokens["expiresIn"], 3600)
        self.assertEqual(len(tokens["refreshToken"]), 128)
        refreshed = await self.service.refresh(tokens["refreshToken"])
        principal = await self.service.validate_access_token(refreshed["accessToken"])
        self.assertEqual(principal["userId"], self.user["id"])

    async def test_unknown_email(self):
        with self.assertRaises(InvalidCredentials):
            await self.service.login("nobody@filestore.io", STRONG_PASSWORD)

    async def test_five_failures_lock_account(self):
        await self._fail(5)

        stored = await self.users.get_by_email(EMAIL)
        self.assertTrue(stored["account_locked"])
        self.assertEqual(stored["failed_login_attempts"], 5)

        # Correct password is refused while locked
        with self.assertRaises(AccountLocked):
            await self.service.login(EMAIL, STRONG_PASSWORD)

    async def test_four_failures_do_not_lock(self):
        await self._fail(4)
        tokens = await self.service.login(EMAIL, STRONG_PASSWORD)
        self.assertIn("accessToken", tokens)

    async def test_lock_lapses_after_window(self):
        await self._fail(5)
        self.clock.advance(15 * 60)

        await self.service.login(EMAIL, STRONG_PASSWORD)

        stored = await self.users.get_by_email(EMAIL)
        self.assertFalse(stored["account_locked"])
        self.assertEqual(stored["failed_login_attempts"], 0)
        self.assertEqual(stored["last_login_attempt"], int(self.clock()))

    async def test_failure_after_lapse_relocks(self):
        await self._fail(5)
        self.clock.advance(15 * 60)
        await self._fail(1)

        with self.assertRaises(AccountLocked):
            await self.service.login(EMAIL, STRONG_PASSWORD)

    async def test_success_resets_counter(self):
        await self._fail(3)
        await self.service.login(EMAIL, STRONG_PASSWORD)
        stored = await self.users.get_by_email(EMAIL)
        self.assertEqual(stored["failed_login_attempts"], 0)

    async def test_concurrent_failures_are_all_counted(self):
        async def attempt():
            try:
                await self.service.login(EMAIL, "Wr0ng!Pass")
            except (InvalidCredentials, AccountLocked):
                pass

        await asyncio.gather(*(attempt() for _ in range(5)))
        stored = await self.users.get_by_email(EMAIL)
        self.assertEqual(stored["failed_login_attempts"], 5)
        self.assertTrue(stored["account_locked"])

    async def test_new_login_replaces_session(self):
        first = await self.service.login(EMAIL, STRONG_PASSWORD)
        second = await self.service.login(EMAIL, STRONG_PASSWORD)

        with self.assertRaises(InvalidRefreshToken):
            await self.service.refresh(first["refreshToken"])
        refreshed = await self.service.refresh(second["refreshToken"])
        self.assertNotEqual(refreshed["refreshToken"], second["refreshToken"])


class TestRefreshAndLogout(AuthServiceTestCase):
    async def asyncSetUp(self):
        await self.service.register(EMAIL, STRONG_PASSWORD)
        self.tokens_pair = await self.service.login(EMAIL, STRONG_PASSWORD)

    async def test_refresh_rotates_token(self):
        refreshed = await self.service.refresh(self.tokens_pair["refreshToken"])

        self.assertNotEqual(refreshed["refreshToken"], self.tokens_pair["refreshToken"])
        principal = await self.service.validate_access_token(refreshed["accessToken"])
        self.assertEqual(principal["email"], EMAIL)

    async def test_refresh_twice_fails(self):
        await self.service.refresh(self.tokens_pair["refreshToken"])
        with self.assertRaises(InvalidRefreshToken):
            await self.service.refresh(self.tokens_pair["refreshToken"])

    async def test_concurrent_refresh_has_one_winner(self):
        results = await asyncio.gather(
            self.service.refresh(self.tokens_pair["refreshToken"]),
            self.service.refresh(self.tokens_pair["refreshToken"]),
            return_exceptions=True,
        )
        winners = [r for r in results if isinstance(r, dict)]
        losers = [r for r in results if isinstance(r, InvalidRefreshToken)]
        self.assertEqual((len(winners), len(losers)), (1, 1))

    async def test_expired_refresh_token(self):
        self.clock.advance(30 * 86400)
        with self.assertRaises(InvalidRefreshToken):
            await self.service.refresh(self.tokens_pair["refreshToken"])

    async def test_missing_refresh_token(self):
        with self.assertRaises(MissingRefreshToken):
            await self.service.refresh("")
        with self.assertRaises(MissingRefreshToken):
            await self.service.logout(None)

    async def test_logout_is_idempotent(self):
        await self.service.logout(self.tokens_pair["refreshToken"])
        await self.service.logout(self.tokens_pair["refreshToken"])
        with self.assertRaises(InvalidRefreshToken):
            await self.service.refresh(self.tokens_pair["refreshToken"])


class TestAccessTokenValidation(AuthServiceTestCase):
    async def asyncSetUp(self):
        self.user = await self.service.register(EMAIL, STRONG_PASSWORD)
        self.pair = await self.service.login(EMAIL, STRONG_PASSWORD)

    async def test_session_token_principal(self):
        principal = await self.service.validate_access_token(self.pair["accessToken"])
        self.assertEqual(
            principal,
            {
                "userId": self.user["id"],
                "email": EMAIL,
                "scopes": ["files:read", "files:write", "files:delete"],
            },
        )

    async def test_expired_access_token(self):
        self.clock.advance(3600)
        with self.assertRaises(Unauthorized):
            await self.service.validate_access_token(self.pair["accessToken"])

    async def test_oauth_token_requires_stored_row(self):
        token, issued_at, expires_at = self.tokens.create_oauth_access_token(
            self.user["id"], "openai-gpt", ["files:read"]
        )
        with self.assertRaises(Unauthorized):
            await self.service.validate_access_token(token)

        await self.oauth_tokens.save_token(
            {
                "user_id": self.user["id"],
                "client_id": "openai-gpt",
                "access_token": token,
                "scope": "files:read",
                "created_at": issued_at,
                "expires_at": expires_at,
            }
        )
        principal = await self.service.validate_access_token(token)
        self.assertEqual(principal["clientId"], "openai-gpt")
        self.assertEqual(principal["scopes"], ["files:read"])

    async def test_profile(self):
        profile = await self.service.get_profile(self.user["id"])
        self.assertEqual(profile, {"id": self.user["id"], "email": EMAIL, "created_at": int(self.clock())})
        self.assertIsNone(await self.service.get_profile("missing"))


if __name__ == "__main__":
    unittest.main()
