import unittest

from sqlalchemy import select

from auth.exceptions import UserExists
from auth.stores.sql_store import SqlOAuthCodeStore, SqlOAuthTokenStore, SqlSessionStore, SqlUserStore
from config import Config
from db.engine import DatabaseManager
from db.models.auth import AuthSession

NOW = 1_700_000_000


class SqlStoreTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.database = DatabaseManager()
        self.database.init(Config.async_database_url("sqlite:///:memory:"))
        await self.database.create_all()
        self.users = SqlUserStore(self.database)
        self.user = await self.users.create_user(
            {"email": "Alice@FileStore.io", "password_hash": "hash", "salt": "salt", "created_at": NOW}
        )

    async def asyncTearDown(self):
        await self.database.close()


class TestSqlUserStore(SqlStoreTestCase):
    async def test_create_and_lookup(self):
        self.assertEqual(len(self.user["id"]), 36)
        self.assertEqual(self.user["email"], "alice@filestore.io")
        self.assertEqual(self.user["failed_login_attempts"], 0)
        self.assertFalse(self.user["account_locked"])

        by_email = await self.users.get_by_email("ALICE@filestore.io")
        self.assertEqual(by_email["id"], self.user["id"])
        self.assertEqual((await self.users.get_by_id(self.user["id"]))["created_at"], NOW)
        self.assertIsNone(await self.users.get_by_email("bob@filestore.io"))

    async def test_duplicate_email(self):
        with self.assertRaises(UserExists):
            await self.users.create_user(
                {"email": "alice@filestore.io", "password_hash": "h", "salt": "s", "created_at": NOW}
            )

    async def test_failed_logins_lock_at_threshold(self):
        for attempt in range(1, 5):
            state = await self.users.record_failed_login(self.user["id"], 5, NOW + attempt)
            self.assertEqual(state, {"failed_login_attempts": attempt, "account_locked": False})

        state = await self.users.record_failed_login(self.user["id"], 5, NOW + 5)
        self.assertEqual(state, {"failed_login_attempts": 5, "account_locked": True})

        stored = await self.users.get_by_id(self.user["id"])
        self.assertEqual(stored["last_login_attempt"], NOW + 5)

    async def test_reset_clears_lock(self):
        for _ in range(5):
            await self.users.record_failed_login(self.user["id"], 5, NOW)
        await self.users.reset_failed_logins(self.user["id"], NOW + 900)

        stored = await self.users.get_by_id(self.user["id"])
        self.assertEqual(stored["failed_login_attempts"], 0)
        self.assertFalse(stored["account_locked"])
        self.assertEqual(stored["last_login_attempt"], NOW + 900)

    async def test_unknown_user(self):
        self.assertIsNone(await self.users.record_failed_login("missing", 5, NOW))


class TestSqlSessionStore(SqlStoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.sessions = SqlSessionStore(self.database)

    async def stored_sessions(self):
        async with self.database.session() as db:
            rows = (await db.execute(select(AuthSession))).scalars().all()
            return [
                {
                    "user_id": row.user_id,
                    "refresh_token": row.refresh_token,
                    "expires_at": row.expires_at,
                    "device_info": row.device_info,
                }
                for row in rows
            ]

    async def test_upsert_keeps_one_session_per_user(self):
        await self.sessions.upsert_session(self.user["id"], "first", NOW + 100, {"userAgent": "a"})
        await self.sessions.upsert_session(self.user["id"], "second", NOW + 200, {"userAgent": "b"})

        self.assertEqual(
            await self.stored_sessions(),
            [
                {
                    "user_id": self.user["id"],
                    "refresh_token": "second",
                    "expires_at": NOW + 200,
                    "device_info": {"userAgent": "b"},
                }
            ],
        )
        self.assertIsNone(await self.sessions.rotate_session("first", "x", NOW + 300, NOW, None))

    async def test_rotate_is_single_use(self):
        await self.sessions.upsert_session(self.user["id"], "old", NOW + 100, None)

        user_id = await self.sessions.rotate_session("old", "new", NOW + 300, NOW, None)
        self.assertEqual(user_id, self.user["id"])
        self.assertIsNone(await self.sessions.rotate_session("old", "newer", NOW + 300, NOW, None))

        stored = await self.stored_sessions()
        self.assertEqual([(s["refresh_token"], s["expires_at"]) for s in stored], [("new", NOW + 300)])

    async def test_rotate_rejects_expired(self):
        await self.sessions.upsert_session(self.user["id"], "old", NOW + 100, None)
        self.assertIsNone(await self.sessions.rotate_session("old", "new", NOW + 300, NOW + 100, None))

    async def test_delete(self):
        await self.sessions.upsert_session(self.user["id"], "token", NOW + 100, None)
        await self.sessions.delete_session("token")
        await self.sessions.delete_session("token")
        self.assertEqual(await self.stored_sessions(), [])


class TestDatabaseConnectionCheck(SqlStoreTestCase):
    async def test_connected(self):
        self.assertTrue(await self.database.check_connection())

    async def test_closed(self):
        await self.database.close()
        self.assertFalse(await self.database.check_connection())


class TestSqlOAuthStores(SqlStoreTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.codes = SqlOAuthCodeStore(self.database)
        self.tokens = SqlOAuthTokenStore(self.database)
        await self.codes.save_code(
            {
                "code": "abc",
                "user_id": self.user["id"],
                "client_id": "openai-gpt",
                "redirect_uri": "https://api.openai.com/callback",
                "scope": "files:read search",
                "state": "xyz",
                "created_at": NOW,
                "expires_at": NOW + 600,
            }
        )

    async def test_consume_once(self):
        record = await self.codes.consume_code("abc", "openai-gpt", "https://api.openai.com/callback", NOW)
        self.assertEqual(record["user_id"], self.user["id"])
        self.assertEqual(record["scope"], "files:read search")
        self.assertEqual(record["used_at"], NOW)

        self.assertIsNone(
            await self.codes.consume_code("abc", "openai-gpt", "https://api.openai.com/callback", NOW)
        )

    async def test_consume_requires_matching_binding(self):
        self.assertIsNone(await self.codes.consume_code("abc", "claude-ai-assistant", "https://api.openai.com/callback", NOW))
        self.assertIsNone(await self.codes.consume_code("abc", "openai-gpt", "https://claude.ai/callback", NOW))
        self.assertIsNone(
            await self.codes.consume_code("abc", "openai-gpt", "https://api.openai.com/callback", NOW + 600)
        )

    async def test_tokens_listed_newest_first_and_owner_scoped_delete(self):
        for offset, token in ((0, "t-old"), (10, "t-new")):
            await self.tokens.save_token(
                {
                    "user_id": self.user["id"],
                    "client_id": "openai-gpt",
                    "access_token": token,
                    "scope": "files:read",
                    "created_at": NOW + offset,
                    "expires_at": NOW + offset + 100,
                }
            )

        listed = await self.tokens.list_tokens(self.user["id"])
        self.assertEqual([t["access_token"] for t in listed], ["t-new", "t-old"])
        self.assertEqual((await self.tokens.get_token("t-old"))["scope"], "files:read")

        self.assertFalse(await self.tokens.delete_token("someone-else", "t-old"))
        self.assertTrue(await self.tokens.delete_token(self.user["id"], "t-old"))
        self.assertIsNone(await self.tokens.get_token("t-old"))


if __name__ == "__main__":
    unittest.main()
