import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from postgrest.exceptions import APIError

from backend.supabase_client import BackendError, InMemoryBackend, SupabaseBackend


def _table_chain(execute: AsyncMock) -> MagicMock:
    """A query builder whose every chained call returns itself."""
    builder = MagicMock()
    for name in ("select", "eq", "maybe_single", "limit", "insert", "update"):
        getattr(builder, name).return_value = builder
    builder.execute = execute
    return builder


class SupabaseBackendTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.admin = MagicMock()
        self.client = MagicMock()
        self.backend = SupabaseBackend(admin=self.admin, client=self.client)

    async def test_fetch_profile_row_without_match_returns_none(self):
        self.client.table.return_value = _table_chain(AsyncMock(return_value=None))
        self.assertIsNone(await self.backend.fetch_profile_row("user-1"))
        self.client.table.assert_called_with("profiles")

    async def test_fetch_profile_row_treats_no_content_as_absent(self):
        error = APIError({"message": "Missing response", "code": "204"})
        self.client.table.return_value = _table_chain(AsyncMock(side_effect=error))
        self.assertIsNone(await self.backend.fetch_profile_row("user-1"))

    async def test_fetch_profile_row_wraps_provider_errors(self):
        error = APIError({"message": "permission denied", "code": "42501"})
        self.client.table.return_value = _table_chain(AsyncMock(side_effect=error))
        with self.assertRaises(BackendError) as ctx:
            await self.backend.fetch_profile_row("user-1")
        self.assertEqual(ctx.exception.message, "permission denied")
        self.assertEqual(ctx.exception.code, "42501")

    async def test_update_profile_row_without_match_raises(self):
        self.client.table.return_value = _table_chain(
            AsyncMock(return_value=SimpleNamespace(data=[]))
        )
        with self.assertRaises(BackendError):
            await self.backend.update_profile_row("user-1", {"name": "Ada"})

    async def test_test_connection_counts_api_errors_as_reachable(self):
        error = APIError({"message": 'relation "_test" does not exist', "code": "42P01"})
        self.client.table.return_value = _table_chain(AsyncMock(side_effect=error))
        self.assertTrue(await self.backend.test_connection())

    async def test_test_connection_fails_on_network_error(self):
        self.client.table.return_value = _table_chain(
            AsyncMock(side_effect=ConnectionError("unreachable"))
        )
        self.assertFalse(await self.backend.test_connection())

    async def test_verify_token_never_raises(self):
        self.client.auth.get_user = AsyncMock(side_effect=RuntimeError("bad jwt"))
        self.assertIsNone(await self.backend.verify_token("token"))

    async def test_verify_token_converts_user(self):
        user = {"id": "user-1", "email": "ada@example.com", "user_metadata": {"name": "Ada"}}
        self.client.auth.get_user = AsyncMock(
            return_value=SimpleNamespace(user=user)
        )
        verified = await self.backend.verify_token("token")
        self.assertEqual(verified.id, "user-1")
        self.assertEqual(verified.display_name, "Ada")

    async def test_get_user_by_id_returns_none_on_failure(self):
        self.admin.auth.admin.get_user_by_id = AsyncMock(side_effect=RuntimeError("boom"))
        self.assertIsNone(await self.backend.get_user_by_id("user-1"))

    async def test_sign_in_converts_session(self):
        user = {"id": "user-1", "email": "ada@example.com"}
        session = {
            "access_token": "access",
            "refresh_token": "refresh",
            "expires_at": 1700000000,
            "token_type": "bearer",
            "user": user,
        }
        self.client.auth.sign_in_with_password = AsyncMock(
            return_value=SimpleNamespace(user=user, session=session)
        )
        response = await self.backend.sign_in_with_password("ada@example.com", "pw")
        self.assertEqual(response.user.id, "user-1")
        self.assertEqual(response.session.access_token, "access")
        self.assertEqual(response.session.user.email, "ada@example.com")

    async def test_sign_in_wraps_auth_errors(self):
        error = RuntimeError("Invalid login credentials")
        self.client.auth.sign_in_with_password = AsyncMock(side_effect=error)
        with self.assertRaises(BackendError) as ctx:
            await self.backend.sign_in_with_password("ada@example.com", "wrong")
        self.assertEqual(ctx.exception.message, "Invalid login credentials")

    async def test_subscribe_filters_on_row_and_forwards_record(self):
        channel = MagicMock()
        channel.subscribe = AsyncMock()
        self.client.channel.return_value = channel
        received = []

        handle = await self.backend.subscribe_profile_updates("user-1", received.append)

        self.assertIs(handle, channel)
        self.client.channel.assert_called_once_with("profile:user-1")
        args, kwargs = channel.on_postgres_changes.call_args
        self.assertEqual(args[0], "UPDATE")
        self.assertEqual(kwargs["table"], "profiles")
        self.assertEqual(kwargs["filter"], "id=eq.user-1")

        callback = args[1]
        callback({"data": {"record": {"id": "user-1", "name": "Ada"}}})
        callback({"new": {"id": "user-1", "name": "Ada L."}})
        callback({"data": {"type": "UPDATE"}})
        self.assertEqual(
            received, [{"id": "user-1", "name": "Ada"}, {"id": "user-1", "name": "Ada L."}]
        )


class InMemoryBackendTests(unittest.IsolatedAsyncioTestCase):
    async def test_sign_in_rejects_bad_credentials(self):
        backend = InMemoryBackend()
        backend.register_user("ada@example.com", "secret")
        with self.assertRaises(BackendError) as ctx:
            await backend.sign_in_with_password("ada@example.com", "nope")
        self.assertEqual(ctx.exception.message, "Invalid login credentials")

    async def test_sign_up_without_confirmation_has_no_session(self):
        backend = InMemoryBackend(require_email_confirmation=True)
        response = await backend.sign_up("new@example.com", "secret", {"name": "New"})
        self.assertIsNone(response.session)
        self.assertEqual(response.user.user_metadata, {"name": "New"})

    async def test_update_notifies_only_matching_subscribers(self):
        backend = InMemoryBackend()
        backend.add_profile({"id": "a", "name": "A"})
        backend.add_profile({"id": "b", "name": "B"})
        seen_a, seen_b = [], []
        await backend.subscribe_profile_updates("a", seen_a.append)
        await backend.subscribe_profile_updates("b", seen_b.append)

        await backend.update_profile_row("a", {"name": "A2"})

        self.assertEqual(seen_a, [{"id": "a", "name": "A2"}])
        self.assertEqual(seen_b, [])

    async def test_insert_rejects_duplicates(self):
        backend = InMemoryBackend()
        await backend.insert_profile_row({"id": "a"})
        with self.assertRaises(BackendError) as ctx:
            await backend.insert_profile_row({"id": "a"})
        self.assertEqual(ctx.exception.code, "23505")

    async def test_auth_listener_unsubscribe(self):
        backend = InMemoryBackend()
        backend.register_user("ada@example.com", "secret")
        events = []
        listener = backend.on_auth_state_change(lambda event, session: events.append(event))

        await backend.sign_in_with_password("ada@example.com", "secret")
        listener.unsubscribe()
        await backend.sign_out()

        self.assertEqual(events, ["SIGNED_IN"])


if __name__ == "__main__":
    unittest.main()
