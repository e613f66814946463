"""
Data-access facade over the Supabase platform and an in-memory test implementation.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar
from urllib.parse import urlencode

from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from backend.config import Settings
from shared.auth_types import (
    AuthResponse,
    AuthSession,
    AuthUser,
    auth_session_from_dict,
    auth_user_from_dict,
)
from shared.user_profile import PROFILES_TABLE

logger = logging.getLogger(__name__)

T = TypeVar("T")

AuthStateCallback = Callable[[str, Optional[AuthSession]], None]
ProfileRowCallback = Callable[[dict], None]

# PostgREST answers maybe_single() with this code when no row matched.
NO_ROW_CODE = "204"


class BackendError(Exception):
    """A provider or network failure, carrying a human-readable message."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class AuthListener(Protocol):
    def unsubscribe(self) -> None:
        ...


class BackendClient(Protocol):
    """Operations the session manager and the API need from the platform."""

    async def get_session(self) -> Optional[AuthSession]:
        ...

    async def get_current_user(self) -> Optional[AuthUser]:
        ...

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        ...

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict] = None
    ) -> AuthResponse:
        ...

    async def sign_out(self) -> None:
        ...

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        ...

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        ...

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthListener:
        ...

    async def verify_token(self, token: str) -> Optional[AuthUser]:
        ...

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        ...

    async def list_users(self, page: int = 1, per_page: int = 50) -> List[AuthUser]:
        ...

    async def test_connection(self) -> bool:
        ...

    async def fetch_profile_row(self, user_id: str) -> Optional[dict]:
        ...

    async def profile_exists(self, user_id: str) -> bool:
        ...

    async def insert_profile_row(self, row: dict) -> dict:
        ...

    async def update_profile_row(self, user_id: str, row: dict) -> dict:
        ...

    async def subscribe_profile_updates(
        self, user_id: str, callback: ProfileRowCallback
    ) -> Any:
        ...

    async def remove_subscription(self, handle: Any) -> None:
        ...


def _to_plain(model: Any) -> Optional[dict]:
    if model is None:
        return None
    if isinstance(model, dict):
        return model
    return model.model_dump()


def _as_backend_error(exc: Exception) -> BackendError:
    if isinstance(exc, BackendError):
        return exc
    message = getattr(exc, "message", None) or str(exc) or exc.__class__.__name__
    code = getattr(exc, "code", None)
    return BackendError(message, code=str(code) if code is not None else None)


async def _guarded(awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except Exception as exc:
        raise _as_backend_error(exc) from exc


def _changed_record(payload: Any) -> Optional[dict]:
    """Pulls the new row out of a postgres_changes payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data", payload)
    if not isinstance(data, dict):
        return None
    for key in ("record", "new"):
        if isinstance(data.get(key), dict):
            return data[key]
    return None


class SupabaseBackend:
    """
    Facade over two Supabase clients.

    `admin` carries the service-role key and is only used for administrative
    lookups. `client` carries the anon key and serves every user-initiated call.
    """

    def __init__(self, admin: AsyncClient, client: AsyncClient):
        self.admin = admin
        self.client = client

    @classmethod
    async def create(cls, settings: Settings) -> "SupabaseBackend":
        admin = await acreate_client(
            settings.supabase_url,
            settings.supabase_service_key,
            options=AsyncClientOptions(auto_refresh_token=False, persist_session=False),
        )
        client = await acreate_client(
            settings.supabase_url,
            settings.supabase_anon_key,
            options=AsyncClientOptions(auto_refresh_token=True, persist_session=False),
        )
        return cls(admin=admin, client=client)

    async def get_session(self) -> Optional[AuthSession]:
        session = await _guarded(self.client.auth.get_session())
        return auth_session_from_dict(_to_plain(session))

    async def get_current_user(self) -> Optional[AuthUser]:
        response = await _guarded(self.client.auth.get_user())
        if not response or not response.user:
            return None
        return auth_user_from_dict(_to_plain(response.user))

    def _auth_response(self, response: Any) -> AuthResponse:
        user = auth_user_from_dict(_to_plain(response.user))
        if user is None:
            raise BackendError("Authentication returned no user")
        return AuthResponse(
            user=user, session=auth_session_from_dict(_to_plain(response.session))
        )

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        response = await _guarded(
            self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        )
        return self._auth_response(response)

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict] = None
    ) -> AuthResponse:
        response = await _guarded(
            self.client.auth.sign_up(
                {
                    "email": email,
                    "password": password,
                    "options": {"data": metadata or {}},
                }
            )
        )
        return self._auth_response(response)

    async def sign_out(self) -> None:
        await _guarded(self.client.auth.sign_out())

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        response = await _guarded(
            self.client.auth.sign_in_with_oauth(
                {"provider": provider, "options": {"redirect_to": redirect_to}}
            )
        )
        return response.url

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        await _guarded(
            self.client.auth.reset_password_for_email(
                email, {"redirect_to": redirect_to}
            )
        )

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthListener:
        def _listener(event: str, session: Any) -> None:
            callback(str(event), auth_session_from_dict(_to_plain(session)))

        return self.client.auth.on_auth_state_change(_listener)

    async def verify_token(self, token: str) -> Optional[AuthUser]:
        try:
            response = await self.client.auth.get_user(token)
        except Exception as exc:
            logger.error("Token verification failed: %s", exc)
            return None
        if not response or not response.user:
            return None
        return auth_user_from_dict(_to_plain(response.user))

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        try:
            response = await self.admin.auth.admin.get_user_by_id(user_id)
        except Exception as exc:
            logger.error("Error fetching user %s: %s", user_id, exc)
            return None
        if not response or not response.user:
            return None
        return auth_user_from_dict(_to_plain(response.user))

    async def list_users(self, page: int = 1, per_page: int = 50) -> List[AuthUser]:
        users = await _guarded(
            self.admin.auth.admin.list_users(page=page, per_page=per_page)
        )
        return [auth_user_from_dict(_to_plain(user)) for user in users or []]

    async def test_connection(self) -> bool:
        try:
            await self.client.table("_test").select("*").limit(1).execute()
        except APIError as exc:
            # Any PostgREST answer, including a missing probe table, means the
            # project is reachable.
            logger.info("Supabase connection test: %s", exc.message)
        except Exception as exc:
            logger.error("Supabase connection failed: %s", exc)
            return False
        logger.info("Supabase connected successfully")
        return True

    async def _maybe_single(self, columns: str, user_id: str) -> Optional[dict]:
        try:
            response = await (
                self.client.table(PROFILES_TABLE)
                .select(columns)
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
        except APIError as exc:
            if str(exc.code) == NO_ROW_CODE:
                return None
            raise _as_backend_error(exc) from exc
        except Exception as exc:
            raise _as_backend_error(exc) from exc
        if response is None:
            return None
        return response.data or None

    async def fetch_profile_row(self, user_id: str) -> Optional[dict]:
        return await self._maybe_single("*", user_id)

    async def profile_exists(self, user_id: str) -> bool:
        return await self._maybe_single("id", user_id) is not None

    async def insert_profile_row(self, row: dict) -> dict:
        response = await _guarded(self.client.table(PROFILES_TABLE).insert(row).execute())
        if not response.data:
            raise BackendError("Profile insert returned no row")
        return response.data[0]

    async def update_profile_row(self, user_id: str, row: dict) -> dict:
        response = await _guarded(
            self.client.table(PROFILES_TABLE).update(row).eq("id", user_id).execute()
        )
        if not response.data:
            raise BackendError("Profile not found", code="PGRST116")
        return response.data[0]

    async def subscribe_profile_updates(
        self, user_id: str, callback: ProfileRowCallback
    ) -> Any:
        def _on_change(payload: Any) -> None:
            record = _changed_record(payload)
            if record is None:
                logger.debug("Ignoring profile change without a record: %s", payload)
                return
            callback(record)

        channel = self.client.channel(f"profile:{user_id}")
        channel.on_postgres_changes(
            "UPDATE",
            _on_change,
            table=PROFILES_TABLE,
            schema="public",
            filter=f"id=eq.{user_id}",
        )
        await _guarded(channel.subscribe())
        return channel

    async def remove_subscription(self, handle: Any) -> None:
        await _guarded(self.client.remove_channel(handle))


@dataclass
class _Account:
    user: AuthUser
    password: str
    confirmed: bool = True


class _InMemoryListener:
    def __init__(self, listeners: List[AuthStateCallback], callback: AuthStateCallback):
        self._listeners = listeners
        self._callback = callback

    def unsubscribe(self) -> None:
        if self._callback in self._listeners:
            self._listeners.remove(self._callback)


class InMemoryBackend:
    """
    Simple in-memory platform for development and tests.

    `fail(operation, message)` makes the named operation raise BackendError
    until `clear_failures()` is called. Profile updates are echoed to matching
    realtime subscribers, as the hosted change feed would.
    """

    base_auth_url = "https://auth.example.test/authorize"

    def __init__(
        self,
        *,
        require_email_confirmation: bool = False,
        profile_fetch_delay: float = 0.0,
    ):
        self.require_email_confirmation = require_email_confirmation
        self.profile_fetch_delay = profile_fetch_delay
        self.accounts: Dict[str, _Account] = {}
        self.profiles: Dict[str, dict] = {}
        self.session: Optional[AuthSession] = None
        self.tokens: Dict[str, AuthUser] = {}
        self.failures: Dict[str, str] = {}
        self.password_resets: List[tuple[str, str]] = []
        self.oauth_requests: List[tuple[str, str]] = []
        self.profile_writes: List[tuple[str, dict]] = []
        self._auth_listeners: List[AuthStateCallback] = []
        self._subscriptions: Dict[str, tuple[str, ProfileRowCallback]] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.accounts.clear()
        self.profiles.clear()
        self.session = None
        self.tokens.clear()
        self.failures.clear()
        self.password_resets.clear()
        self.oauth_requests.clear()
        self.profile_writes.clear()
        self._subscriptions.clear()

    def fail(self, operation: str, message: str = "Service unavailable") -> None:
        self.failures[operation] = message

    def clear_failures(self) -> None:
        self.failures.clear()

    def _check(self, operation: str) -> None:
        message = self.failures.get(operation)
        if message is not None:
            raise BackendError(message)

    def register_user(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        confirmed: bool = True,
    ) -> AuthUser:
        user = AuthUser(
            id=str(uuid.uuid4()),
            email=email,
            user_metadata={"name": name} if name else {},
        )
        self.accounts[email.lower()] = _Account(
            user=user, password=password, confirmed=confirmed
        )
        return user

    def add_profile(self, row: dict) -> None:
        self.profiles[row["id"]] = copy.deepcopy(row)

    def start_session(self, user: AuthUser) -> AuthSession:
        """Installs a session without notifying listeners, as if restored at startup."""
        self.session = self._issue_session(user)
        return self.session

    def _issue_session(self, user: AuthUser) -> AuthSession:
        token = uuid.uuid4().hex
        self.tokens[token] = user
        return AuthSession(
            access_token=token,
            refresh_token=uuid.uuid4().hex,
            expires_at=int(time.time()) + 3600,
            user=user,
        )

    def emit_auth_event(self, event: str) -> None:
        for callback in list(self._auth_listeners):
            callback(event, self.session)

    async def get_session(self) -> Optional[AuthSession]:
        self._check("get_session")
        return self.session

    async def get_current_user(self) -> Optional[AuthUser]:
        self._check("get_current_user")
        return self.session.user if self.session else None

    async def sign_in_with_password(self, email: str, password: str) -> AuthResponse:
        self._check("sign_in_with_password")
        account = self.accounts.get(email.lower())
        if account is None or account.password != password:
            raise BackendError("Invalid login credentials", code="invalid_credentials")
        if not account.confirmed:
            raise BackendError("Email not confirmed", code="email_not_confirmed")
        self.session = self._issue_session(account.user)
        self.emit_auth_event("SIGNED_IN")
        return AuthResponse(user=account.user, session=self.session)

    async def sign_up(
        self, email: str, password: str, metadata: Optional[dict] = None
    ) -> AuthResponse:
        self._check("sign_up")
        if email.lower() in self.accounts:
            raise BackendError("User already registered", code="user_already_exists")
        user = self.register_user(
            email,
            password,
            name=(metadata or {}).get("name"),
            confirmed=not self.require_email_confirmation,
        )
        if self.require_email_confirmation:
            return AuthResponse(user=user, session=None)
        self.session = self._issue_session(user)
        self.emit_auth_event("SIGNED_IN")
        return AuthResponse(user=user, session=self.session)

    async def sign_out(self) -> None:
        self._check("sign_out")
        if self.session:
            self.tokens.pop(self.session.access_token, None)
        self.session = None
        self.emit_auth_event("SIGNED_OUT")

    async def sign_in_with_oauth(self, provider: str, redirect_to: str) -> str:
        self._check("sign_in_with_oauth")
        self.oauth_requests.append((provider, redirect_to))
        query = urlencode({"provider": provider, "redirect_to": redirect_to})
        return f"{self.base_auth_url}?{query}"

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        self._check("reset_password_for_email")
        self.password_resets.append((email, redirect_to))

    def on_auth_state_change(self, callback: AuthStateCallback) -> AuthListener:
        self._auth_listeners.append(callback)
        return _InMemoryListener(self._auth_listeners, callback)

    async def verify_token(self, token: str) -> Optional[AuthUser]:
        if "verify_token" in self.failures:
            logger.error("Token verification failed: %s", self.failures["verify_token"])
            return None
        return self.tokens.get(token)

    async def get_user_by_id(self, user_id: str) -> Optional[AuthUser]:
        if "get_user_by_id" in self.failures:
            logger.error(
                "Error fetching user %s: %s", user_id, self.failures["get_user_by_id"]
            )
            return None
        for account in self.accounts.values():
            if account.user.id == user_id:
                return account.user
        return None

    async def list_users(self, page: int = 1, per_page: int = 50) -> List[AuthUser]:
        self._check("list_users")
        users = [account.user for account in self.accounts.values()]
        start = (max(page, 1) - 1) * per_page
        return users[start : start + per_page]

    async def test_connection(self) -> bool:
        if "test_connection" in self.failures:
            logger.error("Supabase connection failed: %s", self.failures["test_connection"])
            return False
        return True

    async def fetch_profile_row(self, user_id: str) -> Optional[dict]:
        self._check("fetch_profile_row")
        if self.profile_fetch_delay:
            await asyncio.sleep(self.profile_fetch_delay)
        row = self.profiles.get(user_id)
        return copy.deepcopy(row) if row is not None else None

    async def profile_exists(self, user_id: str) -> bool:
        self._check("profile_exists")
        return user_id in self.profiles

    async def insert_profile_row(self, row: dict) -> dict:
        self._check("insert_profile_row")
        if row["id"] in self.profiles:
            raise BackendError(
                'duplicate key value violates unique constraint "profiles_pkey"',
                code="23505",
            )
        self.profiles[row["id"]] = copy.deepcopy(row)
        self.profile_writes.append(("insert", copy.deepcopy(row)))
        return copy.deepcopy(row)

    async def update_profile_row(self, user_id: str, row: dict) -> dict:
        self._check("update_profile_row")
        stored = self.profiles.get(user_id)
        if stored is None:
            raise BackendError("Profile not found", code="PGRST116")
        stored.update(copy.deepcopy(row))
        self.profile_writes.append(("update", copy.deepcopy(row)))
        self.emit_profile_update(stored)
        return copy.deepcopy(stored)

    async def subscribe_profile_updates(
        self, user_id: str, callback: ProfileRowCallback
    ) -> Any:
        self._check("subscribe_profile_updates")
        handle = uuid.uuid4().hex
        self._subscriptions[handle] = (user_id, callback)
        return handle

    async def remove_subscription(self, handle: Any) -> None:
        self._subscriptions.pop(handle, None)

    @property
    def subscribed_user_ids(self) -> List[str]:
        return [user_id for user_id, _ in self._subscriptions.values()]

    def emit_profile_update(self, row: dict) -> None:
        """Delivers an UPDATE notification to subscribers filtered on the row's id."""
        for user_id, callback in list(self._subscriptions.values()):
            if user_id == row.get("id"):
                callback(copy.deepcopy(row))
