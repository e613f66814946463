"""
Session and profile state for one client instance.

The manager is the single owner of "who is logged in" and "what is their
profile". It is constructed explicitly with a backend facade, started with
`initialize()` and torn down with `dispose()`. Every public operation returns
an OperationResult and never raises provider errors past its own boundary.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, List, Mapping, Optional, Set, Tuple

from auth.realtime_profile import RealtimeProfileSubscription
from backend.config import Settings
from backend.supabase_client import AuthListener, BackendClient
from shared.auth_types import AuthSession, AuthUser, OperationResult
from shared.user_profile import (
    Profile,
    fields_to_row,
    minimal_profile,
    profile_from_row,
)

logger = logging.getLogger(__name__)

NO_USER_LOGGED_IN = "No user logged in"
EMAIL_CONFIRMATION_MESSAGE = "Please check your email to confirm your account."

GOOGLE_PROVIDER = "google"
MICROSOFT_PROVIDER = "azure"

StateListener = Callable[["SessionManager"], None]


def _message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


class SessionManager:
    def __init__(
        self,
        backend: BackendClient,
        *,
        site_url: str = "",
        profile_fetch_timeout: float = 5.0,
        signup_reconcile_delay: float = 0.1,
        user_lookup_retry_delay: float = 0.3,
    ):
        self._backend = backend
        self._site_url = site_url.rstrip("/")
        self._profile_fetch_timeout = profile_fetch_timeout
        self._signup_reconcile_delay = signup_reconcile_delay
        self._user_lookup_retry_delay = user_lookup_retry_delay

        self.user: Optional[Profile] = None
        self.session: Optional[AuthSession] = None
        self.loading = True
        self.show_auth_modal = False

        self._auth_listener: Optional[AuthListener] = None
        self._background_tasks: Set[asyncio.Task] = set()
        self._listeners: List[StateListener] = []
        self._realtime = RealtimeProfileSubscription(backend, self._apply_realtime_row)

    @classmethod
    def from_settings(cls, backend: BackendClient, settings: Settings) -> "SessionManager":
        return cls(
            backend,
            site_url=settings.site_url,
            profile_fetch_timeout=settings.profile_fetch_timeout_seconds,
            signup_reconcile_delay=settings.signup_reconcile_delay_seconds,
            user_lookup_retry_delay=settings.user_lookup_retry_delay_seconds,
        )

    # State

    @property
    def is_authenticated(self) -> bool:
        return self.session is not None and self.user is not None

    @property
    def needs_onboarding(self) -> bool:
        """A session exists but its profile is missing or still empty."""
        if self.session is None:
            return False
        return self.user is None or self.user.needs_onboarding

    @property
    def realtime_user_id(self) -> Optional[str]:
        return self._realtime.user_id

    @property
    def background_tasks(self) -> frozenset:
        return frozenset(self._background_tasks)

    def snapshot(self) -> dict:
        return {
            "user": self.user.as_dict() if self.user else None,
            "sessionUserId": self.session.user.id if self.session else None,
            "loading": self.loading,
            "isAuthenticated": self.is_authenticated,
            "needsOnboarding": self.needs_onboarding,
            "showAuthModal": self.show_auth_modal,
        }

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Registers a state-change callback. Returns a function that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("State listener failed")

    def open_auth_modal(self) -> None:
        self.show_auth_modal = True
        self._notify()

    def close_auth_modal(self) -> None:
        self.show_auth_modal = False
        self._notify()

    def _set_session(self, session: Optional[AuthSession]) -> None:
        self.session = session
        self._notify()

    async def _set_user(self, profile: Optional[Profile]) -> None:
        self.user = profile
        self._notify()
        try:
            await self._realtime.watch(profile.id if profile else None)
        except Exception as exc:
            logger.warning("Could not update realtime profile subscription: %s", exc)

    def _is_current_user(self, user_id: str) -> bool:
        if self.user is not None and self.user.id == user_id:
            return True
        return self.session is not None and self.session.user.id == user_id

    def _apply_realtime_row(self, row: dict) -> None:
        if self.user is None or str(row.get("id")) != self.user.id:
            return
        try:
            profile = profile_from_row(row)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed profile update: %s", exc)
            return
        self.user = profile
        self._notify()

    # Lifecycle

    async def initialize(self) -> None:
        if self._auth_listener is None:
            self._auth_listener = self._backend.on_auth_state_change(
                self._on_auth_state_change
            )
        try:
            session = await self._backend.get_session()
        except Exception as exc:
            logger.error("Error restoring session: %s", exc)
            session = None
        await self._resolve_session(session)

    async def dispose(self) -> None:
        if self._auth_listener is not None:
            self._auth_listener.unsubscribe()
            self._auth_listener = None
        tasks = list(self._background_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        try:
            await self._realtime.close()
        except Exception as exc:
            logger.warning("Could not close realtime profile subscription: %s", exc)

    async def __aenter__(self) -> "SessionManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    def _track(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task failed: %s", exc)

    async def wait_for_background_tasks(self) -> None:
        """Waits until every tracked background task has finished."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _on_auth_state_change(self, event: str, session: Optional[AuthSession]) -> None:
        logger.debug("Auth state changed: %s", event)
        self._track(self._resolve_session(session))

    async def _resolve_session(self, session: Optional[AuthSession]) -> None:
        self._set_session(session)
        if session is None:
            await self._set_user(None)
        else:
            if self.user is not None and self.user.id != session.user.id:
                await self._set_user(None)
            await self.fetch_profile(session.user.id)
        self.loading = False
        self._notify()

    # Profile reads

    async def _load_profile(self, user_id: str) -> Optional[Profile]:
        row = await self._backend.fetch_profile_row(user_id)
        return profile_from_row(row) if row else None

    async def fetch_profile(self, user_id: str) -> OperationResult:
        """
        Loads the stored profile for `user_id` into state.

        A missing row is not an error: the result is successful with no user
        and the current state is kept.
        """
        try:
            profile = await self._load_profile(user_id)
        except Exception as exc:
            logger.error("Error fetching profile: %s", exc)
            return OperationResult.failed(_message(exc))
        if profile is not None:
            await self._set_user(profile)
        return OperationResult.ok(user=profile)

    async def _fetch_within_timeout(self, user: AuthUser) -> Profile:
        # The shield keeps the fetch running past the timeout; its late result
        # is dropped.
        fetch = self._track(self._load_profile(user.id))
        try:
            profile = await asyncio.wait_for(
                asyncio.shield(fetch), self._profile_fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Profile fetch timed out after %.1fs, using auth user data",
                self._profile_fetch_timeout,
            )
            return minimal_profile(user.id, user.email, user.display_name)
        except Exception as exc:
            logger.warning("Could not fetch profile, using auth user data: %s", exc)
            return minimal_profile(user.id, user.email, user.display_name)
        if profile is None:
            return minimal_profile(
                user.id, user.email, user.display_name, needs_onboarding=True
            )
        return profile

    # Auth flows

    async def login(self, email: str, password: str) -> OperationResult:
        try:
            auth = await self._backend.sign_in_with_password(email, password)
        except Exception as exc:
            logger.error("Login error: %s", exc)
            return OperationResult.failed(_message(exc))

        self._set_session(auth.session)
        profile = await self._fetch_within_timeout(auth.user)
        await self._set_user(profile)
        self.close_auth_modal()
        return OperationResult.ok(user=profile)

    async def signup(self, email: str, password: str, name: str) -> OperationResult:
        try:
            auth = await self._backend.sign_up(email, password, {"name": name})
        except Exception as exc:
            logger.error("Signup error: %s", exc)
            return OperationResult.failed(_message(exc))

        placeholder = minimal_profile(auth.user.id, email, name, needs_onboarding=True)
        self._set_session(auth.session)
        await self._set_user(placeholder)
        self.close_auth_modal()
        self._track(self._reconcile_profile(auth.user.id, email, name))

        if auth.session is None:
            logger.info("Email confirmation required for %s", email)
            return OperationResult.ok(
                user=placeholder,
                requires_email_confirmation=True,
                message=EMAIL_CONFIRMATION_MESSAGE,
            )
        logger.info("Signup successful for %s, onboarding required", email)
        return OperationResult.ok(user=placeholder)

    async def _reconcile_profile(self, user_id: str, email: str, name: str) -> None:
        """Creates the profile row after signup if missing, then reloads it."""
        try:
            # Gives the new auth record time to become visible to reads.
            await asyncio.sleep(self._signup_reconcile_delay)
            if not await self._backend.profile_exists(user_id):
                await self._backend.insert_profile_row(
                    {"id": user_id, "email": email, "name": name}
                )
            profile = await self._load_profile(user_id)
        except Exception as exc:
            logger.warning("Background profile creation failed: %s", exc)
            return
        if profile is not None and self._is_current_user(user_id):
            await self._set_user(profile)

    async def logout(self) -> OperationResult:
        try:
            await self._backend.sign_out()
        except Exception as exc:
            logger.error("Logout error: %s", exc)
            return OperationResult.failed(_message(exc))
        self._set_session(None)
        await self._set_user(None)
        return OperationResult.ok()

    async def reset_password(self, email: str) -> OperationResult:
        try:
            await self._backend.reset_password_for_email(
                email, f"{self._site_url}/reset-password"
            )
        except Exception as exc:
            logger.error("Password reset error: %s", exc)
            return OperationResult.failed(_message(exc))
        return OperationResult.ok()

    async def sign_in_with_provider(self, provider: str) -> OperationResult:
        """
        Starts a redirect-based sign-in. Success means the redirect URL was
        issued; the login itself completes later through the auth listener.
        """
        try:
            url = await self._backend.sign_in_with_oauth(provider, self._site_url)
        except Exception as exc:
            logger.error("%s sign-in error: %s", provider, exc)
            return OperationResult.failed(_message(exc))
        return OperationResult.ok(url=url)

    async def sign_in_with_google(self) -> OperationResult:
        return await self.sign_in_with_provider(GOOGLE_PROVIDER)

    async def sign_in_with_microsoft(self) -> OperationResult:
        return await self.sign_in_with_provider(MICROSOFT_PROVIDER)

    # Profile writes

    async def _lookup_current_user(self) -> Optional[AuthUser]:
        try:
            return await self._backend.get_current_user()
        except Exception as exc:
            logger.warning("Could not look up current user: %s", exc)
            return None

    async def _resolve_acting_user(self) -> Tuple[Optional[str], Optional[str]]:
        session_email = self.session.user.email if self.session else None
        if self.user is not None:
            return self.user.id, self.user.email or session_email
        if self.session is not None:
            return self.session.user.id, session_email

        current = await self._lookup_current_user()
        if current is None:
            # Right after signup the auth record may not be readable yet.
            await asyncio.sleep(self._user_lookup_retry_delay)
            current = await self._lookup_current_user()
        if current is None:
            return None, None
        return current.id, current.email

    async def update_profile(self, fields: Mapping[str, Any]) -> OperationResult:
        """
        Saves application-convention profile fields for the acting user.

        Updates the stored row when it exists and inserts one otherwise. The
        cached profile is replaced only after the store accepted the write.
        """
        user_id, email = await self._resolve_acting_user()
        if not user_id:
            logger.error(
                "No user ID found for profile update (cached user: %s, session: %s)",
                self.user is not None,
                self.session is not None,
            )
            return OperationResult.failed(NO_USER_LOGGED_IN)

        try:
            row = fields_to_row(fields)
            if await self._backend.profile_exists(user_id):
                saved = await self._backend.update_profile_row(user_id, row)
            else:
                saved = await self._backend.insert_profile_row(
                    {**row, "id": user_id, "email": email}
                )
            profile = profile_from_row(saved)
        except Exception as exc:
            logger.error("Profile update error: %s", exc)
            return OperationResult.failed(_message(exc))

        await self._set_user(profile)
        return OperationResult.ok(user=profile)
