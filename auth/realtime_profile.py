"""
Realtime subscription to one profile row.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from backend.supabase_client import BackendClient

logger = logging.getLogger(__name__)


class RealtimeProfileSubscription:
    """
    Keeps at most one live UPDATE subscription on a `profiles` row.

    `watch(user_id)` is idempotent for the same id and closes the previous
    channel before opening one for a different id. `watch(None)` only closes.
    Use `close()` or `async with` to release the channel.
    """

    def __init__(self, backend: BackendClient, on_update: Callable[[dict], None]):
        self._backend = backend
        self._on_update = on_update
        self._user_id: Optional[str] = None
        self._handle: Any = None
        self._lock = asyncio.Lock()

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def active(self) -> bool:
        return self._handle is not None

    async def watch(self, user_id: Optional[str]) -> None:
        async with self._lock:
            if user_id == self._user_id and (self._handle is not None or not user_id):
                return
            await self._close_current()
            self._user_id = user_id
            if not user_id:
                return
            self._handle = await self._backend.subscribe_profile_updates(
                user_id, self._dispatch
            )
            logger.debug("Subscribed to profile updates for %s", user_id)

    async def close(self) -> None:
        async with self._lock:
            await self._close_current()
            self._user_id = None

    async def _close_current(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        await self._backend.remove_subscription(handle)
        logger.debug("Unsubscribed from profile updates for %s", self._user_id)

    def _dispatch(self, row: dict) -> None:
        if not self._user_id or str(row.get("id")) != self._user_id:
            logger.debug("Dropping profile update for %s", row.get("id"))
            return
        logger.debug("Profile updated: %s", row.get("id"))
        self._on_update(row)

    async def __aenter__(self) -> "RealtimeProfileSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
