"""
Read-only viewer for another user's profile, kept current through realtime updates.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.realtime_profile import RealtimeProfileSubscription
from backend.supabase_client import BackendClient
from shared.profile_view import PROFILE_TABS, build_profile_card
from shared.user_profile import Profile, profile_from_row

logger = logging.getLogger(__name__)


class ProfileViewer:
    def __init__(self, backend: BackendClient, profile: Optional[Profile] = None):
        self.profile = profile
        self.active_tab = PROFILE_TABS[0]
        self._subscription = RealtimeProfileSubscription(backend, self._on_update)

    @property
    def is_open(self) -> bool:
        return self._subscription.active

    async def show(self, profile: Optional[Profile]) -> None:
        """Switches the viewer to `profile`, moving the realtime subscription with it."""
        self.profile = profile
        await self._subscription.watch(profile.id if profile else None)

    async def open(self) -> None:
        await self.show(self.profile)

    async def close(self) -> None:
        await self._subscription.close()

    def select_tab(self, tab: str) -> None:
        if tab not in PROFILE_TABS:
            raise ValueError(f"Unknown profile tab: {tab}")
        self.active_tab = tab

    def render(self) -> Optional[dict]:
        if self.profile is None:
            return None
        card = build_profile_card(self.profile)
        return {"tab": self.active_tab, "header": card["header"], "content": card[self.active_tab]}

    def _on_update(self, row: dict) -> None:
        try:
            self.profile = profile_from_row(row)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Ignoring malformed profile update: %s", exc)

    async def __aenter__(self) -> "ProfileViewer":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
