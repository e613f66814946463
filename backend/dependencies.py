"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from backend.config import get_settings
from backend.supabase_client import BackendClient, InMemoryBackend, SupabaseBackend

_backend: BackendClient | None = None


async def get_backend() -> BackendClient:
    """
    Return a singleton backend facade shared by every request.
    """
    global _backend
    if _backend:
        return _backend

    settings = get_settings()
    if settings.use_in_memory_backends:
        _backend = InMemoryBackend()
    else:
        _backend = await SupabaseBackend.create(settings)
    return _backend


def reset_backend() -> None:
    """Drop the cached backend so the next request builds a fresh one."""
    global _backend
    _backend = None
