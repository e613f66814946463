"""
FastAPI application entry point for the Teamera backend.

Run with `uvicorn backend.app:create_app --factory`.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from backend.config import get_settings
from backend.routes import router


def create_app() -> FastAPI:
    # Fails fast with ConfigurationError when the Supabase settings are missing.
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Teamera API", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app
