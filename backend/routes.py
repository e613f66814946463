"""
HTTP routes for the Teamera API.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from backend.dependencies import get_backend
from backend.responses import error_response, success_response
from backend.schemas import (
    ErrorEnvelope,
    HelloResponse,
    SuccessEnvelope,
    ValidateUserRequest,
)
from backend.supabase_client import BackendClient, BackendError
from shared.profile_view import build_profile_card
from shared.user import UserRecord
from shared.user_profile import Profile, profile_from_row
from shared.validation import sanitize_input

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorEnvelope},
    401: {"model": ErrorEnvelope},
    404: {"model": ErrorEnvelope},
    502: {"model": ErrorEnvelope},
    503: {"model": ErrorEnvelope},
}


def _error(status_code: int, message: str, code: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(message, code))


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _load_profile(backend: BackendClient, user_id: str) -> Optional[Profile]:
    row = await backend.fetch_profile_row(user_id)
    return profile_from_row(row) if row else None


@router.get("/hello", response_model=HelloResponse)
def get_hello():
    return HelloResponse(
        message="Hello from Teamera API!",
        timestamp=datetime.now(timezone.utc).isoformat(),
        status="success",
    )


@router.get("/health", response_model=SuccessEnvelope, responses=_ERROR_RESPONSES)
async def health(backend: BackendClient = Depends(get_backend)):
    """
    Connectivity probe against the Supabase project. Diagnostics only.
    """
    if not await backend.test_connection():
        return _error(503, "Supabase connection failed", "BACKEND_UNAVAILABLE")
    return success_response({"connected": True}, message="Supabase connected")


@router.get("/me", response_model=SuccessEnvelope, responses=_ERROR_RESPONSES)
async def get_me(
    authorization: Optional[str] = Header(default=None),
    backend: BackendClient = Depends(get_backend),
):
    token = _bearer_token(authorization)
    if not token:
        return _error(401, "Missing bearer token", "UNAUTHORIZED")
    user = await backend.verify_token(token)
    if user is None:
        return _error(401, "Invalid or expired token", "UNAUTHORIZED")

    try:
        profile = await _load_profile(backend, user.id)
    except BackendError as exc:
        logger.error("Error fetching profile for %s: %s", user.id, exc.message)
        return _error(502, exc.message, "BACKEND_ERROR")

    return success_response(
        {
            "user": user.as_dict(),
            "profile": profile.as_dict() if profile else None,
            "card": build_profile_card(profile) if profile else None,
            "needsOnboarding": profile is None or profile.needs_onboarding,
        }
    )


@router.get("/users/{user_id}", response_model=SuccessEnvelope, responses=_ERROR_RESPONSES)
async def get_user(user_id: str, backend: BackendClient = Depends(get_backend)):
    user = await backend.get_user_by_id(user_id)
    if user is None:
        return _error(404, "User not found", "NOT_FOUND")
    return success_response(user.as_dict())


@router.get(
    "/profiles/{user_id}", response_model=SuccessEnvelope, responses=_ERROR_RESPONSES
)
async def get_profile(user_id: str, backend: BackendClient = Depends(get_backend)):
    try:
        profile = await _load_profile(backend, user_id)
    except BackendError as exc:
        logger.error("Error fetching profile for %s: %s", user_id, exc.message)
        return _error(502, exc.message, "BACKEND_ERROR")
    if profile is None:
        return _error(404, "Profile not found", "NOT_FOUND")
    return success_response(
        {"profile": profile.as_dict(), "card": build_profile_card(profile)}
    )


@router.post("/users/validate", response_model=SuccessEnvelope, responses=_ERROR_RESPONSES)
def validate_user(payload: ValidateUserRequest):
    cleaned = {
        "name": sanitize_input(payload.name),
        "email": sanitize_input(payload.email),
    }
    result = UserRecord.validate(cleaned)
    if not result.is_valid:
        return _error(400, "; ".join(result.errors), "VALIDATION_ERROR")
    return success_response(UserRecord.create(cleaned).as_dict(), message="User is valid")
