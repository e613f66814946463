"""
Uniform JSON envelopes for API responses.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(data: Any = None, message: str = "Success") -> dict:
    return {
        "success": True,
        "message": message,
        "data": data,
        "timestamp": _timestamp(),
    }


def error_response(message: str = "Error", code: str = "ERROR") -> dict:
    return {
        "success": False,
        "message": message,
        "code": code,
        "timestamp": _timestamp(),
    }
