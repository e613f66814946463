"""
Pydantic schemas for the Teamera backend.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class HelloResponse(BaseModel):
    message: str
    timestamp: str
    status: Literal["success"]


class SuccessEnvelope(BaseModel):
    success: Literal[True]
    message: str
    data: Any = None
    timestamp: str


class ErrorEnvelope(BaseModel):
    success: Literal[False]
    message: str
    code: str
    timestamp: str


class ValidateUserRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=256)
    email: Optional[str] = Field(default=None, max_length=320)
