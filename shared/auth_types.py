# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Any, Optional

from dacite import Config, from_dict

from shared.user_profile import Profile

_DACITE_CONFIG = Config(check_types=False)


@dataclass
class AuthUser:
    """The auth record of a user, independent of the SDK's own models."""

    id: str
    email: Optional[str] = None
    user_metadata: dict = field(default_factory=dict)
    app_metadata: dict = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        name = (self.user_metadata or {}).get("name")
        if name:
            return name
        return (self.email or "").split("@")[0]

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "userMetadata": dict(self.user_metadata or {}),
        }


@dataclass
class AuthSession:
    """An authenticated login instance."""

    access_token: str
    user: AuthUser
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None


@dataclass
class AuthResponse:
    """Result of a password sign-in or sign-up. Session is None until confirmed."""

    user: AuthUser
    session: Optional[AuthSession] = None


def auth_user_from_dict(data: Optional[dict]) -> Optional[AuthUser]:
    if not data:
        return None
    user = from_dict(data_class=AuthUser, data=data, config=_DACITE_CONFIG)
    user.id = str(user.id)
    user.user_metadata = user.user_metadata or {}
    user.app_metadata = user.app_metadata or {}
    return user


def auth_session_from_dict(data: Optional[dict]) -> Optional[AuthSession]:
    if not data or not data.get("user"):
        return None
    session = from_dict(data_class=AuthSession, data=data, config=_DACITE_CONFIG)
    session.user = auth_user_from_dict(data["user"])
    return session


@dataclass
class OperationResult:
    """Uniform outcome of a session/profile operation."""

    success: bool
    user: Optional[Profile] = None
    error: Optional[str] = None
    message: Optional[str] = None
    requires_email_confirmation: bool = False
    url: Optional[str] = None

    @classmethod
    def ok(cls, **kwargs: Any) -> "OperationResult":
        return cls(success=True, **kwargs)

    @classmethod
    def failed(cls, error: str) -> "OperationResult":
        return cls(success=False, error=error)

    def as_dict(self) -> dict:
        if not self.success:
            return {"success": False, "error": self.error}
        payload: dict = {"success": True}
        if self.user is not None:
            payload["user"] = self.user.as_dict()
        if self.requires_email_confirmation:
            payload["requiresEmailConfirmation"] = True
        if self.message:
            payload["message"] = self.message
        if self.url:
            payload["url"] = self.url
        return payload
