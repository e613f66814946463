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

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from shared.validation import ValidationResult, validate_user


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class UserRecord:
    """A user as handled by the API layer."""

    name: str
    email: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    @classmethod
    def create(cls, data: Mapping[str, Any]) -> "UserRecord":
        record = cls(name=data.get("name"), email=data.get("email"))
        if data.get("id"):
            record.id = data["id"]
        if data.get("created_at"):
            record.created_at = data["created_at"]
        if data.get("updated_at"):
            record.updated_at = data["updated_at"]
        return record

    @staticmethod
    def validate(data: Mapping[str, Any]) -> ValidationResult:
        return validate_user(data)

    def update(self, data: Mapping[str, Any]) -> "UserRecord":
        # Empty values leave the current field in place.
        name: Optional[str] = data.get("name")
        email: Optional[str] = data.get("email")
        if name:
            self.name = name
        if email:
            self.email = email
        self.updated_at = _now_iso()
        return self

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
