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

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
SCRIPT_TAG_PATTERN = re.compile(
    r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE
)

NAME_REQUIRED = "Name is required"
EMAIL_REQUIRED = "Email is required"
EMAIL_INVALID = "Invalid email format"


@dataclass
class ValidationResult:
    """Outcome of validating user-submitted fields."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_PATTERN.match(value or ""))


def validate_user(data: Mapping[str, Any]) -> ValidationResult:
    """
    Validates the name and email of a user payload.

    Args:
        data: Mapping holding the submitted ``name`` and ``email``.

    Returns:
        A ValidationResult listing every problem found. Nothing is raised.
    """
    errors: List[str] = []

    if _is_blank(data.get("name")):
        errors.append(NAME_REQUIRED)

    email = data.get("email")
    if _is_blank(email):
        errors.append(EMAIL_REQUIRED)
    elif not is_valid_email(email):
        errors.append(EMAIL_INVALID)

    return ValidationResult(is_valid=not errors, errors=errors)


def sanitize_input(value: Any) -> Any:
    """Trims strings and strips embedded script blocks; other values pass through."""
    if not isinstance(value, str):
        return value
    return SCRIPT_TAG_PATTERN.sub("", value.strip())
