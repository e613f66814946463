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

"""
Profile model and the translation between the `profiles` table and the
application convention.

Rows in the store use snake_case columns (`github_url`, `work_experience`).
The application convention uses camelCase keys and names work history
`experience`. Every read goes through `profile_from_row` and every write
through `profile_to_row` or `fields_to_row`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Tuple

from shared.json_utils import convert_keys


class Role(StrEnum):
    FOUNDER = "founder"
    PROFESSIONAL = "professional"
    INVESTOR = "investor"
    STUDENT = "student"
    OTHER = "other"


ROLE_DISPLAY_TITLES = {
    Role.FOUNDER: "The Founder",
    Role.PROFESSIONAL: "The Professional",
    Role.INVESTOR: "The Investor",
    Role.STUDENT: "The Student",
}
DEFAULT_DISPLAY_TITLE = "Developer"

PROFILES_TABLE = "profiles"

SCALAR_COLUMNS = (
    "id",
    "email",
    "name",
    "bio",
    "location",
    "title",
    "role",
    "github_url",
    "linkedin_url",
    "portfolio_url",
)
SEQUENCE_COLUMNS = ("skills", "education", "work_experience")
PROFILE_COLUMNS = SCALAR_COLUMNS + SEQUENCE_COLUMNS

# Columns a profile update may touch. `id` and `email` are only written on insert.
WRITABLE_COLUMNS = frozenset(PROFILE_COLUMNS) - {"id", "email"}

# Application keys whose store column is not the plain snake_case spelling.
_APP_TO_STORE = {"experience": "work_experience"}


def parse_role(value: Any) -> Optional[str]:
    """Returns the matching Role, or the raw value when it is not a known role."""
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return value


@dataclass
class Skill:
    """
    A skill entry. Stored either as a bare name or as a record with a name.

    `details` is None for bare names; for records it holds every key other
    than `name`. `has_name_key` is False for records stored without a `name`
    key, so they are written back without one.
    """

    name: Optional[str]
    details: Optional[dict] = None
    has_name_key: bool = field(default=True, repr=False)

    @property
    def is_structured(self) -> bool:
        return self.details is not None

    @classmethod
    def from_store(cls, value: Any) -> "Skill":
        if isinstance(value, Skill):
            return value
        if isinstance(value, Mapping):
            details = {key: item for key, item in value.items() if key != "name"}
            return cls(
                name=value.get("name"), details=details, has_name_key="name" in value
            )
        return cls(name=str(value))

    def to_store(self) -> Any:
        if self.details is None:
            return self.name
        if not self.has_name_key:
            return dict(self.details)
        return {"name": self.name, **self.details}


class _StoreEntry:
    """
    Shared store conversion for list entries.

    `_STORE_KEYS` maps each attribute to the keys it may be stored under, in
    lookup order. The key actually read is remembered in `aliases` so the
    entry is written back the way it came in, explicit nulls included.
    Attributes never read from the store are written only when set.
    Unrecognised keys ride along in `extra`.
    """

    _STORE_KEYS: ClassVar[Dict[str, Tuple[str, ...]]] = {}

    @classmethod
    def from_store(cls, data: Any):
        if isinstance(data, cls):
            return data
        data = dict(data or {})
        values: Dict[str, Any] = {}
        aliases: Dict[str, str] = {}
        used = set()
        for attr, keys in cls._STORE_KEYS.items():
            for key in keys:
                if key in data:
                    values[attr] = data[key]
                    used.add(key)
                    aliases[attr] = key
                    break
        extra = {key: value for key, value in data.items() if key not in used}
        return cls(**values, aliases=aliases, extra=extra)

    def to_store(self) -> dict:
        entry = dict(self.extra)
        for attr in self._STORE_KEYS:
            value = getattr(self, attr)
            if attr in self.aliases:
                entry[self.aliases[attr]] = value
            elif value is not None:
                entry[attr] = value
        return entry


@dataclass
class WorkExperience(_StoreEntry):
    title: Optional[str] = None
    company: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    technologies: Optional[List[str]] = None
    aliases: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    _STORE_KEYS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "title": ("title",),
        "company": ("company",),
        "duration": ("duration", "period"),
        "description": ("description",),
        "technologies": ("technologies",),
    }


@dataclass
class Education(_StoreEntry):
    degree: Optional[str] = None
    institution: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    aliases: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    _STORE_KEYS: ClassVar[Dict[str, Tuple[str, ...]]] = {
        "degree": ("degree",),
        "institution": ("institution",),
        "duration": ("duration", "period"),
        "description": ("description", "details"),
    }


@dataclass
class Profile:
    """In-memory copy of a `profiles` row. The store remains the source of truth."""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    title: Optional[str] = None
    role: Optional[str] = None
    github_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    portfolio_url: Optional[str] = None
    skills: List[Skill] = field(default_factory=list)
    experience: List[WorkExperience] = field(default_factory=list)
    education: List[Education] = field(default_factory=list)
    needs_onboarding: bool = False
    # Server-managed columns such as created_at; never written back.
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_title(self) -> str:
        if self.title:
            return self.title
        if self.role in ROLE_DISPLAY_TITLES:
            return ROLE_DISPLAY_TITLES[self.role]
        return self.role or DEFAULT_DISPLAY_TITLE

    @property
    def skill_names(self) -> List[str]:
        return [skill.name for skill in self.skills if skill.name]

    def has_extended_fields(self) -> bool:
        return any(
            (
                self.bio,
                self.location,
                self.role,
                self.title,
                self.github_url,
                self.linkedin_url,
                self.portfolio_url,
                self.skills,
                self.experience,
                self.education,
            )
        )

    def as_dict(self) -> dict:
        """Returns the profile in the application (camelCase) convention."""
        snake = {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "bio": self.bio,
            "location": self.location,
            "title": self.title,
            "role": self.role,
            "github_url": self.github_url,
            "linkedin_url": self.linkedin_url,
            "portfolio_url": self.portfolio_url,
            "skills": [skill.to_store() for skill in self.skills],
            "experience": [entry.to_store() for entry in self.experience],
            "education": [entry.to_store() for entry in self.education],
            "needs_onboarding": self.needs_onboarding,
        }
        return convert_keys(snake, "snake_to_camel", recursive=False)


def _skills_from_store(values: Optional[list]) -> List[Skill]:
    return [Skill.from_store(value) for value in values or [] if value is not None]


def profile_from_row(row: Mapping[str, Any]) -> Profile:
    """Translates a store row into a Profile."""
    profile = Profile(
        id=str(row["id"]),
        email=row.get("email"),
        name=row.get("name"),
        bio=row.get("bio"),
        location=row.get("location"),
        title=row.get("title"),
        role=parse_role(row.get("role")),
        github_url=row.get("github_url"),
        linkedin_url=row.get("linkedin_url"),
        portfolio_url=row.get("portfolio_url"),
        skills=_skills_from_store(row.get("skills")),
        experience=[
            WorkExperience.from_store(entry) for entry in row.get("work_experience") or []
        ],
        education=[Education.from_store(entry) for entry in row.get("education") or []],
        extra={key: value for key, value in row.items() if key not in PROFILE_COLUMNS},
    )
    profile.needs_onboarding = not profile.has_extended_fields()
    return profile


def profile_to_row(profile: Profile) -> dict:
    """Translates a Profile into a full store row."""
    return {
        "id": profile.id,
        "email": profile.email,
        "name": profile.name,
        "bio": profile.bio,
        "location": profile.location,
        "title": profile.title,
        "role": str(profile.role) if profile.role is not None else None,
        "github_url": profile.github_url,
        "linkedin_url": profile.linkedin_url,
        "portfolio_url": profile.portfolio_url,
        "skills": [skill.to_store() for skill in profile.skills],
        "education": [entry.to_store() for entry in profile.education],
        "work_experience": [entry.to_store() for entry in profile.experience],
    }


def _normalize_column(column: str, value: Any) -> Any:
    if column == "skills":
        return [skill.to_store() for skill in _skills_from_store(value)]
    if column == "work_experience":
        return [WorkExperience.from_store(entry).to_store() for entry in value or []]
    if column == "education":
        return [Education.from_store(entry).to_store() for entry in value or []]
    if column == "role" and value is not None:
        return str(value)
    return value


def fields_to_row(fields: Mapping[str, Any]) -> dict:
    """
    Translates application-convention profile fields into store columns.

    Only supplied keys are translated. Keys with no writable column
    (`id`, `email`, `needsOnboarding`, anything unknown) are left out.
    """
    snake = convert_keys(dict(fields), "camel_to_snake", recursive=False)
    row = {}
    for key, value in snake.items():
        column = _APP_TO_STORE.get(key, key)
        if column in WRITABLE_COLUMNS:
            row[column] = _normalize_column(column, value)
    return row


def minimal_profile(
    user_id: str,
    email: Optional[str],
    name: Optional[str],
    needs_onboarding: bool = False,
) -> Profile:
    """A profile carrying only identity fields, used until the stored row is known."""
    return Profile(
        id=user_id,
        email=email,
        name=name,
        needs_onboarding=needs_onboarding,
    )
