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

"""Read-only card of a profile, grouped the way the profile modal shows it."""

from __future__ import annotations

from typing import List

from shared.user_profile import Profile

PROFILE_TABS = ("about", "experience", "education", "skills")

NO_BIO = "No bio information available."
NO_EXPERIENCE = "No experience information available."
NO_EDUCATION = "No education information available."
NO_SKILLS = "No skills information available."

_SOCIAL_LINKS = (
    ("github_url", "GitHub"),
    ("linkedin_url", "LinkedIn"),
    ("portfolio_url", "Portfolio"),
)


def _social_links(profile: Profile) -> List[dict]:
    links = []
    for attr, label in _SOCIAL_LINKS:
        url = getattr(profile, attr)
        if url:
            links.append({"label": label, "url": url})
    return links


def _experience_items(profile: Profile) -> List[dict]:
    items = []
    for entry in profile.experience:
        item = {
            "title": entry.title,
            "company": entry.company,
            "duration": entry.duration,
        }
        if entry.description:
            item["description"] = entry.description
        if entry.technologies:
            item["technologies"] = ", ".join(entry.technologies)
        items.append(item)
    return items


def _education_items(profile: Profile) -> List[dict]:
    items = []
    for entry in profile.education:
        item = {
            "degree": entry.degree,
            "institution": entry.institution,
            "duration": entry.duration,
        }
        if entry.description:
            item["description"] = entry.description
        items.append(item)
    return items


def build_profile_card(profile: Profile) -> dict:
    """
    Builds the display data for one profile.

    Sections without content carry an `empty` message instead of items.
    """
    experience = _experience_items(profile)
    education = _education_items(profile)
    skills = profile.skill_names

    card = {
        "header": {
            "name": profile.name,
            "title": profile.display_title,
            "location": profile.location,
        },
        "about": {
            "bio": profile.bio or NO_BIO,
            "email": profile.email,
            "social_links": _social_links(profile),
        },
        "experience": {"items": experience},
        "education": {"items": education},
        "skills": {"items": skills},
    }
    if not experience:
        card["experience"]["empty"] = NO_EXPERIENCE
    if not education:
        card["education"]["empty"] = NO_EDUCATION
    if not skills:
        card["skills"]["empty"] = NO_SKILLS
    return card
