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

"""Key-case conversion between the store and application conventions."""

from __future__ import annotations

import re
from typing import Any, Literal

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

Direction = Literal["snake_to_camel", "camel_to_snake"]


def snake_to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def camel_to_snake(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def convert_keys(data: Any, direction: Direction, recursive: bool = True) -> Any:
    """
    Converts dictionary keys between snake_case and camelCase.

    Lists are walked element by element. With ``recursive=False`` only the
    keys of the outermost mapping are renamed and nested values are returned
    untouched.
    """
    convert = snake_to_camel if direction == "snake_to_camel" else camel_to_snake
    if isinstance(data, dict):
        return {
            convert(key): (
                convert_keys(value, direction) if recursive else value
            )
            for key, value in data.items()
        }
    if isinstance(data, list) and recursive:
        return [convert_keys(item, direction) for item in data]
    return data
