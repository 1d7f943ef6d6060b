# Copyright 2026 Firefly Software Solutions Inc.
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
"""Small text and timestamp helpers shared by sessions, fixtures and snapshots."""

from __future__ import annotations

import json
import random
import re
import string
from datetime import UTC, datetime
from typing import Any

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def now_iso() -> str:
    """UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def random_suffix(length: int = 8) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def to_slug(text: str, max_length: int = 80) -> str:
    cleaned = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    cleaned = re.sub(r"-+", "-", cleaned)
    return cleaned[:max_length].rstrip("-")


def to_title_case(text: str) -> str:
    """``owner-create-biz`` -> ``Owner Create Biz``."""
    spaced = re.sub(r"\s+", " ", re.sub(r"[_-]+", " ", text)).strip()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), spaced)


def as_display_string(value: Any) -> str:
    """Render an arbitrary evidence value as a single display string."""
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    try:
        return json.dumps(value, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(value)
