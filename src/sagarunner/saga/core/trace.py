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
"""Per-step API trace sink.

A fresh :class:`ApiTrace` is allocated for every step execution and handed to
the step as a traced client view (see :meth:`SagaApiClient.traced`). Nothing
is stored at module level, so traces of concurrently executing runs never mix.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from sagarunner.core.text import now_iso

TRACE_VALUE_LIMIT = 12_000


def trace_value(value: Any, limit: int = TRACE_VALUE_LIMIT) -> Any:
    """Return *value* unchanged, or a truncation marker when its JSON text exceeds *limit*."""
    if value is None:
        return None
    try:
        text = json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)
    if len(text) <= limit:
        return value
    return {"_truncated": True, "_preview": text[:limit], "_size": len(text)}


@dataclass(frozen=True)
class ApiTraceEntry:
    """One recorded HTTP call."""

    method: str
    path: str
    status: int
    request_body: Any = None
    response_body: Any = None
    at: str = ""

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"method": self.method, "path": self.path, "status": self.status}
        if self.request_body is not None:
            data["requestBody"] = self.request_body
        data["responseBody"] = self.response_body
        data["at"] = self.at
        return data


class ApiTrace:
    """Append-only log of the HTTP calls made by exactly one step execution."""

    def __init__(self, step_key: str = "") -> None:
        self.step_key = step_key
        self._entries: list[ApiTraceEntry] = []

    def record(
        self,
        method: str,
        path: str,
        status: int,
        request_body: Any = None,
        response_body: Any = None,
    ) -> ApiTraceEntry:
        entry = ApiTraceEntry(
            method=method,
            path=path,
            status=status,
            request_body=trace_value(request_body),
            response_body=trace_value(response_body),
            at=now_iso(),
        )
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[ApiTraceEntry, ...]:
        return tuple(self._entries)

    def observed_paths(self) -> list[str]:
        """Distinct requested paths in first-seen order."""
        return list(dict.fromkeys(entry.path for entry in self._entries))

    def calls(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self._entries]

    def to_payload(self) -> dict[str, Any]:
        return {"stepKey": self.step_key, "callCount": len(self._entries), "calls": self.calls()}

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ApiTraceEntry]:
        return iter(list(self._entries))
