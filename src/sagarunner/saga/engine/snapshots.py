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
"""Snapshot projection: turns a step result into dashboard view blocks.

Pure presentation: the blocks are derived from the step key, its status and
the shape of its evidence, and building them never fails on unfamiliar data.
"""

from __future__ import annotations

import re
from typing import Any

from sagarunner.core.text import as_display_string, to_title_case
from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.types import StepStatus

SnapshotBlock = dict[str, Any]

_METRIC_KEY_RE = re.compile(r"(count|minor|total)$", re.IGNORECASE)

MAX_STATS = 8
MAX_TABLE_COLUMNS = 8
MAX_TABLE_ROWS = 20
MAX_KEY_VALUES = 16
MAX_CALENDAR_EVENTS = 10


def tone_from_status(status: StepStatus | str) -> str:
    match status:
        case StepStatus.PASSED:
            return "success"
        case StepStatus.FAILED | StepStatus.BLOCKED:
            return "error"
        case StepStatus.SKIPPED:
            return "warning"
        case _:
            return "info"


def _actions(*items: tuple[str, str, bool]) -> SnapshotBlock:
    return {
        "type": "actions",
        "title": "Visible actions",
        "items": [{"label": label, "kind": kind, "enabled": enabled} for label, kind, enabled in items],
    }


def _account_block(step_key: str, evidence: dict[str, Any], status: StepStatus | str) -> SnapshotBlock:
    passed = status == StepStatus.PASSED
    id_label = "Owner user id" if step_key == "owner-sign-up" else "Customer user id"
    user_id = evidence.get("ownerUserId") or evidence.get("customerUserId") or "n/a"
    email = evidence.get("ownerEmail") or evidence.get("email") or "n/a"
    return {
        "type": "form",
        "title": "Account session state",
        "fields": [
            {"label": id_label, "value": as_display_string(user_id)},
            {"label": "Email", "value": as_display_string(email)},
            {
                "label": "Session",
                "value": "Active" if passed else "Unavailable",
                "state": "success" if passed else "error",
            },
        ],
        "submitLabel": "Authenticated" if passed else "Failed",
    }


def _business_blocks(evidence: dict[str, Any]) -> list[SnapshotBlock]:
    return [
        {
            "type": "key_value",
            "title": "Business profile",
            "items": [
                {"label": "Name", "value": as_display_string(evidence.get("name", "n/a"))},
                {"label": "Slug", "value": as_display_string(evidence.get("slug", "n/a"))},
                {"label": "Timezone", "value": as_display_string(evidence.get("timezone", "UTC"))},
                {"label": "Currency", "value": as_display_string(evidence.get("currency", "USD"))},
            ],
        },
        _actions(("Edit business settings", "primary", True), ("Add location", "secondary", True)),
    ]


def _booking_blocks(evidence: dict[str, Any]) -> list[SnapshotBlock]:
    starts_at = evidence.get("confirmedStartAt") or evidence.get("requestedStartAt") or "n/a"
    return [
        {
            "type": "key_value",
            "title": "Booking confirmation",
            "items": [
                {"label": "Booking id", "value": as_display_string(evidence.get("id", "n/a"))},
                {"label": "Status", "value": as_display_string(evidence.get("status", "n/a"))},
                {"label": "Starts at", "value": as_display_string(starts_at)},
                {"label": "Total", "value": as_display_string(evidence.get("totalMinor", "n/a"))},
            ],
        },
        _actions(
            ("Download receipt", "secondary", True),
            ("Reschedule", "secondary", True),
            ("Cancel booking", "danger", True),
        ),
    ]


def _first_present(row: dict[str, Any], *keys: str, default: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return default


def _calendar_blocks(evidence: dict[str, Any]) -> list[SnapshotBlock]:
    rows = evidence.get("bookingPreview")
    if not isinstance(rows, list):
        rows = evidence.get("events") if isinstance(evidence.get("events"), list) else []
    events = []
    for row in rows[:MAX_CALENDAR_EVENTS]:
        if not isinstance(row, dict):
            continue
        start = _first_present(row, "confirmedStartAt", "requestedStartAt", "startAt", default="unknown")
        end = _first_present(row, "confirmedEndAt", "requestedEndAt", "endAt", default="unknown")
        events.append(
            {
                "timeRange": f"{as_display_string(start)} → {as_display_string(end)}",
                "title": as_display_string(_first_present(row, "offerTitle", "title", "id", default="Booking")),
                "status": "booked",
                "detail": as_display_string(row.get("status", "")),
            }
        )
    return [
        {
            "type": "calendar",
            "title": "Calendar snapshot",
            "timezone": as_display_string(evidence.get("timezone", "UTC")),
            "rangeLabel": as_display_string(evidence.get("rangeLabel", "Upcoming")),
            "events": events,
        },
        _actions(
            ("Filter by resource", "secondary", True),
            ("Create manual block", "secondary", True),
            ("Open booking detail", "primary", len(events) > 0),
        ),
    ]


def _generic_block(evidence: dict[str, Any]) -> SnapshotBlock:
    for key, value in evidence.items():
        if isinstance(value, list) and value and all(isinstance(entry, dict) for entry in value):
            columns = list(dict.fromkeys(col for row in value for col in row))[:MAX_TABLE_COLUMNS]
            return {
                "type": "table",
                "title": to_title_case(key),
                "columns": columns,
                "rows": [[row.get(col) for col in columns] for row in value[:MAX_TABLE_ROWS]],
            }

    scalars = [
        {"label": to_title_case(key), "value": as_display_string(value)}
        for key, value in evidence.items()
        if not isinstance(value, dict | list)
    ][:MAX_KEY_VALUES]
    if scalars:
        return {"type": "key_value", "title": "Screen details", "items": scalars}
    return {"type": "raw_json", "title": "Evidence payload", "data": evidence}


def build_snapshot_blocks(step_key: str, result: StepResultPayload, status: StepStatus | str) -> list[SnapshotBlock]:
    """Project a step result into an ordered list of view blocks."""
    headline = "completed" if status == StepStatus.PASSED else str(status)
    blocks: list[SnapshotBlock] = [
        {
            "type": "alert",
            "title": f"{to_title_case(step_key)} {headline}",
            "message": result.note,
            "tone": tone_from_status(status),
        }
    ]

    evidence = result.evidence if isinstance(result.evidence, dict) else None
    if not evidence:
        return blocks

    if step_key in ("owner-sign-up", "customer-sign-up"):
        blocks.append(_account_block(step_key, evidence, status))
    if step_key == "owner-create-biz":
        blocks.extend(_business_blocks(evidence))
    if step_key in ("customer-book-primary", "customer-two-concurrent"):
        blocks.extend(_booking_blocks(evidence))

    metrics = [(key, value) for key, value in evidence.items() if _METRIC_KEY_RE.search(key)]
    if metrics:
        blocks.append(
            {
                "type": "stats",
                "title": "What user sees at a glance",
                "items": [
                    {"label": to_title_case(key), "value": as_display_string(value)}
                    for key, value in metrics[:MAX_STATS]
                ],
            }
        )

    if step_key == "owner-calendar-review":
        blocks.extend(_calendar_blocks(evidence))
        return blocks

    blocks.append(_generic_block(evidence))
    return blocks
