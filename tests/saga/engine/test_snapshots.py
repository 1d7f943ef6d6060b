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
"""Tests for snapshot view-block projection."""

from __future__ import annotations

import pytest

from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.engine.snapshots import MAX_TABLE_ROWS, build_snapshot_blocks, tone_from_status
from sagarunner.saga.types import StepStatus


def _types(blocks: list[dict]) -> list[str]:
    return [block["type"] for block in blocks]


class TestTone:
    @pytest.mark.parametrize(
        ("status", "tone"),
        [
            (StepStatus.PASSED, "success"),
            (StepStatus.FAILED, "error"),
            (StepStatus.BLOCKED, "error"),
            (StepStatus.SKIPPED, "warning"),
            (StepStatus.IN_PROGRESS, "info"),
        ],
    )
    def test_tone_from_status(self, status: StepStatus, tone: str) -> None:
        assert tone_from_status(status) == tone


class TestBuildSnapshotBlocks:
    def test_alert_only_without_evidence(self) -> None:
        blocks = build_snapshot_blocks("owner-configure-hours", StepResultPayload("Hours saved"), StepStatus.PASSED)

        assert blocks == [
            {
                "type": "alert",
                "title": "Owner Configure Hours completed",
                "message": "Hours saved",
                "tone": "success",
            }
        ]

    def test_failed_alert_names_status(self) -> None:
        blocks = build_snapshot_blocks(
            "customer-book-primary", StepResultPayload("Step failed: boom", {"error": "boom"}), StepStatus.FAILED
        )
        assert blocks[0]["title"] == "Customer Book Primary failed"
        assert blocks[0]["tone"] == "error"

    def test_sign_up_renders_account_form(self) -> None:
        evidence = {"ownerUserId": "u1", "ownerEmail": "o@example.com"}

        blocks = build_snapshot_blocks("owner-sign-up", StepResultPayload("ok", evidence), StepStatus.PASSED)

        assert _types(blocks) == ["alert", "form", "key_value"]
        form = blocks[1]
        assert form["fields"][0] == {"label": "Owner user id", "value": "u1"}
        assert form["fields"][2]["value"] == "Active"
        assert form["submitLabel"] == "Authenticated"

    def test_create_biz_renders_profile_and_actions(self) -> None:
        evidence = {"id": "b1", "name": "Biz", "slug": "biz"}

        blocks = build_snapshot_blocks("owner-create-biz", StepResultPayload("ok", evidence), StepStatus.PASSED)

        assert _types(blocks) == ["alert", "key_value", "actions", "key_value"]
        assert blocks[1]["items"][2] == {"label": "Timezone", "value": "UTC"}

    def test_booking_renders_confirmation_and_stats(self) -> None:
        evidence = {"id": "bk1", "status": "confirmed", "totalMinor": 15000, "requestedStartAt": "2026-01-01T10:00Z"}

        blocks = build_snapshot_blocks("customer-book-primary", StepResultPayload("ok", evidence), StepStatus.PASSED)

        assert _types(blocks) == ["alert", "key_value", "actions", "stats", "key_value"]
        assert {"label": "Starts at", "value": "2026-01-01T10:00Z"} in blocks[1]["items"]
        assert blocks[3]["items"] == [{"label": "TotalMinor", "value": "15000"}]

    def test_calendar_review_renders_calendar_and_stops(self) -> None:
        evidence = {
            "bookingCount": 2,
            "bookingPreview": [
                {"id": "bk1", "requestedStartAt": "a", "requestedEndAt": "b", "status": "confirmed"},
                "not-a-row",
                {"id": "bk2", "offerTitle": "Consult"},
            ],
        }

        blocks = build_snapshot_blocks("owner-calendar-review", StepResultPayload("ok", evidence), StepStatus.PASSED)

        assert _types(blocks) == ["alert", "stats", "calendar", "actions"]
        events = blocks[2]["events"]
        assert events[0]["timeRange"] == "a → b"
        assert events[1]["title"] == "Consult"
        assert events[1]["timeRange"] == "unknown → unknown"
        assert blocks[3]["items"][2]["enabled"] is True

    def test_list_of_rows_becomes_table(self) -> None:
        rows = [{"id": f"r{i}", "status": "ok"} for i in range(30)]

        blocks = build_snapshot_blocks("member-review-bookings", StepResultPayload("ok", {"bookings": rows}), "passed")

        table = blocks[-1]
        assert table["type"] == "table"
        assert table["title"] == "Bookings"
        assert table["columns"] == ["id", "status"]
        assert len(table["rows"]) == MAX_TABLE_ROWS

    def test_nested_only_evidence_falls_back_to_raw_json(self) -> None:
        evidence = {"policy": {"id": "p1"}}

        blocks = build_snapshot_blocks("owner-configure-pricing", StepResultPayload("ok", evidence), "passed")

        assert blocks[-1] == {"type": "raw_json", "title": "Evidence payload", "data": evidence}
