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
"""Tests for step outcome classification."""

from __future__ import annotations

import pytest

from sagarunner.kernel.exceptions import ApiStatusError, PrerequisiteMissingError
from sagarunner.saga.core.outcome import (
    Blocked,
    Failed,
    Skipped,
    StepExecutionError,
    StepResultPayload,
    block_step,
    outcome_from_error,
)
from sagarunner.saga.types import StepStatus


class TestStepExecutionError:
    def test_rejects_non_terminal_failure_status(self) -> None:
        with pytest.raises(ValueError):
            StepExecutionError(StepStatus.PASSED, "nope")

    def test_block_step_prefixes_step_key(self) -> None:
        with pytest.raises(StepExecutionError) as exc_info:
            block_step("customer-join-waitlist-flow", "entry not visible", {"queueId": "q1"})

        assert exc_info.value.status is StepStatus.BLOCKED
        assert exc_info.value.message == "customer-join-waitlist-flow: entry not visible"
        assert exc_info.value.evidence == {"queueId": "q1"}


class TestOutcomeFromError:
    @pytest.mark.parametrize(
        ("status", "variant"),
        [(StepStatus.FAILED, Failed), (StepStatus.BLOCKED, Blocked), (StepStatus.SKIPPED, Skipped)],
    )
    def test_keeps_explicit_classification(self, status: StepStatus, variant: type) -> None:
        outcome = outcome_from_error(StepExecutionError(status, "why", {"k": 1}))

        assert isinstance(outcome, variant)
        assert outcome.message == "why"
        assert outcome.evidence == {"k": 1}

    def test_api_errors_fail(self) -> None:
        outcome = outcome_from_error(ApiStatusError("GET", "/x", 500, {"success": False}))
        assert isinstance(outcome, Failed)
        assert outcome.message.startswith("HTTP 500 for GET /x")

    def test_missing_prerequisite_fails(self) -> None:
        outcome = outcome_from_error(PrerequisiteMissingError("bizId is required before booking."))
        assert outcome == Failed("bizId is required before booking.")

    def test_empty_message_uses_type_name(self) -> None:
        assert outcome_from_error(RuntimeError()).message == "RuntimeError"


class TestFailurePayload:
    def test_flags_merge_with_evidence(self) -> None:
        payload = Blocked("gap", {"expected": "handler"}).failure_payload()

        assert payload.note == "Step blocked: gap"
        assert payload.evidence == {
            "error": "gap",
            "failed": False,
            "blocked": True,
            "skipped": False,
            "expected": "handler",
        }

    def test_result_payload_omits_absent_evidence(self) -> None:
        assert StepResultPayload("done").to_dict() == {"note": "done"}
