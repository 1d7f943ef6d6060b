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
"""Tests for the exploratory validation fallback chain."""

from __future__ import annotations

from collections.abc import Callable

import httpx
import pytest
from conftest import FakeSagaApi, StoredRun, envelope, failure

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSessionFactory
from sagarunner.kernel.exceptions import ApiStatusError
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import StepExecutionError, StepResultPayload
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.engine.exploratory import (
    MISSING_CONTRACT_REASON,
    SKIPPED_REASON,
    ExploratoryValidator,
)
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.types import StepFamily, StepStatus

pytestmark = pytest.mark.anyio

STEP_KEY = "uc-need-validate-slot-cap"


@pytest.fixture
def scope(fake_api: FakeSagaApi, api: SagaApiClient, make_ctx: Callable[..., RunContext]) -> StepScope:
    fake_api.runs["run-1"] = StoredRun(id="run-1", saga_key="saga-a", steps=[])
    step = SagaRunStep.model_validate({"stepKey": STEP_KEY, "instruction": "Check something unusual"})
    return StepScope(make_ctx(), step, api, AuthSessionFactory("pw", "http://admin.test"))


def _evaluation(status: str) -> dict:
    return {
        "evaluator": "llm",
        "model": "m-1",
        "status": status,
        "verdict": "pass" if status == "passed" else "fail",
        "confidence": 0.9,
        "summary": "looks right",
        "reasonCode": "OK",
        "evidencePointers": ["trace:1"],
        "gaps": [],
        "deterministicFollowUps": [{"title": "Add assertion", "endpoint": "/x", "assertion": "200"}],
    }


class TestDeterministicTier:
    async def test_matching_check_wins(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        async def check(scope: StepScope) -> StepResultPayload | None:
            return StepResultPayload("checked")

        validator = ExploratoryValidator({StepFamily.UC_NEED: check})

        result = await validator.validate(scope, StepFamily.UC_NEED)

        assert result.note == "checked"
        assert not any(path.endswith("/exploratory-evaluate") for path in fake_api.paths())

    async def test_check_returning_none_falls_through(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        async def check(scope: StepScope) -> StepResultPayload | None:
            return None

        fake_api.evaluator = lambda request: envelope(_evaluation("passed"))
        validator = ExploratoryValidator({StepFamily.UC_NEED: check})

        result = await validator.validate(scope, StepFamily.UC_NEED)

        assert result.note == "Exploratory validation passed: looks right"
        assert result.evidence["stepFamily"] == "uc-need-validation"
        assert result.evidence["deterministicFollowUps"][0]["title"] == "Add assertion"


class TestEvaluatorTier:
    @pytest.mark.parametrize(("status", "expected"), [("failed", StepStatus.FAILED), ("blocked", StepStatus.BLOCKED)])
    async def test_unsuccessful_verdicts_raise_with_evidence(
        self, fake_api: FakeSagaApi, scope: StepScope, status: str, expected: StepStatus
    ) -> None:
        fake_api.evaluator = lambda request: envelope(_evaluation(status))

        with pytest.raises(StepExecutionError) as exc_info:
            await ExploratoryValidator({}).validate(scope, StepFamily.UC_NEED)

        assert exc_info.value.status is expected
        assert exc_info.value.evidence["model"] == "m-1"

    async def test_request_names_step_family(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        fake_api.evaluator = lambda request: envelope(_evaluation("passed"))

        await ExploratoryValidator({}).validate(scope, StepFamily.PERSONA_SCENARIO)

        sent = fake_api.requests[-1]
        assert sent.url.path == f"/api/v1/sagas/runs/run-1/steps/{STEP_KEY}/exploratory-evaluate"
        assert b"persona-scenario-validation" in sent.content

    async def test_other_evaluator_errors_propagate(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        fake_api.evaluator = lambda request: failure(500, "boom")

        with pytest.raises(ApiStatusError):
            await ExploratoryValidator({}).validate(scope, StepFamily.UC_NEED)


class TestPolicyTier:
    @pytest.mark.parametrize("unavailable", [404, 501, 502, 503, 504])
    async def test_strict_mode_blocks_when_evaluator_unavailable(
        self, fake_api: FakeSagaApi, scope: StepScope, unavailable: int
    ) -> None:
        fake_api.evaluator = lambda request: failure(unavailable)

        with pytest.raises(StepExecutionError) as exc_info:
            await ExploratoryValidator({}, strict=True).validate(scope, StepFamily.UC_NEED)

        assert exc_info.value.status is StepStatus.BLOCKED
        assert exc_info.value.message == "Exploratory validation step has no deterministic executable contract yet."
        assert exc_info.value.evidence["reasonCode"] == MISSING_CONTRACT_REASON

    async def test_non_strict_mode_skips(self, scope: StepScope) -> None:
        with pytest.raises(StepExecutionError) as exc_info:
            await ExploratoryValidator({}, strict=False).validate(scope, StepFamily.PERSONA_SCENARIO)

        assert exc_info.value.status is StepStatus.SKIPPED
        assert exc_info.value.evidence == {
            "stepFamily": "persona-scenario-validation",
            "reasonCode": SKIPPED_REASON,
        }

    async def test_transport_error_counts_as_unavailable(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        def unreachable(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_api.evaluator = unreachable

        with pytest.raises(StepExecutionError) as exc_info:
            await ExploratoryValidator({}, strict=True).validate(scope, StepFamily.UC_NEED)
        assert exc_info.value.status is StepStatus.BLOCKED

    async def test_empty_evaluation_falls_back(self, fake_api: FakeSagaApi, scope: StepScope) -> None:
        fake_api.evaluator = lambda request: envelope(None)

        with pytest.raises(StepExecutionError) as exc_info:
            await ExploratoryValidator({}, strict=False).validate(scope, StepFamily.UC_NEED)
        assert exc_info.value.status is StepStatus.SKIPPED
