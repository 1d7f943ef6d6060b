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
"""Tests for step dispatch and outcome classification."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest
from conftest import FakeSagaApi, envelope, failure

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSessionFactory
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import Blocked, Failed, Passed, Skipped, StepResultPayload, block_step
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.core.trace import ApiTrace
from sagarunner.saga.engine.executor import RUNNER_GAP_REASON, StepExecutor
from sagarunner.saga.engine.exploratory import ExploratoryValidator
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.registry import StepHandlerRegistry
from sagarunner.saga.types import StepFamily

pytestmark = pytest.mark.anyio


def _executor(registry: StepHandlerRegistry, *, strict: bool = True, checks: dict | None = None) -> StepExecutor:
    return StepExecutor(
        registry,
        ExploratoryValidator(checks or {}, strict=strict),
        AuthSessionFactory("pw", "http://admin.test"),
    )


def _step(key: str) -> SagaRunStep:
    return SagaRunStep(step_key=key)


class TestStepExecutor:
    async def test_handler_result_passes(self, api: SagaApiClient, make_ctx: Callable[..., RunContext]) -> None:
        registry = StepHandlerRegistry()

        async def handler(scope: StepScope) -> StepResultPayload:
            scope.ctx.biz_id = "b1"
            return StepResultPayload("Biz created", {"id": "b1"})

        registry.register("owner-create-biz", handler)
        ctx = make_ctx()

        outcome = await _executor(registry).run(ctx, _step("owner-create-biz"), api)

        assert outcome == Passed(StepResultPayload("Biz created", {"id": "b1"}))
        assert ctx.biz_id == "b1"

    async def test_missing_handler_is_runner_gap(self, api: SagaApiClient, make_ctx: Callable[..., RunContext]) -> None:
        outcome = await _executor(StepHandlerRegistry()).run(make_ctx(), _step("owner-teleport"), api)

        assert isinstance(outcome, Blocked)
        assert outcome.message == f"owner-teleport: {RUNNER_GAP_REASON}"

    async def test_api_error_fails(
        self, fake_api: FakeSagaApi, api: SagaApiClient, make_ctx: Callable[..., RunContext]
    ) -> None:
        fake_api.route("GET", r"/api/v1/boom", failure(500, "kaput"))
        registry = StepHandlerRegistry()

        async def handler(scope: StepScope) -> StepResultPayload:
            await scope.api.request_json("/api/v1/boom")
            return StepResultPayload("unreachable")

        registry.register("s1", handler)

        outcome = await _executor(registry).run(make_ctx(), _step("s1"), api)

        assert isinstance(outcome, Failed)
        assert outcome.message.startswith("HTTP 500 for GET /api/v1/boom")

    async def test_explicit_block_keeps_evidence(self, api: SagaApiClient, make_ctx: Callable[..., RunContext]) -> None:
        registry = StepHandlerRegistry()

        async def handler(scope: StepScope) -> StepResultPayload:
            block_step(scope.key, "queue not visible", {"queueId": "q1"})

        registry.register("s1", handler)

        outcome = await _executor(registry).run(make_ctx(), _step("s1"), api)

        assert outcome == Blocked("s1: queue not visible", {"queueId": "q1"})

    async def test_exploratory_steps_bypass_handlers(
        self, api: SagaApiClient, make_ctx: Callable[..., RunContext], fake_api: FakeSagaApi
    ) -> None:
        registry = StepHandlerRegistry()

        async def handler(scope: StepScope) -> StepResultPayload:
            return StepResultPayload("should not run")

        registry.register("persona-scenario-validate-x", handler)
        fake_api.route("POST", r".*/exploratory-evaluate", failure(503))

        outcome = await _executor(registry, strict=False).run(make_ctx(), _step("persona-scenario-validate-x"), api)

        assert isinstance(outcome, Skipped)

    async def test_exploratory_check_receives_traced_api(
        self, api: SagaApiClient, make_ctx: Callable[..., RunContext], fake_api: FakeSagaApi
    ) -> None:
        fake_api.route("GET", r"/api/v1/ping", envelope({"ok": True}))

        async def check(scope: StepScope) -> StepResultPayload | None:
            await scope.api.request_json("/api/v1/ping")
            return StepResultPayload("pinged")

        trace = ApiTrace("uc-need-validate-x")
        executor = _executor(StepHandlerRegistry(), checks={StepFamily.UC_NEED: check})

        outcome = await executor.run(make_ctx(biz_id="b1"), _step("uc-need-validate-x"), api.traced(trace))

        assert isinstance(outcome, Passed)
        assert trace.observed_paths() == ["/api/v1/ping"]

    async def test_cancellation_propagates(self, api: SagaApiClient, make_ctx: Callable[..., RunContext]) -> None:
        registry = StepHandlerRegistry()

        async def handler(scope: StepScope) -> StepResultPayload:
            raise asyncio.CancelledError

        registry.register("s1", handler)

        with pytest.raises(asyncio.CancelledError):
            await _executor(registry).run(make_ctx(), _step("s1"), api)
