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
"""Tests for the run orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from conftest import FakeSagaApi, envelope, failure

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession, AuthSessionFactory
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import StepExecutionError, StepResultPayload
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.engine.contracts import ContractRegistry, ContractRule, StepContract
from sagarunner.saga.engine.delay import DelayScheduler
from sagarunner.saga.engine.executor import StepExecutor
from sagarunner.saga.engine.exploratory import ExploratoryValidator
from sagarunner.saga.engine.orchestrator import RunOrchestrator
from sagarunner.saga.engine.reporter import EvidenceReporter
from sagarunner.saga.ports.outbound import RunEventsPort
from sagarunner.saga.registry import StepHandlerRegistry
from sagarunner.saga.service.run_service import SagaRunService
from sagarunner.saga.types import StepStatus

pytestmark = pytest.mark.anyio


class RecordingEvents:
    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []

    async def on_run_started(self, saga_key: str, run_id: str, total_steps: int) -> None:
        self.events.append(("started", run_id, total_steps))

    async def on_step_completed(
        self, saga_key: str, run_id: str, step_key: str, status: StepStatus, message: str | None, latency_ms: float
    ) -> None:
        self.events.append(("step", step_key, status, message))

    async def on_run_completed(self, saga_key: str, run_id: str, ok: bool, failures: int) -> None:
        self.events.append(("completed", run_id, ok, failures))


def passing(note: str = "ok", path: str | None = None) -> Callable[[StepScope], Any]:
    async def handler(scope: StepScope) -> StepResultPayload:
        if path is not None:
            await scope.api.request_json(path)
        return StepResultPayload(note)

    return handler


def raising(status: StepStatus, message: str) -> Callable[[StepScope], Any]:
    async def handler(scope: StepScope) -> StepResultPayload:
        raise StepExecutionError(status, message)

    return handler


@pytest.fixture
def registry() -> StepHandlerRegistry:
    return StepHandlerRegistry()


@pytest.fixture
def events() -> RecordingEvents:
    return RecordingEvents()


@pytest.fixture
def build(
    api: SagaApiClient, registry: StepHandlerRegistry, events: RecordingEvents
) -> Callable[..., RunOrchestrator]:
    def factory(contracts: ContractRegistry | None = None) -> RunOrchestrator:
        runs = SagaRunService(api)

        async def no_sleep(seconds: float) -> None:
            return None

        return RunOrchestrator(
            runs,
            StepExecutor(
                registry, ExploratoryValidator({}, strict=True), AuthSessionFactory("pw", "http://admin.test")
            ),
            DelayScheduler(runs, sleep=no_sleep),
            EvidenceReporter(runs),
            contracts or ContractRegistry(),
            api,
            events,
        )

    return factory


async def _start(fake_api: FakeSagaApi, api: SagaApiClient, owner: AuthSession, *steps: Any) -> RunContext:
    fake_api.define("saga-a", *steps)
    detail = await SagaRunService(api).create_run(owner, "saga-a")
    return RunContext(saga_key="saga-a", run_id=detail.run.id, owner=owner)


class TestExecuteRun:
    async def test_blocked_step_does_not_stop_the_run(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", passing())
        registry.register("step2", raising(StepStatus.BLOCKED, "waiting on queue"))
        registry.register("step3", passing())
        ctx = await _start(fake_api, api, owner, "step1", "step2", "step3")

        result = await build().execute_run(ctx)

        assert result.ok is False
        assert result.failures == ("step2: waiting on queue",)
        run = fake_api.run()
        assert [s["status"] for s in run.steps] == ["passed", "blocked", "passed"]
        assert len(run.traces) == 3
        assert len(run.snapshots) == 3

    async def test_all_passed_run_is_ok(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
        events: RecordingEvents,
    ) -> None:
        registry.register("step1", passing("first"))
        registry.register("step2", passing("second"))
        ctx = await _start(fake_api, api, owner, "step1", "step2")

        result = await build().execute_run(ctx)

        assert result.ok is True
        assert result.failures == ()
        assert events.events == [
            ("started", ctx.run_id, 2),
            ("step", "step1", StepStatus.PASSED, None),
            ("step", "step2", StepStatus.PASSED, None),
            ("completed", ctx.run_id, True, 0),
        ]

    async def test_steps_execute_in_run_order(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        order: list[str] = []

        def tracking(key: str) -> Callable[[StepScope], Any]:
            async def handler(scope: StepScope) -> StepResultPayload:
                order.append(key)
                return StepResultPayload(key)

            return handler

        for key in ("c", "a", "b"):
            registry.register(key, tracking(key))
        ctx = await _start(fake_api, api, owner, "c", "a", "b")

        await build().execute_run(ctx)

        assert order == ["c", "a", "b"]

    async def test_skipped_step_adds_no_failure(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", raising(StepStatus.SKIPPED, "not applicable"))
        ctx = await _start(fake_api, api, owner, "step1")

        result = await build().execute_run(ctx)

        assert result.failures == ()
        assert fake_api.run().results[-1][1]["failureMessage"] == "not applicable"

    async def test_step_trace_holds_only_step_calls(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        fake_api.route("GET", r"/api/v1/bizes/b1", envelope({"id": "b1"}))
        registry.register("step1", passing(path="/api/v1/bizes/b1"))
        ctx = await _start(fake_api, api, owner, "step1")

        await build().execute_run(ctx)

        (trace_body,) = fake_api.run().traces
        assert [call["path"] for call in trace_body["trace"]["calls"]] == ["/api/v1/bizes/b1"]


class TestContracts:
    async def test_contract_violation_fails_passed_step(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        contracts = ContractRegistry(
            {"step1": StepContract("must dispatch", (ContractRule.of("dispatch", r"/dispatch/state"),))}
        )
        registry.register("step1", passing())
        ctx = await _start(fake_api, api, owner, "step1")

        result = await build(contracts).execute_run(ctx)

        assert result.failures == ("step1: Step contract failed (1/1 rules).",)
        terminal = fake_api.run().results[-1][1]
        assert terminal["status"] == "failed"
        assert terminal["resultPayload"]["evidence"]["contract"]["failedRules"] == 1

    async def test_satisfied_contract_is_reported(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        fake_api.route("GET", r"/api/v1/bizes/b1/dispatch/state", envelope({}))
        contracts = ContractRegistry(
            {"step1": StepContract("must dispatch", (ContractRule.of("dispatch", r"/dispatch/state"),))}
        )
        registry.register("step1", passing(path="/api/v1/bizes/b1/dispatch/state"))
        ctx = await _start(fake_api, api, owner, "step1")

        result = await build(contracts).execute_run(ctx)

        assert result.ok
        summary = fake_api.run().results[-1][1]["assertionSummary"]
        assert summary["contractPassedRules"] == 1
        assert fake_api.run().snapshots[0]["rawData"]["contract"]["passedRules"] == 1


class TestDelays:
    async def test_invalid_delay_blocks_without_running_handler(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        ran: list[str] = []

        async def handler(scope: StepScope) -> StepResultPayload:
            ran.append(scope.key)
            return StepResultPayload("ran")

        registry.register("step1", handler)
        ctx = await _start(fake_api, api, owner, {"stepKey": "step1", "delayMode": "fixed", "delayMs": 0})

        result = await build().execute_run(ctx)

        assert ran == []
        assert result.failures == ("step1: Invalid fixed delay for step step1.",)
        assert fake_api.run().steps[0]["status"] == "blocked"


class TestEvidenceFailures:
    async def test_trace_write_failure_turns_pass_into_failure(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", passing())
        ctx = await _start(fake_api, api, owner, "step1")
        calls = 0

        def flaky_trace(request: Any) -> Any:
            nonlocal calls
            calls += 1
            if calls == 1:
                return failure(500, "trace store down")
            return envelope({"id": "t"}, 201)

        fake_api.route("POST", r"/api/v1/sagas/runs/run-1/traces", flaky_trace)

        result = await build().execute_run(ctx)

        assert result.ok is False
        assert len(result.failures) == 1
        assert result.failures[0].startswith("step1: HTTP 500 for POST /api/v1/sagas/runs/run-1/traces")
        assert fake_api.run().steps[0]["status"] == "failed"

    async def test_post_pass_snapshot_failure_is_noted(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", passing())
        ctx = await _start(fake_api, api, owner, "step1")
        fake_api.route("POST", r"/api/v1/sagas/runs/run-1/snapshots", failure(500, "no space"))

        result = await build().execute_run(ctx)

        assert result.ok is True
        assert len(result.failures) == 1
        assert result.failures[0].startswith("step1: post-pass snapshot failed (HTTP 500")
        assert fake_api.run().steps[0]["status"] == "passed"

    async def test_status_report_failure_skips_artifacts(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", raising(StepStatus.FAILED, "boom"))
        ctx = await _start(fake_api, api, owner, "step1")
        fake_api.route("POST", r"/api/v1/sagas/runs/run-1/steps/step1/result", failure(503, "down"))

        result = await build().execute_run(ctx)

        assert result.failures[0] == "step1: boom"
        assert result.failures[1].startswith("step1: could not report step status (HTTP 503")
        assert fake_api.run().traces == []
        assert fake_api.run().snapshots == []

    async def test_artifact_failures_after_report_are_noted(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        registry.register("step1", raising(StepStatus.BLOCKED, "gap"))
        ctx = await _start(fake_api, api, owner, "step1")
        fake_api.route("POST", r"/api/v1/sagas/runs/run-1/traces", failure(500))
        fake_api.route("POST", r"/api/v1/sagas/runs/run-1/snapshots", failure(500))

        result = await build().execute_run(ctx)

        assert [line.split(" (")[0] for line in result.failures] == [
            "step1: gap",
            "step1: could not attach api trace",
            "step1: could not attach snapshot",
        ]
        assert fake_api.run().steps[0]["status"] == "blocked"


class TestExistingRun:
    async def test_execute_existing_run_builds_context(
        self,
        fake_api: FakeSagaApi,
        api: SagaApiClient,
        owner: AuthSession,
        registry: StepHandlerRegistry,
        build: Callable[..., RunOrchestrator],
    ) -> None:
        seen: list[str | None] = []

        async def handler(scope: StepScope) -> StepResultPayload:
            seen.append(scope.ctx.biz_id)
            return StepResultPayload("ok")

        registry.register("step1", handler)
        ctx = await _start(fake_api, api, owner, "step1")

        result = await build().execute_existing_run(run_id=ctx.run_id, saga_key="saga-a", owner=owner, biz_id="b9")

        assert result.ok
        assert seen == ["b9"]


def test_recording_events_satisfies_port() -> None:
    assert isinstance(RecordingEvents(), RunEventsPort)
