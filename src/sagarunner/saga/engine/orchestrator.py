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
"""Run orchestrator: drives one saga run through all of its steps in order.

For every step: wait out its delay, execute it against a fresh trace, layer
the step contract on top of a successful result, then persist the evidence.
A step that does not pass never stops the run; the run's own status (computed
by the saga API from the reported step statuses) decides whether it passed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession
from sagarunner.core.text import to_title_case
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import (
    Blocked,
    Failed,
    Passed,
    Skipped,
    StepOutcome,
    error_message,
    outcome_from_error,
)
from sagarunner.saga.core.result import RunResult
from sagarunner.saga.core.trace import ApiTrace
from sagarunner.saga.engine.contracts import ContractCheckSummary, ContractRegistry
from sagarunner.saga.engine.delay import DelayScheduler
from sagarunner.saga.engine.executor import StepExecutor
from sagarunner.saga.engine.reporter import EvidenceReporter
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.observability.events import LoggerEventsAdapter
from sagarunner.saga.ports.outbound import RunEventsPort
from sagarunner.saga.service.run_service import SagaRunService
from sagarunner.saga.types import RunStatus

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Executes saga runs step by step and records every step's evidence.

    Args:
        runs: Lifecycle service used to fetch the run detail.
        executor: Runs one step's logic and classifies the result.
        delay: Applies each step's delay before its logic runs.
        reporter: Persists step status, traces and snapshots.
        contracts: Endpoint-usage contracts checked on passed steps.
        api: Untraced client; each step gets a view bound to its own trace.
        events: Lifecycle event sink, logging by default.
    """

    def __init__(
        self,
        runs: SagaRunService,
        executor: StepExecutor,
        delay: DelayScheduler,
        reporter: EvidenceReporter,
        contracts: ContractRegistry,
        api: SagaApiClient,
        events: RunEventsPort | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runs = runs
        self._executor = executor
        self._delay = delay
        self._reporter = reporter
        self._contracts = contracts
        self._api = api.untraced()
        self._events: RunEventsPort = events or LoggerEventsAdapter()
        self._clock = clock

    async def execute_run(self, ctx: RunContext) -> RunResult:
        detail = await self._runs.get_run(ctx.owner, ctx.run_id)
        await self._events.on_run_started(ctx.saga_key, ctx.run_id, len(detail.steps))

        failures: list[str] = []
        for step in detail.steps:
            await self._execute_step(ctx, step, failures)

        final = await self._runs.get_run(ctx.owner, ctx.run_id)
        ok = final.run.status == RunStatus.PASSED
        await self._events.on_run_completed(ctx.saga_key, ctx.run_id, ok, len(failures))
        return RunResult(ok=ok, failures=tuple(failures))

    async def execute_existing_run(
        self,
        *,
        run_id: str,
        saga_key: str,
        owner: AuthSession,
        biz_id: str | None = None,
    ) -> RunResult:
        """Execute a run that was created elsewhere (for example from the dashboard)."""
        ctx = RunContext(saga_key=saga_key, run_id=run_id, owner=owner, biz_id=biz_id)
        return await self.execute_run(ctx)

    # -- per step ----------------------------------------------------------------

    async def _execute_step(self, ctx: RunContext, step: SagaRunStep, failures: list[str]) -> None:
        title = step.title or to_title_case(step.step_key)
        trace = ApiTrace(step.step_key)
        started = self._clock()

        outcome, contract = await self._run_step(ctx, step, trace)

        match outcome:
            case Passed():
                settled = await self._settle_passed(ctx, step.step_key, title, trace, outcome, contract, failures)
            case Failed() | Blocked() | Skipped():
                settled = outcome
        if not isinstance(settled, Passed):
            await self._settle_unsuccessful(ctx, step.step_key, title, trace, settled, failures)

        await self._events.on_step_completed(
            ctx.saga_key,
            ctx.run_id,
            step.step_key,
            settled.status,
            None if isinstance(settled, Passed) else settled.message,
            (self._clock() - started) * 1000,
        )

    async def _run_step(
        self, ctx: RunContext, step: SagaRunStep, trace: ApiTrace
    ) -> tuple[StepOutcome, ContractCheckSummary | None]:
        try:
            await self._delay.wait(ctx, step)
        except Exception as exc:
            return outcome_from_error(exc), None

        outcome = await self._executor.run(ctx, step, self._api.traced(trace))
        if not isinstance(outcome, Passed):
            return outcome, None

        contract = self._contracts.evaluate(step.step_key, trace)
        if contract is not None and not contract.passed:
            return (
                Failed(
                    f"Step contract failed ({contract.failed_rules}/{len(contract.rules)} rules).",
                    {"contract": contract.to_dict()},
                ),
                contract,
            )
        return outcome, contract

    async def _settle_passed(
        self,
        ctx: RunContext,
        step_key: str,
        title: str,
        trace: ApiTrace,
        outcome: Passed,
        contract: ContractCheckSummary | None,
        failures: list[str],
    ) -> StepOutcome:
        """Persist a passed step; a trace or status write failure turns it into a failure."""
        try:
            await self._reporter.attach_api_trace(ctx, step_key, title, trace)
            await self._reporter.report_step(
                ctx,
                step_key,
                Passed.status,
                outcome.payload,
                assertion_summary=contract.assertion_fields() if contract is not None else None,
            )
        except Exception as exc:
            logger.warning("Could not record passed step %s: %s", step_key, exc)
            return Failed(error_message(exc))

        try:
            await self._reporter.attach_snapshot(
                ctx,
                step_key,
                title,
                Passed.status,
                outcome.payload,
                {
                    "stepKey": step_key,
                    "resultPayload": outcome.payload.to_dict(),
                    "apiCalls": trace.calls(),
                    "contract": contract.to_dict() if contract is not None else None,
                },
            )
        except Exception as exc:
            failures.append(f"{step_key}: post-pass snapshot failed ({error_message(exc)})")
        return outcome

    async def _settle_unsuccessful(
        self,
        ctx: RunContext,
        step_key: str,
        title: str,
        trace: ApiTrace,
        outcome: Failed | Blocked | Skipped,
        failures: list[str],
    ) -> None:
        if not isinstance(outcome, Skipped):
            failures.append(f"{step_key}: {outcome.message}")
        payload = outcome.failure_payload()

        # Terminal status goes first so an artifact failure never leaves the step pending.
        try:
            await self._reporter.report_step(ctx, step_key, outcome.status, payload, outcome.message)
        except Exception as exc:
            failures.append(f"{step_key}: could not report step status ({error_message(exc)})")
            return

        try:
            await self._reporter.attach_api_trace(ctx, step_key, title, trace)
        except Exception as exc:
            failures.append(f"{step_key}: could not attach api trace ({error_message(exc)})")

        try:
            await self._reporter.attach_snapshot(
                ctx,
                step_key,
                title,
                outcome.status,
                payload,
                {
                    "stepKey": step_key,
                    "error": outcome.message,
                    "resultPayload": payload.to_dict(),
                    "apiCalls": trace.calls(),
                },
            )
        except Exception as exc:
            failures.append(f"{step_key}: could not attach snapshot ({error_message(exc)})")
