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
"""Evidence reporter: persists step status, API traces and UI snapshots."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

from sagarunner.client.auth import AuthSession
from sagarunner.core.text import now_iso
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.core.trace import ApiTrace
from sagarunner.saga.engine.snapshots import build_snapshot_blocks
from sagarunner.saga.service.run_service import SagaRunService
from sagarunner.saga.types import StepStatus

TRACE_SOURCE = "sagarunner"


class EvidenceReporter:
    """Writes step evidence to the saga run lifecycle API.

    All calls are made as the run owner through an untraced client. Each
    operation raises on failure; the orchestrator decides how a failure
    affects the run.
    """

    def __init__(self, runs: SagaRunService, *, clock: Callable[[], str] = now_iso) -> None:
        self._runs = runs
        self._clock = clock

    async def report_step(
        self,
        ctx: RunContext,
        step_key: str,
        status: StepStatus,
        payload: StepResultPayload,
        failure_message: str | None = None,
        assertion_summary: dict[str, Any] | None = None,
    ) -> None:
        """Report in_progress and then *status* for one step.

        Posting the same terminal status twice leaves the same persisted state,
        so a retried report is harmless.
        """
        owner: AuthSession = ctx.owner
        started_at = self._clock()
        await self._runs.post_step_result(
            owner,
            ctx.run_id,
            step_key,
            {
                "status": StepStatus.IN_PROGRESS.value,
                "startedAt": started_at,
                "resultPayload": {"note": f"Started {step_key}"},
                "assertionSummary": {"status": StepStatus.IN_PROGRESS.value},
            },
        )
        await self._runs.post_step_result(
            owner,
            ctx.run_id,
            step_key,
            {
                "status": status.value,
                "startedAt": started_at,
                "endedAt": self._clock(),
                "failureMessage": failure_message,
                "resultPayload": payload.to_dict(),
                "assertionSummary": {
                    "status": status.value,
                    "hasFailure": failure_message is not None,
                    "assertionsPassed": 1 if status is StepStatus.PASSED else 0,
                    **(assertion_summary or {}),
                },
            },
        )

    async def attach_api_trace(self, ctx: RunContext, step_key: str, title: str, trace: ApiTrace) -> None:
        await self._runs.post_trace(
            ctx.owner,
            ctx.run_id,
            {
                "stepKey": step_key,
                "title": f"{title} API Trace",
                "trace": trace.to_payload(),
                "metadata": {"source": TRACE_SOURCE},
            },
        )

    async def attach_snapshot(
        self,
        ctx: RunContext,
        step_key: str,
        title: str,
        status: StepStatus,
        payload: StepResultPayload,
        raw_data: dict[str, Any],
    ) -> None:
        blocks = build_snapshot_blocks(step_key, payload, status)
        await self._runs.post_snapshot(
            ctx.owner,
            ctx.run_id,
            {
                "stepKey": step_key,
                "screenKey": f"{step_key}-{int(time.time() * 1000)}",
                "title": f"{title} Snapshot",
                "status": status.value,
                "route": f"/sagas/{ctx.run_id}/{step_key}",
                "format": "json",
                "view": {"title": title, "subtitle": payload.note, "blocks": blocks},
                "rawData": raw_data,
            },
        )
