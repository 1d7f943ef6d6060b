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
"""Worker pool: executes many saga runs with bounded concurrency."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass

import structlog

from sagarunner.client.auth import AuthSession
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import error_message
from sagarunner.saga.core.result import BatchSummary, FailedRun, RunResult
from sagarunner.saga.engine.orchestrator import RunOrchestrator
from sagarunner.saga.service.run_service import SagaRunService
from sagarunner.saga.types import RunMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunRequest:
    """One unit of work: a saga to run, or an already-created run to execute."""

    saga_key: str
    run_id: str | None = None


@dataclass(frozen=True)
class ProgressEvent:
    index: int  # 1-based position in the batch
    total: int
    worker: int  # 1-based worker number
    saga_key: str
    run_id: str
    ok: bool


ProgressCallback = Callable[[ProgressEvent], None]


class WorkerPool:
    """Runs a batch of saga runs on ``min(concurrency, len(items))`` workers.

    Each worker repeatedly claims the next unclaimed item from a shared
    cursor, creates (or fetches) its run and executes it to completion. The
    cursor and the aggregate counters are only touched under one lock, so
    every item is executed exactly once.

    Args:
        runs: Lifecycle service used to create or fetch runs.
        orchestrator: Executes one run.
        owner: Session that owns every run in the batch.
        mode: Run mode sent when creating runs.
        runner_label: Label sent when creating runs.
        concurrency: Maximum number of runs in flight.
        on_progress: Called once per finished run. Errors it raises are
            logged and never stop the batch.
    """

    def __init__(
        self,
        runs: SagaRunService,
        orchestrator: RunOrchestrator,
        owner: AuthSession,
        *,
        mode: RunMode | str = RunMode.DRY_RUN,
        runner_label: str = "codex-rerun-all",
        concurrency: int = 8,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self._runs = runs
        self._orchestrator = orchestrator
        self._owner = owner
        self._mode = mode
        self._runner_label = runner_label
        self._concurrency = max(1, concurrency)
        self._on_progress = on_progress

    async def run(self, items: Sequence[RunRequest]) -> BatchSummary:
        started = time.monotonic()
        lock = asyncio.Lock()
        cursor = 0
        passed = 0
        failed = 0
        failed_runs: list[FailedRun] = []

        async def worker(worker_no: int) -> None:
            nonlocal cursor, passed, failed
            while True:
                async with lock:
                    index = cursor
                    cursor += 1
                if index >= len(items):
                    return

                item = items[index]
                run_id, result = await self._execute(item)

                async with lock:
                    if result.ok:
                        passed += 1
                    else:
                        failed += 1
                        failed_runs.append(FailedRun(item.saga_key, run_id, result.failures))

                if self._on_progress is not None:
                    event = ProgressEvent(index + 1, len(items), worker_no, item.saga_key, run_id, result.ok)
                    try:
                        self._on_progress(event)
                    except Exception:
                        logger.error("Progress callback failed for %s", item.saga_key, exc_info=True)

        workers = min(self._concurrency, len(items))
        logger.info("Executing %d saga run(s) on %d worker(s)", len(items), workers)
        await asyncio.gather(*(worker(n + 1) for n in range(workers)))

        return BatchSummary(
            total=len(items),
            passed=passed,
            failed=failed,
            duration_ms=int((time.monotonic() - started) * 1000),
            failed_runs=tuple(failed_runs),
        )

    async def _execute(self, item: RunRequest) -> tuple[str, RunResult]:
        """Create or fetch the run and execute it; setup errors fail the run instead of the batch."""
        run_id = item.run_id or ""
        try:
            if item.run_id is None:
                detail = await self._runs.create_run(
                    self._owner, item.saga_key, mode=self._mode, runner_label=self._runner_label
                )
            else:
                detail = await self._runs.get_run(self._owner, item.run_id)
            run_id = detail.run.id
            ctx = RunContext(saga_key=item.saga_key, run_id=run_id, owner=self._owner)
            with structlog.contextvars.bound_contextvars(saga_key=item.saga_key, run_id=run_id):
                return run_id, await self._orchestrator.execute_run(ctx)
        except Exception as exc:
            logger.error("Saga run for %s could not be executed", item.saga_key, exc_info=True)
            return run_id, RunResult(ok=False, failures=(f"{item.saga_key}: {error_message(exc)}",))
