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
"""Delay/condition scheduler: suspends a step before its logic runs."""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable

from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import StepExecutionError
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.service.run_service import SagaRunService
from sagarunner.saga.types import DelayMode, StepStatus

logger = logging.getLogger(__name__)

SUPPORTED_CONDITIONS = ["always", "message_for:<actorKey>", "step_done:<stepKey>"]

MIN_CONDITION_TIMEOUT_MS = 1000
DEFAULT_CONDITION_TIMEOUT_MS = 30_000
MIN_CONDITION_POLL_MS = 250
DEFAULT_CONDITION_POLL_MS = 1000


def apply_positive_jitter(base_ms: float, jitter_ms: int, rng: random.Random | None = None) -> float:
    """Add a uniform integer in ``[0, jitter_ms]`` to *base_ms*."""
    if jitter_ms <= 0:
        return base_ms
    return base_ms + (rng or random).randint(0, jitter_ms)


class DelayScheduler:
    """Implements the ``none``, ``fixed`` and ``until_condition`` delay modes.

    Condition polls go through *runs* with the owner session; they happen
    before the step's trace scope opens and are not part of the step trace.

    Args:
        runs: Lifecycle service used to evaluate conditions.
        sleep: Awaitable sleep taking seconds (injectable for tests).
        clock: Monotonic clock returning seconds.
        rng: Random source for jitter.
    """

    def __init__(
        self,
        runs: SagaRunService,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._runs = runs
        self._sleep = sleep
        self._clock = clock
        self._rng = rng or random.Random()

    async def evaluate_condition(self, ctx: RunContext, condition_key: str) -> bool:
        """Return whether *condition_key* currently holds for the run.

        Raises:
            StepExecutionError: (blocked) for an unsupported condition key.
        """
        key = condition_key.strip()
        if not key or key == "always":
            return True

        if key.startswith("message_for:"):
            actor_key = key.removeprefix("message_for:").strip()
            if not actor_key:
                return False
            rows = await self._runs.list_messages(ctx.owner, ctx.run_id, actor_key)
            return len(rows) > 0

        if key.startswith("step_done:"):
            step_key = key.removeprefix("step_done:").strip()
            if not step_key:
                return False
            detail = await self._runs.get_run(ctx.owner, ctx.run_id)
            row = detail.step(step_key)
            return row is not None and StepStatus(row.status).is_terminal

        raise StepExecutionError(
            StepStatus.BLOCKED,
            f"Unsupported delay condition key: {key}",
            {"supported": list(SUPPORTED_CONDITIONS)},
        )

    async def wait(self, ctx: RunContext, step: SagaRunStep) -> None:
        """Suspend according to the step's delay configuration.

        Raises:
            StepExecutionError: blocked for an invalid configuration, failed
                when an ``until_condition`` wait times out.
        """
        mode = step.delay_mode or DelayMode.NONE
        jitter = max(0, int(step.delay_jitter_ms or 0))

        if mode == DelayMode.NONE:
            return

        if mode == DelayMode.FIXED:
            base_ms = step.delay_ms
            if base_ms is None or not math.isfinite(base_ms) or base_ms <= 0:
                raise StepExecutionError(
                    StepStatus.BLOCKED,
                    f"Invalid fixed delay for step {step.step_key}.",
                    {"delayMode": mode, "delayMs": step.delay_ms},
                )
            await self._sleep_ms(apply_positive_jitter(base_ms, jitter, self._rng))
            return

        if mode == DelayMode.UNTIL_CONDITION:
            await self._wait_for_condition(ctx, step, jitter)
            return

        raise StepExecutionError(StepStatus.BLOCKED, f"Unsupported delay mode: {mode}", {"delayMode": mode})

    async def _wait_for_condition(self, ctx: RunContext, step: SagaRunStep, jitter: int) -> None:
        condition_key = (step.delay_condition_key or "").strip()
        if not condition_key:
            raise StepExecutionError(
                StepStatus.BLOCKED,
                f"Missing delayConditionKey for until_condition step {step.step_key}.",
            )
        timeout_ms = max(MIN_CONDITION_TIMEOUT_MS, _finite_or(step.delay_timeout_ms, DEFAULT_CONDITION_TIMEOUT_MS))
        poll_ms = max(MIN_CONDITION_POLL_MS, _finite_or(step.delay_poll_ms, DEFAULT_CONDITION_POLL_MS))

        started = self._clock()
        while (self._clock() - started) * 1000 <= timeout_ms:
            if await self.evaluate_condition(ctx, condition_key):
                return
            logger.debug("Condition %s not met for %s; polling again", condition_key, step.step_key)
            await self._sleep_ms(apply_positive_jitter(poll_ms, jitter, self._rng))

        raise StepExecutionError(
            StepStatus.FAILED,
            f"Delay condition timed out for {step.step_key} ({condition_key}).",
            {"conditionKey": condition_key, "timeoutMs": timeout_ms, "pollMs": poll_ms},
        )

    async def _sleep_ms(self, ms: float) -> None:
        await self._sleep(ms / 1000)


def _finite_or(value: float | None, default: float) -> float:
    if value is None or not math.isfinite(value):
        return default
    return value
