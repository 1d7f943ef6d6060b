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
"""Observability adapters for saga run lifecycle events.

This module provides two ``RunEventsPort`` implementations:

* :class:`LoggerEventsAdapter` -- writes log messages for every lifecycle
  event emitted by the run orchestrator.
* :class:`CompositeEventsAdapter` -- fans-out each event to an ordered
  sequence of child adapters, absorbing individual adapter failures so that
  one broken sink never silences the others.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sagarunner.saga.ports.outbound import RunEventsPort
from sagarunner.saga.types import StepStatus

_logger = logging.getLogger("sagarunner.saga.events")


# ---------------------------------------------------------------------------
# LoggerEventsAdapter
# ---------------------------------------------------------------------------


class LoggerEventsAdapter:
    """Logs run lifecycle events via the standard ``logging`` module.

    Passed and skipped steps log at :data:`logging.INFO`; failed and
    blocked steps, and runs that did not pass, log at
    :data:`logging.WARNING`.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    async def on_run_started(self, saga_key: str, run_id: str, total_steps: int) -> None:
        self._logger.info("Run '%s' started [saga=%s, steps=%d]", run_id, saga_key, total_steps)

    async def on_step_completed(
        self,
        saga_key: str,
        run_id: str,
        step_key: str,
        status: StepStatus,
        message: str | None,
        latency_ms: float,
    ) -> None:
        if status in (StepStatus.PASSED, StepStatus.SKIPPED):
            self._logger.info(
                "Step '%s' %s [saga=%s, run=%s, latency=%.1fms]", step_key, status, saga_key, run_id, latency_ms
            )
        else:
            self._logger.warning(
                "Step '%s' %s [saga=%s, run=%s, latency=%.1fms]: %s",
                step_key,
                status,
                saga_key,
                run_id,
                latency_ms,
                message,
            )

    async def on_run_completed(self, saga_key: str, run_id: str, ok: bool, failures: int) -> None:
        level = logging.INFO if ok else logging.WARNING
        self._logger.log(level, "Run '%s' completed [saga=%s, ok=%s, failures=%d]", run_id, saga_key, ok, failures)


# ---------------------------------------------------------------------------
# CompositeEventsAdapter
# ---------------------------------------------------------------------------


class CompositeEventsAdapter:
    """Broadcasts run events to multiple ``RunEventsPort`` adapters.

    If an individual adapter raises an exception, the error is logged and
    the remaining adapters still receive the event.
    """

    def __init__(self, *adapters: RunEventsPort) -> None:
        self._adapters: Sequence[RunEventsPort] = adapters

    async def _broadcast(self, method: str, *args: object, **kwargs: object) -> None:
        for adapter in self._adapters:
            try:
                await getattr(adapter, method)(*args, **kwargs)
            except Exception:
                _logger.error("Events adapter %r failed on %s", adapter, method, exc_info=True)

    async def on_run_started(self, saga_key: str, run_id: str, total_steps: int) -> None:
        await self._broadcast("on_run_started", saga_key, run_id, total_steps)

    async def on_step_completed(
        self,
        saga_key: str,
        run_id: str,
        step_key: str,
        status: StepStatus,
        message: str | None,
        latency_ms: float,
    ) -> None:
        await self._broadcast(
            "on_step_completed", saga_key, run_id, step_key, status, message=message, latency_ms=latency_ms
        )

    async def on_run_completed(self, saga_key: str, run_id: str, ok: bool, failures: int) -> None:
        await self._broadcast("on_run_completed", saga_key, run_id, ok=ok, failures=failures)
