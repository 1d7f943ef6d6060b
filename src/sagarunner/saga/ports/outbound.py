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
"""Outbound port protocols for the saga run engine.

Adapters observe run lifecycle events without coupling the orchestrator to a
particular logging or metrics back-end.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sagarunner.saga.types import StepStatus


@runtime_checkable
class RunEventsPort(Protocol):
    """Port for emitting lifecycle events from the run orchestrator."""

    async def on_run_started(self, saga_key: str, run_id: str, total_steps: int) -> None:
        """Fired once the run detail has been fetched, before the first step."""
        ...

    async def on_step_completed(
        self,
        saga_key: str,
        run_id: str,
        step_key: str,
        status: StepStatus,
        message: str | None,
        latency_ms: float,
    ) -> None:
        """Fired after a step's terminal status has been decided."""
        ...

    async def on_run_completed(self, saga_key: str, run_id: str, ok: bool, failures: int) -> None:
        """Fired after the final run status has been fetched."""
        ...
