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
"""Wire models for the saga run lifecycle API.

The API speaks camelCase JSON; models accept either the wire alias or the
Python field name and ignore fields the runner does not read.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from sagarunner.saga.types import DefinitionStatus, RunStatus, StepStatus


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class SagaDefinition(WireModel):
    """Catalog entry for one saga template."""

    saga_key: str
    title: str = ""
    status: DefinitionStatus = DefinitionStatus.DRAFT


class SagaRun(WireModel):
    id: str
    saga_key: str
    status: RunStatus = RunStatus.PENDING
    passed_steps: int = 0
    total_steps: int = 0


class SagaRunStep(WireModel):
    """One step of a run, in run order, with its delay configuration.

    ``delay_mode`` stays a plain string so an unknown mode reaches the delay
    scheduler (which blocks the step) instead of failing the whole fetch.
    """

    step_key: str
    title: str = ""
    status: StepStatus = StepStatus.PENDING
    instruction: str | None = None
    expected_result: str | None = None
    delay_mode: str | None = None
    delay_ms: float | None = None
    delay_condition_key: str | None = None
    delay_timeout_ms: float | None = None
    delay_poll_ms: float | None = None
    delay_jitter_ms: float | None = None
    metadata: dict[str, Any] | None = None


class SagaRunDetail(WireModel):
    run: SagaRun
    steps: list[SagaRunStep] = Field(default_factory=list)

    def step(self, step_key: str) -> SagaRunStep | None:
        for row in self.steps:
            if row.step_key == step_key:
                return row
        return None


class DeterministicFollowUp(WireModel):
    title: str
    endpoint: str | None = None
    assertion: str = ""


class ExploratoryEvaluation(WireModel):
    """Verdict returned by the remote exploratory evaluator."""

    evaluator: str = "none"
    model: str | None = None
    status: str
    verdict: str = "inconclusive"
    confidence: float = 0.0
    summary: str = ""
    assessment: str | None = None
    reason_code: str = ""
    evidence_pointers: list[str] = Field(default_factory=list)
    gaps: list[str] = Field(default_factory=list)
    deterministic_follow_ups: list[DeterministicFollowUp] = Field(default_factory=list)
