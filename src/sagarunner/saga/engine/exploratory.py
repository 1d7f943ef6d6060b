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
"""Exploratory validation fallback chain.

Exploratory steps come from free-text use-case and persona prose. They are
resolved in three tiers:

1. a deterministic check matched on the step instruction;
2. the remote exploratory evaluator;
3. a policy fallback: blocked in strict mode, skipped otherwise.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from sagarunner.kernel.exceptions import ExploratoryEvaluatorUnavailable
from sagarunner.saga.core.outcome import StepExecutionError, StepResultPayload
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.models import ExploratoryEvaluation
from sagarunner.saga.types import StepFamily, StepStatus

logger = logging.getLogger(__name__)

DeterministicCheck = Callable[[StepScope], Awaitable[StepResultPayload | None]]

MISSING_CONTRACT_REASON = "MISSING_DETERMINISTIC_EXECUTOR_CONTRACT"
SKIPPED_REASON = "DETERMINISTIC_RUNNER_SKIPS_EXPLORATORY_STEP"


def evaluation_evidence(family: StepFamily, evaluation: ExploratoryEvaluation) -> dict[str, Any]:
    return {
        "stepFamily": str(family),
        "evaluator": evaluation.evaluator,
        "model": evaluation.model,
        "verdict": evaluation.verdict,
        "confidence": evaluation.confidence,
        "assessment": evaluation.assessment,
        "reasonCode": evaluation.reason_code,
        "evidencePointers": list(evaluation.evidence_pointers),
        "gaps": list(evaluation.gaps),
        "deterministicFollowUps": [f.model_dump(by_alias=True) for f in evaluation.deterministic_follow_ups],
    }


def interpret_evaluation(family: StepFamily, evaluation: ExploratoryEvaluation) -> StepResultPayload:
    """Map an evaluator verdict to a payload, or raise failed/blocked with its evidence."""
    evidence = evaluation_evidence(family, evaluation)
    if evaluation.status == StepStatus.PASSED:
        return StepResultPayload(note=f"Exploratory validation passed: {evaluation.summary}", evidence=evidence)
    if evaluation.status == StepStatus.FAILED:
        raise StepExecutionError(StepStatus.FAILED, f"Exploratory validation failed: {evaluation.summary}", evidence)
    raise StepExecutionError(StepStatus.BLOCKED, f"Exploratory validation blocked: {evaluation.summary}", evidence)


class ExploratoryValidator:
    """Runs the three-tier chain for ``uc-need-validate-*`` and ``persona-scenario-validate-*`` steps.

    Args:
        checks: Deterministic check per step family; a check returns ``None``
            when no rule matches the step instruction.
        strict: Whether an unresolved step is blocked (``True``) or skipped.
    """

    def __init__(self, checks: Mapping[StepFamily, DeterministicCheck], *, strict: bool = True) -> None:
        self._checks = dict(checks)
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    async def validate(self, scope: StepScope, family: StepFamily) -> StepResultPayload:
        check = self._checks.get(family)
        if check is not None:
            result = await check(scope)
            if result is not None:
                return result

        try:
            evaluation = await scope.runs.evaluate_exploratory(scope.ctx.owner, scope.ctx.run_id, scope.key, family)
        except ExploratoryEvaluatorUnavailable as exc:
            logger.info("Exploratory evaluator unavailable for %s: %s", scope.key, exc)
            evaluation = None

        if evaluation is not None:
            return interpret_evaluation(family, evaluation)

        if self._strict:
            raise StepExecutionError(
                StepStatus.BLOCKED,
                "Exploratory validation step has no deterministic executable contract yet.",
                {
                    "stepFamily": str(family),
                    "reasonCode": MISSING_CONTRACT_REASON,
                    "expected": "Implement explicit API assertions for this exploratory step "
                    "before classifying run as passed.",
                },
            )
        raise StepExecutionError(
            StepStatus.SKIPPED,
            "Exploratory validation step skipped by deterministic runner (non-strict mode).",
            {"stepFamily": str(family), "reasonCode": SKIPPED_REASON},
        )
