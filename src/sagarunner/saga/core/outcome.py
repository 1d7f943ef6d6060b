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
"""Step outcomes.

Step logic returns a :class:`StepResultPayload` or raises
:class:`StepExecutionError` to short-circuit with a classification. The step
executor turns either into one of the frozen outcome variants
(:class:`Passed`, :class:`Failed`, :class:`Blocked`, :class:`Skipped`), which the
run orchestrator matches on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, NoReturn

from sagarunner.kernel.exceptions import SagaRunnerException
from sagarunner.saga.types import StepStatus


@dataclass(frozen=True)
class StepResultPayload:
    """Human note plus optional structured evidence for one step."""

    note: str
    evidence: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"note": self.note}
        if self.evidence is not None:
            data["evidence"] = self.evidence
        return data


class StepExecutionError(SagaRunnerException):
    """Raised inside step logic to end the step with a specific status.

    Args:
        status: One of ``failed``, ``blocked`` or ``skipped``.
        message: Human-readable reason, reported as the failure message.
        evidence: Structured data explaining the classification.
    """

    def __init__(self, status: StepStatus | str, message: str, evidence: dict[str, Any] | None = None) -> None:
        status = StepStatus(status)
        if status not in (StepStatus.FAILED, StepStatus.BLOCKED, StepStatus.SKIPPED):
            raise ValueError(f"StepExecutionError status must be failed, blocked or skipped, got {status!r}")
        super().__init__(message, code=str(status), context=evidence or {})
        self.status = status
        self.evidence = evidence


def block_step(step_key: str, reason: str, evidence: dict[str, Any] | None = None) -> NoReturn:
    """Block *step_key* because observed state contradicts what the scenario expects."""
    raise StepExecutionError(StepStatus.BLOCKED, f"{step_key}: {reason}", evidence)


# ── outcome variants ─────────────────────────────────────────


@dataclass(frozen=True)
class Passed:
    payload: StepResultPayload

    status: ClassVar[StepStatus] = StepStatus.PASSED


@dataclass(frozen=True)
class _Unsuccessful:
    message: str
    evidence: dict[str, Any] | None = None

    status: ClassVar[StepStatus]
    _note_prefix: ClassVar[str]

    def failure_payload(self) -> StepResultPayload:
        """Payload reported for this outcome: note plus flags merged with the evidence."""
        evidence: dict[str, Any] = {
            "error": self.message,
            "failed": self.status is StepStatus.FAILED,
            "blocked": self.status is StepStatus.BLOCKED,
            "skipped": self.status is StepStatus.SKIPPED,
        }
        evidence.update(self.evidence or {})
        return StepResultPayload(note=f"{self._note_prefix}: {self.message}", evidence=evidence)


@dataclass(frozen=True)
class Failed(_Unsuccessful):
    status: ClassVar[StepStatus] = StepStatus.FAILED
    _note_prefix: ClassVar[str] = "Step failed"


@dataclass(frozen=True)
class Blocked(_Unsuccessful):
    status: ClassVar[StepStatus] = StepStatus.BLOCKED
    _note_prefix: ClassVar[str] = "Step blocked"


@dataclass(frozen=True)
class Skipped(_Unsuccessful):
    status: ClassVar[StepStatus] = StepStatus.SKIPPED
    _note_prefix: ClassVar[str] = "Step skipped"


StepOutcome = Passed | Failed | Blocked | Skipped

_VARIANTS: dict[StepStatus, type[_Unsuccessful]] = {
    StepStatus.FAILED: Failed,
    StepStatus.BLOCKED: Blocked,
    StepStatus.SKIPPED: Skipped,
}


def error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def outcome_from_error(exc: Exception) -> Failed | Blocked | Skipped:
    """Classify an exception raised by step logic or its delay.

    A :class:`StepExecutionError` keeps its status and evidence; anything
    else (HTTP status mismatches, ``success: false`` envelopes, transport
    errors, malformed JSON, missing prerequisites) is a failure.
    """
    if isinstance(exc, StepExecutionError):
        return _VARIANTS[exc.status](exc.message, exc.evidence)
    return Failed(error_message(exc))
