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
"""Shared enums for saga definitions, runs and steps."""

from __future__ import annotations

from enum import StrEnum


class DefinitionStatus(StrEnum):
    """Catalog status of a saga definition. Only active definitions are run."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RunStatus(StrEnum):
    """Lifecycle status of one saga run, as computed by the saga API."""

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class StepStatus(StrEnum):
    """Lifecycle status of a single saga run step."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STEP_STATUSES


TERMINAL_STEP_STATUSES = frozenset(
    {StepStatus.PASSED, StepStatus.FAILED, StepStatus.SKIPPED, StepStatus.BLOCKED}
)


class DelayMode(StrEnum):
    """How a step waits before its logic runs."""

    NONE = "none"
    FIXED = "fixed"
    UNTIL_CONDITION = "until_condition"


class RunMode(StrEnum):
    DRY_RUN = "dry_run"
    LIVE = "live"


class StepFamily(StrEnum):
    """Exploratory validation families, keyed by step-key prefix."""

    UC_NEED = "uc-need-validation"
    PERSONA_SCENARIO = "persona-scenario-validation"

    @classmethod
    def of(cls, step_key: str) -> StepFamily | None:
        if step_key.startswith("uc-need-validate-"):
            return cls.UC_NEED
        if step_key.startswith("persona-scenario-validate-"):
            return cls.PERSONA_SCENARIO
        return None
