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
"""Immutable result types: RunResult and BatchSummary."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class RunResult:
    """Outcome of executing one saga run.

    Fields
    ------
    ok:
        ``True`` only when the run status fetched after the last step is
        ``passed``.
    failures:
        One ``"<stepKey>: <message>"`` line per failed or blocked step and per
        evidence artifact that could not be persisted. Skipped steps add none.
    """

    ok: bool
    failures: tuple[str, ...] = ()


@dataclass(frozen=True)
class FailedRun:
    saga_key: str
    run_id: str
    failures: tuple[str, ...] = ()


@dataclass(frozen=True)
class BatchSummary:
    """Aggregate of a worker-pool batch, produced once every worker has drained."""

    total: int
    passed: int
    failed: int
    duration_ms: int
    failed_runs: tuple[FailedRun, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.failed == 0
