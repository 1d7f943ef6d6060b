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
"""Runner configuration properties.

YAML structure::

    sagarunner:
      runner:
        base_url: http://localhost:6129
        trusted_origin: http://localhost:9000
        saga_key: ""
        limit: 0
        session_password: pass123456
        concurrency: 8
        strict_exit: true
        strict_exploratory: true
        mode: dry_run
        runner_label: codex-rerun-all
        owner_label: owner-runner
        timeout_seconds: 30
      logging:
        format: console
        level:
          root: INFO
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sagarunner.core.config import config_properties
from sagarunner.saga.types import RunMode


@config_properties(prefix="sagarunner.runner")
@dataclass
class RunnerProperties:
    """Configuration for a batch of saga runs (sagarunner.runner.*)."""

    base_url: str = "http://localhost:6129"
    trusted_origin: str = "http://localhost:9000"
    saga_key: str = ""
    limit: int = 0  # 0 = every active definition
    session_password: str = "pass123456"
    concurrency: int = 8
    strict_exit: bool = True
    strict_exploratory: bool = True
    mode: str = RunMode.DRY_RUN
    runner_label: str = "codex-rerun-all"
    owner_label: str = "owner-runner"
    timeout_seconds: float = 30.0

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")
        self.concurrency = max(1, self.concurrency)
        self.limit = max(0, self.limit)
        self.saga_key = self.saga_key.strip()
        self.mode = RunMode.LIVE if self.mode == RunMode.LIVE else RunMode.DRY_RUN


@config_properties(prefix="sagarunner.logging")
@dataclass
class LoggingProperties:
    """Logging output settings (sagarunner.logging.*)."""

    format: str = "console"
    level: dict[str, str] = field(default_factory=lambda: {"root": "INFO"})
