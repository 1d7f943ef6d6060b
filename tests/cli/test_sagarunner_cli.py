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
"""Tests for the sagarunner command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from sagarunner.cli import console as console_module
from sagarunner.cli import run as run_module
from sagarunner.cli.main import cli
from sagarunner.kernel.exceptions import NoSagaDefinitionsError
from sagarunner.saga.core.result import BatchSummary, FailedRun
from sagarunner.saga.engine.worker_pool import ProgressEvent

LEGACY_ENV = (
    "API_BASE_URL",
    "ADMIN_APP_ORIGIN",
    "SAGA_KEY",
    "SAGA_LIMIT",
    "SAGA_TEST_PASSWORD",
    "SAGA_CONCURRENCY",
    "SAGA_STRICT_EXIT",
    "SAGA_STRICT_EXPLORATORY",
    "SAGA_MODE",
)

PASSED = BatchSummary(total=1, passed=1, failed=0, duration_ms=12)
FAILED = BatchSummary(
    total=2,
    passed=1,
    failed=1,
    duration_ms=40,
    failed_runs=(FailedRun("saga-b", "run-2", ("owner-create-biz: HTTP 500 for POST /api/v1/bizes: {}",)),),
)


class FakeRunner:
    """Stands in for SagaRunner; records the properties it was built with."""

    instances: list[FakeRunner] = []
    summary: BatchSummary = PASSED
    error: Exception | None = None

    def __init__(self, props) -> None:
        self.props = props
        self.calls: list[tuple[str, ...]] = []
        FakeRunner.instances.append(self)

    async def __aenter__(self) -> FakeRunner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def run_all(self, on_progress=None) -> BatchSummary:
        self.calls.append(("run_all",))
        return self._finish(on_progress)

    async def run_existing(self, run_id: str, on_progress=None) -> BatchSummary:
        self.calls.append(("run_existing", run_id))
        return self._finish(on_progress)

    def _finish(self, on_progress) -> BatchSummary:
        if self.error is not None:
            raise self.error
        if on_progress is not None:
            on_progress(ProgressEvent(1, 1, 1, "saga-a", "run-1", True))
        return self.summary


@pytest.fixture(autouse=True)
def isolated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> type[FakeRunner]:
    monkeypatch.chdir(tmp_path)
    for name in LEGACY_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(run_module.StructlogAdapter, "configure", lambda self, config: None)
    monkeypatch.setattr(console_module.console, "width", 200)
    monkeypatch.setattr(FakeRunner, "instances", [])
    monkeypatch.setattr(FakeRunner, "summary", PASSED)
    monkeypatch.setattr(FakeRunner, "error", None)
    monkeypatch.setattr(run_module, "SagaRunner", FakeRunner)
    return FakeRunner


class TestCLI:
    def test_help_lists_commands(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "contracts" in result.output

    def test_contracts_lists_builtin_contracts(self):
        result = CliRunner().invoke(cli, ["contracts"])
        assert result.exit_code == 0, result.output
        assert "Step Contracts" in result.output
        assert "owner-configure-demand-pricing" in result.output
        assert "/dispatch/state" in result.output


class TestRunCommand:
    def test_passing_batch_exits_zero(self):
        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 0, result.output
        assert "Running saga definitions against http://localhost:6129" in result.output
        assert "saga-a ... passed" in result.output
        assert "Rerun Summary" in result.output
        assert FakeRunner.instances[0].calls == [("run_all",)]

    def test_options_override_config(self):
        result = CliRunner().invoke(
            cli,
            ["run", "--saga-key", "saga-b", "--limit", "3", "--concurrency", "2", "--base-url", "http://api.test/"],
        )

        assert result.exit_code == 0, result.output
        props = FakeRunner.instances[0].props
        assert (props.saga_key, props.limit, props.concurrency) == ("saga-b", 3, 2)
        assert props.base_url == "http://api.test"

    def test_legacy_environment_is_honoured(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("SAGA_CONCURRENCY", "5")
        monkeypatch.setenv("SAGA_STRICT_EXPLORATORY", "0")
        monkeypatch.setenv("SAGA_MODE", "live")

        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 0, result.output
        props = FakeRunner.instances[0].props
        assert props.concurrency == 5
        assert props.strict_exploratory is False
        assert props.mode == "live"

    def test_run_id_executes_existing_run(self):
        result = CliRunner().invoke(cli, ["run", "--run-id", "run-9"])

        assert result.exit_code == 0, result.output
        assert "Running run run-9" in result.output
        assert FakeRunner.instances[0].calls == [("run_existing", "run-9")]

    def test_failed_batch_exits_non_zero_in_strict_mode(self):
        FakeRunner.summary = FAILED

        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "Failed Runs" in result.output
        assert "owner-create-biz: HTTP 500" in result.output

    def test_failed_batch_exits_zero_when_not_strict(self):
        FakeRunner.summary = FAILED

        result = CliRunner().invoke(cli, ["run", "--no-strict-exit"])

        assert result.exit_code == 0, result.output
        assert "Non-strict exit mode active." in result.output
        assert "SAGA_STRICT_EXIT=1" in result.output

    def test_missing_definitions_abort(self):
        FakeRunner.error = NoSagaDefinitionsError("No saga definitions found to run.")

        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "No saga definitions found to run." in result.output

    def test_setup_error_aborts(self):
        FakeRunner.error = run_module.SagaRunnerException("Sign-up failed")

        result = CliRunner().invoke(cli, ["run"])

        assert result.exit_code == 1
        assert "Saga rerun aborted:" in result.output

    def test_negative_limit_is_rejected(self):
        result = CliRunner().invoke(cli, ["run", "--limit", "-1"])

        assert result.exit_code == 2
        assert FakeRunner.instances == []

    def test_config_file_is_used(self, tmp_path: Path):
        config = tmp_path / "custom.yaml"
        config.write_text("sagarunner:\n  runner:\n    runner_label: nightly\n    concurrency: 3\n")

        result = CliRunner().invoke(cli, ["run", "--config", str(config)])

        assert result.exit_code == 0, result.output
        props = FakeRunner.instances[0].props
        assert (props.runner_label, props.concurrency) == ("nightly", 3)
