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
"""Shared Rich console for CLI output."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from sagarunner.saga.core.result import BatchSummary
from sagarunner.saga.engine.worker_pool import ProgressEvent

SAGARUNNER_THEME = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "sagarunner": "bold magenta",
    "dim": "dim",
})

console = Console(theme=SAGARUNNER_THEME)

MAX_LISTED_FAILURES = 5


def print_progress(event: ProgressEvent) -> None:
    """One line per finished run: ``[3/20] [w2] saga-key ... passed``."""
    verdict = "[success]passed[/success]" if event.ok else "[error]failed[/error]"
    console.print(
        f"[dim][{event.index}/{event.total}] [w{event.worker}][/dim] {event.saga_key} ... {verdict}",
        highlight=False,
    )


def print_summary(summary: BatchSummary) -> None:
    table = Table(title="[sagarunner]Rerun Summary[/sagarunner]", show_header=False, border_style="dim")
    table.add_column("Key", style="info")
    table.add_column("Value")
    table.add_row("total", str(summary.total))
    table.add_row("passed", f"[success]{summary.passed}[/success]")
    table.add_row("failed", f"[error]{summary.failed}[/error]" if summary.failed else "0")
    table.add_row("durationMs", str(summary.duration_ms))
    console.print()
    console.print(table)

    if not summary.failed_runs:
        return
    console.print("\n[error]Failed Runs[/error]")
    for row in summary.failed_runs:
        console.print(f"  [bold]{row.saga_key}[/bold] [dim]({row.run_id})[/dim]", highlight=False)
        for failure in row.failures[:MAX_LISTED_FAILURES]:
            console.print(f"    [dim]•[/dim] {escape(failure)}", highlight=False)
