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
"""'sagarunner contracts': list the built-in step contracts."""

from __future__ import annotations

import click
from rich.table import Table

from sagarunner.cli.console import console
from sagarunner.saga.engine.contracts import default_contracts


@click.command()
def contracts_command() -> None:
    """List the endpoint-usage contracts enforced on passed steps."""
    table = Table(title="[sagarunner]Step Contracts[/sagarunner]", border_style="dim", show_lines=True)
    table.add_column("Step", style="info", min_width=24)
    table.add_column("Description", min_width=30)
    table.add_column("Rules (any of)", style="dim")

    for step_key, contract in default_contracts().items():
        rules = "\n".join(
            f"{rule.label}: {' | '.join(p.pattern for p in rule.any_of)}" for rule in contract.endpoint_rules
        )
        table.add_row(step_key, contract.description, rules)

    console.print(table)
