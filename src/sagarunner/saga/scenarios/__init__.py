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
"""Built-in scenario step handlers.

Every module listed in :data:`SCENARIO_MODULES` contributes
``@step_handler`` functions; :func:`default_registry` collects them.
"""

from __future__ import annotations

from sagarunner.saga.registry import StepHandlerRegistry
from sagarunner.saga.scenarios import adversary, booking, operations, owner, synthetic
from sagarunner.saga.scenarios.validation import default_exploratory_checks

SCENARIO_MODULES = (owner, booking, adversary, operations, synthetic)


def default_registry() -> StepHandlerRegistry:
    registry = StepHandlerRegistry()
    registry.register_modules(SCENARIO_MODULES)
    return registry


__all__ = ["SCENARIO_MODULES", "default_exploratory_checks", "default_registry"]
