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
"""Step executor: runs one step's logic and classifies the result."""

from __future__ import annotations

import logging

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSessionFactory
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import (
    Passed,
    StepOutcome,
    StepResultPayload,
    block_step,
    outcome_from_error,
)
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.engine.exploratory import ExploratoryValidator
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.registry.handler_registry import StepHandlerRegistry
from sagarunner.saga.types import StepFamily

logger = logging.getLogger(__name__)

RUNNER_GAP_REASON = "Runner executor is not implemented for this step yet (runner gap)."


class StepExecutor:
    """Dispatches a step to the exploratory chain or its registered handler.

    Never raises for step-level problems: every exception raised by the step
    logic becomes a :class:`Failed`, :class:`Blocked` or :class:`Skipped`
    outcome. Cancellation propagates.
    """

    def __init__(
        self,
        handlers: StepHandlerRegistry,
        exploratory: ExploratoryValidator,
        auth: AuthSessionFactory,
    ) -> None:
        self._handlers = handlers
        self._exploratory = exploratory
        self._auth = auth

    async def run(self, ctx: RunContext, step: SagaRunStep, api: SagaApiClient) -> StepOutcome:
        """Execute *step* using *api*, which should be bound to the step's trace."""
        scope = StepScope(ctx=ctx, step=step, api=api, auth=self._auth)
        try:
            payload = await self._dispatch(scope)
        except Exception as exc:
            outcome = outcome_from_error(exc)
            logger.debug("Step %s ended %s: %s", step.step_key, outcome.status, outcome.message)
            return outcome
        return Passed(payload)

    async def _dispatch(self, scope: StepScope) -> StepResultPayload:
        family = StepFamily.of(scope.key)
        if family is not None:
            return await self._exploratory.validate(scope, family)

        handler = self._handlers.get(scope.key)
        if handler is None:
            block_step(
                scope.key,
                RUNNER_GAP_REASON,
                {"expected": f"Register a step handler for '{scope.key}'."},
            )
        return await handler(scope)
