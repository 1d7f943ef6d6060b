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
"""StepScope: everything one step handler may touch."""

from __future__ import annotations

from dataclasses import dataclass

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession, AuthSessionFactory
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.models import SagaRunStep
from sagarunner.saga.service.run_service import SagaRunService


@dataclass(frozen=True)
class StepScope:
    """Per-step view handed to handlers.

    *api* is bound to the step's own trace, so every call a handler makes
    through it (or through :attr:`runs`) is recorded for that step only.
    """

    ctx: RunContext
    step: SagaRunStep
    api: SagaApiClient
    auth: AuthSessionFactory

    @property
    def key(self) -> str:
        return self.step.step_key

    @property
    def runs(self) -> SagaRunService:
        return SagaRunService(self.api)

    async def new_session(self, label: str) -> AuthSession:
        return await self.auth.create(self.api, label)
