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
"""SagaRunner: wires the client, engine and scenario handlers from runner properties."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta

from sagarunner.client.adapters.httpx_adapter import HttpxClientAdapter
from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession, AuthSessionFactory
from sagarunner.client.ports.outbound import HttpClientPort
from sagarunner.config.properties import RunnerProperties
from sagarunner.kernel.exceptions import NoSagaDefinitionsError
from sagarunner.saga.core.result import BatchSummary
from sagarunner.saga.engine.contracts import ContractRegistry, default_contracts
from sagarunner.saga.engine.delay import DelayScheduler
from sagarunner.saga.engine.executor import StepExecutor
from sagarunner.saga.engine.exploratory import ExploratoryValidator
from sagarunner.saga.engine.orchestrator import RunOrchestrator
from sagarunner.saga.engine.reporter import EvidenceReporter
from sagarunner.saga.engine.worker_pool import ProgressCallback, RunRequest, WorkerPool
from sagarunner.saga.observability.events import CompositeEventsAdapter, LoggerEventsAdapter
from sagarunner.saga.ports.outbound import RunEventsPort
from sagarunner.saga.registry import StepHandlerRegistry
from sagarunner.saga.scenarios import default_exploratory_checks, default_registry
from sagarunner.saga.service.run_service import SagaRunService


class SagaRunner:
    """Entry point for executing saga runs against one API deployment.

    Usage::

        async with SagaRunner(props) as runner:
            summary = await runner.run_all()

    Args:
        props: Runner configuration.
        http: Transport to use instead of an httpx client built from *props*.
        handlers: Step handler registry; the built-in scenarios by default.
        contracts: Step contracts; the built-in contracts by default.
        events: Extra run lifecycle event sinks. Events are always logged;
            these adapters receive every event as well.
    """

    def __init__(
        self,
        props: RunnerProperties,
        *,
        http: HttpClientPort | None = None,
        handlers: StepHandlerRegistry | None = None,
        contracts: ContractRegistry | None = None,
        events: Sequence[RunEventsPort] = (),
    ) -> None:
        self._props = props
        self._http: HttpClientPort = http or HttpxClientAdapter(
            base_url=props.base_url, timeout=timedelta(seconds=props.timeout_seconds)
        )
        self._api = SagaApiClient(self._http)
        self._runs = SagaRunService(self._api)
        self._auth = AuthSessionFactory(props.session_password, props.trusted_origin)
        executor = StepExecutor(
            handlers if handlers is not None else default_registry(),
            ExploratoryValidator(default_exploratory_checks(), strict=props.strict_exploratory),
            self._auth,
        )
        self._orchestrator = RunOrchestrator(
            self._runs,
            executor,
            DelayScheduler(self._runs),
            EvidenceReporter(self._runs),
            contracts if contracts is not None else default_contracts(),
            self._api,
            CompositeEventsAdapter(LoggerEventsAdapter(), *events),
        )

    @property
    def orchestrator(self) -> RunOrchestrator:
        return self._orchestrator

    async def create_owner(self) -> AuthSession:
        return await self._auth.create(self._api, self._props.owner_label)

    async def select_definitions(self, owner: AuthSession) -> list[RunRequest]:
        """Active definitions, narrowed to the configured saga key and limit."""
        definitions = await self._runs.list_definitions(owner, limit=self._props.limit)
        if self._props.saga_key:
            definitions = [row for row in definitions if row.saga_key == self._props.saga_key]
        if self._props.limit > 0:
            definitions = definitions[: self._props.limit]
        if not definitions:
            raise NoSagaDefinitionsError("No saga definitions found to run.", code="NO_DEFINITIONS")
        return [RunRequest(saga_key=row.saga_key) for row in definitions]

    async def run_all(self, on_progress: ProgressCallback | None = None) -> BatchSummary:
        """Create and execute one run per selected definition.

        Raises:
            NoSagaDefinitionsError: nothing matched the selection.
            AuthSessionError: the owner account could not be created.
        """
        owner = await self.create_owner()
        requests = await self.select_definitions(owner)
        return await self._pool(owner, on_progress).run(requests)

    async def run_existing(self, run_id: str, on_progress: ProgressCallback | None = None) -> BatchSummary:
        """Execute one already-created run, as the dashboard rerun button does."""
        owner = await self.create_owner()
        detail = await self._runs.get_run(owner, run_id)
        request = RunRequest(saga_key=detail.run.saga_key, run_id=detail.run.id)
        return await self._pool(owner, on_progress).run([request])

    def _pool(self, owner: AuthSession, on_progress: ProgressCallback | None) -> WorkerPool:
        return WorkerPool(
            self._runs,
            self._orchestrator,
            owner,
            mode=self._props.mode,
            runner_label=self._props.runner_label,
            concurrency=self._props.concurrency,
            on_progress=on_progress,
        )

    async def close(self) -> None:
        await self._http.close()

    async def __aenter__(self) -> SagaRunner:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
