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
"""HTTP service for the saga catalog and run lifecycle endpoints."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession
from sagarunner.kernel.exceptions import ApiStatusError, ExploratoryEvaluatorUnavailable
from sagarunner.saga.models import ExploratoryEvaluation, SagaDefinition, SagaRunDetail
from sagarunner.saga.types import DefinitionStatus, RunMode, StepFamily

SPECS_PATH = "/api/v1/sagas/specs"
RUNS_PATH = "/api/v1/sagas/runs"

# Evaluator responses that mean "not deployed / not reachable" rather than a verdict.
_EVALUATOR_UNAVAILABLE_STATUSES = frozenset({404, 501, 502, 503, 504})


class SagaRunService:
    """Typed wrapper over the saga run lifecycle API.

    Every call is authenticated with the given actor's session cookie and made
    through *api*; pass a traced client to record the calls in a step trace.
    """

    def __init__(self, api: SagaApiClient) -> None:
        self._api = api

    @property
    def api(self) -> SagaApiClient:
        return self._api

    # -- catalog ---------------------------------------------------------------

    async def list_definitions(self, owner: AuthSession, limit: int = 0) -> list[SagaDefinition]:
        """Return the active definitions from a synced catalog listing."""
        page = max(limit, 1) if limit > 0 else 2000
        response = await self._api.request_json(
            f"{SPECS_PATH}?sync=true&limit={page}", cookie=owner.cookie, accept_statuses=(200,)
        )
        rows = [SagaDefinition.model_validate(row) for row in response.data or []]
        return [row for row in rows if row.status == DefinitionStatus.ACTIVE]

    # -- runs ------------------------------------------------------------------

    async def create_run(
        self,
        owner: AuthSession,
        saga_key: str,
        *,
        mode: RunMode | str = RunMode.DRY_RUN,
        runner_label: str = "codex-rerun-all",
        run_context: dict[str, Any] | None = None,
    ) -> SagaRunDetail:
        response = await self._api.request_json(
            RUNS_PATH,
            method="POST",
            cookie=owner.cookie,
            body={
                "sagaKey": saga_key,
                "mode": str(mode),
                "runnerLabel": runner_label,
                "runContext": run_context or {"createdBy": "sagarunner"},
            },
            accept_statuses=(201,),
        )
        return SagaRunDetail.model_validate(response.data)

    async def get_run(self, owner: AuthSession, run_id: str) -> SagaRunDetail:
        response = await self._api.request_json(f"{RUNS_PATH}/{run_id}", cookie=owner.cookie, accept_statuses=(200,))
        return SagaRunDetail.model_validate(response.data)

    async def list_messages(self, owner: AuthSession, run_id: str, actor_key: str) -> list[Any]:
        response = await self._api.request_json(
            f"{RUNS_PATH}/{run_id}/messages?actorKey={quote(actor_key, safe='')}",
            cookie=owner.cookie,
            accept_statuses=(200,),
        )
        return list(response.data or [])

    # -- evidence --------------------------------------------------------------

    async def post_step_result(self, owner: AuthSession, run_id: str, step_key: str, body: dict[str, Any]) -> None:
        await self._api.request_json(
            f"{RUNS_PATH}/{run_id}/steps/{step_key}/result",
            method="POST",
            cookie=owner.cookie,
            body=body,
            accept_statuses=(200,),
        )

    async def post_snapshot(self, owner: AuthSession, run_id: str, body: dict[str, Any]) -> None:
        await self._api.request_json(
            f"{RUNS_PATH}/{run_id}/snapshots", method="POST", cookie=owner.cookie, body=body, accept_statuses=(201,)
        )

    async def post_trace(self, owner: AuthSession, run_id: str, body: dict[str, Any]) -> None:
        await self._api.request_json(
            f"{RUNS_PATH}/{run_id}/traces", method="POST", cookie=owner.cookie, body=body, accept_statuses=(201,)
        )

    async def submit_report(
        self, owner: AuthSession, run_id: str, markdown: str, summary: dict[str, Any] | None = None
    ) -> None:
        await self._api.request_json(
            f"{RUNS_PATH}/{run_id}/report",
            method="POST",
            cookie=owner.cookie,
            body={"markdown": markdown, "summary": summary or {}},
            accept_statuses=(201,),
        )

    # -- exploratory -----------------------------------------------------------

    async def evaluate_exploratory(
        self, owner: AuthSession, run_id: str, step_key: str, family: StepFamily
    ) -> ExploratoryEvaluation | None:
        """Ask the remote evaluator for a verdict on an exploratory step.

        Returns ``None`` when the evaluator answered without a usable
        evaluation.

        Raises:
            ExploratoryEvaluatorUnavailable: transport failure or a
                not-deployed / upstream-down status.
        """
        path = f"{RUNS_PATH}/{run_id}/steps/{step_key}/exploratory-evaluate"
        try:
            response = await self._api.request_json(
                path,
                method="POST",
                cookie=owner.cookie,
                body={"stepFamily": str(family)},
                accept_statuses=(200,),
            )
        except httpx.TransportError as exc:
            raise ExploratoryEvaluatorUnavailable(
                f"Exploratory evaluator unreachable: {exc}", code="EVALUATOR_UNREACHABLE"
            ) from exc
        except ApiStatusError as exc:
            if exc.status in _EVALUATOR_UNAVAILABLE_STATUSES:
                raise ExploratoryEvaluatorUnavailable(
                    f"Exploratory evaluator unavailable (HTTP {exc.status}).",
                    code="EVALUATOR_UNAVAILABLE",
                    context={"status": exc.status},
                ) from exc
            raise

        if not response.data:
            return None
        try:
            return ExploratoryEvaluation.model_validate(response.data)
        except ValidationError:
            return None
