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
"""Intentional-failure steps used to check that the runner classifies errors correctly.

Each of these is expected to end ``failed``.
"""

from __future__ import annotations

import json

from sagarunner.kernel.exceptions import PrerequisiteMissingError
from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.registry import step_handler

TEST_ROUTES = "/api/v1/test"

UNEXPECTED_SUCCESS = StepResultPayload("This should not succeed")


@step_handler("test-http-500-error")
async def trigger_http_500_error(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(
        f"{TEST_ROUTES}/trigger-500", method="POST", cookie=scope.ctx.owner.cookie, accept_statuses=(201,)
    )
    return UNEXPECTED_SUCCESS


@step_handler("test-validation-error")
async def trigger_validation_error(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(
        f"{TEST_ROUTES}/trigger-400", method="POST", body={}, cookie=scope.ctx.owner.cookie, accept_statuses=(201,)
    )
    return UNEXPECTED_SUCCESS


@step_handler("test-not-found-error")
async def trigger_not_found_error(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(
        f"{TEST_ROUTES}/trigger-404/nonexistent-id", cookie=scope.ctx.owner.cookie, accept_statuses=(200,)
    )
    return UNEXPECTED_SUCCESS


@step_handler("test-unauthorized-access")
async def trigger_unauthorized_access(scope: StepScope) -> StepResultPayload:
    # no session cookie on purpose
    await scope.api.request_json(f"{TEST_ROUTES}/trigger-401", accept_statuses=(200,))
    return UNEXPECTED_SUCCESS


@step_handler("test-forbidden-access")
async def trigger_forbidden_access(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(f"{TEST_ROUTES}/trigger-403", cookie=scope.ctx.owner.cookie, accept_statuses=(200,))
    return UNEXPECTED_SUCCESS


@step_handler("test-duplicate-slug")
async def trigger_duplicate_slug(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(
        f"{TEST_ROUTES}/trigger-409", method="POST", cookie=scope.ctx.owner.cookie, accept_statuses=(201,)
    )
    return UNEXPECTED_SUCCESS


@step_handler("test-timeout-scenario")
async def trigger_timeout_scenario(scope: StepScope) -> StepResultPayload:
    await scope.api.request_json(
        f"{TEST_ROUTES}/trigger-timeout", cookie=scope.ctx.owner.cookie, accept_statuses=(200,)
    )
    return UNEXPECTED_SUCCESS


@step_handler("test-invalid-json-response")
async def trigger_invalid_json_response(scope: StepScope) -> StepResultPayload:
    text = await scope.api.request_text(f"{TEST_ROUTES}/trigger-malformed", cookie=scope.ctx.owner.cookie)
    json.loads(text)
    return UNEXPECTED_SUCCESS


@step_handler("test-missing-prerequisite")
async def require_missing_prerequisite(scope: StepScope) -> StepResultPayload:
    if not scope.ctx.offer_id:
        raise PrerequisiteMissingError(
            "offerId is required but not set - intentional failure for testing", code="PREREQUISITE_MISSING"
        )
    return StepResultPayload("This should not succeed", {"offerId": scope.ctx.offer_id})
