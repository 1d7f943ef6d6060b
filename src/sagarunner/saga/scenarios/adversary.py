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
"""Adversary steps: a non-member account must be refused across tenant boundaries."""

from __future__ import annotations

from sagarunner.client.auth import AuthSession
from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.registry import step_handler
from sagarunner.saga.scenarios.fixtures import BIZES, assert_forbidden

HOLD_ABUSE_ATTEMPTS = 3


async def _adversary(scope: StepScope, *, fresh: bool = False) -> AuthSession:
    ctx = scope.ctx
    if fresh or ctx.adversary is None:
        ctx.adversary = await scope.new_session(f"adversary-{ctx.saga_key}")
    return ctx.adversary


@step_handler("adversary-cross-biz-read")
async def adversary_cross_biz_read(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="adversary test")
    adversary = await _adversary(scope, fresh=True)
    await assert_forbidden(scope, adversary, f"{BIZES}/{ctx.biz_id}/booking-orders")
    return StepResultPayload(
        "Cross-biz read blocked for non-member account.", {"adversaryUserId": adversary.user_id}
    )


@step_handler("adversary-hold-abuse")
async def adversary_hold_abuse(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    ctx.require("biz_id", "offer_id", "offer_version_id", purpose="abuse simulation")
    adversary = await _adversary(scope)
    for _ in range(HOLD_ABUSE_ATTEMPTS):
        await assert_forbidden(
            scope,
            adversary,
            f"{BIZES}/{ctx.biz_id}/booking-orders",
            method="POST",
            body={
                "offerId": ctx.offer_id,
                "offerVersionId": ctx.offer_version_id,
                "status": "draft",
                "subtotalMinor": 1000,
                "taxMinor": 0,
                "feeMinor": 0,
                "discountMinor": 0,
                "totalMinor": 1000,
                "currency": "USD",
            },
        )
    return StepResultPayload("Repeated unauthorized hold attempts were blocked (403).")


@step_handler("adversary-marketplace-tenant-isolation")
async def adversary_marketplace_tenant_isolation(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="marketplace isolation test")
    adversary = await _adversary(scope)
    await assert_forbidden(scope, adversary, f"{BIZES}/{ctx.biz_id}/offers")
    await assert_forbidden(scope, adversary, f"{BIZES}/{ctx.biz_id}/booking-orders")
    return StepResultPayload(
        "Marketplace/cross-biz isolation enforced for non-member adversary.", {"adversaryUserId": adversary.user_id}
    )
