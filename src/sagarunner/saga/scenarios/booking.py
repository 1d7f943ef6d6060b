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
"""Customer steps: sign-up, bookings, waitlist and the split-tender payment flow."""

from __future__ import annotations

from sagarunner.client.auth import AuthSession
from sagarunner.kernel.exceptions import SagaRunnerException
from sagarunner.saga.core.outcome import StepResultPayload, block_step
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.registry import step_handler
from sagarunner.saga.scenarios import fixtures
from sagarunner.saga.scenarios.fixtures import BIZES, PUBLIC_BIZES, contains_id, list_data, object_data

ADVANCED_PAYMENT_TIP_MINOR = 500
ADVANCED_PAYMENT_TENDERS = (
    {"methodType": "card", "allocatedMinor": 10_000, "label": "Primary card"},
    {"methodType": "cash", "allocatedMinor": 5_500, "label": "Cash supplement"},
)
ADVANCED_PAYMENT_EXPECTED_MINOR = 15_500


async def _primary_customer(scope: StepScope) -> AuthSession:
    if scope.ctx.customer1 is None:
        return await fixtures.create_customer(scope, "customer1")
    return scope.ctx.customer1


@step_handler("customer-sign-up")
async def customer_sign_up(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    customer = await fixtures.create_customer(scope, "customer1")
    if ctx.biz_id:
        await scope.api.request_json(
            f"{PUBLIC_BIZES}/{ctx.biz_id}/offers", cookie=customer.cookie, accept_statuses=(200,)
        )
    return StepResultPayload(
        "Primary customer account created.", {"customerUserId": customer.user_id, "email": customer.email}
    )


@step_handler("customer-book-primary")
async def customer_book_primary(scope: StepScope) -> StepResultPayload:
    customer = await _primary_customer(scope)
    booking = await fixtures.create_booking(scope, customer, customer.user_id, 24)
    return StepResultPayload("Primary booking created.", booking)


@step_handler("customer-join-waitlist-flow")
async def customer_join_waitlist_flow(scope: StepScope) -> StepResultPayload:
    customer = await _primary_customer(scope)
    result = await fixtures.join_waitlist_as_customer(scope, customer)
    return StepResultPayload(
        "Customer joined waitlist and entry is visible to both customer and operator APIs.", result
    )


@step_handler("customer-two-concurrent")
async def customer_two_concurrent(scope: StepScope) -> StepResultPayload:
    customer = scope.ctx.customer2 or await fixtures.create_customer(scope, "customer2")
    booking = await fixtures.create_booking(scope, customer, customer.user_id, 24)
    return StepResultPayload("Second concurrent booking created.", booking)


@step_handler("customer-advanced-payment-flow")
async def customer_advanced_payment_flow(scope: StepScope) -> StepResultPayload:
    """Pay the first booking with a tip and two tenders, then trace the intent through the read model."""
    ctx = scope.ctx
    ctx.require("biz_id", purpose="advanced payment flow")
    customer = await _primary_customer(scope)
    booking_id = ctx.first_booking_id
    if not booking_id:
        raise SagaRunnerException(
            "At least one booking must exist before advanced payment flow.", code="PREREQUISITE_MISSING"
        )

    payment = object_data(
        await scope.api.request_json(
            f"{PUBLIC_BIZES}/{ctx.biz_id}/booking-orders/{booking_id}/payments/advanced",
            method="POST",
            cookie=customer.cookie,
            body={
                "tipMinor": ADVANCED_PAYMENT_TIP_MINOR,
                "tenders": [dict(tender) for tender in ADVANCED_PAYMENT_TENDERS],
                "metadata": {"source": "sagarunner"},
            },
            accept_statuses=(201,),
        )
    )
    intent_id = payment.get("paymentIntentId")

    intents = list_data(
        await scope.api.request_json(
            f"{BIZES}/{ctx.biz_id}/payment-intents?bookingOrderId={booking_id}",
            cookie=ctx.owner.cookie,
            accept_statuses=(200,),
        )
    )
    has_intent_in_list = bool(intent_id) and contains_id(intents, str(intent_id))

    detail = object_data(
        await scope.api.request_json(
            f"{BIZES}/{ctx.biz_id}/payment-intents/{intent_id}", cookie=ctx.owner.cookie, accept_statuses=(200,)
        )
    )
    intent = detail.get("intent") or {}
    evidence = {
        "paymentIntentId": intent_id,
        "amountTargetMinor": intent.get("amountTargetMinor"),
        "amountCapturedMinor": intent.get("amountCapturedMinor"),
        "intentStatus": intent.get("status"),
        "tenderCount": len(detail.get("tenders") or []),
        "lineAllocationCount": len(detail.get("lineAllocations") or []),
        "transactionCount": len(detail.get("transactions") or []),
        "transactionLineAllocationCount": len(detail.get("transactionLineAllocations") or []),
        "hasIntentInList": has_intent_in_list,
    }

    traceable = (
        has_intent_in_list
        and evidence["amountTargetMinor"] == ADVANCED_PAYMENT_EXPECTED_MINOR
        and evidence["amountCapturedMinor"] == ADVANCED_PAYMENT_EXPECTED_MINOR
        and evidence["intentStatus"] == "succeeded"
        and min(
            evidence["tenderCount"],
            evidence["lineAllocationCount"],
            evidence["transactionCount"],
            evidence["transactionLineAllocationCount"],
        )
        >= 2
    )
    if not traceable:
        block_step(scope.key, "Advanced payment records were created but traceability invariants failed.", evidence)
    return StepResultPayload(
        "Advanced split-tender flow executed and traceable through intent/tender/line allocations.", evidence
    )
