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
"""Reusable fixture builders shared by the scenario step handlers.

Each builder creates (or reuses) one domain entity through the step's traced
client and records its id on the run context for later steps.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from sagarunner.client.api_client import ApiResponse
from sagarunner.client.auth import AuthSession
from sagarunner.core.text import random_suffix, to_slug
from sagarunner.kernel.exceptions import SagaRunnerException
from sagarunner.saga.core.context import RunContext
from sagarunner.saga.core.outcome import block_step
from sagarunner.saga.core.scope import StepScope

BIZES = "/api/v1/bizes"
PUBLIC_BIZES = "/api/v1/public/bizes"

BOOKING_PRICE_MINOR = 15_000
BOOKING_DURATION_MIN = 50


# ── response helpers ──────────────────────────────────────────


def object_data(response: ApiResponse) -> dict[str, Any]:
    """The envelope's ``data`` as an object; an empty dict when absent."""
    data = response.data
    return data if isinstance(data, dict) else {}


def list_data(response: ApiResponse) -> list[dict[str, Any]]:
    data = response.data
    if isinstance(data, dict) and isinstance(data.get("items"), list):
        data = data["items"]
    if not isinstance(data, list):
        return []
    return [row for row in data if isinstance(row, dict)]


def required_id(record: dict[str, Any], what: str) -> str:
    value = record.get("id")
    if not value:
        raise SagaRunnerException(f"{what} id missing from API response.", code="MISSING_ID")
    return str(value)


def contains_id(rows: Iterable[dict[str, Any]], entity_id: str) -> bool:
    return any(row.get("id") == entity_id for row in rows)


# ── business fixtures ─────────────────────────────────────────


async def _post_biz(scope: StepScope, saga_key: str) -> dict[str, Any]:
    response = await scope.api.request_json(
        BIZES,
        method="POST",
        cookie=scope.ctx.owner.cookie,
        body={
            "name": f"Saga {saga_key}",
            "slug": f"{to_slug(saga_key, 60)}-{random_suffix(8)}",
            "type": "small_business",
            "timezone": "UTC",
            "currency": "USD",
        },
        accept_statuses=(201,),
    )
    return object_data(response)


async def create_biz(scope: StepScope) -> dict[str, Any]:
    biz = await _post_biz(scope, scope.ctx.saga_key)
    scope.ctx.biz_id = required_id(biz, "Business")
    return biz


async def ensure_shadow_biz(scope: StepScope) -> str:
    """A second business owned by the same owner, used as a foreign tenant."""
    ctx = scope.ctx
    if not ctx.validation_shadow_biz_id:
        shadow = await _post_biz(scope, f"{ctx.saga_key}-shadow")
        ctx.validation_shadow_biz_id = required_id(shadow, "Shadow business")
    return ctx.validation_shadow_biz_id


async def patch_biz_metadata(scope: StepScope, patch: dict[str, Any]) -> dict[str, Any]:
    """Merge *patch* into the accumulated biz metadata and write the whole object back."""
    ctx = scope.ctx
    ctx.require("biz_id", purpose="metadata patch")
    metadata = ctx.merge_metadata(patch)
    await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}",
        method="PATCH",
        cookie=ctx.owner.cookie,
        body={"metadata": metadata},
        accept_statuses=(200,),
    )
    return metadata


async def create_location(scope: StepScope) -> dict[str, Any]:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="location creation")
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/locations",
        method="POST",
        cookie=ctx.owner.cookie,
        body={"name": "Primary Location", "slug": f"loc-{random_suffix(8)}", "type": "physical", "timezone": "UTC"},
        accept_statuses=(201,),
    )
    location = object_data(response)
    ctx.location_id = required_id(location, "Location")
    return location


async def _create_resource(scope: StepScope, kind: str, name: str, buffer_minutes: int) -> str:
    ctx = scope.ctx
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/resources",
        method="POST",
        cookie=ctx.owner.cookie,
        body={
            "locationId": ctx.location_id,
            "type": kind,
            "name": name,
            "slug": f"{kind}-{random_suffix(8)}",
            "capacity": 1,
            "bufferBeforeMinutes": buffer_minutes,
            "bufferAfterMinutes": buffer_minutes,
        },
        accept_statuses=(201,),
    )
    return required_id(object_data(response), f"{name} resource")


async def create_resources(scope: StepScope) -> dict[str, str]:
    ctx = scope.ctx
    ctx.require("biz_id", "location_id", purpose="resources")
    ctx.host_resource_id = await _create_resource(scope, "host", "Primary Host", 10)
    ctx.asset_resource_id = await _create_resource(scope, "asset", "Primary Asset", 5)
    return {"hostId": ctx.host_resource_id, "assetId": ctx.asset_resource_id}


async def invite_and_accept_member(scope: StepScope) -> dict[str, str]:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="member invite")
    member = await scope.new_session(f"member-{ctx.saga_key}")
    ctx.member = member
    origin = scope.auth.trusted_origin

    invite = await scope.api.request_json(
        "/api/auth/organization/invite-member",
        method="POST",
        cookie=ctx.owner.cookie,
        origin=origin,
        raw=True,
        body={"email": member.email, "role": "admin", "organizationId": ctx.biz_id},
        accept_statuses=(200,),
    )
    invitation_id = invite.payload.get("id") if isinstance(invite.payload, dict) else None
    if not invitation_id:
        raise SagaRunnerException("Invitation id missing from invite-member response.", code="MISSING_ID")

    await scope.api.request_json(
        "/api/auth/organization/accept-invitation",
        method="POST",
        cookie=member.cookie,
        origin=origin,
        raw=True,
        body={"invitationId": invitation_id},
        accept_statuses=(200,),
    )
    return {"memberEmail": member.email, "invitationId": str(invitation_id)}


# ── catalog fixtures ──────────────────────────────────────────


async def create_offer(scope: StepScope) -> dict[str, str]:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="offer creation")
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/offers",
        method="POST",
        cookie=ctx.owner.cookie,
        body={
            "name": "Primary Service Offer",
            "slug": f"offer-{random_suffix(8)}",
            "executionMode": "slot",
            "status": "draft",
            "isPublished": False,
            "timezone": "UTC",
        },
        accept_statuses=(201,),
    )
    ctx.offer_id = required_id(object_data(response), "Offer")
    return {"offerId": ctx.offer_id}


async def create_offer_version(scope: StepScope) -> dict[str, str]:
    ctx = scope.ctx
    ctx.require("biz_id", "offer_id", purpose="offer version creation")
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/offers/{ctx.offer_id}/versions",
        method="POST",
        cookie=ctx.owner.cookie,
        body={
            "version": 1,
            "status": "published",
            "durationMode": "fixed",
            "defaultDurationMin": BOOKING_DURATION_MIN,
            "basePriceMinor": BOOKING_PRICE_MINOR,
            "currency": "USD",
        },
        accept_statuses=(201,),
    )
    ctx.offer_version_id = required_id(object_data(response), "Offer version")
    return {"offerVersionId": ctx.offer_version_id}


async def publish_offer(scope: StepScope) -> None:
    ctx = scope.ctx
    ctx.require("biz_id", "offer_id", purpose="publish")
    await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/offers/{ctx.offer_id}",
        method="PATCH",
        cookie=ctx.owner.cookie,
        body={"status": "active", "isPublished": True},
        accept_statuses=(200,),
    )


# ── customers and bookings ────────────────────────────────────


async def create_customer(scope: StepScope, slot: str) -> AuthSession:
    """Sign up a customer and store it on the context as ``customer1`` or ``customer2``."""
    if slot not in ("customer1", "customer2"):
        raise ValueError(f"Unknown customer slot: {slot}")
    customer = await scope.new_session(f"{slot}-{scope.ctx.saga_key}")
    setattr(scope.ctx, slot, customer)
    return customer


def booking_window(offset_hours: float, *, now: datetime | None = None) -> tuple[str, str]:
    start = (now or datetime.now(UTC)) + timedelta(hours=offset_hours)
    end = start + timedelta(minutes=BOOKING_DURATION_MIN)
    return _iso(start), _iso(end)


def _iso(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def create_booking(
    scope: StepScope,
    actor: AuthSession,
    customer_user_id: str | None = None,
    offset_hours: float = 24,
) -> dict[str, Any]:
    ctx = scope.ctx
    ctx.require("biz_id", "offer_id", "offer_version_id", purpose="booking")
    start, end = booking_window(offset_hours)
    response = await scope.api.request_json(
        f"{PUBLIC_BIZES}/{ctx.biz_id}/booking-orders",
        method="POST",
        cookie=actor.cookie,
        body={
            "offerId": ctx.offer_id,
            "offerVersionId": ctx.offer_version_id,
            "customerUserId": customer_user_id,
            "status": "confirmed",
            "subtotalMinor": BOOKING_PRICE_MINOR,
            "taxMinor": 0,
            "feeMinor": 0,
            "discountMinor": 0,
            "totalMinor": BOOKING_PRICE_MINOR,
            "currency": "USD",
            "requestedStartAt": start,
            "requestedEndAt": end,
            "confirmedStartAt": start,
            "confirmedEndAt": end,
        },
        accept_statuses=(201,),
    )
    booking = object_data(response)
    ctx.record_booking(required_id(booking, "Booking"))
    return booking


# ── waitlist ──────────────────────────────────────────────────


async def ensure_waitlist_queue(scope: StepScope) -> dict[str, Any]:
    """Create the run's waitlist queue once and reuse it afterwards."""
    ctx = scope.ctx
    if ctx.queue_id:
        return {"queueId": ctx.queue_id}
    ctx.require("biz_id", purpose="queue creation")
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/queues",
        method="POST",
        cookie=ctx.owner.cookie,
        body={
            "locationId": ctx.location_id,
            "name": "Primary Waitlist",
            "slug": f"waitlist-{random_suffix(8)}",
            "description": "Auto-generated waitlist used by deterministic saga reruns.",
            "strategy": "fifo",
            "status": "active",
            "isSelfJoinEnabled": True,
            "metadata": {"createdBy": "sagarunner", "sagaKey": ctx.saga_key},
        },
        accept_statuses=(201,),
    )
    queue = object_data(response)
    ctx.queue_id = required_id(queue, "Queue")
    return {"queueId": ctx.queue_id, "queueName": queue.get("name"), "queueSlug": queue.get("slug")}


async def join_waitlist_as_customer(scope: StepScope, customer: AuthSession) -> dict[str, Any]:
    """Join the public waitlist and check both the customer and the operator can see the entry."""
    ctx = scope.ctx
    ctx.require("biz_id", purpose="waitlist join")
    queue_id = (await ensure_waitlist_queue(scope))["queueId"]
    public_entries = f"{PUBLIC_BIZES}/{ctx.biz_id}/queues/{queue_id}/entries"

    joined = await scope.api.request_json(
        public_entries,
        method="POST",
        cookie=customer.cookie,
        body={
            "requestedOfferVersionId": ctx.offer_version_id,
            "priorityScore": 0,
            "metadata": {"source": "sagarunner", "actor": customer.email},
        },
        accept_statuses=(201,),
    )
    entry = object_data(joined)
    entry_id = required_id(entry, "Queue entry")

    mine = list_data(await scope.api.request_json(public_entries, cookie=customer.cookie, accept_statuses=(200,)))
    if not contains_id(mine, entry_id):
        block_step(
            scope.key,
            "Joined queue entry is not visible on customer waitlist API.",
            {"queueId": queue_id, "queueEntryId": entry_id, "customerEntryCount": len(mine)},
        )

    operator = list_data(
        await scope.api.request_json(
            f"{BIZES}/{ctx.biz_id}/queues/{queue_id}/entries?status=waiting",
            cookie=ctx.owner.cookie,
            accept_statuses=(200,),
        )
    )
    if not contains_id(operator, entry_id):
        block_step(
            scope.key,
            "Joined queue entry is not visible on operator queue API.",
            {"queueId": queue_id, "queueEntryId": entry_id, "operatorEntryCount": len(operator)},
        )

    return {
        "queueId": queue_id,
        "queueEntryId": entry_id,
        "queueEntryStatus": entry.get("status"),
        "customerEntryCount": len(mine),
        "operatorEntryCount": len(operator),
    }


# ── access checks ─────────────────────────────────────────────


async def assert_forbidden(
    scope: StepScope, session: AuthSession, path: str, *, method: str = "GET", body: Any = None
) -> None:
    """Raise unless *session* gets HTTP 403 for the request."""
    await scope.api.request_json(
        path, method=method, body=body, cookie=session.cookie, accept_statuses=(403,), raw=True
    )


# ── subscriptions ─────────────────────────────────────────────


async def ensure_subject_subscription(scope: StepScope) -> dict[str, str]:
    ctx = scope.ctx
    ctx.require("biz_id", purpose="subject-subscription validation")
    if (
        ctx.subject_subscription_id
        and ctx.subject_subscription_identity_id
        and ctx.subject_subscription_target_type
        and ctx.subject_subscription_target_id
    ):
        return _subscription_fixture(ctx)

    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/subject-subscriptions",
        method="POST",
        cookie=ctx.owner.cookie,
        body={
            "targetSubjectType": "offer_watch",
            "targetSubjectId": f"offer-watch-{ctx.offer_id or random_suffix(10)}",
            "targetDisplayName": "Saga Validation Subject",
            "subscriptionType": "watch",
            "status": "active",
            "deliveryMode": "instant",
            "preferredChannel": "in_app",
            "minDeliveryIntervalMinutes": 0,
            "autoRegisterTargetSubject": True,
            "metadata": {"source": "sagarunner", "sagaKey": ctx.saga_key},
        },
        accept_statuses=(200, 201),
    )
    created = object_data(response)
    ctx.subject_subscription_id = required_id(created, "Subject subscription")
    ctx.subject_subscription_identity_id = created.get("subscriberIdentityId")
    ctx.subject_subscription_target_type = created.get("targetSubjectType")
    ctx.subject_subscription_target_id = created.get("targetSubjectId")
    return _subscription_fixture(ctx)


def _subscription_fixture(ctx: RunContext) -> dict[str, str]:
    return {
        "subscriptionId": ctx.subject_subscription_id,
        "subscriberIdentityId": ctx.subject_subscription_identity_id,
        "targetSubjectType": ctx.subject_subscription_target_type,
        "targetSubjectId": ctx.subject_subscription_target_id,
    }


# ── agent tools ───────────────────────────────────────────────


async def agent_tool_names(scope: StepScope) -> frozenset[str]:
    """Names of the agent tools the API exposes, fetched once per run."""
    ctx = scope.ctx
    if ctx.agent_tool_names is not None:
        return ctx.agent_tool_names
    response = await scope.api.request_json("/api/v1/agents/tools", cookie=ctx.owner.cookie, accept_statuses=(200,))
    names = frozenset(str(tool.get("name") or "").strip() for tool in list_data(response)) - {""}
    ctx.agent_tool_names = names
    return names
