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
"""Deterministic checks for exploratory validation steps.

Exploratory steps carry free-text instructions. A check matches lowercase
phrases in the instruction and runs concrete API assertions for it; when no
phrase matches, the check returns ``None`` and the exploratory chain falls
through to the remote evaluator.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sagarunner.core.text import random_suffix
from sagarunner.saga.core.outcome import StepResultPayload, block_step
from sagarunner.saga.core.scope import StepScope
from sagarunner.saga.engine.exploratory import DeterministicCheck
from sagarunner.saga.scenarios import fixtures
from sagarunner.saga.scenarios.fixtures import BIZES, PUBLIC_BIZES, contains_id, list_data, object_data
from sagarunner.saga.types import StepFamily, StepStatus

Check = Callable[[StepScope], Awaitable[StepResultPayload]]

DEFAULT_VISIBLE_SLOTS = 3

SLOT_VISIBILITY_POLICY = {
    "slotVisibility": {
        "defaultVisibleSlotCount": DEFAULT_VISIBLE_SLOTS,
        "defaultAdvanceDays": 7,
        "tierOverrides": {
            "vip": {"visibleSlotCount": 10, "advanceDays": 30},
            "loyalty": {"visibleSlotCount": 5, "advanceDays": 30},
        },
    }
}

MIN_PASSED_SETUP_STEPS = 10


@dataclass(frozen=True)
class InstructionRule:
    """Runs *check* when the step instruction contains any of *phrases*."""

    phrases: tuple[str, ...]
    check: Check

    def matches(self, instruction: str) -> bool:
        return any(phrase in instruction for phrase in self.phrases)


def instruction_check(rules: Sequence[InstructionRule], *, purpose: str) -> DeterministicCheck:
    """Build a deterministic check that dispatches on the first matching rule."""

    async def check(scope: StepScope) -> StepResultPayload | None:
        scope.ctx.require("biz_id", purpose=purpose)
        instruction = (scope.step.instruction or "").lower()
        for rule in rules:
            if rule.matches(instruction):
                return await rule.check(scope)
        return None

    return check


def _epoch(value: Any) -> float:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()


def _starts(slots: list[dict[str, Any]]) -> list[Any]:
    return [slot.get("startAt") for slot in slots]


# ── use-case need checks: slot visibility ────────────────────


async def _apply_slot_policy(scope: StepScope) -> None:
    ctx = scope.ctx
    await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/offers/{ctx.offer_id}/versions/{ctx.offer_version_id}",
        method="PATCH",
        cookie=ctx.owner.cookie,
        body={"policyModel": SLOT_VISIBILITY_POLICY},
        accept_statuses=(200,),
    )


async def _availability(scope: StepScope, cookie: str, query: str = "") -> dict[str, Any]:
    ctx = scope.ctx
    response = await scope.api.request_json(
        f"{PUBLIC_BIZES}/{ctx.biz_id}/offers/{ctx.offer_id}/availability?offerVersionId={ctx.offer_version_id}{query}",
        cookie=cookie,
        accept_statuses=(200,),
    )
    data = object_data(response)
    data["slots"] = [slot for slot in data.get("slots") or [] if isinstance(slot, dict)]
    data["visibility"] = data.get("visibility") or {}
    return data


async def check_slot_visibility_cap(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    if not (ctx.offer_id and ctx.offer_version_id):
        block_step(scope.key, "Offer and offer version are required for slot visibility validation.")
    await _apply_slot_policy(scope)
    cookie = (ctx.customer1 or ctx.owner).cookie

    data = await _availability(scope, cookie)
    slots = data["slots"]
    if len(slots) != DEFAULT_VISIBLE_SLOTS:
        block_step(
            scope.key,
            "Availability response did not cap regular viewer to 3 slots.",
            {"expectedSlots": DEFAULT_VISIBLE_SLOTS, "actualSlots": len(slots), "visibility": data["visibility"]},
        )
    starts = [_epoch(start) for start in _starts(slots)]
    if starts != sorted(starts):
        block_step(scope.key, "Availability slots are not sorted oldest-first.", {"slots": slots})

    expanded = await _availability(scope, cookie, "&limit=25")
    if (
        len(expanded["slots"]) != DEFAULT_VISIBLE_SLOTS
        or expanded["visibility"].get("effectiveVisibleSlotCount") != DEFAULT_VISIBLE_SLOTS
    ):
        block_step(
            scope.key,
            "Client could bypass slot visibility cap by requesting a larger limit.",
            {
                "requestedLimit": expanded["visibility"].get("requestedLimit"),
                "effectiveVisibleSlotCount": expanded["visibility"].get("effectiveVisibleSlotCount"),
                "returnedSlots": len(expanded["slots"]),
            },
        )

    return StepResultPayload(
        "Validated public slot discovery returns only the next 3 available slots for default viewers.",
        {
            "viewerTier": data["visibility"].get("viewerTier"),
            "returnedSlots": len(slots),
            "effectiveVisibleSlotCount": data["visibility"].get("effectiveVisibleSlotCount"),
            "firstSlot": slots[0],
            "thirdSlot": slots[2],
        },
    )


async def check_slot_rollover(scope: StepScope) -> StepResultPayload:
    """Booking one visible slot should promote the next hidden slot into the window."""
    ctx = scope.ctx
    if not (ctx.offer_id and ctx.offer_version_id):
        block_step(scope.key, "Offer context is required for slot-rollover validation.")
    await _apply_slot_policy(scope)
    actor = ctx.customer1 or ctx.owner

    before = await _availability(scope, actor.cookie)
    before_vip = await _availability(scope, actor.cookie, "&viewerTier=vip&limit=10")
    if len(before["slots"]) < DEFAULT_VISIBLE_SLOTS or not before["visibility"].get("nextHiddenSlotStartAt"):
        block_step(scope.key, "Not enough pre-booking slots to validate rollover behavior.", {"before": before})

    target = before["slots"][0]
    await scope.api.request_json(
        f"{PUBLIC_BIZES}/{ctx.biz_id}/booking-orders",
        method="POST",
        cookie=actor.cookie,
        body={
            "offerId": ctx.offer_id,
            "offerVersionId": ctx.offer_version_id,
            "status": "confirmed",
            "subtotalMinor": fixtures.BOOKING_PRICE_MINOR,
            "taxMinor": 0,
            "feeMinor": 0,
            "discountMinor": 0,
            "totalMinor": fixtures.BOOKING_PRICE_MINOR,
            "currency": "USD",
            "requestedStartAt": target.get("startAt"),
            "requestedEndAt": target.get("endAt"),
            "confirmedStartAt": target.get("startAt"),
            "confirmedEndAt": target.get("endAt"),
            "metadata": {"source": scope.key},
        },
        accept_statuses=(201,),
    )
    after = await _availability(scope, actor.cookie)

    booked_start, booked_end = _epoch(target.get("startAt")), _epoch(target.get("endAt"))

    def overlaps_booking(slot: dict[str, Any]) -> bool:
        return _epoch(slot.get("startAt")) < booked_end and _epoch(slot.get("endAt")) > booked_start

    expected_after = _starts([slot for slot in before_vip["slots"] if not overlaps_booking(slot)])[
        :DEFAULT_VISIBLE_SLOTS
    ]
    actual_after = _starts(after["slots"])
    booked_still_visible = target.get("startAt") in actual_after
    rollover_matches = len(expected_after) == DEFAULT_VISIBLE_SLOTS and expected_after == actual_after

    evidence = {
        "bookedSlot": target.get("startAt"),
        "expectedAfterStarts": expected_after,
        "actualAfterStarts": actual_after,
    }
    if len(after["slots"]) != DEFAULT_VISIBLE_SLOTS or booked_still_visible or not rollover_matches:
        block_step(
            scope.key,
            "Booking one slot did not open the next hidden slot as expected.",
            {
                **evidence,
                "bookedStillVisible": booked_still_visible,
                "rolloverMatchesExpected": rollover_matches,
                "before": before,
                "beforeVip": before_vip,
                "after": after,
            },
        )
    return StepResultPayload(
        "Validated rollover: booking one visible slot promotes the next hidden slot into the visible window.",
        {**evidence, "visibleSlotsBefore": _starts(before["slots"]), "visibleSlotsAfter": actual_after},
    )


# ── use-case need checks: subject subscriptions ──────────────


async def _patch_subscription(scope: StepScope, body: dict[str, Any]) -> dict[str, Any]:
    ctx = scope.ctx
    fixture = await fixtures.ensure_subject_subscription(scope)
    response = await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}/subject-subscriptions/{fixture['subscriptionId']}",
        method="PATCH",
        cookie=ctx.owner.cookie,
        body=body,
        accept_statuses=(200,),
    )
    return object_data(response)


def _persisted(updated: dict[str, Any], expected: dict[str, Any]) -> bool:
    return all(updated.get(key) == value for key, value in expected.items())


async def check_subscriber_identity_linkage(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    fixture = await fixtures.ensure_subject_subscription(scope)
    rows = list_data(
        await scope.api.request_json(
            f"{BIZES}/{ctx.biz_id}/subject-subscriptions?subscriberIdentityId={fixture['subscriberIdentityId']}",
            cookie=ctx.owner.cookie,
            accept_statuses=(200,),
        )
    )
    if not contains_id(rows, fixture["subscriptionId"]):
        block_step(
            scope.key,
            "Subject-level subscription row not linked to subscriber identity.",
            {
                "expectedSubscriptionId": fixture["subscriptionId"],
                "subscriberIdentityId": fixture["subscriberIdentityId"],
                "returnedRows": len(rows),
            },
        )
    return StepResultPayload(
        "Validated subject-level subscription records are linked to subscriber identity.",
        {"subscriptionId": fixture["subscriptionId"], "subscriberIdentityId": fixture["subscriberIdentityId"]},
    )


async def check_subscription_lifecycle(scope: StepScope) -> StepResultPayload:
    expected = {"subscriptionType": "notify", "status": "muted"}
    updated = await _patch_subscription(scope, expected)
    if not _persisted(updated, expected):
        block_step(
            scope.key,
            "Subscription type/status did not persist lifecycle update.",
            {"expected": expected, "actual": updated},
        )
    return StepResultPayload("Validated subscription type + lifecycle status updates.", updated)


async def check_delivery_preferences(scope: StepScope) -> StepResultPayload:
    expected = {"deliveryMode": "digest", "preferredChannel": "email"}
    updated = await _patch_subscription(scope, expected)
    if not _persisted(updated, expected):
        block_step(
            scope.key,
            "Delivery mode/channel preference update was not persisted.",
            {"expected": expected, "actual": updated},
        )
    return StepResultPayload("Validated delivery mode and preferred channel behavior.", updated)


async def check_delivery_throttling(scope: StepScope) -> StepResultPayload:
    updated = await _patch_subscription(scope, {"minDeliveryIntervalMinutes": 45})
    if updated.get("minDeliveryIntervalMinutes") != 45:
        block_step(
            scope.key,
            "Delivery throttling value was not persisted.",
            {"expected": 45, "actual": updated.get("minDeliveryIntervalMinutes")},
        )
    return StepResultPayload("Validated delivery throttling control persistence.", updated)


async def check_tenant_safe_linkage(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    await fixtures.ensure_subject_subscription(scope)
    shadow_biz_id = await fixtures.ensure_shadow_biz(scope)
    subscriptions = f"{BIZES}/{ctx.biz_id}/subject-subscriptions"

    rejected = await scope.api.request_json(
        subscriptions,
        method="POST",
        cookie=ctx.owner.cookie,
        raw=True,
        body={
            "targetSubjectBizId": shadow_biz_id,
            "targetSubjectType": "offer_watch",
            "targetSubjectId": f"cross-biz-{random_suffix(6)}",
            "subscriptionType": "watch",
        },
        accept_statuses=(400,),
    )
    payload = rejected.payload if isinstance(rejected.payload, dict) else {}
    if payload.get("success") is not False:
        block_step(
            scope.key,
            "Cross-biz target linkage was expected to be rejected but was accepted.",
            {"response": rejected.payload},
        )

    rows = list_data(await scope.api.request_json(subscriptions, cookie=ctx.owner.cookie, accept_statuses=(200,)))
    if any(row.get("targetSubjectBizId") != ctx.biz_id for row in rows):
        block_step(scope.key, "List API leaked cross-tenant target bindings.", {"bizId": ctx.biz_id, "rows": rows})
    return StepResultPayload(
        "Validated tenant-safe subject linkage enforcement.",
        {"rejectedTargetBizId": shadow_biz_id, "listedRows": len(rows)},
    )


UC_NEED_RULES: tuple[InstructionRule, ...] = (
    InstructionRule(("only show next 3 available slots initially",), check_slot_visibility_cap),
    InstructionRule(("when one books, open next slot",), check_slot_rollover),
    InstructionRule(("records per subscriber identity",), check_subscriber_identity_linkage),
    InstructionRule(("type and lifecycle status",), check_subscription_lifecycle),
    InstructionRule(("delivery mode", "channel preference"), check_delivery_preferences),
    InstructionRule(("throttling",), check_delivery_throttling),
    InstructionRule(("tenant-safe linkage",), check_tenant_safe_linkage),
)


# ── persona scenario checks ───────────────────────────────────


async def check_setup_completion(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    detail = await scope.runs.get_run(ctx.owner, ctx.run_id)
    completed = sum(1 for row in detail.steps if row.status == StepStatus.PASSED)
    anchors = {
        "bizId": ctx.biz_id,
        "locationId": ctx.location_id,
        "offerId": ctx.offer_id,
        "offerVersionId": ctx.offer_version_id,
    }
    present = sum(1 for value in anchors.values() if value)
    if completed < MIN_PASSED_SETUP_STEPS or present < len(anchors):
        block_step(
            scope.key,
            "Setup flow is incomplete before completion-time validation.",
            {"completedBeforeValidation": completed, "requiredAnchors": present},
        )
    return StepResultPayload(
        "Validated setup lifecycle reached a complete operational baseline.",
        {"completedBeforeValidation": completed, "anchors": anchors},
    )


async def _biz_metadata(scope: StepScope) -> dict[str, Any]:
    ctx = scope.ctx
    biz = object_data(
        await scope.api.request_json(f"{BIZES}/{ctx.biz_id}", cookie=ctx.owner.cookie, accept_statuses=(200,))
    )
    return dict(biz.get("metadata") or {})


async def _write_biz_metadata(scope: StepScope, metadata: dict[str, Any]) -> None:
    ctx = scope.ctx
    await scope.api.request_json(
        f"{BIZES}/{ctx.biz_id}",
        method="PATCH",
        cookie=ctx.owner.cookie,
        body={"metadata": metadata},
        accept_statuses=(200,),
    )


async def check_availability_restore(scope: StepScope) -> StepResultPayload:
    """Delete the availability config by accident, then restore the previous metadata."""
    metadata_before = await _biz_metadata(scope)
    had_availability = "availability" in metadata_before

    await _write_biz_metadata(scope, {k: v for k, v in metadata_before.items() if k != "availability"})
    after_delete = await _biz_metadata(scope)
    deleted = "availability" not in after_delete
    if not deleted:
        block_step(scope.key, "Availability config deletion did not apply.", {"metadataAfterDelete": after_delete})

    await _write_biz_metadata(scope, metadata_before)
    scope.ctx.metadata_patch = dict(metadata_before)

    restored = await _biz_metadata(scope)
    restored_availability = "availability" in restored
    if had_availability and not restored_availability:
        block_step(
            scope.key,
            "Availability config was not restorable after accidental deletion.",
            {"metadataRestored": restored},
        )
    return StepResultPayload(
        "Validated accidental availability deletion + restore recovery flow.",
        {
            "hadAvailabilityBefore": had_availability,
            "deletedAvailability": deleted,
            "restoredAvailability": restored_availability,
        },
    )


async def check_self_booking(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    booking = await fixtures.create_booking(scope, ctx.owner, ctx.owner.user_id, 48)
    booking_id = fixtures.required_id(booking, "Booking")
    rows = list_data(
        await scope.api.request_json(
            f"{PUBLIC_BIZES}/{ctx.biz_id}/booking-orders", cookie=ctx.owner.cookie, accept_statuses=(200,)
        )
    )
    if not contains_id(rows, booking_id):
        block_step(
            scope.key,
            "Self-booking succeeded but booking is not visible in customer scope.",
            {"bookingId": booking_id, "listedCount": len(rows)},
        )
    return StepResultPayload(
        "Validated owner can self-book through customer booking flow and view it.",
        {"bookingId": booking_id, "listedCount": len(rows)},
    )


async def check_buffer_time(scope: StepScope) -> StepResultPayload:
    ctx = scope.ctx
    host_id = ctx.host_resource_id
    if not host_id:
        block_step(scope.key, "Host resource id is unavailable for buffer-time validation.")

    async def set_buffers(minutes: int) -> dict[str, Any]:
        response = await scope.api.request_json(
            f"{BIZES}/{ctx.biz_id}/resources/{host_id}",
            method="PATCH",
            cookie=ctx.owner.cookie,
            body={"bufferBeforeMinutes": minutes, "bufferAfterMinutes": minutes},
            accept_statuses=(200,),
        )
        return object_data(response)

    zeroed = await set_buffers(0)
    if zeroed.get("bufferBeforeMinutes") != 0 or zeroed.get("bufferAfterMinutes") != 0:
        block_step(scope.key, "Could not simulate zero-buffer state on host resource.", {"actual": zeroed})

    restored = await set_buffers(10)
    if (restored.get("bufferBeforeMinutes") or 0) < 1 or (restored.get("bufferAfterMinutes") or 0) < 1:
        block_step(
            scope.key, "Could not restore buffer settings after zero-buffer simulation.", {"actual": restored}
        )
    return StepResultPayload(
        "Validated buffer settings can be audited and corrected after zero-buffer configuration.",
        {"hostResourceId": host_id, "before": zeroed, "after": restored},
    )


PERSONA_SCENARIO_RULES: tuple[InstructionRule, ...] = (
    InstructionRule(("setup flow completion time",), check_setup_completion),
    InstructionRule(("deletes availability rule",), check_availability_restore),
    InstructionRule(("book herself",), check_self_booking),
    InstructionRule(("buffer time",), check_buffer_time),
)


def default_exploratory_checks() -> dict[StepFamily, DeterministicCheck]:
    return {
        StepFamily.UC_NEED: instruction_check(UC_NEED_RULES, purpose="UC need validation"),
        StepFamily.PERSONA_SCENARIO: instruction_check(PERSONA_SCENARIO_RULES, purpose="persona-scenario validation"),
    }
