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
"""RunContext: mutable state carrier for one saga run."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from sagarunner.client.auth import AuthSession
from sagarunner.kernel.exceptions import PrerequisiteMissingError


@dataclass
class RunContext:
    """Mutable bag of state threaded through every step of one saga run.

    Owned by exactly one worker for the duration of the run and never shared
    across runs. Booking ids are append-only; entity ids are set once by the
    step that creates them and read by later steps.
    """

    saga_key: str
    run_id: str
    owner: AuthSession
    member: AuthSession | None = None
    customer1: AuthSession | None = None
    customer2: AuthSession | None = None
    adversary: AuthSession | None = None
    biz_id: str | None = None
    location_id: str | None = None
    offer_id: str | None = None
    offer_version_id: str | None = None
    queue_id: str | None = None
    host_resource_id: str | None = None
    asset_resource_id: str | None = None
    subject_subscription_id: str | None = None
    subject_subscription_identity_id: str | None = None
    subject_subscription_target_type: str | None = None
    subject_subscription_target_id: str | None = None
    validation_shadow_biz_id: str | None = None
    agent_tool_names: frozenset[str] | None = None
    booking_ids: list[str] = field(default_factory=list)
    metadata_patch: dict[str, Any] = field(default_factory=dict)

    # ── booking helpers ───────────────────────────────────────

    def record_booking(self, booking_id: str) -> None:
        self.booking_ids.append(booking_id)

    @property
    def first_booking_id(self) -> str | None:
        return self.booking_ids[0] if self.booking_ids else None

    # ── metadata helpers ──────────────────────────────────────

    def merge_metadata(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Shallow-merge *patch* into the accumulated biz metadata and return a copy."""
        self.metadata_patch = {**self.metadata_patch, **patch}
        return dict(self.metadata_patch)

    # ── prerequisite helpers ──────────────────────────────────

    def require(self, *attributes: str, purpose: str) -> None:
        """Raise unless every named attribute is set.

        Raises:
            PrerequisiteMissingError: e.g. ``bizId is required before location creation.``
        """
        missing = [name for name in attributes if not getattr(self, name)]
        if missing:
            names = "/".join(_camel(name) for name in missing)
            raise PrerequisiteMissingError(
                f"{names} {'is' if len(missing) == 1 else 'are'} required before {purpose}.",
                code="PREREQUISITE_MISSING",
                context={"missing": missing, "sagaKey": self.saga_key},
            )


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
