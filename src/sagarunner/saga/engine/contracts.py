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
"""Step contracts: deterministic endpoint-usage rules checked against a step trace.

A contract is a set of rules; each rule lists alternative path patterns and
passes when any distinct observed path matches any of them. A step whose
contract has a failed rule is failed even when its own logic succeeded.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from sagarunner.saga.core.trace import ApiTrace


@dataclass(frozen=True)
class ContractRule:
    label: str
    any_of: tuple[re.Pattern[str], ...]

    @classmethod
    def of(cls, label: str, *patterns: str) -> ContractRule:
        return cls(label=label, any_of=tuple(re.compile(p) for p in patterns))

    def first_match(self, paths: Iterable[str]) -> str | None:
        for path in paths:
            if any(pattern.search(path) for pattern in self.any_of):
                return path
        return None


@dataclass(frozen=True)
class StepContract:
    description: str
    endpoint_rules: tuple[ContractRule, ...]


@dataclass(frozen=True)
class RuleResult:
    label: str
    passed: bool
    expected_patterns: tuple[str, ...]
    matched_path: str | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "passed": self.passed,
            "expectedPatterns": list(self.expected_patterns),
            "matchedPath": self.matched_path,
        }


@dataclass(frozen=True)
class ContractCheckSummary:
    """Result of checking one step trace against its contract."""

    description: str
    observed_paths: tuple[str, ...]
    matched_paths: tuple[str, ...]
    rules: tuple[RuleResult, ...]
    passed_rules: int
    failed_rules: int

    @property
    def passed(self) -> bool:
        return self.failed_rules == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "observedPaths": list(self.observed_paths),
            "matchedPaths": list(self.matched_paths),
            "rules": [rule.to_dict() for rule in self.rules],
            "passedRules": self.passed_rules,
            "failedRules": self.failed_rules,
        }

    def assertion_fields(self) -> dict[str, Any]:
        """Extra assertion-summary fields reported with a passed step."""
        return {
            "contractDescription": self.description,
            "contractPassedRules": self.passed_rules,
            "contractFailedRules": self.failed_rules,
            "contractRules": [rule.to_dict() for rule in self.rules],
            "observedPaths": list(self.observed_paths),
            "matchedPaths": list(self.matched_paths),
        }


def check_contract(contract: StepContract, paths: Iterable[str]) -> ContractCheckSummary:
    observed = list(dict.fromkeys(paths))
    results: list[RuleResult] = []
    matched: list[str] = []
    for rule in contract.endpoint_rules:
        hit = rule.first_match(observed)
        if hit is not None:
            matched.append(hit)
        results.append(
            RuleResult(
                label=rule.label,
                passed=hit is not None,
                expected_patterns=tuple(p.pattern for p in rule.any_of),
                matched_path=hit,
            )
        )
    passed = sum(1 for r in results if r.passed)
    return ContractCheckSummary(
        description=contract.description,
        observed_paths=tuple(observed),
        matched_paths=tuple(dict.fromkeys(matched)),
        rules=tuple(results),
        passed_rules=passed,
        failed_rules=len(results) - passed,
    )


class ContractRegistry:
    """Step-key to contract lookup."""

    def __init__(self, contracts: dict[str, StepContract] | None = None) -> None:
        self._contracts: dict[str, StepContract] = dict(contracts or {})

    def register(self, step_key: str, contract: StepContract) -> None:
        self._contracts[step_key] = contract

    def get(self, step_key: str) -> StepContract | None:
        return self._contracts.get(step_key)

    def evaluate(self, step_key: str, trace: ApiTrace) -> ContractCheckSummary | None:
        """Check *trace* against the contract for *step_key*; ``None`` when there is none."""
        contract = self._contracts.get(step_key)
        if contract is None:
            return None
        return check_contract(contract, trace.observed_paths())

    def items(self) -> Iterator[tuple[str, StepContract]]:
        return iter(sorted(self._contracts.items()))

    def __contains__(self, step_key: object) -> bool:
        return step_key in self._contracts

    def __len__(self) -> int:
        return len(self._contracts)


def default_contracts() -> ContractRegistry:
    """Contracts for the built-in scenario steps."""
    return ContractRegistry(
        {
            "owner-configure-demand-pricing": StepContract(
                "Demand-pricing API surface should create and list policies.",
                (
                    ContractRule.of("Create demand policy endpoint called", r"/demand-pricing/policies$"),
                    ContractRule.of("List demand policy endpoint called", r"/demand-pricing/policies\?"),
                ),
            ),
            "owner-configure-external-integration": StepContract(
                "Channel integration API should create account/state/link and list back.",
                (
                    ContractRule.of("Create channel account", r"/channel-accounts$"),
                    ContractRule.of("Create or list channel sync state", r"/channel-sync-states"),
                    ContractRule.of("Create or list channel entity link", r"/channel-entity-links"),
                ),
            ),
            "customer-advanced-payment-flow": StepContract(
                "Advanced payment flow should hit checkout and intent read-model endpoints.",
                (
                    ContractRule.of("Advanced checkout endpoint called", r"/payments/advanced$"),
                    ContractRule.of("Payment intents endpoint called", r"/payment-intents"),
                ),
            ),
            "owner-review-route-dispatch-state": StepContract(
                "Dispatch/route read-model step must call dispatch state endpoint.",
                (ContractRule.of("Dispatch state endpoint called", r"/dispatch/state"),),
            ),
            "owner-validate-compliance-controls": StepContract(
                "Compliance controls step must read compliance controls endpoint.",
                (ContractRule.of("Compliance controls endpoint called", r"/compliance/controls"),),
            ),
            "adversary-marketplace-tenant-isolation": StepContract(
                "Tenant isolation step should attempt cross-tenant offers/orders reads.",
                (
                    ContractRule.of(
                        "Cross-biz offers or booking-orders endpoint attempted",
                        r"/offers$",
                        r"/booking-orders$",
                    ),
                ),
            ),
        }
    )


def evaluate_step_contract(
    step_key: str, trace: ApiTrace, registry: ContractRegistry | None = None
) -> ContractCheckSummary | None:
    return (registry or default_contracts()).evaluate(step_key, trace)
