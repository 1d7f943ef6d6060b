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
"""Tests for endpoint-usage step contracts."""

from __future__ import annotations

from sagarunner.saga.core.trace import ApiTrace
from sagarunner.saga.engine.contracts import (
    ContractRegistry,
    ContractRule,
    StepContract,
    check_contract,
    default_contracts,
    evaluate_step_contract,
)


def _trace(*paths: str) -> ApiTrace:
    trace = ApiTrace()
    for path in paths:
        trace.record("GET", path, 200)
    return trace


class TestCheckContract:
    def test_every_rule_needs_one_matching_path(self) -> None:
        contract = StepContract(
            "demo",
            (
                ContractRule.of("create", r"/things$"),
                ContractRule.of("list", r"/things\?", r"/things/all"),
            ),
        )

        summary = check_contract(contract, ["/api/v1/things", "/api/v1/things?limit=5", "/api/v1/things"])

        assert summary.passed
        assert summary.passed_rules == 2
        assert summary.observed_paths == ("/api/v1/things", "/api/v1/things?limit=5")
        assert summary.matched_paths == ("/api/v1/things", "/api/v1/things?limit=5")

    def test_unmatched_rule_fails_contract(self) -> None:
        contract = StepContract("demo", (ContractRule.of("dispatch", r"/dispatch/state"),))

        summary = check_contract(contract, ["/api/v1/bizes/b1"])

        assert not summary.passed
        assert summary.failed_rules == 1
        rule = summary.rules[0]
        assert rule.matched_path is None
        assert rule.expected_patterns == ("/dispatch/state",)


class TestRegistry:
    def test_default_contracts_cover_known_steps(self) -> None:
        registry = default_contracts()
        assert len(registry) == 6
        assert "owner-review-route-dispatch-state" in registry
        assert "owner-create-biz" not in registry

    def test_step_without_contract_evaluates_to_none(self) -> None:
        assert evaluate_step_contract("owner-create-biz", _trace("/api/v1/bizes")) is None

    def test_demand_pricing_contract(self) -> None:
        passing = _trace(
            "/api/v1/bizes/b1/demand-pricing/policies",
            "/api/v1/bizes/b1/demand-pricing/policies?limit=10",
        )
        failing = _trace("/api/v1/bizes/b1/demand-pricing/policies")

        assert evaluate_step_contract("owner-configure-demand-pricing", passing).passed
        assert not evaluate_step_contract("owner-configure-demand-pricing", failing).passed

    def test_tenant_isolation_accepts_either_endpoint(self) -> None:
        summary = evaluate_step_contract(
            "adversary-marketplace-tenant-isolation", _trace("/api/v1/bizes/b1/booking-orders")
        )
        assert summary is not None and summary.passed

    def test_custom_registry(self) -> None:
        registry = ContractRegistry()
        registry.register("s1", StepContract("d", (ContractRule.of("ping", r"/ping$"),)))

        assert registry.evaluate("s1", _trace("/ping")).passed
        assert [key for key, _ in registry.items()] == ["s1"]


class TestSummaryRendering:
    def test_to_dict_and_assertion_fields(self) -> None:
        summary = evaluate_step_contract(
            "owner-review-route-dispatch-state", _trace("/api/v1/bizes/b1/dispatch/state")
        )
        assert summary is not None

        rendered = summary.to_dict()
        assert rendered["observedPaths"] == ["/api/v1/bizes/b1/dispatch/state"]
        assert rendered["rules"][0]["passed"] is True

        fields = summary.assertion_fields()
        assert fields["contractPassedRules"] == 1
        assert fields["contractFailedRules"] == 0
        assert fields["matchedPaths"] == ["/api/v1/bizes/b1/dispatch/state"]
