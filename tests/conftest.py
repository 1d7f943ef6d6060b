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
"""Shared fixtures: an in-memory saga API served through httpx.MockTransport."""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import pytest

from sagarunner.client.adapters.httpx_adapter import HttpxClientAdapter
from sagarunner.client.api_client import SagaApiClient
from sagarunner.client.auth import AuthSession
from sagarunner.saga.core.context import RunContext

BASE_URL = "http://api.test"

RouteHandler = Callable[[httpx.Request], httpx.Response]


def envelope(data: Any, status: int = 200, **headers: str) -> httpx.Response:
    return httpx.Response(status, json={"success": True, "data": data}, headers=headers)


def created(entity_id: str, **fields: Any) -> httpx.Response:
    return envelope({"id": entity_id, **fields}, 201)


def failure(status: int, message: str = "nope") -> httpx.Response:
    return httpx.Response(status, json={"success": False, "error": {"message": message}})


def request_body(request: httpx.Request) -> Any:
    return json.loads(request.content) if request.content else None


@dataclass
class StoredRun:
    id: str
    saga_key: str
    steps: list[dict[str, Any]]
    status: str = "pending"
    results: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    traces: list[dict[str, Any]] = field(default_factory=list)
    snapshots: list[dict[str, Any]] = field(default_factory=list)
    reports: list[dict[str, Any]] = field(default_factory=list)

    def detail(self) -> dict[str, Any]:
        passed = sum(1 for s in self.steps if s["status"] == "passed")
        return {
            "run": {
                "id": self.id,
                "sagaKey": self.saga_key,
                "status": self.status,
                "passedSteps": passed,
                "totalSteps": len(self.steps),
            },
            "steps": [dict(s) for s in self.steps],
        }

    def apply_result(self, step_key: str, body: dict[str, Any]) -> None:
        self.results.append((step_key, body))
        for step in self.steps:
            if step["stepKey"] == step_key:
                step["status"] = body["status"]
        statuses = {s["status"] for s in self.steps}
        if statuses & {"failed", "blocked"}:
            self.status = "failed"
        elif statuses <= {"passed", "skipped"}:
            self.status = "passed"
        else:
            self.status = "running"


class FakeSagaApi:
    """Stateful stand-in for the saga API.

    Implements the identity, catalog and run lifecycle endpoints. Extra
    routes registered with :meth:`route` take precedence and let a test
    script the business endpoints its handlers call.
    """

    def __init__(self) -> None:
        self.definitions: dict[str, list[dict[str, Any]]] = {}
        self.inactive: set[str] = set()
        self.runs: dict[str, StoredRun] = {}
        self.requests: list[httpx.Request] = []
        self.sign_ups: list[dict[str, Any]] = []
        self.evaluator: RouteHandler = lambda request: failure(404, "not deployed")
        self._routes: list[tuple[str, re.Pattern[str], RouteHandler]] = []
        self._run_seq = 0

    # -- scripting -------------------------------------------------------------

    def define(self, saga_key: str, *steps: dict[str, Any] | str) -> None:
        rows = []
        for step in steps:
            row = {"stepKey": step} if isinstance(step, str) else dict(step)
            row.setdefault("title", "")
            row.setdefault("status", "pending")
            rows.append(row)
        self.definitions[saga_key] = rows

    def route(self, method: str, pattern: str, handler: RouteHandler | httpx.Response) -> None:
        """Serve *method* requests whose path (with query) fully matches *pattern*."""
        self._routes.insert(0, (method, re.compile(pattern), _as_handler(handler)))

    def paths(self, method: str | None = None) -> list[str]:
        return [_target(r) for r in self.requests if method is None or r.method == method]

    def run(self, run_id: str | None = None) -> StoredRun:
        return self.runs[run_id] if run_id else next(iter(self.runs.values()))

    # -- transport -------------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        target = _target(request)
        for method, pattern, fn in self._routes:
            if method == request.method and pattern.fullmatch(target):
                return fn(request)
        return self.lifecycle(request)

    def lifecycle(self, request: httpx.Request) -> httpx.Response:
        """Serve *request* from the built-in identity, catalog and run endpoints."""
        method, path = request.method, request.url.path
        if method == "POST" and path == "/api/auth/sign-up/email":
            body = request_body(request)
            self.sign_ups.append(body)
            token = f"tok-{len(self.sign_ups)}"
            return httpx.Response(
                200,
                json={"token": token},
                headers={"set-cookie": f"better-auth.session_token={token}; Path=/; HttpOnly"},
            )
        if method == "GET" and path == "/api/auth/get-session":
            token = request.headers.get("cookie", "").partition("=")[2]
            return httpx.Response(200, json={"user": {"id": f"user-{token}"}})
        if method == "GET" and path == "/api/v1/sagas/specs":
            rows = [
                {"sagaKey": key, "title": key, "status": "archived" if key in self.inactive else "active"}
                for key in self.definitions
            ]
            return envelope(rows)
        if method == "POST" and path == "/api/v1/sagas/runs":
            body = request_body(request)
            self._run_seq += 1
            run = StoredRun(
                id=f"run-{self._run_seq}",
                saga_key=body["sagaKey"],
                steps=[dict(s) for s in self.definitions.get(body["sagaKey"], [])],
            )
            self.runs[run.id] = run
            return envelope(run.detail(), 201)

        match = re.fullmatch(r"/api/v1/sagas/runs/([^/]+)(/.*)?", path)
        if match is None or match.group(1) not in self.runs:
            return failure(404, f"no route for {method} {path}")
        run = self.runs[match.group(1)]
        rest = match.group(2) or ""

        if method == "GET" and rest == "":
            return envelope(run.detail())
        if method == "GET" and rest == "/messages":
            return envelope([])
        if method == "POST" and rest.endswith("/exploratory-evaluate"):
            return self.evaluator(request)
        if method == "POST" and rest.startswith("/steps/") and rest.endswith("/result"):
            step_key = rest.removeprefix("/steps/").removesuffix("/result")
            run.apply_result(step_key, request_body(request))
            return envelope({"ok": True})
        if method == "POST" and rest == "/traces":
            run.traces.append(request_body(request))
            return envelope({"id": f"trace-{len(run.traces)}"}, 201)
        if method == "POST" and rest == "/snapshots":
            run.snapshots.append(request_body(request))
            return envelope({"id": f"snap-{len(run.snapshots)}"}, 201)
        if method == "POST" and rest == "/report":
            run.reports.append(request_body(request))
            return envelope({"id": "report-1"}, 201)
        return failure(404, f"no route for {method} {path}")


def _target(request: httpx.Request) -> str:
    return request.url.raw_path.decode()


def _as_handler(handler: RouteHandler | httpx.Response) -> RouteHandler:
    if not isinstance(handler, httpx.Response):
        return handler
    canned = handler

    def respond(request: httpx.Request) -> httpx.Response:
        return httpx.Response(canned.status_code, content=canned.content, headers=canned.headers)

    return respond


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_api() -> FakeSagaApi:
    return FakeSagaApi()


@pytest.fixture
def http(fake_api: FakeSagaApi) -> HttpxClientAdapter:
    return HttpxClientAdapter(base_url=BASE_URL, transport=fake_api.transport())


@pytest.fixture
def api(http: HttpxClientAdapter) -> SagaApiClient:
    return SagaApiClient(http)


@pytest.fixture
def owner() -> AuthSession:
    return AuthSession(
        email="owner@example.com",
        password="pass123456",
        user_id="user-owner",
        cookie="better-auth.session_token=owner",
    )


@pytest.fixture
def make_ctx(owner: AuthSession) -> Callable[..., RunContext]:
    def factory(run_id: str = "run-1", saga_key: str = "saga-a", **fields: Any) -> RunContext:
        return RunContext(saga_key=saga_key, run_id=run_id, owner=owner, **fields)

    return factory
