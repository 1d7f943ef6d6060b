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
"""JSON-over-HTTP client for the saga API with optional per-step tracing."""

from __future__ import annotations

import logging
from collections.abc import Collection, Mapping
from dataclasses import dataclass, field
from typing import Any

from sagarunner.client.ports.outbound import HttpClientPort
from sagarunner.kernel.exceptions import ApiFailureError, ApiStatusError
from sagarunner.saga.core.trace import ApiTrace

logger = logging.getLogger(__name__)

DEFAULT_ACCEPT_STATUSES: tuple[int, ...] = (200, 201)


@dataclass(frozen=True)
class ApiResponse:
    """Status, decoded JSON payload (None for non-JSON bodies) and headers of one call."""

    status: int
    payload: Any
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def data(self) -> Any:
        """The ``data`` member of a ``{success, data}`` envelope."""
        if isinstance(self.payload, dict):
            return self.payload.get("data")
        return None


class SagaApiClient:
    """Issues JSON requests against the saga API.

    A client bound to an :class:`ApiTrace` records every call it makes into
    that trace; an unbound client records nothing. Bound views share the
    underlying transport.
    """

    def __init__(self, http: HttpClientPort, trace: ApiTrace | None = None) -> None:
        self._http = http
        self._trace = trace

    @property
    def trace(self) -> ApiTrace | None:
        return self._trace

    def traced(self, trace: ApiTrace) -> SagaApiClient:
        """Return a view of this client that records into *trace*."""
        return SagaApiClient(self._http, trace)

    def untraced(self) -> SagaApiClient:
        if self._trace is None:
            return self
        return SagaApiClient(self._http)

    async def request_json(
        self,
        path: str,
        *,
        method: str = "GET",
        body: Any = None,
        cookie: str | None = None,
        origin: str | None = None,
        accept_statuses: Collection[int] = DEFAULT_ACCEPT_STATUSES,
        raw: bool = False,
    ) -> ApiResponse:
        """Send one request and validate the response.

        Raises:
            ApiStatusError: the status code is not in *accept_statuses*.
            ApiFailureError: *raw* is false and the payload is a
                ``{"success": false}`` envelope.
        """
        headers: dict[str, str] = {}
        if cookie:
            headers["cookie"] = cookie
        if origin:
            headers["origin"] = origin

        kwargs: dict[str, Any] = {"headers": headers}
        if body is not None:
            kwargs["json"] = body

        response = await self._http.request(method, path, **kwargs)
        try:
            payload = response.json()
        except ValueError:
            payload = None

        if self._trace is not None:
            self._trace.record(method, path, response.status_code, body, payload)

        logger.debug("%s %s -> %d", method, path, response.status_code)

        if response.status_code not in accept_statuses:
            raise ApiStatusError(method, path, response.status_code, payload)

        if not raw and isinstance(payload, dict) and payload.get("success") is False:
            raise ApiFailureError(method, path, response.status_code, payload)

        return ApiResponse(status=response.status_code, payload=payload, headers=response.headers)

    async def request_text(self, path: str, *, cookie: str | None = None) -> str:
        """GET *path* and return the undecoded body text. Not traced."""
        headers = {"cookie": cookie} if cookie else {}
        response = await self._http.request("GET", path, headers=headers)
        return response.text
