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
"""Unified exception hierarchy for sagarunner.

All runner exceptions inherit from SagaRunnerException so callers can catch
one type at the process boundary, or a specific subclass for targeted handling.

Categories:
- ConfigurationError: invalid or unbindable configuration values
- ApiException: an HTTP call to the saga API did not behave as expected
- AuthSessionError: an actor session could not be established
- PrerequisiteMissingError: a step ran before the entities it depends on exist
- ExploratoryEvaluatorUnavailable: the remote exploratory evaluator cannot be reached
"""

from __future__ import annotations

import json
from typing import Any


# =============================================================================
# Base Exception
# =============================================================================


class SagaRunnerException(Exception):
    """Base exception for all sagarunner errors.

    Args:
        message: Human-readable error description.
        code: Machine-readable error code (e.g. "API_STATUS").
        context: Arbitrary key-value pairs for error context and debugging.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context: dict = context if context is not None else {}


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(SagaRunnerException):
    """A configuration value is missing or cannot be coerced to its declared type."""


class NoSagaDefinitionsError(SagaRunnerException):
    """The catalog returned no active saga definitions matching the selection."""


# =============================================================================
# API Exceptions
# =============================================================================


def _render_payload(payload: Any) -> str:
    try:
        return json.dumps(payload if payload is not None else {}, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(payload)


class ApiException(SagaRunnerException):
    """Base for failures of a single saga API call.

    Carries the request method, the requested path, the response status and
    the decoded response payload (``None`` when the body was not JSON).
    """

    def __init__(
        self,
        message: str,
        *,
        method: str,
        path: str,
        status: int,
        payload: Any = None,
        code: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            context={"method": method, "path": path, "status": status},
        )
        self.method = method
        self.path = path
        self.status = status
        self.payload = payload


class ApiStatusError(ApiException):
    """The response status code was not in the accepted set."""

    def __init__(self, method: str, path: str, status: int, payload: Any = None) -> None:
        super().__init__(
            f"HTTP {status} for {method} {path}: {_render_payload(payload)}",
            method=method,
            path=path,
            status=status,
            payload=payload,
            code="API_STATUS",
        )


class ApiFailureError(ApiException):
    """The response carried a ``{"success": false}`` envelope."""

    def __init__(self, method: str, path: str, status: int, payload: Any = None) -> None:
        super().__init__(
            f"API failure for {method} {path}: {_render_payload(payload)}",
            method=method,
            path=path,
            status=status,
            payload=payload,
            code="API_FAILURE",
        )


# =============================================================================
# Session / step preconditions
# =============================================================================


class AuthSessionError(SagaRunnerException):
    """Sign-up or session lookup for a saga actor failed."""


class PrerequisiteMissingError(SagaRunnerException):
    """A step needs run-context state that an earlier step did not produce."""


class ExploratoryEvaluatorUnavailable(SagaRunnerException):
    """The exploratory evaluator endpoint is unreachable or not deployed."""
