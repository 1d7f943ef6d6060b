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
"""Step handler registry: maps step keys to the coroutines that execute them."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from types import ModuleType
from typing import Any, TypeVar

from sagarunner.kernel.exceptions import SagaRunnerException
from sagarunner.saga.core.outcome import StepResultPayload
from sagarunner.saga.core.scope import StepScope

StepHandler = Callable[[StepScope], Awaitable[StepResultPayload]]

F = TypeVar("F", bound=Callable[..., Any])

_STEP_ATTR = "__sagarunner_step__"


class HandlerRegistrationError(SagaRunnerException):
    """Raised when two handlers claim the same step key."""


def step_handler(*step_keys: str) -> Callable[[F], F]:
    """Mark a coroutine function as the handler for one or more step keys.

    Sets ``__sagarunner_step__`` on the function; handlers are picked up by
    :meth:`StepHandlerRegistry.register_module`.
    """
    if not step_keys:
        raise ValueError("step_handler() needs at least one step key")

    def decorator(func: F) -> F:
        func.__sagarunner_step__ = {"keys": tuple(step_keys)}  # type: ignore[attr-defined]
        return func

    return decorator


class StepHandlerRegistry:
    """Discovery and lookup service for step handlers.

    Keys without a handler are a runner gap; the executor reports them as
    blocked rather than failing.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, StepHandler] = {}

    # -- Public API ----------------------------------------------------------

    def register(self, step_key: str, handler: StepHandler) -> None:
        if step_key in self._handlers:
            raise HandlerRegistrationError(
                f"A handler is already registered for step '{step_key}'", code="DUPLICATE_STEP_HANDLER"
            )
        self._handlers[step_key] = handler

    def register_module(self, module: ModuleType) -> list[str]:
        """Register every ``@step_handler`` function defined in *module*.

        Returns:
            The step keys registered, in discovery order.
        """
        registered: list[str] = []
        for attr_name in dir(module):
            attr = getattr(module, attr_name, None)
            meta: dict[str, Any] | None = getattr(attr, _STEP_ATTR, None)
            if meta is None or getattr(attr, "__module__", None) != module.__name__:
                continue
            for key in meta["keys"]:
                self.register(key, attr)
                registered.append(key)
        return registered

    def register_modules(self, modules: Iterable[ModuleType]) -> None:
        for module in modules:
            self.register_module(module)

    def get(self, step_key: str) -> StepHandler | None:
        return self._handlers.get(step_key)

    def keys(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, step_key: object) -> bool:
        return step_key in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)
