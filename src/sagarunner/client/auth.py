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
"""Actor sessions: sign up a throwaway account and capture its session cookie."""

from __future__ import annotations

import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from sagarunner.client.api_client import SagaApiClient
from sagarunner.core.text import random_suffix
from sagarunner.kernel.exceptions import ApiStatusError, AuthSessionError

SESSION_COOKIE_RE = re.compile(r"better-auth\.session_token=[^;]+")

SIGN_UP_PATH = "/api/auth/sign-up/email"
GET_SESSION_PATH = "/api/auth/get-session"


@dataclass(frozen=True)
class AuthSession:
    """One signed-up saga actor."""

    email: str
    password: str
    user_id: str
    cookie: str


def cookie_from_set_cookie(header: str | None) -> str:
    """Extract the ``name=value`` session token pair from a Set-Cookie header."""
    if not header:
        raise AuthSessionError("Missing Set-Cookie header from auth response.")
    match = SESSION_COOKIE_RE.search(header)
    if match is None:
        raise AuthSessionError("Could not extract better-auth.session_token from Set-Cookie.")
    return match.group(0)


class AuthSessionFactory:
    """Creates fresh actor accounts against the identity endpoints.

    Sign-up always goes through an untraced client so the password never lands
    in a step trace; the session lookup is recorded when *api* is traced.
    """

    def __init__(
        self,
        password: str,
        trusted_origin: str,
        *,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._password = password
        self._trusted_origin = trusted_origin
        self._clock_ms = clock_ms

    @property
    def trusted_origin(self) -> str:
        return self._trusted_origin

    async def create(self, api: SagaApiClient, label: str) -> AuthSession:
        email = f"{label}-{self._clock_ms()}-{random_suffix(6)}@example.com"

        try:
            sign_up = await api.untraced().request_json(
                SIGN_UP_PATH,
                method="POST",
                body={"email": email, "password": self._password, "name": label},
                origin=self._trusted_origin,
                accept_statuses=(200,),
                raw=True,
            )
        except ApiStatusError as exc:
            raise AuthSessionError(
                f"Sign-up failed ({email}): {exc.payload if exc.payload is not None else {}}",
                code="SIGN_UP_FAILED",
                context={"email": email, "status": exc.status},
            ) from exc

        cookie = cookie_from_set_cookie(sign_up.headers.get("set-cookie"))
        session = await api.request_json(GET_SESSION_PATH, cookie=cookie, accept_statuses=(200,), raw=True)

        user = session.payload.get("user") if isinstance(session.payload, dict) else None
        user_id = user.get("id") if isinstance(user, dict) else None
        if not user_id:
            raise AuthSessionError(f"Could not resolve user id after sign-up ({email}).", context={"email": email})

        return AuthSession(email=email, password=self._password, user_id=str(user_id), cookie=cookie)
