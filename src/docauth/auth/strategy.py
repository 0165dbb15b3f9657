# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Email + password verification.

`authenticate` is a plain coroutine: the repository and the hash check are
passed in, nothing is registered globally. One call walks

    UNAUTHENTICATED -> VERIFYING -> AUTHENTICATED | REJECTED | ERRORED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from argon2.exceptions import Argon2Error, InvalidHashError
from starlette.concurrency import run_in_threadpool

from docauth.auth.passwords import verify_password
from docauth.errors import StoreError
from docauth.infra.user_repo import UserRepository

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VERIFYING = "verifying"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"
    ERRORED = "errored"


@dataclass(frozen=True)
class Identity:
    id: str
    email: str

    def public(self) -> dict:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class AuthOutcome:
    state: AuthState
    identity: Optional[Identity] = None
    message: str = ""
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.state is AuthState.AUTHENTICATED


def _rejected() -> AuthOutcome:
    # Same shape whether the email is unknown or the password is wrong.
    return AuthOutcome(state=AuthState.REJECTED, message=INVALID_CREDENTIALS)


async def authenticate(
    repository: UserRepository,
    email: str,
    password: str,
    *,
    verify: Callable[[str, str], bool] = verify_password,
) -> AuthOutcome:
    if not email or not password:
        return _rejected()

    try:
        user = await repository.find_by_email(email)
        if user is None:
            return _rejected()
        # argon2 is CPU-bound; keep it off the event loop.
        if not await run_in_threadpool(verify, user.password_hash, password):
            return _rejected()
    except (StoreError, Argon2Error, InvalidHashError) as e:
        logger.error(f"Authentication errored: {type(e).__name__}: {e}")
        return AuthOutcome(state=AuthState.ERRORED, message="Login failed.", error=e)

    return AuthOutcome(
        state=AuthState.AUTHENTICATED,
        identity=Identity(id=user.id, email=user.email),
    )


async def resolve_identity(
    repository: UserRepository,
    user_id: Optional[str],
) -> Optional[Identity]:
    """Turn the id stored in a session back into a full identity.

    Unknown ids and store failures both end as "no identity".
    """
    if not user_id:
        return None
    try:
        user = await repository.find_by_id(user_id)
    except StoreError as e:
        logger.warning(f"Session lookup failed, treating request as anonymous: {e}")
        return None
    if user is None:
        return None
    return Identity(id=user.id, email=user.email)
