# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Password policy and the argon2 primitive behind it.

Both functions here are CPU-bound; async callers run them through
`run_in_threadpool`.
"""

from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError

from docauth.errors import ValidationError

MIN_PASSWORD_LENGTH = 6

_hasher = PasswordHasher()


def check_new_password(password: object) -> str:
    """Refuse passwords that registration must not accept."""
    if not isinstance(password, str) or not password:
        raise ValidationError("Email and password are required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return password


def hash_password(password: str) -> str:
    return _hasher.hash(check_new_password(password))


def verify_password(password_hash: str, candidate: str) -> bool:
    """Constant-time check of `candidate`; a corrupt stored hash raises."""
    if not (password_hash and candidate):
        return False
    try:
        return _hasher.verify(password_hash, candidate)
    except VerifyMismatchError:
        return False
