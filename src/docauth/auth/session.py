# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

COOKIE_NAME = "connect.sid"
DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60
SESSION_SALT = "docauth.session.v1"


def _serializer(secret: str) -> URLSafeTimedSerializer:
    if not secret:
        raise RuntimeError("Missing SESSION_SECRET")
    return URLSafeTimedSerializer(secret_key=secret, salt=SESSION_SALT)


@dataclass(frozen=True)
class SessionData:
    user_id: str


def sign_session(user_id: str, *, secret: str) -> str:
    """The user id is the only value stored in the session."""
    return _serializer(secret).dumps({"uid": user_id})


def verify_session(
    token: str, *, secret: str, max_age: int = DEFAULT_MAX_AGE_SECONDS
) -> Optional[SessionData]:
    if not token:
        return None
    s = _serializer(secret)
    try:
        data = s.loads(token, max_age=max_age)
    except (BadSignature, BadTimeSignature):
        return None
    uid = (data or {}).get("uid") if isinstance(data, dict) else None
    uid = str(uid or "").strip()
    if not uid:
        return None
    return SessionData(user_id=uid)
