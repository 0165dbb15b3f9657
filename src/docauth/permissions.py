# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

from fastapi import Request

from docauth.auth.session import COOKIE_NAME, verify_session
from docauth.auth.strategy import Identity, resolve_identity
from docauth.config import Settings
from docauth.errors import AuthenticationError
from docauth.infra.user_repo import UserRepository


async def load_user_from_request(request: Request) -> Optional[Identity]:
    settings: Settings = request.app.state.settings
    repository: Optional[UserRepository] = getattr(request.app.state, "repository", None)
    if repository is None:
        return None
    token = request.cookies.get(COOKIE_NAME, "")
    sess = verify_session(token, secret=settings.session_secret, max_age=settings.session_max_age)
    if not sess:
        return None
    return await resolve_identity(repository, sess.user_id)


def current_user_optional(request: Request) -> Optional[Identity]:
    return getattr(request.state, "user", None)


def require_user(request: Request) -> Identity:
    u = current_user_optional(request)
    if u:
        return u
    raise AuthenticationError("Unauthorized. Please log in.")


def cookie_settings(settings: Settings) -> dict:
    return {"httponly": True, "samesite": "lax", "secure": settings.cookie_secure}
