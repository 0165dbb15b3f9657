# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass

from docauth.auth.session import DEFAULT_MAX_AGE_SECONDS

_TRUE = {"1", "true", "yes", "y"}


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE


@dataclass(frozen=True)
class Settings:
    mongodb_uri: str = ""
    mongodb_db: str = "docauth"
    mongodb_collection: str = "users"
    session_secret: str = "change-me-in-production"
    session_max_age: int = DEFAULT_MAX_AGE_SECONDS
    cookie_secure: bool = False
    host: str = "0.0.0.0"
    port: int = 3000
    reload: bool = False
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read settings from the environment (call load_dotenv() first to honour .env)."""
    return Settings(
        mongodb_uri=os.getenv("MONGODB_URI", ""),
        mongodb_db=os.getenv("MONGODB_DB") or "docauth",
        mongodb_collection=os.getenv("MONGODB_COLLECTION") or "users",
        session_secret=os.getenv("SESSION_SECRET") or "change-me-in-production",
        session_max_age=int(os.getenv("DOCAUTH_SESSION_MAX_AGE", str(DEFAULT_MAX_AGE_SECONDS))),
        cookie_secure=_flag("DOCAUTH_COOKIE_SECURE"),
        host=os.getenv("DOCAUTH_HOST", "0.0.0.0"),
        port=int(os.getenv("DOCAUTH_PORT", "3000")),
        reload=_flag("DOCAUTH_RELOAD"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
