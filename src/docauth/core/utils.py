# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from docauth.errors import ValidationError

SECRET_FIELDS = ("passwordHash",)


def normalize_email(email: Any) -> str:
    """Canonicalise an email for storage and comparisons (trim + lower)."""
    return str(email if email is not None else "").strip().lower()


def parse_json_object(raw: Optional[str], name: str) -> Dict[str, Any]:
    """Parse a query-string parameter that must hold a JSON object.

    Missing or blank values yield an empty dict.
    """
    if raw is None or not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationError(f"Query parameter '{name}' must be valid JSON.") from None
    if not isinstance(value, dict):
        raise ValidationError(f"Query parameter '{name}' must be a JSON object.")
    return value


def parse_bounded_int(raw: Optional[str], name: str, *, default: int, maximum: int) -> int:
    """Parse a non-negative integer query parameter, clamping it to `maximum`."""
    if raw is None or not raw.strip():
        return default
    text = raw.strip()
    # Plain ASCII digits only; int() would also take "+5", "1_000" and other scripts.
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(f"Query parameter '{name}' must be a non-negative integer.")
    return min(int(text), maximum)


def strip_secrets(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Drop fields that must never leave the API (password hashes)."""
    if not isinstance(doc, dict):
        return doc
    return {k: v for k, v in doc.items() if k not in SECRET_FIELDS}
