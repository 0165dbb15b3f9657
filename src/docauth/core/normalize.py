# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Translation of loosely-typed client JSON into MongoDB arguments.

Clients address documents by a string `id`; the store keys them by an
ObjectId `_id`. Every function here is pure: it copies its input and never
touches the database.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, List, Tuple

from bson import ObjectId

from docauth.core.clock import utcnow
from docauth.errors import ValidationError

CLIENT_KEY = "id"
NATIVE_KEY = "_id"
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
SET_OPERATOR = "$set"


class PayloadKind(str, Enum):
    FILTER = "filter"
    INSERT = "insert"
    UPDATE = "update"
    REPLACEMENT = "replacement"


def coerce_native_id(value: Any) -> Any:
    """Turn an ObjectId-shaped string into an ObjectId; anything else is returned as is."""
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return value


def is_native_id(value: Any) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


def normalize_filter(filter: Any) -> Dict[str, Any]:
    if not isinstance(filter, dict):
        return {}
    out = dict(filter)
    if CLIENT_KEY in out:
        value = out.pop(CLIENT_KEY)
        # An explicit native key wins over the client-facing alias.
        if NATIVE_KEY not in out:
            out[NATIVE_KEY] = coerce_native_id(value)
    return out


def normalize_insert_document(document: Any) -> Dict[str, Any]:
    """Shape a client document for insertion.

    - `id` is promoted to `_id` when no `_id` was given; it must be a valid
      ObjectId form or the insert is refused.
    - `createdAt` / `updatedAt` default to now.

    Field types are not validated beyond that.
    """
    out = dict(document) if isinstance(document, dict) else {}
    if CLIENT_KEY in out:
        value = out.pop(CLIENT_KEY)
        if NATIVE_KEY not in out:
            if not is_native_id(value):
                raise ValidationError(f"Document id '{value}' is not a valid identifier.")
            out[NATIVE_KEY] = coerce_native_id(value)
    now = utcnow()
    out.setdefault(CREATED_AT, now)
    out.setdefault(UPDATED_AT, now)
    return out


def _is_operator_payload(update: Dict[str, Any]) -> bool:
    operators = [str(k).startswith("$") for k in update]
    if any(operators) and not all(operators):
        raise ValidationError("Update must use either operators or plain fields, not both.")
    return any(operators)


def normalize_update_payload(update: Any) -> Dict[str, Any]:
    """Guarantee an update refreshes `updatedAt` exactly once.

    Operator payloads get `updatedAt` merged into their `$set`; plain field
    maps are wrapped in `$set` whole. A caller-supplied `updatedAt` is kept.
    """
    payload = dict(update) if isinstance(update, dict) else {}
    if _is_operator_payload(payload):
        fields = payload.get(SET_OPERATOR)
        fields = dict(fields) if isinstance(fields, dict) else {}
    else:
        fields = payload
        payload = {}
    fields.pop(CLIENT_KEY, None)
    fields.setdefault(UPDATED_AT, utcnow())
    payload[SET_OPERATOR] = fields
    return payload


def normalize_replacement(replacement: Any) -> Dict[str, Any]:
    return normalize_insert_document(replacement)


def normalize_document(doc: Any) -> Any:
    """Output direction: expose `_id` as a string `id`."""
    if not isinstance(doc, dict) or not doc:
        return doc
    out = dict(doc)
    if NATIVE_KEY in out:
        native = out.pop(NATIVE_KEY)
        return {CLIENT_KEY: str(native), **out}
    return out


def normalize_projection(projection: Any) -> Dict[str, Any]:
    if not isinstance(projection, dict):
        return {}
    # Only plain include/exclude flags; expressions could copy hidden fields.
    for field, flag in projection.items():
        if not (isinstance(flag, (bool, int, float)) and flag in (0, 1)):
            raise ValidationError(f"Projection for '{field}' must be 0 or 1.")
    out = dict(projection)
    if CLIENT_KEY in out:
        value = out.pop(CLIENT_KEY)
        out.setdefault(NATIVE_KEY, value)
    return out


def normalize_sort(sort: Any) -> List[Tuple[str, int]]:
    """`{"createdAt": -1}` -> `[("createdAt", -1)]`, keeping key order."""
    if not isinstance(sort, dict):
        return []
    out: List[Tuple[str, int]] = []
    for field, direction in sort.items():
        key = NATIVE_KEY if field == CLIENT_KEY else str(field)
        try:
            d = int(direction)
        except (TypeError, ValueError):
            raise ValidationError(f"Sort direction for '{field}' must be 1 or -1.") from None
        if d not in (1, -1):
            raise ValidationError(f"Sort direction for '{field}' must be 1 or -1.")
        out.append((key, d))
    return out


_NORMALIZERS: Dict[PayloadKind, Callable[[Any], Dict[str, Any]]] = {
    PayloadKind.FILTER: normalize_filter,
    PayloadKind.INSERT: normalize_insert_document,
    PayloadKind.UPDATE: normalize_update_payload,
    PayloadKind.REPLACEMENT: normalize_replacement,
}


def normalize(kind: PayloadKind, payload: Any) -> Dict[str, Any]:
    return _NORMALIZERS[PayloadKind(kind)](payload)
