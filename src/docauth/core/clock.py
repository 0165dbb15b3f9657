# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

# MongoDB stores datetimes with millisecond precision.
_RESOLUTION = timedelta(milliseconds=1)

_lock = threading.Lock()
_last: datetime | None = None


def _truncate(dt: datetime) -> datetime:
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def utcnow() -> datetime:
    """Current UTC time at store precision, strictly increasing per process."""
    global _last
    now = _truncate(datetime.now(timezone.utc))
    with _lock:
        if _last is not None and now <= _last:
            now = _last + _RESOLUTION
        _last = now
    return now
