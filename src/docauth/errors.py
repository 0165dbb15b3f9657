# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy shared by the repository, the auth strategy and the routes.

Each error carries the HTTP status the route layer answers with.
"""

from __future__ import annotations


class DocAuthError(Exception):
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DocAuthError):
    """Malformed client input."""

    status_code = 400


class AuthenticationError(DocAuthError):
    """Missing session or bad credentials."""

    status_code = 401


class NotFoundError(DocAuthError):
    status_code = 404


class ConflictError(DocAuthError):
    """Uniqueness violation reported by the store."""

    status_code = 409


class StoreError(DocAuthError):
    """Any other database failure; the driver message is kept verbatim."""

    status_code = 500
