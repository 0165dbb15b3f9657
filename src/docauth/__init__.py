# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""docauth: session-authenticated JSON API over a MongoDB users collection."""

__version__ = "0.1.0"
