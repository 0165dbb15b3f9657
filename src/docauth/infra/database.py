# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import Any, Dict

from motor.motor_asyncio import AsyncIOMotorClient

from docauth.config import Settings

logger = logging.getLogger(__name__)


async def connect_database(settings: Settings) -> AsyncIOMotorClient[Dict[str, Any]]:
    """Open the motor client and make sure the server answers.

    Raises:
        RuntimeError: if MONGODB_URI is not configured.
        pymongo.errors.PyMongoError: if the server cannot be reached.
    """
    if not settings.mongodb_uri:
        raise RuntimeError("MONGODB_URI is not set. Please configure the MongoDB connection.")
    client: AsyncIOMotorClient[Dict[str, Any]] = AsyncIOMotorClient(settings.mongodb_uri)
    try:
        await client.admin.command("ping")
    except Exception:
        client.close()
        raise
    logger.info(f"MongoDB connected: database='{settings.mongodb_db}'")
    return client


def users_collection(client: Any, settings: Settings) -> Any:
    return client[settings.mongodb_db][settings.mongodb_collection]
