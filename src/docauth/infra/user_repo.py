# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""MongoDB access for the users collection.

Every operation normalizes its client payload (see docauth.core.normalize)
and hands it to the motor collection. Driver errors are logged and
re-raised as ConflictError (duplicate key) or StoreError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ASCENDING
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from docauth.core.normalize import (
    CREATED_AT,
    NATIVE_KEY,
    SET_OPERATOR,
    PayloadKind,
    coerce_native_id,
    is_native_id,
    normalize,
    normalize_document,
    normalize_projection,
    normalize_sort,
)
from docauth.core.utils import normalize_email
from docauth.errors import ConflictError, StoreError

logger = logging.getLogger(__name__)

EMAIL_FIELD = "email"
PASSWORD_FIELD = "passwordHash"
DEFAULT_SORT = [(CREATED_AT, -1)]
DEFAULT_LIMIT = 50


@dataclass(frozen=True)
class UserRecord:
    id: str
    email: str
    password_hash: str
    created_at: Optional[datetime]

    def public(self) -> Dict[str, str]:
        return {"id": self.id, "email": self.email}


@dataclass(frozen=True)
class WriteOutcome:
    matched_count: int
    modified_count: int
    upserted_id: Optional[str] = None


def _to_record(doc: Optional[Dict[str, Any]]) -> Optional[UserRecord]:
    if not doc:
        return None
    return UserRecord(
        id=str(doc[NATIVE_KEY]),
        email=str(doc.get(EMAIL_FIELD) or ""),
        password_hash=str(doc.get(PASSWORD_FIELD) or ""),
        created_at=doc.get(CREATED_AT),
    )


def _canon_email_field(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Lower/trim a plain string `email` value; operator values are left alone."""
    if isinstance(doc.get(EMAIL_FIELD), str):
        doc = dict(doc)
        doc[EMAIL_FIELD] = normalize_email(doc[EMAIL_FIELD])
    return doc


class UserRepository:
    """Typed operations over the users collection.

    Args:
        collection: motor AsyncIOMotorCollection (or anything with the same
            coroutine API).
    """

    def __init__(self, collection: Any) -> None:
        self.collection = collection

    def _fail(self, op: str, exc: Exception) -> Exception:
        # Documents and filters are not logged: they may carry password hashes.
        logger.error(f"Error in {op}: collection={self.collection.name}, error={exc}")
        if isinstance(exc, DuplicateKeyError):
            return ConflictError("User with this email already exists.")
        if isinstance(exc, BulkWriteError):
            codes = {e.get("code") for e in (exc.details or {}).get("writeErrors", [])}
            if 11000 in codes:
                return ConflictError("User with this email already exists.")
        return StoreError(str(exc))

    def _filter(self, filter: Any) -> Dict[str, Any]:
        return _canon_email_field(normalize(PayloadKind.FILTER, filter))

    def _update(self, update: Any, *, upsert: bool) -> Dict[str, Any]:
        payload = normalize(PayloadKind.UPDATE, update)
        payload[SET_OPERATOR] = _canon_email_field(payload[SET_OPERATOR])
        if upsert and CREATED_AT not in payload[SET_OPERATOR]:
            on_insert = dict(payload.get("$setOnInsert") or {})
            on_insert.setdefault(CREATED_AT, payload[SET_OPERATOR]["updatedAt"])
            payload["$setOnInsert"] = on_insert
        return payload

    async def ensure_indexes(self) -> None:
        try:
            await self.collection.create_index([(EMAIL_FIELD, ASCENDING)], unique=True)
        except PyMongoError as e:
            raise self._fail("create_index", e) from e

    # ------------------ User lookups ------------------

    async def create_user(self, *, email: str, password_hash: str) -> UserRecord:
        doc = normalize(
            PayloadKind.INSERT,
            {EMAIL_FIELD: normalize_email(email), PASSWORD_FIELD: password_hash},
        )
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise self._fail("create_user", e) from e
        doc[NATIVE_KEY] = result.inserted_id
        return _to_record(doc)

    async def find_by_id(self, user_id: Any) -> Optional[UserRecord]:
        # Malformed ids cannot match anything.
        if not is_native_id(user_id):
            return None
        try:
            doc = await self.collection.find_one({NATIVE_KEY: coerce_native_id(user_id)})
        except PyMongoError as e:
            raise self._fail("find_by_id", e) from e
        return _to_record(doc)

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        try:
            doc = await self.collection.find_one({EMAIL_FIELD: normalize_email(email)})
        except PyMongoError as e:
            raise self._fail("find_by_email", e) from e
        return _to_record(doc)

    async def list_users(self) -> List[Dict[str, Any]]:
        """Newest first, public fields only."""
        return await self.find_users(projection={EMAIL_FIELD: 1, CREATED_AT: 1}, limit=0)

    # ------------------ Generic document operations ------------------

    async def find_users(
        self,
        filter: Optional[Dict[str, Any]] = None,
        projection: Optional[Dict[str, Any]] = None,
        sort: Optional[Dict[str, Any]] = None,
        limit: int = DEFAULT_LIMIT,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        """Query the collection; `limit=0` means no limit (driver semantics)."""
        proj = normalize_projection(projection) or None
        order = normalize_sort(sort) or DEFAULT_SORT
        try:
            cursor = self.collection.find(
                self._filter(filter), proj, sort=order, skip=int(skip), limit=int(limit)
            )
            docs = await cursor.to_list(length=None)
        except PyMongoError as e:
            raise self._fail("find_users", e) from e
        return [normalize_document(d) for d in docs]

    async def insert_one_user(self, document: Any) -> str:
        doc = _canon_email_field(normalize(PayloadKind.INSERT, document))
        try:
            result = await self.collection.insert_one(doc)
        except PyMongoError as e:
            raise self._fail("insert_one", e) from e
        return str(result.inserted_id)

    async def insert_many_users(self, documents: Iterable[Any]) -> List[str]:
        """Insert documents in order; earlier documents stay if a later one fails."""
        docs = [_canon_email_field(normalize(PayloadKind.INSERT, d)) for d in documents]
        if not docs:
            return []
        try:
            result = await self.collection.insert_many(docs)
        except PyMongoError as e:
            raise self._fail("insert_many", e) from e
        return [str(i) for i in result.inserted_ids]

    async def update_one_user(self, filter: Any, update: Any, upsert: bool = False) -> WriteOutcome:
        try:
            result = await self.collection.update_one(
                self._filter(filter), self._update(update, upsert=upsert), upsert=upsert
            )
        except PyMongoError as e:
            raise self._fail("update_one", e) from e
        return _outcome(result)

    async def update_many_users(self, filter: Any, update: Any, upsert: bool = False) -> WriteOutcome:
        try:
            result = await self.collection.update_many(
                self._filter(filter), self._update(update, upsert=upsert), upsert=upsert
            )
        except PyMongoError as e:
            raise self._fail("update_many", e) from e
        return _outcome(result)

    async def replace_one_user(self, filter: Any, replacement: Any, upsert: bool = False) -> WriteOutcome:
        doc = _canon_email_field(normalize(PayloadKind.REPLACEMENT, replacement))
        try:
            result = await self.collection.replace_one(self._filter(filter), doc, upsert=upsert)
        except PyMongoError as e:
            raise self._fail("replace_one", e) from e
        return _outcome(result)

    async def delete_one_user(self, filter: Any) -> int:
        try:
            result = await self.collection.delete_one(self._filter(filter))
        except PyMongoError as e:
            raise self._fail("delete_one", e) from e
        return int(result.deleted_count)

    async def delete_many_users(self, filter: Any) -> int:
        try:
            result = await self.collection.delete_many(self._filter(filter))
        except PyMongoError as e:
            raise self._fail("delete_many", e) from e
        return int(result.deleted_count)


def _outcome(result: Any) -> WriteOutcome:
    upserted = getattr(result, "upserted_id", None)
    return WriteOutcome(
        matched_count=int(result.matched_count),
        modified_count=int(result.modified_count),
        upserted_id=str(upserted) if upserted is not None else None,
    )
