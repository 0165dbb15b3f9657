# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from html import escape
from pathlib import Path
from typing import Any, Dict, Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from docauth.auth.passwords import check_new_password, hash_password
from docauth.auth.session import COOKIE_NAME, sign_session
from docauth.auth.strategy import AuthState, Identity, authenticate
from docauth.config import Settings, load_settings
from docauth.core.utils import normalize_email, parse_bounded_int, parse_json_object, strip_secrets
from docauth.errors import ConflictError, DocAuthError, NotFoundError, StoreError, ValidationError
from docauth.infra.database import connect_database, users_collection
from docauth.infra.user_repo import UserRepository, WriteOutcome
from docauth.permissions import cookie_settings, current_user_optional, load_user_from_request, require_user

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

DEFAULT_LIMIT = 50
MAX_LIMIT = 100
MAX_SKIP = 10000
DEFAULT_PROJECTION = {"passwordHash": 0}

router = APIRouter()


# ------------------ Helpers ------------------


def get_repository(request: Request) -> UserRepository:
    return request.app.state.repository


def _json(payload: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(jsonable_encoder(payload, custom_encoder={ObjectId: str}), status_code=status_code)


def _fail(e: DocAuthError, failure: str) -> JSONResponse:
    """Map a typed error to the JSON body the client sees."""
    if isinstance(e, StoreError):
        return _json({"message": failure, "error": e.message}, status_code=500)
    return _json({"message": e.message}, status_code=e.status_code)


async def _json_body(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON.") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object.")
    return body


def _object_field(body: Dict[str, Any], name: str, *, required: bool = True) -> Dict[str, Any]:
    value = body.get(name)
    if value is None and not required:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"'{name}' must be a JSON object.")
    return value


def _upsert_flag(body: Dict[str, Any]) -> bool:
    value = body.get("upsert", False)
    if not isinstance(value, bool):
        raise ValidationError("'upsert' must be a boolean.")
    return value


def _start_session(resp: JSONResponse, settings: Settings, user_id: str) -> None:
    resp.set_cookie(
        COOKIE_NAME,
        sign_session(user_id, secret=settings.session_secret),
        max_age=settings.session_max_age,
        **cookie_settings(settings),
    )


def _write_body(message: str, outcome: WriteOutcome) -> Dict[str, Any]:
    return {
        "message": message,
        "matchedCount": outcome.matched_count,
        "modifiedCount": outcome.modified_count,
        "upsertedId": outcome.upserted_id,
    }


# ------------------ Routes: auth ------------------


@router.get("/")
def root(request: Request):
    return _json({"message": "Server is running.", "authenticated": current_user_optional(request) is not None})


@router.post("/auth/register")
async def register(request: Request, repo: UserRepository = Depends(get_repository)):
    try:
        body = await _json_body(request)
        email = body.get("email")
        password = body.get("password")
        if not isinstance(email, str) or not normalize_email(email):
            raise ValidationError("Email and password are required.")
        check_new_password(password)

        if await repo.find_by_email(email):
            raise ConflictError("User with this email already exists.")

        password_hash = await run_in_threadpool(hash_password, password)
        user = await repo.create_user(email=email, password_hash=password_hash)
    except DocAuthError as e:
        return _fail(e, "Registration failed.")

    logger.info(f"Registered user id={user.id}")
    resp = _json({"message": "Registration successful.", "user": user.public()}, status_code=201)
    _start_session(resp, request.app.state.settings, user.id)
    return resp


@router.post("/auth/login")
async def login(request: Request, repo: UserRepository = Depends(get_repository)):
    try:
        body = await _json_body(request)
    except ValidationError as e:
        return _fail(e, "Login failed.")

    email = body.get("email")
    password = body.get("password")
    outcome = await authenticate(
        repo,
        email if isinstance(email, str) else "",
        password if isinstance(password, str) else "",
    )
    if outcome.state is AuthState.ERRORED:
        return _json({"message": outcome.message}, status_code=500)
    if not outcome.ok:
        return _json({"message": outcome.message}, status_code=401)

    resp = _json({"message": "Login successful.", "user": outcome.identity.public()})
    _start_session(resp, request.app.state.settings, outcome.identity.id)
    return resp


@router.post("/auth/logout")
def logout(request: Request):
    settings: Settings = request.app.state.settings
    resp = _json({"message": "Logout successful."})
    resp.delete_cookie(COOKIE_NAME, **cookie_settings(settings))
    return resp


@router.get("/auth/me")
def me(request: Request):
    u = current_user_optional(request)
    if not u:
        return _json({"message": "Not authenticated."}, status_code=401)
    return _json({"user": u.public()})


@router.get("/protected")
def protected(user: Identity = Depends(require_user)):
    return _json({"message": "You have access to protected data.", "user": user.public()})


# ------------------ Routes: users collection ------------------


@router.get("/users")
async def list_users(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    q = request.query_params
    try:
        filter = parse_json_object(q.get("filter"), "filter")
        projection = parse_json_object(q.get("projection"), "projection") or dict(DEFAULT_PROJECTION)
        sort = parse_json_object(q.get("sort"), "sort")
        limit = parse_bounded_int(q.get("limit"), "limit", default=DEFAULT_LIMIT, maximum=MAX_LIMIT)
        skip = parse_bounded_int(q.get("skip"), "skip", default=0, maximum=MAX_SKIP)
        # A limit of 0 would mean "no limit" to the driver.
        limit = limit or DEFAULT_LIMIT
        docs = await repo.find_users(filter=filter, projection=projection, sort=sort, limit=limit, skip=skip)
    except DocAuthError as e:
        return _fail(e, "Failed to load users from MongoDB.")

    users = [strip_secrets(d) for d in docs]
    return _json({"total": len(users), "limit": limit, "skip": skip, "users": users})


@router.get("/users/page", response_class=HTMLResponse)
async def users_page(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    try:
        users = await repo.list_users()
    except DocAuthError as e:
        return HTMLResponse(f"<h1>Failed to load users</h1><p>{escape(e.message)}</p>", status_code=500)

    rows = []
    for u in users:
        created = u.get("createdAt")
        rows.append(
            {
                "email": u.get("email", ""),
                "created": created.strftime("%Y-%m-%d %H:%M:%S") if isinstance(created, datetime) else str(created or ""),
            }
        )
    return templates.TemplateResponse(request, "users_page.html", {"users": rows, "current_user": user})


@router.post("/users/insert-one")
async def insert_one(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    try:
        body = await _json_body(request)
        document = _object_field(body, "document")
        inserted_id = await repo.insert_one_user(document)
    except DocAuthError as e:
        return _fail(e, "Failed to insert document.")
    return _json({"message": "Document inserted.", "insertedId": inserted_id}, status_code=201)


@router.post("/users/insert-many")
async def insert_many(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    try:
        body = await _json_body(request)
        documents = body.get("documents")
        if not isinstance(documents, list) or not documents:
            raise ValidationError("'documents' must be a non-empty array.")
        if not all(isinstance(d, dict) for d in documents):
            raise ValidationError("Every entry of 'documents' must be a JSON object.")
        inserted_ids = await repo.insert_many_users(documents)
    except DocAuthError as e:
        return _fail(e, "Failed to insert documents.")
    return _json(
        {"message": "Documents inserted.", "insertedCount": len(inserted_ids), "insertedIds": inserted_ids},
        status_code=201,
    )


async def _update(request: Request, repo: UserRepository, *, many: bool) -> JSONResponse:
    try:
        body = await _json_body(request)
        filter = _object_field(body, "filter")
        update = _object_field(body, "update")
        if not update:
            raise ValidationError("'update' must not be empty.")
        upsert = _upsert_flag(body)
        op = repo.update_many_users if many else repo.update_one_user
        outcome = await op(filter, update, upsert=upsert)
    except DocAuthError as e:
        return _fail(e, "Failed to update documents." if many else "Failed to update document.")
    return _json(_write_body("Update completed.", outcome))


@router.patch("/users/update-one")
async def update_one(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    return await _update(request, repo, many=False)


@router.patch("/users/update-many")
async def update_many(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    return await _update(request, repo, many=True)


@router.put("/users/replace-one")
async def replace_one(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    try:
        body = await _json_body(request)
        filter = _object_field(body, "filter")
        replacement = _object_field(body, "replacement")
        upsert = _upsert_flag(body)
        outcome = await repo.replace_one_user(filter, replacement, upsert=upsert)
    except DocAuthError as e:
        return _fail(e, "Failed to replace document.")
    return _json(_write_body("Replace completed.", outcome))


async def _delete(request: Request, repo: UserRepository, *, many: bool) -> JSONResponse:
    try:
        body = await _json_body(request)
        filter = _object_field(body, "filter")
        op = repo.delete_many_users if many else repo.delete_one_user
        deleted = await op(filter)
    except DocAuthError as e:
        return _fail(e, "Failed to delete documents." if many else "Failed to delete document.")
    return _json({"message": "Delete completed.", "deletedCount": deleted})


@router.delete("/users/delete-one")
async def delete_one(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    return await _delete(request, repo, many=False)


@router.delete("/users/delete-many")
async def delete_many(
    request: Request,
    user: Identity = Depends(require_user),
    repo: UserRepository = Depends(get_repository),
):
    return await _delete(request, repo, many=True)


# ------------------ App factory ------------------


@asynccontextmanager
async def _lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    client = app.state.client
    owns_client = client is None
    if owns_client:
        try:
            client = await connect_database(settings)
        except Exception as e:
            logger.critical(f"Failed to start server: {e}")
            raise
        app.state.client = client

    app.state.repository = UserRepository(users_collection(client, settings))
    await app.state.repository.ensure_indexes()
    try:
        yield
    finally:
        app.state.repository = None
        if owns_client:
            client.close()
            app.state.client = None


def create_app(settings: Optional[Settings] = None, client: Any = None) -> FastAPI:
    """Build the application.

    `client` is a motor client (or compatible); when omitted one is created
    from MONGODB_URI on startup and startup fails if the server is unreachable.
    """
    app = FastAPI(title="docauth", lifespan=_lifespan)
    app.state.settings = settings or load_settings()
    app.state.client = client
    app.state.repository = None

    @app.middleware("http")
    async def _auth_middleware(request: Request, call_next):
        request.state.user = await load_user_from_request(request)
        return await call_next(request)

    @app.exception_handler(DocAuthError)
    async def _typed_error(request: Request, exc: DocAuthError):
        # require_user raises AuthenticationError from inside a dependency.
        return _json({"message": exc.message}, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return await _typed_error(request, NotFoundError("Route not found."))
        return _json({"message": str(exc.detail)}, status_code=exc.status_code)

    app.include_router(router)
    return app


app = create_app()
