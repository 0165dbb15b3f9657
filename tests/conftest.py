import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

import asyncio

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

from docauth.app import create_app
from docauth.config import Settings

PASSWORD = "s3cret-pass"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        mongodb_uri="",
        mongodb_db="docauth_test",
        mongodb_collection="users",
        session_secret="test-secret",
    )


@pytest.fixture()
def mongo_client():
    """In-process, motor-compatible MongoDB (unique indexes are enforced)."""
    return AsyncMongoMockClient()


@pytest.fixture()
def users_coll(mongo_client, settings):
    return mongo_client[settings.mongodb_db][settings.mongodb_collection]


@pytest.fixture()
def client(settings, mongo_client):
    app = create_app(settings, client=mongo_client)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def count_users(users_coll):
    def _count(filter=None) -> int:
        return asyncio.run(users_coll.count_documents(filter or {}))

    return _count


@pytest.fixture()
def logged_in(client):
    """A client holding a valid session for admin@example.com."""
    r = client.post("/auth/register", json={"email": "admin@example.com", "password": PASSWORD})
    assert r.status_code == 201
    return client
