#!/usr/bin/env python3
from __future__ import annotations

import asyncio
from getpass import getpass

from dotenv import load_dotenv

from docauth.auth.passwords import hash_password
from docauth.config import load_settings
from docauth.errors import ConflictError
from docauth.infra.database import connect_database, users_collection
from docauth.infra.user_repo import UserRepository


async def _create(email: str, password: str) -> None:
    settings = load_settings()
    client = await connect_database(settings)
    try:
        repo = UserRepository(users_collection(client, settings))
        await repo.ensure_indexes()
        user = await repo.create_user(email=email, password_hash=hash_password(password))
    finally:
        client.close()
    print(f"OK -> {user.email} ({user.id})")


def main() -> None:
    load_dotenv()
    email = input("Email: ").strip()
    if not email:
        raise SystemExit("Email is required")

    pw1 = getpass("Password: ")
    pw2 = getpass("Repeat password: ")
    if pw1 != pw2:
        raise SystemExit("Passwords do not match")
    if len(pw1) < 6:
        raise SystemExit("Password must be at least 6 characters long")

    try:
        asyncio.run(_create(email, pw1))
    except ConflictError as e:
        raise SystemExit(str(e))


if __name__ == "__main__":
    main()
