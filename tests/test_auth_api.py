"""Auth tests: registration, login, refresh, /me, admin-only routes.

These use unauthenticated_client so the real JWT pipeline runs.
"""

import hashlib

import pytest
from sqlalchemy import select

from creatorhub.auth.jwt import create_access_token, create_refresh_token
from creatorhub.auth.password import hash_password, needs_upgrade, verify_password
from creatorhub.db.models import Event, User

from conftest import make_user


def _register_body(username: str, **overrides) -> dict:
    body = {
        "username": username,
        "email": f"{username}@example.com",
        "full_name": username.title(),
        "password": "secure_password_123",
    }
    body.update(overrides)
    return body


async def _login(client, email: str, password: str = "secure_password_123") -> dict:
    r = await client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ═══════════════════════════════════════════════════════════
# Registration
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_first_account_becomes_admin(unauthenticated_client, db_session):
    r1 = await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("owner"))
    r2 = await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("mia"))
    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r1.json()["role"] == "admin"
    assert r2.json()["role"] == "client"

    events = (await db_session.execute(select(Event).where(Event.type == "user.registered"))).scalars().all()
    assert len(events) == 2


@pytest.mark.asyncio
async def test_register_duplicate(unauthenticated_client):
    body = _register_body("dup")
    assert (await unauthenticated_client.post("/api/v1/auth/register", json=body)).status_code == 201
    r = await unauthenticated_client.post(
        "/api/v1/auth/register", json=_register_body("dup", email="other@example.com")
    )
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_register_short_password(unauthenticated_client):
    r = await unauthenticated_client.post(
        "/api/v1/auth/register", json=_register_body("shorty", password="abc")
    )
    assert r.status_code == 422


# ═══════════════════════════════════════════════════════════
# Login + refresh
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_login_and_me(unauthenticated_client):
    await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("mia"))
    tokens = await _login(unauthenticated_client, "mia@example.com")
    assert tokens["token_type"] == "bearer"

    r = await unauthenticated_client.get("/api/v1/auth/me", headers=_bearer(tokens["access_token"]))
    assert r.status_code == 200
    assert r.json()["username"] == "mia"
    assert "password_hash" not in r.json()


@pytest.mark.asyncio
async def test_login_wrong_password(unauthenticated_client):
    await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("mia"))
    r = await unauthenticated_client.post(
        "/api/v1/auth/login", json={"email": "mia@example.com", "password": "wrong_password"}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_login_nonexistent_user(unauthenticated_client):
    r = await unauthenticated_client.post(
        "/api/v1/auth/login", json={"email": "nobody@example.com", "password": "whatever"}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token(unauthenticated_client):
    await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("mia"))
    tokens = await _login(unauthenticated_client, "mia@example.com")

    r = await unauthenticated_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}
    )
    assert r.status_code == 200
    assert "access_token" in r.json()


@pytest.mark.asyncio
async def test_refresh_with_access_token_fails(unauthenticated_client):
    await unauthenticated_client.post("/api/v1/auth/register", json=_register_body("mia"))
    tokens = await _login(unauthenticated_client, "mia@example.com")
    r = await unauthenticated_client.post(
        "/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]}
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_cannot_call_api(unauthenticated_client, db_session):
    user = await make_user(db_session, "mia")
    r = await unauthenticated_client.get(
        "/api/v1/auth/me", headers=_bearer(create_refresh_token(str(user.id)))
    )
    assert r.status_code == 401


# ═══════════════════════════════════════════════════════════
# Protected routes
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_protected_route_requires_token(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/conversations")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/notifications", headers=_bearer("not-a-jwt"))
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user_rejected(unauthenticated_client):
    r = await unauthenticated_client.get(
        "/api/v1/notifications", headers=_bearer(create_access_token("999"))
    )
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_user_directory_is_admin_only(unauthenticated_client, db_session):
    admin = await make_user(db_session, "agency", role="admin")
    client_user = await make_user(db_session, "mia")

    r = await unauthenticated_client.get(
        "/api/v1/users", headers=_bearer(create_access_token(str(client_user.id)))
    )
    assert r.status_code == 403

    r = await unauthenticated_client.get(
        "/api/v1/users",
        params={"role": "client"},
        headers=_bearer(create_access_token(str(admin.id))),
    )
    assert r.status_code == 200
    assert [u["username"] for u in r.json()] == ["mia"]


@pytest.mark.asyncio
async def test_admin_creates_user_with_role(client):
    r = await client.post(
        "/api/v1/users", json={**_register_body("second_admin"), "role": "admin"}
    )
    assert r.status_code == 201
    assert r.json()["role"] == "admin"


# ═══════════════════════════════════════════════════════════
# Passwords
# ═══════════════════════════════════════════════════════════


def test_bcrypt_round_trip():
    hashed = hash_password("correct horse")
    assert hashed.startswith("$2")
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)
    assert not needs_upgrade(hashed)


def test_imported_scrypt_hash_verifies():
    salt = "a1b2c3d4e5f60718"
    digest = hashlib.scrypt(b"old_password", salt=salt.encode(), n=16384, r=8, p=1, dklen=64)
    stored = f"{digest.hex()}.{salt}"

    assert verify_password("old_password", stored)
    assert not verify_password("other_password", stored)
    assert needs_upgrade(stored)
    assert not verify_password("old_password", "garbage-without-salt")


@pytest.mark.asyncio
async def test_login_upgrades_imported_hash(unauthenticated_client, db_session):
    salt = "00ff00ff00ff00ff"
    digest = hashlib.scrypt(b"old_password", salt=salt.encode(), n=16384, r=8, p=1, dklen=64)
    user = await make_user(db_session, "legacy", password_hash=f"{digest.hex()}.{salt}")

    await _login(unauthenticated_client, "legacy@example.com", "old_password")

    refreshed = (await db_session.execute(select(User).where(User.id == user.id))).scalar_one()
    assert refreshed.password_hash.startswith("$2")
