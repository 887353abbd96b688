"""
Shared helpers for CreatorHub examples.

Handles the health check and admin login so each example can focus on
its own workflow.
"""

import os
import sys
import uuid

import httpx

BASE = os.environ.get("CREATORHUB_API_URL", "http://localhost:8000").rstrip("/") + "/api/v1"

ADMIN_EMAIL = os.environ.get("CREATORHUB_ADMIN_EMAIL", "admin@creatorhub.local")
ADMIN_PASSWORD = os.environ.get("CREATORHUB_ADMIN_PASSWORD", "admin-password-123")


def check_backend() -> None:
    """Verify the backend is reachable and healthy."""
    try:
        resp = httpx.get(f"{BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Backend not reachable at {BASE}")
        print("Start it with:  uvicorn creatorhub.main:app --reload --port 8000")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print("Backend health:")
    print(f"  Database: {health['database']}")
    print(f"  Redis:    {health['redis']}")

    if health["database"] != "ok":
        print("\nERROR: Database is not connected. Start it with: docker compose up -d")
        sys.exit(1)


def login(email: str, password: str) -> str:
    resp = httpx.post(
        f"{BASE}/auth/login",
        json={"email": email, "password": password},
        timeout=10,
    )
    if resp.status_code != 200:
        print(f"ERROR: Login failed for {email}: {resp.status_code} {resp.text}")
        sys.exit(1)
    return resp.json()["access_token"]


def admin_client() -> httpx.Client:
    """Check the backend and return an httpx Client logged in as the admin.

    On an empty database the first registered account becomes the admin,
    so the admin is registered if it does not exist yet.
    """
    check_backend()
    resp = httpx.post(
        f"{BASE}/auth/register",
        json={
            "username": "agency-admin",
            "email": ADMIN_EMAIL,
            "full_name": "Agency Admin",
            "password": ADMIN_PASSWORD,
        },
        timeout=10,
    )
    if resp.status_code not in (201, 409):  # 409 = already exists
        print(f"ERROR: Registration failed: {resp.status_code} {resp.text}")
        sys.exit(1)

    token = login(ADMIN_EMAIL, ADMIN_PASSWORD)
    print("  Auth:     ok (JWT)")
    return httpx.Client(
        base_url=BASE,
        timeout=10,
        headers={"Authorization": f"Bearer {token}"},
    )


def create_creator(admin: httpx.Client, name: str, phone: str | None = None) -> tuple[dict, str]:
    """Create a creator account (admin-only) and return (user, password)."""
    run_id = uuid.uuid4().hex[:6]
    username = f"{name.lower().replace(' ', '-')}-{run_id}"
    password = f"pw-{run_id}-creator"
    resp = admin.post("/users", json={
        "username": username,
        "email": f"{username}@example.com",
        "full_name": name,
        "phone": phone,
        "password": password,
        "role": "client",
    })
    assert resp.status_code == 201, f"User creation failed: {resp.text}"
    return resp.json(), password
