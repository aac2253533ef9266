from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.config.permissions_config import PERMISSION_MATRIX
from app.database.supabase_client import get_service_supabase, get_supabase
from app.main import app
from app.modules.auth import service as auth_service
from fakes import FakeSupabase


@pytest.fixture(autouse=True)
def clear_auth_cache():
    auth_service._AUTH_USER_CACHE.clear()
    yield
    auth_service._AUTH_USER_CACHE.clear()


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def seeded(db):
    """Core permissions in both guards, a few web roles and one user per role"""
    for permission in PERMISSION_MATRIX["permissions"]:
        for guard in ("web", "api"):
            db.add_permission(permission["name"], guard)
    db.add_role("super-admin", permissions=[p["name"] for p in PERMISSION_MATRIX["permissions"]])
    db.add_role("admin", permissions=["manage users", "manage roles", "manage permissions"])
    db.add_role("free", permissions=["view tokens"])

    return SimpleNamespace(
        db=db,
        root=db.add_user("Root", "root@example.com", roles=["super-admin"]),
        manager=db.add_user("Manager", "manager@example.com", roles=["admin"]),
        member=db.add_user("Member", "member@example.com", roles=["free"]),
    )


@pytest.fixture
def client(db):
    app.dependency_overrides[get_supabase] = lambda: db
    app.dependency_overrides[get_service_supabase] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
