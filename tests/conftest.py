"""
Pytest configuration and fixtures
"""
import os
import tempfile
from types import SimpleNamespace

# Settings are read once at import time, so the environment must be in
# place before anything from portal is imported.
_db_dir = tempfile.mkdtemp(prefix="portal-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from portal.database import Base, SessionLocal, engine
from portal.core.security import create_access_token, get_password_hash
from portal.models.tenant import Tenant
from portal.models.user import User, UserRole, AppRole, RoleScope

PASSWORD = "correct-horse-battery"

# bcrypt is slow; hash once for every seeded user
PASSWORD_HASH = get_password_hash(PASSWORD)


@pytest.fixture(scope="function")
def db() -> Session:
    """Fresh schema and a session for each test."""
    import portal.models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db: Session):
    from portal.main import app

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db: Session, email: str, full_name: str = None, is_active: bool = True) -> User:
    user = User(
        email=email,
        hashed_password=PASSWORD_HASH,
        full_name=full_name,
        is_active=is_active,
    )
    db.add(user)
    db.flush()
    return user


def grant(db: Session, user: User, role: AppRole, scope_type: RoleScope, scope_id: str = None) -> UserRole:
    user_role = UserRole(user_id=user.id, role=role, scope_type=scope_type, scope_id=scope_id)
    db.add(user_role)
    db.flush()
    return user_role


@pytest.fixture
def seed(db: Session) -> SimpleNamespace:
    """
    Two active tenants and one inactive one.

    acme:   owner (tenant_owner), contributor, viewer
    globex: admin (tenant_admin)
    platform: platform_owner with no tenant role
    """
    acme = Tenant(
        name="Acme AS",
        slug="acme",
        subdomain="acme",
        domain="crm.acme.no",
        host="localhost:5173",
        region="EU",
    )
    globex = Tenant(name="Globex Inc", slug="globex", subdomain="globex", region="US")
    dormant = Tenant(name="Dormant", slug="dormant", subdomain="dormant", is_active=False)
    db.add_all([acme, globex, dormant])
    db.flush()

    owner = make_user(db, "owner@acme.no", "Olivia Owner")
    contributor = make_user(db, "contributor@acme.no", "Carl Contributor")
    viewer = make_user(db, "viewer@acme.no", "Vera Viewer")
    globex_admin = make_user(db, "admin@globex.com", "Gary Globex")
    platform = make_user(db, "ops@portalhq.com", "Pat Platform")

    grant(db, owner, AppRole.TENANT_OWNER, RoleScope.TENANT, acme.id)
    grant(db, contributor, AppRole.CONTRIBUTOR, RoleScope.TENANT, acme.id)
    grant(db, viewer, AppRole.VIEWER, RoleScope.TENANT, acme.id)
    grant(db, globex_admin, AppRole.TENANT_ADMIN, RoleScope.TENANT, globex.id)
    grant(db, platform, AppRole.PLATFORM_OWNER, RoleScope.PLATFORM)
    db.commit()

    return SimpleNamespace(
        acme=acme,
        globex=globex,
        dormant=dormant,
        owner=owner,
        contributor=contributor,
        viewer=viewer,
        globex_admin=globex_admin,
        platform=platform,
    )


def auth_headers(user: User, tenant: Tenant, token_tenant: Tenant = None) -> dict:
    """Bearer token for `user` plus the X-Tenant-Slug header for `tenant`."""
    token = create_access_token({"sub": user.id, "tenant_id": (token_tenant or tenant).id})
    return {
        "Authorization": f"Bearer {token}",
        "X-Tenant-Slug": tenant.slug,
    }
