import os

os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"

from types import SimpleNamespace  # noqa: E402

import pytest  # noqa: E402
from passlib.context import CryptContext  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import identity_core.db.models  # noqa: F401, E402
from identity_core.auth.login_guard import LoginGuard  # noqa: E402
from identity_core.auth.models import User  # noqa: E402
from identity_core.auth.security import hash_password  # noqa: E402
from identity_core.db.base import Base  # noqa: E402
from identity_core.db.session import enable_sqlite_foreign_keys  # noqa: E402
from identity_core.rbac.service import (  # noqa: E402
    assign_role_to_user,
    get_or_create_role,
    grant_permissions_to_role,
    seed_catalog_permissions,
)
from identity_core.tenants.context import RequestContext  # noqa: E402
from identity_core.tenants.models import Tenant  # noqa: E402


@pytest.fixture(autouse=True)
def fast_bcrypt(monkeypatch):
    monkeypatch.setattr(
        "identity_core.auth.security.pwd_context",
        CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=4),
    )


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(eng)
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def guard():
    return LoginGuard(max_failures=3, window_seconds=900, lock_seconds=900)


@pytest.fixture
def make_tenant(db):
    def _make(domain: str, name: str | None = None) -> Tenant:
        tenant = Tenant(domain=domain, name=name or domain.title())
        db.add(tenant)
        db.commit()
        return tenant

    return _make


@pytest.fixture
def make_user(db):
    def _make(
        tenant: Tenant,
        email: str,
        password: str | None = "correct-horse",
        permissions: tuple[str, ...] = (),
        role_name: str = "Staff",
    ) -> User:
        user = User(
            tenant_id=tenant.id,
            email=email,
            password_hash=hash_password(password) if password else None,
            first_name="Test",
            last_name="User",
        )
        db.add(user)
        db.flush()
        if permissions:
            role = get_or_create_role(db, tenant_id=tenant.id, name=role_name)
            perms = seed_catalog_permissions(db, tenant_id=tenant.id, names=permissions)
            grant_permissions_to_role(db, role=role, permissions=perms)
            assign_role_to_user(db, user=user, role=role)
        db.commit()
        return user

    return _make


def context_for(tenant: Tenant | None, client_ip: str = "10.0.0.7") -> RequestContext:
    return RequestContext(
        tenant=tenant,
        tenant_key=tenant.domain if tenant else None,
        client_ip=client_ip,
    )


def fake_request(*, host: str, headers: dict | None = None, query: dict | None = None, client_ip: str = "10.0.0.7"):
    return SimpleNamespace(
        headers=headers or {},
        query_params=query or {},
        url=SimpleNamespace(hostname=host),
        client=SimpleNamespace(host=client_ip),
    )
