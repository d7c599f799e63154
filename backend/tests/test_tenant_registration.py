from types import SimpleNamespace

import pytest
from sqlalchemy import func, select

from conftest import context_for
from identity_core.auth.security import decode_token
from identity_core.auth.service import login, register_user
from identity_core.core.errors import ConflictError, InputValidationError, TenantContextError
from identity_core.db.seed import seed_host_tenant
from identity_core.rbac.catalog import ADMIN_PERMISSION, ADMIN_ROLE_NAME, PERMISSION_CATALOG
from identity_core.rbac.models import Permission, Role
from identity_core.tenants.models import Tenant
from identity_core.tenants.router import current
from identity_core.tenants.service import get_tenant_by_domain, register_tenant


class _OriginCacheSpy:
    def __init__(self):
        self.invalidations = 0

    def invalidate(self):
        self.invalidations += 1


def _register(db, domain="acme", **kwargs):
    params = {
        "name": "Acme Ltd",
        "domain": domain,
        "admin_email": "Owner@Acme.test",
        "admin_password": "owner-password",
        "admin_first_name": "Olive",
        "admin_last_name": "Owner",
    }
    params.update(kwargs)
    return register_tenant(db, **params)


def test_register_tenant_provisions_admin_with_full_catalog(db, guard):
    spy = _OriginCacheSpy()

    tenant, admin = _register(db, origin_cache=spy)

    assert tenant.domain == "acme"
    assert tenant.type == "Standard"
    assert admin.tenant_id == tenant.id
    assert admin.email == "owner@acme.test"
    assert spy.invalidations == 1

    result = login(db, context_for(tenant), email="owner@acme.test", password="owner-password", guard=guard)
    claims = decode_token(result.tokens.access_token)
    assert claims["roles"] == [ADMIN_ROLE_NAME]
    assert ADMIN_PERMISSION in claims["permissions"]
    assert sorted(claims["permissions"]) == sorted(set(PERMISSION_CATALOG))


def test_register_tenant_rejects_duplicate_domain(db):
    _register(db)
    spy = _OriginCacheSpy()

    with pytest.raises(ConflictError):
        _register(db, domain="ACME", admin_email="other@acme.test", origin_cache=spy)

    assert spy.invalidations == 0
    assert db.execute(select(func.count()).select_from(Tenant)).scalar_one() == 1


@pytest.mark.parametrize("domain", ["acme corp", "-acme", "acme_", "acme..co"])
def test_register_tenant_rejects_non_dns_domains(db, domain):
    with pytest.raises(InputValidationError):
        _register(db, domain=domain)


def test_register_tenant_requires_admin_credentials(db):
    with pytest.raises(InputValidationError):
        _register(db, admin_password="")


def test_tenant_catalogs_are_separate(db):
    acme, _ = _register(db, domain="acme")
    globex, _ = _register(db, domain="globex", admin_email="owner@globex.test")

    for tenant in (acme, globex):
        count = db.execute(
            select(func.count()).select_from(Permission).where(Permission.tenant_id == tenant.id)
        ).scalar_one()
        assert count == len(set(PERMISSION_CATALOG))


def test_register_user_inside_resolved_tenant(db, make_tenant, guard):
    acme = make_tenant("acme")

    user = register_user(
        db,
        context_for(acme),
        email="New@Acme.test",
        password="fresh-password",
        first_name="Nia",
        last_name="New",
    )

    assert user.tenant_id == acme.id
    assert user.email == "new@acme.test"
    result = login(db, context_for(acme), email="new@acme.test", password="fresh-password", guard=guard)
    assert decode_token(result.tokens.access_token)["permissions"] == []

    with pytest.raises(ConflictError):
        register_user(db, context_for(acme), email="new@acme.test", password="another-password")


def test_register_user_needs_a_tenant(db):
    with pytest.raises(TenantContextError):
        register_user(db, context_for(None), email="new@acme.test", password="fresh-password")


def test_seed_host_tenant_is_idempotent(db):
    first = seed_host_tenant(db, email="root@host.test", password="host-password")
    second = seed_host_tenant(db, email="root@host.test", password="ignored-on-rerun")

    assert first.id == second.id
    assert get_tenant_by_domain(db, "HOST").id == first.id
    roles = db.execute(select(Role).where(Role.tenant_id == first.id)).scalars().all()
    assert [r.name for r in roles] == [ADMIN_ROLE_NAME]


def test_seed_host_tenant_needs_password_on_first_run(db):
    with pytest.raises(InputValidationError):
        seed_host_tenant(db, email="root@host.test", password=None)


def test_current_tenant_route_reports_resolved_tenant(make_tenant):
    acme = make_tenant("acme")

    out = current(ctx=SimpleNamespace(tenant=acme))

    assert out.id == acme.id
    assert out.domain == "acme"
