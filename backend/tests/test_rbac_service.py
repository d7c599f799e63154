import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from identity_core.core.errors import InputValidationError
from identity_core.rbac.catalog import PERMISSION_CATALOG
from identity_core.rbac.models import Permission, RolePermission, UserRole
from identity_core.rbac.service import (
    aggregate_access,
    assign_role_to_user,
    get_or_create_role,
    grant_permission_to_role,
    grant_permissions_to_role,
    list_roles_with_permissions,
    seed_catalog_permissions,
)


def _grant(db, tenant, role_name, names):
    role = get_or_create_role(db, tenant_id=tenant.id, name=role_name)
    perms = seed_catalog_permissions(db, tenant_id=tenant.id, names=names)
    grant_permissions_to_role(db, role=role, permissions=perms)
    return role


def test_aggregate_access_dedupes_and_sorts(db, make_tenant, make_user):
    acme = make_tenant("acme")
    user = make_user(acme, "alice@acme.test", password=None)
    clerk = _grant(db, acme, "Clerk", ("member.view", "claim.view"))
    approver = _grant(db, acme, "Approver", ("member.view", "member.approve"))
    assign_role_to_user(db, user=user, role=clerk)
    assign_role_to_user(db, user=user, role=approver)
    db.commit()

    claims = aggregate_access(db, user)

    assert claims.roles == ["Approver", "Clerk"]
    assert claims.permissions == ["claim.view", "member.approve", "member.view"]
    assert aggregate_access(db, user) == claims


def test_aggregate_access_is_independent_of_assignment_order(db, make_tenant, make_user):
    acme = make_tenant("acme")
    first = make_user(acme, "first@acme.test", password=None)
    second = make_user(acme, "second@acme.test", password=None)
    clerk = _grant(db, acme, "Clerk", ("member.view",))
    approver = _grant(db, acme, "Approver", ("member.approve",))

    assign_role_to_user(db, user=first, role=clerk)
    assign_role_to_user(db, user=first, role=approver)
    assign_role_to_user(db, user=second, role=approver)
    assign_role_to_user(db, user=second, role=clerk)
    db.commit()

    assert aggregate_access(db, first) == aggregate_access(db, second)


def test_user_without_roles_has_empty_claims(db, make_tenant, make_user):
    acme = make_tenant("acme")
    user = make_user(acme, "alice@acme.test", password=None)

    claims = aggregate_access(db, user)

    assert claims.roles == []
    assert claims.permissions == []


def test_foreign_tenant_role_link_is_ignored(db, make_tenant, make_user):
    acme = make_tenant("acme")
    globex = make_tenant("globex")
    user = make_user(acme, "alice@acme.test", password=None)
    foreign = _grant(db, globex, "GlobexAdmin", ("tenant.update",))
    # Bypass the service check to simulate a stray link.
    db.add(UserRole(user_id=user.id, role_id=foreign.id))
    db.commit()

    claims = aggregate_access(db, user)

    assert claims.roles == []
    assert claims.permissions == []


def test_assignments_are_idempotent(db, make_tenant, make_user):
    acme = make_tenant("acme")
    user = make_user(acme, "alice@acme.test", password=None)
    role = get_or_create_role(db, tenant_id=acme.id, name="Clerk")
    assert get_or_create_role(db, tenant_id=acme.id, name="Clerk").id == role.id
    (perm,) = seed_catalog_permissions(db, tenant_id=acme.id, names=("member.view",))

    first = grant_permission_to_role(db, role=role, permission=perm)
    again = grant_permission_to_role(db, role=role, permission=perm)
    link = assign_role_to_user(db, user=user, role=role)
    link_again = assign_role_to_user(db, user=user, role=role)
    db.commit()

    assert first.id == again.id
    assert link.id == link_again.id
    assert db.execute(select(func.count()).select_from(RolePermission)).scalar_one() == 1
    assert db.execute(select(func.count()).select_from(UserRole)).scalar_one() == 1


def test_cross_tenant_grants_and_assignments_are_refused(db, make_tenant, make_user):
    acme = make_tenant("acme")
    globex = make_tenant("globex")
    user = make_user(acme, "alice@acme.test", password=None)
    acme_role = get_or_create_role(db, tenant_id=acme.id, name="Clerk")
    globex_role = get_or_create_role(db, tenant_id=globex.id, name="Clerk")
    (globex_perm,) = seed_catalog_permissions(db, tenant_id=globex.id, names=("member.view",))

    with pytest.raises(InputValidationError):
        grant_permission_to_role(db, role=acme_role, permission=globex_perm)
    with pytest.raises(InputValidationError):
        assign_role_to_user(db, user=user, role=globex_role)


def test_database_rejects_mixed_tenant_role_permission(db, make_tenant):
    acme = make_tenant("acme")
    globex = make_tenant("globex")
    acme_role = get_or_create_role(db, tenant_id=acme.id, name="Clerk")
    (globex_perm,) = seed_catalog_permissions(db, tenant_id=globex.id, names=("member.view",))
    db.commit()

    db.add(RolePermission(tenant_id=acme.id, role_id=acme_role.id, permission_id=globex_perm.id))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_seed_catalog_only_creates_missing_names(db, make_tenant):
    acme = make_tenant("acme")

    first = seed_catalog_permissions(db, tenant_id=acme.id)
    second = seed_catalog_permissions(db, tenant_id=acme.id)
    db.commit()

    assert len(first) == len(second) == len(set(PERMISSION_CATALOG))
    count = db.execute(
        select(func.count()).select_from(Permission).where(Permission.tenant_id == acme.id)
    ).scalar_one()
    assert count == len(set(PERMISSION_CATALOG))


def test_each_tenant_owns_its_catalog_copy(db, make_tenant):
    acme = make_tenant("acme")
    globex = make_tenant("globex")

    (acme_perm,) = seed_catalog_permissions(db, tenant_id=acme.id, names=("member.view",))
    (globex_perm,) = seed_catalog_permissions(db, tenant_id=globex.id, names=("member.view",))

    assert acme_perm.id != globex_perm.id


def test_list_roles_with_permissions_is_tenant_scoped(db, make_tenant):
    acme = make_tenant("acme")
    globex = make_tenant("globex")
    _grant(db, acme, "Clerk", ("member.view", "claim.view"))
    _grant(db, globex, "Other", ("member.view",))
    db.commit()

    rows = list_roles_with_permissions(db, tenant_id=acme.id)

    assert [r["name"] for r in rows] == ["Clerk"]
    assert [p["name"] for p in rows[0]["permissions"]] == ["claim.view", "member.view"]
