"""
RBAC graph reads and writes.

Writes here only ``flush``; the calling service owns the transaction and
commits once its whole unit of work is staged.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from identity_core.auth.models import User
from identity_core.core.errors import ConflictError, InputValidationError
from identity_core.rbac.catalog import PERMISSION_CATALOG
from identity_core.rbac.models import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessClaims:
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)


def roles_for_user(db: Session, user: User) -> list[Role]:
    return list(
        db.execute(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(
                UserRole.user_id == user.id,
                Role.tenant_id == user.tenant_id,
            )
            .order_by(Role.name)
        ).scalars()
    )


def permissions_for_roles(db: Session, tenant_id: str, role_ids: Iterable[str]) -> set[str]:
    role_ids = set(role_ids)
    if not role_ids:
        return set()

    names = db.execute(
        select(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(Role, Role.id == RolePermission.role_id)
        .where(
            RolePermission.role_id.in_(role_ids),
            Role.tenant_id == tenant_id,
            Permission.tenant_id == tenant_id,
        )
        .distinct()
    ).scalars()
    return set(names)


def aggregate_access(db: Session, user: User) -> AccessClaims:
    """Current role names and permission names for ``user``, scoped to its tenant.

    Runs against the database every time; results go straight into a new
    access token and are never cached beyond that token's lifetime.
    """
    roles = roles_for_user(db, user)
    permissions = permissions_for_roles(db, user.tenant_id, (r.id for r in roles))
    return AccessClaims(
        roles=sorted({r.name for r in roles}),
        permissions=sorted(permissions),
    )


def get_role(db: Session, *, tenant_id: str, role_id: str) -> Role | None:
    return db.execute(
        select(Role).where(Role.id == role_id, Role.tenant_id == tenant_id)
    ).scalar_one_or_none()


def get_or_create_role(db: Session, *, tenant_id: str, name: str, actor_id: str | None = None) -> Role:
    role = db.execute(
        select(Role).where(Role.tenant_id == tenant_id, Role.name == name)
    ).scalar_one_or_none()
    if role:
        return role

    role = Role(tenant_id=tenant_id, name=name, created_by=actor_id, updated_by=actor_id)
    db.add(role)
    db.flush()
    return role


def rename_role(db: Session, *, role: Role, name: str, actor_id: str | None = None) -> Role:
    if name == role.name:
        return role

    clash = db.execute(
        select(Role.id).where(Role.tenant_id == role.tenant_id, Role.name == name, Role.id != role.id)
    ).scalar_one_or_none()
    if clash:
        raise ConflictError("Role with this name already exists")

    role.name = name
    role.updated_by = actor_id
    db.flush()
    return role


def assign_role_to_user(db: Session, *, user: User, role: Role) -> UserRole:
    if user.tenant_id != role.tenant_id:
        raise InputValidationError("Role does not belong to the user's tenant")

    existing = db.execute(
        select(UserRole).where(UserRole.user_id == user.id, UserRole.role_id == role.id)
    ).scalar_one_or_none()
    if existing:
        return existing

    link = UserRole(user_id=user.id, role_id=role.id)
    db.add(link)
    db.flush()
    return link


def grant_permission_to_role(db: Session, *, role: Role, permission: Permission) -> RolePermission:
    if role.tenant_id != permission.tenant_id:
        raise InputValidationError("Permission does not belong to the role's tenant")

    existing = db.execute(
        select(RolePermission).where(
            RolePermission.role_id == role.id,
            RolePermission.permission_id == permission.id,
        )
    ).scalar_one_or_none()
    if existing:
        return existing

    link = RolePermission(tenant_id=role.tenant_id, role_id=role.id, permission_id=permission.id)
    db.add(link)
    db.flush()
    return link


def permissions_by_name(db: Session, *, tenant_id: str, names: Iterable[str]) -> list[Permission]:
    names = set(names)
    if not names:
        return []
    return list(
        db.execute(
            select(Permission)
            .where(Permission.tenant_id == tenant_id, Permission.name.in_(names))
            .order_by(Permission.name)
        ).scalars()
    )


def seed_catalog_permissions(
    db: Session,
    *,
    tenant_id: str,
    actor_id: str | None = None,
    names: Iterable[str] = PERMISSION_CATALOG,
) -> list[Permission]:
    wanted = list(dict.fromkeys(names))
    existing = {p.name for p in permissions_by_name(db, tenant_id=tenant_id, names=wanted)}

    missing = [name for name in wanted if name not in existing]
    for name in missing:
        db.add(Permission(tenant_id=tenant_id, name=name, created_by=actor_id, updated_by=actor_id))
    if missing:
        db.flush()
        logger.info("Seeded %s catalog permissions for tenant %s", len(missing), tenant_id)

    return permissions_by_name(db, tenant_id=tenant_id, names=wanted)


def create_permission(db: Session, *, tenant_id: str, name: str, actor_id: str | None = None) -> Permission:
    if permissions_by_name(db, tenant_id=tenant_id, names=[name]):
        raise ConflictError("Permission with this name already exists")

    permission = Permission(tenant_id=tenant_id, name=name, created_by=actor_id, updated_by=actor_id)
    db.add(permission)
    db.flush()
    return permission


def grant_permissions_to_role(db: Session, *, role: Role, permissions: Iterable[Permission]) -> int:
    count = 0
    for permission in permissions:
        grant_permission_to_role(db, role=role, permission=permission)
        count += 1
    return count


def list_permissions(db: Session, *, tenant_id: str) -> list[Permission]:
    return list(
        db.execute(
            select(Permission).where(Permission.tenant_id == tenant_id).order_by(Permission.name)
        ).scalars()
    )


def list_roles_with_permissions(db: Session, *, tenant_id: str) -> list[dict]:
    roles = db.execute(
        select(Role).where(Role.tenant_id == tenant_id).order_by(Role.name)
    ).scalars().all()

    grants: dict[str, list[dict]] = {r.id: [] for r in roles}
    if roles:
        rows = db.execute(
            select(RolePermission.role_id, Permission.id, Permission.name)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                RolePermission.role_id.in_(list(grants)),
                Permission.tenant_id == tenant_id,
            )
            .order_by(Permission.name)
        ).all()
        for role_id, permission_id, name in rows:
            grants[role_id].append({"id": permission_id, "name": name})

    return [{"id": r.id, "name": r.name, "permissions": grants[r.id]} for r in roles]
