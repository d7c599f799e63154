import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from identity_core.auth.deps import Principal
from identity_core.auth.models import User
from identity_core.core.errors import InputValidationError
from identity_core.db.session import get_db
from identity_core.rbac.deps import require_permission
from identity_core.rbac.models import Role
from identity_core.rbac.schemas import (
    PermissionCreateRequest,
    PermissionOut,
    PermissionsListResponse,
    RoleCreateRequest,
    RoleOut,
    RolePermissionsRequest,
    RolesListResponse,
    RoleUpdateRequest,
    UserRolesRequest,
    UserRolesResponse,
)
from identity_core.rbac.service import (
    aggregate_access,
    assign_role_to_user,
    create_permission,
    get_or_create_role,
    get_role,
    grant_permissions_to_role,
    list_permissions,
    list_roles_with_permissions,
    permissions_by_name,
    rename_role,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _role_out(db: Session, *, tenant_id: str, role_id: str) -> RoleOut:
    for row in list_roles_with_permissions(db, tenant_id=tenant_id):
        if row["id"] == role_id:
            return RoleOut(**row)
    raise HTTPException(status_code=404, detail="Role not found")


@router.get("/roles", response_model=RolesListResponse)
def list_roles(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("role.view")),
):
    roles = list_roles_with_permissions(db, tenant_id=principal.tenant_id)
    return RolesListResponse(tenant_id=principal.tenant_id, roles=[RoleOut(**r) for r in roles])


@router.post("/roles", response_model=RoleOut)
def create_role(
    payload: RoleCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("role.create")),
):
    role = get_or_create_role(
        db,
        tenant_id=principal.tenant_id,
        name=payload.name.strip(),
        actor_id=principal.user_id,
    )
    db.commit()
    logger.info("Role %s (%s) ensured by user %s", role.name, role.id, principal.user_id)
    return _role_out(db, tenant_id=principal.tenant_id, role_id=role.id)


@router.put("/roles/{role_id}", response_model=RoleOut)
def update_role(
    role_id: str,
    payload: RoleUpdateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("role.update")),
):
    name = payload.name.strip()
    if not name:
        raise InputValidationError("Role name is required")

    role = get_role(db, tenant_id=principal.tenant_id, role_id=role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    rename_role(db, role=role, name=name, actor_id=principal.user_id)
    db.commit()
    logger.info("Role %s renamed to %s by user %s", role.id, role.name, principal.user_id)
    return _role_out(db, tenant_id=principal.tenant_id, role_id=role.id)


@router.post("/roles/{role_id}/permissions", response_model=RoleOut)
def grant_role_permissions(
    role_id: str,
    payload: RolePermissionsRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("rolepermission.update")),
):
    role = get_role(db, tenant_id=principal.tenant_id, role_id=role_id)
    if not role:
        raise HTTPException(status_code=404, detail="Role not found")

    wanted = set(payload.permissions)
    permissions = permissions_by_name(db, tenant_id=principal.tenant_id, names=wanted)
    unknown = sorted(wanted - {p.name for p in permissions})
    if unknown:
        raise InputValidationError(f"Unknown permission(s): {', '.join(unknown)}")

    granted = grant_permissions_to_role(db, role=role, permissions=permissions)
    db.commit()
    logger.info("Granted %s permissions to role %s by user %s", granted, role.id, principal.user_id)
    return _role_out(db, tenant_id=principal.tenant_id, role_id=role.id)


@router.post("/users/{user_id}/roles", response_model=UserRolesResponse)
def assign_user_roles(
    user_id: str,
    payload: UserRolesRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("user.update")),
):
    user = db.execute(
        select(User).where(User.id == user_id, User.tenant_id == principal.tenant_id)
    ).scalar_one_or_none()
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    wanted = set(payload.role_ids)
    roles = db.execute(
        select(Role).where(Role.tenant_id == principal.tenant_id, Role.id.in_(wanted))
    ).scalars().all()
    unknown = sorted(wanted - {r.id for r in roles})
    if unknown:
        raise InputValidationError(f"Unknown role(s): {', '.join(unknown)}")

    for role in roles:
        assign_role_to_user(db, user=user, role=role)
    db.commit()

    # Takes effect in the user's tokens at their next login or refresh.
    claims = aggregate_access(db, user)
    logger.info("Assigned roles %s to user %s by user %s", claims.roles, user.id, principal.user_id)
    return UserRolesResponse(user_id=user.id, roles=claims.roles)


@router.get("/permissions", response_model=PermissionsListResponse)
def list_tenant_permissions(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("role.view")),
):
    rows = list_permissions(db, tenant_id=principal.tenant_id)
    return PermissionsListResponse(
        tenant_id=principal.tenant_id,
        permissions=[PermissionOut(id=p.id, name=p.name) for p in rows],
    )


@router.post("/permissions", response_model=PermissionOut, status_code=201)
def create_tenant_permission(
    payload: PermissionCreateRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_permission("rolepermission.update")),
):
    name = payload.name.strip()
    if not name:
        raise InputValidationError("Permission name is required")

    permission = create_permission(db, tenant_id=principal.tenant_id, name=name, actor_id=principal.user_id)
    db.commit()
    logger.info("Permission %s created for tenant %s by user %s", name, principal.tenant_id, principal.user_id)
    return PermissionOut(id=permission.id, name=permission.name)
