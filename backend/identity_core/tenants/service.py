import logging
import re
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from identity_core.auth.models import User
from identity_core.auth.security import hash_password
from identity_core.core.config import settings
from identity_core.core.errors import ConflictError, InputValidationError, require_fields
from identity_core.rbac.catalog import ADMIN_ROLE_NAME
from identity_core.rbac.service import (
    assign_role_to_user,
    get_or_create_role,
    grant_permissions_to_role,
    seed_catalog_permissions,
)
from identity_core.tenants.models import Tenant

logger = logging.getLogger(__name__)

_DOMAIN_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$")


def normalize_domain(domain: str) -> str:
    value = (domain or "").strip()
    if settings.TENANT_DOMAIN_CASE_INSENSITIVE:
        value = value.lower()
    return value


def get_tenant_by_domain(db: Session, domain: str) -> Tenant | None:
    key = normalize_domain(domain)
    if not key:
        return None
    return db.execute(select(Tenant).where(Tenant.domain == key)).scalar_one_or_none()


def list_tenant_domains(db: Session) -> list[str]:
    return list(db.execute(select(Tenant.domain).order_by(Tenant.domain)).scalars())


def provision_tenant(
    db: Session,
    *,
    domain: str,
    name: str,
    admin_email: str,
    admin_password: str,
    admin_first_name: str | None = None,
    admin_last_name: str | None = None,
    actor_id: str | None = None,
    **contact,
) -> tuple[Tenant, User]:
    """Stage a tenant, its admin user, an Admin role holding the full catalog, and the role assignment.

    Nothing is committed; the caller decides the transaction boundary.
    """
    try:
        pw_hash = hash_password(admin_password)
    except ValueError as exc:
        raise InputValidationError(str(exc)) from exc

    tenant = Tenant(
        domain=normalize_domain(domain),
        name=name,
        email=admin_email.strip().lower(),
        created_by=actor_id,
        updated_by=actor_id,
        **contact,
    )
    db.add(tenant)
    db.flush()

    admin = User(
        tenant_id=tenant.id,
        email=admin_email.strip().lower(),
        password_hash=pw_hash,
        first_name=admin_first_name,
        last_name=admin_last_name,
        must_change_password=False,
        created_by=actor_id,
        updated_by=actor_id,
    )
    db.add(admin)
    db.flush()

    role = get_or_create_role(db, tenant_id=tenant.id, name=ADMIN_ROLE_NAME, actor_id=actor_id)
    permissions = seed_catalog_permissions(db, tenant_id=tenant.id, actor_id=actor_id)
    grant_permissions_to_role(db, role=role, permissions=permissions)
    assign_role_to_user(db, user=admin, role=role)

    return tenant, admin


def register_tenant(
    db: Session,
    *,
    name: str,
    domain: str,
    admin_email: str,
    admin_password: str,
    admin_first_name: str | None = None,
    admin_last_name: str | None = None,
    address: str | None = None,
    phone1: str | None = None,
    phone2: str | None = None,
    registration_number: str | None = None,
    tenant_type: str | None = None,
    subscription_plan_id: str | None = None,
    origin_cache=None,
) -> tuple[Tenant, User]:
    require_fields(name=name, domain=domain, email=admin_email, password=admin_password)

    key = normalize_domain(domain)
    if not _DOMAIN_RE.match(key):
        raise InputValidationError("Domain must be a DNS-style label")
    if get_tenant_by_domain(db, key):
        raise ConflictError("Tenant with this domain already exists")

    try:
        tenant, admin = provision_tenant(
            db,
            domain=key,
            name=name,
            admin_email=admin_email,
            admin_password=admin_password,
            admin_first_name=admin_first_name,
            admin_last_name=admin_last_name,
            address=address,
            phone1=phone1,
            phone2=phone2,
            registration_number=registration_number,
            type=tenant_type or "Standard",
            subscription_plan_id=subscription_plan_id,
            subscription_start_date=datetime.utcnow() if subscription_plan_id else None,
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("Tenant with this domain already exists") from exc
    except Exception:
        db.rollback()
        raise

    db.refresh(tenant)
    logger.info("Registered tenant %s (%s) with admin %s", tenant.domain, tenant.id, admin.id)

    if origin_cache is not None:
        origin_cache.invalidate()

    return tenant, admin
