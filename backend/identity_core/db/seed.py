"""
Bootstrap the administrative ``host`` tenant.

    python -m identity_core.db.seed

Safe to run repeatedly: an existing host tenant is topped up with any catalog
permissions added since it was created, and an existing admin keeps its
password.
"""
import logging

from sqlalchemy.orm import Session

from identity_core.auth.service import find_user
from identity_core.core.config import settings
from identity_core.core.errors import InputValidationError
from identity_core.rbac.catalog import ADMIN_ROLE_NAME
from identity_core.rbac.service import (
    assign_role_to_user,
    get_or_create_role,
    grant_permissions_to_role,
    seed_catalog_permissions,
)
from identity_core.tenants.models import Tenant
from identity_core.tenants.service import get_tenant_by_domain, provision_tenant

logger = logging.getLogger(__name__)


def seed_host_tenant(db: Session, *, email: str, password: str | None) -> Tenant:
    domain = settings.HOST_TENANT_DOMAIN
    tenant = get_tenant_by_domain(db, domain)

    if tenant is None:
        if not password:
            raise InputValidationError("HOST_ADMIN_PASSWORD is required to create the host tenant")
        tenant, admin = provision_tenant(
            db,
            domain=domain,
            name="Host",
            admin_email=email,
            admin_password=password,
            admin_first_name="Host",
            admin_last_name="Admin",
            type="Host",
        )
        db.commit()
        logger.info("Created host tenant %s with admin %s", tenant.id, admin.id)
        return tenant

    role = get_or_create_role(db, tenant_id=tenant.id, name=ADMIN_ROLE_NAME)
    permissions = seed_catalog_permissions(db, tenant_id=tenant.id)
    grant_permissions_to_role(db, role=role, permissions=permissions)

    admin = find_user(db, tenant_id=tenant.id, email=email)
    if admin is not None:
        assign_role_to_user(db, user=admin, role=role)
    else:
        logger.warning("Host tenant exists but admin %s was not found; skipping role assignment", email)

    db.commit()
    logger.info("Host tenant %s already present; catalog synced", tenant.id)
    return tenant


def main() -> int:
    from identity_core.db.init_db import init_db
    from identity_core.db.session import SessionLocal

    logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
    init_db()
    db = SessionLocal()
    try:
        seed_host_tenant(db, email=settings.HOST_ADMIN_EMAIL, password=settings.HOST_ADMIN_PASSWORD)
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
