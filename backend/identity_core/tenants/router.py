from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from identity_core.db.session import get_db
from identity_core.tenants.context import RequestContext
from identity_core.tenants.models import Tenant
from identity_core.tenants.resolver import require_request_tenant
from identity_core.tenants.schemas import TenantOut, TenantRegisterRequest, TenantRegisterResponse
from identity_core.tenants.service import register_tenant

router = APIRouter()


def _tenant_out(tenant: Tenant) -> TenantOut:
    return TenantOut(
        id=tenant.id,
        domain=tenant.domain,
        name=tenant.name,
        email=tenant.email,
        type=tenant.type,
        subscription_plan_id=tenant.subscription_plan_id,
        subscription_start_date=tenant.subscription_start_date,
        created_at=tenant.created_at,
    )


@router.post("/register", response_model=TenantRegisterResponse)
def register(payload: TenantRegisterRequest, request: Request, db: Session = Depends(get_db)):
    tenant, admin = register_tenant(
        db,
        name=payload.name,
        domain=payload.domain,
        admin_email=str(payload.email),
        admin_password=payload.password,
        admin_first_name=payload.first_name,
        admin_last_name=payload.last_name,
        address=payload.address,
        phone1=payload.phone1,
        phone2=payload.phone2,
        registration_number=payload.registration_number,
        tenant_type=payload.type,
        subscription_plan_id=payload.subscription_plan_id,
        origin_cache=getattr(request.app.state, "origin_cache", None),
    )
    return TenantRegisterResponse(
        tenant=_tenant_out(tenant),
        admin_user_id=admin.id,
        admin_email=admin.email,
    )


@router.get("/current", response_model=TenantOut)
def current(ctx: RequestContext = Depends(require_request_tenant)):
    return _tenant_out(ctx.tenant)
