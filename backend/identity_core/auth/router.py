from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from identity_core.auth import service
from identity_core.auth.deps import Principal, get_current_principal
from identity_core.auth.schemas import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    RevokeRequest,
    TokenResponse,
    UserSummary,
)
from identity_core.db.session import get_db
from identity_core.notifications.service import Notifier, get_notifier
from identity_core.tenants.context import RequestContext
from identity_core.tenants.resolver import resolve_request_context

router = APIRouter()


def _user_summary(user) -> UserSummary:
    return UserSummary(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
):
    result = service.login(db, ctx, email=payload.email, password=payload.password)
    tokens = result.tokens
    return LoginResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.access_expires_at,
        refresh_expires_at=tokens.refresh_expires_at,
        user=_user_summary(result.user),
        roles=tokens.claims.roles,
        permissions=tokens.claims.permissions,
        must_change_password=result.must_change_password,
    )


@router.post("/refresh", response_model=TokenResponse)
def refresh(
    payload: RefreshRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
):
    tokens = service.refresh_tokens(db, ctx, refresh_token=payload.refresh_token)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.access_expires_at,
        refresh_expires_at=tokens.refresh_expires_at,
    )


@router.post("/revoke", response_model=MessageResponse)
def revoke(
    payload: RevokeRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
):
    service.revoke_refresh_token(db, ctx, refresh_token=payload.refresh_token)
    return MessageResponse(message="Token revoked")


@router.post("/register", response_model=UserSummary)
def register(
    payload: RegisterRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
):
    user = service.register_user(
        db,
        ctx,
        email=str(payload.email),
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    return _user_summary(user)


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    message = service.request_password_reset(db, ctx, email=payload.email, notifier=notifier)
    return MessageResponse(message=message)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    payload: ResetPasswordRequest,
    ctx: RequestContext = Depends(resolve_request_context),
    db: Session = Depends(get_db),
):
    message = service.reset_password(
        db,
        ctx,
        email=payload.email,
        code=payload.code,
        new_password=payload.new_password,
    )
    return MessageResponse(message=message)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    message = service.change_password(
        db,
        user_id=principal.user_id,
        tenant_id=principal.tenant_id,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return MessageResponse(message=message)


@router.get("/me", response_model=MeResponse)
def me(principal: Principal = Depends(get_current_principal)):
    return MeResponse(
        id=principal.user_id,
        tenant_id=principal.tenant_id,
        email=principal.email,
        roles=sorted(principal.roles),
        permissions=sorted(principal.permissions),
    )
