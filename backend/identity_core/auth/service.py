"""
Login, refresh-token rotation and revocation, and password recovery.

Refresh tokens are single use. Rotation and revocation are conditional
updates keyed on ``revoked_at IS NULL`` and checked by affected-row count, so
two concurrent calls presenting the same token cannot both succeed. Reset-code
consumption uses the same pattern on ``is_used``.

Access tokens carry the roles and permissions aggregated at issue time and are
trusted as-is until they expire; RBAC changes reach a user at their next
refresh, never sooner.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from identity_core.auth.login_guard import LoginGuard, login_guard
from identity_core.auth.models import PasswordResetCode, RefreshToken, User
from identity_core.auth.security import (
    JWTError,
    create_access_token,
    create_refresh_token,
    decode_token,
    generate_reset_code,
    hash_password,
    hash_token,
    verify_password,
)
from identity_core.core.config import settings
from identity_core.core.errors import (
    AuthenticationError,
    ConflictError,
    InputValidationError,
    LoginLockedError,
    TokenNotFoundError,
    require_fields,
)
from identity_core.db.base import new_id
from identity_core.notifications.service import Notifier, deliver_password_reset_code
from identity_core.rbac.service import AccessClaims, aggregate_access
from identity_core.tenants.context import RequestContext

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
RESET_REQUESTED_MESSAGE = (
    "If a matching account was found, a password reset code has been sent to your email."
)
RESET_FAILED_MESSAGE = "Invalid or expired code, or user not found."
PASSWORD_RESET_MESSAGE = "Password has been reset successfully."
PASSWORD_CHANGED_MESSAGE = "Password has been changed successfully."


@dataclass
class TokenPair:
    access_token: str
    access_expires_at: datetime
    refresh_token: str
    refresh_expires_at: datetime
    claims: AccessClaims = field(default_factory=AccessClaims)


@dataclass
class LoginResult:
    tokens: TokenPair
    user: User
    must_change_password: bool


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def find_user(db: Session, *, tenant_id: str, email: str) -> User | None:
    return db.execute(
        select(User).where(
            User.tenant_id == tenant_id,
            User.email == _normalize_email(email),
        )
    ).scalar_one_or_none()


def _password_matches(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    try:
        return verify_password(password, password_hash)
    except ValueError:
        # Oversized input or an unrecognised hash format.
        return False


def _stage_token_pair(
    db: Session,
    *,
    user: User,
    claims: AccessClaims,
    client_ip: str | None,
    now: datetime,
    refresh_row_id: str | None = None,
) -> TokenPair:
    access_token, access_expires_at = create_access_token(
        user_id=user.id,
        email=user.email,
        tenant_id=user.tenant_id,
        roles=claims.roles,
        permissions=claims.permissions,
        now=now,
    )
    refresh_token, refresh_expires_at = create_refresh_token(user_id=user.id, now=now)
    db.add(
        RefreshToken(
            id=refresh_row_id or new_id(),
            user_id=user.id,
            token_hash=hash_token(refresh_token),
            expires_at=refresh_expires_at,
            created_at=now,
            created_by_ip=client_ip,
            revoked_at=None,
        )
    )
    return TokenPair(
        access_token=access_token,
        access_expires_at=access_expires_at,
        refresh_token=refresh_token,
        refresh_expires_at=refresh_expires_at,
        claims=claims,
    )


def login(
    db: Session,
    ctx: RequestContext,
    *,
    email: str,
    password: str,
    guard: LoginGuard = login_guard,
) -> LoginResult:
    require_fields(email=email, password=password)
    tenant = ctx.require_tenant()

    guard_key = guard.key_for(tenant.id, email, ctx.client_ip)
    locked_until = guard.is_locked(guard_key)
    if locked_until:
        raise LoginLockedError(f"Too many failed attempts. Retry after {locked_until.isoformat()}")

    user = find_user(db, tenant_id=tenant.id, email=email)
    if user is None:
        reason = "user not found"
    elif not user.password_hash:
        reason = "no password hash"
    elif not _password_matches(password, user.password_hash):
        reason = "wrong password"
    else:
        reason = None

    if reason:
        logger.warning("Login failed: email=%s tenant=%s reason=%s", _normalize_email(email), tenant.domain, reason)
        new_lock = guard.register_failure(guard_key)
        if new_lock:
            raise LoginLockedError(f"Too many failed attempts. Retry after {new_lock.isoformat()}")
        raise AuthenticationError(INVALID_CREDENTIALS)

    guard.clear_failures(guard_key)

    now = datetime.utcnow()
    claims = aggregate_access(db, user)
    tokens = _stage_token_pair(db, user=user, claims=claims, client_ip=ctx.client_ip, now=now)
    db.commit()

    logger.info("Login ok: user=%s tenant=%s roles=%s", user.id, tenant.domain, claims.roles)
    return LoginResult(tokens=tokens, user=user, must_change_password=bool(user.must_change_password))


def _find_refresh_row(db: Session, refresh_token: str) -> RefreshToken | None:
    return db.execute(
        select(RefreshToken).where(RefreshToken.token_hash == hash_token(refresh_token))
    ).scalar_one_or_none()


def refresh_tokens(
    db: Session,
    ctx: RequestContext,
    *,
    refresh_token: str,
    now: datetime | None = None,
) -> TokenPair:
    require_fields(refresh_token=refresh_token)
    now = now or datetime.utcnow()

    row = _find_refresh_row(db, refresh_token)
    if row is None:
        logger.warning("Refresh rejected: unknown token")
        raise AuthenticationError("Invalid refresh token")
    if row.is_revoked:
        logger.warning("Refresh rejected: revoked token presented for user %s (row %s)", row.user_id, row.id)
        raise AuthenticationError("Refresh token has been revoked")
    if row.is_expired_at(now):
        logger.warning("Refresh rejected: expired token for user %s (row %s)", row.user_id, row.id)
        raise AuthenticationError("Refresh token has expired")

    try:
        payload = decode_token(refresh_token, verify_exp=False)
    except JWTError:
        logger.warning("Refresh rejected: bad signature on ledger row %s", row.id)
        raise AuthenticationError("Invalid refresh token")
    if payload.get("typ") != "refresh" or payload.get("sub") != row.user_id:
        logger.warning("Refresh rejected: claim mismatch on ledger row %s", row.id)
        raise AuthenticationError("Invalid refresh token")

    user = db.get(User, row.user_id)
    if user is None:
        logger.error("Refresh rejected: owner %s of row %s no longer exists", row.user_id, row.id)
        raise AuthenticationError("User not found")
    if ctx.tenant is not None and ctx.tenant.id != user.tenant_id:
        logger.warning(
            "Refresh rejected: token for tenant %s presented on tenant %s",
            user.tenant_id,
            ctx.tenant.id,
        )
        raise AuthenticationError("Invalid refresh token")

    claims = aggregate_access(db, user)

    replacement_id = new_id()
    result = db.execute(
        update(RefreshToken)
        .where(
            RefreshToken.id == row.id,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        .values(
            revoked_at=now,
            revoked_by_ip=ctx.client_ip,
            replaced_by_token_id=replacement_id,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning("Refresh rejected: row %s was rotated concurrently", row.id)
        raise AuthenticationError("Refresh token has been revoked")

    tokens = _stage_token_pair(
        db,
        user=user,
        claims=claims,
        client_ip=ctx.client_ip,
        now=now,
        refresh_row_id=replacement_id,
    )
    db.commit()

    logger.info("Refresh ok: user=%s rotated %s -> %s", user.id, row.id, replacement_id)
    return tokens


def revoke_refresh_token(db: Session, ctx: RequestContext, *, refresh_token: str) -> None:
    require_fields(refresh_token=refresh_token)
    now = datetime.utcnow()

    stmt = update(RefreshToken).where(
        RefreshToken.token_hash == hash_token(refresh_token),
        RefreshToken.revoked_at.is_(None),
    )
    if ctx.tenant is not None:
        stmt = stmt.where(
            RefreshToken.user_id.in_(select(User.id).where(User.tenant_id == ctx.tenant.id))
        )

    result = db.execute(
        stmt.values(revoked_at=now, revoked_by_ip=ctx.client_ip, updated_at=now).execution_options(
            synchronize_session=False
        )
    )
    if result.rowcount != 1:
        db.rollback()
        logger.warning("Revoke rejected: token unknown or already revoked")
        raise TokenNotFoundError()

    db.commit()
    logger.info("Refresh token revoked")


def register_user(
    db: Session,
    ctx: RequestContext,
    *,
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    require_fields(email=email, password=password)
    tenant = ctx.require_tenant()

    if find_user(db, tenant_id=tenant.id, email=email):
        raise ConflictError("User with this email already exists in your organization")

    try:
        pw_hash = hash_password(password)
    except ValueError as exc:
        raise InputValidationError(str(exc)) from exc

    user = User(
        tenant_id=tenant.id,
        email=_normalize_email(email),
        password_hash=pw_hash,
        first_name=first_name or "",
        last_name=last_name or "",
        must_change_password=False,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError("User with this email already exists in your organization") from exc
    db.refresh(user)

    logger.info("Registered user %s on tenant %s", user.id, tenant.domain)
    return user


def request_password_reset(
    db: Session,
    ctx: RequestContext,
    *,
    email: str,
    notifier: Notifier,
    now: datetime | None = None,
) -> str:
    require_fields(email=email)
    tenant = ctx.require_tenant()
    now = now or datetime.utcnow()

    user = find_user(db, tenant_id=tenant.id, email=email)
    if user is None:
        logger.warning(
            "Password reset requested for unknown email %s on tenant %s",
            _normalize_email(email),
            tenant.domain,
        )
        return RESET_REQUESTED_MESSAGE

    code = generate_reset_code()
    db.add(
        PasswordResetCode(
            user_id=user.id,
            code=code,
            expiry_date=now + timedelta(minutes=settings.PASSWORD_RESET_CODE_MINUTES),
            is_used=False,
            created_at=now,
        )
    )
    db.commit()
    logger.info("Password reset code issued for user %s", user.id)

    deliver_password_reset_code(
        notifier,
        tenant_id=tenant.id,
        tenant_domain=tenant.domain,
        email=user.email,
        code=code,
    )
    return RESET_REQUESTED_MESSAGE


def reset_password(
    db: Session,
    ctx: RequestContext,
    *,
    email: str,
    code: str,
    new_password: str,
    now: datetime | None = None,
) -> str:
    require_fields(email=email, code=code, new_password=new_password)
    tenant = ctx.require_tenant()
    now = now or datetime.utcnow()

    user = find_user(db, tenant_id=tenant.id, email=email)
    if user is None:
        logger.warning("Password reset failed: unknown email %s on tenant %s", _normalize_email(email), tenant.domain)
        raise AuthenticationError(RESET_FAILED_MESSAGE)

    reset_code = db.execute(
        select(PasswordResetCode)
        .where(
            PasswordResetCode.user_id == user.id,
            PasswordResetCode.code == code.strip(),
            PasswordResetCode.is_used.is_(False),
        )
        .order_by(PasswordResetCode.created_at.desc())
    ).scalars().first()
    if reset_code is None:
        logger.warning("Password reset failed: no unused matching code for user %s", user.id)
        raise AuthenticationError(RESET_FAILED_MESSAGE)
    if now >= reset_code.expiry_date:
        logger.warning("Password reset failed: code expired for user %s", user.id)
        raise AuthenticationError(RESET_FAILED_MESSAGE)

    try:
        pw_hash = hash_password(new_password)
    except ValueError as exc:
        raise InputValidationError(str(exc)) from exc

    # Consume the code and change the password in one transaction.
    consumed = db.execute(
        update(PasswordResetCode)
        .where(PasswordResetCode.id == reset_code.id, PasswordResetCode.is_used.is_(False))
        .values(is_used=True, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if consumed.rowcount != 1:
        db.rollback()
        logger.warning("Password reset failed: code %s consumed concurrently", reset_code.id)
        raise AuthenticationError(RESET_FAILED_MESSAGE)

    user.password_hash = pw_hash
    user.must_change_password = False
    user.updated_by = user.id
    db.add(user)
    db.commit()

    logger.info("Password reset for user %s", user.id)
    return PASSWORD_RESET_MESSAGE


def change_password(
    db: Session,
    *,
    user_id: str,
    tenant_id: str,
    current_password: str,
    new_password: str,
) -> str:
    require_fields(current_password=current_password, new_password=new_password)

    user = db.execute(
        select(User).where(User.id == user_id, User.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if user is None:
        logger.error("Password change failed: user %s not found on tenant %s", user_id, tenant_id)
        raise AuthenticationError("User not found")

    if not _password_matches(current_password, user.password_hash):
        logger.warning("Password change failed for user %s: wrong current password", user_id)
        raise AuthenticationError("Current password is incorrect")

    try:
        user.password_hash = hash_password(new_password)
    except ValueError as exc:
        raise InputValidationError(str(exc)) from exc
    user.must_change_password = False
    user.updated_by = user.id
    db.add(user)
    db.commit()

    logger.info("Password changed for user %s", user_id)
    return PASSWORD_CHANGED_MESSAGE
