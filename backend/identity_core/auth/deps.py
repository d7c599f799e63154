import logging
from dataclasses import dataclass, field

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from identity_core.auth.security import JWTError, decode_token
from identity_core.core.errors import AuthenticationError
from identity_core.tenants.context import RequestContext
from identity_core.tenants.resolver import resolve_request_context

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Verified access-token claims for the caller.

    Roles and permissions are the ones embedded at issue time; they are not
    re-read from the RBAC graph here.
    """

    user_id: str
    tenant_id: str
    email: str
    roles: frozenset[str] = field(default_factory=frozenset)
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, name: str) -> bool:
        return name in self.permissions


def principal_from_token(token: str, ctx: RequestContext | None = None) -> Principal:
    try:
        payload = decode_token(token)
    except JWTError:
        raise AuthenticationError("Invalid token")

    if payload.get("typ") != "access":
        raise AuthenticationError("Invalid token type")

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise AuthenticationError("Invalid token payload")

    if ctx is not None and ctx.tenant is not None and ctx.tenant.id != tenant_id:
        logger.warning(
            "Access token for tenant %s presented on tenant %s (user %s)",
            tenant_id,
            ctx.tenant.id,
            user_id,
        )
        raise AuthenticationError("Invalid token")

    return Principal(
        user_id=user_id,
        tenant_id=tenant_id,
        email=payload.get("email") or "",
        roles=frozenset(payload.get("roles") or ()),
        permissions=frozenset(payload.get("permissions") or ()),
    )


def get_current_principal(
    creds: HTTPAuthorizationCredentials | None = Depends(bearer),
    ctx: RequestContext = Depends(resolve_request_context),
) -> Principal:
    if not creds:
        raise AuthenticationError("Missing token")
    return principal_from_token(creds.credentials, ctx)
