import logging

from fastapi import Depends

from identity_core.auth.deps import Principal, get_current_principal
from identity_core.core.errors import PermissionDeniedError
from identity_core.rbac.catalog import ADMIN_PERMISSION

logger = logging.getLogger(__name__)


def check_permission(principal: Principal, *names: str) -> None:
    """Raise PermissionDeniedError unless the principal holds every name (or ``admin``)."""
    if ADMIN_PERMISSION in principal.permissions:
        return
    missing = [n for n in names if n not in principal.permissions]
    if missing:
        logger.warning("Permission denied: user=%s missing=%s", principal.user_id, missing)
        raise PermissionDeniedError(f"Missing required permission: {missing[0]}")


def require_permission(*names: str):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        check_permission(principal, *names)
        return principal

    return _dep
