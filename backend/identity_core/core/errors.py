"""
Error taxonomy for the identity core.

Services raise these; ``identity_core.main`` maps them onto HTTP responses.
``detail`` is the only text a caller ever sees, so authentication failures
carry generic, non-enumerating messages and the specific reason goes to the
log instead.
"""


class IdentityError(Exception):
    status_code: int = 500
    default_detail: str = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


# --- Context errors -------------------------------------------------------


class TenantContextError(IdentityError):
    status_code = 400
    default_detail = "Invalid tenant"


class TenantNotFoundError(TenantContextError):
    status_code = 404
    default_detail = "Tenant not found"


# --- Authentication / authorisation --------------------------------------


class AuthenticationError(IdentityError):
    status_code = 401
    default_detail = "Invalid credentials"


class PermissionDeniedError(IdentityError):
    status_code = 403
    default_detail = "Insufficient permissions"


class LoginLockedError(IdentityError):
    status_code = 429
    default_detail = "Too many failed attempts"


# --- Validation / state ---------------------------------------------------


class InputValidationError(IdentityError):
    status_code = 400
    default_detail = "Invalid request"


class ConflictError(IdentityError):
    status_code = 409
    default_detail = "Already exists"


class TokenNotFoundError(IdentityError):
    status_code = 404
    default_detail = "Token not found or already revoked"


def require_fields(**fields) -> None:
    """Raise InputValidationError naming every empty field, in call order."""
    missing = [name for name, value in fields.items() if value is None or not str(value).strip()]
    if missing:
        raise InputValidationError(f"Missing required field(s): {', '.join(missing)}")
