from identity_core.tenants.models import Tenant  # noqa: F401
from identity_core.auth.models import PasswordResetCode, RefreshToken, User  # noqa: F401
from identity_core.rbac.models import Permission, Role, RolePermission, UserRole  # noqa: F401
