from dataclasses import dataclass

from identity_core.core.errors import TenantContextError
from identity_core.tenants.models import Tenant


@dataclass(frozen=True)
class RequestContext:
    """What the tenant resolver learned about one inbound request."""

    tenant: Tenant | None
    tenant_key: str | None = None
    client_ip: str | None = None

    @property
    def tenant_id(self) -> str | None:
        return self.tenant.id if self.tenant else None

    def require_tenant(self) -> Tenant:
        if self.tenant is None:
            raise TenantContextError("Invalid tenant")
        return self.tenant
