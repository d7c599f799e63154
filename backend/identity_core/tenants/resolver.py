import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from identity_core.core.config import settings
from identity_core.core.errors import TenantNotFoundError
from identity_core.db.session import get_db
from identity_core.tenants.context import RequestContext
from identity_core.tenants.service import get_tenant_by_domain, normalize_domain

logger = logging.getLogger(__name__)

LOOPBACK_HOSTS = {"localhost", "127.0.0.1", "::1", "[::1]"}


def _strip_port(host: str) -> str:
    if host.startswith("["):
        # [::1]:8000
        return host.split("]", 1)[0] + "]"
    if host.count(":") == 1:
        return host.split(":", 1)[0]
    return host


def is_loopback_host(host: str | None) -> bool:
    if not host:
        return False
    return _strip_port(host.strip().lower()) in LOOPBACK_HOSTS


def subdomain_for(host: str | None, base_domain: str) -> str | None:
    if not host or not base_domain:
        return None
    hostname = _strip_port(host.strip().lower()).rstrip(".")
    suffix = "." + base_domain
    if hostname.endswith(suffix):
        label = hostname[: -len(suffix)]
        return label or None
    return None


def resolve_tenant_key(
    *,
    header_value: str | None,
    query_value: str | None,
    host: str | None,
    base_domain: str | None = None,
    host_tenant_domain: str | None = None,
) -> str | None:
    """Pick the tenant lookup key for a request, or None when nothing identifies one.

    Priority: explicit header, explicit query parameter, subdomain of the
    configured base domain, then the administrative ``host`` tenant for
    loopback hosts.
    """
    if header_value and header_value.strip():
        return header_value.strip()
    if query_value and query_value.strip():
        return query_value.strip()

    if base_domain is None:
        base_domain = settings.BASE_DOMAIN
    subdomain = subdomain_for(host, base_domain)
    if subdomain:
        return subdomain

    if is_loopback_host(host):
        return host_tenant_domain if host_tenant_domain is not None else settings.HOST_TENANT_DOMAIN

    return None


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def resolve_request_context(request: Request, db: Session = Depends(get_db)) -> RequestContext:
    key = resolve_tenant_key(
        header_value=request.headers.get(settings.TENANT_HEADER),
        query_value=request.query_params.get(settings.TENANT_QUERY_PARAM),
        host=request.url.hostname or request.headers.get("host"),
    )
    if key is None:
        return RequestContext(tenant=None, client_ip=_client_ip(request))

    tenant = get_tenant_by_domain(db, key)
    if tenant is None:
        logger.warning("Tenant not found for key=%s host=%s", key, request.url.hostname)
        raise TenantNotFoundError()

    logger.debug("Tenant resolved: %s (%s)", tenant.domain, tenant.id)
    return RequestContext(tenant=tenant, tenant_key=normalize_domain(key), client_ip=_client_ip(request))


def require_request_tenant(ctx: RequestContext = Depends(resolve_request_context)) -> RequestContext:
    ctx.require_tenant()
    return ctx
