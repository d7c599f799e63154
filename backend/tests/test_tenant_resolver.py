import pytest

from conftest import fake_request
from identity_core.core.errors import TenantContextError, TenantNotFoundError
from identity_core.tenants.context import RequestContext
from identity_core.tenants.resolver import (
    is_loopback_host,
    require_request_tenant,
    resolve_request_context,
    resolve_tenant_key,
    subdomain_for,
)


def test_header_wins_over_query_and_host():
    key = resolve_tenant_key(
        header_value="acme",
        query_value="globex",
        host="initech.example.com",
        base_domain="example.com",
    )
    assert key == "acme"


def test_query_used_when_header_missing():
    key = resolve_tenant_key(
        header_value="  ",
        query_value="globex",
        host="initech.example.com",
        base_domain="example.com",
    )
    assert key == "globex"


def test_subdomain_of_base_domain_is_the_key():
    assert resolve_tenant_key(
        header_value=None,
        query_value=None,
        host="acme.example.com:8443",
        base_domain="example.com",
    ) == "acme"


def test_bare_base_domain_yields_no_subdomain():
    assert subdomain_for("example.com", "example.com") is None
    assert subdomain_for("notexample.com", "example.com") is None
    assert resolve_tenant_key(
        header_value=None,
        query_value=None,
        host="example.com",
        base_domain="example.com",
    ) is None


@pytest.mark.parametrize("host", ["localhost", "localhost:4200", "127.0.0.1", "127.0.0.1:8000", "[::1]:8000", "::1"])
def test_loopback_hosts_map_to_host_tenant(host):
    assert is_loopback_host(host)
    assert resolve_tenant_key(
        header_value=None,
        query_value=None,
        host=host,
        base_domain="example.com",
        host_tenant_domain="host",
    ) == "host"


def test_unrelated_host_yields_no_key():
    assert resolve_tenant_key(
        header_value=None,
        query_value=None,
        host="api.other.org",
        base_domain="example.com",
    ) is None


def test_resolve_request_context_finds_tenant_by_header(db, make_tenant):
    acme = make_tenant("acme")
    request = fake_request(host="api.other.org", headers={"X-Tenant-ID": "acme"}, client_ip="192.0.2.10")

    ctx = resolve_request_context(request, db=db)

    assert ctx.tenant.id == acme.id
    assert ctx.tenant_key == "acme"
    assert ctx.client_ip == "192.0.2.10"


def test_resolve_request_context_matches_domains_case_insensitively(db, make_tenant):
    acme = make_tenant("acme")
    request = fake_request(host="api.other.org", query={"X-Tenant-ID": "ACME"})

    ctx = resolve_request_context(request, db=db)

    assert ctx.tenant_id == acme.id


def test_resolve_request_context_rejects_unknown_tenant(db, make_tenant):
    make_tenant("acme")
    request = fake_request(host="api.other.org", headers={"X-Tenant-ID": "globex"})

    with pytest.raises(TenantNotFoundError) as exc:
        resolve_request_context(request, db=db)
    assert exc.value.status_code == 404


def test_resolve_request_context_without_key_has_no_tenant(db):
    ctx = resolve_request_context(fake_request(host="api.other.org"), db=db)

    assert ctx.tenant is None
    with pytest.raises(TenantContextError):
        require_request_tenant(ctx)


def test_require_request_tenant_passes_resolved_context(make_tenant):
    acme = make_tenant("acme")
    ctx = RequestContext(tenant=acme, tenant_key="acme")

    assert require_request_tenant(ctx) is ctx
