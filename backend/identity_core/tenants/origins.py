"""
Cross-origin allow-list derived from the tenant directory.

The allow-list only affects browser CORS permissiveness; it is never consulted
for authentication or authorisation, so a stale or failed load is tolerated.
Refresh interval: ``CORS_REFRESH_SECONDS`` (default 300s). Tenant registration
calls ``invalidate()`` so a new tenant's origins appear on the next request.
"""
import logging
import threading
import time
from typing import Callable, Iterable
from urllib.parse import urlsplit

from starlette.concurrency import run_in_threadpool
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

from identity_core.tenants.resolver import is_loopback_host
from identity_core.tenants.service import list_tenant_domains

logger = logging.getLogger(__name__)


def _normalize_origin(origin: str) -> str:
    return origin.strip().rstrip("/").lower()


class TenantOriginCache:
    def __init__(
        self,
        session_factory: Callable,
        *,
        base_domain: str,
        static_origins: Iterable[str] = (),
        tenant_ports: Iterable[int] = (),
        refresh_seconds: int = 300,
        allow_loopback: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._session_factory = session_factory
        self.base_domain = base_domain
        self.static_origins = frozenset(_normalize_origin(o) for o in static_origins if o.strip())
        self.tenant_ports = tuple(tenant_ports)
        self.refresh_seconds = refresh_seconds
        self.allow_loopback = allow_loopback
        self._clock = clock
        self._lock = threading.Lock()
        self._origins: frozenset[str] = self.static_origins
        self._loaded_at: float | None = None

    def origins_for_domain(self, domain: str) -> set[str]:
        host = f"{domain}.{self.base_domain}" if self.base_domain else domain
        out = set()
        for scheme in ("http", "https"):
            out.add(f"{scheme}://{host}")
            for port in self.tenant_ports:
                out.add(f"{scheme}://{host}:{port}")
        return out

    def needs_refresh(self) -> bool:
        loaded_at = self._loaded_at
        return loaded_at is None or self._clock() - loaded_at >= self.refresh_seconds

    def refresh(self) -> frozenset[str]:
        with self._lock:
            try:
                db = self._session_factory()
                try:
                    domains = list_tenant_domains(db)
                finally:
                    db.close()
            except Exception:
                # Keep serving the previous snapshot; retry after the next interval.
                logger.exception("Failed to load tenant domains for CORS")
                self._loaded_at = self._clock()
                return self._origins

            origins = set(self.static_origins)
            for domain in domains:
                origins |= self.origins_for_domain(domain)
            self._origins = frozenset(_normalize_origin(o) for o in origins)
            self._loaded_at = self._clock()
            logger.info("Loaded CORS origins for %s tenants (%s origins)", len(domains), len(self._origins))
            return self._origins

    def invalidate(self) -> None:
        self._loaded_at = None

    def snapshot(self) -> frozenset[str]:
        return self._origins

    def origins(self) -> frozenset[str]:
        if self.needs_refresh():
            return self.refresh()
        return self._origins

    def is_allowed(self, origin: str | None, *, refresh: bool = True) -> bool:
        if not origin:
            return False
        origins = self.origins() if refresh else self._origins
        if _normalize_origin(origin) in origins:
            return True
        if self.allow_loopback:
            return is_loopback_host(urlsplit(origin).hostname)
        return False


class TenantCORSMiddleware(CORSMiddleware):
    """Starlette CORS middleware whose origin list comes from a TenantOriginCache."""

    def __init__(self, app: ASGIApp, *, origin_cache: TenantOriginCache, **kwargs) -> None:
        kwargs.pop("allow_origins", None)
        super().__init__(app, allow_origins=(), **kwargs)
        self.origin_cache = origin_cache

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.origin_cache.needs_refresh():
            await run_in_threadpool(self.origin_cache.refresh)
        await super().__call__(scope, receive, send)

    def is_allowed_origin(self, origin: str) -> bool:
        allowed = self.origin_cache.is_allowed(origin, refresh=False)
        if not allowed:
            logger.warning("CORS blocked origin: %s", origin)
        return allowed
