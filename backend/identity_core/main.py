import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError

from identity_core.auth.router import router as auth_router
from identity_core.rbac.router import router as rbac_router
from identity_core.tenants.router import router as tenants_router
from identity_core.core.config import settings
from identity_core.core.errors import IdentityError
from identity_core.db.init_db import init_db
from identity_core.db.seed import seed_host_tenant
from identity_core.db.session import SessionLocal, engine
from identity_core.tenants.origins import TenantCORSMiddleware, TenantOriginCache
from identity_core.tenants.resolver import resolve_request_context

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL, logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Multi-tenant Identity Core",
    version="0.1.0",
)

origin_cache = TenantOriginCache(
    SessionLocal,
    base_domain=settings.BASE_DOMAIN,
    static_origins=settings.CORS_ORIGINS,
    tenant_ports=settings.CORS_TENANT_PORTS,
    refresh_seconds=settings.CORS_REFRESH_SECONDS,
    allow_loopback=settings.ENV == "dev",
)
app.state.origin_cache = origin_cache

app.add_middleware(
    TenantCORSMiddleware,
    origin_cache=origin_cache,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", settings.TENANT_HEADER],
)


@app.exception_handler(IdentityError)
def identity_error_handler(request: Request, exc: IdentityError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable"})


@app.on_event("startup")
def on_startup() -> None:
    db_url = make_url(settings.DATABASE_URL)
    logger.info(
        "Config sanity: env=%s db_host=%s base_domain=%s cors_origins=%s access_exp_s=%s refresh_exp_days=%s",
        settings.ENV,
        db_url.host or "local",
        settings.BASE_DOMAIN,
        len(settings.CORS_ORIGINS),
        settings.JWT_ACCESS_EXP_SECONDS,
        settings.JWT_REFRESH_EXP_DAYS,
    )
    init_db()

    if settings.SEED_HOST_TENANT:
        db = SessionLocal()
        try:
            seed_host_tenant(db, email=settings.HOST_ADMIN_EMAIL, password=settings.HOST_ADMIN_PASSWORD)
        finally:
            db.close()


# --- Routers ---
tenant_scoped = [Depends(resolve_request_context)]
app.include_router(auth_router, prefix="/api/v1/auth", tags=["auth"], dependencies=tenant_scoped)
app.include_router(rbac_router, prefix="/api/v1/rbac", tags=["rbac"], dependencies=tenant_scoped)
app.include_router(tenants_router, prefix="/api/v1/tenants", tags=["tenants"])


# --- System ---
@app.get("/health", tags=["system"])
def health():
    return {"status": "ok"}


@app.get("/ready", tags=["system"])
def readiness():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Database not ready")
    return {"status": "ready"}
