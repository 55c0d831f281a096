"""
Tenant Middleware

Extracts tenant context from requests and makes it available throughout
the request lifecycle as request.state.tenant / request.state.tenant_id.

Identifier priority:
1. X-Tenant-Slug header (API clients)
2. Host header: custom domain, subdomain, legacy host
3. X-Tenant-ID header (legacy)
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import logging

from portal.database import SessionLocal
from portal.services.tenant_resolver import (
    extract_subdomain,
    resolve_tenant_by_host,
    resolve_tenant_by_identifier,
)

logger = logging.getLogger(__name__)

EXCLUDED_PATHS = (
    "/docs",
    "/redoc",
    "/openapi.json",
    "/health",
    # Signed provider callbacks name their tenant in the path
    "/api/v1/webhooks",
)


class TenantMiddleware(BaseHTTPMiddleware):
    """Resolve and validate the tenant for every non-excluded request."""

    def __init__(self, app):
        super().__init__(app)
        self.excluded_paths = EXCLUDED_PATHS

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path == "/" or any(path.startswith(excluded) for excluded in self.excluded_paths):
            return await call_next(request)

        db = SessionLocal()
        try:
            tenant, identifier = self._resolve(db, request)
        finally:
            db.close()

        if identifier is None:
            logger.warning(f"No tenant identifier in request: {request.url}")
            return JSONResponse(
                status_code=400,
                content={
                    "detail": "Tenant identifier required (X-Tenant-Slug header or tenant host)",
                    "type": "tenant_required",
                }
            )

        if not tenant:
            logger.warning(f"Tenant not found: {identifier}")
            return JSONResponse(
                status_code=404,
                content={"detail": f"Tenant not found: {identifier}", "type": "tenant_not_found"}
            )

        if not tenant.is_active:
            logger.warning(f"Inactive tenant attempted access: {identifier}")
            return JSONResponse(
                status_code=403,
                content={"detail": "Tenant account is inactive", "type": "tenant_inactive"}
            )

        request.state.tenant = tenant
        request.state.tenant_id = tenant.id

        logger.debug(f"Request for tenant: {tenant.slug} ({tenant.id})")

        return await call_next(request)

    def _resolve(self, db, request: Request):
        """Returns (tenant or None, identifier used or None)."""
        tenant_slug = request.headers.get("X-Tenant-Slug")
        if tenant_slug:
            return resolve_tenant_by_identifier(db, tenant_slug), tenant_slug

        host = request.headers.get("Host", "")
        if host:
            tenant = resolve_tenant_by_host(db, host)
            if tenant:
                return tenant, host

        tenant_id = request.headers.get("X-Tenant-ID")
        if tenant_id:
            logger.debug("Using X-Tenant-ID header (legacy)")
            return resolve_tenant_by_identifier(db, tenant_id), tenant_id

        # A bare platform host (localhost, portal.local) names no tenant
        if host and extract_subdomain(host):
            return None, host
        return None, None
