"""
Main FastAPI Application

Entry point for the business portal API.
Configures middleware, routes, error handlers, and startup/shutdown events.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
import uuid
from contextlib import asynccontextmanager

from portal import __version__
from portal.config import get_settings
from portal.database import engine, init_db
from portal.middleware.tenant import TenantMiddleware
from portal.middleware.rate_limit import RateLimitMiddleware
from portal.utils.logging import setup_logging, get_logger
from portal.core.exceptions import (
    AuthenticationError,
    TenantIsolationError,
    PermissionDenied,
    InvalidExperienceError,
    SecretError,
)
from portal.api.endpoints import (
    auth,
    companies,
    projects,
    tasks,
    roles,
    experiences,
    tools,
    mcp_secrets,
    recommendations,
    webhooks,
)

settings = get_settings()

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=(settings.ENVIRONMENT == "production")
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Production schemas come from migrations
    if settings.ENVIRONMENT == "development":
        logger.warning("Initializing database tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Business Portal API",
    description="Multi-tenant portal: companies, projects, roles, app experiences and integrations",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================
# Starlette runs the last-added middleware first, so a request passes
# request context -> CORS -> tenant -> rate limit -> route.

# Needs request.state.tenant, so it is added before (runs after) TenantMiddleware
app.add_middleware(RateLimitMiddleware)

app.add_middleware(TenantMiddleware)

allowed_origins = [
    "http://localhost:5173",
    "http://localhost:3000",
]
platform_domain_pattern = settings.PLATFORM_DOMAIN.replace(".", r"\.")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_origin_regex=rf"https://([a-z0-9-]+\.)?{platform_domain_pattern}",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id", "X-Process-Time"],
)


@app.middleware("http")
async def add_request_context(request: Request, call_next):
    """Request id (echoed or generated) and X-Process-Time on every response."""
    request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _request_context(request: Request) -> dict:
    return {
        "path": request.url.path,
        "method": request.method,
        "tenant_id": getattr(request.state, "tenant_id", None),
        "request_id": getattr(request.state, "request_id", None),
    }


@app.exception_handler(TenantIsolationError)
async def tenant_isolation_error_handler(request: Request, exc: TenantIsolationError):
    logger.error(f"TENANT ISOLATION VIOLATION: {exc.detail}", extra=_request_context(request))
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "tenant_isolation_error"}
    )


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "authentication_error"},
        headers=exc.headers or {}
    )


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied):
    logger.info(f"Permission denied: {exc.detail}", extra=_request_context(request))
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": "permission_denied"}
    )


@app.exception_handler(InvalidExperienceError)
async def invalid_experience_handler(request: Request, exc: InvalidExperienceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.errors, "type": "invalid_experience"}
    )


@app.exception_handler(SecretError)
async def secret_error_handler(request: Request, exc: SecretError):
    """Secret API error envelope."""
    logger.warning(f"Secret action failed: {exc.code}", extra=_request_context(request))
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "ok": False,
            "error": {"code": exc.code, "message": exc.detail},
            "metadata": {"request_id": getattr(request.state, "request_id", None)},
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log everything; only show internals in debug mode."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra=_request_context(request)
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__}
        )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"}
    )


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


@app.get("/", tags=["root"])
async def root():
    return {
        "message": "Business Portal API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


app.include_router(auth.router, prefix="/api/v1")
app.include_router(companies.router, prefix="/api/v1")
app.include_router(projects.router, prefix="/api/v1")
app.include_router(tasks.router, prefix="/api/v1")
app.include_router(roles.router, prefix="/api/v1")
app.include_router(experiences.router, prefix="/api/v1")
app.include_router(tools.router, prefix="/api/v1")
app.include_router(mcp_secrets.router, prefix="/api/v1")
app.include_router(recommendations.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")

    uvicorn.run(
        "portal.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
