"""
API Dependencies

Reusable FastAPI dependencies for tenant context, authentication and
role checks.
"""
from typing import Iterator
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import httpx

from portal.config import get_settings
from portal.database import get_db
from portal.models.user import User
from portal.models.tenant import Tenant
from portal.core.security import decode_access_token
from portal.core.exceptions import AuthenticationError, TenantIsolationError, PermissionDenied
from portal.core.permissions import Principal
from portal.services.role_service import RoleService
from portal.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)
settings = get_settings()

security = HTTPBearer(auto_error=False)


def get_current_tenant(request: Request) -> Tenant:
    """Tenant set by TenantMiddleware."""
    tenant = getattr(request.state, "tenant", None)
    if not tenant:
        logger.error("No tenant in request state - middleware may have failed")
        raise TenantIsolationError("Tenant context not available")
    return tenant


def get_role_service(db: Session = Depends(get_db)) -> RoleService:
    return RoleService(db)


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant)
) -> User:
    """
    Authenticated user for the request tenant.

    The token must have been issued for this tenant; a token from another
    tenant is an isolation violation, not an auth failure.
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise AuthenticationError("Invalid or expired token")

    user_id = payload.get("sub")
    token_tenant_id = payload.get("tenant_id")

    if not user_id:
        raise AuthenticationError("Invalid token payload")

    if token_tenant_id != tenant.id:
        log_security_event(
            "tenant_isolation_violation",
            {"user_id": user_id, "token_tenant": token_tenant_id, "tenant_id": tenant.id},
            logger
        )
        raise TenantIsolationError("Token tenant mismatch")

    user = db.query(User).filter(User.id == user_id).first()

    if not user:
        logger.warning(f"User not found: {user_id}")
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is inactive")

    return user


def get_principal(
    user: User = Depends(get_current_user),
    tenant: Tenant = Depends(get_current_tenant),
    roles: RoleService = Depends(get_role_service)
) -> Principal:
    return Principal(
        user=user,
        tenant=tenant,
        tenant_roles=roles.get_tenant_roles(user.id, tenant.id),
        is_platform_admin=roles.is_platform_admin(user.id),
    )


def require_tenant_member(principal: Principal = Depends(get_principal)) -> Principal:
    """Any role in the tenant, or a platform admin."""
    if not principal.is_member:
        log_security_event(
            "access_denied",
            {"user_id": principal.id, "tenant_id": principal.tenant.id, "required": "member"},
            logger
        )
        raise PermissionDenied("Not a member of this tenant")
    return principal


def require_tenant_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """tenant_owner / tenant_admin in this tenant, or a platform admin."""
    if not principal.is_tenant_admin:
        log_security_event(
            "access_denied",
            {"user_id": principal.id, "tenant_id": principal.tenant.id, "required": "tenant_admin"},
            logger
        )
        raise PermissionDenied("Tenant admin privileges required")
    return principal


def get_http_client() -> Iterator[httpx.Client]:
    """Outbound HTTP client for provider calls; overridden in tests."""
    with httpx.Client(timeout=settings.OUTBOUND_TIMEOUT_SECONDS) as client:
        yield client
