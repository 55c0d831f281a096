"""
Authentication Endpoints

Password login scoped to a tenant. Sign-up, password reset and OAuth are
handled by the identity provider, not here.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime, timedelta

from portal.database import get_db
from portal.models.user import User
from portal.models.tenant import Tenant
from portal.schemas.auth import LoginRequest, Token
from portal.schemas.user import CurrentUserResponse
from portal.core.security import verify_password, create_access_token
from portal.core.exceptions import AuthenticationError
from portal.core.permissions import Principal
from portal.api.deps import get_principal
from portal.services.role_service import RoleService
from portal.config import get_settings
from portal.utils.logging import log_security_event, get_logger

logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=Token)
def login(
    credentials: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Authenticate a user for one tenant and return a JWT bound to it.

    The user must be active and hold a role in the tenant, or a platform
    role. All failures return the same generic error.
    """
    tenant = db.query(Tenant).filter(
        Tenant.slug == credentials.tenant_slug
    ).first()

    if not tenant:
        log_security_event(
            "failed_login",
            {"reason": "tenant_not_found", "tenant_slug": credentials.tenant_slug},
            logger
        )
        raise AuthenticationError("Invalid credentials")

    if not tenant.is_active:
        log_security_event(
            "failed_login",
            {"reason": "tenant_inactive", "tenant_id": tenant.id},
            logger
        )
        raise AuthenticationError("Tenant account is inactive")

    user = db.query(User).filter(User.email == credentials.email).first()

    if not user or not verify_password(credentials.password, user.hashed_password):
        log_security_event(
            "failed_login",
            {"reason": "invalid_credentials", "email": credentials.email, "tenant_id": tenant.id},
            logger
        )
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        log_security_event(
            "failed_login",
            {"reason": "user_inactive", "user_id": user.id},
            logger
        )
        raise AuthenticationError("Invalid credentials")

    roles = RoleService(db)
    if not roles.has_any_role_in_tenant(user.id, tenant.id) and not roles.is_platform_admin(user.id):
        log_security_event(
            "failed_login",
            {"reason": "no_tenant_role", "user_id": user.id, "tenant_id": tenant.id},
            logger
        )
        raise AuthenticationError("Invalid credentials")

    access_token = create_access_token(
        {"sub": user.id, "tenant_id": tenant.id, "email": user.email},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    user.last_login_at = datetime.utcnow()
    db.commit()

    logger.info(f"Successful login: user={user.id}, tenant={tenant.id}")

    return Token(access_token=access_token, tenant_id=tenant.id)


@router.get("/me", response_model=CurrentUserResponse)
def me(principal: Principal = Depends(get_principal)):
    """Current user with their roles in the request tenant."""
    user = principal.user
    return CurrentUserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        created_at=user.created_at,
        last_login_at=user.last_login_at,
        tenant_id=principal.tenant.id,
        tenant_roles=[role.value for role in principal.tenant_roles],
        is_platform_admin=principal.is_platform_admin,
    )
