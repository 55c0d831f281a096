"""
MCP Secret Admin Endpoints

Tenant admins manage the HMAC signing secrets their integration
providers use. Responses are wrapped as {ok, data, metadata: {request_id}};
failures come back through the SecretError handler as
{ok: false, error: {code, message}, metadata}.
"""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Any, Dict
import httpx

from portal.database import get_db
from portal.schemas.secret import (
    ProviderRequest,
    RevealRequest,
    PingRequest,
    VerifyCallbackRequest,
    SecretEnvelope,
)
from portal.api.deps import (
    security,
    get_current_tenant,
    get_current_user,
    get_principal,
    get_role_service,
    get_http_client,
)
from portal.core.exceptions import AuthenticationError, SecretError
from portal.core.permissions import Principal
from portal.models.tenant import Tenant
from portal.middleware.rate_limit import SecretActionLimiter, get_secret_limiter
from portal.services.role_service import RoleService
from portal.services.secret_service import (
    SecretService,
    DEFAULT_PROVIDER,
    request_meta,
    secret_to_dict,
)
from portal.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)

router = APIRouter(prefix="/admin/mcp/secrets", tags=["mcp-secrets"])


def get_secret_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
    tenant: Tenant = Depends(get_current_tenant),
    roles: RoleService = Depends(get_role_service)
) -> Principal:
    """get_principal, with auth failures reported in the secret API envelope."""
    try:
        user = get_current_user(credentials, db, tenant)
    except AuthenticationError as exc:
        raise SecretError("UNAUTHORIZED", exc.detail)
    return get_principal(user, tenant, roles)


def require_secret_admin(principal: Principal = Depends(get_secret_principal)) -> Principal:
    if not principal.is_tenant_admin:
        log_security_event(
            "access_denied",
            {"user_id": principal.id, "tenant_id": principal.tenant.id, "resource": "mcp_secrets"},
            logger
        )
        raise SecretError("FORBIDDEN", "Tenant admin privileges required")
    return principal


def get_secret_service(
    request: Request,
    principal: Principal = Depends(require_secret_admin),
    limiter: SecretActionLimiter = Depends(get_secret_limiter),
    db: Session = Depends(get_db)
) -> SecretService:
    return SecretService(
        db,
        tenant_id=principal.tenant.id,
        user_id=principal.id,
        meta=request_meta(request),
        limiter=limiter,
    )


def _ok(service: SecretService, data: Any) -> Dict[str, Any]:
    return SecretEnvelope(data=data, metadata={"request_id": service.meta.request_id}).model_dump()


@router.get("")
def list_secrets(
    provider: str = Query(DEFAULT_PROVIDER),
    service: SecretService = Depends(get_secret_service)
):
    """Secret metadata, newest first. Values are never listed."""
    return _ok(service, [secret_to_dict(secret) for secret in service.list_secrets(provider)])


@router.post("/create")
def create_secret(
    body: ProviderRequest,
    service: SecretService = Depends(get_secret_service)
):
    return _ok(service, service.create_secret(body.provider))


@router.post("/rotate")
def rotate_secret(
    body: ProviderRequest,
    service: SecretService = Depends(get_secret_service)
):
    return _ok(service, service.rotate_secret(body.provider))


@router.post("/reveal")
def reveal_secret(
    body: RevealRequest,
    service: SecretService = Depends(get_secret_service)
):
    """Exchange a reveal token for the plaintext secret. Works once."""
    return _ok(service, service.reveal_secret(body.token))


@router.post("/test/ping")
def test_ping(
    body: PingRequest,
    service: SecretService = Depends(get_secret_service),
    http_client: httpx.Client = Depends(get_http_client)
):
    return _ok(service, service.test_ping(body.provider, body.workflow_key, http_client))


@router.post("/test/verify-callback")
def verify_callback(
    body: VerifyCallbackRequest,
    service: SecretService = Depends(get_secret_service)
):
    return _ok(service, service.verify_callback(body.payload, body.signature, body.provider))


@router.get("/health")
def secret_health(
    provider: str = Query(DEFAULT_PROVIDER),
    service: SecretService = Depends(get_secret_service)
):
    return _ok(service, service.secret_health(provider))


@router.post("/{secret_id}/deactivate")
def deactivate_secret(
    secret_id: str,
    service: SecretService = Depends(get_secret_service)
):
    return _ok(service, secret_to_dict(service.deactivate_secret(secret_id)))
