"""
Webhook Endpoints

Inbound provider callbacks. These run outside the tenant middleware: the
tenant is named in the path and the request is authenticated by its
X-MCP-Signature header instead of a user token.
"""
from fastapi import APIRouter, Depends, Header, Query, Request
from sqlalchemy.orm import Session
from typing import Optional

from portal.database import get_db
from portal.models.tenant import Tenant
from portal.core.exceptions import TenantNotFoundError
from portal.services.secret_service import DEFAULT_PROVIDER, validate_webhook_signature
from portal.utils.logging import get_logger, log_event

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/mcp/{tenant_slug}")
async def receive_mcp_callback(
    tenant_slug: str,
    request: Request,
    provider: str = Query(DEFAULT_PROVIDER),
    x_mcp_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db)
):
    tenant = db.query(Tenant).filter(
        Tenant.slug == tenant_slug,
        Tenant.is_active == True  # noqa: E712
    ).first()
    if not tenant:
        raise TenantNotFoundError(tenant_slug)

    body = await request.body()
    validate_webhook_signature(db, tenant.id, provider, body, x_mcp_signature)

    request_id = getattr(request.state, "request_id", None)
    log_event(
        logger,
        "mcp.callback.accepted",
        tenant_id=tenant.id,
        provider=provider,
        request_id=request_id,
        size=len(body),
    )
    return {"ok": True, "metadata": {"request_id": request_id}}
