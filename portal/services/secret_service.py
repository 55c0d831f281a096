"""
MCP Secret Service

Lifecycle of per-tenant HMAC signing secrets used to sign traffic to and
from integration providers (n8n etc.):

- create / rotate: retire the active secret (kept for a grace period),
  issue a new one, hand out a single-use reveal token
- reveal: exchange the token for the plaintext secret, once
- deactivate, test ping, callback verification, health

Every attempted action writes a SecretAuditLog row, successful or not.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
import json
import logging
import time

import httpx
from starlette.requests import Request
from sqlalchemy.orm import Session

from portal.config import get_settings
from portal.core.exceptions import SecretError
from portal.core.security import (
    generate_secret,
    generate_reveal_token,
    hash_token,
    sign_payload,
    verify_signature,
)
from portal.middleware.rate_limit import SecretActionLimiter
from portal.models.integration import TenantIntegration
from portal.models.secret import McpTenantSecret, SecretRevealToken, SecretAuditLog
from portal.utils.logging import get_logger, log_event, log_security_event

logger = get_logger(__name__)
settings = get_settings()

DEFAULT_PROVIDER = "n8n"
USER_AGENT_MAX = 512


@dataclass
class RequestMeta:
    """Caller details recorded in the audit log."""
    request_id: str
    ip_address: str = "unknown"
    user_agent: str = "unknown"


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or "unknown"


def request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        request_id=getattr(request.state, "request_id", None) or "unknown",
        ip_address=get_client_ip(request),
        user_agent=(request.headers.get("User-Agent") or "unknown")[:USER_AGENT_MAX],
    )


def get_active_secret(db: Session, tenant_id: str, provider: str) -> Optional[McpTenantSecret]:
    return db.query(McpTenantSecret).filter(
        McpTenantSecret.tenant_id == tenant_id,
        McpTenantSecret.provider == provider,
        McpTenantSecret.is_active == True  # noqa: E712
    ).order_by(McpTenantSecret.created_at.desc()).first()


def secret_to_dict(secret: McpTenantSecret) -> Dict[str, Any]:
    """Metadata only; the secret value never leaves through here."""
    return {
        "id": secret.id,
        "provider": secret.provider,
        "is_active": secret.is_active,
        "created_at": secret.created_at,
        "rotated_at": secret.rotated_at,
        "expires_at": secret.expires_at,
        "created_by": secret.created_by,
    }


class SecretService:
    """Secret actions for one tenant admin within one request."""

    def __init__(
        self,
        db: Session,
        tenant_id: str,
        user_id: str,
        meta: RequestMeta,
        limiter: Optional[SecretActionLimiter] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.meta = meta
        self.limiter = limiter

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _audit(
        self,
        action: str,
        success: bool,
        provider: Optional[str] = None,
        secret_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        self.db.add(SecretAuditLog(
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            action=action,
            secret_id=secret_id,
            provider=provider,
            request_id=self.meta.request_id,
            ip_address=self.meta.ip_address,
            user_agent=self.meta.user_agent,
            success=success,
            error_message=error_message,
        ))
        self.db.commit()

    def _fail(self, action: str, code: str, provider: Optional[str] = None,
              secret_id: Optional[str] = None, message: Optional[str] = None) -> SecretError:
        """Roll back pending work, record the failed attempt and build the error."""
        self.db.rollback()
        self._audit(action, False, provider=provider, secret_id=secret_id, error_message=message or code)
        log_event(
            logger,
            f"mcp.secret.admin.{action}_failed",
            level=logging.WARNING,
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            request_id=self.meta.request_id,
            provider=provider,
            code=code,
        )
        return SecretError(code, message)

    def _check_limit(self, action: str, provider: Optional[str]) -> None:
        if self.limiter is None:
            return
        try:
            self.limiter.check(self.tenant_id, self.user_id, action)
        except SecretError as e:
            raise self._fail(action, e.code, provider=provider, message="Rate limit exceeded")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def list_secrets(self, provider: str = DEFAULT_PROVIDER) -> List[McpTenantSecret]:
        return self.db.query(McpTenantSecret).filter(
            McpTenantSecret.tenant_id == self.tenant_id,
            McpTenantSecret.provider == provider
        ).order_by(McpTenantSecret.created_at.desc()).all()

    def _issue(self, action: str, provider: str) -> Dict[str, Any]:
        self._check_limit(action, provider)

        now = datetime.utcnow()
        grace = timedelta(days=settings.SECRET_RETIRED_GRACE_DAYS)

        retired = self.db.query(McpTenantSecret).filter(
            McpTenantSecret.tenant_id == self.tenant_id,
            McpTenantSecret.provider == provider,
            McpTenantSecret.is_active == True  # noqa: E712
        ).update(
            {"is_active": False, "rotated_at": now, "expires_at": now + grace},
            synchronize_session=False
        )

        secret = McpTenantSecret(
            tenant_id=self.tenant_id,
            provider=provider,
            secret=generate_secret(),
            is_active=True,
            created_by=self.user_id,
        )
        self.db.add(secret)
        self.db.flush()

        raw_token = generate_reveal_token()
        self.db.add(SecretRevealToken(
            token_hash=hash_token(raw_token),
            secret_id=secret.id,
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            purpose=action,
            ip_address=self.meta.ip_address,
            expires_at=now + timedelta(minutes=settings.REVEAL_TOKEN_TTL_MINUTES),
        ))
        self.db.commit()

        self._audit(action, True, provider=provider, secret_id=secret.id)
        log_event(
            logger,
            f"mcp.secret.admin.{'created' if action == 'create' else 'rotated'}",
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            request_id=self.meta.request_id,
            provider=provider,
            secret_id=secret.id,
            retired=retired,
        )

        return {
            "secret_id": secret.id,
            "reveal_token": raw_token,
            "reveal_expires_at": now + timedelta(minutes=settings.REVEAL_TOKEN_TTL_MINUTES),
        }

    def create_secret(self, provider: str = DEFAULT_PROVIDER) -> Dict[str, Any]:
        return self._issue("create", provider)

    def rotate_secret(self, provider: str = DEFAULT_PROVIDER) -> Dict[str, Any]:
        return self._issue("rotate", provider)

    def reveal_secret(self, token: str) -> Dict[str, Any]:
        """
        Consume a reveal token and return the plaintext secret.

        The token is marked consumed by a single conditional UPDATE, so two
        concurrent reveals cannot both succeed.
        """
        self._check_limit("reveal", None)

        now = datetime.utcnow()
        token_hash = hash_token(token or "")
        reveal = self.db.query(SecretRevealToken).filter(
            SecretRevealToken.token_hash == token_hash,
            SecretRevealToken.tenant_id == self.tenant_id,
            SecretRevealToken.user_id == self.user_id,
        ).first()
        if reveal is None:
            raise self._fail("reveal", "INVALID_OR_EXPIRED_TOKEN")

        consumed = self.db.query(SecretRevealToken).filter(
            SecretRevealToken.id == reveal.id,
            SecretRevealToken.consumed_at.is_(None),
            SecretRevealToken.expires_at > now,
        ).update({"consumed_at": now}, synchronize_session=False)
        if consumed != 1:
            raise self._fail("reveal", "INVALID_OR_EXPIRED_TOKEN", secret_id=reveal.secret_id)

        secret = self.db.query(McpTenantSecret).filter(
            McpTenantSecret.id == reveal.secret_id,
            McpTenantSecret.tenant_id == self.tenant_id
        ).first()
        if secret is None or not secret.is_active:
            # Token stays consumed; a secret rotated out since issue is never shown
            self.db.commit()
            self._audit("reveal", False, secret_id=reveal.secret_id, error_message="Secret no longer active")
            raise SecretError("INVALID_OR_EXPIRED_TOKEN")

        self.db.commit()
        self._audit("reveal", True, provider=secret.provider, secret_id=secret.id)
        log_security_event(
            "secret_revealed",
            {
                "tenant_id": self.tenant_id,
                "user_id": self.user_id,
                "secret_id": secret.id,
                "request_id": self.meta.request_id,
            },
            logger
        )

        return {"secret": secret.secret}

    def deactivate_secret(self, secret_id: str) -> McpTenantSecret:
        secret = self.db.query(McpTenantSecret).filter(
            McpTenantSecret.id == secret_id,
            McpTenantSecret.tenant_id == self.tenant_id
        ).first()
        if not secret:
            raise self._fail("deactivate", "NOT_FOUND", secret_id=secret_id, message="Secret not found")

        secret.is_active = False
        self.db.commit()

        self._audit("deactivate", True, provider=secret.provider, secret_id=secret.id)
        log_event(
            logger,
            "mcp.secret.admin.deactivated",
            tenant_id=self.tenant_id,
            user_id=self.user_id,
            request_id=self.meta.request_id,
            secret_id=secret.id,
        )
        return secret

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_ping(
        self,
        provider: str,
        workflow_key: Optional[str],
        http_client: httpx.Client,
    ) -> Dict[str, Any]:
        """POST a signed ping to the provider's configured base URL."""
        if not workflow_key:
            raise self._fail("ping", "WORKFLOW_KEY_REQUIRED", provider=provider)

        secret = get_active_secret(self.db, self.tenant_id, provider)
        if secret is None:
            raise self._fail("ping", "NO_ACTIVE_SECRET", provider=provider)

        integration = self.db.query(TenantIntegration).filter(
            TenantIntegration.tenant_id == self.tenant_id,
            TenantIntegration.adapter_id == f"{provider}-mcp"
        ).first()
        base_url = None
        if integration and integration.credentials:
            base_url = integration.credentials.get(f"{provider.upper()}_MCP_BASE_URL")
        if not base_url:
            raise self._fail("ping", "WORKFLOW_NOT_CONFIGURED", provider=provider)

        body = json.dumps({
            "ping": True,
            "ts": datetime.utcnow().isoformat() + "Z",
            "request_id": self.meta.request_id,
        })
        headers = {
            "Content-Type": "application/json",
            "X-MCP-Signature": sign_payload(secret.secret, body),
            "X-MCP-Tenant": self.tenant_id,
            "X-Request-Id": self.meta.request_id,
        }

        started = time.monotonic()
        try:
            response = http_client.post(base_url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Ping to {provider} failed: {e}", extra={"tenant_id": self.tenant_id})
            raise self._fail("ping", "PING_FAILED", provider=provider, secret_id=secret.id,
                             message=f"Ping failed: {type(e).__name__}")
        latency_ms = int((time.monotonic() - started) * 1000)

        self._audit("ping", True, provider=provider, secret_id=secret.id)
        log_event(
            logger,
            "mcp.secret.test.ping",
            tenant_id=self.tenant_id,
            request_id=self.meta.request_id,
            provider=provider,
            workflow_key=workflow_key,
            http_status=response.status_code,
            latency_ms=latency_ms,
        )
        return {"http_status": response.status_code, "latency_ms": latency_ms}

    def verify_callback(self, payload: str, signature: str, provider: str = DEFAULT_PROVIDER) -> Dict[str, Any]:
        secret = get_active_secret(self.db, self.tenant_id, provider)
        if secret is None:
            raise self._fail("verify", "NO_ACTIVE_SECRET", provider=provider)

        valid = verify_signature(secret.secret, payload, signature)

        self._audit("verify", True, provider=provider, secret_id=secret.id)
        log_event(
            logger,
            "mcp.secret.test.verify",
            tenant_id=self.tenant_id,
            request_id=self.meta.request_id,
            provider=provider,
            valid=valid,
        )
        return {"valid": valid}

    def secret_health(self, provider: str = DEFAULT_PROVIDER) -> Dict[str, Any]:
        secret = get_active_secret(self.db, self.tenant_id, provider)

        warnings = []
        expires_in_days = None
        if secret is None:
            warnings.append("No active secret configured")
        elif secret.expires_at:
            expires_in_days = (secret.expires_at - datetime.utcnow()).days
            if expires_in_days < settings.SECRET_EXPIRY_WARNING_DAYS:
                warnings.append(f"Secret expires in {expires_in_days} days")

        return {
            "active": secret is not None,
            "expires_in_days": expires_in_days,
            "warnings": warnings,
        }


def validate_webhook_signature(
    db: Session,
    tenant_id: str,
    provider: str,
    body: bytes,
    signature: Optional[str],
) -> McpTenantSecret:
    """
    Check an inbound callback signature against the tenant's active secret.

    Returns the secret on success; raises SecretError otherwise.
    """
    if not signature:
        log_security_event(
            "invalid_signature",
            {"tenant_id": tenant_id, "provider": provider, "reason": "missing"},
            logger
        )
        raise SecretError("MISSING_SIGNATURE", "Missing X-MCP-Signature header")

    secret = get_active_secret(db, tenant_id, provider)
    if secret is None:
        raise SecretError("SECRET_NOT_CONFIGURED", "No signing secret configured")

    if secret.is_expired():
        raise SecretError("SECRET_EXPIRED", "Signing secret has expired")

    if not verify_signature(secret.secret, body, signature):
        log_security_event(
            "invalid_signature",
            {
                "tenant_id": tenant_id,
                "provider": provider,
                "signature_prefix": signature[:8],
            },
            logger
        )
        raise SecretError("INVALID_SIGNATURE", "Invalid signature")

    return secret
