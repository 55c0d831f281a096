"""
MCP Signing Secret Models

Each tenant has at most one active signing secret per provider. Retired
secrets stay inactive with an expiry so in-flight callbacks signed with
them can still be traced.

The plaintext secret is only ever returned through a reveal token, which
is stored hashed and can be consumed once.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, Text
from datetime import datetime
from portal.database import Base
import uuid


class McpTenantSecret(Base):
    __tablename__ = "mcp_tenant_secrets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    provider = Column(String(50), nullable=False, default="n8n")
    secret = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    rotated_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('idx_secret_tenant_provider_active', 'tenant_id', 'provider', 'is_active'),
    )

    def __repr__(self):
        return f"<McpTenantSecret {self.provider} active={self.is_active} (tenant={self.tenant_id})>"

    def is_expired(self, now: datetime = None) -> bool:
        now = now or datetime.utcnow()
        return self.expires_at is not None and self.expires_at < now


class SecretRevealToken(Base):
    __tablename__ = "secret_reveal_tokens"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    secret_id = Column(
        String(36),
        ForeignKey("mcp_tenant_secrets.id", ondelete="CASCADE"),
        nullable=False
    )
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    purpose = Column(String(20), nullable=False)  # create, rotate
    ip_address = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    consumed_at = Column(DateTime, nullable=True)


class SecretAuditLog(Base):
    __tablename__ = "secret_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(20), nullable=False)
    secret_id = Column(String(36), nullable=True)
    provider = Column(String(50), nullable=True)
    request_id = Column(String(64), nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    success = Column(Boolean, nullable=False)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
