"""
Integration Models

- ExternalSystem: a software product that can be integrated with
  (capability flags feed recommendation scoring)
- IntegrationRun: workflow executions per tenant; the set of workflow
  keys is the tenant's "workflow mapping"
- TenantIntegration: adapter configuration (e.g. "n8n-mcp") with credentials
- IntegrationRecommendation: persisted scoring results
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, Integer, JSON
from datetime import datetime
from portal.database import Base
import uuid


class ExternalSystem(Base):
    __tablename__ = "external_systems"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)
    vendor_name = Column(String(255), nullable=True)

    # API capabilities
    rest_api = Column(Boolean, default=False, nullable=False)
    graphql = Column(Boolean, default=False, nullable=False)
    webhooks = Column(Boolean, default=False, nullable=False)
    oauth2 = Column(Boolean, default=False, nullable=False)
    api_keys = Column(Boolean, default=False, nullable=False)

    # Integration platform connectors
    n8n_node = Column(Boolean, default=False, nullable=False)
    zapier_app = Column(Boolean, default=False, nullable=False)
    pipedream_support = Column(Boolean, default=False, nullable=False)
    mcp_connector = Column(Boolean, default=False, nullable=False)

    # Compliance
    eu_data_residency = Column(Boolean, default=False, nullable=False)
    gdpr_statement_url = Column(String(512), nullable=True)
    sso = Column(Boolean, default=False, nullable=False)

    # Number of known integrations with other systems
    integration_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<ExternalSystem {self.slug}>"


class IntegrationRun(Base):
    __tablename__ = "integration_runs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    workflow_key = Column(String(255), nullable=False)
    provider = Column(String(50), nullable=False, default="n8n")
    status = Column(String(20), nullable=False, default="succeeded")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class TenantIntegration(Base):
    __tablename__ = "tenant_integrations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    adapter_id = Column(String(100), nullable=False)
    credentials = Column(JSON, nullable=True, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_tenant_integration_adapter', 'tenant_id', 'adapter_id', unique=True),
    )


class IntegrationRecommendation(Base):
    __tablename__ = "integration_recommendations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    app_key = Column(String(100), nullable=False)
    system_id = Column(
        String(36),
        ForeignKey("external_systems.id", ondelete="CASCADE"),
        nullable=False
    )
    provider = Column(String(20), nullable=False)
    workflow_key = Column(String(255), nullable=True)
    score = Column(Integer, nullable=False)

    breakdown = Column(JSON, nullable=False, default=dict)
    explain = Column(JSON, nullable=False, default=list)
    suggestions = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index('idx_recommendation_tenant_app_score', 'tenant_id', 'app_key', 'score'),
    )
