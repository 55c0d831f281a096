"""
Company Model

Companies (customers, suppliers, partners) registered by a tenant.
The same legal entity can appear in several tenants, so org_number is
only unique within a tenant.
"""
from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid

# Org numbers used for companies created before registry lookup succeeded
PLACEHOLDER_ORG_PREFIX = "PLACEHOLDER-"


class Company(Base):
    __tablename__ = "companies"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    name = Column(String(255), nullable=False)
    org_number = Column(String(32), nullable=True)
    industry_description = Column(Text, nullable=True)
    website = Column(String(512), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="companies")
    projects = relationship("Project", back_populates="company")

    __table_args__ = (
        Index('idx_company_tenant_name', 'tenant_id', 'name'),
        Index('idx_company_tenant_org', 'tenant_id', 'org_number', unique=True),
    )

    def __repr__(self):
        return f"<Company {self.name} (tenant={self.tenant_id})>"

    @property
    def has_real_org_number(self) -> bool:
        return bool(self.org_number) and not self.org_number.startswith(PLACEHOLDER_ORG_PREFIX)
