"""
Tenant Model

The tenant is the primary isolation boundary. Each tenant is a customer
organization sharing the database; every tenant-owned row carries
tenant_id and every query filters on it.

A tenant is reachable by slug, by subdomain of the platform domain,
by a custom domain, or by a legacy host string (localhost/dev setups).
"""
from sqlalchemy import Column, String, Boolean, DateTime, Integer, Index
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    name = Column(String(255), nullable=False)
    slug = Column(String(100), unique=True, nullable=False, index=True)

    # Routing: acme.<platform domain>, crm.acme.no, or localhost:5173
    subdomain = Column(String(63), unique=True, nullable=True, index=True)
    domain = Column(String(255), unique=True, nullable=True, index=True)
    host = Column(String(255), nullable=True)

    # Data residency region; drives compliance scoring ("EU", "US", ...)
    region = Column(String(10), default="EU", nullable=False)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # NULL = use the global defaults
    rate_limit_per_minute = Column(Integer, nullable=True)
    rate_limit_burst = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    companies = relationship("Company", back_populates="tenant", cascade="all, delete-orphan")
    projects = relationship("Project", back_populates="tenant", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_tenant_active_subdomain', 'is_active', 'subdomain'),
    )

    def __repr__(self):
        return f"<Tenant {self.slug}>"
