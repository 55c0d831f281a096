"""
App Catalog Models

- AppDefinition: global catalogue entry, identified by a stable key
- Application: an app installed for a tenant
- Experience: Experience JSON document a tenant shows for an app
- ContentItem: tenant content library searched by the assistant tools
"""
from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid


class AppDefinition(Base):
    __tablename__ = "app_definitions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    key = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<AppDefinition {self.key}>"


class Application(Base):
    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    app_definition_id = Column(
        String(36),
        ForeignKey("app_definitions.id", ondelete="CASCADE"),
        nullable=False
    )
    is_active = Column(Boolean, default=True, nullable=False)
    installed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    app_definition = relationship("AppDefinition")

    __table_args__ = (
        Index('idx_application_tenant_app', 'tenant_id', 'app_definition_id', unique=True),
    )


class Experience(Base):
    __tablename__ = "experiences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    app_key = Column(String(100), nullable=True, index=True)
    name = Column(String(255), nullable=False)

    # Validated Experience JSON (version/layout/theme/blocks)
    document = Column(JSON, nullable=False)

    created_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Experience {self.name} (tenant={self.tenant_id})>"


class ContentItem(Base):
    __tablename__ = "content_items"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(
        String(36),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=True, index=True)
    # Space separated, lowercase
    keywords = Column(String(512), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
