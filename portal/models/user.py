"""
User and Role Models

Users are global profiles; what they may do is decided by role grants.
A grant applies at one scope level:

    platform  - whole installation (scope_id is NULL)
    tenant    - one tenant
    company   - one company
    project   - one project
    app       - one app definition

The same user can hold roles in several tenants, companies and apps.
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Index, Enum as SQLEnum
from sqlalchemy.orm import relationship
from datetime import datetime
from portal.database import Base
import uuid
import enum


class RoleScope(str, enum.Enum):
    PLATFORM = "platform"
    TENANT = "tenant"
    COMPANY = "company"
    PROJECT = "project"
    APP = "app"


class AppRole(str, enum.Enum):
    PLATFORM_OWNER = "platform_owner"
    PLATFORM_SUPPORT = "platform_support"
    TENANT_OWNER = "tenant_owner"
    TENANT_ADMIN = "tenant_admin"
    SECURITY_ADMIN = "security_admin"
    COMPLIANCE_OFFICER = "compliance_officer"
    PROJECT_OWNER = "project_owner"
    ANALYST = "analyst"
    CONTRIBUTOR = "contributor"
    VIEWER = "viewer"
    APP_ADMIN = "app_admin"
    APP_USER = "app_user"


PLATFORM_ADMIN_ROLES = (AppRole.PLATFORM_OWNER, AppRole.PLATFORM_SUPPORT)
TENANT_ADMIN_ROLES = (AppRole.TENANT_OWNER, AppRole.TENANT_ADMIN)

# Display labels for the role overview
ROLE_LABELS = {
    AppRole.PLATFORM_OWNER: "Platform owner",
    AppRole.PLATFORM_SUPPORT: "Platform support",
    AppRole.TENANT_OWNER: "Tenant owner",
    AppRole.TENANT_ADMIN: "Tenant admin",
    AppRole.SECURITY_ADMIN: "Security admin",
    AppRole.COMPLIANCE_OFFICER: "Compliance officer",
    AppRole.PROJECT_OWNER: "Project owner",
    AppRole.ANALYST: "Analyst",
    AppRole.CONTRIBUTOR: "Contributor",
    AppRole.VIEWER: "Viewer",
    AppRole.APP_ADMIN: "App admin",
    AppRole.APP_USER: "App user",
}

SCOPE_LABELS = {
    RoleScope.PLATFORM: "Platform",
    RoleScope.TENANT: "Tenant",
    RoleScope.COMPANY: "Company",
    RoleScope.PROJECT: "Project",
    RoleScope.APP: "App",
}


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        foreign_keys="UserRole.user_id",
    )

    def __repr__(self):
        return f"<User {self.email}>"


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    role = Column(
        SQLEnum(AppRole, native_enum=False, length=32, values_callable=_enum_values),
        nullable=False,
        index=True
    )
    scope_type = Column(
        SQLEnum(RoleScope, native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
        index=True
    )
    # Tenant/company/project/app id; NULL for platform scope
    scope_id = Column(String(36), nullable=True, index=True)

    granted_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="roles", foreign_keys=[user_id])

    __table_args__ = (
        Index('idx_user_role_scope', 'user_id', 'scope_type', 'scope_id'),
        Index('idx_role_scope_lookup', 'scope_type', 'scope_id'),
    )

    def __repr__(self):
        return f"<UserRole {self.role.value}@{self.scope_type.value}:{self.scope_id}>"
