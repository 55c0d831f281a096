"""
Permission Checks

Role-based access for the current request. A Principal bundles the
authenticated user, the request tenant and the roles the user holds in
that tenant.

Rules:
- platform_owner / platform_support may do everything
- tenant_owner / tenant_admin administer their tenant
- any other tenant role except viewer may create and edit records
- records are deleted by admins or by their owner
"""
from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy.orm import Session

from portal.models.user import User, AppRole, RoleScope, TENANT_ADMIN_ROLES
from portal.models.tenant import Tenant
from portal.models.company import Company
from portal.models.project import Project
from portal.models.app_catalog import Application
from portal.core.exceptions import PermissionDenied


@dataclass
class Principal:
    user: User
    tenant: Tenant
    tenant_roles: List[AppRole] = field(default_factory=list)
    is_platform_admin: bool = False

    @property
    def id(self) -> str:
        return self.user.id

    @property
    def is_member(self) -> bool:
        return self.is_platform_admin or bool(self.tenant_roles)

    @property
    def is_tenant_admin(self) -> bool:
        if self.is_platform_admin:
            return True
        return any(role in TENANT_ADMIN_ROLES for role in self.tenant_roles)

    @property
    def can_write(self) -> bool:
        if self.is_platform_admin:
            return True
        return any(role != AppRole.VIEWER for role in self.tenant_roles)

    def can_delete(self, owner_id: Optional[str]) -> bool:
        if self.is_tenant_admin:
            return True
        return self.can_write and owner_id is not None and owner_id == self.user.id


def require_writer(principal: Principal) -> None:
    if not principal.can_write:
        raise PermissionDenied("This action requires a tenant role other than viewer")


def require_delete(principal: Principal, owner_id: Optional[str]) -> None:
    if not principal.can_delete(owner_id):
        raise PermissionDenied("Only admins or the owner can delete this record")


def scope_in_tenant(db: Session, tenant_id: str, scope_type: RoleScope, scope_id: Optional[str]) -> bool:
    """Whether a role scope lives inside the given tenant."""
    if scope_type == RoleScope.TENANT:
        return scope_id == tenant_id
    if scope_type == RoleScope.COMPANY:
        return db.query(Company.id).filter(
            Company.id == scope_id, Company.tenant_id == tenant_id
        ).first() is not None
    if scope_type == RoleScope.PROJECT:
        return db.query(Project.id).filter(
            Project.id == scope_id, Project.tenant_id == tenant_id
        ).first() is not None
    if scope_type == RoleScope.APP:
        return db.query(Application.id).filter(
            Application.app_definition_id == scope_id, Application.tenant_id == tenant_id
        ).first() is not None
    return False


def require_scope_admin(
    db: Session,
    principal: Principal,
    scope_type: RoleScope,
    scope_id: Optional[str],
) -> None:
    """
    Platform scopes need a platform admin; anything else needs a tenant
    admin of the tenant the scope belongs to.
    """
    if principal.is_platform_admin:
        return
    if scope_type == RoleScope.PLATFORM:
        raise PermissionDenied("Platform roles can only be managed by platform admins")
    if not principal.is_tenant_admin:
        raise PermissionDenied("Tenant admin privileges required")
    if not scope_in_tenant(db, principal.tenant.id, scope_type, scope_id):
        raise PermissionDenied("Scope is outside the current tenant")
