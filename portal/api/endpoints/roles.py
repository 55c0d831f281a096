"""
Role Endpoints

Read and manage scoped role grants.

- Overview: platform admins see every user; tenant admins see users
  holding a role in their tenant
- Grant/revoke/update: tenant admins inside their own tenant's scopes,
  platform admins anywhere
"""
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from portal.database import get_db
from portal.models.user import RoleScope
from portal.schemas.role import (
    RoleGrantRequest,
    RoleRevokeRequest,
    RoleUpdateRequest,
    UserRoleResponse,
    RevokeResponse,
    RolesByScopeResponse,
    RoleOverviewResponse,
)
from portal.api.deps import get_principal, require_tenant_admin, get_role_service
from portal.core.permissions import Principal, require_scope_admin
from portal.services.role_service import RoleService
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("/overview", response_model=RoleOverviewResponse)
def roles_overview(
    scope: Optional[RoleScope] = Query(None, description="Only users with a role in this scope"),
    principal: Principal = Depends(require_tenant_admin),
    roles: RoleService = Depends(get_role_service)
):
    tenant_id = None if principal.is_platform_admin else principal.tenant.id
    return roles.get_roles_overview(tenant_id=tenant_id, scope_filter=scope)


@router.get("/users/{user_id}", response_model=List[UserRoleResponse])
def get_user_roles(
    user_id: str,
    scope_type: Optional[RoleScope] = None,
    principal: Principal = Depends(get_principal),
    roles: RoleService = Depends(get_role_service)
):
    """Own roles, or anyone's for platform admins. Newest first."""
    return roles.get_user_roles(principal.id, user_id, scope_type=scope_type)


@router.get("/users/{user_id}/by-scope", response_model=RolesByScopeResponse)
def get_user_roles_by_scope(
    user_id: str,
    principal: Principal = Depends(get_principal),
    roles: RoleService = Depends(get_role_service)
):
    return RolesByScopeResponse(
        user_id=user_id,
        roles=roles.get_user_roles_by_scope(principal.id, user_id),
    )


@router.post("", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
def grant_role(
    grant: RoleGrantRequest,
    principal: Principal = Depends(require_tenant_admin),
    roles: RoleService = Depends(get_role_service),
    db: Session = Depends(get_db)
):
    require_scope_admin(db, principal, grant.scope_type, grant.scope_id)
    return roles.grant_role(
        grant.user_id,
        grant.role,
        grant.scope_type,
        grant.scope_id,
        granted_by=principal.id,
    )


@router.delete("", response_model=RevokeResponse)
def revoke_role(
    revoke: RoleRevokeRequest,
    principal: Principal = Depends(require_tenant_admin),
    roles: RoleService = Depends(get_role_service),
    db: Session = Depends(get_db)
):
    require_scope_admin(db, principal, revoke.scope_type, revoke.scope_id)
    revoked = roles.revoke_role(revoke.user_id, revoke.role, revoke.scope_type, revoke.scope_id)
    return RevokeResponse(revoked=revoked)


@router.put("", response_model=UserRoleResponse)
def update_role(
    update: RoleUpdateRequest,
    principal: Principal = Depends(require_tenant_admin),
    roles: RoleService = Depends(get_role_service),
    db: Session = Depends(get_db)
):
    """Replace `role` with `new_role` in the same scope."""
    require_scope_admin(db, principal, update.scope_type, update.scope_id)
    return roles.update_role(
        update.user_id,
        update.role,
        update.new_role,
        update.scope_type,
        update.scope_id,
        granted_by=principal.id,
    )
