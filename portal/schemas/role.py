"""
Role Schemas
"""
from pydantic import BaseModel, model_validator
from typing import Dict, List, Optional
from datetime import datetime

from portal.models.user import AppRole, RoleScope


class RoleGrantRequest(BaseModel):
    user_id: str
    role: AppRole
    scope_type: RoleScope
    scope_id: Optional[str] = None

    @model_validator(mode="after")
    def platform_has_no_scope_id(self):
        if self.scope_type == RoleScope.PLATFORM and self.scope_id is not None:
            raise ValueError("Platform roles cannot have a scope_id")
        if self.scope_type != RoleScope.PLATFORM and not self.scope_id:
            raise ValueError(f"scope_id is required for {self.scope_type.value} roles")
        return self


class RoleRevokeRequest(RoleGrantRequest):
    pass


class RoleUpdateRequest(RoleGrantRequest):
    new_role: AppRole


class UserRoleResponse(BaseModel):
    id: str
    user_id: str
    role: AppRole
    scope_type: RoleScope
    scope_id: Optional[str]
    granted_by: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class RevokeResponse(BaseModel):
    revoked: bool


class RolesByScopeResponse(BaseModel):
    user_id: str
    roles: Dict[str, List[UserRoleResponse]]


class OverviewRole(BaseModel):
    id: str
    role: str
    role_label: str
    scope_type: str
    scope_label: str
    scope_id: Optional[str]
    scope_name: str
    badge_variant: str
    created_at: datetime


class OverviewUser(BaseModel):
    user_id: str
    email: str
    full_name: str
    roles_by_scope: Dict[str, List[OverviewRole]]
    role_count: int


class RoleOverviewResponse(BaseModel):
    users: List[OverviewUser]
    count: int
