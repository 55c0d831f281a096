"""
User Schemas
"""
from pydantic import BaseModel, EmailStr
from typing import List, Optional
from datetime import datetime


class UserResponse(BaseModel):
    """User profile (excludes the password hash)."""
    id: str
    email: EmailStr
    full_name: Optional[str]
    is_active: bool
    created_at: datetime
    last_login_at: Optional[datetime]

    class Config:
        from_attributes = True


class CurrentUserResponse(UserResponse):
    tenant_id: str
    tenant_roles: List[str]
    is_platform_admin: bool
