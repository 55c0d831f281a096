"""
Authentication Schemas

Request/response models for authentication endpoints.
"""
from pydantic import BaseModel, EmailStr, Field


class Token(BaseModel):
    """JWT token response."""
    access_token: str
    token_type: str = "bearer"
    tenant_id: str


class LoginRequest(BaseModel):
    """Login request body. Tokens are bound to the tenant named here."""
    email: EmailStr
    password: str = Field(..., min_length=8)
    tenant_slug: str = Field(..., min_length=1)

    class Config:
        json_schema_extra = {
            "example": {
                "email": "user@example.com",
                "password": "securepassword123",
                "tenant_slug": "acme-corp"
            }
        }
