"""
Company Schemas
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class CompanyBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    org_number: Optional[str] = Field(None, max_length=32)
    industry_description: Optional[str] = None
    website: Optional[str] = Field(None, max_length=512)


class CompanyCreate(CompanyBase):
    pass


class CompanyUpdate(BaseModel):
    """All fields optional."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    org_number: Optional[str] = Field(None, max_length=32)
    industry_description: Optional[str] = None
    website: Optional[str] = Field(None, max_length=512)


class CompanyResponse(CompanyBase):
    id: str
    tenant_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CompanyListResponse(BaseModel):
    companies: list[CompanyResponse]
    total: int
    page: int
    page_size: int
