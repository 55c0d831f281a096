"""
Company Endpoints

CRUD for companies registered by the current tenant.

RBAC:
- List/view: tenant members
- Create/update: any tenant role except viewer
- Delete: tenant admins
"""
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import Optional

from portal.database import get_db
from portal.models.company import Company, PLACEHOLDER_ORG_PREFIX
from portal.schemas.company import (
    CompanyResponse,
    CompanyCreate,
    CompanyUpdate,
    CompanyListResponse
)
from portal.api.deps import require_tenant_member
from portal.core.permissions import Principal, require_writer, require_delete
from portal.core.exceptions import CompanyNotFoundError, DuplicateRecordError
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/companies", tags=["companies"])


def _get_company(db: Session, tenant_id: str, company_id: str) -> Company:
    company = db.query(Company).filter(
        Company.id == company_id,
        Company.tenant_id == tenant_id
    ).first()
    if not company:
        raise CompanyNotFoundError(company_id)
    return company


def _ensure_unique_org_number(db: Session, tenant_id: str, org_number: Optional[str], exclude_id: str = None):
    if not org_number:
        return
    query = db.query(Company.id).filter(
        Company.tenant_id == tenant_id,
        Company.org_number == org_number
    )
    if exclude_id:
        query = query.filter(Company.id != exclude_id)
    if query.first():
        raise DuplicateRecordError(f"Company with org number {org_number} already exists")


@router.get("", response_model=CompanyListResponse)
def list_companies(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    q: Optional[str] = Query(None, description="Name or org number contains"),
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    query = db.query(Company).filter(Company.tenant_id == principal.tenant.id)

    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(Company.name.ilike(pattern), Company.org_number.ilike(pattern)))

    total = query.count()
    companies = query.order_by(Company.name).offset((page - 1) * page_size).limit(page_size).all()

    return CompanyListResponse(companies=companies, total=total, page=page, page_size=page_size)


@router.get("/by-org-number/{org_number}", response_model=CompanyResponse)
def get_company_by_org_number(
    org_number: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Placeholder org numbers never match."""
    if org_number.startswith(PLACEHOLDER_ORG_PREFIX):
        raise CompanyNotFoundError(org_number)

    company = db.query(Company).filter(
        Company.tenant_id == principal.tenant.id,
        Company.org_number == org_number
    ).first()
    if not company:
        raise CompanyNotFoundError(org_number)
    return company


@router.get("/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    return _get_company(db, principal.tenant.id, company_id)


@router.post("", response_model=CompanyResponse, status_code=status.HTTP_201_CREATED)
def create_company(
    company_data: CompanyCreate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)
    _ensure_unique_org_number(db, principal.tenant.id, company_data.org_number)

    company = Company(tenant_id=principal.tenant.id, **company_data.model_dump())
    db.add(company)
    db.commit()
    db.refresh(company)

    logger.info(f"Company created: {company.id} by {principal.id}")
    return company


@router.patch("/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: str,
    company_data: CompanyUpdate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)
    company = _get_company(db, principal.tenant.id, company_id)

    update_data = company_data.model_dump(exclude_unset=True)
    if "org_number" in update_data:
        _ensure_unique_org_number(db, principal.tenant.id, update_data["org_number"], exclude_id=company.id)

    for field, value in update_data.items():
        setattr(company, field, value)

    db.commit()
    db.refresh(company)

    logger.info(f"Company updated: {company.id} by {principal.id}")
    return company


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_company(
    company_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    company = _get_company(db, principal.tenant.id, company_id)
    require_delete(principal, None)

    db.delete(company)
    db.commit()

    logger.info(f"Company deleted: {company_id} by {principal.id}")
    return None
