"""
Project Endpoints

CRUD operations for projects within a tenant.

RBAC:
- List/view: tenant members
- Create/update: any tenant role except viewer
- Delete: tenant admin or project owner (soft delete)
- Restore: tenant admin
"""
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional

from portal.database import get_db
from portal.models.company import Company
from portal.models.project import Project
from portal.schemas.project import (
    ProjectResponse,
    ProjectCreate,
    ProjectUpdate,
    ProjectListResponse,
    PROJECT_STATUS_PATTERN,
)
from portal.api.deps import require_tenant_member, require_tenant_admin
from portal.core.permissions import Principal, require_writer, require_delete
from portal.core.exceptions import ProjectNotFoundError, CompanyNotFoundError
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


def _ensure_company(db: Session, tenant_id: str, company_id: Optional[str]) -> None:
    if company_id is None:
        return
    exists = db.query(Company.id).filter(
        Company.id == company_id,
        Company.tenant_id == tenant_id
    ).first()
    if not exists:
        raise CompanyNotFoundError(company_id)


@router.get("", response_model=ProjectListResponse)
def list_projects(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, pattern=PROJECT_STATUS_PATTERN),
    company_id: Optional[str] = None,
    owner_id: Optional[str] = None,
    q: Optional[str] = None,
    include_deleted: bool = False,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    query = db.query(Project).filter(Project.tenant_id == principal.tenant.id)

    if not include_deleted:
        query = query.filter(Project.is_deleted == False)  # noqa: E712
    if status:
        query = query.filter(Project.status == status)
    if company_id:
        query = query.filter(Project.company_id == company_id)
    if owner_id:
        query = query.filter(Project.owner_id == owner_id)
    if q:
        query = query.filter(Project.title.ilike(f"%{q}%"))

    total = query.count()

    offset = (page - 1) * page_size
    projects = query.order_by(
        Project.created_at.desc()
    ).offset(offset).limit(page_size).all()

    logger.debug(f"Listed {len(projects)} projects for tenant {principal.tenant.id}")

    return ProjectListResponse(projects=projects, total=total, page=page, page_size=page_size)


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.tenant_id == principal.tenant.id,
        Project.is_deleted == False  # noqa: E712
    ).first()

    if not project:
        raise ProjectNotFoundError(project_id)

    return project


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    project_data: ProjectCreate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Create a project; the caller becomes its owner."""
    require_writer(principal)
    _ensure_company(db, principal.tenant.id, project_data.company_id)

    project = Project(
        tenant_id=principal.tenant.id,
        owner_id=principal.id,
        title=project_data.title,
        description=project_data.description,
        company_id=project_data.company_id,
        status="active"
    )

    db.add(project)
    db.commit()
    db.refresh(project)

    logger.info(f"Project created: {project.id} by {principal.id}")

    return project


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    project_data: ProjectUpdate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)

    project = db.query(Project).filter(
        Project.id == project_id,
        Project.tenant_id == principal.tenant.id,
        Project.is_deleted == False  # noqa: E712
    ).first()

    if not project:
        raise ProjectNotFoundError(project_id)

    update_data = project_data.model_dump(exclude_unset=True)
    if "company_id" in update_data:
        _ensure_company(db, principal.tenant.id, update_data["company_id"])

    for field, value in update_data.items():
        setattr(project, field, value)

    db.commit()
    db.refresh(project)

    logger.info(f"Project updated: {project.id} by {principal.id}")

    return project


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Soft delete; admins can restore."""
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.tenant_id == principal.tenant.id,
        Project.is_deleted == False  # noqa: E712
    ).first()

    if not project:
        raise ProjectNotFoundError(project_id)

    require_delete(principal, project.owner_id)

    project.soft_delete()
    db.commit()

    logger.info(f"Project soft deleted: {project_id} by {principal.id}")
    return None


@router.post("/{project_id}/restore", response_model=ProjectResponse)
def restore_project(
    project_id: str,
    principal: Principal = Depends(require_tenant_admin),
    db: Session = Depends(get_db)
):
    project = db.query(Project).filter(
        Project.id == project_id,
        Project.tenant_id == principal.tenant.id,
        Project.is_deleted == True  # noqa: E712
    ).first()

    if not project:
        raise ProjectNotFoundError(project_id)

    project.restore()

    db.commit()
    db.refresh(project)

    logger.info(f"Project restored: {project_id} by {principal.id}")

    return project
