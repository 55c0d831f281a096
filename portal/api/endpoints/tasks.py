"""
Task Endpoints

Tasks belong to a project of the same tenant. Referencing another
tenant's project is treated as an isolation violation, not a 404.
"""
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Optional

from portal.database import get_db
from portal.models.project import Project, Task
from portal.schemas.project import (
    TaskResponse,
    TaskCreate,
    TaskUpdate,
    TaskListResponse,
    TASK_STATUS_PATTERN,
    TASK_PRIORITY_PATTERN,
)
from portal.api.deps import require_tenant_member
from portal.core.permissions import Principal, require_writer, require_delete
from portal.core.exceptions import ProjectNotFoundError, TaskNotFoundError, TenantIsolationError
from portal.utils.logging import get_logger, log_security_event

logger = get_logger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _get_tenant_project(db: Session, principal: Principal, project_id: str) -> Project:
    project = db.query(Project).filter(Project.id == project_id).first()
    if not project or project.is_deleted:
        raise ProjectNotFoundError(project_id)
    if project.tenant_id != principal.tenant.id:
        log_security_event(
            "tenant_isolation_violation",
            {"user_id": principal.id, "tenant_id": principal.tenant.id, "project_id": project_id},
            logger
        )
        raise TenantIsolationError("Project belongs to another tenant")
    return project


def _get_task(db: Session, tenant_id: str, task_id: str) -> Task:
    task = db.query(Task).filter(
        Task.id == task_id,
        Task.tenant_id == tenant_id
    ).first()
    if not task:
        raise TaskNotFoundError(task_id)
    return task


@router.get("", response_model=TaskListResponse)
def list_tasks(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    project_id: Optional[str] = None,
    status: Optional[str] = Query(None, pattern=TASK_STATUS_PATTERN),
    priority: Optional[str] = Query(None, pattern=TASK_PRIORITY_PATTERN),
    assignee_id: Optional[str] = None,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    query = db.query(Task).filter(Task.tenant_id == principal.tenant.id)

    if project_id:
        query = query.filter(Task.project_id == project_id)
    if status:
        query = query.filter(Task.status == status)
    if priority:
        query = query.filter(Task.priority == priority)
    if assignee_id:
        query = query.filter(Task.assignee_id == assignee_id)

    total = query.count()
    tasks = query.order_by(Task.created_at.desc()).offset((page - 1) * page_size).limit(page_size).all()

    return TaskListResponse(tasks=tasks, total=total, page=page, page_size=page_size)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    return _get_task(db, principal.tenant.id, task_id)


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)
    project = _get_tenant_project(db, principal, task_data.project_id)

    task = Task(
        tenant_id=principal.tenant.id,
        project_id=project.id,
        title=task_data.title,
        description=task_data.description or "",
        priority=task_data.priority,
        assignee_id=task_data.assignee_id,
        due_date=task_data.due_date,
        status="todo",
    )
    db.add(task)
    db.commit()
    db.refresh(task)

    logger.info(f"Task created: {task.id} in project {project.id} by {principal.id}")
    return task


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: str,
    task_data: TaskUpdate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)
    task = _get_task(db, principal.tenant.id, task_id)

    for field, value in task_data.model_dump(exclude_unset=True).items():
        setattr(task, field, value)

    db.commit()
    db.refresh(task)

    logger.info(f"Task updated: {task.id} by {principal.id}")
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Admins or the owner of the task's project."""
    task = _get_task(db, principal.tenant.id, task_id)
    require_delete(principal, task.project.owner_id if task.project else None)

    db.delete(task)
    db.commit()

    logger.info(f"Task deleted: {task_id} by {principal.id}")
    return None
