"""
Project and Task Schemas

Request/response models for project and task operations.
"""
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

PROJECT_STATUS_PATTERN = "^(active|archived|completed)$"
TASK_STATUS_PATTERN = "^(todo|in_progress|done)$"
TASK_PRIORITY_PATTERN = "^(low|medium|high)$"


class ProjectBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    company_id: Optional[str] = None


class ProjectCreate(ProjectBase):
    pass


class ProjectUpdate(BaseModel):
    """Schema for updating a project. All fields optional."""
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    company_id: Optional[str] = None
    status: Optional[str] = Field(None, pattern=PROJECT_STATUS_PATTERN)


class ProjectResponse(ProjectBase):
    id: str
    tenant_id: str
    owner_id: Optional[str]
    status: str
    is_deleted: bool
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectListResponse(BaseModel):
    """Paginated list of projects."""
    projects: list[ProjectResponse]
    total: int
    page: int
    page_size: int


class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = ""
    priority: str = Field("medium", pattern=TASK_PRIORITY_PATTERN)
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None


class TaskCreate(TaskBase):
    project_id: str


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[str] = Field(None, pattern=TASK_STATUS_PATTERN)
    priority: Optional[str] = Field(None, pattern=TASK_PRIORITY_PATTERN)
    assignee_id: Optional[str] = None
    due_date: Optional[datetime] = None


class TaskResponse(TaskBase):
    id: str
    tenant_id: str
    project_id: str
    status: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    total: int
    page: int
    page_size: int
