"""
Tool Registry

Named, tenant-scoped operations the assistant and experience flows can
invoke. Each tool has a function-calling style definition (name,
description, JSON-schema parameters) and a handler taking
(ctx, params).
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import json

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.models.company import Company
from portal.models.project import Project, Task, TASK_PRIORITIES
from portal.models.integration import ExternalSystem
from portal.models.app_catalog import ContentItem
from portal.core.exceptions import CompanyNotFoundError, ProjectNotFoundError
from portal.utils.logging import get_logger

logger = get_logger(__name__)

MAX_LIMIT = 100
SNIPPET_LENGTH = 200


@dataclass
class ToolContext:
    db: Session
    tenant_id: str
    user_id: Optional[str] = None


@dataclass
class Tool:
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable[[ToolContext, Dict[str, Any]], Any]

    @property
    def definition(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


TOOLS: Dict[str, Tool] = {}


def tool(name: str, description: str, properties: Dict[str, Any], required: Optional[List[str]] = None):
    """Register a handler under `name`."""
    def decorator(func):
        TOOLS[name] = Tool(
            name=name,
            description=description,
            parameters={
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
            handler=func,
        )
        return func
    return decorator


def get_tool_definitions() -> List[Dict[str, Any]]:
    return [registered.definition for registered in TOOLS.values()]


def _limit(params: Dict[str, Any], default: int) -> int:
    value = params.get("limit")
    if value is None:
        return default
    return max(1, min(int(value), MAX_LIMIT))


def _like(value: str) -> str:
    return f"%{value}%"


# ============================================================================
# SERIALIZERS
# ============================================================================

def company_to_dict(company: Company) -> Dict[str, Any]:
    return {
        "id": company.id,
        "name": company.name,
        "org_number": company.org_number if company.has_real_org_number else None,
        "industry_description": company.industry_description,
        "website": company.website,
    }


def project_to_dict(project: Project) -> Dict[str, Any]:
    return {
        "id": project.id,
        "title": project.title,
        "description": project.description,
        "status": project.status,
        "company_id": project.company_id,
        "owner_id": project.owner_id,
    }


def task_to_dict(task: Task) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task.status,
        "priority": task.priority,
        "project_id": task.project_id,
    }


# ============================================================================
# TOOLS
# ============================================================================

_LIST_PROPERTIES = {
    "q": {"type": "string", "description": "Case-insensitive text filter"},
    "limit": {"type": "integer", "default": 25},
}


@tool("list_companies", "List companies in the current tenant", _LIST_PROPERTIES)
def list_companies(ctx: ToolContext, params: Dict[str, Any]):
    query = ctx.db.query(Company).filter(Company.tenant_id == ctx.tenant_id)
    if params.get("q"):
        query = query.filter(Company.name.ilike(_like(params["q"])))
    companies = query.order_by(Company.name).limit(_limit(params, 25)).all()
    return [company_to_dict(company) for company in companies]


@tool("list_projects", "List projects in the current tenant", _LIST_PROPERTIES)
def list_projects(ctx: ToolContext, params: Dict[str, Any]):
    query = ctx.db.query(Project).filter(
        Project.tenant_id == ctx.tenant_id,
        Project.is_deleted == False  # noqa: E712
    )
    if params.get("q"):
        query = query.filter(Project.title.ilike(_like(params["q"])))
    projects = query.order_by(Project.created_at.desc()).limit(_limit(params, 25)).all()
    return [project_to_dict(project) for project in projects]


@tool(
    "list_tasks",
    "List tasks in the current tenant",
    dict(_LIST_PROPERTIES, project_id={"type": "string"}),
)
def list_tasks(ctx: ToolContext, params: Dict[str, Any]):
    query = ctx.db.query(Task).filter(Task.tenant_id == ctx.tenant_id)
    if params.get("q"):
        query = query.filter(Task.title.ilike(_like(params["q"])))
    if params.get("project_id"):
        query = query.filter(Task.project_id == params["project_id"])
    tasks = query.order_by(Task.created_at.desc()).limit(_limit(params, 25)).all()
    return [task_to_dict(task) for task in tasks]


@tool("list_applications", "List external systems available for integration", _LIST_PROPERTIES)
def list_applications(ctx: ToolContext, params: Dict[str, Any]):
    query = ctx.db.query(ExternalSystem)
    if params.get("q"):
        query = query.filter(ExternalSystem.name.ilike(_like(params["q"])))
    systems = query.order_by(ExternalSystem.name).limit(_limit(params, 25)).all()
    return [
        {"id": system.id, "name": system.name, "slug": system.slug, "vendor": system.vendor_name}
        for system in systems
    ]


@tool("get_company", "Get one company by id", {"id": {"type": "string"}}, required=["id"])
def get_company(ctx: ToolContext, params: Dict[str, Any]):
    company = ctx.db.query(Company).filter(
        Company.id == params["id"],
        Company.tenant_id == ctx.tenant_id
    ).first()
    if not company:
        raise CompanyNotFoundError(params["id"])
    return company_to_dict(company)


@tool("get_project", "Get one project by id", {"id": {"type": "string"}}, required=["id"])
def get_project(ctx: ToolContext, params: Dict[str, Any]):
    project = ctx.db.query(Project).filter(
        Project.id == params["id"],
        Project.tenant_id == ctx.tenant_id,
        Project.is_deleted == False  # noqa: E712
    ).first()
    if not project:
        raise ProjectNotFoundError(params["id"])
    return project_to_dict(project)


@tool(
    "create_project",
    "Create a project in the current tenant",
    {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "company_id": {"type": "string"},
    },
    required=["title"],
)
def create_project(ctx: ToolContext, params: Dict[str, Any]):
    company_id = params.get("company_id")
    if company_id:
        exists = ctx.db.query(Company.id).filter(
            Company.id == company_id,
            Company.tenant_id == ctx.tenant_id
        ).first()
        if not exists:
            raise CompanyNotFoundError(company_id)

    project = Project(
        tenant_id=ctx.tenant_id,
        company_id=company_id,
        owner_id=ctx.user_id,
        title=params["title"],
        description=params.get("description"),
        status="active",
    )
    ctx.db.add(project)
    ctx.db.commit()
    ctx.db.refresh(project)

    logger.info(f"Project created via tool: {project.id} by {ctx.user_id}")
    return project_to_dict(project)


@tool(
    "create_task",
    "Create a task in a project of the current tenant",
    {
        "title": {"type": "string"},
        "project_id": {"type": "string"},
        "description": {"type": "string"},
        "priority": {"type": "string", "enum": list(TASK_PRIORITIES), "default": "medium"},
    },
    required=["title", "project_id"],
)
def create_task(ctx: ToolContext, params: Dict[str, Any]):
    priority = params.get("priority") or "medium"
    if priority not in TASK_PRIORITIES:
        raise ValueError(f"Invalid priority: {priority}")

    project = ctx.db.query(Project).filter(
        Project.id == params["project_id"],
        Project.tenant_id == ctx.tenant_id,
        Project.is_deleted == False  # noqa: E712
    ).first()
    if not project:
        raise ProjectNotFoundError(params["project_id"])

    task = Task(
        tenant_id=ctx.tenant_id,
        project_id=project.id,
        title=params["title"],
        description=params.get("description") or "",
        status="todo",
        priority=priority,
    )
    ctx.db.add(task)
    ctx.db.commit()
    ctx.db.refresh(task)

    logger.info(f"Task created via tool: {task.id} in project {project.id}")
    return task_to_dict(task)


@tool(
    "search_companies",
    "Search companies by name or organization number",
    {"query": {"type": "string"}, "limit": {"type": "integer", "default": 10}},
    required=["query"],
)
def search_companies(ctx: ToolContext, params: Dict[str, Any]):
    pattern = _like(params["query"])
    companies = ctx.db.query(Company).filter(
        Company.tenant_id == ctx.tenant_id,
        or_(Company.name.ilike(pattern), Company.org_number.ilike(pattern))
    ).order_by(Company.name).limit(_limit(params, 10)).all()
    return [company_to_dict(company) for company in companies]


@tool(
    "search_content_library",
    "Search the tenant content library",
    {
        "query": {"type": "string"},
        "category": {"type": "string"},
        "limit": {"type": "integer", "default": 5},
    },
    required=["query"],
)
def search_content_library(ctx: ToolContext, params: Dict[str, Any]):
    pattern = _like(params["query"])
    query = ctx.db.query(ContentItem).filter(
        ContentItem.tenant_id == ctx.tenant_id,
        or_(
            ContentItem.title.ilike(pattern),
            ContentItem.body.ilike(pattern),
            ContentItem.keywords.ilike(pattern),
        )
    )
    if params.get("category"):
        query = query.filter(ContentItem.category == params["category"])

    items = query.order_by(ContentItem.title).limit(_limit(params, 5)).all()
    return [
        {
            "id": item.id,
            "title": item.title,
            "category": item.category,
            "snippet": item.body[:SNIPPET_LENGTH],
        }
        for item in items
    ]


# ============================================================================
# EXECUTION
# ============================================================================

def _error(code: str, message: str) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message}}


def execute_tool(name: str, params: Dict[str, Any], ctx: ToolContext) -> Dict[str, Any]:
    """
    Run one tool. Returns {ok: True, data} or {ok: False, error: {code, message}}.
    """
    registered = TOOLS.get(name)
    if registered is None:
        return _error("UNKNOWN_TOOL", f"Unknown tool: {name}")

    params = params or {}
    missing = [
        key for key in registered.parameters["required"]
        if params.get(key) in (None, "")
    ]
    if missing:
        return _error("INVALID_PARAMS", f"Missing required parameters: {', '.join(missing)}")

    try:
        data = registered.handler(ctx, params)
    except HTTPException as e:
        logger.info(f"Tool {name} failed: {e.detail}", extra={"tenant_id": ctx.tenant_id})
        return _error("TOOL_FAILED", str(e.detail))
    except (ValueError, TypeError) as e:
        logger.info(f"Tool {name} rejected input: {e}", extra={"tenant_id": ctx.tenant_id})
        return _error("TOOL_FAILED", str(e))
    except SQLAlchemyError as e:
        ctx.db.rollback()
        logger.error(f"Tool {name} database error: {e}", extra={"tenant_id": ctx.tenant_id})
        return _error("TOOL_FAILED", "Database error")

    return {"ok": True, "data": data}


def handle_tool_calls(calls: List[Dict[str, Any]], ctx: ToolContext) -> List[Dict[str, Any]]:
    """
    Run a batch of {id, function: {name, arguments}} calls.

    A failing call yields data={error: message}; the rest of the batch
    still runs.
    """
    results = []
    for call in calls:
        function = call.get("function") or {}
        try:
            params = json.loads(function.get("arguments") or "{}")
        except json.JSONDecodeError as e:
            results.append({"call_id": call.get("id"), "data": {"error": f"Invalid arguments: {e.msg}"}})
            continue
        if not isinstance(params, dict):
            results.append({"call_id": call.get("id"), "data": {"error": "Arguments must be a JSON object"}})
            continue

        outcome = execute_tool(function.get("name", ""), params, ctx)
        if outcome["ok"]:
            data = outcome["data"]
        else:
            data = {"error": outcome["error"]["message"]}
        results.append({"call_id": call.get("id"), "data": data})

    return results
