"""
Tool Endpoints

Function-calling bridge: list tool definitions, run one tool, or run a
batch of assistant tool calls. Every tool runs inside the request tenant.
"""
from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional

from portal.database import get_db
from portal.schemas.experience import ToolBatchRequest
from portal.api.deps import require_tenant_member
from portal.core.permissions import Principal, require_writer
from portal.services.tools import ToolContext, execute_tool, handle_tool_calls, get_tool_definitions

router = APIRouter(prefix="/tools", tags=["tools"])

# Tools that change data need a writer role
WRITE_TOOLS = ("create_project", "create_task")


@router.get("")
def list_tools(principal: Principal = Depends(require_tenant_member)):
    return {"tools": get_tool_definitions()}


@router.post("/batch")
def run_tool_batch(
    batch: ToolBatchRequest,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    if any(call.function.name in WRITE_TOOLS for call in batch.calls):
        require_writer(principal)

    ctx = ToolContext(db=db, tenant_id=principal.tenant.id, user_id=principal.id)
    return {"results": handle_tool_calls([call.model_dump() for call in batch.calls], ctx)}


@router.post("/{tool_name}")
def run_tool(
    tool_name: str,
    params: Optional[Dict[str, Any]] = Body(None),
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Returns {ok, data} or {ok: false, error: {code, message}} with status 200."""
    if tool_name in WRITE_TOOLS:
        require_writer(principal)

    ctx = ToolContext(db=db, tenant_id=principal.tenant.id, user_id=principal.id)
    return execute_tool(tool_name, params or {}, ctx)
