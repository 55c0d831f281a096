"""
Experience Endpoints

Stored Experience JSON documents, rendering and flow submission.
Documents are validated on write; invalid documents are rejected with
a list of {path, message} errors.
"""
from fastapi import APIRouter, Body, Depends, status, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from portal.database import get_db
from portal.models.app_catalog import Experience
from portal.schemas.experience import (
    ExperienceCreate,
    ExperienceResponse,
    ValidateResponse,
    FlowSubmitRequest,
)
from portal.api.deps import require_tenant_member
from portal.core.permissions import Principal, require_writer
from portal.core.exceptions import ExperienceNotFoundError, InvalidExperienceError
from portal.services.experience_renderer import (
    validate_experience,
    render_experience,
    submit_flow_step,
)
from portal.services.tools import ToolContext
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/experiences", tags=["experiences"])


def _get_experience(db: Session, tenant_id: str, experience_id: str) -> Experience:
    experience = db.query(Experience).filter(
        Experience.id == experience_id,
        Experience.tenant_id == tenant_id
    ).first()
    if not experience:
        raise ExperienceNotFoundError(experience_id)
    return experience


@router.get("", response_model=List[ExperienceResponse])
def list_experiences(
    app_key: Optional[str] = Query(None),
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    query = db.query(Experience).filter(Experience.tenant_id == principal.tenant.id)
    if app_key:
        query = query.filter(Experience.app_key == app_key)
    return query.order_by(Experience.updated_at.desc()).all()


@router.post("", response_model=ExperienceResponse, status_code=status.HTTP_201_CREATED)
def create_experience(
    data: ExperienceCreate,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    require_writer(principal)
    document = validate_experience(data.document)

    experience = Experience(
        tenant_id=principal.tenant.id,
        app_key=data.app_key,
        name=data.name,
        document=document.model_dump(mode="json", by_alias=True, exclude_none=True),
        created_by=principal.id,
    )
    db.add(experience)
    db.commit()
    db.refresh(experience)

    logger.info(f"Experience created: {experience.id} by {principal.id}")
    return experience


@router.post("/validate", response_model=ValidateResponse)
def validate_document(
    document: Dict[str, Any] = Body(...),
    principal: Principal = Depends(require_tenant_member)
):
    """Dry-run validation; always 200 with {valid, errors}."""
    try:
        validate_experience(document)
    except InvalidExperienceError as e:
        return ValidateResponse(valid=False, errors=e.errors)
    return ValidateResponse(valid=True)


@router.post("/render")
def render_document(
    document: Dict[str, Any] = Body(...),
    principal: Principal = Depends(require_tenant_member)
):
    return render_experience(validate_experience(document))


@router.get("/{experience_id}", response_model=ExperienceResponse)
def get_experience(
    experience_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    return _get_experience(db, principal.tenant.id, experience_id)


@router.get("/{experience_id}/render")
def render_stored_experience(
    experience_id: str,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    experience = _get_experience(db, principal.tenant.id, experience_id)
    return render_experience(validate_experience(experience.document))


@router.post("/{experience_id}/flows/{flow_id}/submit")
def submit_flow(
    experience_id: str,
    flow_id: str,
    submission: FlowSubmitRequest,
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    """Submit one flow step; returns {ok, result|error, next_step}."""
    require_writer(principal)
    experience = _get_experience(db, principal.tenant.id, experience_id)
    document = validate_experience(experience.document)

    ctx = ToolContext(db=db, tenant_id=principal.tenant.id, user_id=principal.id)
    return submit_flow_step(document, flow_id, submission.step_index, submission.form_data, ctx)
