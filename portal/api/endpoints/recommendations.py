"""
Integration Recommendation Endpoints

Read stored recommendations for the tenant's apps, and recompute them
(tenant admins).
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional

from portal.database import get_db
from portal.schemas.recommendation import (
    RecommendationGroup,
    MatrixRow,
    RefreshRequest,
    RefreshResponse,
)
from portal.api.deps import require_tenant_member, require_tenant_admin
from portal.core.permissions import Principal
from portal.services.recommendation_service import RecommendationService
from portal.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/integration-recommendations", tags=["integration-recommendations"])


@router.get("", response_model=List[RecommendationGroup])
def get_recommendations(
    app_key: Optional[str] = None,
    providers: Optional[List[str]] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    return RecommendationService(db).get_recommendations(
        principal.tenant.id,
        app_key=app_key,
        providers=providers,
        limit=limit,
    )


@router.get("/matrix", response_model=List[MatrixRow])
def get_matrix(
    app_keys: Optional[List[str]] = Query(None),
    principal: Principal = Depends(require_tenant_member),
    db: Session = Depends(get_db)
):
    return RecommendationService(db).get_matrix(principal.tenant.id, app_keys=app_keys)


@router.post("/refresh", response_model=RefreshResponse)
def refresh_recommendations(
    body: Optional[RefreshRequest] = None,
    principal: Principal = Depends(require_tenant_admin),
    db: Session = Depends(get_db)
):
    app_keys = body.app_keys if body else None
    refreshed = RecommendationService(db).refresh(principal.tenant.id, app_keys=app_keys)

    logger.info(
        f"Recommendations refreshed for {refreshed} app(s) by {principal.id}",
        extra={"tenant_id": principal.tenant.id}
    )
    return RefreshResponse(refreshed=refreshed)
