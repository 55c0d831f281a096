"""
Integration Recommendation Schemas
"""
from pydantic import BaseModel
from typing import Any, Dict, List, Optional
from datetime import datetime


class RecommendationItem(BaseModel):
    id: str
    system_id: str
    system_name: str
    system_slug: str
    vendor: Optional[str]
    provider: str
    workflow_key: Optional[str]
    score: int
    breakdown: Dict[str, int]
    explain: List[Dict[str, str]]
    suggestions: List[Dict[str, Any]]
    updated_at: datetime


class RecommendationGroup(BaseModel):
    app_key: str
    items: List[RecommendationItem]


class MatrixRow(BaseModel):
    system_id: str
    system_name: str
    scores_by_app: Dict[str, int]


class RefreshRequest(BaseModel):
    app_keys: Optional[List[str]] = None


class RefreshResponse(BaseModel):
    refreshed: int
