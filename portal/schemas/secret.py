"""
MCP Secret Schemas

Responses use the envelope {ok, data, metadata: {request_id}}; errors
use {ok: false, error: {code, message}, metadata}.
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class ProviderRequest(BaseModel):
    provider: str = Field("n8n", min_length=1, max_length=50)


class RevealRequest(BaseModel):
    token: str = Field(..., min_length=1)


class PingRequest(BaseModel):
    provider: str = Field("n8n", min_length=1, max_length=50)
    workflow_key: Optional[str] = None


class VerifyCallbackRequest(BaseModel):
    payload: str
    signature: str = ""
    provider: str = Field("n8n", min_length=1, max_length=50)


class SecretEnvelope(BaseModel):
    ok: bool = True
    data: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
