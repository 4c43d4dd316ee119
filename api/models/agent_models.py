# api/models/agent_models.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from state.state_schema import ContentTopic


class ScholarRunRequest(BaseModel):
    client_id: str = Field(..., description="Client (practice) identifier")
    org_id: str = Field(..., description="Owning organization identifier")


class GhostwriterRunRequest(BaseModel):
    client_id: str
    org_id: str
    topic: ContentTopic


class ConductorRunRequest(BaseModel):
    client_id: str
    org_id: str
    trigger: str = Field("manual", pattern="^(manual|scheduled|onboarding)$")


class RunSummaryResponse(BaseModel):
    status: str
    data: Dict[str, Any]


class RunRecordResponse(BaseModel):
    id: str
    client_id: str
    org_id: str
    agent: str
    status: str
    trigger: str
    config: Dict[str, Any] = {}
    result: Dict[str, Any] = {}
    error: Optional[str] = None
    cancel_requested: bool = False
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class CancelResponse(BaseModel):
    run_id: str
    cancel_requested: bool


class PipelineClientResult(BaseModel):
    client_id: str
    status: str
    runId: Optional[str] = None
    error: Optional[str] = None


class WeeklyPipelineResponse(BaseModel):
    triggered: int
    results: List[PipelineClientResult]
