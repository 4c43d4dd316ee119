# File: api/routers/agents.py
import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies.providers import get_providers
from api.models.agent_models import (
    CancelResponse,
    ConductorRunRequest,
    GhostwriterRunRequest,
    RunRecordResponse,
    RunSummaryResponse,
    ScholarRunRequest,
)
from services.graph_engine import CheckpointNotFoundError
from services.providers import AgentProviders
from services.run_tracking_service import RunAlreadyFinalizedError, RunNotFoundError
from workflow import cancel_run, resume_workflow, run_conductor, run_ghostwriter, run_scholar

router = APIRouter()
logger = logging.getLogger(__name__)


def _summary_response(summary: Dict[str, Any]) -> RunSummaryResponse:
    if summary.get("error") == "Client not found":
        raise HTTPException(status_code=404, detail="Client not found")
    return RunSummaryResponse(status=summary["status"], data=summary)


@router.post("/scholar/run", response_model=RunSummaryResponse)
async def start_scholar(payload: ScholarRunRequest, providers: AgentProviders = Depends(get_providers)):
    try:
        summary = await asyncio.to_thread(run_scholar, payload.client_id, payload.org_id, "manual", providers)
    except Exception:
        logger.error("Unexpected error in start_scholar", exc_info=True)
        raise HTTPException(status_code=500, detail="An internal error occurred")
    return _summary_response(summary)


@router.post("/ghostwriter/run", response_model=RunSummaryResponse)
async def start_ghostwriter(payload: GhostwriterRunRequest, providers: AgentProviders = Depends(get_providers)):
    try:
        summary = await asyncio.to_thread(
            run_ghostwriter, payload.client_id, payload.org_id, payload.topic, "manual", providers
        )
    except ValueError as e:
        logger.warning(f"Validation error in start_ghostwriter: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.error("Unexpected error in start_ghostwriter", exc_info=True)
        raise HTTPException(status_code=500, detail="An internal error occurred")
    return _summary_response(summary)


@router.post("/conductor/run", response_model=RunSummaryResponse)
async def start_conductor(payload: ConductorRunRequest, providers: AgentProviders = Depends(get_providers)):
    try:
        summary = await asyncio.to_thread(
            run_conductor, payload.client_id, payload.org_id, payload.trigger, providers
        )
    except Exception:
        logger.error("Unexpected error in start_conductor", exc_info=True)
        raise HTTPException(status_code=500, detail="An internal error occurred")
    return _summary_response(summary)


@router.get("/runs/{run_id}", response_model=RunRecordResponse)
async def get_run_status(run_id: str, providers: AgentProviders = Depends(get_providers)):
    run = providers.runs.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return RunRecordResponse(**run)


@router.post("/runs/{run_id}/cancel", response_model=CancelResponse)
async def cancel_workflow_run(run_id: str, providers: AgentProviders = Depends(get_providers)):
    try:
        accepted = cancel_run(run_id, providers)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Run not found")
    if not accepted:
        raise HTTPException(status_code=409, detail="Run already finished")
    return CancelResponse(run_id=run_id, cancel_requested=True)


@router.post("/runs/{run_id}/resume", response_model=RunSummaryResponse)
async def resume_workflow_run(run_id: str, providers: AgentProviders = Depends(get_providers)):
    try:
        summary = await asyncio.to_thread(resume_workflow, run_id, providers)
    except RunNotFoundError:
        raise HTTPException(status_code=404, detail="Run not found")
    except (RunAlreadyFinalizedError, CheckpointNotFoundError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    return RunSummaryResponse(status=summary["status"], data=summary)
