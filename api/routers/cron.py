# File: api/routers/cron.py
import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies.providers import get_providers
from api.models.agent_models import WeeklyPipelineResponse
from services.providers import AgentProviders
from workflow import run_weekly_pipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/weekly-pipeline", response_model=WeeklyPipelineResponse)
async def weekly_pipeline(providers: AgentProviders = Depends(get_providers)):
    try:
        outcome = await asyncio.to_thread(run_weekly_pipeline, "scheduled", providers)
    except Exception:
        logger.error("Unexpected error in weekly_pipeline", exc_info=True)
        raise HTTPException(status_code=500, detail="An internal error occurred")
    return WeeklyPipelineResponse(**outcome)
