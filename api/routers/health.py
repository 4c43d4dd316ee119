# File: api/routers/health.py
import logging

from fastapi import APIRouter
from sqlalchemy import text

from database.db import engine

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
async def health_check():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        database = "ok"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unavailable"
    return {"status": "ok", "database": database}
