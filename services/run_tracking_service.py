# File: services/run_tracking_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from database.db import SessionLocal
from database.models.workflow_run_model import (
    WorkflowRun, AgentName, RunStatus, RunTrigger, TERMINAL_STATUSES
)

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = {"status", "result", "error", "config", "completed_at"}


class RunNotFoundError(Exception):
    pass


class RunAlreadyFinalizedError(Exception):
    """Raised when something tries to mutate a run that has left `running`."""
    pass


def _run_to_dict(run: WorkflowRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "client_id": run.client_id,
        "org_id": run.org_id,
        "agent": run.agent.value,
        "graph_id": run.graph_id,
        "status": run.status.value,
        "trigger": run.trigger.value,
        "config": dict(run.config or {}),
        "result": dict(run.result or {}),
        "error": run.error,
        "cancel_requested": bool(run.cancel_requested),
        "checkpoint_data": dict(run.checkpoint_data or {}),
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "completed_at": run.completed_at.isoformat() if run.completed_at else None,
    }


def create_run(
    client_id: str,
    org_id: str,
    agent: str,
    trigger: str = "manual",
    config: Optional[Dict[str, Any]] = None,
    graph_id: Optional[str] = None,
) -> str:
    db = SessionLocal()
    try:
        run = WorkflowRun(
            client_id=client_id,
            org_id=org_id,
            agent=AgentName(agent),
            graph_id=graph_id,
            status=RunStatus.RUNNING,
            trigger=RunTrigger(trigger),
            config=config or {},
            result={},
            checkpoint_data={},
        )
        db.add(run)
        db.commit()
        logger.info(f"📝 Created {agent} run {run.id} for client {client_id} ({trigger})")
        return run.id
    except Exception:
        db.rollback()
        logger.exception("Failed to create workflow run.")
        raise
    finally:
        db.close()


def update_run(run_id: str, **fields) -> None:
    unknown = set(fields) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update run fields: {sorted(unknown)}")

    db = SessionLocal()
    try:
        run = db.get(WorkflowRun, run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        if run.status in TERMINAL_STATUSES:
            raise RunAlreadyFinalizedError(f"Run {run_id} is already {run.status.value}")

        if "status" in fields:
            status = RunStatus(fields["status"])
            run.status = status
            if status in TERMINAL_STATUSES and "completed_at" not in fields:
                run.completed_at = datetime.now(timezone.utc)
        if "result" in fields:
            run.result = dict(fields["result"] or {})
        if "config" in fields:
            run.config = {**(run.config or {}), **(fields["config"] or {})}
        if "error" in fields:
            run.error = fields["error"]
        if "completed_at" in fields:
            run.completed_at = fields["completed_at"]

        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_run(run_id: str) -> Optional[Dict[str, Any]]:
    with SessionLocal() as db:
        run = db.get(WorkflowRun, run_id)
        return _run_to_dict(run) if run else None


def list_runs_for_client(client_id: str) -> List[Dict[str, Any]]:
    with SessionLocal() as db:
        rows = db.scalars(
            select(WorkflowRun)
            .where(WorkflowRun.client_id == client_id)
            .order_by(WorkflowRun.started_at.desc())
        ).all()
        return [_run_to_dict(r) for r in rows]


def request_cancel(run_id: str) -> bool:
    """Flags a running run for cancellation. Returns False if it already finished."""
    with SessionLocal() as db:
        run = db.get(WorkflowRun, run_id)
        if run is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        if run.status in TERMINAL_STATUSES:
            return False
        run.cancel_requested = True
        db.commit()
        logger.info(f"🛑 Cancellation requested for run {run_id}")
        return True


def is_cancel_requested(run_id: str) -> bool:
    with SessionLocal() as db:
        run = db.get(WorkflowRun, run_id)
        return bool(run and run.cancel_requested)
