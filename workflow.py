# File: workflow.py
"""
Public entry points for the agent workflows. Every function blocks until the
run reaches a terminal state and returns its result summary.
"""
import logging
from typing import Any, Dict, List, Optional

from agents.conductor_agent import ConductorAgent, run_conductor
from agents.ghostwriter_agent import GhostwriterAgent, run_ghostwriter
from agents.scholar_agent import ScholarAgent, run_scholar
from services.providers import AgentProviders, default_providers
from services.run_tracking_service import RunAlreadyFinalizedError, RunNotFoundError

logger = logging.getLogger(__name__)

AGENTS = {
    "scholar": ScholarAgent,
    "ghostwriter": GhostwriterAgent,
    "conductor": ConductorAgent,
}

__all__ = [
    "run_scholar",
    "run_ghostwriter",
    "run_conductor",
    "resume_workflow",
    "cancel_run",
    "run_weekly_pipeline",
]


def resume_workflow(run_id: str, providers: Optional[AgentProviders] = None) -> Dict[str, Any]:
    """
    Continues a run from its last checkpoint, starting at the node after the
    one that last completed.
    Raises:
        RunNotFoundError: Unknown run.
        RunAlreadyFinalizedError: The run already reached a terminal state.
        CheckpointNotFoundError: Nothing was checkpointed for the run.
    """
    providers = providers or default_providers()
    run = providers.runs.get_run(run_id)
    if run is None:
        raise RunNotFoundError(f"Run {run_id} not found")
    if run["status"] != "running":
        raise RunAlreadyFinalizedError(f"Run {run_id} is already {run['status']}")

    agent_cls = AGENTS[run["agent"]]
    logger.info(f"♻️ Resuming {run['agent']} run {run_id}")
    return agent_cls(providers).resume(run_id)


def cancel_run(run_id: str, providers: Optional[AgentProviders] = None) -> bool:
    """Requests cancellation; the run stops at its next node boundary."""
    providers = providers or default_providers()
    return providers.runs.request_cancel(run_id)


def run_weekly_pipeline(trigger: str = "scheduled", providers: Optional[AgentProviders] = None) -> Dict[str, Any]:
    """Runs the Conductor for every active client. One client's failure never stops the others."""
    providers = providers or default_providers()
    clients = providers.store.list_active_clients()
    logger.info(f"🗓️ Weekly pipeline: {len(clients)} active client(s)")

    results: List[Dict[str, Any]] = []
    for client in clients:
        try:
            summary = run_conductor(client["id"], client["org_id"], trigger=trigger, providers=providers)
            results.append({"client_id": client["id"], "status": summary["status"], "runId": summary["runId"]})
        except Exception as e:
            logger.error(f"❌ Weekly pipeline failed for client {client['id']}: {e}", exc_info=True)
            results.append({"client_id": client["id"], "status": "failed", "error": str(e)})

    return {"triggered": len(results), "results": results}
