# agents/base_agent.py
import functools
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from clients.http_utils import ProviderError
from services.graph_engine import (
    CheckpointNotFoundError, CompiledWorkflow, WorkflowCancelledError, WorkflowGraph
)
from services.llm_service import LLMGenerationError, LLMJSONParseError, LLMSchemaError
from services.providers import AgentProviders, default_providers
from services.run_tracking_service import RunAlreadyFinalizedError

logger = logging.getLogger(__name__)

# Failures a node converts into state["error"]. Anything else escapes the
# engine and is handled by the run wrapper.
NODE_ERRORS = (
    LLMGenerationError,
    LLMJSONParseError,
    LLMSchemaError,
    ProviderError,
    SQLAlchemyError,
    ValueError,
)

FINALIZE = "finalize"


def node(name: str):
    """Wraps a node method so expected failures become a tombstone error patch."""
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self, state):
            try:
                return fn(self, state)
            except NODE_ERRORS as e:
                logger.error(f"❌ {self.agent_name}.{name} failed: {type(e).__name__}: {e}")
                return {"error": f"{name}: {e}"}
        return wrapper
    return decorator


def continue_unless_error(state: Mapping[str, Any]) -> str:
    return "error" if state.get("error") else "next"


class BaseAgent:
    """
    Shared run lifecycle: create the WorkflowRun, load the client, execute
    the graph, and close the run on cancellation or unexpected failure.
    Terminal `completed`/`failed` for a normal run is written by the
    workflow's own finalize node.
    """

    agent_name = "base"

    def __init__(self, providers: Optional[AgentProviders] = None):
        self.providers = providers or default_providers()

    # ------------------------------------------------------------
    # Hooks for subclasses
    # ------------------------------------------------------------
    def build_graph(self) -> WorkflowGraph:
        raise NotImplementedError

    def initial_state(self, client: Dict[str, Any], run_id: str, **inputs) -> Dict[str, Any]:
        raise NotImplementedError

    def summarize(self, run_id: str, state: Mapping[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def empty_summary(self, run_id: str, status: str, error: Optional[str]) -> Dict[str, Any]:
        return {"runId": run_id, "status": status, "error": error}

    def run_config(self, **inputs) -> Dict[str, Any]:
        return {}

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------
    def compile(self) -> CompiledWorkflow:
        return self.build_graph().compile(
            checkpointer=self.providers.checkpointer,
            cancel_check=self.providers.runs.is_cancel_requested,
        )

    def finalize_run(self, state: Mapping[str, Any], result: Dict[str, Any]) -> Dict[str, Any]:
        """Writes the terminal status. Only finalize nodes call this."""
        error = state.get("error")
        status = "failed" if error else "completed"
        self.providers.runs.update_run(state["run_id"], status=status, result=result, error=error)
        logger.info(f"🏁 {self.agent_name} run {state['run_id']} {status}")
        return {}

    def run(self, client_id: str, org_id: str, trigger: str = "manual", **inputs) -> Dict[str, Any]:
        runs = self.providers.runs
        run_id = runs.create_run(
            client_id=client_id,
            org_id=org_id,
            agent=self.agent_name,
            trigger=trigger,
            config=self.run_config(**inputs),
            graph_id=self.agent_name,
        )

        try:
            client = self.providers.store.get_client(client_id)
            if client is None:
                runs.update_run(run_id, status="failed", error="Client not found")
                return self.empty_summary(run_id, "failed", "Client not found")

            state = self.initial_state(client, run_id=run_id, trigger=trigger, **inputs)
        except Exception as e:
            logger.error(f"❌ {self.agent_name} run {run_id} could not start: {e}", exc_info=True)
            self._close_run(run_id, "failed", str(e))
            return self.empty_summary(run_id, "failed", str(e))

        return self._execute(run_id, lambda workflow: workflow.invoke(state, run_id=run_id))

    def resume(self, run_id: str) -> Dict[str, Any]:
        return self._execute(run_id, lambda workflow: workflow.resume(run_id))

    def _execute(self, run_id: str, step: Callable[[CompiledWorkflow], Dict[str, Any]]) -> Dict[str, Any]:
        workflow = self.compile()
        try:
            final_state = step(workflow)
        except WorkflowCancelledError as e:
            self._close_run(run_id, "cancelled", str(e))
            return self.empty_summary(run_id, "cancelled", str(e))
        except CheckpointNotFoundError:
            raise
        except Exception as e:
            logger.error(f"❌ {self.agent_name} run {run_id} crashed: {e}", exc_info=True)
            self._close_run(run_id, "failed", str(e))
            return self.empty_summary(run_id, "failed", str(e))

        return self.summarize(run_id, final_state)

    def _close_run(self, run_id: str, status: str, error: str):
        try:
            self.providers.runs.update_run(run_id, status=status, error=error)
        except RunAlreadyFinalizedError:
            logger.warning(f"⚠️ Run {run_id} was already finalized; leaving it as is")
