# agents/conductor_agent.py
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from agents.base_agent import BaseAgent, FINALIZE, continue_unless_error, node
from agents.ghostwriter_agent import run_ghostwriter
from agents.scholar_agent import run_scholar
from services.graph_engine import END, WorkflowGraph
from services.providers import AgentProviders
from services.run_tracking_service import RunAlreadyFinalizedError
from state.state_schema import ConductorState, ContentTopic

logger = logging.getLogger(__name__)

MAX_TOPICS_PER_RUN = 2

Runner = Callable[..., Dict[str, Any]]


class ConductorAgent(BaseAgent):
    """
    Meta-workflow for one client: health gate, Scholar, then one isolated
    Ghostwriter run per top topic. A failing topic never fails the run;
    only the health gate or Scholar can.
    """

    agent_name = "conductor"

    def __init__(
        self,
        providers: Optional[AgentProviders] = None,
        scholar_runner: Optional[Runner] = None,
        ghostwriter_runner: Optional[Runner] = None,
    ):
        super().__init__(providers)
        self.scholar_runner = scholar_runner or run_scholar
        self.ghostwriter_runner = ghostwriter_runner or run_ghostwriter

    def build_graph(self) -> WorkflowGraph:
        graph = WorkflowGraph("conductor", ConductorState)
        graph.add_node("check_health", self.check_health)
        graph.add_node("run_scholar", self.run_scholar)
        graph.add_node("run_ghostwriter", self.run_ghostwriter)
        graph.add_node(FINALIZE, self.finalize)

        graph.set_entry_point("check_health")
        graph.add_conditional_edges("check_health", continue_unless_error, {"next": "run_scholar", "error": FINALIZE})
        graph.add_conditional_edges("run_scholar", continue_unless_error, {"next": "run_ghostwriter", "error": FINALIZE})
        # One topic per step, so each finished topic is checkpointed.
        graph.add_conditional_edges(
            "run_ghostwriter", self.route_topics, {"more": "run_ghostwriter", "done": FINALIZE}
        )
        graph.add_edge(FINALIZE, END)
        return graph

    def initial_state(self, client: Dict[str, Any], run_id: str, trigger: str = "manual", **inputs) -> Dict[str, Any]:
        return {
            "client_id": client["id"],
            "org_id": client["org_id"],
            "run_id": run_id,
            "error": None,
            "trigger": trigger,
            "stage": "health",
            "scholar_run_id": None,
            "scholar_keywords": 0,
            "scholar_topics": [],
            "topics_attempted": 0,
            "ghostwriter_run_ids": [],
            "content_piece_ids": [],
            "failed_topics": [],
        }

    # ------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------
    @node("check_health")
    def check_health(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        client_id = state["client_id"]
        client = self.providers.store.get_client(client_id)
        if client is None:
            return {"stage": "failed", "error": "Client not found"}

        health = client.get("account_health")
        if health != "active":
            logger.warning(f"⚠️ Conductor: client {client_id} health is {health}. Skipping pipeline.")
            return {"stage": "failed", "error": f"Client account health is {health}. Skipping pipeline."}

        try:
            self.providers.token_refresher(client_id)
        except Exception as e:
            logger.error(f"❌ Conductor: credential refresh failed for {client_id}: {e}")
            return {"stage": "failed", "error": "Google tokens expired or invalid."}

        self._record_stage(state, {"stage": "health_check_passed"})
        return {"stage": "scholar"}

    @node("run_scholar")
    def run_scholar(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            result = self.scholar_runner(
                state["client_id"], state["org_id"], trigger=state.get("trigger", "manual"), providers=self.providers
            )
        except Exception as e:
            logger.error(f"❌ Conductor: Scholar raised: {e}", exc_info=True)
            return {"stage": "failed", "error": f"Scholar failed: {e}"}

        if result.get("status") != "completed":
            return {
                "stage": "failed",
                "error": result.get("error") or "Scholar agent failed",
                "scholar_run_id": result.get("runId"),
            }

        topics = [ContentTopic.model_validate(t) for t in result.get("topics") or []]
        self._record_stage(state, {"stage": "scholar_completed", "scholarRunId": result.get("runId")})
        logger.info(f"🎓 Conductor: Scholar found {result.get('keywordsFound', 0)} keywords, {len(topics)} topics")
        return {
            "stage": "ghostwriter",
            "scholar_run_id": result.get("runId"),
            "scholar_keywords": int(result.get("keywordsFound") or 0),
            "scholar_topics": topics,
        }

    @node("run_ghostwriter")
    def run_ghostwriter(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        """Drafts the next pending topic. A failing topic is recorded, never raised."""
        topics = self._selected_topics(state)
        attempted = int(state.get("topics_attempted") or 0)
        run_ids: List[str] = list(state.get("ghostwriter_run_ids") or [])
        piece_ids: List[str] = list(state.get("content_piece_ids") or [])
        failed: List[Dict[str, str]] = list(state.get("failed_topics") or [])

        if attempted < len(topics):
            topic = topics[attempted]
            attempted += 1
            try:
                result = self.ghostwriter_runner(
                    state["client_id"],
                    state["org_id"],
                    topic,
                    trigger=state.get("trigger", "manual"),
                    providers=self.providers,
                )
            except Exception as e:
                logger.error(f"❌ Conductor: Ghostwriter failed for '{topic.keyword}': {e}")
                failed.append({"keyword": topic.keyword, "error": str(e)})
            else:
                if result.get("runId"):
                    run_ids.append(result["runId"])
                if result.get("status") == "completed" and result.get("contentPieceId"):
                    piece_ids.append(result["contentPieceId"])
                else:
                    failed.append({"keyword": topic.keyword, "error": result.get("error") or "Ghostwriter run failed"})

        patch = {
            "topics_attempted": attempted,
            "ghostwriter_run_ids": run_ids,
            "content_piece_ids": piece_ids,
            "failed_topics": failed,
        }
        if attempted >= len(topics):
            self._record_stage(state, {"stage": "ghostwriter_completed", "contentPieces": len(piece_ids)})
            patch["stage"] = "complete"
        return patch

    def route_topics(self, state: Mapping[str, Any]) -> str:
        if state.get("error"):
            return "done"
        return "more" if int(state.get("topics_attempted") or 0) < len(self._selected_topics(state)) else "done"

    def finalize(self, state: Mapping[str, Any]) -> Dict[str, Any]:
        self.finalize_run(state, self._result(state))
        return {"stage": "failed" if state.get("error") else "completed"}

    # ------------------------------------------------------------
    @staticmethod
    def _selected_topics(state: Mapping[str, Any]) -> List[ContentTopic]:
        return list(state.get("scholar_topics") or [])[:MAX_TOPICS_PER_RUN]

    def _record_stage(self, state: Mapping[str, Any], config: Dict[str, Any]):
        # Stage progress is informational; the terminal write happens in finalize.
        try:
            self.providers.runs.update_run(state["run_id"], config=config)
        except (SQLAlchemyError, RunAlreadyFinalizedError) as e:
            logger.warning(f"⚠️ Conductor: could not record stage {config.get('stage')}: {e}")

    @staticmethod
    def _result(state: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "scholarKeywords": state.get("scholar_keywords", 0),
            "contentPiecesGenerated": len(state.get("content_piece_ids") or []),
            "scholarRunId": state.get("scholar_run_id"),
            "ghostwriterRunIds": list(state.get("ghostwriter_run_ids") or []),
            "contentPieceIds": list(state.get("content_piece_ids") or []),
            "failedTopics": list(state.get("failed_topics") or []),
        }

    def summarize(self, run_id: str, state: Mapping[str, Any]) -> Dict[str, Any]:
        error = state.get("error")
        return {
            "runId": run_id,
            "status": "failed" if error else "completed",
            **self._result(state),
            "error": error,
        }

    def empty_summary(self, run_id: str, status: str, error: Optional[str]) -> Dict[str, Any]:
        return {
            "runId": run_id,
            "status": status,
            "scholarKeywords": 0,
            "contentPiecesGenerated": 0,
            "scholarRunId": None,
            "ghostwriterRunIds": [],
            "contentPieceIds": [],
            "failedTopics": [],
            "error": error,
        }


def run_conductor(
    client_id: str,
    org_id: str,
    trigger: str = "manual",
    providers: Optional[AgentProviders] = None,
    scholar_runner: Optional[Runner] = None,
    ghostwriter_runner: Optional[Runner] = None,
) -> Dict[str, Any]:
    agent = ConductorAgent(providers, scholar_runner=scholar_runner, ghostwriter_runner=ghostwriter_runner)
    return agent.run(client_id, org_id, trigger=trigger)
