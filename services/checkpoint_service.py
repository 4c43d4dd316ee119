# File: services/checkpoint_service.py
import copy
import logging
import threading
from typing import Any, Dict, Optional, Protocol, Tuple

from database.db import SessionLocal
from database.models.workflow_run_model import WorkflowRun

logger = logging.getLogger(__name__)

Snapshot = Tuple[str, Dict[str, Any]]


class Checkpointer(Protocol):
    """Persists the state bag and the name of the last completed node."""

    def save(self, run_id: str, node: str, state: Dict[str, Any]) -> None:
        ...

    def load(self, run_id: str) -> Optional[Snapshot]:
        ...


class InMemoryCheckpointer:
    def __init__(self):
        self._snapshots: Dict[str, Snapshot] = {}
        self._lock = threading.Lock()

    def save(self, run_id: str, node: str, state: Dict[str, Any]) -> None:
        with self._lock:
            self._snapshots[run_id] = (node, copy.deepcopy(state))

    def load(self, run_id: str) -> Optional[Snapshot]:
        with self._lock:
            snapshot = self._snapshots.get(run_id)
        if snapshot is None:
            return None
        node, state = snapshot
        return node, copy.deepcopy(state)


class DatabaseCheckpointer:
    """Stores checkpoints in `workflow_runs.checkpoint_data`, one row per run."""

    def save(self, run_id: str, node: str, state: Dict[str, Any]) -> None:
        db = SessionLocal()
        try:
            run = db.get(WorkflowRun, run_id)
            if run is None:
                raise ValueError(f"Cannot checkpoint unknown run {run_id}")
            run.checkpoint_data = {"node": node, "state": copy.deepcopy(state)}
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist workflow checkpoint.")
            raise
        finally:
            db.close()

    def load(self, run_id: str) -> Optional[Snapshot]:
        db = SessionLocal()
        try:
            run = db.get(WorkflowRun, run_id)
            if run is None or not isinstance(run.checkpoint_data, dict):
                return None
            node = run.checkpoint_data.get("node")
            state = run.checkpoint_data.get("state")
            if not node or not isinstance(state, dict):
                return None
            # Deep copy so callers never hold ORM-owned structures
            return node, copy.deepcopy(state)
        finally:
            db.close()
