# File: services/graph_engine.py
"""
Minimal resumable state-machine runtime for the agent workflows.

A workflow is a set of named node functions `(state) -> patch` plus one
outgoing edge per node: either a fixed successor or a router that maps the
current state to a key in a declared target table. Patches are merged
shallowly into the state bag and are checked against the workflow's state
schema, so a misspelled key fails loudly instead of being dropped.
"""
import logging
from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from pydantic import TypeAdapter

from services.checkpoint_service import Checkpointer

logger = logging.getLogger(__name__)

END = "__end__"

NodeFn = Callable[[Any], Optional[Dict[str, Any]]]
RouterFn = Callable[[Any], str]
CancelCheck = Callable[[str], bool]


class GraphValidationError(Exception):
    """Raised when a graph cannot be compiled or routes somewhere undeclared."""
    pass


class StatePatchError(Exception):
    """Raised when a node returns a patch that does not fit the state schema."""
    pass


class WorkflowStepLimitError(Exception):
    pass


class CheckpointNotFoundError(Exception):
    pass


class WorkflowCancelledError(Exception):
    """Raised at a node boundary when the run has been cancelled."""

    def __init__(self, run_id: str, next_node: str, state: Dict[str, Any]):
        super().__init__(f"Run {run_id} cancelled before node '{next_node}'")
        self.run_id = run_id
        self.next_node = next_node
        self.state = state


@dataclass(frozen=True)
class ConditionalEdge:
    router: RouterFn
    targets: Dict[str, str]


Edge = Union[str, ConditionalEdge]


def state_fields(schema: type) -> Set[str]:
    return set(getattr(schema, "__annotations__", {}).keys())


def apply_patch(state: Dict[str, Any], patch: Optional[Dict[str, Any]], allowed: Set[str]) -> Dict[str, Any]:
    if patch is None:
        return dict(state)
    if not isinstance(patch, dict):
        raise StatePatchError(f"Node returned {type(patch).__name__}, expected a dict patch")

    unknown = set(patch) - allowed
    if unknown:
        raise StatePatchError(f"Patch contains undeclared state keys: {sorted(unknown)}")

    merged = dict(state)
    merged.update(patch)
    return merged


class WorkflowGraph:
    """Builder for a workflow. Call `compile()` to get something runnable."""

    def __init__(self, name: str, state_schema: type):
        self.name = name
        self.state_schema = state_schema
        self._nodes: Dict[str, NodeFn] = {}
        self._edges: Dict[str, Edge] = {}
        self._entry: Optional[str] = None

    def add_node(self, name: str, fn: NodeFn) -> "WorkflowGraph":
        if name == END:
            raise GraphValidationError(f"'{END}' is reserved for the terminal marker")
        if name in self._nodes:
            raise GraphValidationError(f"Node '{name}' already declared")
        self._nodes[name] = fn
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph":
        self._set_edge(source, target)
        return self

    def add_conditional_edges(self, source: str, router: RouterFn, targets: Dict[str, str]) -> "WorkflowGraph":
        if not targets:
            raise GraphValidationError(f"Conditional edge from '{source}' declares no targets")
        self._set_edge(source, ConditionalEdge(router=router, targets=dict(targets)))
        return self

    def set_entry_point(self, name: str) -> "WorkflowGraph":
        self._entry = name
        return self

    def _set_edge(self, source: str, edge: Edge):
        if source in self._edges:
            raise GraphValidationError(f"Node '{source}' already has an outgoing edge")
        self._edges[source] = edge

    @staticmethod
    def _targets(edge: Edge) -> Set[str]:
        if isinstance(edge, ConditionalEdge):
            return set(edge.targets.values())
        return {edge}

    def validate(self):
        if self._entry is None:
            raise GraphValidationError(f"{self.name}: no entry point set")
        if self._entry not in self._nodes:
            raise GraphValidationError(f"{self.name}: entry point '{self._entry}' is not a declared node")

        for source, edge in self._edges.items():
            if source not in self._nodes:
                raise GraphValidationError(f"{self.name}: edge from undeclared node '{source}'")
            for target in self._targets(edge):
                if target != END and target not in self._nodes:
                    raise GraphValidationError(f"{self.name}: '{source}' routes to undeclared node '{target}'")

        missing = [n for n in self._nodes if n not in self._edges]
        if missing:
            raise GraphValidationError(f"{self.name}: nodes without an outgoing edge: {missing}")

        reachable: Set[str] = set()
        queue = deque([self._entry])
        while queue:
            current = queue.popleft()
            if current in reachable or current == END:
                continue
            reachable.add(current)
            queue.extend(self._targets(self._edges[current]))

        unreachable = set(self._nodes) - reachable
        if unreachable:
            raise GraphValidationError(f"{self.name}: unreachable nodes: {sorted(unreachable)}")

        if not any(END in self._targets(self._edges[n]) for n in reachable):
            raise GraphValidationError(f"{self.name}: no path reaches {END}")

    def compile(
        self,
        checkpointer: Optional[Checkpointer] = None,
        cancel_check: Optional[CancelCheck] = None,
        max_steps: int = 50,
    ) -> "CompiledWorkflow":
        self.validate()
        return CompiledWorkflow(
            name=self.name,
            state_schema=self.state_schema,
            nodes=dict(self._nodes),
            edges=dict(self._edges),
            entry=self._entry,
            checkpointer=checkpointer,
            cancel_check=cancel_check,
            max_steps=max_steps,
        )


class CompiledWorkflow:
    def __init__(
        self,
        name: str,
        state_schema: type,
        nodes: Dict[str, NodeFn],
        edges: Dict[str, Edge],
        entry: str,
        checkpointer: Optional[Checkpointer],
        cancel_check: Optional[CancelCheck],
        max_steps: int,
    ):
        self.name = name
        self.state_schema = state_schema
        self._nodes = nodes
        self._edges = edges
        self._entry = entry
        self._checkpointer = checkpointer
        self._cancel_check = cancel_check
        self._max_steps = max_steps
        self._fields = state_fields(state_schema)
        self._adapter = TypeAdapter(state_schema)

    @property
    def node_names(self) -> Tuple[str, ...]:
        return tuple(self._nodes)

    # ------------------------------------------------------------
    # Serialization (checkpoint payloads are plain JSON)
    # ------------------------------------------------------------
    def serialize_state(self, state: Dict[str, Any]) -> Dict[str, Any]:
        return self._adapter.dump_python(state, mode="json")

    def deserialize_state(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return dict(self._adapter.validate_python(data))

    # ------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------
    def invoke(self, initial_state: Dict[str, Any], run_id: Optional[str] = None) -> Dict[str, Any]:
        state = apply_patch({}, dict(initial_state), self._fields)
        return self._execute(self._entry, state, run_id)

    def resume(self, run_id: str) -> Dict[str, Any]:
        snapshot = self._checkpointer.load(run_id) if self._checkpointer else None
        if not snapshot:
            raise CheckpointNotFoundError(f"No checkpoint recorded for run {run_id}")

        last_node, data = snapshot
        if last_node not in self._nodes:
            raise GraphValidationError(f"{self.name}: checkpoint names unknown node '{last_node}'")

        state = self.deserialize_state(data)
        next_node = self._next_node(last_node, state)
        logger.info(f"♻️ {self.name}: resuming run {run_id} after '{last_node}' at '{next_node}'")
        return self._execute(next_node, state, run_id)

    def _next_node(self, current: str, state: Dict[str, Any]) -> str:
        edge = self._edges[current]
        if not isinstance(edge, ConditionalEdge):
            return edge

        key = edge.router(MappingProxyType(state))
        if key not in edge.targets:
            raise GraphValidationError(
                f"{self.name}: router for '{current}' returned '{key}', expected one of {sorted(edge.targets)}"
            )
        return edge.targets[key]

    def _is_cancelled(self, run_id: Optional[str]) -> bool:
        return bool(run_id and self._cancel_check and self._cancel_check(run_id))

    def _execute(self, node: str, state: Dict[str, Any], run_id: Optional[str]) -> Dict[str, Any]:
        steps = 0
        while node != END:
            if self._is_cancelled(run_id):
                logger.warning(f"🛑 {self.name}: run {run_id} cancelled before '{node}'")
                raise WorkflowCancelledError(run_id, node, state)

            steps += 1
            if steps > self._max_steps:
                raise WorkflowStepLimitError(f"{self.name}: exceeded {self._max_steps} steps")

            logger.info(f"🔄 {self.name} step: {node}")
            patch = self._nodes[node](MappingProxyType(state))
            state = apply_patch(state, patch, self._fields)

            if self._checkpointer and run_id:
                self._checkpointer.save(run_id, node, self.serialize_state(state))

            node = self._next_node(node, state)

        return state
