import unittest
from typing import List, Optional

from typing_extensions import TypedDict

from services.checkpoint_service import InMemoryCheckpointer
from services.graph_engine import (
    END,
    CheckpointNotFoundError,
    GraphValidationError,
    StatePatchError,
    WorkflowCancelledError,
    WorkflowGraph,
    WorkflowStepLimitError,
)


class CounterState(TypedDict, total=False):
    count: int
    trail: List[str]
    error: Optional[str]


def _increment(state):
    return {"count": state["count"] + 1, "trail": state["trail"] + ["increment"]}


def _done(state):
    return {"trail": state["trail"] + ["done"]}


def _loop_until_three(state):
    return "again" if state["count"] < 3 else "stop"


def build_counter_graph() -> WorkflowGraph:
    graph = WorkflowGraph("counter", CounterState)
    graph.add_node("increment", _increment)
    graph.add_node("done", _done)
    graph.set_entry_point("increment")
    graph.add_conditional_edges("increment", _loop_until_three, {"again": "increment", "stop": "done"})
    graph.add_edge("done", END)
    return graph


class RecordingCheckpointer(InMemoryCheckpointer):
    def __init__(self):
        super().__init__()
        self.saved_nodes = []

    def save(self, run_id, node, state):
        self.saved_nodes.append(node)
        super().save(run_id, node, state)


class TestGraphValidation(unittest.TestCase):

    def test_missing_entry_point(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        graph.add_edge("a", END)
        with self.assertRaises(GraphValidationError):
            graph.compile()

    def test_edge_to_undeclared_node(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        graph.set_entry_point("a")
        graph.add_edge("a", "nowhere")
        with self.assertRaises(GraphValidationError):
            graph.compile()

    def test_node_without_outgoing_edge(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        graph.add_node("b", _done)
        graph.set_entry_point("a")
        graph.add_edge("a", "b")
        with self.assertRaises(GraphValidationError):
            graph.compile()

    def test_unreachable_node(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        graph.add_node("orphan", _done)
        graph.set_entry_point("a")
        graph.add_edge("a", END)
        graph.add_edge("orphan", END)
        with self.assertRaises(GraphValidationError):
            graph.compile()

    def test_duplicate_node_and_reserved_name(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        with self.assertRaises(GraphValidationError):
            graph.add_node("a", _done)
        with self.assertRaises(GraphValidationError):
            graph.add_node(END, _done)

    def test_second_outgoing_edge_rejected(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", _done)
        graph.add_edge("a", END)
        with self.assertRaises(GraphValidationError):
            graph.add_edge("a", END)


class TestGraphExecution(unittest.TestCase):

    def test_conditional_loop_runs_until_router_stops(self):
        workflow = build_counter_graph().compile()
        final = workflow.invoke({"count": 0, "trail": []})

        self.assertEqual(final["count"], 3)
        self.assertEqual(final["trail"], ["increment", "increment", "increment", "done"])

    def test_undeclared_patch_key_fails_loudly(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", lambda state: {"cuont": 1})
        graph.set_entry_point("a")
        graph.add_edge("a", END)

        with self.assertRaises(StatePatchError):
            graph.compile().invoke({"count": 0})

    def test_non_dict_patch_fails(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", lambda state: ["count"])
        graph.set_entry_point("a")
        graph.add_edge("a", END)

        with self.assertRaises(StatePatchError):
            graph.compile().invoke({"count": 0})

    def test_router_returning_undeclared_key(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", lambda state: {})
        graph.set_entry_point("a")
        graph.add_conditional_edges("a", lambda state: "sideways", {"next": END})

        with self.assertRaises(GraphValidationError):
            graph.compile().invoke({"count": 0})

    def test_nodes_receive_read_only_state(self):
        def mutate(state):
            state["count"] = 99

        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", mutate)
        graph.set_entry_point("a")
        graph.add_edge("a", END)

        with self.assertRaises(TypeError):
            graph.compile().invoke({"count": 0})

    def test_none_patch_leaves_state_unchanged(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("a", lambda state: None)
        graph.set_entry_point("a")
        graph.add_edge("a", END)

        final = graph.compile().invoke({"count": 5})
        self.assertEqual(final, {"count": 5})

    def test_step_limit(self):
        graph = WorkflowGraph("g", CounterState)
        graph.add_node("spin", lambda state: {})
        graph.set_entry_point("spin")
        graph.add_conditional_edges("spin", lambda state: "again", {"again": "spin", "stop": END})

        with self.assertRaises(WorkflowStepLimitError):
            graph.compile(max_steps=5).invoke({})


class TestCheckpointAndResume(unittest.TestCase):

    def test_checkpoint_after_every_node(self):
        checkpointer = RecordingCheckpointer()
        build_counter_graph().compile(checkpointer=checkpointer).invoke({"count": 0, "trail": []}, run_id="r1")

        self.assertEqual(checkpointer.saved_nodes, ["increment", "increment", "increment", "done"])
        node, state = checkpointer.load("r1")
        self.assertEqual(node, "done")
        self.assertEqual(state["count"], 3)

    def test_no_checkpoint_without_run_id(self):
        checkpointer = RecordingCheckpointer()
        build_counter_graph().compile(checkpointer=checkpointer).invoke({"count": 0, "trail": []})
        self.assertEqual(checkpointer.saved_nodes, [])

    def test_resume_starts_after_last_completed_node(self):
        checkpointer = InMemoryCheckpointer()
        checkpointer.save("r2", "increment", {"count": 3, "trail": ["increment"] * 3})

        final = build_counter_graph().compile(checkpointer=checkpointer).resume("r2")

        # Router sends count == 3 straight to "done"; increment is not re-run
        self.assertEqual(final["count"], 3)
        self.assertEqual(final["trail"], ["increment"] * 3 + ["done"])

    def test_resume_without_checkpoint(self):
        workflow = build_counter_graph().compile(checkpointer=InMemoryCheckpointer())
        with self.assertRaises(CheckpointNotFoundError):
            workflow.resume("missing")

    def test_resume_with_unknown_node(self):
        checkpointer = InMemoryCheckpointer()
        checkpointer.save("r3", "renamed_node", {"count": 0})
        with self.assertRaises(GraphValidationError):
            build_counter_graph().compile(checkpointer=checkpointer).resume("r3")


class TestCancellation(unittest.TestCase):

    def test_cancel_checked_at_node_boundary(self):
        cancelled = set()
        executed = []

        def first(state):
            executed.append("first")
            cancelled.add("r1")
            return {"count": 1}

        def second(state):
            executed.append("second")
            return {"count": 2}

        graph = WorkflowGraph("g", CounterState)
        graph.add_node("first", first)
        graph.add_node("second", second)
        graph.set_entry_point("first")
        graph.add_edge("first", "second")
        graph.add_edge("second", END)

        workflow = graph.compile(cancel_check=lambda run_id: run_id in cancelled)
        with self.assertRaises(WorkflowCancelledError) as ctx:
            workflow.invoke({"count": 0}, run_id="r1")

        self.assertEqual(executed, ["first"])
        self.assertEqual(ctx.exception.next_node, "second")
        self.assertEqual(ctx.exception.state["count"], 1)

    def test_cancel_ignored_without_run_id(self):
        workflow = build_counter_graph().compile(cancel_check=lambda run_id: True)
        final = workflow.invoke({"count": 0, "trail": []})
        self.assertEqual(final["count"], 3)


if __name__ == "__main__":
    unittest.main()
