"""
Tests for the agentgraph.simulation.simulator module.

This module tests:
- Traversal order, coverage and resource totals
- Conditional and prioritized routing
- Registered loops and their exit reasons
- Custom node behaviors, artifacts and inputs
- Pause/resume in step-by-step and breakpoint modes
- Events, checkpoints, limits and failure handling
"""

import asyncio

import pytest

from agentgraph.exceptions import SimulationError
from agentgraph.graph.types import ConditionOperator, Edge, NodeRole, RoutingCondition
from agentgraph.routing.conditions import LoopExitReason
from agentgraph.routing.engine import Loop
from agentgraph.simulation.simulator import WorkflowSimulator, run_simulation
from agentgraph.simulation.types import SimulationEventType, SimulationStatus
from agentgraph.state.checkpoint import CheckpointManager


@pytest.fixture
def simulator():
    """Create a WorkflowSimulator without checkpoints."""
    return WorkflowSimulator()


@pytest.fixture
def loop_graph(make_graph):
    """start -> work <-> review -> done"""
    return make_graph(
        ["start", "work", "review", "done"],
        [
            Edge("e1", "start", "work"),
            Edge("e2", "work", "review"),
            Edge("e3", "review", "work", is_loop_edge=True, loop_id="refine"),
            Edge("e4", "review", "done"),
        ],
        graph_id="wf-loop",
    )


def _counting_behavior():
    calls = {"count": 0}

    def behavior(inputs):
        calls["count"] += 1
        return {"outputs": {"draft": calls["count"]}, "state_updates": {"counter": calls["count"]}}

    return behavior, calls


def _refine_loop(repeat_until, max_iterations=3):
    return Loop(
        id="refine",
        entry_node_id="work",
        exit_node_id="done",
        loop_node_ids=["work", "review"],
        repeat_until=repeat_until,
        max_iterations=max_iterations,
    )


# =============================================================================
# Traversal Tests
# =============================================================================

class TestTraversal:
    """Tests for basic fast-forward runs."""

    @pytest.mark.asyncio
    async def test_linear_run(self, simulator, linear_graph):
        """Test every node runs once in order."""
        result = await simulator.start_simulation(linear_graph)

        assert result.status == SimulationStatus.COMPLETED
        assert result.execution_order == ["a", "b", "c"]
        assert result.coverage_percentage == 100.0
        assert result.edge_coverage_percentage == 100.0
        assert result.nodes_skipped == []
        assert result.total_steps == 3
        assert result.current_step == 3
        assert result.id.startswith("sim-")
        assert result.completed_at is not None

    @pytest.mark.asyncio
    async def test_resource_totals(self, simulator, linear_graph):
        """Test totals are the sums of per-step estimates."""
        result = await simulator.start_simulation(linear_graph, {"costPerToken": 0.001})

        assert result.total_estimated_time == 9000
        assert result.total_estimated_tokens == 3 * 503
        assert result.total_estimated_cost == pytest.approx(3 * 503 * 0.001)
        assert result.estimated_parallel_time == 9000
        assert result.critical_path == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_respects_dependencies(self, simulator, diamond_graph):
        """Test each node runs after its predecessors, and only once."""
        result = await simulator.start_simulation(diamond_graph)

        order = result.execution_order
        assert order == ["start", "left", "right", "end"]
        for edge in diamond_graph.edges:
            assert order.index(edge.source) < order.index(edge.target)
        assert result.parallel_blocks == [["left", "right"]]
        assert result.peak_parallelism == 2

    @pytest.mark.asyncio
    async def test_shortcut_edge_waits_for_long_path(self, simulator, make_graph):
        """Test a node reached early by a shortcut still runs after its other predecessors."""
        graph = make_graph(["a", "b", "c"], [("a", "c"), ("a", "b"), ("b", "c")])

        result = await simulator.start_simulation(graph)

        assert result.execution_order == ["a", "b", "c"]
        assert result.edge_coverage_percentage == 100.0

    @pytest.mark.asyncio
    async def test_dependencies_across_uneven_branches(self, simulator, make_graph):
        """Test every edge source runs before its target on uneven branches."""
        graph = make_graph(
            ["start", "quick", "slow1", "slow2", "join", "report"],
            [
                ("start", "join"),
                ("start", "quick"),
                ("quick", "join"),
                ("start", "slow1"),
                ("slow1", "slow2"),
                ("slow2", "join"),
                ("join", "report"),
            ],
        )

        result = await simulator.start_simulation(graph)

        order = result.execution_order
        assert sorted(order) == sorted(node.id for node in graph.nodes)
        for edge in graph.edges:
            assert order.index(edge.source) < order.index(edge.target)

    @pytest.mark.asyncio
    async def test_skipped_predecessor_does_not_block(self, simulator, make_graph):
        """Test a predecessor cut off by an unmet condition is not waited for."""
        graph = make_graph(
            ["a", "b", "c"],
            [
                ("a", "c"),
                Edge("e2", "a", "b", condition="state.go === true"),
                ("b", "c"),
            ],
        )

        result = await simulator.start_simulation(graph)

        assert result.execution_order == ["a", "c"]
        assert result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_default_mock_outputs(self, simulator, make_graph, make_node):
        """Test default behavior produces mock outputs and declared artifacts."""
        graph = make_graph([make_node("a", label="Writer", outputs=["draft.md"])])

        result = await simulator.start_simulation(graph)

        step = result.steps[0]
        assert step.outputs["result"] == "Mock output from Writer"
        assert step.outputs["status"] == "success"
        assert step.output_artifacts == ["draft.md"]
        assert step.mock_response == "Mock output from Writer"
        assert step.action == "complete"

    @pytest.mark.asyncio
    async def test_state_snapshots(self, simulator, linear_graph):
        """Test steps keep before/after states and record decisions."""
        result = await simulator.start_simulation(linear_graph)

        first = result.steps[0]
        assert "a_output" not in first.state_before.shared_state
        assert "a_output" in first.state_after.shared_state
        assert first.state_after.decisions[-1].decision == "Executed A"
        assert first.next_nodes == ["b"]
        assert len(result.final_state.decisions) == 3
        assert result.final_state.current_phase.value == "complete"

    @pytest.mark.asyncio
    async def test_coverage_bounds(self, simulator, make_graph):
        """Test coverage stays within 0..100 and is 100 only with full coverage."""
        graphs = [
            make_graph(["a", "b"], [Edge("e1", "a", "b", condition="state.go === true")]),
            make_graph(["a", "b", "c"], [("a", "b"), ("b", "c")]),
            make_graph(["a", "b", "c"], [("a", "b"), ("a", "c"), ("b", "c")]),
        ]
        for graph in graphs:
            result = await simulator.start_simulation(graph)

            assert 0 <= result.coverage_percentage <= 100
            assert 0 <= result.edge_coverage_percentage <= 100
            full = set(result.nodes_covered) == {node.id for node in graph.nodes}
            assert (result.coverage_percentage == 100) == full

    def test_run_simulation_helper(self, linear_graph):
        """Test the synchronous wrapper."""
        result = run_simulation(linear_graph)

        assert result.status == SimulationStatus.COMPLETED
        assert result.execution_order == ["a", "b", "c"]


# =============================================================================
# Routing Tests
# =============================================================================

class TestRouting:
    """Tests for conditional routing during simulation."""

    @pytest.mark.asyncio
    async def test_unmet_condition_skips_target(self, simulator, make_graph):
        """Test an unset flag does not satisfy the edge."""
        graph = make_graph(["a", "b"], [Edge("e1", "a", "b", condition="state.approved === true")])

        result = await simulator.start_simulation(graph)

        assert result.status == SimulationStatus.COMPLETED
        assert result.execution_order == ["a"]
        assert result.coverage_percentage == 50.0
        assert result.nodes_skipped == ["b"]
        assert result.edges_covered == []
        decision = result.steps[0].routing_decision
        assert decision.edge_id == "e1"
        assert not decision.condition_met
        assert decision.reason == "Expression evaluated to false"

    @pytest.mark.asyncio
    async def test_mock_inputs_satisfy_condition(self, simulator, make_graph):
        """Test mock inputs seed shared state."""
        graph = make_graph(["a", "b"], [Edge("e1", "a", "b", condition="state.approved === true")])

        result = await simulator.start_simulation(graph, {"mockInputs": {"approved": True}})

        assert result.execution_order == ["a", "b"]
        assert result.edges_covered == ["e1"]
        assert len(result.branching_decisions) == 1

    @pytest.mark.asyncio
    async def test_step_keeps_taken_edge_decision(self, simulator, make_graph):
        """Test a later unmet edge does not replace the decision of the taken one."""
        graph = make_graph(
            ["a", "b", "c"],
            [
                Edge("e1", "a", "b", condition="state.go === true"),
                Edge("e2", "a", "c", condition="state.go === false"),
            ],
        )

        result = await simulator.start_simulation(graph, {"mockInputs": {"go": True}})

        decision = result.steps[0].routing_decision
        assert result.execution_order == ["a", "b"]
        assert decision.edge_id == "e1"
        assert decision.condition_met

    @pytest.mark.asyncio
    async def test_priority_selects_single_edge(self, simulator, make_graph):
        """Test prioritized edges follow only the winner."""
        graph = make_graph(
            ["a", "b", "c"],
            [Edge("e1", "a", "b", priority=1), Edge("e2", "a", "c", priority=5)],
        )

        result = await simulator.start_simulation(graph)

        assert result.execution_order == ["a", "c"]
        assert result.coverage_percentage == pytest.approx(200 / 3)
        assert [d.to_node_id for d in result.branching_decisions] == ["c"]
        assert result.steps[0].routing_decision.edge_id == "e2"

    @pytest.mark.asyncio
    async def test_state_updates_drive_routing(self, simulator, make_graph):
        """Test behaviors can set state that later edges read."""
        graph = make_graph(
            ["review", "publish", "rework"],
            [
                Edge("e1", "review", "publish", condition=RoutingCondition.state_check(
                    "verdict", ConditionOperator.EQUALS, "ok")),
                Edge("e2", "review", "rework", condition=RoutingCondition.state_check(
                    "verdict", ConditionOperator.NOT_EQUALS, "ok")),
            ],
        )
        config = {"custom_node_behaviors": {"review": lambda inputs: {"state_updates": {"verdict": "ok"}}}}

        result = await simulator.start_simulation(graph, config)

        assert result.execution_order == ["review", "publish"]
        assert result.final_state.shared_state["verdict"] == "ok"


# =============================================================================
# Loop Tests
# =============================================================================

class TestLoops:
    """Tests for registered loops."""

    @pytest.mark.asyncio
    async def test_loop_stops_at_cap(self, simulator, loop_graph):
        """Test a never-satisfied exit condition runs the body max_iterations times."""
        behavior, calls = _counting_behavior()
        loop = _refine_loop(
            RoutingCondition.state_check("counter", ConditionOperator.GREATER_THAN, 10),
            max_iterations=3,
        )

        result = await simulator.start_simulation(loop_graph, {
            "loops": [loop],
            "custom_node_behaviors": {"work": behavior},
        })

        assert result.status == SimulationStatus.COMPLETED
        assert calls["count"] == 3
        assert result.execution_order == [
            "start", "work", "review", "work", "review", "work", "review", "done",
        ]
        summary = result.loop_summaries[0]
        assert summary.iterations == 3
        assert summary.exit_reason == LoopExitReason.MAX_ITERATIONS
        assert summary.reason == "Max iterations reached (3)"
        assert [s.iteration for s in result.steps if s.node_id == "work"] == [1, 2, 3]
        assert all(s.loop_id == "refine" for s in result.steps[1:7])
        assert result.final_state.shared_state["counter"] == 3
        assert "Workflow contains cycles - may not terminate" in result.validation_warnings
        assert result.edge_coverage_percentage == 100.0

    @pytest.mark.asyncio
    async def test_loop_exits_on_condition(self, simulator, loop_graph):
        """Test a satisfied exit condition ends the loop early."""
        behavior, calls = _counting_behavior()
        loop = _refine_loop(
            RoutingCondition.state_check("counter", ConditionOperator.EQUALS, 2),
            max_iterations=5,
        )

        result = await simulator.start_simulation(loop_graph, {
            "loops": [loop.to_dict()],
            "custom_node_behaviors": {"work": behavior},
        })

        summary = result.loop_summaries[0]
        assert calls["count"] == 2
        assert summary.iterations == 2
        assert summary.exit_reason == LoopExitReason.CONDITION_SATISFIED
        assert result.execution_order[-1] == "done"

    @pytest.mark.asyncio
    async def test_cycle_without_loop_runs_once(self, simulator, loop_graph):
        """Test an unregistered cycle never re-executes nodes."""
        result = await simulator.start_simulation(loop_graph)

        assert result.execution_order == ["start", "work", "review", "done"]
        assert result.loop_summaries == []

    @pytest.mark.asyncio
    async def test_loop_with_unknown_entry(self, simulator, linear_graph):
        """Test loops pointing at missing nodes are ignored with a warning."""
        loop = Loop(
            id="ghost",
            entry_node_id="nowhere",
            exit_node_id="c",
            repeat_until=RoutingCondition.always(),
            max_iterations=2,
        )

        result = await simulator.start_simulation(linear_graph, {"loops": [loop]})

        assert "Loop ghost entry node not found: nowhere" in result.validation_warnings
        assert result.execution_order == ["a", "b", "c"]


# =============================================================================
# Behavior and Artifact Tests
# =============================================================================

class TestBehaviors:
    """Tests for custom node behaviors."""

    @pytest.mark.asyncio
    async def test_artifacts_flow_along_edges(self, simulator, make_graph):
        """Test artifacts referenced by an edge become the target's inputs."""
        received = {}

        def consumer(inputs):
            received.update(inputs)
            return {"outputs": {"ok": True}}

        graph = make_graph(["a", "b"], [Edge("e1", "a", "b", artifact_ref="outline")])
        config = {"custom_node_behaviors": {
            "a": lambda inputs: {"artifacts": {"outline": {"title": "X"}}},
            "b": consumer,
        }}

        result = await simulator.start_simulation(graph, config)

        assert received == {"outline": {"title": "X"}}
        assert result.steps[1].input_artifacts == ["outline"]
        assert result.steps[0].output_artifacts == ["outline"]

    @pytest.mark.asyncio
    async def test_async_behavior_and_overrides(self, simulator, make_graph):
        """Test coroutine behaviors and reported estimates."""
        async def behavior(inputs):
            await asyncio.sleep(0)
            return {"outputs": {"x": 1}, "artifacts": ["out.json"], "executionTimeMs": 50, "tokens": 10}

        graph = make_graph(["a"])

        result = await simulator.start_simulation(graph, {"custom_node_behaviors": {"a": behavior}})

        step = result.steps[0]
        assert step.outputs == {"x": 1}
        assert step.output_artifacts == ["out.json"]
        assert step.execution_time_ms == 50
        assert step.estimated_tokens == 10

    @pytest.mark.asyncio
    async def test_missing_inputs_warning(self, simulator, make_graph, make_node):
        """Test declared inputs nobody produced are reported on the step."""
        graph = make_graph([make_node("a"), make_node("b", inputs=["design"])], [("a", "b")])

        result = await simulator.start_simulation(graph)

        assert "Missing inputs: design" in result.steps[1].warnings

    @pytest.mark.asyncio
    async def test_mock_artifacts_satisfy_inputs(self, simulator, make_graph, make_node):
        """Test pre-seeded artifacts count as available inputs."""
        received = {}
        graph = make_graph([make_node("a", inputs=["brief"])])
        config = {
            "mock_artifacts": {"brief": "Build a CLI"},
            "custom_node_behaviors": {"a": lambda inputs: received.update(inputs)},
        }

        result = await simulator.start_simulation(graph, config)

        assert received == {"brief": "Build a CLI"}
        assert result.steps[0].warnings == []

    @pytest.mark.asyncio
    async def test_schema_violation_warning(self, simulator, make_graph):
        """Test artifacts failing their schema are reported."""
        graph = make_graph(["a"])
        config = {
            "artifact_schemas": {"outline": {"type": "object", "required": ["title"]}},
            "custom_node_behaviors": {"a": lambda inputs: {"artifacts": {"outline": {}}}},
        }

        result = await simulator.start_simulation(graph, config)

        assert result.status == SimulationStatus.COMPLETED
        assert result.steps[0].warnings[0].startswith("Artifact outline failed validation")

    @pytest.mark.asyncio
    async def test_failing_behavior_fails_run(self, simulator, linear_graph):
        """Test a raising behavior ends the run as failed."""
        def broken(inputs):
            raise ValueError("boom")

        result = await simulator.start_simulation(linear_graph, {"custom_node_behaviors": {"b": broken}})

        assert result.status == SimulationStatus.FAILED
        assert result.failure_reason == "Node b failed: boom"
        assert result.steps[-1].action == "error"
        assert result.steps[-1].errors == ["boom"]
        assert result.nodes_skipped == ["c"]

    @pytest.mark.asyncio
    async def test_bad_return_value_fails_run(self, simulator, linear_graph):
        """Test behaviors must return a dict."""
        result = await simulator.start_simulation(
            linear_graph, {"custom_node_behaviors": {"a": lambda inputs: "done"}}
        )

        assert result.status == SimulationStatus.FAILED
        assert "must return a dict" in result.failure_reason


# =============================================================================
# Pre-flight and Limit Tests
# =============================================================================

class TestPreflightAndLimits:
    """Tests for structural warnings and run limits."""

    @pytest.mark.asyncio
    async def test_no_entry_nodes(self, simulator, make_graph):
        """Test a graph where every node has a predecessor cannot start."""
        graph = make_graph(["a", "b"], [("a", "b"), ("b", "a")])

        result = await simulator.start_simulation(graph)

        assert result.status == SimulationStatus.FAILED
        assert result.failure_reason == "No entry nodes"
        assert "No entry nodes found" in result.validation_errors
        assert result.steps == []
        assert result.coverage_percentage == 0
        assert result.nodes_skipped == ["a", "b"]

    @pytest.mark.asyncio
    async def test_structural_warnings(self, simulator, make_graph):
        """Test disconnected nodes and dangling edges are warned about."""
        graph = make_graph(["a", "b", "c"], [("a", "b"), ("b", "ghost")])

        result = await simulator.start_simulation(graph)

        assert "Disconnected nodes: c" in result.validation_warnings
        assert "Edge e2 references unknown node: ghost" in result.validation_warnings
        assert result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_max_steps(self, simulator, linear_graph):
        """Test the step cap stops the run with a warning."""
        result = await simulator.start_simulation(linear_graph, {"maxSteps": 2})

        assert result.status == SimulationStatus.COMPLETED
        assert result.execution_order == ["a", "b"]
        assert "Simulation exceeded max steps (2)" in result.validation_warnings

    @pytest.mark.asyncio
    async def test_timeout(self, simulator, linear_graph):
        """Test the timeout is checked between steps."""
        async def slow(inputs):
            await asyncio.sleep(0.05)
            return {}

        result = await simulator.start_simulation(
            linear_graph, {"timeout": 10, "custom_node_behaviors": {"a": slow}}
        )

        assert result.execution_order == ["a"]
        assert "Simulation timed out after 10 ms" in result.validation_warnings

    @pytest.mark.asyncio
    async def test_invalid_config_fails_run(self, simulator, linear_graph):
        """Test malformed configuration ends the run as failed without raising."""
        result = await simulator.start_simulation(linear_graph, {"mode": "turbo"})

        assert result.status == SimulationStatus.FAILED
        assert result.failure_reason.startswith("Invalid simulation config")
        assert "mode" in result.failure_reason
        assert result.steps == []
        assert simulator.get_simulation(result.id) is result


# =============================================================================
# Pause / Resume Tests
# =============================================================================

class TestPauseResume:
    """Tests for breakpoints and step-by-step mode."""

    @pytest.mark.asyncio
    async def test_breakpoint(self, simulator, linear_graph):
        """Test a breakpoint pauses after its node and resume finishes the run."""
        result = await simulator.start_simulation(
            linear_graph, {"mode": "breakpoints", "breakpoints": ["b"]}
        )

        assert result.status == SimulationStatus.PAUSED
        assert result.execution_order == ["a", "b"]

        resumed = await simulator.resume_simulation(result.id)

        assert resumed is result
        assert result.status == SimulationStatus.COMPLETED
        assert result.execution_order == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_breakpoints_ignored_in_fast_forward(self, simulator, linear_graph):
        """Test breakpoints only apply in breakpoint mode."""
        result = await simulator.start_simulation(linear_graph, {"breakpoints": ["a"]})

        assert result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_step_by_step(self, simulator, linear_graph):
        """Test each resume advances one step."""
        result = await simulator.start_simulation(linear_graph, {"mode": "step-by-step"})
        lengths = [len(result.steps)]

        while result.status == SimulationStatus.PAUSED:
            await simulator.resume_simulation(result.id)
            lengths.append(len(result.steps))

        assert lengths == [1, 2, 3, 3]
        assert result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resume_finished_run(self, simulator, linear_graph):
        """Test resuming a completed run returns it unchanged."""
        result = await simulator.start_simulation(linear_graph)

        again = await simulator.resume_simulation(result.id)

        assert again.status == SimulationStatus.COMPLETED
        assert len(again.steps) == 3

    @pytest.mark.asyncio
    async def test_resume_unknown(self, simulator):
        """Test resuming an unknown simulation raises."""
        with pytest.raises(SimulationError):
            await simulator.resume_simulation("sim-missing")

    @pytest.mark.asyncio
    async def test_get_simulation(self, simulator, linear_graph):
        """Test results are retrievable by id."""
        result = await simulator.start_simulation(linear_graph)

        assert simulator.get_simulation(result.id) is result
        assert simulator.get_simulation("sim-missing") is None


# =============================================================================
# Event Tests
# =============================================================================

class TestEvents:
    """Tests for simulation events."""

    @pytest.mark.asyncio
    async def test_event_sequence(self, simulator, linear_graph):
        """Test listeners see every step and the completion."""
        events = []
        simulator.add_event_listener(events.append)

        await simulator.start_simulation(linear_graph)

        assert [e.type for e in events] == [
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.COMPLETE,
        ]
        assert events[0].step.node_id == "a"
        assert events[-1].result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_pause_and_resume_events(self, simulator, linear_graph):
        """Test pause and resume are announced."""
        types = []

        async def listener(event):
            types.append(event.type)

        simulator.add_event_listener(listener)
        result = await simulator.start_simulation(linear_graph, {"mode": "breakpoints", "breakpoints": ["a"]})
        await simulator.resume_simulation(result.id)

        assert types == [
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.PAUSE,
            SimulationEventType.RESUME,
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.STEP_COMPLETE,
            SimulationEventType.COMPLETE,
        ]

    @pytest.mark.asyncio
    async def test_error_event(self, simulator, make_graph):
        """Test failures are announced with their reason."""
        events = []
        simulator.add_event_listener(events.append)

        await simulator.start_simulation(make_graph(["a", "b"], [("a", "b"), ("b", "a")]))

        assert events[-1].type == SimulationEventType.ERROR
        assert events[-1].error == "No entry nodes"

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_run(self, simulator, linear_graph):
        """Test listener errors are contained."""
        def broken(event):
            raise RuntimeError("listener bug")

        simulator.add_event_listener(broken)

        result = await simulator.start_simulation(linear_graph)

        assert result.status == SimulationStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_remove_listener(self, simulator, linear_graph):
        """Test removed listeners receive nothing."""
        events = []
        simulator.add_event_listener(events.append)
        simulator.remove_event_listener(events.append)

        await simulator.start_simulation(linear_graph)

        assert events == []


# =============================================================================
# Checkpoint Integration Tests
# =============================================================================

class TestCheckpoints:
    """Tests for automatic checkpoints during simulation."""

    @pytest.mark.asyncio
    async def test_checkpoint_around_each_step(self, linear_graph):
        """Test a checkpoint is taken before and after every node."""
        manager = CheckpointManager(max_checkpoints=100)
        simulator = WorkflowSimulator(checkpoint_manager=manager)

        await simulator.start_simulation(linear_graph)

        checkpoints = manager.list_checkpoints(linear_graph.id)
        assert len(checkpoints) == 6
        assert checkpoints[0].tags == ["auto", "pre-agent"]
        assert checkpoints[0].current_agent == "a"
        latest = checkpoints[-1]
        assert latest.tags == ["auto", "post-agent"]
        assert [r.agent_id for r in latest.execution_history] == ["a", "b", "c"]
        assert len(latest.nodes) == 3

    @pytest.mark.asyncio
    async def test_recovery_point_on_failure(self, linear_graph):
        """Test a failing node leaves a recovery checkpoint."""
        manager = CheckpointManager(max_checkpoints=100, auto_checkpoint=False)
        simulator = WorkflowSimulator(checkpoint_manager=manager)

        def broken(inputs):
            raise ValueError("boom")

        await simulator.start_simulation(linear_graph, {"custom_node_behaviors": {"b": broken}})

        checkpoints = manager.list_checkpoints(linear_graph.id)
        assert len(checkpoints) == 1
        assert "recovery-point" in checkpoints[0].tags
        assert checkpoints[0].execution_history[-1].status.value == "failure"


# =============================================================================
# Serialization Tests
# =============================================================================

@pytest.mark.asyncio
async def test_result_document(simulator, diamond_graph):
    """Test the result document uses camelCase keys."""
    result = await simulator.start_simulation(diamond_graph)

    document = result.to_dict()

    assert document["status"] == "completed"
    assert document["executionOrder"] == ["start", "left", "right", "end"]
    assert document["coveragePercentage"] == 100.0
    assert document["steps"][0]["nodeId"] == "start"
    assert document["parallelBlocks"] == [["left", "right"]]
