"""
Dry-run execution of workflow graphs.

The WorkflowSimulator walks a graph breadth-first from its entry nodes,
running a mock behavior for each node instead of a real agent. A dequeued
node waits while one of its predecessors is still queued or reachable
from the queue, so every edge source runs before its target. Each node
runs once per simulation unless it belongs to a registered loop, whose body
is re-executed once per iteration. Every step commits its outputs to the
artifact registry and shared state before the node's outgoing edges are
evaluated.

Runs can pause at breakpoints or after every step and be resumed later.
"""

import asyncio
import copy
import inspect
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from ..config import SimulationConfig
from ..exceptions import SimulationError, WorkflowCoreError
from ..graph.analysis import GraphAnalysis
from ..graph.types import (
    DecisionRecord,
    Edge,
    Node,
    RoutingCondition,
    WorkflowGraph,
    WorkflowPhase,
    WorkflowState,
)
from ..routing.conditions import BranchDecision, RoutingContext
from ..routing.engine import Loop, RoutingEngine
from ..routing.evaluator import ConditionEvaluator
from ..state.artifacts import ArtifactRegistry, ArtifactValidationStatus
from ..state.checkpoint import (
    AutoCheckpointHook,
    CheckpointManager,
    ExecutionRecord,
    ExecutionStatus,
)
from .analysis import analyze_execution_graph
from .estimation import estimate_cost, estimate_execution_time, estimate_tokens
from .events import Listener, SimulationEventBus
from .types import (
    EdgeDecision,
    LoopSummary,
    NodeBehaviorResult,
    SimulationEvent,
    SimulationEventType,
    SimulationResult,
    SimulationStatus,
    SimulationStep,
)

logger = logging.getLogger(__name__)

MOCK_ARTIFACT_AUTHOR = "mock-input"


@dataclass
class _SimulationRun:
    """Traversal state kept while a simulation is running or paused."""
    graph: WorkflowGraph
    config: SimulationConfig
    result: SimulationResult
    state: WorkflowState
    artifacts: ArtifactRegistry
    engine: RoutingEngine
    queue: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    completed_loops: Set[str] = field(default_factory=set)
    execution_history: List[ExecutionRecord] = field(default_factory=list)
    active_seconds: float = 0.0
    segment_started: float = 0.0

    @property
    def pending(self) -> List[str]:
        return [node_id for node_id in self.queue if node_id not in self.visited]


class WorkflowSimulator:
    """
    Simulates workflow execution with mock node behaviors.

    Features:
    - Breadth-first traversal honoring edge conditions and priorities
    - Registered loops re-executed through the RoutingEngine
    - Fast-forward, step-by-step and breakpoint modes with resume
    - Time, token and cost estimates per step
    - Static analysis: parallel blocks, critical path, bottlenecks
    - Optional automatic checkpoints around every step
    """

    def __init__(
        self,
        checkpoint_manager: Optional[CheckpointManager] = None,
        evaluator: Optional[ConditionEvaluator] = None
    ):
        """
        Initialize the simulator.

        Args:
            checkpoint_manager: Receives automatic checkpoints when given
            evaluator: Condition evaluator shared by every run
        """
        self.checkpoint_manager = checkpoint_manager
        self.checkpoint_hook = AutoCheckpointHook(checkpoint_manager) if checkpoint_manager else None
        self.evaluator = evaluator or ConditionEvaluator()
        self.event_bus = SimulationEventBus()
        self._simulations: Dict[str, SimulationResult] = {}
        self._runs: Dict[str, _SimulationRun] = {}

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start_simulation(
        self,
        graph: WorkflowGraph,
        config: Union[SimulationConfig, Dict[str, Any], None] = None
    ) -> SimulationResult:
        """
        Simulate ``graph``.

        Failures never raise. An invalid config, a graph without entry nodes,
        a failing node behavior or any unexpected error ends the run with
        status ``failed`` and a ``failure_reason``.

        Args:
            graph: Workflow to simulate
            config: SimulationConfig, config document or None for defaults

        Returns:
            The result, completed, paused or failed
        """
        result = SimulationResult(
            id=f"sim-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            workflow_id=graph.id,
        )
        self._simulations[result.id] = result

        run: Optional[_SimulationRun] = None
        try:
            try:
                config = SimulationConfig.from_value(config)
            except ValidationError as e:
                raise SimulationError(
                    f"Invalid simulation config: {e}", simulation_id=result.id, workflow_id=graph.id
                ) from e
            logger.info(f"Starting simulation {result.id} of workflow {graph.id} ({config.mode})")

            analysis = GraphAnalysis(graph)
            self._preflight(graph, analysis, result)

            entry_nodes = analysis.find_entry_points()
            if not entry_nodes:
                result.validation_errors.append("No entry nodes found")
                self._calculate_coverage(graph, result)
                await self._fail(result, "No entry nodes")
                return result

            execution = analyze_execution_graph(graph, config, analysis)
            result.parallel_blocks = execution.parallel_blocks
            result.peak_parallelism = execution.peak_parallelism
            result.critical_path = execution.critical_path
            result.bottlenecks = execution.bottlenecks
            result.estimated_parallel_time = execution.estimated_parallel_time
            result.total_steps = len(execution.depths)

            run = self._prepare_run(graph, config, result, entry_nodes)
            self._runs[result.id] = run
            await self._execute(run)
        except Exception as e:
            await self._fail(result, _failure_reason(e), run, e)

        return result

    async def resume_simulation(self, simulation_id: str) -> SimulationResult:
        """
        Continue a paused simulation.

        Resuming a run that is not paused logs a warning and returns it
        unchanged.

        Raises:
            SimulationError: If no simulation has this id
        """
        result = self._simulations.get(simulation_id)
        if result is None:
            raise SimulationError(f"Simulation not found: {simulation_id}", simulation_id=simulation_id)

        run = self._runs.get(simulation_id)
        if run is None or result.status != SimulationStatus.PAUSED:
            logger.warning(f"Simulation {simulation_id} is not paused ({result.status.value})")
            return result

        result.status = SimulationStatus.RUNNING
        logger.info(f"Resuming simulation {simulation_id} with {len(run.pending)} pending node(s)")
        await self._emit(SimulationEventType.RESUME, result, include_result=True)
        try:
            await self._execute(run)
        except Exception as e:
            await self._fail(result, _failure_reason(e), run, e)
        return result

    def get_simulation(self, simulation_id: str) -> Optional[SimulationResult]:
        return self._simulations.get(simulation_id)

    def add_event_listener(self, listener: Listener, simulation_id: Optional[str] = None) -> None:
        """Listen to one simulation, or to all of them when ``simulation_id`` is None."""
        self.event_bus.subscribe(listener, simulation_id)

    def remove_event_listener(self, listener: Listener, simulation_id: Optional[str] = None) -> None:
        self.event_bus.unsubscribe(listener, simulation_id)

    # -------------------------------------------------------------------------
    # Setup
    # -------------------------------------------------------------------------

    def _preflight(self, graph: WorkflowGraph, analysis: GraphAnalysis, result: SimulationResult) -> None:
        """Structural checks reported as warnings."""
        if len(graph.nodes) > 1:
            disconnected = [
                node_id for node_id in analysis.node_ids
                if analysis.incoming_edge_count(node_id) == 0 and analysis.outgoing_edge_count(node_id) == 0
            ]
            if disconnected:
                result.validation_warnings.append(f"Disconnected nodes: {', '.join(disconnected)}")

        if analysis.has_cycles():
            result.validation_warnings.append("Workflow contains cycles - may not terminate")

        if len(graph.nodes) > 1 and not analysis.find_exit_points():
            result.validation_warnings.append("No terminal nodes found")

        for edge in analysis.dangling_edges:
            missing = edge.source if edge.source not in analysis.links else edge.target
            result.validation_warnings.append(f"Edge {edge.id} references unknown node: {missing}")

    def _prepare_run(
        self,
        graph: WorkflowGraph,
        config: SimulationConfig,
        result: SimulationResult,
        entry_nodes: List[str]
    ) -> _SimulationRun:
        artifacts = ArtifactRegistry()
        for path, schema in config.artifact_schemas.items():
            artifacts.register_schema(path, schema)
        for path, content in config.mock_artifacts.items():
            artifacts.create_artifact(
                path, content, MOCK_ARTIFACT_AUTHOR, schema_id=self._schema_for(config, path)
            )

        engine = RoutingEngine(self.evaluator)
        for loop in config.loops:
            if graph.get_node(loop.entry_node_id) is None:
                result.validation_warnings.append(
                    f"Loop {loop.id} entry node not found: {loop.entry_node_id}"
                )
                continue
            engine.register_loop(loop)

        return _SimulationRun(
            graph=graph,
            config=config,
            result=result,
            state=WorkflowState(
                current_phase=WorkflowPhase.PLANNING,
                shared_state=copy.deepcopy(config.mock_inputs),
            ),
            artifacts=artifacts,
            engine=engine,
            queue=deque(entry_nodes),
        )

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    async def _execute(self, run: _SimulationRun) -> None:
        """Drain the queue until it empties, a limit is hit or the run pauses."""
        result = run.result
        config = run.config
        run.segment_started = time.monotonic()
        deferred = 0

        while run.queue:
            if len(result.steps) >= config.max_steps:
                break
            if self._timed_out(run):
                result.validation_warnings.append(f"Simulation timed out after {config.timeout:g} ms")
                logger.warning(f"Simulation {result.id} exceeded its {config.timeout:g} ms budget")
                break

            node_id = run.queue.popleft()
            if node_id in run.visited:
                continue

            node = run.graph.get_node(node_id)
            if node is None:
                run.visited.add(node_id)
                result.validation_warnings.append(f"Node not found: {node_id}")
                continue

            # Once every queued node has been deferred in a row, run anyway
            if deferred <= len(run.queue) and self._waiting_on_predecessor(run, node_id):
                run.queue.append(node_id)
                deferred += 1
                continue
            deferred = 0

            loop = run.engine.find_loop_by_entry(node_id)
            if loop is not None and loop.id not in run.completed_loops:
                executed = await self._run_loop(run, loop)
            else:
                run.visited.add(node_id)
                step = await self._execute_node(run, node)
                self._route(run, node_id, run.graph.outgoing_edges(node_id), step)
                self._after_step(run, node_id)
                executed = [node_id]

            if executed and self._should_pause(config, executed):
                run.active_seconds += time.monotonic() - run.segment_started
                result.status = SimulationStatus.PAUSED
                result.final_state = run.state
                logger.info(f"Simulation {result.id} paused after {executed[-1]}")
                await self._emit(SimulationEventType.PAUSE, result, include_result=True)
                return

        if run.pending and len(result.steps) >= config.max_steps:
            result.validation_warnings.append(f"Simulation exceeded max steps ({config.max_steps})")
            logger.warning(f"Simulation {result.id} stopped at the {config.max_steps} step cap")

        await self._complete(run)

    def _waiting_on_predecessor(self, run: _SimulationRun, node_id: str) -> bool:
        """
        Whether an unvisited predecessor of ``node_id`` may still run.

        A predecessor may still run when it is queued, or reachable from a
        queued node without passing through ``node_id`` or visited nodes.
        Loop edges and edges from a loop's own body into its entry do not
        count as dependencies.
        """
        loop = run.engine.find_loop_by_entry(node_id)
        body = set(loop.body) if loop is not None else set()
        predecessors = {
            edge.source
            for edge in run.graph.incoming_edges(node_id)
            if not edge.is_loop_edge
            and edge.source not in body
            and edge.source not in run.visited
            and edge.source != node_id
        }
        if not predecessors:
            return False

        frontier = [queued for queued in run.queue if queued != node_id and queued not in run.visited]
        seen = set(frontier)
        while frontier:
            current = frontier.pop()
            if current in predecessors:
                return True
            for edge in run.graph.outgoing_edges(current):
                target = edge.target
                if target == node_id or target in run.visited or target in seen:
                    continue
                seen.add(target)
                frontier.append(target)
        return False

    def _should_pause(self, config: SimulationConfig, executed: List[str]) -> bool:
        if config.mode == "step-by-step":
            return True
        if config.mode == "breakpoints":
            return any(node_id in config.breakpoints for node_id in executed)
        return False

    def _timed_out(self, run: _SimulationRun) -> bool:
        if run.config.timeout is None:
            return False
        elapsed = run.active_seconds + time.monotonic() - run.segment_started
        return elapsed * 1000 >= run.config.timeout

    async def _run_loop(self, run: _SimulationRun, loop: Loop) -> List[str]:
        """
        Drive a registered loop to completion.

        The body runs once per iteration until the RoutingEngine reports
        the exit condition or the iteration cap. Traversal then follows the
        edges leaving the body and the loop's exit node.

        Returns:
            Ids of the nodes executed
        """
        engine = run.engine
        result = run.result
        executed: List[str] = []
        last_step: Optional[SimulationStep] = None
        step_cap_hit = False

        run.state = engine.enter_loop(loop.id, run.state)
        while True:
            decision = engine.should_continue_loop(loop.id, self._context(run, loop.entry_node_id))
            if not decision.should_continue:
                break

            iteration = decision.current_iteration + 1
            for member_id in loop.body:
                if len(result.steps) >= run.config.max_steps:
                    step_cap_hit = True
                    break
                node = run.graph.get_node(member_id)
                if node is None:
                    if iteration == 1:
                        result.validation_warnings.append(f"Loop {loop.id} member not found: {member_id}")
                    continue
                last_step = await self._execute_node(run, node, loop_id=loop.id, iteration=iteration)
                self._after_step(run, member_id)
                executed.append(member_id)

            run.state = engine.increment_loop_iteration(loop.id, run.state)
            if step_cap_hit:
                break

        loop_state = engine.get_loop_state(loop.id)
        exit_reason = None if step_cap_hit else decision.exit_reason
        reason = "Simulation step limit reached" if step_cap_hit else decision.reason
        run.state = engine.exit_loop(loop.id, run.state, exit_reason)
        run.completed_loops.add(loop.id)
        run.visited.update(loop.body)
        result.loop_summaries.append(LoopSummary(
            loop_id=loop.id,
            iterations=loop_state.current_iteration,
            exit_reason=exit_reason,
            reason=reason,
        ))

        body = set(loop.body)
        if last_step is not None:
            for edge in run.graph.edges:
                if edge.source in body and edge.target in body:
                    self._mark_edge(result, edge)
            for member_id in loop.body:
                leaving = [edge for edge in run.graph.outgoing_edges(member_id) if edge.target not in body]
                if leaving:
                    self._route(run, member_id, leaving, last_step)

        if loop.exit_node_id not in body and loop.exit_node_id not in run.visited:
            if loop.exit_node_id not in run.queue:
                run.queue.append(loop.exit_node_id)
                if last_step is not None:
                    last_step.next_nodes.append(loop.exit_node_id)

        logger.info(f"Loop {loop.id} finished after {loop_state.current_iteration} iteration(s): {reason}")
        return executed

    async def _execute_node(
        self,
        run: _SimulationRun,
        node: Node,
        loop_id: Optional[str] = None,
        iteration: Optional[int] = None
    ) -> SimulationStep:
        """Run one node's behavior and commit its outputs."""
        result = run.result
        config = run.config
        if self.checkpoint_hook:
            self.checkpoint_hook.before_agent(node.id, **self._checkpoint_snapshot(run))

        started = time.time()
        inputs, input_artifacts = self._gather_inputs(run, node)
        state_before = run.state
        step = SimulationStep(
            step_number=len(result.steps) + 1,
            timestamp=started,
            node_id=node.id,
            node_name=node.display_name,
            inputs=inputs,
            input_artifacts=input_artifacts,
            state_before=state_before,
            loop_id=loop_id,
            iteration=iteration,
        )

        try:
            outcome = await self._run_behavior(run, node, inputs)
        except Exception as e:
            step.action = "error"
            step.errors.append(str(e))
            step.state_after = state_before
            self._record_step(run, step)
            run.execution_history.append(self._execution_record(
                node, started, step, [], ExecutionStatus.FAILURE, str(e)
            ))
            raise SimulationError(
                f"Node {node.id} failed: {e}", simulation_id=result.id, node_id=node.id
            ) from e

        created_ids = []
        for path, content in outcome.artifacts.items():
            metadata = run.artifacts.put(path, content, node.id, schema_id=self._schema_for(config, path))
            created_ids.append(metadata.id)
            step.output_artifacts.append(path)
            if metadata.validation_status == ArtifactValidationStatus.INVALID:
                step.warnings.append(
                    f"Artifact {path} failed validation: {'; '.join(metadata.validation_errors)}"
                )

        updates = {f"{node.id}_output": outcome.outputs}
        updates.update(outcome.state_updates)
        state_after = state_before.with_updates(updates).with_decision(DecisionRecord(
            agent_id=node.id,
            decision=f"Executed {node.display_name}",
            rationale="Simulated execution",
            timestamp=time.time(),
        ))
        if state_after.current_phase == WorkflowPhase.PLANNING:
            state_after = state_after.with_phase(WorkflowPhase.EXECUTION)

        step.outputs = outcome.outputs
        step.mock_response = f"Mock output from {node.display_name}"
        step.execution_time_ms = (
            outcome.execution_time_ms
            if outcome.execution_time_ms is not None
            else estimate_execution_time(node, config)
        )
        step.estimated_tokens = outcome.tokens if outcome.tokens is not None else estimate_tokens(node, config)
        step.estimated_cost = estimate_cost(step.estimated_tokens, config.cost_per_token)
        step.state_after = state_after

        missing = [
            name for name in node.inputs
            if not run.artifacts.has(name) and name not in state_before.shared_state
        ]
        if missing:
            step.warnings.append(f"Missing inputs: {', '.join(missing)}")

        run.state = state_after
        self._record_step(run, step)
        run.execution_history.append(self._execution_record(
            node, started, step, created_ids, ExecutionStatus.SUCCESS
        ))
        logger.debug(f"Simulation {result.id} step {step.step_number}: {node.id}")

        await self._emit(SimulationEventType.STEP_COMPLETE, result, step=step)
        return step

    async def _run_behavior(self, run: _SimulationRun, node: Node, inputs: Dict[str, Any]) -> NodeBehaviorResult:
        behavior: Optional[Callable[..., Any]] = run.config.custom_node_behaviors.get(node.id)
        if behavior is None:
            outputs = {
                "result": f"Mock output from {node.display_name}",
                "status": "success",
                "timestamp": time.time(),
            }
            return NodeBehaviorResult(
                outputs=outputs,
                artifacts={path: outputs for path in node.outputs},
            )

        value = behavior(copy.deepcopy(inputs))
        if inspect.isawaitable(value):
            value = await value
        return NodeBehaviorResult.from_value(value)

    def _gather_inputs(self, run: _SimulationRun, node: Node) -> Tuple[Dict[str, Any], List[str]]:
        """Artifacts referenced by incoming edges, then declared inputs that exist as artifacts."""
        inputs: Dict[str, Any] = {}
        input_artifacts: List[str] = []
        for edge in run.graph.incoming_edges(node.id):
            ref = edge.artifact_ref
            if ref and ref not in inputs:
                input_artifacts.append(ref)
                inputs[ref] = run.artifacts.get_content(ref)

        for name in node.inputs:
            if name not in inputs and run.artifacts.has(name):
                input_artifacts.append(name)
                inputs[name] = run.artifacts.get_content(name)
        return inputs, input_artifacts

    def _route(self, run: _SimulationRun, node_id: str, edges: List[Edge], step: SimulationStep) -> None:
        """
        Enqueue the targets of ``edges`` whose conditions hold.

        When any edge carries an explicit priority the RoutingEngine picks
        exactly one; otherwise every satisfied edge is followed.
        """
        if not edges:
            return
        result = run.result
        context = self._context(run, node_id)

        if any(_has_explicit_priority(edge) for edge in edges):
            edge = run.engine.select_edge(node_id, edges, context)
            if edge is None:
                step.warnings.append(f"No satisfied edge out of {node_id}")
                return
            decision = run.engine.get_branching_history()[-1]
            result.branching_decisions.append(decision)
            step.routing_decision = EdgeDecision(
                edge_id=edge.id,
                condition=_condition_text(edge),
                condition_met=True,
                reason=decision.result.reason,
            )
            self._follow(run, edge, step)
            return

        for edge, condition_result in run.engine.evaluate_edges(edges, context):
            # The first taken edge's decision is kept; otherwise the last evaluated one
            taken_recorded = step.routing_decision is not None and step.routing_decision.condition_met
            if edge.condition is not None and not taken_recorded:
                step.routing_decision = EdgeDecision(
                    edge_id=edge.id,
                    condition=_condition_text(edge),
                    condition_met=condition_result.satisfied,
                    reason=condition_result.reason,
                )
            if not condition_result.satisfied:
                logger.debug(f"Edge {edge.id} not taken: {condition_result.reason}")
                continue
            if edge.condition is not None:
                result.branching_decisions.append(BranchDecision(
                    from_node_id=node_id,
                    to_node_id=edge.target,
                    condition=edge.routing_condition,
                    result=condition_result,
                    edge_id=edge.id,
                ))
            self._follow(run, edge, step)

    def _follow(self, run: _SimulationRun, edge: Edge, step: SimulationStep) -> None:
        self._mark_edge(run.result, edge)
        run.queue.append(edge.target)
        step.next_nodes.append(edge.target)

    @staticmethod
    def _mark_edge(result: SimulationResult, edge: Edge) -> None:
        if edge.id not in result.edges_covered:
            result.edges_covered.append(edge.id)

    @staticmethod
    def _context(run: _SimulationRun, node_id: str) -> RoutingContext:
        return RoutingContext(
            shared_state=run.state.shared_state,
            artifacts=run.artifacts,
            current_node_id=node_id,
        )

    @staticmethod
    def _schema_for(config: SimulationConfig, path: str) -> Optional[str]:
        return path if path in config.artifact_schemas else None

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def _record_step(self, run: _SimulationRun, step: SimulationStep) -> None:
        result = run.result
        result.steps.append(step)
        result.current_step = len(result.steps)
        result.execution_order.append(step.node_id)
        if step.node_id not in result.nodes_covered:
            result.nodes_covered.append(step.node_id)
        result.total_estimated_time += step.execution_time_ms
        result.total_estimated_tokens += step.estimated_tokens
        result.total_estimated_cost += step.estimated_cost

    @staticmethod
    def _execution_record(
        node: Node,
        started: float,
        step: SimulationStep,
        created_ids: List[str],
        status: ExecutionStatus,
        error_message: Optional[str] = None
    ) -> ExecutionRecord:
        return ExecutionRecord(
            agent_id=node.id,
            agent_role=node.role.value if node.role else "",
            start_time=started,
            end_time=time.time(),
            status=status,
            artifacts_created=created_ids,
            artifacts_consumed=list(step.input_artifacts),
            error_message=error_message,
            metadata={"stepNumber": step.step_number, "simulated": True},
        )

    def _checkpoint_snapshot(self, run: _SimulationRun) -> Dict[str, Any]:
        return {
            "workflow_id": run.graph.id,
            "workflow_state": run.state,
            "nodes": run.graph.nodes,
            "edges": run.graph.edges,
            "execution_history": run.execution_history,
            "pending_agents": run.pending,
            "artifacts": run.artifacts,
        }

    def _after_step(self, run: _SimulationRun, node_id: str) -> None:
        if self.checkpoint_hook:
            self.checkpoint_hook.after_agent(node_id, **self._checkpoint_snapshot(run))

    def _finish(self, result: SimulationResult, status: SimulationStatus) -> None:
        result.status = status
        result.completed_at = time.time()
        result.duration = result.completed_at - result.started_at
        self._runs.pop(result.id, None)

    def _calculate_coverage(self, graph: WorkflowGraph, result: SimulationResult) -> None:
        node_ids = [node.id for node in graph.nodes]
        covered = set(result.nodes_covered)
        result.nodes_skipped = [node_id for node_id in node_ids if node_id not in covered]
        if node_ids:
            result.coverage_percentage = len(covered & set(node_ids)) / len(set(node_ids)) * 100
        if graph.edges:
            result.edge_coverage_percentage = min(
                100.0, len(result.edges_covered) / len(graph.edges) * 100
            )

    async def _complete(self, run: _SimulationRun) -> None:
        result = run.result
        self._calculate_coverage(run.graph, result)
        result.final_state = run.state.with_phase(WorkflowPhase.COMPLETE)
        self._finish(result, SimulationStatus.COMPLETED)
        logger.info(
            f"Simulation {result.id} completed: {len(result.steps)} steps, "
            f"{result.coverage_percentage:.1f}% node coverage"
        )
        await self._emit(SimulationEventType.COMPLETE, result, include_result=True)

    async def _fail(
        self,
        result: SimulationResult,
        reason: str,
        run: Optional[_SimulationRun] = None,
        error: Optional[BaseException] = None
    ) -> None:
        result.failure_reason = reason
        if run is not None:
            self._calculate_coverage(run.graph, result)
            result.final_state = run.state
            if self.checkpoint_hook and error is not None:
                self.checkpoint_hook.on_error(error, **self._checkpoint_snapshot(run))
        self._finish(result, SimulationStatus.FAILED)
        logger.error(f"Simulation {result.id} failed: {reason}")
        await self._emit(SimulationEventType.ERROR, result, error=reason)

    async def _emit(
        self,
        event_type: SimulationEventType,
        result: SimulationResult,
        step: Optional[SimulationStep] = None,
        error: Optional[str] = None,
        include_result: bool = False
    ) -> None:
        await self.event_bus.emit(SimulationEvent(
            type=event_type,
            simulation_id=result.id,
            step=step,
            result=result if include_result else None,
            error=error,
        ))


def _failure_reason(error: BaseException) -> str:
    if isinstance(error, WorkflowCoreError):
        return error.message
    return str(error) or type(error).__name__


def _has_explicit_priority(edge: Edge) -> bool:
    if edge.priority is not None:
        return True
    return isinstance(edge.condition, RoutingCondition) and edge.condition.priority is not None


def _condition_text(edge: Edge) -> Optional[str]:
    """Human-readable form of an edge condition."""
    if edge.condition is None:
        return None
    if isinstance(edge.condition, str):
        return edge.condition
    condition = edge.condition
    return condition.expression or condition.label or condition.type.value


def run_simulation(
    graph: WorkflowGraph,
    config: Union[SimulationConfig, Dict[str, Any], None] = None
) -> SimulationResult:
    """Synchronous convenience wrapper around ``WorkflowSimulator.start_simulation``."""
    return asyncio.run(WorkflowSimulator().start_simulation(graph, config))
