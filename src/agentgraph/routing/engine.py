"""
Routing engine for conditional branching and bounded loops.

The RoutingEngine picks the edge a workflow follows out of a node and drives
registered loops through their lifecycle:

    inactive -> active -> (iterating)* -> exited

Loops use "repeat until" semantics: the body repeats while ``repeat_until``
is NOT satisfied and stops once it is. ``max_iterations`` is a hard cap that
is checked before the exit condition, so hitting the cap is always reported
as its own reason.
"""

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import LoopError
from ..graph.types import Edge, RoutingCondition, WorkflowState
from .conditions import (
    BranchDecision,
    ConditionResult,
    LoopDecision,
    LoopExitReason,
    RoutingContext,
)
from .evaluator import ConditionEvaluator

logger = logging.getLogger(__name__)


@dataclass
class Loop:
    """A bounded, repeatable region of the workflow graph."""
    id: str
    entry_node_id: str
    exit_node_id: str
    repeat_until: RoutingCondition
    max_iterations: int
    loop_node_ids: List[str] = field(default_factory=list)
    name: str = ""
    iteration_state_key: Optional[str] = None  # Shared-state key mirroring the counter
    description: Optional[str] = None

    def __post_init__(self):
        if not self.loop_node_ids:
            self.loop_node_ids = [self.entry_node_id]

    @property
    def body(self) -> List[str]:
        """Member node ids in execution order, entry first."""
        members = [self.entry_node_id]
        members.extend(node_id for node_id in self.loop_node_ids if node_id != self.entry_node_id)
        return members

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "entryNodeId": self.entry_node_id,
            "exitNodeId": self.exit_node_id,
            "loopNodeIds": list(self.loop_node_ids),
            "repeatUntil": self.repeat_until.to_dict(),
            "maxIterations": self.max_iterations,
        }
        if self.iteration_state_key:
            data["iterationStateKey"] = self.iteration_state_key
        if self.description:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loop':
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            entry_node_id=data["entryNodeId"],
            exit_node_id=data["exitNodeId"],
            loop_node_ids=list(data.get("loopNodeIds") or []),
            repeat_until=RoutingCondition.from_dict(data.get("repeatUntil") or {}),
            max_iterations=data["maxIterations"],
            iteration_state_key=data.get("iterationStateKey"),
            description=data.get("description"),
        )


class LoopStatus(Enum):
    """Lifecycle state of a registered loop."""
    INACTIVE = "inactive"
    ACTIVE = "active"
    EXITED = "exited"


@dataclass
class IterationSnapshot:
    """Shared state captured when an iteration completes."""
    iteration: int
    timestamp: float
    state: Dict[str, Any]


@dataclass
class LoopExecutionState:
    """Mutable bookkeeping of one loop."""
    loop_id: str
    max_iterations: int
    current_iteration: int = 0
    status: LoopStatus = LoopStatus.INACTIVE
    entered_at: Optional[float] = None
    last_iteration_at: Optional[float] = None
    exited_at: Optional[float] = None
    exit_reason: Optional[LoopExitReason] = None
    iteration_history: List[IterationSnapshot] = field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.status == LoopStatus.ACTIVE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loopId": self.loop_id,
            "currentIteration": self.current_iteration,
            "maxIterations": self.max_iterations,
            "status": self.status.value,
            "enteredAt": self.entered_at,
            "lastIterationAt": self.last_iteration_at,
            "exitedAt": self.exited_at,
            "exitReason": self.exit_reason.value if self.exit_reason else None,
            "iterations": len(self.iteration_history),
        }


class RoutingEngine:
    """
    Selects branches and drives loop iteration.

    Each engine owns its loops and its branching history; create one per
    workflow run.
    """

    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or ConditionEvaluator()
        self._loops: Dict[str, Loop] = {}
        self._loop_states: Dict[str, LoopExecutionState] = {}
        self._branching_history: List[BranchDecision] = []

    # -------------------------------------------------------------------------
    # Branch selection
    # -------------------------------------------------------------------------

    def evaluate_edges(
        self,
        candidate_edges: List[Edge],
        context: RoutingContext
    ) -> List[Tuple[Edge, ConditionResult]]:
        """Evaluate every candidate edge's condition, keeping declaration order."""
        return [
            (edge, self.evaluator.evaluate(edge.routing_condition, context))
            for edge in candidate_edges
        ]

    def select_edge(
        self,
        current_node_id: str,
        candidate_edges: List[Edge],
        context: RoutingContext
    ) -> Optional[Edge]:
        """
        Pick the edge to follow out of ``current_node_id``.

        Edges without a condition always match. Among satisfied edges the
        highest priority wins; equal priorities keep declaration order.

        Returns:
            The selected edge, or None when no condition is satisfied
        """
        node_context = context.for_node(current_node_id)
        evaluated = self.evaluate_edges(candidate_edges, node_context)
        satisfied = [(edge, result) for edge, result in evaluated if result.satisfied]

        if not satisfied:
            logger.debug(f"No satisfied edge out of {current_node_id}")
            return None

        # sorted() is stable, so ties keep declaration order
        satisfied = sorted(satisfied, key=lambda item: item[0].effective_priority, reverse=True)
        edge, result = satisfied[0]

        self._branching_history.append(BranchDecision(
            from_node_id=current_node_id,
            to_node_id=edge.target,
            condition=edge.routing_condition,
            result=result,
            edge_id=edge.id,
        ))
        logger.debug(f"Routing {current_node_id} -> {edge.target} via edge {edge.id}")
        return edge

    def select_next_node(
        self,
        current_node_id: str,
        candidate_edges: List[Edge],
        context: RoutingContext
    ) -> Optional[str]:
        """Target node of the selected edge, or None on a dead end."""
        edge = self.select_edge(current_node_id, candidate_edges, context)
        return edge.target if edge else None

    def get_branching_history(self) -> List[BranchDecision]:
        """Recorded branch decisions, oldest first."""
        return list(self._branching_history)

    # -------------------------------------------------------------------------
    # Loops
    # -------------------------------------------------------------------------

    def register_loop(self, loop: Loop) -> None:
        """
        Register a loop and reset its execution state.

        Raises:
            LoopError: If the loop has no id or a non-positive iteration cap
        """
        if not loop.id:
            raise LoopError("Loop id is required")
        if loop.max_iterations is None or loop.max_iterations < 1:
            raise LoopError(
                f"Loop {loop.id} must allow at least one iteration (got {loop.max_iterations})",
                loop_id=loop.id,
            )
        self._loops[loop.id] = loop
        self._loop_states[loop.id] = LoopExecutionState(
            loop_id=loop.id,
            max_iterations=loop.max_iterations,
        )
        logger.debug(f"Registered loop {loop.id} (max {loop.max_iterations} iterations)")

    def get_loop(self, loop_id: str) -> Optional[Loop]:
        return self._loops.get(loop_id)

    @property
    def loops(self) -> List[Loop]:
        return list(self._loops.values())

    def find_loop_by_entry(self, node_id: str) -> Optional[Loop]:
        """Registered loop whose entry node is ``node_id``."""
        for loop in self._loops.values():
            if loop.entry_node_id == node_id:
                return loop
        return None

    def get_loop_state(self, loop_id: str) -> Optional[LoopExecutionState]:
        return self._loop_states.get(loop_id)

    def _require_loop(self, loop_id: str) -> Tuple[Loop, LoopExecutionState]:
        loop = self._loops.get(loop_id)
        if loop is None:
            raise LoopError(f"Loop {loop_id} is not registered", loop_id=loop_id)
        return loop, self._loop_states[loop_id]

    def enter_loop(self, loop_id: str, state: WorkflowState) -> WorkflowState:
        """
        Activate a loop with its counter at zero.

        Returns:
            Workflow state with the iteration key initialised, if one is configured
        """
        loop, loop_state = self._require_loop(loop_id)
        loop_state.status = LoopStatus.ACTIVE
        loop_state.entered_at = time.time()
        loop_state.current_iteration = 0
        loop_state.exit_reason = None
        loop_state.exited_at = None
        loop_state.iteration_history = []

        logger.info(f"Entered loop {loop_id}")
        if loop.iteration_state_key:
            return state.with_updates({loop.iteration_state_key: 0})
        return state

    def should_continue_loop(self, loop_id: str, context: RoutingContext) -> LoopDecision:
        """
        Decide whether the loop body should run again.

        The iteration cap is checked first; only below the cap is
        ``repeat_until`` evaluated, and a satisfied condition ends the loop.
        """
        loop = self._loops.get(loop_id)
        loop_state = self._loop_states.get(loop_id)
        if loop is None or loop_state is None:
            return LoopDecision(False, "Loop not found", 0, LoopExitReason.NOT_FOUND)

        current = loop_state.current_iteration
        if current >= loop.max_iterations:
            return LoopDecision(
                False,
                f"Max iterations reached ({loop.max_iterations})",
                current,
                LoopExitReason.MAX_ITERATIONS,
            )

        result = self.evaluator.evaluate(loop.repeat_until, context.for_node(loop.entry_node_id))
        if result.satisfied:
            return LoopDecision(
                False,
                f"Exit condition satisfied: {result.reason}",
                current,
                LoopExitReason.CONDITION_SATISFIED,
            )

        return LoopDecision(
            True,
            f"Exit condition not yet satisfied (iteration {current + 1})",
            current,
            LoopExitReason.CONTINUE,
        )

    def increment_loop_iteration(self, loop_id: str, state: WorkflowState) -> WorkflowState:
        """
        Count a completed iteration and snapshot the shared state.

        At the cap the increment is refused and ``state`` is returned as-is.
        """
        loop, loop_state = self._require_loop(loop_id)
        if loop_state.current_iteration >= loop.max_iterations:
            logger.warning(
                f"Loop {loop_id} already at max iterations ({loop.max_iterations}); increment refused"
            )
            return state

        loop_state.current_iteration += 1
        loop_state.last_iteration_at = time.time()
        loop_state.iteration_history.append(IterationSnapshot(
            iteration=loop_state.current_iteration,
            timestamp=loop_state.last_iteration_at,
            state=copy.deepcopy(state.shared_state),
        ))

        logger.debug(f"Loop {loop_id} completed iteration {loop_state.current_iteration}")
        if loop.iteration_state_key:
            return state.with_updates({loop.iteration_state_key: loop_state.current_iteration})
        return state

    def exit_loop(
        self,
        loop_id: str,
        state: WorkflowState,
        reason: Optional[LoopExitReason] = None
    ) -> WorkflowState:
        """Deactivate a loop and drop its shared-state counter."""
        loop, loop_state = self._require_loop(loop_id)
        loop_state.status = LoopStatus.EXITED
        loop_state.exited_at = time.time()
        loop_state.exit_reason = reason

        logger.info(
            f"Exited loop {loop_id} after {loop_state.current_iteration} iteration(s)"
            + (f" ({reason.value})" if reason else "")
        )
        if loop.iteration_state_key:
            return state.without_keys(loop.iteration_state_key)
        return state

    def reset(self) -> None:
        """Clear branching history and return every loop to inactive."""
        self._branching_history.clear()
        for loop in self._loops.values():
            self._loop_states[loop.id] = LoopExecutionState(
                loop_id=loop.id,
                max_iterations=loop.max_iterations,
            )
