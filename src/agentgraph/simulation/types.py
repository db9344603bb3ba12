"""
Data types produced by workflow simulation.

A simulation run yields one SimulationResult holding the step trace, the
static analysis of the graph, resource totals and coverage statistics.
"""

import copy
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from ..graph.types import WorkflowState
from ..routing.conditions import BranchDecision, LoopExitReason

StepAction = Literal["start", "execute", "complete", "skip", "error"]
Impact = Literal["low", "medium", "high"]


class SimulationStatus(Enum):
    """Lifecycle of a simulation run."""
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


class SimulationEventType(Enum):
    STEP_COMPLETE = "step-complete"
    PAUSE = "pause"
    RESUME = "resume"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass
class EdgeDecision:
    """How the condition on one outgoing edge was resolved."""
    edge_id: str
    condition: Optional[str]
    condition_met: bool
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "edgeId": self.edge_id,
            "condition": self.condition,
            "conditionMet": self.condition_met,
            "reason": self.reason,
        }


@dataclass
class NodeBehaviorResult:
    """
    Normalized output of a node behavior.

    ``artifacts`` maps produced artifact paths to their content.
    """
    outputs: Dict[str, Any] = field(default_factory=dict)
    artifacts: Dict[str, Any] = field(default_factory=dict)
    execution_time_ms: Optional[float] = None
    tokens: Optional[int] = None
    state_updates: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> 'NodeBehaviorResult':
        """
        Build from what a behavior returned.

        Accepts a NodeBehaviorResult or a dict with ``outputs``, ``artifacts``
        (list of paths or path -> content mapping), ``execution_time_ms``
        (or ``executionTimeMs``), ``tokens`` and ``state_updates`` (or
        ``stateUpdates``). A list of artifact paths stores the outputs under
        each path.

        Raises:
            TypeError: If the value is neither
        """
        if isinstance(value, cls):
            return value
        if value is None:
            return cls()
        if not isinstance(value, dict):
            raise TypeError(f"Node behavior must return a dict, got {type(value).__name__}")

        outputs = dict(value.get("outputs") or {})
        raw_artifacts = value.get("artifacts") or {}
        if isinstance(raw_artifacts, dict):
            artifacts = dict(raw_artifacts)
        else:
            artifacts = {path: outputs for path in raw_artifacts}

        execution_time = value.get("execution_time_ms", value.get("executionTimeMs"))
        state_updates = value.get("state_updates", value.get("stateUpdates")) or {}
        return cls(
            outputs=outputs,
            artifacts=artifacts,
            execution_time_ms=execution_time,
            tokens=value.get("tokens"),
            state_updates=dict(state_updates),
        )


@dataclass
class SimulationStep:
    """One simulated node execution."""
    step_number: int
    timestamp: float
    node_id: str
    node_name: str
    action: StepAction = "complete"
    inputs: Dict[str, Any] = field(default_factory=dict)
    input_artifacts: List[str] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)
    output_artifacts: List[str] = field(default_factory=list)
    mock_response: Optional[str] = None
    execution_time_ms: float = 0.0
    estimated_tokens: int = 0
    estimated_cost: float = 0.0
    state_before: Optional[WorkflowState] = None
    state_after: Optional[WorkflowState] = None
    next_nodes: List[str] = field(default_factory=list)
    routing_decision: Optional[EdgeDecision] = None
    loop_id: Optional[str] = None
    iteration: Optional[int] = None  # 1-based loop iteration the step ran in
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "stepNumber": self.step_number,
            "timestamp": self.timestamp,
            "nodeId": self.node_id,
            "nodeName": self.node_name,
            "action": self.action,
            "inputs": copy.deepcopy(self.inputs),
            "inputArtifacts": list(self.input_artifacts),
            "outputs": copy.deepcopy(self.outputs),
            "outputArtifacts": list(self.output_artifacts),
            "mockResponse": self.mock_response,
            "executionTimeMs": self.execution_time_ms,
            "estimatedTokens": self.estimated_tokens,
            "estimatedCost": self.estimated_cost,
            "stateBefore": self.state_before.to_dict() if self.state_before else None,
            "stateAfter": self.state_after.to_dict() if self.state_after else None,
            "nextNodes": list(self.next_nodes),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }
        if self.routing_decision is not None:
            data["routingDecision"] = self.routing_decision.to_dict()
        if self.loop_id is not None:
            data["loopId"] = self.loop_id
            data["iteration"] = self.iteration
        return data


@dataclass
class Bottleneck:
    node_id: str
    reason: str
    impact: Impact

    def to_dict(self) -> Dict[str, Any]:
        return {"nodeId": self.node_id, "reason": self.reason, "impact": self.impact}


@dataclass
class LoopSummary:
    """How a registered loop ran during a simulation."""
    loop_id: str
    iterations: int
    exit_reason: Optional[LoopExitReason]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "loopId": self.loop_id,
            "iterations": self.iterations,
            "exitReason": self.exit_reason.value if self.exit_reason else None,
            "reason": self.reason,
        }


@dataclass
class SimulationResult:
    """Trace, analysis and statistics of one simulation run."""
    id: str
    workflow_id: str
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    duration: float = 0.0  # Seconds of wall-clock time the run took
    steps: List[SimulationStep] = field(default_factory=list)
    current_step: int = 0
    total_steps: int = 0
    status: SimulationStatus = SimulationStatus.RUNNING
    failure_reason: Optional[str] = None

    # Analysis
    execution_order: List[str] = field(default_factory=list)
    parallel_blocks: List[List[str]] = field(default_factory=list)
    critical_path: List[str] = field(default_factory=list)
    bottlenecks: List[Bottleneck] = field(default_factory=list)

    # Resource totals (milliseconds, tokens, dollars)
    total_estimated_time: float = 0.0
    total_estimated_tokens: int = 0
    total_estimated_cost: float = 0.0
    estimated_parallel_time: float = 0.0
    peak_parallelism: int = 0

    validation_errors: List[str] = field(default_factory=list)
    validation_warnings: List[str] = field(default_factory=list)

    # Coverage
    nodes_covered: List[str] = field(default_factory=list)
    nodes_skipped: List[str] = field(default_factory=list)
    edges_covered: List[str] = field(default_factory=list)
    coverage_percentage: float = 0.0
    edge_coverage_percentage: float = 0.0

    branching_decisions: List[BranchDecision] = field(default_factory=list)
    loop_summaries: List[LoopSummary] = field(default_factory=list)
    final_state: Optional[WorkflowState] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (SimulationStatus.COMPLETED, SimulationStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflowId": self.workflow_id,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
            "duration": self.duration,
            "steps": [step.to_dict() for step in self.steps],
            "currentStep": self.current_step,
            "totalSteps": self.total_steps,
            "status": self.status.value,
            "failureReason": self.failure_reason,
            "executionOrder": list(self.execution_order),
            "parallelBlocks": [list(block) for block in self.parallel_blocks],
            "criticalPath": list(self.critical_path),
            "bottlenecks": [bottleneck.to_dict() for bottleneck in self.bottlenecks],
            "totalEstimatedTime": self.total_estimated_time,
            "totalEstimatedTokens": self.total_estimated_tokens,
            "totalEstimatedCost": self.total_estimated_cost,
            "estimatedParallelTime": self.estimated_parallel_time,
            "peakParallelism": self.peak_parallelism,
            "validationErrors": list(self.validation_errors),
            "validationWarnings": list(self.validation_warnings),
            "nodesCovered": list(self.nodes_covered),
            "nodesSkipped": list(self.nodes_skipped),
            "edgesCovered": list(self.edges_covered),
            "coveragePercentage": self.coverage_percentage,
            "edgeCoveragePercentage": self.edge_coverage_percentage,
            "branchingDecisions": [decision.to_dict() for decision in self.branching_decisions],
            "loopSummaries": [summary.to_dict() for summary in self.loop_summaries],
        }


@dataclass
class SimulationEvent:
    """Notification sent to simulation listeners."""
    type: SimulationEventType
    simulation_id: str
    step: Optional[SimulationStep] = None
    result: Optional[SimulationResult] = None
    error: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
