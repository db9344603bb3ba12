"""
Data types for conditional routing.

These types carry what the ConditionEvaluator and RoutingEngine need to
decide which edge a workflow follows: the evaluation context, evaluation
results, recorded branch decisions and reusable condition templates.
"""

import copy
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from ..graph.types import ConditionOperator, ConditionType, RoutingCondition
from ..state.artifacts import ArtifactRegistry

__all__ = [
    "ConditionOperator",
    "ConditionType",
    "RoutingCondition",
    "RoutingContext",
    "ConditionResult",
    "BranchDecision",
    "LoopExitReason",
    "LoopDecision",
    "CONDITION_TEMPLATES",
    "condition_from_template",
]


@dataclass
class RoutingContext:
    """State a condition is evaluated against."""
    shared_state: Dict[str, Any] = field(default_factory=dict)
    artifacts: ArtifactRegistry = field(default_factory=ArtifactRegistry)
    current_node_id: str = ""

    def for_node(self, node_id: str) -> 'RoutingContext':
        """Same state and artifacts, evaluated from another node."""
        return replace(self, current_node_id=node_id)

    def to_namespace(self) -> Dict[str, Any]:
        """Names visible to custom expressions."""
        return {
            "state": copy.deepcopy(self.shared_state),
            "artifacts": self.artifacts.as_expression_values(),
            "currentNode": self.current_node_id,
        }


@dataclass
class ConditionResult:
    """Outcome of evaluating one condition."""
    condition: RoutingCondition
    satisfied: bool
    reason: str = ""
    evaluated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "condition": self.condition.to_dict(),
            "satisfied": self.satisfied,
            "reason": self.reason,
            "evaluatedAt": self.evaluated_at,
        }


@dataclass
class BranchDecision:
    """A recorded routing choice."""
    from_node_id: str
    to_node_id: str
    condition: RoutingCondition
    result: ConditionResult
    edge_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fromNodeId": self.from_node_id,
            "toNodeId": self.to_node_id,
            "edgeId": self.edge_id,
            "condition": self.condition.to_dict(),
            "result": self.result.to_dict(),
            "timestamp": self.timestamp,
        }


class LoopExitReason(Enum):
    """Why a loop check allowed or stopped another iteration."""
    CONTINUE = "continue"
    MAX_ITERATIONS = "max-iterations"
    CONDITION_SATISFIED = "condition-satisfied"
    NOT_FOUND = "not-found"


@dataclass
class LoopDecision:
    """Result of asking whether a loop should run another iteration."""
    should_continue: bool
    reason: str
    current_iteration: int
    exit_reason: LoopExitReason = LoopExitReason.CONTINUE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "continue": self.should_continue,
            "reason": self.reason,
            "currentIteration": self.current_iteration,
            "exitReason": self.exit_reason.value,
        }


CONDITION_TEMPLATES: Dict[str, RoutingCondition] = {
    "ALWAYS": RoutingCondition(
        type=ConditionType.ALWAYS,
        label="Always",
        description="Always take this path",
    ),
    "ARTIFACT_CREATED": RoutingCondition(
        type=ConditionType.ARTIFACT_EXISTS,
        label="Artifact Exists",
        description="Route if artifact has been created",
        artifact_path="output.json",
    ),
    "ARTIFACT_VALID": RoutingCondition(
        type=ConditionType.ARTIFACT_VALID,
        label="Artifact Valid",
        description="Route if artifact passed validation",
        artifact_path="output.json",
    ),
    "ITERATION_LIMIT": RoutingCondition(
        type=ConditionType.ITERATION_LIMIT,
        label="Under Iteration Limit",
        description="Continue if iterations below limit",
        max_iterations=10,
        current_iteration_key="iteration",
    ),
    "APPROVAL_GRANTED": RoutingCondition(
        type=ConditionType.STATE_CHECK,
        label="Approval Granted",
        description="Route if approval state is true",
        state_key="approved",
        operator=ConditionOperator.EQUALS,
        value=True,
    ),
    "ERROR_OCCURRED": RoutingCondition(
        type=ConditionType.STATE_CHECK,
        label="Error Occurred",
        description="Route if error flag is set",
        state_key="error",
        operator=ConditionOperator.EXISTS,
    ),
    "QUALITY_THRESHOLD": RoutingCondition(
        type=ConditionType.STATE_CHECK,
        label="Quality Above Threshold",
        description="Route if quality score exceeds threshold",
        state_key="quality_score",
        operator=ConditionOperator.GREATER_THAN,
        value=0.8,
    ),
}


def condition_from_template(name: str, **overrides: Any) -> RoutingCondition:
    """
    Copy of a named template with fields overridden.

    Example:
        condition_from_template("ARTIFACT_VALID", artifact_path="design.md")

    Raises:
        KeyError: If no template has that name
    """
    template = CONDITION_TEMPLATES[name]
    return replace(copy.deepcopy(template), **overrides)


def list_templates() -> List[str]:
    return list(CONDITION_TEMPLATES)
