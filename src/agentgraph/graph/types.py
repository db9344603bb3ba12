"""
Core data types for workflow graphs.

These types describe the workflow graph (nodes, edges, routing conditions)
and the shared workflow state that agents and conditions read and write.
The editing layer creates them; the execution core only reads them.

Python attributes are snake_case. ``to_dict``/``from_dict`` use the camelCase
document shape shared with the editor and the checkpoint format.
"""

import copy
import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from ..exceptions import GraphError


class NodeRole(Enum):
    """Agent roles a workflow node can take."""
    ORCHESTRATOR = "orchestrator"  # Coordinates workflow, delegates tasks
    ARCHITECT = "architect"        # Designs solutions
    CRITIC = "critic"              # Reviews outputs, identifies gaps
    RED_TEAM = "red-team"          # Stress tests, finds edge cases
    RESEARCHER = "researcher"      # Gathers information
    CODER = "coder"                # Implements solutions
    TESTER = "tester"              # Validates implementations
    WRITER = "writer"              # Creates documentation
    WORKER = "worker"              # Generic task execution
    FINALIZER = "finalizer"        # Aggregates results
    LOOP = "loop"                  # Iterative execution controller


class ThinkingMode(Enum):
    """Thinking intensity configured on a node."""
    MINIMAL = "minimal"
    BALANCED = "balanced"
    EXTENDED = "extended"


class OrchestrationMode(Enum):
    """How the workflow is meant to be orchestrated."""
    SEQUENTIAL = "sequential"
    ORCHESTRATOR = "orchestrator"
    STATE_MACHINE = "state-machine"
    PARALLEL = "parallel"


class LoopRole(Enum):
    """Role of an edge inside a loop."""
    ENTRY = "entry"
    ITERATE = "iterate"
    RETURN = "return"
    EXIT = "exit"


class WorkflowPhase(Enum):
    """Phase of a running workflow."""
    PLANNING = "planning"
    EXECUTION = "execution"
    REVIEW = "review"
    COMPLETE = "complete"


class ConditionType(Enum):
    """Kinds of routing conditions."""
    ALWAYS = "always"
    STATE_CHECK = "state-check"
    ARTIFACT_EXISTS = "artifact-exists"
    ARTIFACT_VALID = "artifact-valid"
    ITERATION_LIMIT = "iteration-limit"
    CUSTOM_EXPRESSION = "custom-expression"


class ConditionOperator(Enum):
    """Operators for state-check conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "not-equals"
    GREATER_THAN = "greater-than"
    LESS_THAN = "less-than"
    CONTAINS = "contains"
    EXISTS = "exists"


def _parse_enum(enum_cls, value, field_name: str, node_id: Optional[str] = None):
    """Convert a raw document value into an enum member."""
    if value is None or isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise GraphError(
            f"Invalid {field_name} '{value}'. Expected one of: {allowed}",
            graph_issue=f"invalid_{field_name}",
            affected_nodes=[node_id] if node_id else None,
            node_id=node_id,
        )


@dataclass
class RoutingCondition:
    """
    Typed routing predicate evaluated against shared state and artifacts.

    Only the fields relevant to ``type`` are read:
    - state-check: state_key, operator, value
    - artifact-exists / artifact-valid: artifact_path (artifact_schema optional)
    - iteration-limit: current_iteration_key, max_iterations
    - custom-expression: expression
    """
    type: ConditionType = ConditionType.ALWAYS
    state_key: Optional[str] = None
    operator: Optional[ConditionOperator] = None
    value: Any = None
    artifact_path: Optional[str] = None
    artifact_schema: Optional[str] = None
    max_iterations: Optional[int] = None
    current_iteration_key: Optional[str] = None
    expression: Optional[str] = None
    label: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[int] = None

    @classmethod
    def always(cls) -> 'RoutingCondition':
        return cls(type=ConditionType.ALWAYS)

    @classmethod
    def state_check(
        cls,
        state_key: str,
        operator: Union[ConditionOperator, str] = ConditionOperator.EQUALS,
        value: Any = None,
        **kwargs
    ) -> 'RoutingCondition':
        return cls(
            type=ConditionType.STATE_CHECK,
            state_key=state_key,
            operator=_parse_enum(ConditionOperator, operator, "operator"),
            value=value,
            **kwargs
        )

    @classmethod
    def artifact_exists(cls, artifact_path: str, **kwargs) -> 'RoutingCondition':
        return cls(type=ConditionType.ARTIFACT_EXISTS, artifact_path=artifact_path, **kwargs)

    @classmethod
    def artifact_valid(cls, artifact_path: str, **kwargs) -> 'RoutingCondition':
        return cls(type=ConditionType.ARTIFACT_VALID, artifact_path=artifact_path, **kwargs)

    @classmethod
    def iteration_limit(
        cls,
        current_iteration_key: Optional[str] = None,
        max_iterations: Optional[int] = None,
        **kwargs
    ) -> 'RoutingCondition':
        return cls(
            type=ConditionType.ITERATION_LIMIT,
            current_iteration_key=current_iteration_key,
            max_iterations=max_iterations,
            **kwargs
        )

    @classmethod
    def custom(cls, expression: str, **kwargs) -> 'RoutingCondition':
        return cls(type=ConditionType.CUSTOM_EXPRESSION, expression=expression, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the document shape, omitting unset fields."""
        data: Dict[str, Any] = {"type": self.type.value}
        optional = {
            "stateKey": self.state_key,
            "operator": self.operator.value if self.operator else None,
            "artifactPath": self.artifact_path,
            "artifactSchema": self.artifact_schema,
            "maxIterations": self.max_iterations,
            "currentIterationKey": self.current_iteration_key,
            "expression": self.expression,
            "label": self.label,
            "description": self.description,
            "priority": self.priority,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.type == ConditionType.STATE_CHECK or self.value is not None:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RoutingCondition':
        """Deserialize from the document shape."""
        if not isinstance(data, dict):
            raise GraphError(
                f"Routing condition must be an object, got {type(data).__name__}",
                graph_issue="invalid_condition",
            )
        return cls(
            type=_parse_enum(ConditionType, data.get("type", "always"), "condition type"),
            state_key=data.get("stateKey"),
            operator=_parse_enum(ConditionOperator, data.get("operator"), "operator"),
            value=data.get("value"),
            artifact_path=data.get("artifactPath"),
            artifact_schema=data.get("artifactSchema"),
            max_iterations=data.get("maxIterations"),
            current_iteration_key=data.get("currentIterationKey"),
            expression=data.get("expression"),
            label=data.get("label"),
            description=data.get("description"),
            priority=data.get("priority"),
        )


@dataclass
class NodeConfig:
    """Execution configuration of a node."""
    thinking_mode: ThinkingMode = ThinkingMode.BALANCED
    parallel: bool = False
    timeout: Optional[float] = None  # Max execution time
    retries: Optional[int] = None    # Retry count on failure

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "thinkingMode": self.thinking_mode.value,
            "parallel": self.parallel,
        }
        if self.timeout is not None:
            data["timeout"] = self.timeout
        if self.retries is not None:
            data["retries"] = self.retries
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], node_id: Optional[str] = None) -> 'NodeConfig':
        data = data or {}
        return cls(
            thinking_mode=_parse_enum(
                ThinkingMode, data.get("thinkingMode", "balanced"), "thinking mode", node_id
            ),
            parallel=bool(data.get("parallel", False)),
            timeout=data.get("timeout"),
            retries=data.get("retries"),
        )


@dataclass
class Node:
    """An agent node in the workflow graph."""
    id: str
    label: str = ""
    role: Optional[NodeRole] = NodeRole.WORKER
    prompt_template: str = ""
    inputs: List[str] = field(default_factory=list)   # Artifact ids or state keys consumed
    outputs: List[str] = field(default_factory=list)  # Artifact names produced
    config: NodeConfig = field(default_factory=NodeConfig)
    description: Optional[str] = None
    position: Optional[Dict[str, float]] = None

    @property
    def display_name(self) -> str:
        """Label if present, otherwise the id."""
        return self.label or self.id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "label": self.label,
            "role": self.role.value if self.role else None,
            "promptTemplate": self.prompt_template,
            "config": self.config.to_dict(),
            "inputs": list(self.inputs),
            "outputs": list(self.outputs),
        }
        if self.description is not None:
            data["description"] = self.description
        result: Dict[str, Any] = {"id": self.id, "data": data}
        if self.position is not None:
            result["position"] = dict(self.position)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Node':
        if not isinstance(data, dict) or not data.get("id"):
            raise GraphError("Node is missing an 'id'", graph_issue="missing_node_id")
        node_id = str(data["id"])
        payload = data.get("data") or {}
        return cls(
            id=node_id,
            label=payload.get("label") or "",
            role=_parse_enum(NodeRole, payload.get("role"), "role", node_id),
            prompt_template=payload.get("promptTemplate") or "",
            inputs=list(payload.get("inputs") or []),
            outputs=list(payload.get("outputs") or []),
            config=NodeConfig.from_dict(payload.get("config"), node_id),
            description=payload.get("description"),
            position=data.get("position"),
        )


@dataclass
class Edge:
    """A directed edge between two nodes, optionally conditional."""
    id: str
    source: str
    target: str
    condition: Union[str, RoutingCondition, None] = None
    priority: Optional[int] = None  # Higher wins among satisfied edges
    loop_role: Optional[LoopRole] = None
    loop_id: Optional[str] = None
    is_loop_edge: bool = False
    label: Optional[str] = None
    artifact_ref: Optional[str] = None  # Artifact passed along this edge

    @property
    def routing_condition(self) -> RoutingCondition:
        """Condition as a RoutingCondition; strings become custom expressions."""
        if self.condition is None:
            return RoutingCondition.always()
        if isinstance(self.condition, str):
            return RoutingCondition.custom(self.condition)
        return self.condition

    @property
    def effective_priority(self) -> int:
        """Edge priority, falling back to the condition's priority, then 0."""
        if self.priority is not None:
            return self.priority
        if isinstance(self.condition, RoutingCondition) and self.condition.priority is not None:
            return self.condition.priority
        return 0

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if isinstance(self.condition, RoutingCondition):
            data["condition"] = self.condition.to_dict()
        elif self.condition is not None:
            data["condition"] = self.condition
        optional = {
            "priority": self.priority,
            "loopRole": self.loop_role.value if self.loop_role else None,
            "loopId": self.loop_id,
            "label": self.label,
            "artifactRef": self.artifact_ref,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.is_loop_edge:
            data["isLoopEdge"] = True
        result: Dict[str, Any] = {"id": self.id, "source": self.source, "target": self.target}
        if data:
            result["data"] = data
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Edge':
        if not isinstance(data, dict):
            raise GraphError("Edge must be an object", graph_issue="invalid_edge")
        if data.get("source") is None or data.get("target") is None:
            raise GraphError(
                f"Edge {data.get('id', '?')} is missing its source or target",
                graph_issue="incomplete_edge",
            )
        payload = data.get("data") or {}
        condition = payload.get("condition")
        if isinstance(condition, dict):
            condition = RoutingCondition.from_dict(condition)
        source = str(data["source"])
        target = str(data["target"])
        return cls(
            id=str(data.get("id") or f"{source}->{target}"),
            source=source,
            target=target,
            condition=condition,
            priority=payload.get("priority"),
            loop_role=_parse_enum(LoopRole, payload.get("loopRole"), "loop role"),
            loop_id=payload.get("loopId"),
            is_loop_edge=bool(payload.get("isLoopEdge", False)),
            label=payload.get("label"),
            artifact_ref=payload.get("artifactRef"),
        )


@dataclass
class WorkflowGraph:
    """A complete workflow: ordered nodes and edges."""
    id: str = field(default_factory=lambda: f"workflow-{uuid.uuid4().hex[:8]}")
    name: str = ""
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    description: Optional[str] = None
    mode: OrchestrationMode = OrchestrationMode.STATE_MACHINE
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def get_node(self, node_id: str) -> Optional[Node]:
        """First node with the given id."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing_edges(self, node_id: str) -> List[Edge]:
        """Edges leaving a node, in declaration order."""
        return [edge for edge in self.edges if edge.source == node_id]

    def incoming_edges(self, node_id: str) -> List[Edge]:
        """Edges entering a node, in declaration order."""
        return [edge for edge in self.edges if edge.target == node_id]

    def label_for(self, node_id: str) -> str:
        """Display label of a node id, falling back to the id itself."""
        node = self.get_node(node_id)
        return node.display_name if node else node_id

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "mode": self.mode.value,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowGraph':
        if not isinstance(data, dict):
            raise GraphError("Workflow graph must be an object", graph_issue="invalid_graph")
        now = time.time()
        kwargs: Dict[str, Any] = {}
        if data.get("id"):
            kwargs["id"] = str(data["id"])
        return cls(
            name=data.get("name") or "",
            nodes=[Node.from_dict(node) for node in data.get("nodes") or []],
            edges=[Edge.from_dict(edge) for edge in data.get("edges") or []],
            description=data.get("description"),
            mode=_parse_enum(OrchestrationMode, data.get("mode", "state-machine"), "mode"),
            created_at=data.get("createdAt", now),
            updated_at=data.get("updatedAt", now),
            **kwargs
        )


@dataclass
class DecisionRecord:
    """One entry of the append-only decision audit log."""
    agent_id: str
    decision: str
    rationale: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "decision": self.decision,
            "rationale": self.rationale,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DecisionRecord':
        return cls(
            agent_id=data.get("agentId", ""),
            decision=data.get("decision", ""),
            rationale=data.get("rationale", ""),
            timestamp=data.get("timestamp", 0.0),
        )


@dataclass
class WorkflowState:
    """
    Shared mutable context of a running workflow.

    The ``with_*`` methods return new states and leave the receiver untouched,
    so step traces can keep before/after snapshots.
    """
    current_phase: WorkflowPhase = WorkflowPhase.PLANNING
    shared_state: Dict[str, Any] = field(default_factory=dict)
    decisions: List[DecisionRecord] = field(default_factory=list)

    def copy(self) -> 'WorkflowState':
        """Independent deep copy."""
        return copy.deepcopy(self)

    def with_shared_state(self, **updates: Any) -> 'WorkflowState':
        return self.with_updates(updates)

    def with_updates(self, updates: Dict[str, Any]) -> 'WorkflowState':
        """New state with ``updates`` merged into shared state."""
        shared = copy.deepcopy(self.shared_state)
        shared.update(copy.deepcopy(updates))
        return replace(self, shared_state=shared, decisions=list(self.decisions))

    def without_keys(self, *keys: str) -> 'WorkflowState':
        shared = {k: copy.deepcopy(v) for k, v in self.shared_state.items() if k not in keys}
        return replace(self, shared_state=shared, decisions=list(self.decisions))

    def with_decision(self, record: DecisionRecord) -> 'WorkflowState':
        return replace(
            self,
            shared_state=copy.deepcopy(self.shared_state),
            decisions=list(self.decisions) + [record],
        )

    def with_phase(self, phase: WorkflowPhase) -> 'WorkflowState':
        return replace(
            self,
            current_phase=phase,
            shared_state=copy.deepcopy(self.shared_state),
            decisions=list(self.decisions),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPhase": self.current_phase.value,
            "sharedState": copy.deepcopy(self.shared_state),
            "decisions": [decision.to_dict() for decision in self.decisions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'WorkflowState':
        return cls(
            current_phase=_parse_enum(WorkflowPhase, data.get("currentPhase", "planning"), "phase"),
            shared_state=copy.deepcopy(data.get("sharedState") or {}),
            decisions=[DecisionRecord.from_dict(d) for d in data.get("decisions") or []],
        )
