"""
Workflow graph model, structural analysis and validation.
"""

from .types import (
    ConditionOperator,
    ConditionType,
    DecisionRecord,
    Edge,
    LoopRole,
    Node,
    NodeConfig,
    NodeRole,
    OrchestrationMode,
    RoutingCondition,
    ThinkingMode,
    WorkflowGraph,
    WorkflowPhase,
    WorkflowState,
)
from .analysis import GraphAnalysis
from .serialization import (
    graph_from_dict,
    graph_from_json,
    graph_from_yaml,
    graph_to_json,
    graph_to_yaml,
    load_graph,
    save_graph,
)
from .validator import (
    GraphValidator,
    ValidationResult,
    get_validation_suggestions,
    validate_workflow_graph,
)

__all__ = [
    # Types
    "WorkflowGraph",
    "Node",
    "NodeConfig",
    "NodeRole",
    "ThinkingMode",
    "OrchestrationMode",
    "Edge",
    "LoopRole",
    "RoutingCondition",
    "ConditionType",
    "ConditionOperator",
    "WorkflowState",
    "WorkflowPhase",
    "DecisionRecord",
    # Analysis
    "GraphAnalysis",
    # Serialization
    "graph_from_dict",
    "graph_from_json",
    "graph_from_yaml",
    "graph_to_json",
    "graph_to_yaml",
    "load_graph",
    "save_graph",
    # Validation
    "GraphValidator",
    "ValidationResult",
    "validate_workflow_graph",
    "get_validation_suggestions",
]
