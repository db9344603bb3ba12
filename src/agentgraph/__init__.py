"""
agentgraph - Workflow execution core for multi-agent graphs

Validates agent workflow graphs, routes execution through conditional
edges and bounded loops, checkpoints execution state and simulates runs
with time, token and cost estimates.
"""

__version__ = "0.1.0"

from .exceptions import (
    ArtifactError,
    CheckpointError,
    ExpressionError,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    GraphError,
    LoopError,
    RoutingError,
    SimulationError,
    StateError,
    WorkflowCoreError,
)

# Graph model and validation
from .graph import (
    DecisionRecord,
    Edge,
    GraphAnalysis,
    GraphValidator,
    Node,
    NodeConfig,
    NodeRole,
    ValidationResult,
    WorkflowGraph,
    WorkflowPhase,
    WorkflowState,
    load_graph,
    save_graph,
    validate_workflow_graph,
)

# Routing
from .routing import (
    ConditionEvaluator,
    ConditionType,
    Loop,
    RoutingCondition,
    RoutingContext,
    RoutingEngine,
)

# State
from .state import (
    ArtifactRegistry,
    AutoCheckpointHook,
    Checkpoint,
    CheckpointManager,
    ExecutionRecord,
)

from .config import CheckpointConfig, SimulationConfig

# Simulation
from .simulation import (
    SimulationResult,
    SimulationStatus,
    WorkflowSimulator,
    run_simulation,
)

__all__ = [
    # Version
    "__version__",
    # Errors
    "WorkflowCoreError",
    "GraphError",
    "ExpressionError",
    "ExpressionSyntaxError",
    "ExpressionEvaluationError",
    "RoutingError",
    "LoopError",
    "StateError",
    "ArtifactError",
    "CheckpointError",
    "SimulationError",
    # Graph
    "WorkflowGraph",
    "Node",
    "NodeConfig",
    "NodeRole",
    "Edge",
    "WorkflowState",
    "WorkflowPhase",
    "DecisionRecord",
    "GraphAnalysis",
    "GraphValidator",
    "ValidationResult",
    "validate_workflow_graph",
    "load_graph",
    "save_graph",
    # Routing
    "RoutingCondition",
    "ConditionType",
    "RoutingContext",
    "ConditionEvaluator",
    "RoutingEngine",
    "Loop",
    # State
    "ArtifactRegistry",
    "CheckpointManager",
    "Checkpoint",
    "ExecutionRecord",
    "AutoCheckpointHook",
    # Config
    "CheckpointConfig",
    "SimulationConfig",
    # Simulation
    "WorkflowSimulator",
    "SimulationResult",
    "SimulationStatus",
    "run_simulation",
]
