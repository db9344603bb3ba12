"""
Dry-run simulation of workflow graphs with resource estimation.
"""

from .types import (
    Bottleneck,
    EdgeDecision,
    LoopSummary,
    NodeBehaviorResult,
    SimulationEvent,
    SimulationEventType,
    SimulationResult,
    SimulationStatus,
    SimulationStep,
)
from .estimation import (
    DEFAULT_TIME_ESTIMATE_MS,
    ROLE_TIME_ESTIMATES,
    estimate_cost,
    estimate_execution_time,
    estimate_tokens,
)
from .analysis import (
    ExecutionAnalysis,
    analyze_execution_graph,
    estimate_parallel_time,
    find_critical_path,
    find_parallel_blocks,
    identify_bottlenecks,
)
from .events import SimulationEventBus
from .simulator import WorkflowSimulator, run_simulation

__all__ = [
    # Simulator
    "WorkflowSimulator",
    "run_simulation",
    "SimulationEventBus",
    # Types
    "SimulationResult",
    "SimulationStep",
    "SimulationStatus",
    "SimulationEvent",
    "SimulationEventType",
    "EdgeDecision",
    "NodeBehaviorResult",
    "Bottleneck",
    "LoopSummary",
    # Estimation
    "ROLE_TIME_ESTIMATES",
    "DEFAULT_TIME_ESTIMATE_MS",
    "estimate_execution_time",
    "estimate_tokens",
    "estimate_cost",
    # Analysis
    "ExecutionAnalysis",
    "analyze_execution_graph",
    "find_parallel_blocks",
    "find_critical_path",
    "identify_bottlenecks",
    "estimate_parallel_time",
]
