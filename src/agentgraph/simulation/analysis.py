"""
Static execution analysis of a workflow graph.

Everything here looks at the graph alone, not at which nodes a simulation
actually visited: breadth-first depths, same-depth parallel batches, the
critical path and fan-in / fan-out bottlenecks.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import SimulationConfig
from ..graph.analysis import GraphAnalysis
from ..graph.types import WorkflowGraph
from .estimation import estimate_execution_time
from .types import Bottleneck

logger = logging.getLogger(__name__)

SYNCHRONIZATION_THRESHOLD = 3
FAN_OUT_THRESHOLD = 3


@dataclass
class ExecutionAnalysis:
    depths: Dict[str, int] = field(default_factory=dict)
    parallel_blocks: List[List[str]] = field(default_factory=list)
    peak_parallelism: int = 1
    critical_path: List[str] = field(default_factory=list)
    bottlenecks: List[Bottleneck] = field(default_factory=list)
    estimated_parallel_time: float = 0.0


def find_parallel_blocks(analysis: GraphAnalysis, depths: Dict[str, int]) -> List[List[str]]:
    """Groups of more than one node sharing a depth."""
    return [level for level in analysis.group_by_depth(depths) if len(level) > 1]


def find_critical_path(analysis: GraphAnalysis, depths: Dict[str, int]) -> List[str]:
    """
    Representative chain through every depth level.

    Walks from depth 0 outward, each time taking the first successor one
    level deeper. Among such successors the one that still reaches the
    deepest level wins, so the path always ends at the maximum depth.
    """
    if not depths:
        return []

    # Deepest level reachable from each node along depth-increasing edges
    reach: Dict[str, int] = {}
    for level in reversed(analysis.group_by_depth(depths)):
        for node_id in level:
            deeper = [
                reach[successor]
                for successor in analysis.successors(node_id)
                if depths.get(successor) == depths[node_id] + 1
            ]
            reach[node_id] = max(deeper, default=depths[node_id])

    entries = [node_id for node_id in analysis.node_ids if depths.get(node_id) == 0]
    current: Optional[str] = max(entries, key=lambda node_id: reach[node_id])
    path: List[str] = []
    while current is not None:
        path.append(current)
        candidates = [
            successor
            for successor in analysis.successors(current)
            if depths.get(successor) == depths[current] + 1
        ]
        current = max(candidates, key=lambda node_id: reach[node_id]) if candidates else None
    return path


def identify_bottlenecks(analysis: GraphAnalysis) -> List[Bottleneck]:
    """Nodes with many incoming dependencies or many outgoing branches."""
    bottlenecks = []
    for node_id in analysis.node_ids:
        incoming = analysis.incoming_edge_count(node_id)
        outgoing = analysis.outgoing_edge_count(node_id)
        if incoming > SYNCHRONIZATION_THRESHOLD:
            bottlenecks.append(Bottleneck(
                node_id=node_id,
                reason=f"Synchronization point: {incoming} incoming dependencies",
                impact="high",
            ))
        if outgoing > FAN_OUT_THRESHOLD:
            bottlenecks.append(Bottleneck(
                node_id=node_id,
                reason=f"Fan-out point: {outgoing} outgoing branches",
                impact="medium",
            ))
    return bottlenecks


def estimate_parallel_time(
    graph: WorkflowGraph,
    analysis: GraphAnalysis,
    depths: Dict[str, int],
    config: Optional[SimulationConfig] = None
) -> float:
    """Milliseconds if every depth level ran fully in parallel: sum of the slowest node per level."""
    total = 0.0
    for level in analysis.group_by_depth(depths):
        times = [estimate_execution_time(graph.get_node(node_id), config) for node_id in level]
        total += max(times, default=0)
    return total


def analyze_execution_graph(
    graph: WorkflowGraph,
    config: Optional[SimulationConfig] = None,
    analysis: Optional[GraphAnalysis] = None
) -> ExecutionAnalysis:
    """Run every static analysis over ``graph``."""
    analysis = analysis or GraphAnalysis(graph)
    depths = analysis.compute_depths()
    parallel_blocks = find_parallel_blocks(analysis, depths)

    result = ExecutionAnalysis(
        depths=depths,
        parallel_blocks=parallel_blocks,
        peak_parallelism=max([len(block) for block in parallel_blocks], default=1),
        critical_path=find_critical_path(analysis, depths),
        bottlenecks=identify_bottlenecks(analysis),
        estimated_parallel_time=estimate_parallel_time(graph, analysis, depths, config),
    )
    logger.debug(
        f"Analyzed graph {graph.id}: {len(result.parallel_blocks)} parallel blocks, "
        f"critical path of {len(result.critical_path)} nodes"
    )
    return result
