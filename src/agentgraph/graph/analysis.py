"""
Structural analysis of workflow graphs.

This module builds an adjacency view over a WorkflowGraph that answers the
questions shared by the validator and the simulator:
- Entry points (no incoming edges) and exit points (no outgoing edges)
- Forward reachability from the entry points
- Directed cycles, found with an iterative depth-first search
- Breadth-first depth of every reachable node
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from .types import Edge, WorkflowGraph

logger = logging.getLogger(__name__)

# DFS colors
_WHITE, _GRAY, _BLACK = 0, 1, 2


@dataclass
class NodeLinks:
    """Incoming and outgoing neighbours of one node."""
    node_id: str
    incoming: List[str] = field(default_factory=list)
    outgoing: List[str] = field(default_factory=list)

    def add_incoming(self, source: str) -> None:
        if source not in self.incoming:
            self.incoming.append(source)

    def add_outgoing(self, target: str) -> None:
        if target not in self.outgoing:
            self.outgoing.append(target)


class GraphAnalysis:
    """
    Read-only adjacency view of a workflow graph.

    Edges pointing at unknown nodes are kept in ``dangling_edges`` and ignored
    by traversal, but an edge whose target exists still counts as an incoming
    edge of that target.
    """

    def __init__(self, graph: WorkflowGraph):
        self.graph = graph
        self.node_ids: List[str] = []
        self.links: Dict[str, NodeLinks] = {}
        self.dangling_edges: List[Edge] = []
        self._incoming_edge_count: Dict[str, int] = {}
        self._outgoing_edge_count: Dict[str, int] = {}

        for node in graph.nodes:
            if node.id not in self.links:
                self.node_ids.append(node.id)
                self.links[node.id] = NodeLinks(node.id)
                self._incoming_edge_count[node.id] = 0
                self._outgoing_edge_count[node.id] = 0

        for edge in graph.edges:
            if edge.target in self.links:
                self._incoming_edge_count[edge.target] += 1
            if edge.source in self.links:
                self._outgoing_edge_count[edge.source] += 1
            if edge.source in self.links and edge.target in self.links:
                self.links[edge.source].add_outgoing(edge.target)
                self.links[edge.target].add_incoming(edge.source)
            else:
                self.dangling_edges.append(edge)

    def successors(self, node_id: str) -> List[str]:
        """Distinct direct successors, in edge declaration order."""
        links = self.links.get(node_id)
        return list(links.outgoing) if links else []

    def predecessors(self, node_id: str) -> List[str]:
        """Distinct direct predecessors, in edge declaration order."""
        links = self.links.get(node_id)
        return list(links.incoming) if links else []

    def incoming_edge_count(self, node_id: str) -> int:
        return self._incoming_edge_count.get(node_id, 0)

    def outgoing_edge_count(self, node_id: str) -> int:
        return self._outgoing_edge_count.get(node_id, 0)

    def find_entry_points(self) -> List[str]:
        """Nodes with no incoming edges."""
        return [node_id for node_id in self.node_ids if self._incoming_edge_count[node_id] == 0]

    def find_exit_points(self) -> List[str]:
        """Nodes with no outgoing edges."""
        return [node_id for node_id in self.node_ids if self._outgoing_edge_count[node_id] == 0]

    def reachable_from(self, start_nodes: List[str]) -> Set[str]:
        """All nodes reachable by forward traversal from ``start_nodes``."""
        visited: Set[str] = set()
        queue = deque(node_id for node_id in start_nodes if node_id in self.links)
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            for next_node in self.links[current].outgoing:
                if next_node not in visited:
                    queue.append(next_node)
        return visited

    def find_unreachable_nodes(self) -> List[str]:
        """
        Nodes not reachable from any entry point.

        Returns an empty list when the graph has no entry points; that case
        is reported separately.
        """
        entry_points = self.find_entry_points()
        if not entry_points:
            return []
        reachable = self.reachable_from(entry_points)
        return [node_id for node_id in self.node_ids if node_id not in reachable]

    def can_reach(self, from_node: str, to_node: str) -> bool:
        """Check whether ``to_node`` is reachable from ``from_node``."""
        return to_node in self.reachable_from([from_node])

    def find_cycles(self) -> List[List[str]]:
        """
        Find directed cycles with an iterative depth-first search.

        Every back edge found during the search yields one cycle, returned
        as a closed path (first node repeated at the end). Rotations of the
        same cycle are reported once. Runs in O(V + E) plus the length of
        the reported paths.

        Returns:
            List of cycles, each a list of node ids
        """
        color: Dict[str, int] = {node_id: _WHITE for node_id in self.node_ids}
        cycles: List[List[str]] = []
        seen: Set[Tuple[str, ...]] = set()

        for root in self.node_ids:
            if color[root] != _WHITE:
                continue

            path: List[str] = [root]
            position: Dict[str, int] = {root: 0}
            color[root] = _GRAY
            stack: List[Tuple[str, int]] = [(root, 0)]

            while stack:
                node_id, next_index = stack[-1]
                outgoing = self.links[node_id].outgoing
                if next_index >= len(outgoing):
                    stack.pop()
                    path.pop()
                    del position[node_id]
                    color[node_id] = _BLACK
                    continue

                stack[-1] = (node_id, next_index + 1)
                target = outgoing[next_index]

                if color[target] == _GRAY:
                    cycle = path[position[target]:]
                    key = _canonical_rotation(cycle)
                    if key not in seen:
                        seen.add(key)
                        cycles.append(cycle + [target])
                elif color[target] == _WHITE:
                    color[target] = _GRAY
                    position[target] = len(path)
                    path.append(target)
                    stack.append((target, 0))

        if cycles:
            logger.debug(f"Found {len(cycles)} cycle(s) in graph {self.graph.id}")
        return cycles

    def has_cycles(self) -> bool:
        return bool(self.find_cycles())

    def compute_depths(self) -> Dict[str, int]:
        """
        Breadth-first distance of every node reachable from the entry points.

        Entry points have depth 0. Unreachable nodes are absent from the
        result.
        """
        depths: Dict[str, int] = {}
        queue = deque()
        for entry in self.find_entry_points():
            depths[entry] = 0
            queue.append(entry)

        while queue:
            current = queue.popleft()
            for next_node in self.links[current].outgoing:
                if next_node not in depths:
                    depths[next_node] = depths[current] + 1
                    queue.append(next_node)
        return depths

    def group_by_depth(self, depths: Optional[Dict[str, int]] = None) -> List[List[str]]:
        """Nodes grouped by depth, shallowest first, declaration order within a level."""
        if depths is None:
            depths = self.compute_depths()
        if not depths:
            return []
        levels: List[List[str]] = [[] for _ in range(max(depths.values()) + 1)]
        for node_id in self.node_ids:
            if node_id in depths:
                levels[depths[node_id]].append(node_id)
        return levels


def _canonical_rotation(cycle: List[str]) -> Tuple[str, ...]:
    """Rotation of a cycle starting at its smallest node id."""
    start = cycle.index(min(cycle))
    return tuple(cycle[start:] + cycle[:start])
