"""
Structural validation of workflow graphs.

GraphValidator runs every check on a graph and accumulates the findings as
messages for the editing UI. Errors mean the graph cannot run as drawn;
warnings point at likely mistakes the workflow can still tolerate. Checks
never raise and, apart from the empty-graph check, never stop later checks
from running.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..routing.expressions import check_expression_syntax
from .analysis import GraphAnalysis
from .types import ConditionType, Node, NodeRole, RoutingCondition, WorkflowGraph

logger = logging.getLogger(__name__)

CYCLE_ARROW = " → "


@dataclass
class ValidationResult:
    """Outcome of validating a workflow graph."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


class GraphValidator:
    """
    Validates workflow graph structure and node configuration.

    Checks performed:
    1. Empty graph (stops here)
    2. Circular dependencies
    3. Nodes unreachable from every entry point
    4. Declared inputs not produced by direct dependencies
    5. Duplicate node ids
    6. Edge endpoints, self-loops and condition syntax
    7. At least one entry point
    8. At least one exit point
    9. Required node fields and non-negative limits
    """

    def validate(self, graph: WorkflowGraph) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []

        if not graph.nodes:
            errors.append("Workflow graph is empty. Add at least one agent node.")
            return ValidationResult(valid=False, errors=errors, warnings=warnings)

        analysis = GraphAnalysis(graph)

        for cycle in analysis.find_cycles():
            labels = [graph.label_for(node_id) for node_id in cycle]
            errors.append(f"Circular dependency: {CYCLE_ARROW.join(labels)}")

        unreachable = analysis.find_unreachable_nodes()
        if unreachable:
            labels = ", ".join(graph.label_for(node_id) for node_id in unreachable)
            warnings.append(f"Disconnected nodes found: {labels}")

        warnings.extend(self._check_inputs_outputs(graph))

        duplicates = self._find_duplicate_ids(graph)
        if duplicates:
            errors.append(f"Duplicate node IDs: {', '.join(duplicates)}")

        errors.extend(self._check_edges(graph))

        if not analysis.find_entry_points():
            errors.append("No entry point found. At least one node should have no incoming edges.")

        if not analysis.find_exit_points():
            warnings.append("No clear exit point. Consider adding a finalizer node.")

        for node in graph.nodes:
            prefix = node.display_name
            errors.extend(f"{prefix}: {message}" for message in self._check_node_config(node))

        result = ValidationResult(valid=not errors, errors=errors, warnings=warnings)
        logger.debug(
            f"Validated graph {graph.id}: {len(errors)} error(s), {len(warnings)} warning(s)"
        )
        return result

    def _check_inputs_outputs(self, graph: WorkflowGraph) -> List[str]:
        warnings = []
        for node in graph.nodes:
            label = node.display_name
            if not node.outputs and node.role != NodeRole.FINALIZER:
                warnings.append(f"{label}: No outputs defined. Consider specifying artifact names.")

            if not node.inputs:
                continue

            dependencies = [edge.source for edge in graph.incoming_edges(node.id)]
            if not dependencies:
                warnings.append(f"{label}: Has input requirements but no incoming edges.")
                continue

            available = set()
            for dependency_id in dependencies:
                dependency = graph.get_node(dependency_id)
                if dependency is not None:
                    available.update(dependency.outputs)
            for input_name in node.inputs:
                if input_name not in available:
                    warnings.append(f"{label}: Input '{input_name}' not provided by dependencies.")
        return warnings

    def _find_duplicate_ids(self, graph: WorkflowGraph) -> List[str]:
        counts = Counter(node.id for node in graph.nodes)
        return [node_id for node_id, count in counts.items() if count > 1]

    def _check_edges(self, graph: WorkflowGraph) -> List[str]:
        errors = []
        node_ids = {node.id for node in graph.nodes}
        for index, edge in enumerate(graph.edges):
            if edge.source not in node_ids:
                errors.append(f"Edge {index}: Source node '{edge.source}' does not exist.")
            if edge.target not in node_ids:
                errors.append(f"Edge {index}: Target node '{edge.target}' does not exist.")
            if edge.source == edge.target:
                errors.append(f"Edge {index}: Self-loop detected (node connects to itself).")

            expression = self._condition_expression(edge.condition)
            if expression is not None:
                problem = check_expression_syntax(expression)
                if problem:
                    errors.append(f"Edge {index}: Invalid condition syntax: {expression} ({problem})")
        return errors

    @staticmethod
    def _condition_expression(condition) -> Optional[str]:
        """Expression text to syntax-check, if the condition carries one."""
        if isinstance(condition, str):
            return condition if condition.strip() else None
        if isinstance(condition, RoutingCondition) and condition.type == ConditionType.CUSTOM_EXPRESSION:
            return condition.expression
        return None

    def _check_node_config(self, node: Node) -> List[str]:
        errors = []
        if not node.label or not node.label.strip():
            errors.append("Label is required")
        if node.role is None:
            errors.append("Role is required")
        if not node.prompt_template or not node.prompt_template.strip():
            errors.append("Prompt template is required")
        if node.config.timeout is not None and node.config.timeout < 0:
            errors.append("Timeout must be positive")
        if node.config.retries is not None and node.config.retries < 0:
            errors.append("Retries must be non-negative")
        return errors

    def get_validation_suggestions(self, graph: WorkflowGraph) -> List[str]:
        """
        Non-binding hints for improving a workflow.

        Returns:
            Suggestions such as missing coordinating roles or agents that
            could run in parallel
        """
        suggestions = []
        roles = {node.role for node in graph.nodes}
        node_count = len(graph.nodes)

        if node_count > 5 and NodeRole.ORCHESTRATOR not in roles:
            suggestions.append("Consider adding an Orchestrator node to coordinate this complex workflow.")
        if node_count > 2 and NodeRole.CRITIC not in roles:
            suggestions.append("Consider adding a Critic node to review outputs before finalization.")
        if node_count > 1 and NodeRole.FINALIZER not in roles:
            suggestions.append("Consider adding a Finalizer node to aggregate results.")

        opportunities = self._find_parallel_opportunities(graph)
        if opportunities:
            suggestions.append(f"Consider running these agents in parallel: {', '.join(opportunities)}")
        return suggestions

    def _find_parallel_opportunities(self, graph: WorkflowGraph) -> List[str]:
        """Groups of nodes that depend on exactly the same nodes."""
        dependencies = {
            node.id: sorted(edge.source for edge in graph.incoming_edges(node.id))
            for node in graph.nodes
        }
        opportunities = []
        processed = set()
        for node in graph.nodes:
            if node.id in processed:
                continue
            group = [node] + [
                other for other in graph.nodes
                if other.id != node.id
                and other.id not in processed
                and dependencies[other.id] == dependencies[node.id]
            ]
            if len(group) > 1:
                opportunities.append(" + ".join(member.display_name for member in group))
                processed.update(member.id for member in group)
        return opportunities


def validate_workflow_graph(graph: WorkflowGraph) -> ValidationResult:
    """Validate a graph with a default GraphValidator."""
    return GraphValidator().validate(graph)


def get_validation_suggestions(graph: WorkflowGraph) -> List[str]:
    """Suggestions for a graph from a default GraphValidator."""
    return GraphValidator().get_validation_suggestions(graph)
