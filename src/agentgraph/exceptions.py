"""
Workflow Core Exception Hierarchy

This module defines the exception hierarchy for the workflow execution core,
providing specific error types for graph, expression, routing, state and
simulation problems with rich context and standardized error handling.

Expected conditions (an invalid graph, an unmet condition, a missing
checkpoint) are reported through return values. Exceptions from this module
are raised for malformed boundary input and programming errors, and are
converted back into values at component boundaries.
"""

import time
from typing import Any, Dict, List, Optional


class WorkflowCoreError(Exception):
    """
    Base exception class for all workflow core errors.

    Attributes:
        error_code: Unique error code for programmatic handling
        node_id: ID of the node where the error occurred (if applicable)
        workflow_id: ID of the workflow where the error occurred (if applicable)
        timestamp: When the error occurred
        context: Additional context information
        user_message: User-friendly error message
        developer_message: Detailed technical error message
        suggestion: Suggested fix or next steps (if applicable)
    """

    def __init__(
        self,
        message: str,
        error_code: str = "WORKFLOW_CORE_ERROR",
        node_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.node_id = node_id
        self.workflow_id = workflow_id
        self.timestamp = time.time()
        self.context = context or {}
        self.user_message = user_message or message
        self.developer_message = message
        self.suggestion = suggestion

    @property
    def message(self) -> str:
        """Technical error message."""
        return self.developer_message

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.developer_message,
            "user_message": self.user_message,
            "node_id": self.node_id,
            "workflow_id": self.workflow_id,
            "timestamp": self.timestamp,
            "context": self.context,
            "suggestion": self.suggestion,
        }

    def __str__(self) -> str:
        """String representation with context."""
        parts = [f"[{self.error_code}]"]
        if self.workflow_id:
            parts.append(f"Workflow:{self.workflow_id}")
        if self.node_id:
            parts.append(f"Node:{self.node_id}")
        parts.append(self.developer_message)
        return " ".join(parts)


# =============================================================================
# GRAPH ERRORS
# =============================================================================

class GraphError(WorkflowCoreError):
    """
    Raised when a workflow graph document cannot be turned into a graph.

    Examples:
    - Node without an id
    - Unknown agent role
    - Edge missing its source or target
    """

    def __init__(
        self,
        message: str,
        graph_issue: Optional[str] = None,
        affected_nodes: Optional[List[str]] = None,
        **kwargs
    ):
        self.graph_issue = graph_issue
        self.affected_nodes = affected_nodes

        context = kwargs.pop("context", {})
        if graph_issue:
            context["graph_issue"] = graph_issue
        if affected_nodes:
            context["affected_nodes"] = affected_nodes

        super().__init__(
            message,
            error_code=kwargs.pop("error_code", "GRAPH_ERROR"),
            context=context,
            user_message=kwargs.pop("user_message", "The workflow graph definition is invalid."),
            suggestion=kwargs.pop("suggestion", "Check node ids, roles and edge endpoints."),
            **kwargs
        )


# =============================================================================
# EXPRESSION ERRORS
# =============================================================================

class ExpressionError(WorkflowCoreError):
    """Base class for condition expression errors."""

    def __init__(self, message: str, expression: Optional[str] = None, **kwargs):
        self.expression = expression

        context = kwargs.pop("context", {})
        if expression is not None:
            context["expression"] = expression

        error_code = kwargs.pop("error_code", "EXPRESSION_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class ExpressionSyntaxError(ExpressionError):
    """Raised when a condition expression cannot be parsed."""

    def __init__(
        self,
        message: str,
        expression: Optional[str] = None,
        position: Optional[int] = None,
        **kwargs
    ):
        self.position = position

        context = kwargs.pop("context", {})
        if position is not None:
            context["position"] = position

        super().__init__(
            message,
            expression=expression,
            error_code="EXPRESSION_SYNTAX_ERROR",
            context=context,
            user_message="The condition expression is not valid.",
            suggestion="Use comparison and boolean operators over state, artifacts and currentNode.",
            **kwargs
        )


class ExpressionEvaluationError(ExpressionError):
    """Raised when a parsed expression fails at evaluation time."""

    def __init__(self, message: str, expression: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            expression=expression,
            error_code="EXPRESSION_EVALUATION_ERROR",
            **kwargs
        )


# =============================================================================
# ROUTING ERRORS
# =============================================================================

class RoutingError(WorkflowCoreError):
    """Raised when a routing operation is used incorrectly."""

    def __init__(
        self,
        message: str,
        current_node: Optional[str] = None,
        target_node: Optional[str] = None,
        **kwargs
    ):
        self.current_node = current_node
        self.target_node = target_node

        context = kwargs.pop("context", {})
        if current_node:
            context["current_node"] = current_node
        if target_node:
            context["target_node"] = target_node

        error_code = kwargs.pop("error_code", "ROUTING_ERROR")
        super().__init__(message, error_code=error_code, context=context, **kwargs)


class LoopError(RoutingError):
    """Raised when a loop definition is invalid or a loop id is unknown."""

    def __init__(self, message: str, loop_id: Optional[str] = None, **kwargs):
        self.loop_id = loop_id

        context = kwargs.pop("context", {})
        if loop_id:
            context["loop_id"] = loop_id

        super().__init__(
            message,
            error_code="LOOP_ERROR",
            context=context,
            suggestion="Register the loop before driving it and keep max_iterations positive.",
            **kwargs
        )


# =============================================================================
# STATE MANAGEMENT ERRORS
# =============================================================================

class StateError(WorkflowCoreError):
    """Base class for state management errors."""

    def __init__(self, message: str, **kwargs):
        error_code = kwargs.pop("error_code", "STATE_ERROR")
        super().__init__(message, error_code=error_code, **kwargs)


class ArtifactError(StateError):
    """Raised when an artifact operation violates versioning or lineage rules."""

    def __init__(
        self,
        message: str,
        artifact_path: Optional[str] = None,
        artifact_id: Optional[str] = None,
        **kwargs
    ):
        self.artifact_path = artifact_path
        self.artifact_id = artifact_id

        context = kwargs.pop("context", {})
        if artifact_path:
            context["artifact_path"] = artifact_path
        if artifact_id:
            context["artifact_id"] = artifact_id

        super().__init__(
            message,
            error_code="ARTIFACT_ERROR",
            context=context,
            **kwargs
        )


class CheckpointError(StateError):
    """Raised when checkpoint creation, import or restore fails."""

    def __init__(
        self,
        message: str,
        checkpoint_id: Optional[str] = None,
        operation: Optional[str] = None,  # "create", "import", "restore"
        **kwargs
    ):
        self.checkpoint_id = checkpoint_id
        self.operation = operation

        context = kwargs.pop("context", {})
        if checkpoint_id:
            context["checkpoint_id"] = checkpoint_id
        if operation:
            context["operation"] = operation

        super().__init__(
            message,
            error_code="CHECKPOINT_ERROR",
            context=context,
            user_message=f"Checkpoint {operation} operation failed." if operation else "Checkpoint operation failed.",
            **kwargs
        )


# =============================================================================
# SIMULATION ERRORS
# =============================================================================

class SimulationError(WorkflowCoreError):
    """Raised when a node behavior fails or a simulation is resumed that does not exist."""

    def __init__(self, message: str, simulation_id: Optional[str] = None, **kwargs):
        self.simulation_id = simulation_id

        context = kwargs.pop("context", {})
        if simulation_id:
            context["simulation_id"] = simulation_id

        super().__init__(
            message,
            error_code="SIMULATION_ERROR",
            context=context,
            **kwargs
        )
