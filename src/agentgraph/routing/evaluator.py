"""
Routing condition evaluation.

The ConditionEvaluator decides whether a RoutingCondition holds for a given
RoutingContext. It never raises for an unmet or broken condition: malformed
conditions and expression errors fail closed and are explained in the
result's ``reason``.
"""

import logging
import math
import time
from typing import Any

from ..exceptions import ExpressionError
from ..graph.types import ConditionOperator, ConditionType, RoutingCondition
from .conditions import ConditionResult, RoutingContext
from .expressions import (
    UNDEFINED,
    is_nullish,
    is_truthy,
    parse_expression,
    strict_equals,
    to_js_string,
    to_number,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10


class ConditionEvaluator:
    """
    Evaluates routing conditions against shared state and artifacts.

    Evaluation is deterministic: the same condition and an equal context
    always produce the same ``satisfied`` value.
    """

    def evaluate(self, condition: RoutingCondition, context: RoutingContext) -> ConditionResult:
        """
        Evaluate a condition.

        Args:
            condition: Condition to check
            context: Shared state, artifact registry and current node

        Returns:
            ConditionResult with the outcome and a human-readable reason
        """
        timestamp = time.time()
        handlers = {
            ConditionType.ALWAYS: self._evaluate_always,
            ConditionType.STATE_CHECK: self._evaluate_state_check,
            ConditionType.ARTIFACT_EXISTS: self._evaluate_artifact_exists,
            ConditionType.ARTIFACT_VALID: self._evaluate_artifact_valid,
            ConditionType.ITERATION_LIMIT: self._evaluate_iteration_limit,
            ConditionType.CUSTOM_EXPRESSION: self._evaluate_custom_expression,
        }
        handler = handlers.get(condition.type)
        if handler is None:
            return ConditionResult(
                condition, False, f"Unknown condition type: {condition.type}", timestamp
            )

        satisfied, reason = handler(condition, context)
        logger.debug(
            f"Condition {condition.type.value} at {context.current_node_id or '?'}: "
            f"{'satisfied' if satisfied else 'not satisfied'} ({reason})"
        )
        return ConditionResult(condition, satisfied, reason, timestamp)

    def _evaluate_always(self, condition: RoutingCondition, context: RoutingContext):
        return True, "Always condition"

    def _evaluate_state_check(self, condition: RoutingCondition, context: RoutingContext):
        key = condition.state_key
        if not key:
            return False, "Missing stateKey"

        actual = context.shared_state.get(key, UNDEFINED)
        expected = condition.value
        operator = condition.operator or ConditionOperator.EQUALS
        shown_actual = _display(actual)
        shown_expected = _display(expected)

        if operator == ConditionOperator.EQUALS:
            satisfied = strict_equals(actual, expected)
            reason = (
                f"{key} equals {shown_expected}" if satisfied
                else f"{key} ({shown_actual}) does not equal {shown_expected}"
            )
        elif operator == ConditionOperator.NOT_EQUALS:
            satisfied = not strict_equals(actual, expected)
            reason = (
                f"{key} not equals {shown_expected}" if satisfied
                else f"{key} equals {shown_expected}"
            )
        elif operator == ConditionOperator.GREATER_THAN:
            satisfied = _numeric_compare(actual, expected, greater=True)
            reason = (
                f"{key} ({shown_actual}) > {shown_expected}" if satisfied
                else f"{key} ({shown_actual}) <= {shown_expected}"
            )
        elif operator == ConditionOperator.LESS_THAN:
            satisfied = _numeric_compare(actual, expected, greater=False)
            reason = (
                f"{key} ({shown_actual}) < {shown_expected}" if satisfied
                else f"{key} ({shown_actual}) >= {shown_expected}"
            )
        elif operator == ConditionOperator.CONTAINS:
            satisfied = to_js_string(expected) in to_js_string(actual)
            reason = (
                f"{key} contains {shown_expected}" if satisfied
                else f"{key} does not contain {shown_expected}"
            )
        else:
            satisfied = not is_nullish(actual)
            reason = f"{key} exists" if satisfied else f"{key} does not exist"

        return satisfied, reason

    def _evaluate_artifact_exists(self, condition: RoutingCondition, context: RoutingContext):
        path = condition.artifact_path
        if not path:
            return False, "Missing artifactPath"
        if context.artifacts.has(path):
            return True, f"Artifact {path} exists"
        return False, f"Artifact {path} does not exist"

    def _evaluate_artifact_valid(self, condition: RoutingCondition, context: RoutingContext):
        path = condition.artifact_path
        if not path:
            return False, "Missing artifactPath"
        artifact = context.artifacts.get(path)
        if artifact is None:
            return False, f"Artifact {path} not found"
        if artifact.is_valid:
            return True, f"Artifact {path} is valid"
        return False, f"Artifact {path} is {artifact.validation_status.value}"

    def _evaluate_iteration_limit(self, condition: RoutingCondition, context: RoutingContext):
        current = 0.0
        if condition.current_iteration_key:
            current = to_number(context.shared_state.get(condition.current_iteration_key, 0))
            if math.isnan(current):
                current = 0.0
        max_iterations = condition.max_iterations or DEFAULT_MAX_ITERATIONS

        if current < max_iterations:
            return True, f"Iteration {_display(current)} < {max_iterations}"
        return False, f"Max iterations reached ({max_iterations})"

    def _evaluate_custom_expression(self, condition: RoutingCondition, context: RoutingContext):
        if not condition.expression:
            return False, "Missing expression"
        try:
            result = parse_expression(condition.expression).evaluate(context.to_namespace())
        except ExpressionError as e:
            return False, f"Expression error: {e.message}"
        except Exception as e:
            logger.error(f"Unexpected failure evaluating '{condition.expression}': {e}")
            return False, f"Expression error: {e}"

        return is_truthy(result), f"Expression evaluated to {_display(result)}"


def _numeric_compare(actual: Any, expected: Any, greater: bool) -> bool:
    left, right = to_number(actual), to_number(expected)
    if math.isnan(left) or math.isnan(right):
        return False
    return left > right if greater else left < right


def _display(value: Any) -> str:
    """Render a value the way it reads in a JavaScript template string."""
    return to_js_string(value)
