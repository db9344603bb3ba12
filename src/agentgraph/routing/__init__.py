"""
Conditional routing: condition evaluation, safe expressions, branch
selection and bounded loops.
"""

from .conditions import (
    CONDITION_TEMPLATES,
    BranchDecision,
    ConditionOperator,
    ConditionResult,
    ConditionType,
    LoopDecision,
    LoopExitReason,
    RoutingCondition,
    RoutingContext,
    condition_from_template,
)
from .engine import IterationSnapshot, Loop, LoopExecutionState, LoopStatus, RoutingEngine
from .evaluator import ConditionEvaluator
from .expressions import (
    UNDEFINED,
    Expression,
    check_expression_syntax,
    evaluate_expression,
    parse_expression,
)

__all__ = [
    # Conditions
    "RoutingCondition",
    "ConditionType",
    "ConditionOperator",
    "RoutingContext",
    "ConditionResult",
    "BranchDecision",
    "LoopDecision",
    "LoopExitReason",
    "CONDITION_TEMPLATES",
    "condition_from_template",
    # Evaluation
    "ConditionEvaluator",
    "Expression",
    "UNDEFINED",
    "parse_expression",
    "evaluate_expression",
    "check_expression_syntax",
    # Engine
    "RoutingEngine",
    "Loop",
    "LoopStatus",
    "LoopExecutionState",
    "IterationSnapshot",
]
