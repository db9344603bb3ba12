"""
Resource estimates for simulated node executions.

Execution time comes from a per-role table, token counts from the prompt
length (about four characters per token) plus a fixed response allowance.
"""

import math
from typing import Dict, Optional

from ..config import DEFAULT_COST_PER_TOKEN, SimulationConfig
from ..graph.types import Node

# Milliseconds per execution, by node role
ROLE_TIME_ESTIMATES: Dict[str, int] = {
    "orchestrator": 2000,
    "architect": 5000,
    "critic": 3000,
    "red-team": 4000,
    "researcher": 6000,
    "coder": 8000,
    "tester": 5000,
    "writer": 4000,
    "worker": 3000,
    "finalizer": 2000,
}
DEFAULT_TIME_ESTIMATE_MS = 3000

CHARS_PER_TOKEN = 4
DEFAULT_PROMPT_LENGTH = 1000
RESPONSE_TOKEN_ALLOWANCE = 500


def estimate_execution_time(node: Node, config: Optional[SimulationConfig] = None) -> float:
    """Estimated execution time of ``node`` in milliseconds."""
    if config is not None and node.id in config.time_estimates:
        return config.time_estimates[node.id]
    role = node.role.value if node.role else None
    return ROLE_TIME_ESTIMATES.get(role, DEFAULT_TIME_ESTIMATE_MS)


def estimate_tokens(node: Node, config: Optional[SimulationConfig] = None) -> int:
    """Estimated prompt plus response tokens of one execution of ``node``."""
    if config is not None and node.id in config.token_estimates:
        return config.token_estimates[node.id]
    prompt_length = len(node.prompt_template) if node.prompt_template else DEFAULT_PROMPT_LENGTH
    return math.ceil(prompt_length / CHARS_PER_TOKEN) + RESPONSE_TOKEN_ALLOWANCE


def estimate_cost(tokens: int, cost_per_token: float = DEFAULT_COST_PER_TOKEN) -> float:
    return tokens * cost_per_token
