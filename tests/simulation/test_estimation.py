"""
Tests for the agentgraph.simulation.estimation module.

This module tests:
- Per-role execution time estimates and overrides
- Prompt-based token estimates and overrides
- Cost calculation
"""

import pytest

from agentgraph.config import SimulationConfig
from agentgraph.graph.types import Node, NodeRole
from agentgraph.simulation.estimation import (
    DEFAULT_TIME_ESTIMATE_MS,
    ROLE_TIME_ESTIMATES,
    estimate_cost,
    estimate_execution_time,
    estimate_tokens,
)


class TestExecutionTime:
    """Tests for execution time estimates."""

    @pytest.mark.parametrize("role,expected", [
        (NodeRole.CODER, 8000),
        (NodeRole.RESEARCHER, 6000),
        (NodeRole.ORCHESTRATOR, 2000),
        (NodeRole.RED_TEAM, 4000),
    ])
    def test_role_table(self, role, expected):
        """Test roles map to their table entry."""
        assert estimate_execution_time(Node(id="n", role=role)) == expected

    def test_unlisted_role_uses_default(self):
        """Test roles outside the table and missing roles use the default."""
        assert estimate_execution_time(Node(id="n", role=NodeRole.LOOP)) == DEFAULT_TIME_ESTIMATE_MS
        assert estimate_execution_time(Node(id="n", role=None)) == DEFAULT_TIME_ESTIMATE_MS

    def test_override(self):
        """Test per-node overrides win over the role table."""
        config = SimulationConfig(time_estimates={"n": 1234})

        assert estimate_execution_time(Node(id="n", role=NodeRole.CODER), config) == 1234

    def test_table_covers_working_roles(self):
        """Test every role except the loop controller has an estimate."""
        roles = {role.value for role in NodeRole if role != NodeRole.LOOP}

        assert roles == set(ROLE_TIME_ESTIMATES)


class TestTokens:
    """Tests for token estimates."""

    def test_prompt_length(self):
        """Test tokens scale with prompt length."""
        node = Node(id="n", prompt_template="x" * 400)

        assert estimate_tokens(node) == 600

    def test_partial_token_rounds_up(self):
        """Test a partial token counts as a whole one."""
        assert estimate_tokens(Node(id="n", prompt_template="Do the task.")) == 503

    def test_empty_prompt_uses_default_length(self):
        """Test an empty prompt assumes a default prompt length."""
        assert estimate_tokens(Node(id="n")) == 750

    def test_override(self):
        """Test per-node overrides."""
        config = SimulationConfig(token_estimates={"n": 42})

        assert estimate_tokens(Node(id="n", prompt_template="long " * 100), config) == 42


def test_cost():
    """Test cost is tokens times the per-token price."""
    assert estimate_cost(1000, 0.002) == pytest.approx(2.0)
    assert estimate_cost(1000) == pytest.approx(0.015)
