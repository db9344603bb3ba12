"""
Shared fixtures for the agentgraph test suite.

Graph builders are exposed as fixtures returning factory functions so tests
can assemble small workflows inline.
"""

import pytest

from agentgraph.graph.types import Edge, Node, NodeRole, WorkflowGraph


def _make_node(
    node_id,
    label=None,
    role=NodeRole.WORKER,
    prompt="Do the task.",
    inputs=None,
    outputs=None,
    **kwargs
):
    return Node(
        id=node_id,
        label=label if label is not None else node_id.capitalize(),
        role=role,
        prompt_template=prompt,
        inputs=list(inputs or []),
        outputs=list(outputs or []),
        **kwargs
    )


def _make_graph(nodes, edges=(), graph_id="wf-test", **kwargs):
    """Nodes may be ids or Node objects; edges may be (source, target) pairs or Edge objects."""
    node_objects = [node if isinstance(node, Node) else _make_node(node) for node in nodes]
    edge_objects = []
    for index, edge in enumerate(edges):
        if isinstance(edge, Edge):
            edge_objects.append(edge)
        else:
            source, target = edge
            edge_objects.append(Edge(id=f"e{index + 1}", source=source, target=target))
    return WorkflowGraph(
        id=graph_id,
        name="Test workflow",
        nodes=node_objects,
        edges=edge_objects,
        **kwargs
    )


@pytest.fixture
def make_node():
    """Factory for fully configured nodes."""
    return _make_node


@pytest.fixture
def make_graph():
    """Factory for workflow graphs."""
    return _make_graph


@pytest.fixture
def linear_graph():
    """a -> b -> c"""
    return _make_graph(["a", "b", "c"], [("a", "b"), ("b", "c")], graph_id="wf-linear")


@pytest.fixture
def diamond_graph():
    """start -> left, right -> end"""
    return _make_graph(
        [
            _make_node("start", role=NodeRole.ORCHESTRATOR),
            _make_node("left", role=NodeRole.CODER),
            _make_node("right", role=NodeRole.WRITER),
            _make_node("end", role=NodeRole.FINALIZER),
        ],
        [("start", "left"), ("start", "right"), ("left", "end"), ("right", "end")],
        graph_id="wf-diamond",
    )
