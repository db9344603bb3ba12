"""
Loading and saving workflow graph documents.

Graph documents use the camelCase shape produced by the workflow editor and
can be stored as JSON or YAML. Malformed documents raise GraphError.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from ..exceptions import GraphError
from .types import WorkflowGraph

logger = logging.getLogger(__name__)


def graph_from_dict(data: Dict[str, Any]) -> WorkflowGraph:
    """Build a graph from a parsed document."""
    return WorkflowGraph.from_dict(data)


def graph_to_dict(graph: WorkflowGraph) -> Dict[str, Any]:
    return graph.to_dict()


def graph_from_json(text: str) -> WorkflowGraph:
    """
    Parse a JSON graph document.

    Raises:
        GraphError: If the text is not JSON or not a valid graph document
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise GraphError(f"Invalid JSON graph document: {e}", graph_issue="invalid_json")
    return graph_from_dict(data)


def graph_to_json(graph: WorkflowGraph, indent: int = 2) -> str:
    return json.dumps(graph.to_dict(), indent=indent, ensure_ascii=False)


def graph_from_yaml(text: str) -> WorkflowGraph:
    """
    Parse a YAML graph document.

    Raises:
        GraphError: If the text is not YAML or not a valid graph document
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise GraphError(f"Invalid YAML graph document: {e}", graph_issue="invalid_yaml")
    return graph_from_dict(data)


def graph_to_yaml(graph: WorkflowGraph) -> str:
    return yaml.safe_dump(graph.to_dict(), sort_keys=False, allow_unicode=True)


def load_graph(path: Union[str, Path]) -> WorkflowGraph:
    """
    Load a graph from a ``.json``, ``.yaml`` or ``.yml`` file.

    Raises:
        GraphError: If the file is missing, has an unknown extension or is malformed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise GraphError(f"Graph file not found: {file_path}", graph_issue="file_not_found")

    text = file_path.read_text(encoding="utf-8")
    suffix = file_path.suffix.lower()
    if suffix == ".json":
        graph = graph_from_json(text)
    elif suffix in (".yaml", ".yml"):
        graph = graph_from_yaml(text)
    else:
        raise GraphError(
            f"Unsupported graph file format: {suffix or '(none)'}",
            graph_issue="unsupported_format",
            suggestion="Use a .json, .yaml or .yml file.",
        )

    logger.info(f"Loaded graph {graph.id} with {len(graph.nodes)} nodes from {file_path}")
    return graph


def save_graph(graph: WorkflowGraph, path: Union[str, Path]) -> Path:
    """Write a graph to a file, choosing YAML or JSON by extension."""
    file_path = Path(path)
    if file_path.suffix.lower() in (".yaml", ".yml"):
        content = graph_to_yaml(graph)
    else:
        content = graph_to_json(graph)
    file_path.write_text(content, encoding="utf-8")
    logger.debug(f"Saved graph {graph.id} to {file_path}")
    return file_path
