"""
Checkpoint management for rollback and recovery.

This module provides checkpoint functionality including:
- Immutable snapshots of workflow state, graph and execution history
- Per-workflow retention with oldest-first eviction
- Diffs between checkpoints
- Lossless JSON export and schema-validated import
- Resume points and automatic checkpoint hooks around agent execution
"""

import copy
import gzip
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from jsonschema import Draft202012Validator

from ..config import CheckpointConfig
from ..exceptions import CheckpointError, GraphError
from ..graph.types import Edge, Node, WorkflowState
from .artifacts import ArtifactMetadata, ArtifactRegistry

logger = logging.getLogger(__name__)

CHECKPOINT_FORMAT_VERSION = "1.0.0"

CHECKPOINT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": [
        "id", "workflowId", "timestamp", "version", "workflowState",
        "nodes", "edges", "executionHistory", "pendingAgents", "artifacts",
    ],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "workflowId": {"type": "string"},
        "timestamp": {"type": "number"},
        "version": {"type": "string"},
        "workflowState": {
            "type": "object",
            "properties": {
                "currentPhase": {"type": "string"},
                "sharedState": {"type": "object"},
                "decisions": {"type": "array"},
            },
        },
        "nodes": {"type": "array", "items": {"type": "object", "required": ["id"]}},
        "edges": {"type": "array", "items": {"type": "object", "required": ["source", "target"]}},
        "executionHistory": {"type": "array", "items": {"type": "object", "required": ["agentId"]}},
        "currentAgent": {"type": ["string", "null"]},
        "pendingAgents": {"type": "array", "items": {"type": "string"}},
        "artifacts": {
            "type": "object",
            "additionalProperties": {"type": "object", "required": ["id", "path"]},
        },
        "description": {"type": ["string", "null"]},
        "tags": {"type": "array", "items": {"type": "string"}},
        "automatic": {"type": "boolean"},
    },
}

_checkpoint_validator = Draft202012Validator(CHECKPOINT_SCHEMA)


class ExecutionStatus(Enum):
    """Outcome of one agent execution."""
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    INTERRUPTED = "interrupted"


@dataclass
class ExecutionRecord:
    """One agent execution in a workflow's history."""
    agent_id: str
    agent_role: str
    start_time: float
    end_time: float
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    artifacts_created: List[str] = field(default_factory=list)
    artifacts_consumed: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "agentId": self.agent_id,
            "agentRole": self.agent_role,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "status": self.status.value,
            "artifactsCreated": list(self.artifacts_created),
            "artifactsConsumed": list(self.artifacts_consumed),
            "metadata": copy.deepcopy(self.metadata),
        }
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecutionRecord':
        return cls(
            agent_id=data["agentId"],
            agent_role=data.get("agentRole", ""),
            start_time=data.get("startTime", 0.0),
            end_time=data.get("endTime", 0.0),
            status=ExecutionStatus(data.get("status", "success")),
            artifacts_created=list(data.get("artifactsCreated") or []),
            artifacts_consumed=list(data.get("artifactsConsumed") or []),
            error_message=data.get("errorMessage"),
            metadata=copy.deepcopy(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class Checkpoint:
    """Immutable snapshot of a workflow's execution state."""
    id: str
    workflow_id: str
    timestamp: float
    version: str
    workflow_state: WorkflowState
    nodes: List[Node]
    edges: List[Edge]
    execution_history: List[ExecutionRecord]
    current_agent: Optional[str]
    pending_agents: List[str]
    artifacts: Dict[str, ArtifactMetadata]
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    automatic: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "workflowId": self.workflow_id,
            "timestamp": self.timestamp,
            "version": self.version,
            "workflowState": self.workflow_state.to_dict(),
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "executionHistory": [record.to_dict() for record in self.execution_history],
            "currentAgent": self.current_agent,
            "pendingAgents": list(self.pending_agents),
            "artifacts": {key: artifact.to_dict() for key, artifact in self.artifacts.items()},
            "tags": list(self.tags),
            "automatic": self.automatic,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Checkpoint':
        return cls(
            id=data["id"],
            workflow_id=data["workflowId"],
            timestamp=data["timestamp"],
            version=data["version"],
            workflow_state=WorkflowState.from_dict(data.get("workflowState") or {}),
            nodes=[Node.from_dict(node) for node in data.get("nodes") or []],
            edges=[Edge.from_dict(edge) for edge in data.get("edges") or []],
            execution_history=[
                ExecutionRecord.from_dict(record) for record in data.get("executionHistory") or []
            ],
            current_agent=data.get("currentAgent"),
            pending_agents=list(data.get("pendingAgents") or []),
            artifacts={
                key: ArtifactMetadata.from_dict(artifact)
                for key, artifact in (data.get("artifacts") or {}).items()
            },
            description=data.get("description"),
            tags=list(data.get("tags") or []),
            automatic=data.get("automatic", True),
        )


@dataclass
class CheckpointDiff:
    """What changed between two checkpoints."""
    time_delta: float  # Seconds from the first to the second checkpoint
    new_agents_executed: int
    new_artifacts: List[str]
    state_changes: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timeDelta": self.time_delta,
            "newAgentsExecuted": self.new_agents_executed,
            "newArtifacts": list(self.new_artifacts),
            "stateChanges": list(self.state_changes),
        }


@dataclass
class ResumePoint:
    """Where a workflow continues after restoring a checkpoint."""
    success: bool
    checkpoint: Optional[Checkpoint] = None
    next_agent: Optional[str] = None


class CheckpointManager:
    """
    In-memory checkpoint store with per-workflow retention.

    Features:
    - Checkpoints kept in insertion order per workflow
    - At most ``max_checkpoints`` per workflow, evicting the oldest
    - Restores return independent copies, stored snapshots never change
    - JSON export/import of the checkpoint document
    """

    def __init__(self, config: Optional[CheckpointConfig] = None, **overrides: Any):
        """
        Initialize checkpoint manager.

        Args:
            config: Checkpoint settings (defaults if omitted)
            **overrides: Individual CheckpointConfig fields, e.g. ``max_checkpoints=5``
        """
        base = config or CheckpointConfig()
        if overrides:
            base = CheckpointConfig.model_validate({**base.model_dump(), **overrides})
        self.config = base
        self._checkpoints: Dict[str, List[Checkpoint]] = {}

    @property
    def max_checkpoints(self) -> int:
        return self.config.max_checkpoints

    @property
    def auto_checkpoint(self) -> bool:
        return self.config.auto_checkpoint

    def create_checkpoint(
        self,
        workflow_id: str,
        workflow_state: WorkflowState,
        nodes: Optional[List[Node]] = None,
        edges: Optional[List[Edge]] = None,
        execution_history: Optional[List[ExecutionRecord]] = None,
        current_agent: Optional[str] = None,
        pending_agents: Optional[List[str]] = None,
        artifacts: Union[ArtifactRegistry, Dict[str, ArtifactMetadata], None] = None,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        automatic: bool = True,
    ) -> Checkpoint:
        """
        Snapshot the given execution state.

        All inputs are deep-copied, so later changes by the caller never
        reach the stored checkpoint.

        Returns:
            The stored checkpoint
        """
        timestamp = time.time()
        checkpoint_id = f"checkpoint-{int(timestamp * 1000)}-{uuid.uuid4().hex[:6]}"

        if isinstance(artifacts, ArtifactRegistry):
            artifact_snapshot = artifacts.snapshot()
        else:
            artifact_snapshot = copy.deepcopy(artifacts or {})

        checkpoint = Checkpoint(
            id=checkpoint_id,
            workflow_id=workflow_id,
            timestamp=timestamp,
            version=CHECKPOINT_FORMAT_VERSION,
            workflow_state=workflow_state.copy(),
            nodes=copy.deepcopy(list(nodes or [])),
            edges=copy.deepcopy(list(edges or [])),
            execution_history=copy.deepcopy(list(execution_history or [])),
            current_agent=current_agent,
            pending_agents=list(pending_agents or []),
            artifacts=artifact_snapshot,
            description=description,
            tags=list(tags or []),
            automatic=automatic,
        )
        self._store(checkpoint)

        logger.info(
            f"Created {'auto' if automatic else 'manual'} checkpoint {checkpoint_id} "
            f"for workflow {workflow_id}"
        )
        return copy.deepcopy(checkpoint)

    def save_checkpoint(self, workflow_id: str, workflow_state: WorkflowState, description: str, **params: Any) -> Checkpoint:
        """Create a manual checkpoint with a description."""
        return self.create_checkpoint(
            workflow_id, workflow_state, description=description, automatic=False, **params
        )

    def _store(self, checkpoint: Checkpoint) -> None:
        checkpoints = self._checkpoints.setdefault(checkpoint.workflow_id, [])
        checkpoints.append(checkpoint)
        self._enforce_retention_policy(checkpoint.workflow_id)

    def _enforce_retention_policy(self, workflow_id: str) -> None:
        """Keep only the newest ``max_checkpoints`` checkpoints of a workflow."""
        checkpoints = self._checkpoints.get(workflow_id, [])
        excess = len(checkpoints) - self.config.max_checkpoints
        if excess > 0:
            evicted = checkpoints[:excess]
            del checkpoints[:excess]
            for checkpoint in evicted:
                logger.debug(f"Evicted checkpoint {checkpoint.id} (retention limit {self.config.max_checkpoints})")

    def _find(self, checkpoint_id: str) -> Optional[Checkpoint]:
        for checkpoints in self._checkpoints.values():
            for checkpoint in checkpoints:
                if checkpoint.id == checkpoint_id:
                    return checkpoint
        return None

    def restore_checkpoint(self, checkpoint_id: str) -> Optional[Checkpoint]:
        """
        Independent copy of a stored checkpoint.

        Returns:
            The copy, or None if no checkpoint has that id
        """
        checkpoint = self._find(checkpoint_id)
        if checkpoint is None:
            logger.debug(f"Checkpoint {checkpoint_id} not found")
            return None
        return copy.deepcopy(checkpoint)

    def get_latest_checkpoint(self, workflow_id: str) -> Optional[Checkpoint]:
        checkpoints = self._checkpoints.get(workflow_id)
        if not checkpoints:
            return None
        return copy.deepcopy(checkpoints[-1])

    def list_checkpoints(self, workflow_id: str) -> List[Checkpoint]:
        """Copies of a workflow's checkpoints, oldest first."""
        return [copy.deepcopy(checkpoint) for checkpoint in self._checkpoints.get(workflow_id, [])]

    def list_workflows(self) -> List[str]:
        return [workflow_id for workflow_id, checkpoints in self._checkpoints.items() if checkpoints]

    def delete_checkpoint(self, checkpoint_id: str) -> bool:
        """Delete a checkpoint, returning whether it existed."""
        for checkpoints in self._checkpoints.values():
            for index, checkpoint in enumerate(checkpoints):
                if checkpoint.id == checkpoint_id:
                    del checkpoints[index]
                    logger.info(f"Deleted checkpoint {checkpoint_id}")
                    return True
        return False

    def clear_workflow_checkpoints(self, workflow_id: str) -> int:
        """Delete every checkpoint of a workflow, returning how many were removed."""
        removed = len(self._checkpoints.pop(workflow_id, []))
        if removed:
            logger.info(f"Cleared {removed} checkpoint(s) for workflow {workflow_id}")
        return removed

    def get_checkpoint_diff(self, first_id: str, second_id: str) -> Optional[CheckpointDiff]:
        """
        Compare two checkpoints.

        Returns:
            CheckpointDiff from ``first_id`` to ``second_id``, or None if either is missing
        """
        first = self._find(first_id)
        second = self._find(second_id)
        if first is None or second is None:
            return None

        return CheckpointDiff(
            time_delta=second.timestamp - first.timestamp,
            new_agents_executed=len(second.execution_history) - len(first.execution_history),
            new_artifacts=[key for key in second.artifacts if key not in first.artifacts],
            state_changes=_compare_workflow_states(first.workflow_state, second.workflow_state),
        )

    def export_checkpoint(self, checkpoint: Checkpoint) -> str:
        """
        Serialize a checkpoint to its JSON document.

        Raises:
            CheckpointError: If shared state holds values that are not JSON-serializable
        """
        try:
            return json.dumps(checkpoint.to_dict(), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise CheckpointError(
                f"Checkpoint {checkpoint.id} is not JSON-serializable: {e}",
                checkpoint_id=checkpoint.id,
                operation="export",
                workflow_id=checkpoint.workflow_id,
            )

    def import_checkpoint(self, document: str) -> Optional[Checkpoint]:
        """
        Parse, validate and store a checkpoint document.

        Malformed input is logged and rejected; this method does not raise
        for bad documents.

        Returns:
            The imported checkpoint, or None if the document is invalid
        """
        try:
            data = json.loads(document)
        except (TypeError, json.JSONDecodeError) as e:
            logger.error(f"Failed to import checkpoint: invalid JSON ({e})")
            return None

        errors = sorted(_checkpoint_validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        if errors:
            error = errors[0]
            location = "/".join(str(part) for part in error.absolute_path) or "(root)"
            logger.error(f"Invalid checkpoint structure at {location}: {error.message}")
            return None

        try:
            checkpoint = Checkpoint.from_dict(data)
        except (GraphError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Failed to import checkpoint {data.get('id')}: {e}")
            return None

        self._store(checkpoint)
        logger.info(f"Imported checkpoint {checkpoint.id} for workflow {checkpoint.workflow_id}")
        return copy.deepcopy(checkpoint)

    def export_to_file(self, checkpoint: Checkpoint, directory: Union[str, Path, None] = None) -> Path:
        """
        Write a checkpoint document into ``directory`` (default: ``storage_dir``).

        Files are gzip-compressed when ``compression_enabled`` is set.
        """
        target_dir = Path(directory or self.config.storage_dir)
        target_dir.mkdir(parents=True, exist_ok=True)
        document = self.export_checkpoint(checkpoint)

        if self.config.compression_enabled:
            path = target_dir / f"{checkpoint.id}.json.gz"
            with gzip.open(path, "wt", encoding="utf-8") as handle:
                handle.write(document)
        else:
            path = target_dir / f"{checkpoint.id}.json"
            path.write_text(document, encoding="utf-8")

        logger.debug(f"Exported checkpoint {checkpoint.id} to {path}")
        return path

    def import_from_file(self, path: Union[str, Path]) -> Optional[Checkpoint]:
        """Import a checkpoint file written by ``export_to_file``."""
        file_path = Path(path)
        try:
            if file_path.suffix == ".gz":
                with gzip.open(file_path, "rt", encoding="utf-8") as handle:
                    document = handle.read()
            else:
                document = file_path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to read checkpoint file {file_path}: {e}")
            return None
        return self.import_checkpoint(document)

    def resume_from_checkpoint(self, checkpoint_id: str) -> ResumePoint:
        """
        Restore a checkpoint and work out which agent runs next.

        The next agent is the checkpoint's current agent, else the first
        pending agent, else None (the workflow had finished).
        """
        checkpoint = self.restore_checkpoint(checkpoint_id)
        if checkpoint is None:
            return ResumePoint(success=False)

        next_agent = checkpoint.current_agent
        if not next_agent and checkpoint.pending_agents:
            next_agent = checkpoint.pending_agents[0]
        logger.info(f"Resuming workflow {checkpoint.workflow_id} from {checkpoint_id} at {next_agent}")
        return ResumePoint(success=True, checkpoint=checkpoint, next_agent=next_agent or None)


def _json_text(value: Any) -> str:
    if value is None:
        return "null"
    return json.dumps(value, sort_keys=True, default=str)


def _compare_workflow_states(first: WorkflowState, second: WorkflowState) -> List[str]:
    changes = []
    if first.current_phase != second.current_phase:
        changes.append(f"Phase: {first.current_phase.value} → {second.current_phase.value}")

    keys = list(first.shared_state)
    keys.extend(key for key in second.shared_state if key not in first.shared_state)
    for key in keys:
        old = _json_text(first.shared_state.get(key)) if key in first.shared_state else "undefined"
        new = _json_text(second.shared_state.get(key)) if key in second.shared_state else "undefined"
        if old != new:
            changes.append(f"State[{key}]: {old} → {new}")
    return changes


class AutoCheckpointHook:
    """
    Creates checkpoints around agent execution.

    Snapshot keyword arguments are those of ``CheckpointManager.create_checkpoint``
    (``workflow_id``, ``workflow_state``, ``nodes``, ...). Hooks never raise:
    a failed checkpoint is logged and execution goes on. ``before_agent`` and
    ``after_agent`` only run when auto-checkpointing is enabled; ``on_error``
    always records a recovery point.
    """

    def __init__(self, manager: CheckpointManager):
        self.manager = manager

    def before_agent(self, agent_id: str, **snapshot: Any) -> Optional[Checkpoint]:
        if not self.manager.auto_checkpoint:
            return None
        snapshot["current_agent"] = agent_id
        return self._create(snapshot, f"Before executing agent: {agent_id}", ["auto", "pre-agent"])

    def after_agent(self, agent_id: str, **snapshot: Any) -> Optional[Checkpoint]:
        """Checkpoint after ``agent_id`` finished; ``current_agent`` may name the next agent."""
        if not self.manager.auto_checkpoint:
            return None
        return self._create(snapshot, f"After executing agent: {agent_id}", ["auto", "post-agent"])

    def on_error(self, error: BaseException, **snapshot: Any) -> Optional[Checkpoint]:
        return self._create(
            snapshot, f"Error during execution: {error}", ["auto", "error", "recovery-point"]
        )

    def _create(self, snapshot: Dict[str, Any], description: str, tags: List[str]) -> Optional[Checkpoint]:
        try:
            return self.manager.create_checkpoint(
                description=description, tags=tags, automatic=True, **snapshot
            )
        except Exception as e:
            logger.error(f"Auto-checkpoint failed ({description}): {e}")
            return None
