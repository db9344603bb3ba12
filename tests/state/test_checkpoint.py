"""
Tests for the agentgraph.state.checkpoint module.

This module tests:
- Checkpoint creation, immutability and restore
- Per-workflow retention
- Checkpoint diffs
- JSON export/import and file storage
- Resume points and automatic checkpoint hooks
"""

import json
import re

import pytest
from pydantic import ValidationError

from agentgraph.config import CheckpointConfig
from agentgraph.exceptions import CheckpointError
from agentgraph.graph.types import DecisionRecord, WorkflowPhase, WorkflowState
from agentgraph.state.artifacts import ArtifactRegistry
from agentgraph.state.checkpoint import (
    CHECKPOINT_FORMAT_VERSION,
    AutoCheckpointHook,
    CheckpointManager,
    ExecutionRecord,
    ExecutionStatus,
)


@pytest.fixture
def manager():
    """Create a CheckpointManager with default settings."""
    return CheckpointManager()


@pytest.fixture
def state():
    """Workflow state with some shared values and a decision."""
    return WorkflowState(
        current_phase=WorkflowPhase.EXECUTION,
        shared_state={"count": 1, "topic": "pricing"},
        decisions=[DecisionRecord(agent_id="a", decision="Start", timestamp=1.0)],
    )


@pytest.fixture
def full_checkpoint(manager, state, diamond_graph):
    """A checkpoint with every section populated."""
    registry = ArtifactRegistry()
    registry.create_artifact("plan.md", "# Plan", "start")
    history = [
        ExecutionRecord(
            agent_id="start",
            agent_role="orchestrator",
            start_time=10.0,
            end_time=12.5,
            artifacts_created=registry.ids(),
            metadata={"stepNumber": 1},
        )
    ]
    return manager.create_checkpoint(
        diamond_graph.id,
        state,
        nodes=diamond_graph.nodes,
        edges=diamond_graph.edges,
        execution_history=history,
        current_agent="left",
        pending_agents=["right"],
        artifacts=registry,
        description="After planning",
        tags=["manual"],
        automatic=False,
    )


# =============================================================================
# Creation Tests
# =============================================================================

class TestCreation:
    """Tests for creating and restoring checkpoints."""

    def test_id_and_version(self, manager, state):
        """Test ids and the format version."""
        checkpoint = manager.create_checkpoint("wf", state)

        assert re.fullmatch(r"checkpoint-\d+-[0-9a-f]{6}", checkpoint.id)
        assert checkpoint.version == CHECKPOINT_FORMAT_VERSION
        assert checkpoint.automatic

    def test_inputs_are_copied(self, manager, state):
        """Test later changes by the caller never reach the checkpoint."""
        checkpoint = manager.create_checkpoint("wf", state)

        state.shared_state["count"] = 99

        assert checkpoint.workflow_state.shared_state["count"] == 1

    def test_restore_returns_copy(self, manager, state):
        """Test restored checkpoints are independent of the stored one."""
        checkpoint = manager.create_checkpoint("wf", state)

        restored = manager.restore_checkpoint(checkpoint.id)
        restored.workflow_state.shared_state["count"] = 5

        assert manager.restore_checkpoint(checkpoint.id).workflow_state.shared_state["count"] == 1
        assert manager.restore_checkpoint("checkpoint-missing") is None

    def test_listed_and_created_are_copies(self, manager, state):
        """Test changing returned checkpoints never reaches the stored snapshot."""
        checkpoint = manager.create_checkpoint("wf", state)
        checkpoint.workflow_state.shared_state["count"] = 7

        listed = manager.list_checkpoints("wf")[0]
        listed.workflow_state.shared_state["count"] = 999
        listed.pending_agents.append("intruder")

        restored = manager.restore_checkpoint(checkpoint.id)
        assert restored.workflow_state.shared_state == {"count": 1, "topic": "pricing"}
        assert restored.pending_agents == []

    def test_save_checkpoint_is_manual(self, manager, state):
        """Test save_checkpoint records a described manual checkpoint."""
        checkpoint = manager.save_checkpoint("wf", state, "Before deploy")

        assert not checkpoint.automatic
        assert checkpoint.description == "Before deploy"

    def test_latest_and_listing(self, manager, state):
        """Test listing keeps insertion order per workflow."""
        first = manager.create_checkpoint("wf", state)
        second = manager.create_checkpoint("wf", state)
        manager.create_checkpoint("other", state)

        assert [c.id for c in manager.list_checkpoints("wf")] == [first.id, second.id]
        assert manager.get_latest_checkpoint("wf").id == second.id
        assert manager.get_latest_checkpoint("none") is None
        assert sorted(manager.list_workflows()) == ["other", "wf"]

    def test_delete_and_clear(self, manager, state):
        """Test deleting single checkpoints and whole workflows."""
        first = manager.create_checkpoint("wf", state)
        manager.create_checkpoint("wf", state)

        assert manager.delete_checkpoint(first.id)
        assert not manager.delete_checkpoint(first.id)
        assert manager.clear_workflow_checkpoints("wf") == 1
        assert manager.list_checkpoints("wf") == []


# =============================================================================
# Retention Tests
# =============================================================================

class TestRetention:
    """Tests for the per-workflow retention limit."""

    def test_oldest_evicted(self, state):
        """Test only the newest checkpoints are kept."""
        manager = CheckpointManager(max_checkpoints=3)
        created = [manager.create_checkpoint("wf", state) for _ in range(5)]

        kept = manager.list_checkpoints("wf")

        assert [c.id for c in kept] == [c.id for c in created[-3:]]
        assert manager.restore_checkpoint(created[0].id) is None

    def test_limit_is_per_workflow(self, state):
        """Test one workflow never evicts another's checkpoints."""
        manager = CheckpointManager(max_checkpoints=2)
        for _ in range(4):
            manager.create_checkpoint("a", state)
        manager.create_checkpoint("b", state)

        assert len(manager.list_checkpoints("a")) == 2
        assert len(manager.list_checkpoints("b")) == 1

    def test_config_object(self):
        """Test settings can come from a CheckpointConfig."""
        manager = CheckpointManager(CheckpointConfig(max_checkpoints=4, auto_checkpoint=False))

        assert manager.max_checkpoints == 4
        assert not manager.auto_checkpoint

    def test_invalid_limit(self):
        """Test the limit must be positive."""
        with pytest.raises(ValidationError):
            CheckpointManager(max_checkpoints=0)


# =============================================================================
# Diff Tests
# =============================================================================

class TestDiff:
    """Tests for checkpoint diffs."""

    def test_state_and_history_changes(self, manager):
        """Test diffs report phase, shared state, history and artifacts."""
        registry = ArtifactRegistry()
        first = manager.create_checkpoint(
            "wf",
            WorkflowState(shared_state={"count": 1, "gone": True}),
            artifacts=registry,
        )
        artifact = registry.create_artifact("out.md", "x", "a")
        second = manager.create_checkpoint(
            "wf",
            WorkflowState(
                current_phase=WorkflowPhase.EXECUTION,
                shared_state={"count": 2, "new": "x"},
            ),
            execution_history=[ExecutionRecord("a", "worker", 0.0, 1.0)],
            artifacts=registry,
        )

        diff = manager.get_checkpoint_diff(first.id, second.id)

        assert diff.new_agents_executed == 1
        assert diff.new_artifacts == [artifact.id]
        assert diff.time_delta >= 0
        assert diff.state_changes == [
            "Phase: planning → execution",
            "State[count]: 1 → 2",
            "State[gone]: true → undefined",
            'State[new]: undefined → "x"',
        ]

    def test_identical_checkpoints(self, manager, state):
        """Test no changes between equal states."""
        first = manager.create_checkpoint("wf", state)
        second = manager.create_checkpoint("wf", state)

        assert manager.get_checkpoint_diff(first.id, second.id).state_changes == []

    def test_missing_checkpoint(self, manager, state):
        """Test diffs need both checkpoints."""
        first = manager.create_checkpoint("wf", state)

        assert manager.get_checkpoint_diff(first.id, "checkpoint-missing") is None


# =============================================================================
# Export / Import Tests
# =============================================================================

class TestExportImport:
    """Tests for the JSON checkpoint document."""

    def test_round_trip(self, full_checkpoint):
        """Test import(export(c)) reproduces the checkpoint."""
        other = CheckpointManager()

        imported = other.import_checkpoint(CheckpointManager().export_checkpoint(full_checkpoint))

        assert imported == full_checkpoint
        assert [c.id for c in other.list_checkpoints(full_checkpoint.workflow_id)] == [full_checkpoint.id]

    def test_document_keys(self, manager, full_checkpoint):
        """Test the exported document uses camelCase keys."""
        document = json.loads(manager.export_checkpoint(full_checkpoint))

        assert document["workflowId"] == full_checkpoint.workflow_id
        assert document["currentAgent"] == "left"
        assert document["pendingAgents"] == ["right"]
        assert document["workflowState"]["sharedState"] == {"count": 1, "topic": "pricing"}

    @pytest.mark.parametrize("document", [
        "not json",
        "[]",
        json.dumps({"id": "c1", "workflowId": "wf"}),
        json.dumps({
            "id": "c1", "workflowId": "wf", "timestamp": "yesterday", "version": "1.0.0",
            "workflowState": {}, "nodes": [], "edges": [], "executionHistory": [],
            "pendingAgents": [], "artifacts": {},
        }),
    ])
    def test_invalid_documents_rejected(self, manager, document):
        """Test malformed documents return None instead of raising."""
        assert manager.import_checkpoint(document) is None
        assert manager.list_workflows() == []

    def test_unknown_role_rejected(self, manager, full_checkpoint):
        """Test documents that parse but cannot be rebuilt return None."""
        document = full_checkpoint.to_dict()
        document["nodes"][0]["data"]["role"] = "wizard"

        assert manager.import_checkpoint(json.dumps(document)) is None

    def test_unserializable_state(self, manager):
        """Test export raises CheckpointError for non-JSON state."""
        checkpoint = manager.create_checkpoint("wf", WorkflowState(shared_state={"handle": object()}))

        with pytest.raises(CheckpointError) as exc_info:
            manager.export_checkpoint(checkpoint)

        assert exc_info.value.operation == "export"

    def test_file_round_trip(self, tmp_path, manager, full_checkpoint):
        """Test plain JSON files."""
        path = manager.export_to_file(full_checkpoint, tmp_path)

        assert path.name == f"{full_checkpoint.id}.json"
        assert CheckpointManager().import_from_file(path) == full_checkpoint

    def test_compressed_file_round_trip(self, tmp_path, full_checkpoint):
        """Test gzip files when compression is enabled."""
        manager = CheckpointManager(storage_dir=str(tmp_path), compression_enabled=True)

        path = manager.export_to_file(full_checkpoint)

        assert path.suffix == ".gz"
        assert path.parent == tmp_path
        assert manager.import_from_file(path) == full_checkpoint

    def test_missing_file(self, tmp_path, manager):
        """Test reading a missing file returns None."""
        assert manager.import_from_file(tmp_path / "missing.json") is None


# =============================================================================
# Resume Tests
# =============================================================================

class TestResume:
    """Tests for resume points."""

    def test_resume_at_current_agent(self, manager, full_checkpoint):
        """Test the current agent runs next."""
        resume = manager.resume_from_checkpoint(full_checkpoint.id)

        assert resume.success
        assert resume.next_agent == "left"
        assert resume.checkpoint == full_checkpoint

    def test_resume_at_first_pending(self, manager, state):
        """Test the first pending agent runs next when none was current."""
        checkpoint = manager.create_checkpoint("wf", state, pending_agents=["b", "c"])

        assert manager.resume_from_checkpoint(checkpoint.id).next_agent == "b"

    def test_resume_finished_workflow(self, manager, state):
        """Test a finished workflow has no next agent."""
        checkpoint = manager.create_checkpoint("wf", state)

        resume = manager.resume_from_checkpoint(checkpoint.id)

        assert resume.success
        assert resume.next_agent is None

    def test_resume_unknown(self, manager):
        """Test resuming an unknown checkpoint fails."""
        assert not manager.resume_from_checkpoint("checkpoint-missing").success


# =============================================================================
# Auto Checkpoint Hook Tests
# =============================================================================

class TestAutoCheckpointHook:
    """Tests for AutoCheckpointHook."""

    def test_before_and_after(self, manager, state):
        """Test tags, descriptions and current agent."""
        hook = AutoCheckpointHook(manager)

        before = hook.before_agent("coder", workflow_id="wf", workflow_state=state)
        after = hook.after_agent("coder", workflow_id="wf", workflow_state=state)

        assert before.tags == ["auto", "pre-agent"]
        assert before.description == "Before executing agent: coder"
        assert before.current_agent == "coder"
        assert after.tags == ["auto", "post-agent"]
        assert after.description == "After executing agent: coder"

    def test_disabled_auto_checkpoint(self, state):
        """Test before/after are skipped but errors are still recorded."""
        hook = AutoCheckpointHook(CheckpointManager(auto_checkpoint=False))

        assert hook.before_agent("coder", workflow_id="wf", workflow_state=state) is None
        assert hook.after_agent("coder", workflow_id="wf", workflow_state=state) is None

        recovery = hook.on_error(ValueError("boom"), workflow_id="wf", workflow_state=state)

        assert recovery.tags == ["auto", "error", "recovery-point"]
        assert recovery.description == "Error during execution: boom"

    def test_hook_failure_is_swallowed(self, mocker, state):
        """Test a failing manager never breaks execution."""
        manager = CheckpointManager()
        mocker.patch.object(manager, "create_checkpoint", side_effect=RuntimeError("disk full"))
        hook = AutoCheckpointHook(manager)

        assert hook.before_agent("coder", workflow_id="wf", workflow_state=state) is None


# =============================================================================
# ExecutionRecord Tests
# =============================================================================

def test_execution_record_round_trip():
    """Test execution records round-trip with their status."""
    record = ExecutionRecord(
        agent_id="a",
        agent_role="tester",
        start_time=1.0,
        end_time=3.5,
        status=ExecutionStatus.FAILURE,
        error_message="assertion failed",
    )

    assert record.duration == 2.5
    assert ExecutionRecord.from_dict(record.to_dict()) == record
