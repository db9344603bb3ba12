"""
Execution state persistence: versioned artifacts and checkpoints.
"""

from .artifacts import (
    ArtifactMetadata,
    ArtifactRegistry,
    ArtifactValidationStatus,
    LineageNode,
)
from .checkpoint import (
    CHECKPOINT_FORMAT_VERSION,
    AutoCheckpointHook,
    Checkpoint,
    CheckpointDiff,
    CheckpointManager,
    ExecutionRecord,
    ExecutionStatus,
    ResumePoint,
)

__all__ = [
    # Artifacts
    "ArtifactRegistry",
    "ArtifactMetadata",
    "ArtifactValidationStatus",
    "LineageNode",
    # Checkpoints
    "CheckpointManager",
    "Checkpoint",
    "CheckpointDiff",
    "ExecutionRecord",
    "ExecutionStatus",
    "ResumePoint",
    "AutoCheckpointHook",
    "CHECKPOINT_FORMAT_VERSION",
]
