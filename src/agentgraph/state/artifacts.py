"""
Versioned artifact registry.

Artifacts are named outputs produced by workflow nodes. The registry keeps
every version of every artifact in a flat map keyed by artifact id, with a
per-path version history and lineage expressed as id references:
- Version numbers for a path start at 1 and strictly increase
- ``previous_version`` and ``derived_from`` always reference existing ids
- Content can be validated against registered JSON Schemas
"""

import copy
import hashlib
import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from jsonschema import validators
from jsonschema.exceptions import SchemaError

from ..exceptions import ArtifactError

logger = logging.getLogger(__name__)


class ArtifactValidationStatus(Enum):
    """Result of validating artifact content against its schema."""
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


@dataclass
class ArtifactMetadata:
    """Metadata of one artifact version."""
    id: str
    path: str
    created_by: str
    created_at: float
    version: int
    hash: Optional[str] = None
    previous_version: Optional[str] = None
    derived_from: List[str] = field(default_factory=list)
    child_artifacts: List[str] = field(default_factory=list)
    schema: Optional[str] = None  # Registered schema id
    content_type: str = "application/octet-stream"
    size: Optional[int] = None
    validation_status: ArtifactValidationStatus = ArtifactValidationStatus.UNKNOWN
    validation_errors: List[str] = field(default_factory=list)
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    critical: bool = False

    @property
    def is_valid(self) -> bool:
        return self.validation_status == ArtifactValidationStatus.VALID

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "path": self.path,
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "version": self.version,
            "derivedFrom": list(self.derived_from),
            "childArtifacts": list(self.child_artifacts),
            "contentType": self.content_type,
            "validationStatus": self.validation_status.value,
            "validationErrors": list(self.validation_errors),
            "tags": list(self.tags),
            "critical": self.critical,
        }
        optional = {
            "hash": self.hash,
            "previousVersion": self.previous_version,
            "schema": self.schema,
            "size": self.size,
            "description": self.description,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ArtifactMetadata':
        return cls(
            id=data["id"],
            path=data["path"],
            created_by=data.get("createdBy", ""),
            created_at=data.get("createdAt", 0.0),
            version=data.get("version", 1),
            hash=data.get("hash"),
            previous_version=data.get("previousVersion"),
            derived_from=list(data.get("derivedFrom") or []),
            child_artifacts=list(data.get("childArtifacts") or []),
            schema=data.get("schema"),
            content_type=data.get("contentType") or "application/octet-stream",
            size=data.get("size"),
            validation_status=ArtifactValidationStatus(data.get("validationStatus", "unknown")),
            validation_errors=list(data.get("validationErrors") or []),
            description=data.get("description"),
            tags=list(data.get("tags") or []),
            critical=bool(data.get("critical", False)),
        )


@dataclass
class LineageNode:
    """One artifact in a lineage tree, with its parents and children."""
    artifact: ArtifactMetadata
    parents: List['LineageNode'] = field(default_factory=list)
    children: List['LineageNode'] = field(default_factory=list)


def _serialize_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return json.dumps(content, sort_keys=True, default=str)


def _artifact_id(path: str, version: int, content_hash: str) -> str:
    safe_path = re.sub(r"[^a-zA-Z0-9]", "-", path)
    return f"artifact-{safe_path}-v{version}-{content_hash[:8]}"


class ArtifactRegistry:
    """
    Arena of versioned artifacts.

    Lookups accept either an artifact id or a path; a path resolves to its
    latest version unless a version number is given.
    """

    def __init__(self):
        self._artifacts: Dict[str, ArtifactMetadata] = {}
        self._contents: Dict[str, Any] = {}
        self._history: Dict[str, List[str]] = {}  # path -> ids, oldest first
        self._schemas: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._artifacts)

    def __contains__(self, id_or_path: str) -> bool:
        return self.has(id_or_path)

    # -------------------------------------------------------------------------
    # Schemas
    # -------------------------------------------------------------------------

    def register_schema(self, schema_id: str, schema: Dict[str, Any]) -> None:
        """
        Register a JSON Schema for artifact validation.

        Raises:
            ArtifactError: If the schema itself is not a valid JSON Schema
        """
        validator_cls = validators.validator_for(schema)
        try:
            validator_cls.check_schema(schema)
        except SchemaError as e:
            raise ArtifactError(
                f"Invalid JSON Schema '{schema_id}': {e.message}",
                context={"schema_id": schema_id},
            )
        self._schemas[schema_id] = copy.deepcopy(schema)
        logger.debug(f"Registered artifact schema {schema_id}")

    def get_schema(self, schema_id: str) -> Optional[Dict[str, Any]]:
        return self._schemas.get(schema_id)

    def validate_content(self, content: Any, schema_id: str) -> List[str]:
        """
        Validate content against a registered schema.

        Returns:
            List of error messages, empty when the content is valid

        Raises:
            ArtifactError: If the schema is not registered
        """
        schema = self._schemas.get(schema_id)
        if schema is None:
            raise ArtifactError(f"Schema '{schema_id}' is not registered", context={"schema_id": schema_id})
        validator = validators.validator_for(schema)(schema)
        errors = sorted(validator.iter_errors(content), key=lambda e: list(e.absolute_path))
        messages = []
        for error in errors:
            location = "/".join(str(part) for part in error.absolute_path)
            messages.append(f"{location}: {error.message}" if location else error.message)
        return messages

    # -------------------------------------------------------------------------
    # Versions
    # -------------------------------------------------------------------------

    def create_artifact(
        self,
        path: str,
        content: Any,
        created_by: str,
        derived_from: Optional[List[str]] = None,
        schema_id: Optional[str] = None,
        content_type: Optional[str] = None,
        tags: Optional[List[str]] = None,
        description: Optional[str] = None,
        critical: bool = False,
        previous_version: Optional[str] = None,
    ) -> ArtifactMetadata:
        """
        Store a new version of the artifact at ``path``.

        Args:
            path: Artifact path or name
            content: Artifact content (strings are hashed as-is, other values as JSON)
            created_by: Id of the node that produced it
            derived_from: Ids of parent artifacts
            schema_id: Registered schema to validate against
            content_type: MIME type or extension
            tags: Categorization tags
            description: Human-readable description
            critical: Whether the workflow depends on this artifact
            previous_version: Id of the version this one replaces

        Returns:
            Metadata of the stored version

        Raises:
            ArtifactError: If a parent or previous version id is unknown
        """
        parents = list(derived_from or [])
        unknown = [parent for parent in parents if parent not in self._artifacts]
        if previous_version is not None and previous_version not in self._artifacts:
            unknown.append(previous_version)
        if unknown:
            raise ArtifactError(
                f"Artifact {path} references unknown artifacts: {', '.join(unknown)}",
                artifact_path=path,
            )

        serialized = _serialize_content(content)
        content_hash = hashlib.sha256(serialized.encode("utf-8")).hexdigest()
        version = len(self._history.get(path, [])) + 1

        artifact_id = _artifact_id(path, version, content_hash)
        if artifact_id in self._artifacts:
            # Distinct paths can sanitize to the same id
            suffix = 2
            while f"{artifact_id}-{suffix}" in self._artifacts:
                suffix += 1
            artifact_id = f"{artifact_id}-{suffix}"

        metadata = ArtifactMetadata(
            id=artifact_id,
            path=path,
            created_by=created_by,
            created_at=time.time(),
            version=version,
            hash=content_hash,
            previous_version=previous_version,
            derived_from=parents,
            schema=schema_id,
            content_type=content_type or "application/octet-stream",
            size=len(serialized.encode("utf-8")),
            description=description,
            tags=list(tags or []),
            critical=critical,
        )

        if schema_id is not None:
            if schema_id in self._schemas:
                errors = self.validate_content(content, schema_id)
                metadata.validation_status = (
                    ArtifactValidationStatus.INVALID if errors else ArtifactValidationStatus.VALID
                )
                metadata.validation_errors = errors
            else:
                logger.warning(f"Artifact {path} references unregistered schema {schema_id}")
                metadata.validation_errors = [f"Schema '{schema_id}' is not registered"]

        self._artifacts[metadata.id] = metadata
        self._contents[metadata.id] = copy.deepcopy(content)
        self._history.setdefault(path, []).append(metadata.id)
        for parent in parents:
            self._artifacts[parent].child_artifacts.append(metadata.id)

        logger.debug(f"Created artifact {metadata.id} (version {version}) by {created_by}")
        return metadata

    def update_artifact(
        self,
        path: str,
        content: Any,
        updated_by: str,
        description: Optional[str] = None,
    ) -> ArtifactMetadata:
        """
        Store a new version derived from the latest version of ``path``.

        Raises:
            ArtifactError: If no artifact exists at ``path``
        """
        history = self._history.get(path)
        if not history:
            raise ArtifactError(f"Artifact not found: {path}", artifact_path=path)

        previous = self._artifacts[history[-1]]
        return self.create_artifact(
            path=path,
            content=content,
            created_by=updated_by,
            derived_from=[previous.id],
            schema_id=previous.schema,
            content_type=previous.content_type,
            tags=previous.tags,
            description=description or previous.description,
            critical=previous.critical,
            previous_version=previous.id,
        )

    def put(self, path: str, content: Any, created_by: str, **kwargs) -> ArtifactMetadata:
        """Create the artifact, or add a version when the path already exists."""
        if path in self._history:
            return self.update_artifact(path, content, created_by, kwargs.get("description"))
        return self.create_artifact(path, content, created_by, **kwargs)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get(self, id_or_path: str, version: Optional[int] = None) -> Optional[ArtifactMetadata]:
        """Metadata by id, or by path (latest version unless ``version`` is given)."""
        if version is None and id_or_path in self._artifacts:
            return self._artifacts[id_or_path]
        history = self._history.get(id_or_path)
        if not history:
            return None
        if version is None:
            return self._artifacts[history[-1]]
        for artifact_id in history:
            if self._artifacts[artifact_id].version == version:
                return self._artifacts[artifact_id]
        return None

    def get_content(self, id_or_path: str, version: Optional[int] = None) -> Any:
        """Stored content, or None when the artifact or its content is unknown."""
        metadata = self.get(id_or_path, version)
        if metadata is None:
            return None
        return copy.deepcopy(self._contents.get(metadata.id))

    def has(self, id_or_path: str) -> bool:
        return id_or_path in self._artifacts or id_or_path in self._history

    def ids(self) -> List[str]:
        """All artifact ids in creation order."""
        return list(self._artifacts)

    def paths(self) -> List[str]:
        return list(self._history)

    def all(self) -> List[ArtifactMetadata]:
        return list(self._artifacts.values())

    def get_version_history(self, path: str) -> List[ArtifactMetadata]:
        """All versions of a path, oldest first."""
        return [self._artifacts[artifact_id] for artifact_id in self._history.get(path, [])]

    def get_lineage(self, artifact_id: str) -> Optional[LineageNode]:
        """
        Lineage tree of an artifact.

        Parents and children are followed by id; an id already on the
        current branch is skipped so malformed lineage cannot recurse forever.
        """
        if artifact_id not in self._artifacts:
            return None
        return self._build_lineage(artifact_id, set())

    def _build_lineage(self, artifact_id: str, visited: Set[str]) -> Optional[LineageNode]:
        if artifact_id in visited:
            return None
        artifact = self._artifacts.get(artifact_id)
        if artifact is None:
            return None

        branch = visited | {artifact_id}
        node = LineageNode(artifact=artifact)
        for parent_id in artifact.derived_from:
            parent = self._build_lineage(parent_id, branch)
            if parent is not None:
                node.parents.append(parent)
        for child_id in artifact.child_artifacts:
            child = self._build_lineage(child_id, branch)
            if child is not None:
                node.children.append(child)
        return node

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def snapshot(self) -> Dict[str, ArtifactMetadata]:
        """Deep copy of all metadata keyed by artifact id."""
        return copy.deepcopy(self._artifacts)

    @classmethod
    def from_snapshot(cls, artifacts: Dict[str, ArtifactMetadata]) -> 'ArtifactRegistry':
        """Rebuild a registry from checkpointed metadata; contents are not restored."""
        registry = cls()
        ordered = sorted(artifacts.values(), key=lambda a: (a.path, a.version))
        for metadata in ordered:
            registry._artifacts[metadata.id] = copy.deepcopy(metadata)
            registry._history.setdefault(metadata.path, []).append(metadata.id)
        # Keep original insertion order for id listings
        registry._artifacts = {
            artifact_id: registry._artifacts[artifact_id] for artifact_id in artifacts
        }
        return registry

    def copy(self) -> 'ArtifactRegistry':
        """Independent deep copy including contents and schemas."""
        return copy.deepcopy(self)

    def as_expression_values(self) -> List[Dict[str, Any]]:
        """Metadata documents exposed as ``artifacts`` to custom expressions."""
        return [metadata.to_dict() for metadata in self._artifacts.values()]
