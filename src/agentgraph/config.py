"""
Configuration models for checkpointing and simulation.

Both models accept snake_case field names and the camelCase keys used by
workflow editor documents (``maxSteps``, ``customNodeBehaviors``, ...).
"""

import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

SimulationMode = Literal["fast-forward", "step-by-step", "breakpoints"]

DEFAULT_COST_PER_TOKEN = 0.000015
DEFAULT_MAX_STEPS = 1000


class CheckpointConfig(BaseModel):
    """Retention and auto-checkpoint settings for a CheckpointManager."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    max_checkpoints: int = Field(
        10, ge=1, description="Maximum checkpoints kept per workflow; oldest are evicted first"
    )
    auto_checkpoint: bool = Field(
        True, description="Create checkpoints automatically before and after each agent"
    )
    storage_dir: str = Field(
        "./checkpoints", description="Directory used when exporting checkpoints to files"
    )
    compression_enabled: bool = Field(
        False, description="Gzip checkpoint files written to storage_dir"
    )


class SimulationConfig(BaseModel):
    """
    Settings for one simulation run.

    Node behaviors are callables ``behavior(inputs) -> dict`` (sync or async)
    returning any of ``outputs``, ``artifacts``, ``execution_time_ms``,
    ``tokens`` and ``state_updates``.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    mode: SimulationMode = Field(
        "fast-forward",
        description="'fast-forward' runs to the end, 'step-by-step' pauses after every step, "
                    "'breakpoints' pauses after breakpoint nodes",
    )
    breakpoints: List[str] = Field(
        default_factory=list, description="Node ids that pause the run in breakpoint mode"
    )
    mock_inputs: Dict[str, Any] = Field(
        default_factory=dict, description="Initial shared state"
    )
    mock_artifacts: Dict[str, Any] = Field(
        default_factory=dict, description="Artifacts (path -> content) present before the run"
    )
    custom_node_behaviors: Dict[str, Callable[..., Any]] = Field(
        default_factory=dict, description="Per-node behavior overriding the default mock"
    )
    token_estimates: Dict[str, int] = Field(
        default_factory=dict, description="Per-node token count overrides"
    )
    time_estimates: Dict[str, float] = Field(
        default_factory=dict, description="Per-node execution time overrides (ms)"
    )
    cost_per_token: float = Field(
        DEFAULT_COST_PER_TOKEN, ge=0.0, description="Cost of one token in dollars"
    )
    max_steps: int = Field(
        DEFAULT_MAX_STEPS, ge=1, description="Safety cap on executed steps"
    )
    timeout: Optional[float] = Field(
        None, gt=0, description="Wall-clock budget in milliseconds, checked between steps"
    )
    loops: List[Any] = Field(
        default_factory=list, description="Loops (Loop or loop documents) to drive during the run"
    )
    artifact_schemas: Dict[str, Dict[str, Any]] = Field(
        default_factory=dict, description="JSON Schemas keyed by artifact path"
    )

    @field_validator("loops", mode="before")
    @classmethod
    def _coerce_loops(cls, value: Any) -> List[Any]:
        """Accept loop documents as well as Loop instances."""
        from .routing.engine import Loop

        if value is None:
            return []
        loops = []
        for item in value:
            if isinstance(item, Loop):
                loops.append(item)
            elif isinstance(item, dict):
                try:
                    loops.append(Loop.from_dict(item))
                except KeyError as e:
                    raise ValueError(f"Loop document is missing {e}")
            else:
                raise ValueError(f"Expected a Loop or loop document, got {type(item).__name__}")
        return loops

    @model_validator(mode="after")
    def _check_breakpoints(self) -> "SimulationConfig":
        if self.breakpoints and self.mode != "breakpoints":
            logger.debug(f"Breakpoints are ignored in '{self.mode}' mode")
        return self

    @classmethod
    def from_value(cls, value: Union["SimulationConfig", Dict[str, Any], None]) -> "SimulationConfig":
        """Normalize a config instance, a config document or None."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        return cls.model_validate(value)
