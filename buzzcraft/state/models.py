"""
BuzzCraft Lifecycle - Data Models

Pydantic models for the artifacts exchanged between detectors, validators,
actors, cleanups, workflow engines and the recovery classifier. All of them
live for a single workflow invocation; none is persisted as project state.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from buzzcraft.state.lifecycle import DEFAULT_CONFIDENCE_THRESHOLD, ProjectState


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse an ISO 8601 string or datetime into an aware UTC datetime.

    Naive values are assumed to be UTC.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if not isinstance(value, datetime):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class DetectionResult(BaseModel):
    """
    Report of a state detector.

    Confidence is binary in practice (0 or 100) even though the scale is
    0-100; callers must not rely on intermediate values.
    """

    state: Optional[ProjectState] = Field(default=None, description="Detected state, None if not detected")
    confidence: int = Field(default=0, description="Detection confidence", ge=0, le=100)
    evidence: List[str] = Field(default_factory=list, description="Supporting observations")
    evidence_path: str = Field(..., description="Inspected evidence locator")
    timestamp: datetime = Field(default_factory=utc_now, description="Detection time")

    model_config = {"validate_assignment": True}

    def is_state(
        self,
        expected: ProjectState,
        threshold: int = DEFAULT_CONFIDENCE_THRESHOLD
    ) -> bool:
        """True if this report confirms ``expected`` at or above ``threshold``."""
        return self.state == expected and self.confidence >= threshold


class ValidationResult(BaseModel):
    """
    Outcome of a transition validator.

    ``valid`` is always True when returned: structural errors raise instead.
    ``can_transition`` is False when the caller omitted required context.
    """

    valid: bool = True
    can_transition: bool
    requirements: List[str] = Field(default_factory=list)


class TransitionRecord(BaseModel):
    """
    Record produced by a transition actor.

    The only artifact that crosses from actor to cleanup to recovery.
    """

    success: bool
    from_state: ProjectState
    to_state: ProjectState
    timestamp: datetime = Field(default_factory=utc_now)
    transition_data: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"validate_assignment": True}

    @field_validator("timestamp", mode="before")
    @classmethod
    def parse_datetime(cls, v: Any) -> datetime:
        """Accept ISO 8601 strings; normalize to aware UTC."""
        return parse_timestamp(v)

    def age_minutes(self, now: Optional[datetime] = None) -> float:
        """Minutes elapsed since the transition was recorded."""
        reference = parse_timestamp(now) if now is not None else utc_now()
        return (reference - self.timestamp).total_seconds() / 60

    @property
    def context(self) -> Dict[str, Any]:
        """Normalized context embedded in ``transition_data``."""
        return self.transition_data.get("context", {}) or {}


class CleanupResult(BaseModel):
    """Ordered follow-up actions decided by a transition cleanup."""

    cleaned: bool = True
    actions: List[str] = Field(default_factory=list)


class StepMetric(BaseModel):
    """Timing of one workflow step."""

    name: str
    duration: float = Field(..., description="Step duration in milliseconds", ge=0)
    success: bool


class WorkflowMetrics(BaseModel):
    """
    Metrics accumulated by one workflow run.

    Built incrementally during orchestration and only logged at the end.
    ``correlation`` holds the transition-specific identifier (a string id,
    or the accumulated ``stoppedServices`` list for STOP).
    """

    start_time: datetime = Field(default_factory=utc_now)
    steps: List[StepMetric] = Field(default_factory=list)
    duration: float = Field(default=0.0, description="Total duration in milliseconds", ge=0)
    success: bool = False
    error: Optional[str] = None
    correlation: Union[str, List[str], None] = None

    def record_step(self, name: str, duration: float, success: bool = True) -> StepMetric:
        """Append a step entry; entries are never reordered."""
        step = StepMetric(name=name, duration=max(duration, 0.0), success=success)
        self.steps.append(step)
        return step

    def finish(self, success: bool, duration: float, error: Optional[str] = None) -> None:
        """Stamp the terminal outcome of the run."""
        self.duration = max(duration, 0.0)
        self.success = success
        self.error = error


class RecoveryResult(BaseModel):
    """Best-effort mitigation reported by the recovery classifier."""

    recovered: bool = False
    strategy: str
    actions: List[str] = Field(default_factory=list)
    backup_restored: bool = False


class WorkflowResult(BaseModel):
    """
    Composite result of a successful workflow run.

    Failed runs never produce this object: they raise ``WorkflowError``.
    """

    success: bool = True
    project_id: str
    transition_type: str
    final_state: ProjectState
    correlation_id: Union[str, List[str]]
    transition: TransitionRecord
    checks: Dict[str, Any] = Field(default_factory=dict)
    metrics: WorkflowMetrics
    details: Dict[str, Any] = Field(default_factory=dict, description="Transition-specific identifiers")
