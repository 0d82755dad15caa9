"""
BuzzCraft Lifecycle - State Model

Project lifecycle states, transition rules, exceptions and the data models
exchanged during a workflow run. Detectors live in
``buzzcraft.state.detectors`` and are imported from there directly.
"""

from buzzcraft.state.exceptions import (
    FailureKind,
    LifecycleError,
    StateError,
    ValidationError,
    WorkflowError,
    WorkflowTimeoutError,
    requirements_from_message,
)
from buzzcraft.state.lifecycle import (
    DEFAULT_CONFIDENCE_THRESHOLD,
    TRANSITIONS,
    ProjectState,
    TransitionType,
    WorkflowStage,
    can_transition,
    transitions_from,
)
from buzzcraft.state.models import (
    CleanupResult,
    DetectionResult,
    RecoveryResult,
    StepMetric,
    TransitionRecord,
    ValidationResult,
    WorkflowMetrics,
    WorkflowResult,
)

__all__ = [
    # Lifecycle
    "ProjectState",
    "TransitionType",
    "WorkflowStage",
    "TRANSITIONS",
    "DEFAULT_CONFIDENCE_THRESHOLD",
    "can_transition",
    "transitions_from",
    # Models
    "DetectionResult",
    "ValidationResult",
    "TransitionRecord",
    "CleanupResult",
    "StepMetric",
    "WorkflowMetrics",
    "WorkflowResult",
    "RecoveryResult",
    # Exceptions
    "LifecycleError",
    "ValidationError",
    "StateError",
    "WorkflowError",
    "WorkflowTimeoutError",
    "FailureKind",
    "requirements_from_message",
]
