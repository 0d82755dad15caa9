"""
BuzzCraft Lifecycle - Custom Exceptions

This module defines the exception hierarchy raised by validators, actors and
workflow engines. Every lifecycle error renders with a stable message prefix
(``ValidationError: ``, ``WorkflowError: ``) so that callers logging or
displaying errors keep the familiar format, while the failure cause itself is
carried as a structured ``FailureKind`` on the exception.
"""

import re
from enum import Enum
from typing import Iterable, List, Optional


class FailureKind(str, Enum):
    """
    Closed set of workflow failure causes.

    Recovery strategies are selected by switching on this value rather than
    by parsing error text.
    """

    STATE_MISMATCH = "state_mismatch"              # Precondition detector disagreed
    MISSING_REQUIREMENTS = "missing_requirements"  # Validator soft-failed
    PROJECT_MISSING = "project_missing"            # Existence pre-check failed
    PATH_NOT_WRITABLE = "path_not_writable"        # Output path pre-check failed
    ACTION_FAILED = "action_failed"                # Actor or commit failed
    POSTCONDITION_FAILED = "postcondition_failed"  # Final state not confirmed
    TIMEOUT = "timeout"                            # Step exceeded its deadline
    UNKNOWN = "unknown"

    @classmethod
    def from_message(cls, message: str) -> "FailureKind":
        """
        Classify a free-text error message.

        Only used for errors that carry no kind of their own (errors raised by
        foreign code or re-created from logs). Phrases are tested in order.

        Example:
            >>> FailureKind.from_message("WorkflowError: Projet n'est pas en état DRAFT")
            <FailureKind.STATE_MISMATCH: 'state_mismatch'>
        """
        text = message or ""
        if "n'est pas en état" in text:
            return cls.STATE_MISMATCH
        if "Validation échec" in text:
            return cls.MISSING_REQUIREMENTS
        if "Projet" in text and "inexistant" in text:
            return cls.PROJECT_MISSING
        if "non accessible en écriture" in text:
            return cls.PATH_NOT_WRITABLE
        if "Transition" in text and "échouée" in text:
            return cls.ACTION_FAILED
        if "État final n'est pas" in text:
            return cls.POSTCONDITION_FAILED
        if "Délai dépassé" in text:
            return cls.TIMEOUT
        return cls.UNKNOWN


_REQUIREMENTS_PATTERN = re.compile(r"Validation échec: (.+)")


def requirements_from_message(message: str) -> List[str]:
    """Recover the comma-separated requirement list embedded in an error message."""
    match = _REQUIREMENTS_PATTERN.search(message or "")
    if not match:
        return []
    return [item for item in match.group(1).split(", ") if item]


class LifecycleError(Exception):
    """
    Base exception for all lifecycle errors.

    Catch this to handle any failure raised by the lifecycle engine.
    """

    prefix = "LifecycleError"

    def __init__(self, message: str):
        self.reason = message
        super().__init__(f"{self.prefix}: {message}")


class ValidationError(LifecycleError):
    """
    Raised for malformed caller input.

    Always raised before any state-changing work begins and never triggers
    recovery: it signals a programmer or caller error.

    Example:
        >>> raise ValidationError("projectId requis string")
        Traceback (most recent call last):
        ...
        buzzcraft.state.exceptions.ValidationError: ValidationError: projectId requis string
    """

    prefix = "ValidationError"


class StateError(ValidationError):
    """
    Raised when a state pair is structurally illegal for a transition type.

    Attributes:
        transition: Transition type name
        from_state: Claimed starting state
        to_state: Claimed ending state
        expected: The transition's legal (from, to) pair
    """

    def __init__(
        self,
        message: str,
        transition: str,
        from_state: str,
        to_state: str,
        expected: tuple[str, str],
    ):
        super().__init__(message)
        self.transition = transition
        self.from_state = from_state
        self.to_state = to_state
        self.expected = expected


class WorkflowError(LifecycleError):
    """
    Raised for any failure during workflow orchestration.

    Attributes:
        kind: Structured failure cause driving recovery
        requirements: Missing context fields (MISSING_REQUIREMENTS only)
        transition: Transition type name, when known
        project_id: Project the failing run targeted, when known
    """

    prefix = "WorkflowError"

    def __init__(
        self,
        message: str,
        kind: Optional[FailureKind] = None,
        requirements: Optional[Iterable[str]] = None,
        transition: Optional[str] = None,
        project_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind if kind is not None else FailureKind.from_message(message)
        self.requirements = list(requirements or [])
        self.transition = transition
        self.project_id = project_id

    @classmethod
    def missing_requirements(
        cls,
        requirements: List[str],
        **kwargs: Optional[str],
    ) -> "WorkflowError":
        """Build the validator soft-failure error with its joinable requirement text."""
        return cls(
            f"Validation échec: {', '.join(requirements)}",
            kind=FailureKind.MISSING_REQUIREMENTS,
            requirements=requirements,
            **kwargs,
        )


class WorkflowTimeoutError(WorkflowError):
    """
    Raised when a workflow step does not complete before its deadline.

    Attributes:
        step: Name of the step that timed out
        timeout_seconds: Deadline that was exceeded
    """

    def __init__(
        self,
        step: str,
        timeout_seconds: float,
        transition: Optional[str] = None,
        project_id: Optional[str] = None,
    ):
        super().__init__(
            f"Délai dépassé pour l'étape {step} ({timeout_seconds}s)",
            kind=FailureKind.TIMEOUT,
            transition=transition,
            project_id=project_id,
        )
        self.step = step
        self.timeout_seconds = timeout_seconds
