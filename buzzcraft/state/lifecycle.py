"""
BuzzCraft Lifecycle - Project State Model

This module defines the project lifecycle states, the named transitions
between them and the stages a single workflow run moves through. It provides
the foundational rules that every validator and workflow engine checks
against.

Each transition type is defined for exactly one (from_state, to_state) pair.
"""

from enum import Enum
from typing import Dict, Set, Tuple


class ProjectState(str, Enum):
    """
    Lifecycle position of a generated project.

    State is never stored centrally: it is inferred on demand by asking the
    state detectors to examine external evidence (the project manifest).
    """

    VOID = "VOID"          # No project on disk yet
    DRAFT = "DRAFT"        # Created, editable sources
    BUILT = "BUILT"        # Compiled, ready to deploy
    ONLINE = "ONLINE"      # Deployed and serving traffic
    OFFLINE = "OFFLINE"    # Deployed but stopped


class TransitionType(str, Enum):
    """Named operations moving a project between lifecycle states."""

    SAVE = "SAVE"
    BUILD = "BUILD"
    EDIT = "EDIT"
    DEPLOY = "DEPLOY"
    START = "START"
    STOP = "STOP"
    UPDATE = "UPDATE"


# The single legal state pair of each transition type
TRANSITIONS: Dict[TransitionType, Tuple[ProjectState, ProjectState]] = {
    # Persist edits, project stays editable
    TransitionType.SAVE: (ProjectState.DRAFT, ProjectState.DRAFT),
    # Compile sources into deployable artifacts
    TransitionType.BUILD: (ProjectState.DRAFT, ProjectState.BUILT),
    # Re-open a built project for editing
    TransitionType.EDIT: (ProjectState.BUILT, ProjectState.DRAFT),
    # Ship artifacts; the deployment starts stopped
    TransitionType.DEPLOY: (ProjectState.BUILT, ProjectState.OFFLINE),
    TransitionType.START: (ProjectState.OFFLINE, ProjectState.ONLINE),
    TransitionType.STOP: (ProjectState.ONLINE, ProjectState.OFFLINE),
    # Apply a new version while the deployment is stopped
    TransitionType.UPDATE: (ProjectState.OFFLINE, ProjectState.OFFLINE),
}


class WorkflowStage(str, Enum):
    """
    Stages of a single workflow run.

    A run advances STARTED -> ... -> SUCCEEDED in order; FAILED is reachable
    from any stage.
    """

    STARTED = "started"
    STATE_VERIFIED = "state_verified"
    VALIDATED = "validated"
    PRECHECKED = "prechecked"
    TRANSITIONED = "transitioned"
    POSTVERIFIED = "postverified"
    CLEANED = "cleaned"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# Confidence at or above which a detector report counts as "is this state"
DEFAULT_CONFIDENCE_THRESHOLD = 70


def can_transition(
    transition: TransitionType,
    from_state: ProjectState,
    to_state: ProjectState
) -> bool:
    """
    Check if a state pair is legal for a transition type.

    Args:
        transition: Transition type being attempted
        from_state: Claimed starting state
        to_state: Claimed ending state

    Returns:
        True if (from_state, to_state) is the transition's defined pair

    Example:
        >>> can_transition(TransitionType.STOP, ProjectState.ONLINE, ProjectState.OFFLINE)
        True
        >>> can_transition(TransitionType.STOP, ProjectState.DRAFT, ProjectState.OFFLINE)
        False
    """
    return TRANSITIONS.get(transition) == (from_state, to_state)


def transitions_from(state: ProjectState) -> Set[TransitionType]:
    """
    Get the transition types that may start in a given state.

    Args:
        state: Current project state

    Returns:
        Set of transition types (empty for VOID, which no transition here leaves)

    Example:
        >>> sorted(t.value for t in transitions_from(ProjectState.BUILT))
        ['DEPLOY', 'EDIT']
    """
    return {
        transition
        for transition, (from_state, _) in TRANSITIONS.items()
        if from_state == state
    }
