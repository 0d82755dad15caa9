"""
BuzzCraft Lifecycle - Transitions

One validator / actor / cleanup triple per transition type.

Usage:
    from buzzcraft.transitions import validate_save, execute_save, cleanup_save

    result = await validate_save("DRAFT", "DRAFT", context)
    if result.can_transition:
        record = await execute_save("p1", context)
        plan = await cleanup_save(record, "p1")
"""

from typing import Dict, Optional, Union

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, is_present
from buzzcraft.transitions.build import BUILD, BuildTransition, cleanup_build, execute_build, validate_build
from buzzcraft.transitions.deploy import DEPLOY, DeployTransition, cleanup_deploy, execute_deploy, validate_deploy
from buzzcraft.transitions.edit import EDIT, EditTransition, cleanup_edit, execute_edit, validate_edit
from buzzcraft.transitions.save import SAVE, SaveTransition, cleanup_save, execute_save, validate_save
from buzzcraft.transitions.start import START, StartTransition, cleanup_start, execute_start, validate_start
from buzzcraft.transitions.stop import STOP, StopTransition, cleanup_stop, execute_stop, validate_stop
from buzzcraft.transitions.update import UPDATE, UpdateTransition, cleanup_update, execute_update, validate_update

TRANSITION_CLASSES: Dict[TransitionType, type] = {
    TransitionType.SAVE: SaveTransition,
    TransitionType.BUILD: BuildTransition,
    TransitionType.EDIT: EditTransition,
    TransitionType.DEPLOY: DeployTransition,
    TransitionType.START: StartTransition,
    TransitionType.STOP: StopTransition,
    TransitionType.UPDATE: UpdateTransition,
}

REGISTRY: Dict[TransitionType, Transition] = {
    TransitionType.SAVE: SAVE,
    TransitionType.BUILD: BUILD,
    TransitionType.EDIT: EDIT,
    TransitionType.DEPLOY: DEPLOY,
    TransitionType.START: START,
    TransitionType.STOP: STOP,
    TransitionType.UPDATE: UPDATE,
}


def get_transition(
    transition: Union[TransitionType, str],
    log_age_minutes: Optional[float] = None,
) -> Transition:
    """
    Look up a transition by type.

    With ``log_age_minutes`` a fresh instance with that cleanup threshold is
    returned instead of the shared default.

    Raises:
        ValueError: If the transition type is unknown
    """
    transition = TransitionType(transition)
    if log_age_minutes is None:
        return REGISTRY[transition]
    return TRANSITION_CLASSES[transition](log_age_minutes=log_age_minutes)


__all__ = [
    "Transition",
    "TRANSITION_CLASSES",
    "REGISTRY",
    "get_transition",
    "is_present",
    "SAVE", "BUILD", "EDIT", "DEPLOY", "START", "STOP", "UPDATE",
    "validate_save", "execute_save", "cleanup_save",
    "validate_build", "execute_build", "cleanup_build",
    "validate_edit", "execute_edit", "cleanup_edit",
    "validate_deploy", "execute_deploy", "cleanup_deploy",
    "validate_start", "execute_start", "cleanup_start",
    "validate_stop", "execute_stop", "cleanup_stop",
    "validate_update", "execute_update", "cleanup_update",
]
