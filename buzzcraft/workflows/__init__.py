"""
BuzzCraft Lifecycle - Workflows

One workflow per transition type, sharing the orchestration of
``LifecycleWorkflow``.

Usage:
    from buzzcraft.workflows import workflow_for

    workflow = workflow_for("SAVE", probe=probe)
    result = await workflow.run("p1", {"projectPath": "/srv/p1", "content": "..."})
"""

from typing import Any, Dict, Type, Union

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.workflows.build import BuildWorkflow, execute_build_workflow
from buzzcraft.workflows.deploy import DeployWorkflow, execute_deploy_workflow
from buzzcraft.workflows.edit import EditWorkflow, execute_edit_workflow
from buzzcraft.workflows.engine import LifecycleWorkflow
from buzzcraft.workflows.events import RecordingEventSink, StructlogEventSink, WorkflowEventSink
from buzzcraft.workflows.locks import DEFAULT_LOCKS, ProjectLockRegistry
from buzzcraft.workflows.options import WorkflowOptions
from buzzcraft.workflows.recovery import RECOVERY_PLANS, RecoveryClassifier, RecoveryPlan
from buzzcraft.workflows.save import SaveWorkflow, execute_save_workflow
from buzzcraft.workflows.start import StartWorkflow, execute_start_workflow
from buzzcraft.workflows.stop import StopWorkflow, execute_stop_workflow
from buzzcraft.workflows.update import UpdateWorkflow, execute_update_workflow

WORKFLOWS: Dict[TransitionType, Type[LifecycleWorkflow]] = {
    TransitionType.SAVE: SaveWorkflow,
    TransitionType.BUILD: BuildWorkflow,
    TransitionType.EDIT: EditWorkflow,
    TransitionType.DEPLOY: DeployWorkflow,
    TransitionType.START: StartWorkflow,
    TransitionType.STOP: StopWorkflow,
    TransitionType.UPDATE: UpdateWorkflow,
}


def workflow_for(transition_type: Union[TransitionType, str], **collaborators: Any) -> LifecycleWorkflow:
    """
    Build the workflow of a transition type.

    Raises:
        ValueError: If the transition type is unknown
    """
    return WORKFLOWS[TransitionType(transition_type)](**collaborators)


__all__ = [
    "LifecycleWorkflow",
    "WORKFLOWS",
    "workflow_for",
    "SaveWorkflow",
    "BuildWorkflow",
    "EditWorkflow",
    "DeployWorkflow",
    "StartWorkflow",
    "StopWorkflow",
    "UpdateWorkflow",
    "execute_save_workflow",
    "execute_build_workflow",
    "execute_edit_workflow",
    "execute_deploy_workflow",
    "execute_start_workflow",
    "execute_stop_workflow",
    "execute_update_workflow",
    "WorkflowEventSink",
    "StructlogEventSink",
    "RecordingEventSink",
    "ProjectLockRegistry",
    "DEFAULT_LOCKS",
    "WorkflowOptions",
    "RecoveryClassifier",
    "RecoveryPlan",
    "RECOVERY_PLANS",
]
