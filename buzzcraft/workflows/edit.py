"""EDIT workflow: reopen a built project (BUILT -> DRAFT)."""

from typing import Any, Dict, Mapping, Optional

from buzzcraft.state.exceptions import ValidationError
from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false, with_default
from buzzcraft.workflows.engine import LifecycleWorkflow


class EditWorkflow(LifecycleWorkflow):
    """
    Returns a built project to draft for editing.

    Payload (``editOptions``): ``projectPath`` and an ``editConfig`` mapping.
    ``backupBuild``, ``preserveChanges`` and ``createBranch`` are on unless
    set to False; ``editMode`` defaults to ``full``.
    """

    transition_type = TransitionType.EDIT
    payload_name = "editOptions"
    payload_fields = ("projectPath", "editConfig")
    correlation_key = "editSession"

    def check_payload(self, payload: Any) -> None:
        super().check_payload(payload)
        if not isinstance(payload["editConfig"], Mapping):
            raise ValidationError("editOptions.editConfig requis object")

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        edit_config = payload["editConfig"]
        return {
            "projectId": project_id,
            "projectPath": payload["projectPath"],
            "editConfig": {
                "backupBuild": enabled_unless_false(edit_config, "backupBuild"),
                "preserveChanges": enabled_unless_false(edit_config, "preserveChanges"),
                "editMode": with_default(edit_config, "editMode", "full"),
                "createBranch": enabled_unless_false(edit_config, "createBranch"),
            },
        }


async def execute_edit_workflow(
    project_id: str,
    edit_options: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await EditWorkflow(**collaborators).run(project_id, edit_options, options)
