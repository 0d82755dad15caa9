"""SAVE workflow: persist draft content (DRAFT -> DRAFT)."""

from typing import Any, Dict, Mapping, Optional

from buzzcraft.state.exceptions import ValidationError
from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions import is_present
from buzzcraft.transitions.base import with_default
from buzzcraft.workflows.engine import LifecycleWorkflow


class SaveWorkflow(LifecycleWorkflow):
    """
    Saves a draft.

    Payload (``saveData``): ``projectPath`` and at least one of ``content``
    or ``changes``; optional ``version`` (default ``auto``) and
    ``commitMessage`` (default ``Auto save``).
    """

    transition_type = TransitionType.SAVE
    payload_name = "saveData"
    correlation_key = "saveId"

    def check_payload(self, payload: Any) -> None:
        super().check_payload(payload)
        if not is_present(payload, "content") and not is_present(payload, "changes"):
            raise ValidationError("saveData.content ou saveData.changes requis")

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "projectPath": payload["projectPath"],
            "saveData": {
                "content": payload.get("content"),
                "changes": payload.get("changes"),
                "version": with_default(payload, "version", "auto"),
                "commitMessage": with_default(payload, "commitMessage", "Auto save"),
            },
        }


async def execute_save_workflow(
    project_id: str,
    save_data: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    """Run a SAVE with collaborators built from defaults unless given."""
    return await SaveWorkflow(**collaborators).run(project_id, save_data, options)
