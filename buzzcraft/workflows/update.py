"""UPDATE workflow: apply a new version to a stopped deployment (OFFLINE -> OFFLINE)."""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false, with_default
from buzzcraft.workflows.engine import Correlation, LifecycleWorkflow

BACKUP_STEP = "create-backup"


class UpdateWorkflow(LifecycleWorkflow):
    """
    Updates a stopped deployment in place.

    Payload (``updateConfig``): ``deploymentId``, ``updateType`` and
    ``projectPath``. ``createBackup``, ``rollbackOnFailure`` and
    ``preserveData`` are on unless set to False; ``version`` defaults to
    ``auto`` and ``previousVersion`` to ``unknown``.

    Unless ``createBackup`` is False the run is given a ``backupId``
    (``backup-<updateId>``), announced by a ``create-backup`` step before the
    transition and reported with the result.
    """

    transition_type = TransitionType.UPDATE
    payload_name = "updateConfig"
    payload_fields = ("deploymentId", "updateType", "projectPath")
    correlation_key = "updateId"

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "deploymentId": payload["deploymentId"],
            "updateConfig": {
                "updateType": payload["updateType"],
                "createBackup": enabled_unless_false(payload, "createBackup"),
                "version": with_default(payload, "version", "auto"),
                "rollbackOnFailure": enabled_unless_false(payload, "rollbackOnFailure"),
                "preserveData": enabled_unless_false(payload, "preserveData"),
                "incrementalUpdate": bool(payload.get("incrementalUpdate", False)),
            },
            "previousVersion": with_default(payload, "previousVersion", "unknown"),
        }

    def run_details(self, payload: Mapping[str, Any], correlation: Correlation) -> Dict[str, Any]:
        backup = enabled_unless_false(payload, "createBackup")
        return {"backupId": f"backup-{correlation}" if backup else None}

    def preparation_steps(
        self,
        project_id: str,
        context: Mapping[str, Any],
        details: Mapping[str, Any],
    ) -> Sequence[Tuple[str, Callable[[], Awaitable[Any]]]]:
        backup_id = details.get("backupId")
        if not backup_id:
            return ()

        async def announce_backup() -> None:
            await self._emit("backup-creation", {"projectId": project_id, "backupId": backup_id})

        return ((BACKUP_STEP, announce_backup),)


async def execute_update_workflow(
    project_id: str,
    update_config: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await UpdateWorkflow(**collaborators).run(project_id, update_config, options)
