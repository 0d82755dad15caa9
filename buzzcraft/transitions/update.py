"""UPDATE: apply a new version to a stopped deployment. OFFLINE -> OFFLINE."""

from collections.abc import Mapping
from typing import Any, Dict, List, Sequence

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import TransitionRecord
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default

BACKUP_ACTIONS = ("archive-pre-update-backup", "create-backup-retention-policy")
ROLLBACK_ACTIONS = ("attempt-rollback-to-previous", "restore-previous-backup")


class UpdateTransition(Transition):
    """
    Updates a stopped deployment in place.

    The project stays OFFLINE. On success the pre-update backup is archived
    when one was taken; on failure a rollback is planned first unless the
    caller disabled ``rollbackOnFailure``.
    """

    transition_type = TransitionType.UPDATE
    domain = "update"
    required_fields = ("projectId", "updateConfig", "deploymentId")
    nested_fields = {"updateConfig": ("updateType", "createBackup", "version", "rollbackOnFailure")}
    success_actions = (
        "update-system-configurations",
        "cleanup-old-version-files",
        "finalize-update-process",
        "update-version-registry",
    )
    failure_actions = (
        "cleanup-partial-update-files",
        "alert-update-failure",
        "validate-system-integrity",
    )
    trailing_actions = ("cleanup-update-temp-files", "optimize-storage-post-update")
    log_age_minutes = 30

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        update_config = context.get("updateConfig")
        settings = update_config if isinstance(update_config, Mapping) else {}
        return {
            "updateConfig": update_config,
            "deploymentId": context.get("deploymentId"),
            "updateType": with_default(settings, "updateType", "minor"),
            "backupCreated": enabled_unless_false(update_config, "createBackup"),
            "rollbackEnabled": enabled_unless_false(update_config, "rollbackOnFailure"),
            "previousVersion": with_default(context, "previousVersion", "unknown"),
        }

    def success_plan(self, record: TransitionRecord) -> Sequence[str]:
        actions: List[str] = ["validate-post-update-integrity"]
        if record.context.get("backupCreated"):
            actions.extend(BACKUP_ACTIONS)
        actions.extend(self.success_actions)
        return actions

    def failure_plan(self, record: TransitionRecord) -> Sequence[str]:
        actions: List[str] = []
        if record.context.get("rollbackEnabled"):
            actions.extend(ROLLBACK_ACTIONS)
        actions.extend(self.failure_actions)
        return actions


UPDATE = UpdateTransition()

validate_update = UPDATE.validate
execute_update = UPDATE.act
cleanup_update = UPDATE.cleanup
