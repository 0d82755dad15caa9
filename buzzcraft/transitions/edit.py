"""EDIT: reopen a built project for editing. BUILT -> DRAFT."""

from typing import Any, Dict, List, Mapping, Sequence

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import TransitionRecord
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default

BACKUP_ACTIONS = ("archive-previous-build", "create-build-backup-reference")


class EditTransition(Transition):
    """
    Returns a built project to draft.

    When the caller keeps the build backup (the default), cleanup archives the
    previous build before preparing the edit workspace.
    """

    transition_type = TransitionType.EDIT
    domain = "edit"
    required_fields = ("projectId", "editConfig", "projectPath")
    nested_fields = {"editConfig": ("backupBuild", "preserveChanges")}
    success_actions = (
        "setup-edit-environment",
        "index-editable-files",
        "mark-project-editable",
    )
    failure_actions = (
        "rollback-state-to-built",
        "cleanup-partial-backup-attempts",
        "clear-edit-cache",
    )
    trailing_actions = ("optimize-edit-workspace",)
    log_age_minutes = 20

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        edit_config = context.get("editConfig")
        return {
            "editConfig": edit_config,
            "projectPath": context.get("projectPath"),
            "editMode": with_default(context, "editMode", "full"),
            "backupCreated": enabled_unless_false(edit_config, "backupBuild"),
            "preserveChanges": enabled_unless_false(edit_config, "preserveChanges"),
        }

    def success_plan(self, record: TransitionRecord) -> Sequence[str]:
        actions: List[str] = []
        if record.context.get("backupCreated"):
            actions.extend(BACKUP_ACTIONS)
        actions.extend(self.success_actions)
        return actions


EDIT = EditTransition()

validate_edit = EDIT.validate
execute_edit = EDIT.act
cleanup_edit = EDIT.cleanup
