"""SAVE: persist draft content. DRAFT -> DRAFT."""

from typing import Any, Dict, Mapping

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, with_default


class SaveTransition(Transition):
    transition_type = TransitionType.SAVE
    domain = "save"
    required_fields = ("projectId", "saveData", "projectPath")
    success_actions = ("cleanup-old-save-versions", "compact-save-data", "finalize-save")
    failure_actions = ("cleanup-partial-save-files", "clear-save-cache")
    log_age_minutes = 10

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        return {
            "saveData": context.get("saveData"),
            "projectPath": context.get("projectPath"),
            "saveType": with_default(context, "saveType", "manual"),
        }


SAVE = SaveTransition()

validate_save = SAVE.validate
execute_save = SAVE.act
cleanup_save = SAVE.cleanup
