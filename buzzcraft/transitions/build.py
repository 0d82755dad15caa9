"""BUILD: compile a draft into deployable artifacts. DRAFT -> BUILT."""

from typing import Any, Dict, Mapping

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default


class BuildTransition(Transition):
    transition_type = TransitionType.BUILD
    domain = "build"
    required_fields = ("projectId", "buildConfig", "projectPath")
    nested_fields = {"buildConfig": ("target", "environment")}
    success_actions = (
        "cleanup-temp-source-files",
        "compress-build-artifacts",
        "archive-build-logs",
        "finalize-build",
    )
    failure_actions = (
        "cleanup-partial-build-artifacts",
        "clear-compilation-cache",
        "rollback-state-to-draft",
    )
    trailing_actions = ("optimize-disk-space",)
    log_age_minutes = 30

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        return {
            "buildConfig": context.get("buildConfig"),
            "projectPath": context.get("projectPath"),
            "buildType": with_default(context, "buildType", "production"),
            "optimization": enabled_unless_false(context, "optimization"),
        }


BUILD = BuildTransition()

validate_build = BUILD.validate
execute_build = BUILD.act
cleanup_build = BUILD.cleanup
