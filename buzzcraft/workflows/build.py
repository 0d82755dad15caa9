"""BUILD workflow: compile a draft (DRAFT -> BUILT)."""

from typing import Any, Dict, Mapping, Optional

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false
from buzzcraft.workflows.engine import LifecycleWorkflow


class BuildWorkflow(LifecycleWorkflow):
    """
    Builds a draft into deployable artifacts.

    Payload (``buildConfig``): ``target``, ``environment``, ``projectPath``;
    ``optimization``, ``parallel`` and ``cache`` are on unless set to False.
    """

    transition_type = TransitionType.BUILD
    payload_name = "buildConfig"
    payload_fields = ("target", "environment", "projectPath")
    correlation_key = "buildId"

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "projectPath": payload["projectPath"],
            "buildConfig": {
                "target": payload["target"],
                "environment": payload["environment"],
                "optimization": enabled_unless_false(payload, "optimization"),
                "parallel": enabled_unless_false(payload, "parallel"),
                "cache": enabled_unless_false(payload, "cache"),
            },
        }


async def execute_build_workflow(
    project_id: str,
    build_config: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await BuildWorkflow(**collaborators).run(project_id, build_config, options)
