"""DEPLOY workflow: install a build on its target (BUILT -> OFFLINE)."""

from typing import Any, Dict, Mapping, Optional

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false, with_default
from buzzcraft.workflows.engine import LifecycleWorkflow

DEFAULT_PORT = 8080


class DeployWorkflow(LifecycleWorkflow):
    """
    Deploys build artifacts; the service is left stopped.

    Payload (``deployConfig``): ``target``, ``environment``, ``projectPath``;
    ``port`` defaults to 8080 and ``replicas`` to 1.
    """

    transition_type = TransitionType.DEPLOY
    payload_name = "deployConfig"
    payload_fields = ("target", "environment", "projectPath")
    correlation_key = "deploymentId"

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "projectPath": payload["projectPath"],
            "deployConfig": {
                "target": payload["target"],
                "environment": payload["environment"],
                "port": payload.get("port") or DEFAULT_PORT,
                "healthCheck": enabled_unless_false(payload, "healthCheck"),
                "replicas": payload.get("replicas") or 1,
                "autoStart": enabled_unless_false(payload, "autoStart"),
            },
            "deployType": with_default(payload, "deployType", "container"),
        }


async def execute_deploy_workflow(
    project_id: str,
    deploy_config: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await DeployWorkflow(**collaborators).run(project_id, deploy_config, options)
