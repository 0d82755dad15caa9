"""START workflow: bring a deployment online (OFFLINE -> ONLINE)."""

import time
from typing import Any, Dict, Mapping, Optional

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false, with_default
from buzzcraft.workflows.engine import LifecycleWorkflow

DEFAULT_START_TIMEOUT_MS = 30000


class StartWorkflow(LifecycleWorkflow):
    """
    Starts a deployed service.

    Payload (``startConfig``): ``deploymentId`` and ``projectPath``; probes
    default to ``/health``, ``/ready`` and ``/alive`` and the start timeout
    to 30000 ms.
    """

    transition_type = TransitionType.START
    payload_name = "startConfig"
    payload_fields = ("deploymentId", "projectPath")
    correlation_key = "serviceId"

    def new_correlation(self, project_id: str) -> str:
        return f"service-{project_id}-{int(time.time() * 1000)}"

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "deploymentId": payload["deploymentId"],
            "startConfig": {
                "healthCheck": with_default(payload, "healthCheck", "/health"),
                "timeout": payload.get("timeout") or DEFAULT_START_TIMEOUT_MS,
                "readinessProbe": with_default(payload, "readinessProbe", "/ready"),
                "livenessProbe": with_default(payload, "livenessProbe", "/alive"),
                "gracefulStart": enabled_unless_false(payload, "gracefulStart"),
            },
            "startMode": with_default(payload, "startMode", "standard"),
        }


async def execute_start_workflow(
    project_id: str,
    start_config: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await StartWorkflow(**collaborators).run(project_id, start_config, options)
