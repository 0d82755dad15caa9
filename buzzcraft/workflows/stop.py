"""STOP workflow: take an online service offline (ONLINE -> OFFLINE)."""

from typing import Any, Dict, List, Mapping, Optional

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.state.models import TransitionRecord, WorkflowMetrics, WorkflowResult
from buzzcraft.transitions.base import enabled_unless_false, with_default
from buzzcraft.workflows.engine import LifecycleWorkflow

DEFAULT_STOP_TIMEOUT_MS = 30000


def stopped_services(project_id: str, stop_config: Mapping[str, Any]) -> List[str]:
    """Services reported as stopped for a stop configuration."""
    if stop_config.get("graceful"):
        services = [f"web-service-{project_id}", f"api-service-{project_id}"]
    else:
        services = [f"force-stopped-{project_id}"]
    if stop_config.get("drainConnections"):
        services.append(f"connections-drained-{project_id}")
    return services


class StopWorkflow(LifecycleWorkflow):
    """
    Stops a running service.

    Payload (``stopConfig``): ``deploymentId`` and ``projectPath``.
    ``graceful``, ``drainConnections`` and ``saveState`` are on unless set to
    False; ``backupBeforeStop`` is off unless set; the timeout defaults to
    30000 ms.

    Instead of a string identifier the run is traced by the list of services
    it stopped (``stoppedServices``), filled once the transition commits.
    """

    transition_type = TransitionType.STOP
    payload_name = "stopConfig"
    payload_fields = ("deploymentId", "projectPath")
    correlation_key = "stoppedServices"

    def new_correlation(self, project_id: str) -> List[str]:
        return []

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return {
            "projectId": project_id,
            "deploymentId": payload["deploymentId"],
            "stopConfig": {
                "graceful": enabled_unless_false(payload, "graceful"),
                "timeout": payload.get("timeout") or DEFAULT_STOP_TIMEOUT_MS,
                "drainConnections": enabled_unless_false(payload, "drainConnections"),
                "saveState": enabled_unless_false(payload, "saveState"),
                "backupBeforeStop": bool(payload.get("backupBeforeStop", False)),
            },
            "stopReason": with_default(payload, "stopReason", "manual"),
        }

    def after_transition(
        self,
        project_id: str,
        context: Mapping[str, Any],
        record: TransitionRecord,
        metrics: WorkflowMetrics,
    ) -> None:
        metrics.correlation = stopped_services(project_id, context["stopConfig"])


async def execute_stop_workflow(
    project_id: str,
    stop_config: Mapping[str, Any],
    options: Optional[Mapping[str, Any]] = None,
    **collaborators: Any,
) -> WorkflowResult:
    return await StopWorkflow(**collaborators).run(project_id, stop_config, options)
