"""STOP: take an online service offline. ONLINE -> OFFLINE."""

from typing import Any, Dict, Mapping

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default


class StopTransition(Transition):
    """
    Stops a running service.

    A failed stop keeps the project ONLINE: the failure branch tries a forced
    shutdown and alerts instead of rolling the state back.
    """

    transition_type = TransitionType.STOP
    domain = "stop"
    required_fields = ("projectId", "stopConfig", "deploymentId")
    nested_fields = {"stopConfig": ("graceful", "timeout", "drainConnections")}
    success_actions = (
        "deactivate-active-monitoring",
        "unregister-load-balancer",
        "stop-metrics-collection",
        "close-network-connections",
        "release-system-resources",
        "mark-service-stopped",
        "notify-service-discovery-stop",
    )
    failure_actions = (
        "attempt-force-shutdown",
        "cleanup-pending-connections",
        "alert-shutdown-failure",
        "keep-online-state",
    )
    trailing_actions = ("cleanup-shutdown-temp-files", "archive-final-application-logs")
    log_age_minutes = 10

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        stop_config = context.get("stopConfig")
        return {
            "stopConfig": stop_config,
            "deploymentId": context.get("deploymentId"),
            "stopReason": with_default(context, "stopReason", "manual"),
            "gracefulShutdown": enabled_unless_false(stop_config, "graceful"),
            "drainConnections": enabled_unless_false(stop_config, "drainConnections"),
        }


STOP = StopTransition()

validate_stop = STOP.validate
execute_stop = STOP.act
cleanup_stop = STOP.cleanup
