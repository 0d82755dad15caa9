"""START: bring a deployed service online. OFFLINE -> ONLINE."""

from typing import Any, Dict, Mapping

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default


class StartTransition(Transition):
    transition_type = TransitionType.START
    domain = "start"
    required_fields = ("projectId", "startConfig", "deploymentId")
    nested_fields = {"startConfig": ("healthCheck", "timeout", "readinessProbe")}
    success_actions = (
        "activate-full-monitoring",
        "register-load-balancer",
        "setup-health-alerts",
        "enable-metrics-collection",
        "mark-service-online",
        "notify-service-discovery",
    )
    failure_actions = (
        "stop-partially-started-services",
        "cleanup-temp-health-endpoints",
        "release-network-resources",
        "rollback-state-to-offline",
    )
    trailing_actions = ("cleanup-startup-temp-files", "optimize-network-connections")
    log_age_minutes = 15

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        start_config = context.get("startConfig")
        return {
            "startConfig": start_config,
            "deploymentId": context.get("deploymentId"),
            "startMode": with_default(context, "startMode", "standard"),
            "gracefulStart": enabled_unless_false(context, "gracefulStart"),
            "healthCheckEnabled": enabled_unless_false(start_config, "healthCheck"),
        }


START = StartTransition()

validate_start = START.validate
execute_start = START.act
cleanup_start = START.cleanup
