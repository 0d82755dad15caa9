"""DEPLOY: install build artifacts on a target, left stopped. BUILT -> OFFLINE."""

from typing import Any, Dict, Mapping

from buzzcraft.state.lifecycle import TransitionType
from buzzcraft.transitions.base import Transition, enabled_unless_false, with_default


class DeployTransition(Transition):
    transition_type = TransitionType.DEPLOY
    domain = "deploy"
    required_fields = ("projectId", "deployConfig", "projectPath")
    nested_fields = {"deployConfig": ("target", "environment", "port")}
    success_actions = (
        "setup-deployment-monitoring",
        "create-health-endpoints",
        "setup-application-logging",
        "register-service-discovery",
        "finalize-deployment",
    )
    failure_actions = (
        "cleanup-partial-containers",
        "cleanup-network-configs",
        "release-reserved-ports",
        "rollback-state-to-built",
    )
    trailing_actions = ("cleanup-build-artifacts", "optimize-system-resources")
    log_age_minutes = 60

    def normalize(self, context: Mapping) -> Dict[str, Any]:
        return {
            "deployConfig": context.get("deployConfig"),
            "projectPath": context.get("projectPath"),
            "deployType": with_default(context, "deployType", "container"),
            "autoStart": enabled_unless_false(context, "autoStart"),
            "healthCheck": enabled_unless_false(context, "healthCheck"),
        }


DEPLOY = DeployTransition()

validate_deploy = DEPLOY.validate
execute_deploy = DEPLOY.act
cleanup_deploy = DEPLOY.cleanup
