"""
Workflow failure recovery.

After a workflow run fails, the recovery classifier picks a strategy from
the failure's cause and lists the mitigation actions an executor should run.
Recovery is observational: it never performs the actions, never retries the
workflow and never suppresses the original error.

Strategies:
- state-conflict: the project was not in the expected starting state
- validation-failure: the transition context missed required fields
- project-missing: the project disappeared
- filesystem-failure: the target path is not writable (optimistic retry)
- transition-failure: the actor or manifest commit failed (rollback)
- state-verification-failure: the final state was not confirmed
- timeout: a step exceeded its deadline
- unknown-error: anything else

UPDATE also plans a backup restore on transition and unknown failures unless
the payload disabled ``createBackup``.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from buzzcraft.observability import get_logger, record_recovery
from buzzcraft.state.detectors import StateDetector, build_detectors
from buzzcraft.state.exceptions import FailureKind, WorkflowError, requirements_from_message
from buzzcraft.state.lifecycle import DEFAULT_CONFIDENCE_THRESHOLD, ProjectState, TransitionType
from buzzcraft.state.models import RecoveryResult
from buzzcraft.transitions import Transition, get_transition
from buzzcraft.transitions.base import enabled_unless_false
from buzzcraft.workflows.events import StructlogEventSink, WorkflowEventSink
from buzzcraft.workflows.options import WorkflowOptions

logger = get_logger(__name__)

DEFAULT_MAX_RETRIES = 2

# Strategy names
STATE_CONFLICT = "state-conflict"
VALIDATION_FAILURE = "validation-failure"
PROJECT_MISSING = "project-missing"
FILESYSTEM_FAILURE = "filesystem-failure"
TRANSITION_FAILURE = "transition-failure"
STATE_VERIFICATION_FAILURE = "state-verification-failure"
TIMEOUT = "timeout"
UNKNOWN_ERROR = "unknown-error"
RECOVERY_FAILED = "recovery-failed"

STRATEGIES = {
    FailureKind.STATE_MISMATCH: STATE_CONFLICT,
    FailureKind.MISSING_REQUIREMENTS: VALIDATION_FAILURE,
    FailureKind.PROJECT_MISSING: PROJECT_MISSING,
    FailureKind.PATH_NOT_WRITABLE: FILESYSTEM_FAILURE,
    FailureKind.ACTION_FAILED: TRANSITION_FAILURE,
    FailureKind.POSTCONDITION_FAILED: STATE_VERIFICATION_FAILURE,
    FailureKind.TIMEOUT: TIMEOUT,
    FailureKind.UNKNOWN: UNKNOWN_ERROR,
}


@dataclass(frozen=True)
class RecoveryPlan:
    """
    Transition-specific action names used by the classifier.

    Attributes:
        transition: Transition type the plan belongs to
        already_done: Suffix of ``project-already-<...>`` when the target
            state is found on a state conflict
        permissions_check: First filesystem-failure action
        partial_cleanup: Second filesystem-failure action
        retry_action: Retry action recorded when a retry is allowed
        verification: Diagnose / validate / force-cleanup triple for a
            final state that was not confirmed
        restore_action: Last unknown-error action
        found_suffix: Appended to ``detect-current-state-<state>`` when a
            transition that keeps its state finds the project in that state
        other_state: Name used in ``detect-current-state-<...>`` when it does not
        restores_backup: Plan a backup restore on transition and unknown
            failures unless the payload set ``createBackup`` to False
    """

    transition: TransitionType
    already_done: str
    permissions_check: str
    partial_cleanup: str
    retry_action: str
    verification: Tuple[str, str, str]
    restore_action: str
    found_suffix: str = ""
    other_state: str = "other"
    restores_backup: bool = False

    @property
    def domain(self) -> str:
        return self.transition.value.lower()


RECOVERY_PLANS: Dict[TransitionType, RecoveryPlan] = {
    TransitionType.SAVE: RecoveryPlan(
        transition=TransitionType.SAVE,
        already_done="saved",
        permissions_check="check-filesystem-permissions",
        partial_cleanup="cleanup-partial-files",
        retry_action="retry-save-with-backup-path",
        verification=("diagnose-final-state", "validate-save-integrity", "force-cleanup-all"),
        restore_action="preserve-draft-state",
    ),
    TransitionType.BUILD: RecoveryPlan(
        transition=TransitionType.BUILD,
        already_done="built",
        permissions_check="check-build-permissions",
        partial_cleanup="cleanup-partial-artifacts",
        retry_action="retry-build-with-backup-path",
        verification=("diagnose-build-state", "validate-build-artifacts", "force-cleanup-partial-build"),
        restore_action="restore-draft-state",
    ),
    TransitionType.EDIT: RecoveryPlan(
        transition=TransitionType.EDIT,
        already_done="in-edit-mode",
        permissions_check="check-edit-permissions",
        partial_cleanup="cleanup-partial-backup",
        retry_action="retry-edit-with-backup-path",
        verification=("diagnose-edit-state", "validate-edit-session", "force-cleanup-edit-sessions"),
        restore_action="restore-built-state",
    ),
    TransitionType.DEPLOY: RecoveryPlan(
        transition=TransitionType.DEPLOY,
        already_done="deployed",
        permissions_check="check-deploy-permissions",
        partial_cleanup="cleanup-partial-containers",
        retry_action="retry-deploy-with-backup-path",
        verification=(
            "diagnose-deploy-state",
            "validate-deployment-integrity",
            "force-cleanup-partial-deployment",
        ),
        restore_action="restore-built-state",
    ),
    TransitionType.START: RecoveryPlan(
        transition=TransitionType.START,
        already_done="started",
        permissions_check="check-start-permissions",
        partial_cleanup="cleanup-partial-services",
        retry_action="retry-start-with-backup-path",
        verification=("diagnose-start-state", "validate-service-health", "force-cleanup-partial-services"),
        restore_action="restore-offline-state",
    ),
    TransitionType.STOP: RecoveryPlan(
        transition=TransitionType.STOP,
        already_done="stopped",
        permissions_check="check-stop-permissions",
        partial_cleanup="cleanup-partial-services",
        retry_action="retry-stop-with-force-mode",
        verification=("diagnose-stop-state", "validate-services-stopped", "force-stop-remaining-services"),
        restore_action="restore-online-state",
    ),
    TransitionType.UPDATE: RecoveryPlan(
        transition=TransitionType.UPDATE,
        already_done="updated",
        permissions_check="check-update-permissions",
        partial_cleanup="cleanup-partial-files",
        retry_action="retry-update-with-elevated-permissions",
        verification=("diagnose-update-state", "validate-update-integrity", "force-cleanup-partial-update"),
        restore_action="restore-offline-state",
        found_suffix="-low-confidence",
        other_state="invalid",
        restores_backup=True,
    ),
}


def failure_kind(error: BaseException) -> FailureKind:
    """Structured cause of a failure; message text is only parsed for foreign errors."""
    if isinstance(error, WorkflowError):
        return error.kind
    return FailureKind.from_message(str(error))


class RecoveryClassifier:
    """
    Classifies a failed workflow run and plans its mitigation.

    Usage:
        >>> classifier = RecoveryClassifier(TransitionType.SAVE)
        >>> result = await classifier.classify("p1", {"projectPath": "/srv/p1"}, error)
        >>> result.strategy
        'state-conflict'
    """

    def __init__(
        self,
        transition: TransitionType,
        detectors: Optional[Dict[ProjectState, StateDetector]] = None,
        sink: Optional[WorkflowEventSink] = None,
        transition_impl: Optional[Transition] = None,
        threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
        max_retries: int = DEFAULT_MAX_RETRIES,
        enable_recovery_logs: bool = True,
    ):
        self.transition_type = TransitionType(transition)
        self.plan = RECOVERY_PLANS[self.transition_type]
        self.transition = transition_impl or get_transition(self.transition_type)
        self.detectors = detectors or build_detectors()
        self.sink = sink or StructlogEventSink(engine=self.plan.domain)
        self.threshold = threshold
        self.max_retries = max_retries
        self.enable_recovery_logs = enable_recovery_logs

    async def classify(
        self,
        project_id: str,
        payload: Mapping[str, Any],
        error: BaseException,
        options: Any = None,
    ) -> RecoveryResult:
        """
        Pick a recovery strategy for ``error``.

        Never raises: an internal failure yields the ``recovery-failed``
        strategy with a single ``recovery-error`` action.

        Args:
            project_id: Project the failed run targeted
            payload: Payload the failed run was given (``projectPath`` locates evidence)
            error: The failure raised by the run
            options: Run options (``allowRetry``, ``retryCount``, ``enableRecoveryLogs``)
        """
        log = logger.bind(project_id=project_id, transition=self.transition_type.value)
        await self._emit("recovery-start", {
            "projectId": project_id,
            "error": str(error),
            "errorType": type(error).__name__,
        })

        try:
            run_options = WorkflowOptions.from_mapping(options)
            kind = failure_kind(error)
            strategy = STRATEGIES[kind]
            recovered, actions = await self._plan(strategy, project_id, payload, error, run_options)

            actions.append(f"clear-{self.plan.domain}-cache")
            actions.append("invalidate-state-cache")
            logs_enabled = run_options.enable_recovery_logs
            if logs_enabled is None:
                logs_enabled = self.enable_recovery_logs
            if logs_enabled is not False:
                actions.append("log-recovery-details")

            result = RecoveryResult(
                recovered=recovered,
                strategy=strategy,
                actions=actions,
                backup_restored=strategy in (TRANSITION_FAILURE, UNKNOWN_ERROR) and self.restores_backup(payload),
            )
        except Exception as e:
            log.error("recovery_failed", error=str(e), original_error=str(error))
            await self._emit(RECOVERY_FAILED, {
                "projectId": project_id,
                "originalError": str(error),
                "recoveryError": str(e),
            })
            self._count(RECOVERY_FAILED)
            return RecoveryResult(recovered=False, strategy=RECOVERY_FAILED, actions=["recovery-error"])

        log.info(
            "recovery_classified",
            strategy=result.strategy,
            recovered=result.recovered,
            actions=result.actions,
        )
        await self._emit("recovery-complete", {
            "projectId": project_id,
            "strategy": result.strategy,
            "recovered": result.recovered,
            "actions": len(result.actions),
            "backupRestored": result.backup_restored,
        })
        self._count(result.strategy)
        return result

    async def _plan(
        self,
        strategy: str,
        project_id: str,
        payload: Mapping[str, Any],
        error: BaseException,
        options: WorkflowOptions,
    ) -> Tuple[bool, List[str]]:
        domain = self.plan.domain

        if strategy == STATE_CONFLICT:
            return await self._state_conflict(payload)

        if strategy == VALIDATION_FAILURE:
            requirements = getattr(error, "requirements", None) or requirements_from_message(str(error))
            return False, [f"missing-requirements-{len(requirements)}", f"cleanup-partial-{domain}"]

        if strategy == PROJECT_MISSING:
            return False, ["detect-project-deletion", f"abort-{domain}-no-project"]

        if strategy == FILESYSTEM_FAILURE:
            actions = [self.plan.permissions_check, self.plan.partial_cleanup]
            if options.retry_allowed and options.retry_count < self.max_retries:
                # No retry is executed; the executor of the plan decides.
                actions.extend([self.plan.retry_action, "retry-attempted"])
                return True, actions
            return False, actions

        if strategy == TRANSITION_FAILURE:
            failed = self.transition.failed_record(str(error))
            cleanup = await self.transition.cleanup(failed, project_id)
            actions = [f"rollback-{action}" for action in cleanup.actions]
            if self.restores_backup(payload):
                actions.extend(["restore-backup-requested", "backup-restored-successfully"])
            return False, actions

        if strategy == STATE_VERIFICATION_FAILURE:
            return False, list(self.plan.verification)

        if strategy == TIMEOUT:
            return False, [f"cancel-pending-{domain}-steps", f"diagnose-{domain}-timeout"]

        actions = [f"generic-{domain}-cleanup"]
        if self.restores_backup(payload):
            actions.append("attempt-backup-restore")
        actions.append(self.plan.restore_action)
        return False, actions

    def restores_backup(self, payload: Any) -> bool:
        return self.plan.restores_backup and enabled_unless_false(payload, "createBackup")

    async def _state_conflict(self, payload: Mapping[str, Any]) -> Tuple[bool, List[str]]:
        """
        Decide whether the project already reached the target state.

        Re-queries the target-state detector, then the source-state detector.
        SAVE and UPDATE keep their state, so only that state's detector is asked.
        """
        evidence_path = payload.get("projectPath")
        source = self.transition.from_state
        target = self.transition.to_state

        if source == target:
            current = await self.detectors[source].detect(evidence_path)
            found = current.state == source
            state_name = f"{source.value.lower()}{self.plan.found_suffix}" if found else self.plan.other_state
            actions = [f"detect-current-state-{state_name}"]
            if found:
                actions.append(f"force-{source.value.lower()}-state-validation")
                return True, actions
            actions.append(f"abort-{self.plan.domain}-wrong-state")
            return False, actions

        reached = await self.detectors[target].detect(evidence_path)
        if reached.is_state(target, self.threshold):
            return True, [
                f"detect-current-state-{target.value.lower()}",
                f"project-already-{self.plan.already_done}",
            ]

        current = await self.detectors[source].detect(evidence_path)
        if current.state == source:
            return True, [
                f"detect-current-state-{source.value.lower()}-low-confidence",
                f"force-{source.value.lower()}-state-validation",
            ]

        return False, ["detect-current-state-invalid", f"abort-{self.plan.domain}-wrong-state"]

    async def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        try:
            await self.sink.emit(event_type, {"workflow": self.plan.domain, **data})
        except Exception as e:
            logger.error("recovery_event_failed", event_type=event_type, error=str(e))

    def _count(self, strategy: str) -> None:
        try:
            record_recovery(self.transition_type.value, strategy)
        except Exception as e:
            logger.warning("recovery_metric_failed", error=str(e))


__all__ = [
    "RecoveryClassifier",
    "RecoveryPlan",
    "RECOVERY_PLANS",
    "STRATEGIES",
    "failure_kind",
]
