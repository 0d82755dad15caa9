"""
BuzzCraft Lifecycle - Workflow Engine

Runs one transition end to end:

    STARTED -> STATE_VERIFIED -> VALIDATED -> PRECHECKED -> TRANSITIONED
            -> POSTVERIFIED -> CLEANED -> SUCCEEDED

with FAILED reachable from any stage. Steps run strictly in sequence, each
timed and appended to the run's metrics in order. From the precondition
check to the end of cleanup the run holds its project's lock, so two
transitions on the same project never overlap.

A failed run always raises: recovery is consulted for its mitigation plan,
which is logged, then the original ``WorkflowError`` propagates.

Each transition type subclasses ``LifecycleWorkflow`` to declare its payload
checks, how the transition context is built and its correlation identifier.
"""

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from buzzcraft.config import BuzzcraftConfig
from buzzcraft.observability import (
    correlation_scope,
    decrement_gauge,
    get_logger,
    increment_gauge,
    record_step_duration,
    record_workflow_outcome,
)
from buzzcraft.state.detectors import StateDetector, build_detectors
from buzzcraft.state.exceptions import (
    FailureKind,
    LifecycleError,
    ValidationError,
    WorkflowError,
    WorkflowTimeoutError,
)
from buzzcraft.state.lifecycle import ProjectState, TransitionType, WorkflowStage
from buzzcraft.state.models import (
    CleanupResult,
    TransitionRecord,
    WorkflowMetrics,
    WorkflowResult,
)
from buzzcraft.systems.filesystem import FilesystemProbe, ProjectProbe
from buzzcraft.systems.manifest import ManifestError, ManifestStore
from buzzcraft.transitions import Transition, get_transition, is_present
from buzzcraft.transitions.base import check_project_id
from buzzcraft.workflows.events import StructlogEventSink, WorkflowEventSink
from buzzcraft.workflows.locks import DEFAULT_LOCKS, ProjectLockRegistry
from buzzcraft.workflows.options import WorkflowOptions
from buzzcraft.workflows.recovery import RecoveryClassifier

logger = get_logger(__name__)

T = TypeVar("T")
Correlation = Union[str, List[str]]

CLEANUP_STEP = "cleanup-transition"
FILESYSTEM_STEP = "filesystem-checks"


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


@dataclass
class _Run:
    """Mutable bookkeeping of one workflow run."""

    project_id: str
    payload: Mapping[str, Any]
    options: WorkflowOptions
    timeout: Optional[float]
    metrics: WorkflowMetrics
    log: Any
    details: Dict[str, Any] = field(default_factory=dict)
    started: float = field(default_factory=time.perf_counter)
    stage: WorkflowStage = WorkflowStage.STARTED


class LifecycleWorkflow:
    """
    Orchestrates one transition type.

    Collaborators are injected; anything omitted is built from ``config``.

    Attributes:
        transition_type: Transition run by this workflow
        payload_name: Name of the payload in input validation messages
        payload_fields: Payload fields that must be present
        correlation_key: Name of the correlation identifier in events
    """

    transition_type: ClassVar[TransitionType]
    payload_name: ClassVar[str] = "payload"
    payload_fields: ClassVar[Tuple[str, ...]] = ("projectPath",)
    correlation_key: ClassVar[str] = "correlationId"

    def __init__(
        self,
        *,
        probe: Optional[ProjectProbe] = None,
        store: Optional[ManifestStore] = None,
        detectors: Optional[Dict[ProjectState, StateDetector]] = None,
        sink: Optional[WorkflowEventSink] = None,
        locks: Optional[ProjectLockRegistry] = None,
        transition: Optional[Transition] = None,
        recovery: Optional[RecoveryClassifier] = None,
        config: Optional[BuzzcraftConfig] = None,
    ) -> None:
        self.config = config or BuzzcraftConfig()
        settings = self.config.engine

        self.store = store or ManifestStore(history_limit=settings.history_limit)
        self.detectors = detectors or build_detectors(self.store)
        self.probe = probe or FilesystemProbe(settings.projects_root)
        self.sink = sink or StructlogEventSink(engine=self.domain)
        self.locks = DEFAULT_LOCKS if locks is None else locks
        self.transition = transition or get_transition(
            self.transition_type,
            self.config.cleanup.threshold_for(self.transition_type),
        )
        self.threshold = settings.confidence_threshold
        self.step_timeout = settings.step_timeout
        self.recovery = recovery or RecoveryClassifier(
            self.transition_type,
            detectors=self.detectors,
            sink=self.sink,
            transition_impl=self.transition,
            threshold=self.threshold,
            max_retries=settings.max_retries,
            enable_recovery_logs=settings.enable_recovery_logs,
        )

    @property
    def name(self) -> str:
        return self.transition_type.value

    @property
    def domain(self) -> str:
        return self.transition_type.value.lower()

    @property
    def from_state(self) -> ProjectState:
        return self.transition.from_state

    @property
    def to_state(self) -> ProjectState:
        return self.transition.to_state

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def check_payload(self, payload: Any) -> None:
        """
        Reject malformed payloads before any state is touched.

        Raises:
            ValidationError: If payload is not a mapping or misses a required field
        """
        if not isinstance(payload, Mapping):
            raise ValidationError(f"{self.payload_name} requis object")
        for name in self.payload_fields:
            if not is_present(payload, name):
                raise ValidationError(f"{self.payload_name}.{name} requis")

    def build_context(self, project_id: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """Transition context handed to the validator and actor."""
        raise NotImplementedError

    def evidence_path(self, payload: Mapping[str, Any]) -> str:
        """Project root inspected by the detectors."""
        return payload["projectPath"]

    def output_path(self, payload: Mapping[str, Any]) -> str:
        """Path that must be writable for the transition to proceed."""
        return payload["projectPath"]

    def new_correlation(self, project_id: str) -> Correlation:
        """Identifier tracing this run in logs and metrics."""
        return f"{self.domain}-{project_id}-{int(time.time() * 1000)}"

    def after_transition(
        self,
        project_id: str,
        context: Mapping[str, Any],
        record: TransitionRecord,
        metrics: WorkflowMetrics,
    ) -> None:
        """Called once the transition is committed, inside the execute step."""

    def run_details(self, payload: Mapping[str, Any], correlation: Correlation) -> Dict[str, Any]:
        """Extra identifiers reported with the result and the terminal events."""
        return {}

    def preparation_steps(
        self,
        project_id: str,
        context: Mapping[str, Any],
        details: Mapping[str, Any],
    ) -> Sequence[Tuple[str, Callable[[], Awaitable[Any]]]]:
        """Named steps run after the pre-checks and before the transition."""
        return ()

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def run(
        self,
        project_id: str,
        payload: Mapping[str, Any],
        options: Optional[Mapping[str, Any]] = None,
    ) -> WorkflowResult:
        """
        Execute the transition for ``project_id``.

        Args:
            project_id: Project identifier
            payload: Transition payload (camelCase keys, ``projectPath`` required)
            options: Optional ``allowRetry``, ``retryCount``,
                ``enableRecoveryLogs`` and ``timeout`` (seconds per step)

        Returns:
            WorkflowResult of the successful run

        Raises:
            ValidationError: If the input is malformed (no recovery is attempted)
            WorkflowError: If any step fails; ``kind`` names the cause
        """
        check_project_id(project_id)
        self.check_payload(payload)
        run_options = WorkflowOptions.from_mapping(options)

        correlation = self.new_correlation(project_id)
        correlation_label = correlation if isinstance(correlation, str) else (
            f"{self.domain}-{project_id}-{int(time.time() * 1000)}"
        )
        run = _Run(
            project_id=project_id,
            payload=payload,
            options=run_options,
            timeout=run_options.timeout or self.step_timeout,
            metrics=WorkflowMetrics(correlation=correlation),
            log=logger.bind(
                project_id=project_id,
                transition=self.name,
                correlation_id=correlation_label,
            ),
        )
        run.details = self.run_details(payload, correlation)

        self._observe(increment_gauge, "workflows_active")
        try:
            with correlation_scope(correlation_label):
                async with self.locks.hold(project_id):
                    try:
                        return await self._orchestrate(run)
                    except asyncio.CancelledError:
                        run.log.warning("workflow_cancelled", stage=run.stage.value)
                        raise
                    except Exception as error:
                        failure = await self._fail(run, error)
                        if failure is error:
                            raise
                        raise failure from error
        finally:
            self._observe(decrement_gauge, "workflows_active")

    async def _orchestrate(self, run: _Run) -> WorkflowResult:
        project_id, payload = run.project_id, run.payload
        evidence_path = self.evidence_path(payload)
        from_name, to_name = self.from_state.value, self.to_state.value

        run.log.info("workflow_started", from_state=from_name, to_state=to_name)
        await self._emit("workflow-start", {"projectId": project_id, self.payload_name: dict(payload)})

        # 1. Precondition state
        async def detect_source() -> None:
            detection = await self.detectors[self.from_state].detect(evidence_path)
            if not detection.is_state(self.from_state, self.threshold):
                raise WorkflowError(
                    f"Projet n'est pas en état {from_name}",
                    kind=FailureKind.STATE_MISMATCH,
                    transition=self.name,
                    project_id=project_id,
                )

        await self._step(run, f"detect-{from_name.lower()}-state", detect_source)
        run.stage = WorkflowStage.STATE_VERIFIED

        # 2. Transition validation
        await self._emit("validation-start", {
            "projectId": project_id,
            "fromState": from_name,
            "toState": to_name,
        })
        context = self.build_context(project_id, payload)

        async def validate() -> None:
            validation = await self.transition.validate(from_name, to_name, context)
            if not validation.can_transition:
                raise WorkflowError.missing_requirements(
                    validation.requirements,
                    transition=self.name,
                    project_id=project_id,
                )

        await self._step(run, f"validate-{self.domain}-transition", validate)
        run.stage = WorkflowStage.VALIDATED

        # 3. External pre-checks
        await self._emit("filesystem-checks-start", {"projectId": project_id, self.payload_name: dict(payload)})
        output_path = self.output_path(payload)

        async def filesystem_checks() -> Dict[str, Any]:
            project_check = await self.probe.project_exists(project_id)
            if not project_check.exists:
                raise WorkflowError(
                    f"Projet {project_id} inexistant",
                    kind=FailureKind.PROJECT_MISSING,
                    transition=self.name,
                    project_id=project_id,
                )
            output_check = await self.probe.check_output_path(output_path)
            if not output_check.writable:
                raise WorkflowError(
                    f"Chemin {output_path} non accessible en écriture",
                    kind=FailureKind.PATH_NOT_WRITABLE,
                    transition=self.name,
                    project_id=project_id,
                )
            return {
                "success": True,
                "projectCheck": project_check.model_dump(),
                "outputCheck": output_check.model_dump(),
            }

        checks = await self._step(run, FILESYSTEM_STEP, filesystem_checks)
        run.stage = WorkflowStage.PRECHECKED

        for step_name, operation in self.preparation_steps(project_id, context, run.details):
            await self._step(run, step_name, operation)

        # 4. Transition
        await self._emit("transition-start", {"projectId": project_id, "context": context})

        async def execute() -> TransitionRecord:
            record = await self.transition.act(project_id, context)
            if not record.success:
                raise self._action_failed(project_id)
            try:
                await self.store.commit(record, evidence_path)
            except ManifestError as exc:
                run.log.error("manifest_commit_failed", error=str(exc))
                raise self._action_failed(project_id) from exc
            self.after_transition(project_id, context, record, run.metrics)
            return record

        record = await self._step(run, f"execute-{self.domain}-transition", execute)
        run.stage = WorkflowStage.TRANSITIONED

        # 5. Postcondition state
        await self._emit("verification-start", {"projectId": project_id, "expectedState": to_name})

        async def verify_target() -> None:
            detection = await self.detectors[self.to_state].detect(evidence_path)
            if not detection.is_state(self.to_state, self.threshold):
                raise WorkflowError(
                    f"État final n'est pas {to_name} valide",
                    kind=FailureKind.POSTCONDITION_FAILED,
                    transition=self.name,
                    project_id=project_id,
                )

        await self._step(run, f"verify-{to_name.lower()}-state", verify_target)
        run.stage = WorkflowStage.POSTVERIFIED

        # 6. Cleanup never aborts a successful transition
        cleanup = await self._cleanup(run, record)
        run.stage = WorkflowStage.CLEANED

        # 7. Finalize
        run.metrics.finish(success=True, duration=_elapsed_ms(run.started))
        run.stage = WorkflowStage.SUCCEEDED
        result = WorkflowResult(
            project_id=project_id,
            transition_type=self.name,
            final_state=self.to_state,
            correlation_id=run.metrics.correlation,
            transition=record,
            checks=checks,
            metrics=run.metrics,
            details=run.details,
        )

        self._record_outcome("success", run.metrics.duration)
        run.log.info(
            "workflow_succeeded",
            duration_ms=round(run.metrics.duration, 2),
            cleanup_actions=cleanup.actions if cleanup else None,
        )
        await self._emit("workflow-success", {
            "projectId": project_id,
            self.correlation_key: run.metrics.correlation,
            "finalState": to_name,
            **run.details,
            "metrics": run.metrics.model_dump(mode="json"),
        })
        return result

    async def _cleanup(self, run: _Run, record: TransitionRecord) -> Optional[CleanupResult]:
        start = time.perf_counter()
        try:
            async with asyncio.timeout(run.timeout):
                cleanup = await self.transition.cleanup(record, run.project_id)
        except Exception as e:
            run.metrics.record_step(CLEANUP_STEP, _elapsed_ms(start), success=False)
            run.log.warning("cleanup_failed", error=str(e), error_type=type(e).__name__)
            return None

        run.metrics.record_step(CLEANUP_STEP, _elapsed_ms(start), success=cleanup.cleaned)
        self._observe_step(CLEANUP_STEP, _elapsed_ms(start))
        return cleanup

    async def _step(self, run: _Run, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        """Run one step under the run's deadline and record its timing."""
        start = time.perf_counter()
        deadline = asyncio.timeout(run.timeout)
        try:
            async with deadline:
                outcome = await operation()
        except TimeoutError as exc:
            run.metrics.record_step(name, _elapsed_ms(start), success=False)
            if not deadline.expired():
                raise
            raise WorkflowTimeoutError(
                name,
                run.timeout,
                transition=self.name,
                project_id=run.project_id,
            ) from exc
        except BaseException:
            run.metrics.record_step(name, _elapsed_ms(start), success=False)
            raise

        duration = _elapsed_ms(start)
        run.metrics.record_step(name, duration, success=True)
        self._observe_step(name, duration)
        run.log.debug("workflow_step_completed", step=name, duration_ms=round(duration, 2))
        return outcome

    async def _fail(self, run: _Run, error: Exception) -> LifecycleError:
        """
        Record a failed run and consult recovery.

        Returns the exception the caller must see: the original lifecycle
        error, or a ``WorkflowError`` wrapping a foreign one.
        """
        run.metrics.finish(success=False, duration=_elapsed_ms(run.started), error=str(error))
        failed_stage = run.stage
        run.stage = WorkflowStage.FAILED
        self._record_outcome("failure", run.metrics.duration)

        await self._emit("workflow-error", {
            "projectId": run.project_id,
            self.correlation_key: run.metrics.correlation,
            "error": str(error),
            **run.details,
            "metrics": run.metrics.model_dump(mode="json"),
        })

        if isinstance(error, ValidationError):
            run.log.error("workflow_rejected", stage=failed_stage.value, error=str(error))
            return error

        if isinstance(error, WorkflowError):
            failure = error
        else:
            failure = WorkflowError(
                str(error),
                kind=FailureKind.from_message(str(error)),
                transition=self.name,
                project_id=run.project_id,
            )

        run.log.error(
            "workflow_failed",
            stage=failed_stage.value,
            kind=failure.kind.value,
            error=str(error),
            duration_ms=round(run.metrics.duration, 2),
        )
        recovery = await self.recovery.classify(run.project_id, run.payload, failure, run.options)
        run.log.info(
            "workflow_recovery_planned",
            strategy=recovery.strategy,
            recovered=recovery.recovered,
            actions=recovery.actions,
        )
        return failure

    def _action_failed(self, project_id: str) -> WorkflowError:
        return WorkflowError(
            f"Transition {self.name} échouée",
            kind=FailureKind.ACTION_FAILED,
            transition=self.name,
            project_id=project_id,
        )

    async def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        try:
            await self.sink.emit(event_type, {"workflow": self.domain, **data})
        except Exception as e:
            logger.error("workflow_event_failed", event_type=event_type, error=str(e))

    def _observe_step(self, step: str, duration_ms: float) -> None:
        self._observe(record_step_duration, self.name, step, duration_ms / 1000)

    def _record_outcome(self, outcome: str, duration_ms: float) -> None:
        self._observe(record_workflow_outcome, self.name, outcome, duration_ms / 1000)

    @staticmethod
    def _observe(metric_call: Callable[..., None], *args: Any, **kwargs: Any) -> None:
        try:
            metric_call(*args, **kwargs)
        except Exception as e:
            logger.warning("workflow_metric_failed", error=str(e))


__all__ = ["LifecycleWorkflow"]
