"""
BuzzCraft Lifecycle - Engine Facade

``LifecycleEngine`` owns one set of collaborators (probe, manifest store,
detectors, event sink, lock registry, configuration) and exposes one
coroutine per transition type. Every workflow it builds shares the same lock
registry (the process-wide ``DEFAULT_LOCKS`` unless one is injected), so
transitions on one project are serialized across types and entry points.

Usage:
    >>> engine = LifecycleEngine.from_config()
    >>> result = await engine.save("p1", {"projectPath": "/srv/projects/p1", "content": "<h1>Hi</h1>"})
    >>> result.final_state
    <ProjectState.DRAFT: 'DRAFT'>
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Set, Union

from buzzcraft.config import BuzzcraftConfig, load_config
from buzzcraft.observability import configure_logging, get_logger
from buzzcraft.state.detectors import StateDetector, StateResolver, build_detectors
from buzzcraft.state.lifecycle import ProjectState, TransitionType, transitions_from
from buzzcraft.state.models import DetectionResult, WorkflowResult
from buzzcraft.systems.filesystem import FilesystemProbe, ProjectProbe
from buzzcraft.systems.manifest import ManifestStore
from buzzcraft.workflows import WORKFLOWS, LifecycleWorkflow
from buzzcraft.workflows.events import StructlogEventSink, WorkflowEventSink
from buzzcraft.workflows.locks import DEFAULT_LOCKS, ProjectLockRegistry

logger = get_logger(__name__)

Payload = Mapping[str, Any]
Options = Optional[Mapping[str, Any]]


class LifecycleEngine:
    """Entry point exposing every transition workflow of the lifecycle."""

    def __init__(
        self,
        config: Optional[BuzzcraftConfig] = None,
        *,
        probe: Optional[ProjectProbe] = None,
        store: Optional[ManifestStore] = None,
        detectors: Optional[Dict[ProjectState, StateDetector]] = None,
        sink: Optional[WorkflowEventSink] = None,
        locks: Optional[ProjectLockRegistry] = None,
    ) -> None:
        self.config = config or BuzzcraftConfig()
        settings = self.config.engine

        self.store = store or ManifestStore(history_limit=settings.history_limit)
        self.detectors = detectors or build_detectors(self.store)
        self.probe = probe or FilesystemProbe(settings.projects_root)
        self.sink = sink or StructlogEventSink()
        self.locks = DEFAULT_LOCKS if locks is None else locks
        self.resolver = StateResolver(self.detectors, threshold=settings.confidence_threshold)
        self._workflows: Dict[TransitionType, LifecycleWorkflow] = {}

    @classmethod
    def from_config(cls, config_path: Optional[Union[Path, str]] = None, **collaborators: Any) -> "LifecycleEngine":
        """
        Load configuration, configure logging from it and build an engine.

        Raises:
            ConfigError: If the configuration cannot be loaded
        """
        config = load_config(config_path)
        configure_logging(
            level=config.logging.level,
            format=config.logging.format,
            log_file=config.logging.file,
        )
        logger.info(
            "lifecycle_engine_configured",
            projects_root=str(config.engine.projects_root),
            step_timeout=config.engine.step_timeout,
        )
        return cls(config, **collaborators)

    def workflow(self, transition: Union[TransitionType, str]) -> LifecycleWorkflow:
        """Workflow of a transition type, built on first use."""
        transition = TransitionType(transition)
        workflow = self._workflows.get(transition)
        if workflow is None:
            workflow = WORKFLOWS[transition](
                probe=self.probe,
                store=self.store,
                detectors=self.detectors,
                sink=self.sink,
                locks=self.locks,
                config=self.config,
            )
            self._workflows[transition] = workflow
        return workflow

    async def run(
        self,
        transition: Union[TransitionType, str],
        project_id: str,
        payload: Payload,
        options: Options = None,
    ) -> WorkflowResult:
        return await self.workflow(transition).run(project_id, payload, options)

    async def save(self, project_id: str, save_data: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.SAVE, project_id, save_data, options)

    async def build(self, project_id: str, build_config: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.BUILD, project_id, build_config, options)

    async def edit(self, project_id: str, edit_options: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.EDIT, project_id, edit_options, options)

    async def deploy(self, project_id: str, deploy_config: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.DEPLOY, project_id, deploy_config, options)

    async def start(self, project_id: str, start_config: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.START, project_id, start_config, options)

    async def stop(self, project_id: str, stop_config: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.STOP, project_id, stop_config, options)

    async def update(self, project_id: str, update_config: Payload, options: Options = None) -> WorkflowResult:
        return await self.run(TransitionType.UPDATE, project_id, update_config, options)

    async def current_state(self, evidence_path: Union[str, Path]) -> DetectionResult:
        """Infer the state of the project at ``evidence_path`` from its evidence now."""
        return await self.resolver.resolve(evidence_path)

    async def available_transitions(self, evidence_path: Union[str, Path]) -> Set[TransitionType]:
        """Transitions that may start from the project's current state."""
        detection = await self.current_state(evidence_path)
        if detection.state is None:
            return set()
        return transitions_from(detection.state)


__all__ = ["LifecycleEngine"]
