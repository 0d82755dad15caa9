"""
BuzzCraft Lifecycle - State Detectors

Detectors inspect a project's external evidence (its ``project.json``
manifest) and report whether the project is currently in a given state.

Confidence is binary: 100 when the evidence matches, 0 otherwise. Detectors
are read-only and keep no state between calls, so two calls on unchanged
evidence return the same report.
"""

import logging
import os
from typing import Any, Dict, Optional, Union

from buzzcraft.state.exceptions import ValidationError
from buzzcraft.state.lifecycle import DEFAULT_CONFIDENCE_THRESHOLD, ProjectState
from buzzcraft.state.models import DetectionResult
from buzzcraft.systems.manifest import ManifestError, ManifestStore, manifest_path

logger = logging.getLogger(__name__)

FULL_CONFIDENCE = 100
NO_CONFIDENCE = 0

EvidencePath = Union[str, "os.PathLike[str]"]


def _check_evidence_path(evidence_path: Any) -> str:
    if isinstance(evidence_path, os.PathLike):
        evidence_path = os.fspath(evidence_path)
    if not evidence_path or not isinstance(evidence_path, str):
        raise ValidationError("evidencePath requis string non vide")
    return evidence_path


class StateDetector:
    """
    Base detector: matches the state declared by the project manifest.

    Subclasses set ``state`` and may override ``matches`` for states whose
    evidence differs from a plain declared-state comparison.
    """

    state: ProjectState

    def __init__(self, store: Optional[ManifestStore] = None) -> None:
        self.store = store or ManifestStore()

    async def detect(self, evidence_path: EvidencePath) -> DetectionResult:
        """
        Report whether the project at ``evidence_path`` is in ``self.state``.

        Raises:
            ValidationError: If evidence_path is empty or not a path
        """
        path = _check_evidence_path(evidence_path)
        evidence: list[str] = []

        try:
            manifest = await self.store.read(path)
        except ManifestError as exc:
            evidence.append(exc.reason)
            return self._report(path, False, evidence)

        matched = self.matches(manifest, evidence)
        return self._report(path, matched, evidence)

    def matches(self, manifest: Optional[Dict[str, Any]], evidence: list[str]) -> bool:
        """Decide from the parsed manifest; append observations to ``evidence``."""
        if manifest is None:
            evidence.append("Project file not found")
            return False

        evidence.append("Project file exists")
        declared = manifest.get("state")
        if declared == self.state.value:
            evidence.append(f"Project state is {self.state.value}")
            return True

        evidence.append(f"State is {declared}, expected {self.state.value}")
        return False

    def _report(self, path: str, matched: bool, evidence: list[str]) -> DetectionResult:
        result = DetectionResult(
            state=self.state if matched else None,
            confidence=FULL_CONFIDENCE if matched else NO_CONFIDENCE,
            evidence=evidence,
            evidence_path=path,
        )
        logger.debug(
            f"{self.state.value} detection for {path}: "
            f"{'confirmed' if matched else 'not detected'} ({result.confidence}%)"
        )
        return result


class VoidDetector(StateDetector):
    """A project is VOID while no manifest exists at its root."""

    state = ProjectState.VOID

    def matches(self, manifest: Optional[Dict[str, Any]], evidence: list[str]) -> bool:
        if manifest is None:
            evidence.append("No project file")
            return True
        evidence.append("Project file exists")
        return False


class DraftDetector(StateDetector):
    """
    A project is DRAFT when its manifest is a regular file declaring DRAFT.

    Manifests written before states were declared carry no ``state`` field
    and count as drafts.
    """

    state = ProjectState.DRAFT

    def matches(self, manifest: Optional[Dict[str, Any]], evidence: list[str]) -> bool:
        if manifest is not None and "state" not in manifest:
            evidence.append("Project file exists")
            evidence.append("No declared state, assuming DRAFT")
            return True
        return super().matches(manifest, evidence)


class BuiltDetector(StateDetector):
    state = ProjectState.BUILT


class OnlineDetector(StateDetector):
    state = ProjectState.ONLINE


class OfflineDetector(StateDetector):
    state = ProjectState.OFFLINE


DETECTOR_CLASSES = {
    ProjectState.VOID: VoidDetector,
    ProjectState.DRAFT: DraftDetector,
    ProjectState.BUILT: BuiltDetector,
    ProjectState.ONLINE: OnlineDetector,
    ProjectState.OFFLINE: OfflineDetector,
}


def build_detectors(store: Optional[ManifestStore] = None) -> Dict[ProjectState, StateDetector]:
    """Create one detector per state sharing a manifest store."""
    store = store or ManifestStore()
    return {state: cls(store) for state, cls in DETECTOR_CLASSES.items()}


class StateResolver:
    """
    Infers a project's current state on demand.

    Every call asks each detector afresh; nothing is cached, so the answer
    always reflects the evidence as it is now.

    Example:
        >>> resolver = StateResolver()
        >>> result = await resolver.resolve("/srv/projects/p1")
        >>> result.state
        <ProjectState.DRAFT: 'DRAFT'>
    """

    def __init__(
        self,
        detectors: Optional[Dict[ProjectState, StateDetector]] = None,
        threshold: int = DEFAULT_CONFIDENCE_THRESHOLD,
    ) -> None:
        self.detectors = detectors or build_detectors()
        self.threshold = threshold

    async def resolve(self, evidence_path: EvidencePath) -> DetectionResult:
        path = _check_evidence_path(evidence_path)
        confident = []
        for state, detector in self.detectors.items():
            result = await detector.detect(path)
            if result.is_state(state, self.threshold):
                confident.append(result)

        if len(confident) == 1:
            return confident[0]

        evidence = [f"{r.state.value} at {r.confidence}%" for r in confident if r.state]
        if confident:
            logger.warning(f"Conflicting state detections for {manifest_path(path)}: {evidence}")
            evidence.insert(0, "Conflicting detections")
        else:
            evidence.append("No detector confirmed a state")
        return DetectionResult(state=None, confidence=NO_CONFIDENCE, evidence=evidence, evidence_path=path)
