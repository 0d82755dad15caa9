"""
Project manifest storage.

The manifest (``project.json`` at the project root) is the external evidence
state detectors inspect, and the durable store the engine commits transition
records to. Writes are atomic: a temporary file in the same directory is
renamed over the manifest, so detectors never observe a partial document.
"""

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from buzzcraft.observability import get_logger
from buzzcraft.state.exceptions import LifecycleError
from buzzcraft.state.lifecycle import ProjectState
from buzzcraft.state.models import TransitionRecord, utc_now

logger = get_logger(__name__)

MANIFEST_NAME = "project.json"
HISTORY_LIMIT = 20

PathLike = Union[str, "os.PathLike[str]"]


class ManifestError(LifecycleError):
    """Raised when a manifest exists but cannot be read or written."""

    prefix = "ManifestError"


def manifest_path(evidence_path: PathLike) -> Path:
    """Location of the manifest for a project root."""
    return Path(evidence_path) / MANIFEST_NAME


class ManifestStore:
    """
    Reads and commits project manifests.

    Usage:
        store = ManifestStore()
        await store.initialize("/srv/projects/p1", "p1")
        data = await store.read("/srv/projects/p1")
        await store.commit(record, "/srv/projects/p1")
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        self.history_limit = history_limit

    async def read(self, evidence_path: PathLike) -> Optional[Dict[str, Any]]:
        """
        Load the manifest of a project.

        Returns:
            Parsed manifest, or None if no manifest file exists

        Raises:
            ManifestError: If the manifest is not a regular file or not a JSON object
        """
        return await asyncio.to_thread(self._read_sync, manifest_path(evidence_path))

    async def write(self, evidence_path: PathLike, data: Dict[str, Any]) -> Path:
        """Atomically replace the manifest with ``data``."""
        return await asyncio.to_thread(self._write_sync, manifest_path(evidence_path), data)

    async def initialize(
        self,
        evidence_path: PathLike,
        project_id: str,
        state: ProjectState = ProjectState.DRAFT,
        **fields: Any,
    ) -> Path:
        """
        Create the project root and a fresh manifest.

        Intended for the external collaborator that creates projects; the
        lifecycle engine itself never calls it.
        """
        Path(evidence_path).mkdir(parents=True, exist_ok=True)
        data: Dict[str, Any] = {
            "id": project_id,
            "state": state.value,
            "createdAt": utc_now().isoformat(),
            "history": [],
        }
        data.update(fields)
        return await self.write(evidence_path, data)

    async def commit(self, record: TransitionRecord, evidence_path: PathLike) -> Dict[str, Any]:
        """
        Persist a transition record into the manifest.

        Sets the declared state to ``record.to_state`` and appends the
        transition to the bounded history.

        Raises:
            ManifestError: If the manifest is missing or unreadable
        """
        current = await self.read(evidence_path)
        if current is None:
            raise ManifestError(f"Manifeste absent: {manifest_path(evidence_path)}")

        entry = {
            "transition": record.transition_data.get("transitionType"),
            "fromState": record.from_state.value,
            "toState": record.to_state.value,
            "timestamp": record.timestamp.isoformat(),
        }
        history = list(current.get("history") or [])
        history.append(entry)

        current["state"] = record.to_state.value
        current["updatedAt"] = entry["timestamp"]
        current["lastTransition"] = entry
        current["history"] = history[-self.history_limit:]

        await self.write(evidence_path, current)
        logger.debug(
            "manifest_committed",
            path=str(evidence_path),
            from_state=entry["fromState"],
            to_state=entry["toState"],
        )
        return current

    @staticmethod
    def _read_sync(path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            return None
        if not path.is_file():
            raise ManifestError(f"Manifeste n'est pas un fichier: {path}")
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ManifestError(f"Manifeste illisible: {path} ({exc})") from exc
        if not isinstance(parsed, dict):
            raise ManifestError(f"Manifeste invalide (objet JSON attendu): {path}")
        return parsed

    @staticmethod
    def _write_sync(path: Path, data: Dict[str, Any]) -> Path:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".project-", suffix=".json", dir=path.parent)
        except OSError as exc:
            raise ManifestError(f"Écriture du manifeste impossible: {path} ({exc})") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise ManifestError(f"Écriture du manifeste impossible: {path} ({exc})") from exc
        return path
