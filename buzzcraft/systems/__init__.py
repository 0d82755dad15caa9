"""
External collaborators of the lifecycle engine.

Filesystem probes used by workflow pre-checks and the manifest store that
holds each project's declared state.
"""

from buzzcraft.systems.filesystem import (
    FilesystemProbe,
    OutputPathCheck,
    ProjectCheck,
    ProjectProbe,
)
from buzzcraft.systems.manifest import (
    MANIFEST_NAME,
    ManifestError,
    ManifestStore,
    manifest_path,
)

__all__ = [
    "FilesystemProbe",
    "ProjectProbe",
    "ProjectCheck",
    "OutputPathCheck",
    "ManifestStore",
    "ManifestError",
    "MANIFEST_NAME",
    "manifest_path",
]
