"""
Filesystem pre-check collaborators.

Workflow engines call a ``ProjectProbe`` before executing a transition to
confirm the project exists and its output path is writable. The default
implementation inspects a projects root directory; callers may inject any
object satisfying the protocol.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import Protocol, Union

from pydantic import BaseModel, Field


class ProjectCheck(BaseModel):
    """Result of a project existence probe."""

    exists: bool
    project_id: str
    location: str | None = None


class OutputPathCheck(BaseModel):
    """Result of an output path probe."""

    writable: bool
    path: str
    reason: str | None = Field(default=None, description="Why the path is not writable")


class ProjectProbe(Protocol):
    """External capability consulted by the filesystem-checks step."""

    async def project_exists(self, project_id: str) -> ProjectCheck:
        ...

    async def check_output_path(self, path: Union[str, os.PathLike[str]]) -> OutputPathCheck:
        ...


class FilesystemProbe:
    """
    Probe projects laid out as ``<projects_root>/<project_id>/``.

    A path counts as writable when it exists and is writable, or when it does
    not exist yet but its nearest existing ancestor is a writable directory.
    """

    def __init__(self, projects_root: Union[str, os.PathLike[str]]) -> None:
        self.projects_root = Path(projects_root)

    async def project_exists(self, project_id: str) -> ProjectCheck:
        location = self.projects_root / project_id
        exists = await asyncio.to_thread(location.is_dir)
        return ProjectCheck(exists=exists, project_id=project_id, location=str(location))

    async def check_output_path(self, path: Union[str, os.PathLike[str]]) -> OutputPathCheck:
        return await asyncio.to_thread(self._check_output_path_sync, Path(path))

    @staticmethod
    def _check_output_path_sync(path: Path) -> OutputPathCheck:
        candidate = path
        while not candidate.exists():
            if candidate.parent == candidate:
                return OutputPathCheck(writable=False, path=str(path), reason="no existing ancestor")
            candidate = candidate.parent

        if candidate != path and not candidate.is_dir():
            return OutputPathCheck(writable=False, path=str(path), reason=f"{candidate} is not a directory")

        if not os.access(candidate, os.W_OK):
            return OutputPathCheck(writable=False, path=str(path), reason=f"{candidate} is read-only")

        return OutputPathCheck(writable=True, path=str(path))
