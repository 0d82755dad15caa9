"""
Global pytest configuration for the BuzzCraft lifecycle engine

This file provides shared fixtures and enforces Python version requirements.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import pytest

from buzzcraft.config import BuzzcraftConfig, EngineConfig
from buzzcraft.engine import LifecycleEngine
from buzzcraft.state.lifecycle import ProjectState
from buzzcraft.systems.filesystem import OutputPathCheck, ProjectCheck
from buzzcraft.systems.manifest import MANIFEST_NAME, ManifestStore
from buzzcraft.workflows.events import RecordingEventSink

# Add tests directory to sys.path to support imports of shared test helpers
_tests_dir = Path(__file__).parent
if str(_tests_dir) not in sys.path:
    sys.path.insert(0, str(_tests_dir))

_MIN_PY_VERSION = (3, 11)


def _verify_python_version() -> str:
    """Return the interpreter version string or exit if <3.11."""
    version_info = sys.version_info
    version_str = ".".join(map(str, version_info[:3]))
    if version_info < _MIN_PY_VERSION:
        pytest.exit(
            f"ERROR: pytest must run on Python 3.11+ (detected {version_str}).",
            returncode=1,
        )
    return version_str


def pytest_report_header(config: pytest.Config) -> str:
    version_str = _verify_python_version()
    return f"Python interpreter verified for pytest: {version_str}"


class StubProbe:
    """Project probe with fixed answers that records every call."""

    def __init__(self, exists: bool = True, writable: bool = True):
        self.exists = exists
        self.writable = writable
        self.calls: List[tuple] = []

    async def project_exists(self, project_id: str) -> ProjectCheck:
        self.calls.append(("project_exists", project_id))
        return ProjectCheck(exists=self.exists, project_id=project_id)

    async def check_output_path(self, path: Any) -> OutputPathCheck:
        self.calls.append(("check_output_path", str(path)))
        return OutputPathCheck(writable=self.writable, path=str(path))


@pytest.fixture
def projects_root(tmp_path: Path) -> Path:
    root = tmp_path / "projects"
    root.mkdir()
    return root


@pytest.fixture
def make_project(projects_root: Path) -> Callable[..., str]:
    """
    Create ``<projects_root>/<project_id>`` with a manifest declaring ``state``.

    Pass ``state=None`` to create the directory without a manifest.
    """

    def _make(project_id: str = "p1", state: Optional[ProjectState] = ProjectState.DRAFT, **fields: Any) -> str:
        project_dir = projects_root / project_id
        project_dir.mkdir(parents=True, exist_ok=True)
        if state is not None:
            manifest = {"id": project_id, "state": state.value, "history": [], **fields}
            (project_dir / MANIFEST_NAME).write_text(json.dumps(manifest), encoding="utf-8")
        return str(project_dir)

    return _make


@pytest.fixture
def read_manifest() -> Callable[[str], dict]:
    def _read(project_path: str) -> dict:
        return json.loads((Path(project_path) / MANIFEST_NAME).read_text(encoding="utf-8"))

    return _read


@pytest.fixture
def store() -> ManifestStore:
    return ManifestStore()


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def probe() -> StubProbe:
    return StubProbe()


@pytest.fixture
def config(projects_root: Path) -> BuzzcraftConfig:
    return BuzzcraftConfig(engine=EngineConfig(projects_root=projects_root))


@pytest.fixture
def engine(config: BuzzcraftConfig, store: ManifestStore, sink: RecordingEventSink) -> LifecycleEngine:
    return LifecycleEngine(config, store=store, sink=sink)
