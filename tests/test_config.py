"""
Tests for configuration loading
"""
from pathlib import Path

import pytest

from buzzcraft.config import BuzzcraftConfig, ConfigError, load_config
from buzzcraft.engine import LifecycleEngine
from buzzcraft.state.lifecycle import TransitionType

ENV_VARS = (
    "BUZZCRAFT_CONFIG_FILE",
    "BUZZCRAFT_PROJECTS_ROOT",
    "BUZZCRAFT_CONFIDENCE_THRESHOLD",
    "BUZZCRAFT_STEP_TIMEOUT",
    "BUZZCRAFT_MAX_RETRIES",
    "BUZZCRAFT_ENABLE_RECOVERY_LOGS",
    "BUZZCRAFT_LOG_LEVEL",
    "BUZZCRAFT_LOG_FORMAT",
    "BUZZCRAFT_LOG_FILE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "buzzcraft.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_file():
    config = load_config()

    assert config.engine.projects_root == Path("projects")
    assert config.engine.confidence_threshold == 70
    assert config.engine.step_timeout is None
    assert config.engine.max_retries == 2
    assert config.engine.enable_recovery_logs is True
    assert config.logging.level == "INFO"
    assert config.logging.format == "console"
    assert config.cleanup.threshold_for(TransitionType.SAVE) is None


def test_file_values(tmp_path):
    path = _write(
        tmp_path,
        """
[engine]
projects_root = "/srv/projects"
step_timeout = 12.5
max_retries = 4
enable_recovery_logs = false
history_limit = 5

[logging]
level = "debug"
format = "JSON"

[cleanup]
build = 45
STOP = 3
""",
    )

    config = load_config(path)

    assert config.engine.projects_root == Path("/srv/projects")
    assert config.engine.step_timeout == 12.5
    assert config.engine.max_retries == 4
    assert config.engine.enable_recovery_logs is False
    assert config.engine.history_limit == 5
    assert config.logging.level == "DEBUG"
    assert config.logging.format == "json"
    assert config.cleanup.threshold_for(TransitionType.BUILD) == 45
    assert config.cleanup.threshold_for("STOP") == 3


def test_default_file_in_working_directory(tmp_path):
    _write(tmp_path, "[engine]\nmax_retries = 7\n")

    assert load_config().engine.max_retries == 7


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = _write(tmp_path, "[engine]\nconfidence_threshold = 50\n")
    monkeypatch.setenv("BUZZCRAFT_CONFIG_FILE", str(path))
    monkeypatch.setenv("BUZZCRAFT_CONFIDENCE_THRESHOLD", "90")
    monkeypatch.setenv("BUZZCRAFT_STEP_TIMEOUT", "2")
    monkeypatch.setenv("BUZZCRAFT_ENABLE_RECOVERY_LOGS", "off")

    config = load_config()

    assert config.engine.confidence_threshold == 90
    assert config.engine.step_timeout == 2.0
    assert config.engine.enable_recovery_logs is False


@pytest.mark.parametrize(
    "setup",
    [
        lambda tmp_path, monkeypatch: monkeypatch.setenv("BUZZCRAFT_ENABLE_RECOVERY_LOGS", "maybe"),
        lambda tmp_path, monkeypatch: monkeypatch.setenv("BUZZCRAFT_CONFIDENCE_THRESHOLD", "150"),
        lambda tmp_path, monkeypatch: monkeypatch.setenv("BUZZCRAFT_LOG_FORMAT", "xml"),
        lambda tmp_path, monkeypatch: _write(tmp_path, "[cleanup]\narchive = 5\n"),
        lambda tmp_path, monkeypatch: _write(tmp_path, "[cleanup]\nsave = \"soon\"\n"),
        lambda tmp_path, monkeypatch: _write(tmp_path, "[engine\n"),
    ],
)
def test_invalid_configuration(tmp_path, monkeypatch, setup):
    setup(tmp_path, monkeypatch)

    with pytest.raises(ConfigError):
        load_config()


def test_missing_explicit_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "absent.toml")


def test_engine_applies_cleanup_override(tmp_path):
    path = _write(tmp_path, "[cleanup]\nsave = 1\n")

    engine = LifecycleEngine.from_config(path)

    assert engine.workflow("SAVE").transition.log_age_minutes == 1
    assert engine.workflow("BUILD").transition.log_age_minutes == 30


def test_default_config_object():
    config = BuzzcraftConfig()

    assert config.engine.history_limit == 20
    assert config.logging.file is None
