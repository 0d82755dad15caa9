"""
Configuration loading for the BuzzCraft lifecycle engine.

Configuration values are resolved using the following precedence:

1. Environment variables (e.g., BUZZCRAFT_PROJECTS_ROOT)
2. The TOML file given to `load_config`, named by BUZZCRAFT_CONFIG_FILE,
   or `buzzcraft.toml` if present in the working directory
3. Built-in defaults

Example `buzzcraft.toml`:

    [engine]
    projects_root = "/srv/buzzcraft/projects"
    confidence_threshold = 70
    step_timeout = 30
    max_retries = 2

    [logging]
    level = "INFO"
    format = "json"

    [cleanup]
    BUILD = 45
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import tomllib
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from buzzcraft.state.lifecycle import DEFAULT_CONFIDENCE_THRESHOLD, TransitionType

__all__ = [
    "BuzzcraftConfig",
    "CleanupConfig",
    "ConfigError",
    "EngineConfig",
    "LoggingConfig",
    "load_config",
]


DEFAULT_PROJECTS_ROOT = Path("projects")
DEFAULT_CONFIG_FILE = Path("buzzcraft.toml")


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded or validated."""


class EngineConfig(BaseModel):
    """Workflow engine settings."""

    projects_root: Path = Field(DEFAULT_PROJECTS_ROOT, description="Directory holding one folder per project")
    confidence_threshold: int = Field(
        DEFAULT_CONFIDENCE_THRESHOLD,
        description="Minimum detector confidence accepted as a confirmed state",
        ge=0,
        le=100,
    )
    step_timeout: Optional[float] = Field(None, description="Per-step deadline in seconds", gt=0)
    max_retries: int = Field(2, description="Retry cap used by filesystem recovery", ge=0)
    enable_recovery_logs: bool = Field(True, description="Append log-recovery-details to recovery plans")
    history_limit: int = Field(20, description="Transitions kept in a manifest history", ge=1)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("projects_root", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value) if not isinstance(value, Path) else value


class LoggingConfig(BaseModel):
    """Structured logging settings."""

    level: str = Field("INFO", description="Log level")
    format: str = Field("console", description="Output format: json or console")
    file: Optional[Path] = Field(None, description="Optional rotating log file")

    @field_validator("format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError(f"format must be json or console, got {value}")
        return value


class CleanupConfig(BaseModel):
    """Per-transition overrides of the old-log cleanup threshold, in minutes."""

    log_age_minutes: Dict[TransitionType, float] = Field(default_factory=dict)

    def threshold_for(self, transition: TransitionType) -> Optional[float]:
        return self.log_age_minutes.get(TransitionType(transition))


class BuzzcraftConfig(BaseModel):
    """Top-level configuration object shared across the engine."""

    engine: EngineConfig = Field(default_factory=EngineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    cleanup: CleanupConfig = Field(default_factory=CleanupConfig)


def load_config(config_path: Optional[Path | str] = None) -> BuzzcraftConfig:
    """
    Load configuration from file/environment/defaults.

    Args:
        config_path: Optional explicit path to a `buzzcraft.toml` file.

    Returns:
        BuzzcraftConfig populated with the resolved values.

    Raises:
        ConfigError: if the provided config path does not exist, parsing fails
            or a value is invalid.
    """

    raw_data = _load_toml_data(config_path)
    engine_data = raw_data.get("engine", {})
    logging_data = raw_data.get("logging", {})

    defaults = EngineConfig()
    step_timeout = _env_or_value("BUZZCRAFT_STEP_TIMEOUT", engine_data.get("step_timeout"), "")

    try:
        engine = EngineConfig(
            projects_root=_env_or_value(
                "BUZZCRAFT_PROJECTS_ROOT",
                engine_data.get("projects_root"),
                str(DEFAULT_PROJECTS_ROOT),
            ),
            confidence_threshold=int(
                _env_or_value(
                    "BUZZCRAFT_CONFIDENCE_THRESHOLD",
                    engine_data.get("confidence_threshold"),
                    defaults.confidence_threshold,
                )
            ),
            step_timeout=float(step_timeout) if step_timeout else None,
            max_retries=int(
                _env_or_value(
                    "BUZZCRAFT_MAX_RETRIES",
                    engine_data.get("max_retries"),
                    defaults.max_retries,
                )
            ),
            enable_recovery_logs=_env_bool(
                "BUZZCRAFT_ENABLE_RECOVERY_LOGS",
                engine_data.get("enable_recovery_logs", True),
            ),
            history_limit=int(engine_data.get("history_limit", defaults.history_limit)),
        )

        log_file = _env_or_value("BUZZCRAFT_LOG_FILE", logging_data.get("file"), "")
        logging_config = LoggingConfig(
            level=_env_or_value("BUZZCRAFT_LOG_LEVEL", logging_data.get("level"), "INFO").upper(),
            format=_env_or_value("BUZZCRAFT_LOG_FORMAT", logging_data.get("format"), "console").lower(),
            file=Path(log_file) if log_file else None,
        )
    except (PydanticValidationError, ValueError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    return BuzzcraftConfig(
        engine=engine,
        logging=logging_config,
        cleanup=_build_cleanup_config(raw_data.get("cleanup")),
    )


def _load_toml_data(config_path: Optional[Path | str]) -> Dict[str, Any]:
    """Load data from a TOML file if one can be resolved."""

    resolved = _resolve_config_path(config_path)
    if resolved is None:
        return {}

    if not resolved.exists():
        raise ConfigError(f"Configuration file not found: {resolved}")

    try:
        with resolved.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {resolved}: {exc}") from exc


def _resolve_config_path(config_path: Optional[Path | str]) -> Optional[Path]:
    """Resolve configuration path with environment fallback."""

    if config_path:
        return Path(config_path)

    env_path = os.getenv("BUZZCRAFT_CONFIG_FILE")
    if env_path:
        return Path(env_path)

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.exists() else None


def _build_cleanup_config(raw: Optional[Dict[str, Any]]) -> CleanupConfig:
    """Map `[cleanup]` keys (transition names, any case) to thresholds."""

    if not raw:
        return CleanupConfig()

    thresholds: Dict[TransitionType, float] = {}
    for name, minutes in raw.items():
        try:
            transition = TransitionType(str(name).upper())
        except ValueError as exc:
            raise ConfigError(f"Unknown transition in [cleanup]: {name}") from exc
        try:
            thresholds[transition] = float(minutes)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid cleanup threshold for {name}: {minutes}") from exc
    return CleanupConfig(log_age_minutes=thresholds)


def _env_bool(env_var: str, default: Any) -> bool:
    """Resolve boolean from environment with fallback."""

    value = os.getenv(env_var)
    if value is None:
        return bool(default)
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigError(f"Invalid boolean for {env_var}: {value}")


def _env_or_value(env_var: str, value: Any, default: Any) -> str:
    """Return environment variable value if set, otherwise fallback to provided/default values."""

    env_value = os.getenv(env_var)
    if env_value is not None:
        return env_value
    if value is not None:
        return str(value)
    return str(default)
