"""
BuzzCraft project lifecycle engine.

Moves generated projects through VOID / DRAFT / BUILT / ONLINE / OFFLINE
with one validated, recoverable workflow per transition type.
"""

from buzzcraft.state import (
    FailureKind,
    LifecycleError,
    ProjectState,
    StateError,
    TransitionType,
    ValidationError,
    WorkflowError,
    WorkflowResult,
    WorkflowTimeoutError,
)
from buzzcraft.config import BuzzcraftConfig, ConfigError, load_config
from buzzcraft.engine import LifecycleEngine

__version__ = "0.1.0"

__all__ = [
    "LifecycleEngine",
    "BuzzcraftConfig",
    "ConfigError",
    "load_config",
    "ProjectState",
    "TransitionType",
    "WorkflowResult",
    "LifecycleError",
    "ValidationError",
    "StateError",
    "WorkflowError",
    "WorkflowTimeoutError",
    "FailureKind",
    "__version__",
]
