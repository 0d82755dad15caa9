"""
Workflow event sinks.

Workflow engines report progress through a sink at fixed points
(``workflow-start``, ``validation-start``, ``filesystem-checks-start``,
``transition-start``, ``verification-start``, ``workflow-success`` /
``workflow-error``, and the ``recovery-*`` events).

Design Principles:
- Sanitized: sensitive keys are removed and large fields truncated before
  anything is logged or stored
- Error-isolated: a failing sink never aborts a workflow
"""

import json
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Protocol, Tuple

from buzzcraft.observability.logging import get_logger

logger = get_logger(__name__)

SENSITIVE_KEYS = frozenset({"password", "token", "secret", "apiKey"})
CONTENT_KEYS = frozenset({"content"})
DEFAULT_MAX_LENGTH = 200

ERROR_EVENTS = frozenset({"workflow-error", "recovery-failed"})
WARNING_EVENTS = frozenset({"validation-failed"})
INFO_EVENTS = frozenset({"workflow-start", "workflow-success", "backup-creation", "recovery-complete"})


def event_level(event_type: str) -> str:
    """Log level for an event type."""
    if event_type in ERROR_EVENTS:
        return "error"
    if event_type in WARNING_EVENTS:
        return "warning"
    if event_type in INFO_EVENTS:
        return "info"
    return "debug"


def content_size(value: Any) -> int:
    """Characters of text, bytes of binary data, characters of the JSON form otherwise."""
    if isinstance(value, (str, bytes, bytearray)):
        return len(value)
    try:
        return len(json.dumps(value, ensure_ascii=False, default=str))
    except (TypeError, ValueError):
        return 0


def sanitize(data: Any, max_length: int = DEFAULT_MAX_LENGTH) -> Any:
    """
    Copy of ``data`` safe to log.

    Sensitive keys are dropped at any depth, ``content`` payloads are
    replaced by their size under ``contentSize`` and strings longer than
    ``max_length`` are cut with a trailing ``...``. The input is not mutated.

    Example:
        >>> sanitize({"token": "abc", "stopConfig": {"graceful": True, "secret": "x"}})
        {'stopConfig': {'graceful': True}}
    """
    if isinstance(data, Mapping):
        cleaned: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                continue
            if key in CONTENT_KEYS and value is not None:
                cleaned["contentSize"] = content_size(value)
                continue
            cleaned[key] = sanitize(value, max_length)
        return cleaned
    if isinstance(data, (list, tuple)):
        return [sanitize(item, max_length) for item in data]
    if isinstance(data, str) and len(data) > max_length:
        return f"{data[:max_length]}..."
    return data


class WorkflowEventSink(Protocol):
    """Receives workflow events. Implementations must not raise."""

    async def emit(self, event_type: str, data: Mapping[str, Any]) -> None:
        ...


class StructlogEventSink:
    """
    Default sink: sanitized events logged through structlog.

    Usage:
        >>> sink = StructlogEventSink(engine="stop")
        >>> await sink.emit("workflow-start", {"projectId": "p1"})
    """

    def __init__(self, engine: str = "lifecycle", max_length: int = DEFAULT_MAX_LENGTH):
        self.engine = engine
        self.max_length = max_length
        self._logger = get_logger("buzzcraft.workflows").bind(engine=engine)

    async def emit(self, event_type: str, data: Mapping[str, Any]) -> None:
        try:
            payload = sanitize(dict(data), self.max_length)
            level = event_level(event_type)
            log = getattr(self._logger, level)
            log(
                event_type,
                workflow=payload.pop("workflow", self.engine),
                project_id=payload.pop("projectId", "unknown"),
                data=payload,
            )
        except Exception as e:
            # Event emission failures should not crash the workflow
            logger.error("event_emission_failed", event_type=event_type, error=str(e))


class RecordingEventSink:
    """
    Sink keeping sanitized events in memory.

    Useful for callers that inspect what a workflow reported.

    Usage:
        >>> sink = RecordingEventSink()
        >>> await sink.emit("workflow-start", {"projectId": "p1"})
        >>> sink.event_types
        ['workflow-start']
    """

    def __init__(self, max_length: int = DEFAULT_MAX_LENGTH):
        self.max_length = max_length
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def emit(self, event_type: str, data: Mapping[str, Any]) -> None:
        self.events.append((event_type, sanitize(dict(data), self.max_length)))

    @property
    def event_types(self) -> List[str]:
        return [event_type for event_type, _ in self.events]

    def find(self, event_type: str) -> Optional[Dict[str, Any]]:
        """Data of the first event of ``event_type``, or None."""
        for recorded_type, data in self.events:
            if recorded_type == event_type:
                return data
        return None

    def clear(self) -> None:
        self.events.clear()


__all__ = [
    "WorkflowEventSink",
    "StructlogEventSink",
    "RecordingEventSink",
    "sanitize",
    "event_level",
]
