"""structlog setup for lifecycle runs.

Each workflow run publishes its correlation label (``saveId``, ``buildId``,
``editSession``, ...) through ``correlation_scope``; every line logged while
the run is in flight carries it as ``correlation_id``.

Usage:
    from buzzcraft.observability import configure_logging, correlation_scope, get_logger

    configure_logging(level="DEBUG", format="console")
    logger = get_logger(__name__).bind(project_id="p1", transition="SAVE")

    with correlation_scope("save-p1-1700000000000"):
        logger.info("workflow_started")
"""

import logging
import logging.handlers
import sys
from contextlib import contextmanager
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Iterator, List, Optional, Union

import structlog
from structlog.types import EventDict, Processor

LOG_FORMATS = ("json", "console")

correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def add_correlation_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Copy the active run label onto the entry unless the call passed its own."""
    event_dict.setdefault("correlation_id", correlation_id_var.get())
    if event_dict["correlation_id"] is None:
        del event_dict["correlation_id"]
    return event_dict


def add_log_level(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["level"] = "warning" if method_name == "warn" else method_name
    return event_dict


def _handlers(log_file: Optional[Union[str, Path]], max_bytes: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
            )
        )
    return handlers


def _processors(format: str) -> List[Processor]:
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if format == "json"
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_correlation_id,
        add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> None:
    """Route structlog through the root logger.

    Args:
        level: Standard level name; unknown names fall back to INFO
        format: ``json`` for aggregation, ``console`` for terminals
        log_file: Optional rotating file written next to stdout
        max_bytes: Size at which the file rotates
        backup_count: Rotated files kept

    Calling it again replaces the previous handlers.
    """
    threshold = logging.getLevelName(level.upper())
    if not isinstance(threshold, int):
        threshold = logging.INFO

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(threshold)
    for handler in _handlers(log_file, max_bytes, backup_count):
        handler.setLevel(threshold)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)

    structlog.configure(
        processors=_processors(format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: Optional[str]) -> Token:
    """Publish a run label; keep the token for ``reset_correlation_id``."""
    return correlation_id_var.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    correlation_id_var.reset(token)


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


@contextmanager
def correlation_scope(correlation_id: Optional[str]) -> Iterator[None]:
    """Label every log line emitted inside the block with ``correlation_id``."""
    token = set_correlation_id(correlation_id)
    try:
        yield
    finally:
        reset_correlation_id(token)


configure_logging(level="INFO", format="console")


__all__ = [
    "LOG_FORMATS",
    "configure_logging",
    "correlation_scope",
    "get_logger",
    "set_correlation_id",
    "reset_correlation_id",
    "get_correlation_id",
]
