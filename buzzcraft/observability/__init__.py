"""Logging and metrics shared by the lifecycle engine.

- ``logging``: structlog configuration and per-run correlation labels
- ``metrics``: Prometheus families for runs, steps and recoveries

Usage:
    from buzzcraft.observability import correlation_scope, get_logger, record_workflow_outcome

    logger = get_logger(__name__)
    with correlation_scope("save-p1-1700000000000"):
        logger.info("workflow_started", project_id="p1")

    record_workflow_outcome("SAVE", "success", 0.042)
"""

from buzzcraft.observability.logging import (
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
    reset_correlation_id,
    set_correlation_id,
)
from buzzcraft.observability.metrics import (
    decrement_gauge,
    get_metrics_content_type,
    get_metrics_output,
    get_metrics_registry,
    increment_counter,
    increment_gauge,
    record_histogram,
    record_recovery,
    record_step_duration,
    record_workflow_outcome,
)

__all__ = [
    "get_logger",
    "configure_logging",
    "correlation_scope",
    "set_correlation_id",
    "reset_correlation_id",
    "get_correlation_id",
    "increment_counter",
    "record_histogram",
    "increment_gauge",
    "decrement_gauge",
    "record_workflow_outcome",
    "record_step_duration",
    "record_recovery",
    "get_metrics_registry",
    "get_metrics_output",
    "get_metrics_content_type",
]
