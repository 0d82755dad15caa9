"""Prometheus metrics for lifecycle workflows.

Every metric lives on a private registry; embedding applications choose
whether and where to expose it (``get_metrics_output``).

Families:
- buzzcraft_workflow_duration_seconds{transition,outcome}
- buzzcraft_workflows_total{transition,outcome}
- buzzcraft_workflows_active
- buzzcraft_workflow_step_duration_seconds{transition,step}
- buzzcraft_recoveries_total{transition,strategy}

Usage:
    from buzzcraft.observability.metrics import get_metrics_output, record_workflow_outcome

    record_workflow_outcome("SAVE", "success", 0.042)
    body = get_metrics_output()
"""

from typing import Any, Dict, Optional, Type, TypeVar

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

PREFIX = "buzzcraft_"

M = TypeVar("M")

_registry = CollectorRegistry()

# Whole runs, from lock acquisition to the final event
workflow_duration_seconds = Histogram(
    f"{PREFIX}workflow_duration_seconds",
    "Wall time of lifecycle workflow runs",
    ["transition", "outcome"],
    registry=_registry,
    buckets=(0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0, float("inf")),
)
workflows_total = Counter(
    f"{PREFIX}workflows_total",
    "Finished lifecycle workflow runs",
    ["transition", "outcome"],
    registry=_registry,
)
workflows_active = Gauge(
    f"{PREFIX}workflows_active",
    "Lifecycle workflow runs currently in flight",
    registry=_registry,
)

# Individual steps (detect, validate, filesystem-checks, execute, verify, cleanup)
workflow_step_duration_seconds = Histogram(
    f"{PREFIX}workflow_step_duration_seconds",
    "Wall time of successful workflow steps",
    ["transition", "step"],
    registry=_registry,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, float("inf")),
)

recoveries_total = Counter(
    f"{PREFIX}recoveries_total",
    "Recovery plans produced, by strategy",
    ["transition", "strategy"],
    registry=_registry,
)


def _lookup(metric_name: str, kind: Type[M]) -> Optional[M]:
    """Metric named ``metric_name`` (prefix optional) if it is a ``kind``."""
    name = metric_name[len(PREFIX):] if metric_name.startswith(PREFIX) else metric_name
    metric = globals().get(name)
    return metric if isinstance(metric, kind) else None


def _labelled(metric: Any, labels: Optional[Dict[str, str]]) -> Any:
    return metric.labels(**labels) if labels else metric


def increment_counter(
    metric_name: str,
    value: float = 1.0,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Increment a counter; unknown names are ignored."""
    counter = _lookup(metric_name, Counter)
    if counter is not None:
        _labelled(counter, labels).inc(value)


def record_histogram(
    metric_name: str,
    value: float,
    labels: Optional[Dict[str, str]] = None,
) -> None:
    """Observe ``value`` (seconds) on a histogram; unknown names are ignored."""
    histogram = _lookup(metric_name, Histogram)
    if histogram is not None:
        _labelled(histogram, labels).observe(value)


def increment_gauge(metric_name: str, value: float = 1.0) -> None:
    gauge = _lookup(metric_name, Gauge)
    if gauge is not None:
        gauge.inc(value)


def decrement_gauge(metric_name: str, value: float = 1.0) -> None:
    gauge = _lookup(metric_name, Gauge)
    if gauge is not None:
        gauge.dec(value)


def record_workflow_outcome(transition: str, outcome: str, seconds: float) -> None:
    """Count a finished run and observe its duration."""
    labels = {"transition": transition, "outcome": outcome}
    increment_counter("workflows_total", labels=labels)
    record_histogram("workflow_duration_seconds", seconds, labels=labels)


def record_step_duration(transition: str, step: str, seconds: float) -> None:
    record_histogram(
        "workflow_step_duration_seconds",
        seconds,
        labels={"transition": transition, "step": step},
    )


def record_recovery(transition: str, strategy: str) -> None:
    increment_counter("recoveries_total", labels={"transition": transition, "strategy": strategy})


def get_metrics_registry() -> CollectorRegistry:
    return _registry


def get_metrics_output() -> bytes:
    """Registry contents in the Prometheus text exposition format."""
    return generate_latest(_registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST


__all__ = [
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
    "workflow_duration_seconds",
    "workflows_total",
    "workflows_active",
    "workflow_step_duration_seconds",
    "recoveries_total",
]
