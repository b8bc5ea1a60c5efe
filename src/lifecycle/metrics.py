"""Prometheus metrics for lifecycle observability.

Metrics Defined:
- lifecycle_webhook_events_total: webhook deliveries by event type and action
- lifecycle_actions_total: downstream action outcomes
- lifecycle_infrastructure_tool_duration_seconds: CLI run time by subcommand
- lifecycle_stopped_executions_total: pipeline execution stop outcomes

Metrics are exposed at the `/metrics` endpoint in Prometheus format.
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# CDK deploys range from under a minute to the better part of an hour
DEFAULT_DURATION_BUCKETS = (
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1200.0,
    1800.0,
    3600.0,
)


class LifecycleMetrics:
    """Container for all lifecycle Prometheus metrics.

    Supports custom registries so tests can create isolated instances.

    Attributes:
        registry: The Prometheus registry for these metrics.
        webhook_events_total: Counter of classified webhook events.
        actions_total: Counter of downstream action results.
        tool_duration_seconds: Histogram of infrastructure CLI run time.
        stopped_executions_total: Counter of execution stop results.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.webhook_events_total = Counter(
            "lifecycle_webhook_events_total",
            "Webhook deliveries received, by event type and resulting action",
            labelnames=["event_type", "action"],
            registry=self.registry,
        )

        self.actions_total = Counter(
            "lifecycle_actions_total",
            "Lifecycle actions run, by action and result",
            labelnames=["action", "result"],
            registry=self.registry,
        )

        self.tool_duration_seconds = Histogram(
            "lifecycle_infrastructure_tool_duration_seconds",
            "Wall-clock time of infrastructure CLI invocations",
            labelnames=["command"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

        self.stopped_executions_total = Counter(
            "lifecycle_stopped_executions_total",
            "Pipeline executions stopped during teardown, by result",
            labelnames=["result"],
            registry=self.registry,
        )

    def record_webhook_event(self, event_type: str, action: str) -> None:
        self.webhook_events_total.labels(event_type=event_type or "unknown", action=action).inc()

    def record_action(self, action: str, success: bool) -> None:
        result = "success" if success else "failure"
        self.actions_total.labels(action=action, result=result).inc()

    def record_tool_duration(self, command: str, duration_seconds: float) -> None:
        self.tool_duration_seconds.labels(command=command).observe(duration_seconds)

    def record_stopped_execution(self, success: bool) -> None:
        result = "success" if success else "failure"
        self.stopped_executions_total.labels(result=result).inc()

    def generate(self) -> bytes:
        """Render the registry in Prometheus text format."""
        return generate_latest(self.registry)


_default_metrics: Optional[LifecycleMetrics] = None


def get_metrics() -> LifecycleMetrics:
    """Return the process-wide metrics bound to the default registry."""
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = LifecycleMetrics()
    return _default_metrics
