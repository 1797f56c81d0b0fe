"""Prometheus metrics for RepoPilot.

Metrics Defined:
- repopilot_analyses_total: Counter of analyses produced, by task
- repopilot_fixes_published_total: Counter of Fix Proposals published
- repopilot_failures_total: Counter of failed operations
- repopilot_scanned_issues_total: Counter of issues examined by scans
- repopilot_analysis_duration_seconds: Histogram of analysis time

The MetricsEventEmitter updates these from pipeline events. They are
exposed in Prometheus text format at ``/metrics``.

Source:
- src/repopilot/events/models.py (PipelineEvent, EventType)
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

from src.repopilot.events.emitter import EventEmitter
from src.repopilot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


# Model calls with large thinking budgets routinely take tens of seconds
DEFAULT_DURATION_BUCKETS = (
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
)


class RepoPilotMetrics:
    """Container for all RepoPilot Prometheus metrics.

    Supports a custom registry so tests do not collide with the
    process-wide default registry.

    Example:
        >>> metrics = RepoPilotMetrics(registry=CollectorRegistry())
        >>> metrics.record_analysis("org/repo", "pr_review")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.analyses_total = Counter(
            "repopilot_analyses_total",
            "Total number of analyses produced",
            labelnames=["repository", "task"],
            registry=self.registry,
        )

        self.fixes_published_total = Counter(
            "repopilot_fixes_published_total",
            "Total number of Fix Proposals published as pull requests",
            labelnames=["repository"],
            registry=self.registry,
        )

        self.failures_total = Counter(
            "repopilot_failures_total",
            "Total number of failed operations",
            labelnames=["repository", "operation"],
            registry=self.registry,
        )

        self.scanned_issues_total = Counter(
            "repopilot_scanned_issues_total",
            "Total number of issues examined by triage passes and weekly scans",
            labelnames=["repository", "scan"],
            registry=self.registry,
        )

        self.analysis_duration_seconds = Histogram(
            "repopilot_analysis_duration_seconds",
            "Time spent producing an analysis in seconds",
            labelnames=["task"],
            buckets=DEFAULT_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_analysis(
        self,
        repository: str,
        task: str,
        duration_seconds: Optional[float] = None,
    ) -> None:
        self.analyses_total.labels(repository=repository, task=task).inc()
        if duration_seconds is not None:
            self.analysis_duration_seconds.labels(task=task).observe(duration_seconds)

    def record_fix_published(self, repository: str) -> None:
        self.fixes_published_total.labels(repository=repository).inc()

    def record_failure(self, repository: str, operation: str) -> None:
        self.failures_total.labels(repository=repository, operation=operation).inc()

    def record_scan(self, repository: str, scan: str, processed: int) -> None:
        self.scanned_issues_total.labels(repository=repository, scan=scan).inc(processed)


_default_metrics: Optional[RepoPilotMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> RepoPilotMetrics:
    """Get the global metrics instance, or a new one for a custom registry."""
    global _default_metrics

    if registry is not None:
        return RepoPilotMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = RepoPilotMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Render metrics in Prometheus text format for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)


class MetricsEventEmitter(EventEmitter):
    """Event emitter that updates Prometheus metrics.

    - ANALYSIS_COMPLETED: analyses_total, analysis_duration_seconds
    - FIX_PUBLISHED: fixes_published_total
    - SCAN_COMPLETED: scanned_issues_total
    - ERROR: failures_total
    """

    def __init__(
        self,
        metrics: Optional[RepoPilotMetrics] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self._metrics = metrics if metrics is not None else get_metrics(registry)

    @property
    def metrics(self) -> RepoPilotMetrics:
        return self._metrics

    async def emit(self, event: PipelineEvent) -> None:
        try:
            details = event.details
            if event.event_type == EventType.ANALYSIS_COMPLETED:
                duration = details.get("duration_seconds")
                self._metrics.record_analysis(
                    repository=event.repository,
                    task=str(details.get("task", "unknown")),
                    duration_seconds=float(duration) if duration is not None else None,
                )
            elif event.event_type == EventType.FIX_PUBLISHED:
                self._metrics.record_fix_published(event.repository)
            elif event.event_type == EventType.SCAN_COMPLETED:
                self._metrics.record_scan(
                    repository=event.repository,
                    scan=str(details.get("scan", "unknown")),
                    processed=int(details.get("processed", 0)),
                )
            elif event.event_type == EventType.ERROR:
                self._metrics.record_failure(
                    repository=event.repository,
                    operation=str(details.get("operation", "unknown")),
                )
        except Exception as e:
            logger.error(
                "Failed to update metrics for event %s: %s",
                event.event_type.value,
                str(e),
                extra={
                    "event_type": event.event_type.value,
                    "subject": event.subject,
                    "error": str(e),
                },
            )
