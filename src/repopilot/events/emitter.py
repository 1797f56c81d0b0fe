"""Event emitter implementations.

Pipelines emit events through the EventEmitter interface without knowing
where they end up:

- LoggingEventEmitter: Emits events as structured log entries
- CompositeEventEmitter: Emits to multiple sinks simultaneously

A failing sink never breaks the pipeline that emitted the event.

Source:
- src/repopilot/events/models.py (PipelineEvent, EventType)
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from prometheus_client import CollectorRegistry

from src.repopilot.events.models import EventType, PipelineEvent


logger = logging.getLogger(__name__)


class EventSinkType(str, Enum):
    """Event sinks that can be enabled.

    Attributes:
        LOGGING: Emit events as structured log entries.
        METRICS: Emit events as Prometheus metrics.
    """

    LOGGING = "logging"
    METRICS = "metrics"


class EventEmitter(ABC):
    """Abstract base class for event emitters.

    Implementations should be async-safe and must not propagate sink
    failures to the caller.
    """

    @abstractmethod
    async def emit(self, event: PipelineEvent) -> None:
        """Emit a pipeline event.

        Args:
            event: The pipeline event to emit.
        """
        pass

    async def close(self) -> None:
        """Release resources held by the emitter."""
        pass


class LoggingEventEmitter(EventEmitter):
    """Event emitter that writes events as structured log entries.

    ERROR events are logged at ERROR level; everything else at INFO.
    All event fields are passed through ``extra`` for log aggregators.

    Example:
        >>> emitter = LoggingEventEmitter()
        >>> await emitter.emit(event)
        # Logs: INFO - Pipeline event: fix_published for org/repo#123
    """

    def __init__(self, logger_name: Optional[str] = None):
        self._logger = logging.getLogger(logger_name) if logger_name else logger
        self._log_level_map = {
            EventType.ANALYSIS_COMPLETED: logging.INFO,
            EventType.FIX_PUBLISHED: logging.INFO,
            EventType.SCAN_COMPLETED: logging.INFO,
            EventType.ERROR: logging.ERROR,
        }

    async def emit(self, event: PipelineEvent) -> None:
        log_level = self._log_level_map.get(event.event_type, logging.INFO)

        self._logger.log(
            log_level,
            "Pipeline event: %s for %s",
            event.event_type.value,
            event.subject,
            extra=event.to_log_dict(),
        )


class CompositeEventEmitter(EventEmitter):
    """Event emitter that delegates to multiple child emitters.

    Each child is called independently; a failure in one is logged and
    does not stop delivery to the others.

    Example:
        >>> composite = CompositeEventEmitter([LoggingEventEmitter(), MetricsEventEmitter()])
        >>> await composite.emit(event)  # Emits to both sinks
    """

    def __init__(self, emitters: Optional[List[EventEmitter]] = None):
        self._emitters: List[EventEmitter] = emitters or []

    def add_emitter(self, emitter: EventEmitter) -> None:
        self._emitters.append(emitter)

    @property
    def emitters(self) -> List[EventEmitter]:
        """Child emitters (copy)."""
        return list(self._emitters)

    async def emit(self, event: PipelineEvent) -> None:
        for emitter in self._emitters:
            try:
                await emitter.emit(event)
            except Exception as e:
                logger.error(
                    "Failed to emit event to %s: %s",
                    type(emitter).__name__,
                    str(e),
                    extra={
                        "emitter_type": type(emitter).__name__,
                        "event_type": event.event_type.value,
                        "subject": event.subject,
                        "error": str(e),
                    },
                )

    async def close(self) -> None:
        for emitter in self._emitters:
            try:
                await emitter.close()
            except Exception as e:
                logger.error(
                    "Failed to close emitter %s: %s",
                    type(emitter).__name__,
                    str(e),
                )


async def safe_emit(emitter: Optional[EventEmitter], event: PipelineEvent) -> None:
    """Emit an event, logging instead of raising if the sink fails.

    Pipelines call this so that observability never changes the outcome
    of the operation being observed.
    """
    if emitter is None:
        return
    try:
        await emitter.emit(event)
    except Exception as e:
        logger.error(
            "Event emission failed",
            extra={
                "event_type": event.event_type.value,
                "subject": event.subject,
                "error": str(e),
            },
        )


def create_event_emitter(
    sink_types: Optional[List[EventSinkType]] = None,
    logger_name: Optional[str] = None,
    metrics_registry: Optional[CollectorRegistry] = None,
) -> EventEmitter:
    """Create an emitter for the requested sinks.

    Args:
        sink_types: Sinks to enable. Defaults to logging only.
        logger_name: Optional logger name for the LoggingEventEmitter.
        metrics_registry: Registry for the metrics sink; the default
            Prometheus registry when omitted.

    Returns:
        A single emitter, or a CompositeEventEmitter when several sinks
        are requested.

    Example:
        >>> emitter = create_event_emitter([EventSinkType.LOGGING, EventSinkType.METRICS])
        >>> isinstance(emitter, CompositeEventEmitter)
        True
    """
    if not sink_types:
        return LoggingEventEmitter(logger_name=logger_name)

    emitters: List[EventEmitter] = []

    for sink_type in sink_types:
        if sink_type == EventSinkType.LOGGING:
            emitters.append(LoggingEventEmitter(logger_name=logger_name))
        elif sink_type == EventSinkType.METRICS:
            # Imported here: metrics.py imports EventEmitter from this module
            from src.repopilot.events.metrics import MetricsEventEmitter

            emitters.append(MetricsEventEmitter(registry=metrics_registry))
        else:
            logger.warning("Unknown event sink type: %s, skipping", sink_type)

    if not emitters:
        return LoggingEventEmitter(logger_name=logger_name)

    if len(emitters) == 1:
        return emitters[0]

    return CompositeEventEmitter(emitters)
