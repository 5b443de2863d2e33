# src/change_assistant/core/events.py
"""
Observability sinks for the change pipeline.

The orchestrator, the execution engine and the validator report structured
events (phases, steps, metrics, decisions, warnings) to an injected sink
instead of printing. Components default to LoggingEventSink.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable
import logging

logger = logging.getLogger(__name__)


@dataclass
class PipelineEvent:
    """A single structured event."""
    kind: str  # phase_started, phase_completed, step, metric, decision, warning
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'kind': self.kind,
            'message': self.message,
            'data': self.data,
            'timestamp': self.timestamp.isoformat()
        }


@runtime_checkable
class EventSink(Protocol):
    """Protocol for receiving pipeline events."""

    def emit(self, event: PipelineEvent) -> None:
        ...


class EventReporter:
    """Convenience wrapper that turns calls into events for a sink."""

    def __init__(self, sink: Optional[EventSink] = None):
        self.sink = sink or LoggingEventSink()

    def phase_started(self, phase: str, **data) -> None:
        self.sink.emit(PipelineEvent('phase_started', phase, data))

    def phase_completed(self, phase: str, **data) -> None:
        self.sink.emit(PipelineEvent('phase_completed', phase, data))

    def step(self, message: str, **data) -> None:
        self.sink.emit(PipelineEvent('step', message, data))

    def metric(self, name: str, value: Any) -> None:
        self.sink.emit(PipelineEvent('metric', name, {'value': value}))

    def decision(self, message: str, confidence: Optional[float] = None) -> None:
        data = {'confidence': confidence} if confidence is not None else {}
        self.sink.emit(PipelineEvent('decision', message, data))

    def warning(self, message: str, **data) -> None:
        self.sink.emit(PipelineEvent('warning', message, data))


class LoggingEventSink:
    """Forwards events to the standard logging system."""

    def __init__(self, logger_name: str = "change_assistant.events"):
        self._logger = logging.getLogger(logger_name)

    def emit(self, event: PipelineEvent) -> None:
        level = logging.WARNING if event.kind == 'warning' else logging.INFO
        if event.kind == 'step':
            level = logging.DEBUG
        suffix = f" {event.data}" if event.data else ""
        self._logger.log(level, f"[{event.kind}] {event.message}{suffix}")


class RecordingEventSink:
    """Keeps events in memory (tests, CLI trace output)."""

    def __init__(self):
        self.events: List[PipelineEvent] = []

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> List[PipelineEvent]:
        return [e for e in self.events if e.kind == kind]

    def clear(self) -> None:
        self.events.clear()


class NullEventSink:
    """Discards every event."""

    def emit(self, event: PipelineEvent) -> None:
        pass
