"""Workflow event system for observer pattern notifications."""

from ebookwf.domain.events.event_types import WorkflowEventType
from ebookwf.domain.events.event import WorkflowEvent
from ebookwf.domain.events.observer import WorkflowObserver
from ebookwf.domain.events.emitter import WorkflowEventEmitter
from ebookwf.domain.events.logging_observer import LoggingEventObserver

__all__ = [
    "WorkflowEventType",
    "WorkflowEvent",
    "WorkflowObserver",
    "WorkflowEventEmitter",
    "LoggingEventObserver",
]
