"""Workflow event emitter for dispatching events to observers."""

import logging
from collections import defaultdict
from typing import Any

from ebookwf.domain.events.event import WorkflowEvent
from ebookwf.domain.events.event_types import WorkflowEventType
from ebookwf.domain.events.observer import WorkflowObserver
from ebookwf.domain.models.workflow_state import WorkflowStep

logger = logging.getLogger(__name__)


class WorkflowEventEmitter:
    """Central event dispatcher for workflow events.

    Observers subscribe either to every event or to a list of event types.
    A failing observer is logged and skipped; it never breaks the workflow.
    """

    def __init__(self) -> None:
        self._by_type: dict[WorkflowEventType, list[WorkflowObserver]] = defaultdict(list)
        self._global_observers: list[WorkflowObserver] = []

    def subscribe(
        self,
        observer: WorkflowObserver,
        event_types: list[WorkflowEventType] | None = None,
    ) -> None:
        """Subscribe to specific event types, or all events if None."""
        if event_types is None:
            self._global_observers.append(observer)
            return
        for event_type in event_types:
            self._by_type[event_type].append(observer)

    def unsubscribe(self, observer: WorkflowObserver) -> None:
        """Remove observer from all subscriptions."""
        if observer in self._global_observers:
            self._global_observers.remove(observer)
        for observers in self._by_type.values():
            if observer in observers:
                observers.remove(observer)

    def emit(self, event: WorkflowEvent) -> None:
        """Dispatch event to global observers, then type subscribers."""
        for observer in [*self._global_observers, *self._by_type.get(event.event_type, [])]:
            self._safe_notify(observer, event)

    def notify(
        self,
        event_type: WorkflowEventType,
        instance_id: str,
        step: WorkflowStep | None = None,
        progress: float | None = None,
        **metadata: Any,
    ) -> None:
        """Build and emit an event in one call."""
        self.emit(
            WorkflowEvent(
                event_type=event_type,
                instance_id=instance_id,
                step=step,
                progress=progress,
                metadata=metadata,
            )
        )

    def _safe_notify(self, observer: WorkflowObserver, event: WorkflowEvent) -> None:
        try:
            observer.on_event(event)
        except Exception as e:
            logger.warning(f"Observer {observer!r} failed on {event.event_type.value}: {e}")
