"""Logging event observer."""

import logging

from ebookwf.domain.events.event import WorkflowEvent


class LoggingEventObserver:
    """Writes each event as a structured line to the ``ebookwf.events`` logger."""

    def __init__(self, level: int = logging.INFO, log: logging.Logger | None = None):
        self.level = level
        self.log = log or logging.getLogger("ebookwf.events")

    def on_event(self, event: WorkflowEvent) -> None:
        parts = [f"[EVENT] {event.event_type.value}", f"instance={event.instance_id}"]
        if event.step:
            parts.append(f"step={event.step.value}")
        if event.progress is not None:
            parts.append(f"progress={event.progress:.0f}")
        for key in sorted(event.metadata):
            parts.append(f"{key}={event.metadata[key]}")
        self.log.log(self.level, " ".join(parts))
