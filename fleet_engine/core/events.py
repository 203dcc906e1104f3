"""Event emitters for the fleet engine."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Union

import requests

from fleet_engine.core.events_model import StatusChangedEvent, UnitEvent

logger = logging.getLogger(__name__)


ALLOWED_EVENTS = {
    "unit.registered",
    "unit.queued",
    "unit.claimed",
    "unit.started",
}

Event = Union[UnitEvent, StatusChangedEvent]


class EventEmitter(ABC):
    """Abstract event emitter."""

    @abstractmethod
    def emit(self, events: Iterable[Event]) -> None:
        """Emit one or more events."""
        pass


def _validate(event: Event) -> None:
    if isinstance(event, StatusChangedEvent):
        if not event.event_kind:
            raise ValueError("Status event must have an event kind")
        if not event.correlation_id:
            raise ValueError("Status event must have a correlation id")
        return
    if event.event_type not in ALLOWED_EVENTS:
        raise ValueError(f"Invalid event type: {event.event_type}")
    if not event.unit_id:
        raise ValueError("Event must have unit_id")


class PrintEventEmitter(EventEmitter):
    """Simple console event emitter for testing."""

    def __init__(self):
        self.events = []

    def emit(self, events: Iterable[Event]) -> None:
        for event in events:
            _validate(event)
            self.events.append(event)

            if isinstance(event, StatusChangedEvent):
                print(f"[EVENT] {event.event_kind} | unit={event.correlation_id} | {event.state}")
            else:
                print(f"[EVENT] {event.event_type} | unit={event.unit_id}")

    def status_events(self):
        return [e for e in self.events if isinstance(e, StatusChangedEvent)]


class LoggingEventEmitter(EventEmitter):
    """Write events to the log."""

    def emit(self, events: Iterable[Event]) -> None:
        for event in events:
            _validate(event)
            if isinstance(event, StatusChangedEvent):
                level = logging.INFO if event.succeeded else logging.WARNING
                logger.log(
                    level,
                    f"[events] {event.event_kind} unit={event.correlation_id} "
                    f"target={event.target_id} state={event.state}"
                )
            else:
                logger.debug(f"[events] {event.event_type} unit={event.unit_id}")


class WebhookEventEmitter(EventEmitter):
    """
    Forward status-changed events to the dashboard's event endpoint.

    Lifecycle events stay local; delivery failures are logged, not raised.
    """

    def __init__(self, url: str, timeout: int = 5):
        self.url = url
        self.timeout = timeout

    def emit(self, events: Iterable[Event]) -> None:
        for event in events:
            _validate(event)
            if not isinstance(event, StatusChangedEvent):
                continue
            try:
                response = requests.post(self.url, json=event.to_dict(), timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.error(f"[events] Failed to deliver {event.event_kind} for {event.correlation_id}: {e}")


class MultiEventEmitter:
    """Fan-out to multiple emitters."""

    def __init__(self, emitters: Iterable[EventEmitter]):
        self._emitters = list(emitters)

    def emit(self, events: Iterable[Event]):
        events = list(events)
        for emitter in self._emitters:
            emitter.emit(events)

