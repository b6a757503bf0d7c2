"""Outbound events and the broadcaster that fans them out to observers."""

from __future__ import annotations

import json
import logging
from collections import deque
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, ClassVar, Protocol

from city_builder.models import QueueItem, Structure


@dataclass(slots=True)
class BuildStarted:
    type: ClassVar[str] = "BUILD_STARTED"

    ticket_id: str
    category: str
    model_key: str
    position: list[int]
    orientation: int
    footprint: list[int]
    reason: str | None
    scale: float = 2.0

    @classmethod
    def from_item(cls, item: QueueItem) -> BuildStarted:
        return cls(
            ticket_id=item.ticket_id,
            category=item.category.value,
            model_key=item.model_key,
            position=item.position.as_list(),
            orientation=item.orientation,
            footprint=[item.footprint.width, item.footprint.depth],
            reason=item.reason,
            scale=item.scale,
        )


@dataclass(slots=True)
class BuildCompleted:
    type: ClassVar[str] = "BUILD_COMPLETED"

    id: str
    category: str
    model_key: str
    position: list[int]
    metadata: dict[str, Any] | None

    @classmethod
    def from_structure(cls, structure: Structure) -> BuildCompleted:
        return cls(
            id=structure.id,
            category=structure.category.value,
            model_key=structure.model_key,
            position=structure.position.as_list(),
            metadata=structure.metadata.as_dict() if structure.metadata else None,
        )


@dataclass(slots=True)
class NarrativeLogged:
    type: ClassVar[str] = "NARRATIVE_LOGGED"

    thought: str
    mood: str
    day_context: dict[str, Any]
    recent_build_summary: str


@dataclass(slots=True)
class TimeUpdated:
    type: ClassVar[str] = "TIME_UPDATE"

    time_of_day: float
    day: int


@dataclass(slots=True)
class SchedulerStalled:
    type: ClassVar[str] = "SCHEDULER_STALLED"

    attempts: int
    queue_length: int
    recovered: bool = False


@dataclass(slots=True)
class WorldReset:
    type: ClassVar[str] = "WORLD_STATE"

    snapshot: dict[str, Any] = field(default_factory=dict)


Event = BuildStarted | BuildCompleted | NarrativeLogged | TimeUpdated | SchedulerStalled | WorldReset
EventCallback = Callable[[Event], None]


def to_message(event: Event) -> dict[str, Any]:
    """Wire-neutral ``{"type", "payload"}`` envelope for observers."""
    return {"type": event.type, "payload": asdict(event)}


class EventSink(Protocol):
    def __call__(self, event: Event) -> None:
        """Receive one published event."""


class EventBroadcaster:
    """Fans events out to subscribers; a failing subscriber never breaks the build loop."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._subscribers: list[EventCallback] = []
        self._logger = logger or logging.getLogger("city_builder.events")

    def subscribe(self, callback: EventCallback) -> Callable[[], None]:
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: EventCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, event: Event) -> None:
        self._logger.debug("event_published", extra={"event_type": event.type})
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:  # noqa: BLE001 - observers must not stall construction.
                self._logger.exception("event_subscriber_failed", extra={"event_type": event.type})


class InMemoryEventLog:
    """Bounded in-memory event history."""

    def __init__(self, max_events: int = 1_000) -> None:
        self._events: deque[Event] = deque(maxlen=max_events)

    def __call__(self, event: Event) -> None:
        self._events.append(event)

    def list_recent(self, limit: int = 20) -> list[Event]:
        return list(self._events)[-limit:][::-1]

    def of_type(self, event_type: type) -> list[Event]:
        return [event for event in self._events if isinstance(event, event_type)]


class JsonlEventSink:
    """Append-only JSONL event journal."""

    def __init__(self, file_path: str | Path) -> None:
        self._path = Path(file_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def __call__(self, event: Event) -> None:
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(to_message(event), default=str) + "\n")

    def read(self) -> list[dict[str, Any]]:
        if not self._path.exists():
            return []
        messages = []
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                if line.strip():
                    messages.append(json.loads(line))
        return messages
