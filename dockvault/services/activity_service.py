"""Bounded activity feed fed from the message bus."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

from ..messaging import InMemoryBus, MessageEnvelope
from ..telemetry import TelemetryCollector

ACTIVITY_TOPICS = ("lifecycle.transitions", "sweep.events", "containers.created")


@dataclass
class ActivityService:
    bus: InMemoryBus
    telemetry: TelemetryCollector
    max_events: int = 200
    events: Deque[MessageEnvelope] = field(init=False)

    def __post_init__(self) -> None:
        self.events = deque(maxlen=self.max_events)
        for topic in ACTIVITY_TOPICS:
            self.bus.subscribe(topic, self._handle_event)

    def recent(
        self,
        *,
        owner_id: Optional[str] = None,
        include_system: bool = False,
        limit: int = 50,
    ) -> List[MessageEnvelope]:
        """Newest first.

        With an ``owner_id`` only that owner's events are returned; events without
        an owner, such as sweep summaries, are added only when ``include_system``.
        """
        events = [
            envelope for envelope in reversed(self.events)
            if owner_id is None
            or envelope.payload.get("ownerId") == owner_id
            or (include_system and envelope.payload.get("ownerId") is None)
        ]
        return events[:limit] if limit > 0 else events

    def _handle_event(self, envelope: MessageEnvelope) -> None:
        self.events.append(envelope)
        self.telemetry.emit_event(f"activity_{envelope.topic}", {"topic": envelope.topic})
