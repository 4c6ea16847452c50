"""In-process message bus fanning lifecycle and sweep events out to listeners."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, DefaultDict, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

Handler = Callable[["MessageEnvelope"], None]


@dataclass
class MessageEnvelope:
    topic: str
    payload: Dict[str, Any]
    retries: int = 0


class InMemoryBus:
    """Synchronous pub/sub bus.

    Publishing happens after the metadata write has committed, so a failing
    subscriber must not undo the caller's work: its envelope is retried up
    to ``max_retries`` times and then parked in ``dead_letters``.
    """

    def __init__(self, topics: Optional[Iterable[str]] = None, max_retries: int = 1) -> None:
        self._subscribers: DefaultDict[str, List[Handler]] = defaultdict(list)
        self.topics = set(topics) if topics is not None else None
        self.max_retries = max_retries
        self.dead_letters: List[MessageEnvelope] = []

    def publish(self, envelope: MessageEnvelope) -> None:
        self._check_topic(envelope.topic)
        for callback in list(self._subscribers[envelope.topic]):
            self._deliver(callback, envelope)

    def subscribe(self, topic: str, handler: Handler) -> None:
        self._check_topic(topic)
        self._subscribers[topic].append(handler)

    def unsubscribe(self, topic: str, handler: Handler) -> None:
        if handler in self._subscribers.get(topic, []):
            self._subscribers[topic].remove(handler)

    def _deliver(self, callback: Handler, envelope: MessageEnvelope) -> None:
        attempt = MessageEnvelope(topic=envelope.topic, payload=envelope.payload, retries=envelope.retries)
        while True:
            try:
                callback(attempt)
                return
            except Exception:
                logger.exception("Subscriber %r failed on %s (attempt %d)", callback, attempt.topic, attempt.retries + 1)
                if attempt.retries >= self.max_retries:
                    self.dead_letters.append(attempt)
                    return
                attempt.retries += 1

    def _check_topic(self, topic: str) -> None:
        if self.topics is not None and topic not in self.topics:
            raise ValueError(f"Unknown topic: {topic}")


def build_bus(backend: str = "in-memory", topics: Optional[Iterable[str]] = None) -> InMemoryBus:
    if backend != "in-memory":
        raise NotImplementedError(f"Unsupported message bus backend: {backend}")
    return InMemoryBus(topics=topics)
