"""Logging setup and the in-process metrics/event collector."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, Optional

from .config import ObservabilityConfig
from .models import ObservabilityEvent

logger = logging.getLogger("dockvault.telemetry")

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


@dataclass
class TelemetryCollector:
    """Keeps the most recent metrics and events, bounded by ``metric_buffer_size``."""

    config: ObservabilityConfig
    metrics: Deque[Dict[str, object]] = field(init=False)
    events: Deque[ObservabilityEvent] = field(init=False)

    def __post_init__(self) -> None:
        self.metrics = deque(maxlen=self.config.metric_buffer_size)
        self.events = deque(maxlen=self.config.metric_buffer_size)

    def emit_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self.metrics.append({
            "name": name,
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(labels or {}),
        })

    def emit_event(self, message: str, attributes: Optional[Dict[str, str]] = None) -> None:
        self.events.append(ObservabilityEvent(event_type="custom", message=message, attributes=attributes))
        logger.debug("event %s %s", message, attributes or {})

    def metric_total(self, name: str) -> float:
        return sum(float(metric["value"]) for metric in self.metrics if metric.get("name") == name)

    def snapshot(self) -> Dict[str, float]:
        """Totals per metric name over the buffered window."""
        totals: Dict[str, float] = {}
        for metric in self.metrics:
            key = str(metric["name"])
            totals[key] = totals.get(key, 0.0) + float(metric["value"])
        return totals

    def flush(self) -> None:
        self.metrics.clear()
        self.events.clear()
