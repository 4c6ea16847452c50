"""Base class for storage core services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from ..config import DockvaultConfig
from ..domain.timestamps import truncate_ms, utc_now
from ..telemetry import TelemetryCollector


@dataclass
class BaseService:
    config: DockvaultConfig
    telemetry: TelemetryCollector

    def now(self) -> datetime:
        # Subclasses expose an injectable ``clock`` field as their last field.
        clock = getattr(self, "clock", None) or utc_now
        return truncate_ms(clock())

    def emit_metric(self, name: str, value: float, **labels: str) -> None:
        self.telemetry.emit_metric(name, value, labels)

    def emit_event(self, message: str, **attrs: str) -> None:
        self.telemetry.emit_event(message, attrs)
