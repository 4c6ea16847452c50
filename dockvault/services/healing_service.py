"""Background reconciliation of expired trash against the object store."""

from __future__ import annotations

import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import List, Optional

from ..domain.timestamps import Clock, to_iso
from ..errors import TransientError
from ..messaging import InMemoryBus, MessageEnvelope
from .base import BaseService
from .lifecycle_service import FileLifecycleService, SweepDecision
from .metadata_service import MetadataRepository

logger = logging.getLogger(__name__)

SWEEP_TOPIC = "sweep.events"


@dataclass
class SweepReport:
    started_at: datetime
    containers_scanned: int = 0
    examined: int = 0
    purged: int = 0
    retained_present: int = 0
    skipped: int = 0
    errors: int = 0
    purged_paths: List[str] = field(default_factory=list)

    def to_payload(self, *, include_paths: bool = True) -> dict:
        payload = asdict(self)
        payload["started_at"] = to_iso(self.started_at)
        if not include_paths:
            payload.pop("purged_paths")
        return payload


@dataclass
class ReconciliationSweep(BaseService):
    """Marks expired TRASH records PURGED once their object is gone.

    Objects that still exist are left alone; this sweep never deletes data
    itself. Each action is idempotent, so a crashed run is simply re-run.
    """

    repository: MetadataRepository
    lifecycle: FileLifecycleService
    bus: Optional[InMemoryBus] = None
    clock: Optional[Clock] = None

    def run(self, now: Optional[datetime] = None) -> SweepReport:
        now = now or self.now()
        report = SweepReport(started_at=now)
        for container in self.repository.scan_all_containers():
            report.containers_scanned += 1
            try:
                self._sweep_container(container.owner_id, container.container_id, now, report)
            except TransientError as exc:
                report.errors += 1
                logger.warning(
                    "Sweep skipped container %s/%s: %s",
                    container.owner_id,
                    container.container_id,
                    exc,
                )
            except Exception:
                report.errors += 1
                logger.exception("Sweep failed on container %s/%s", container.owner_id, container.container_id)

        self.emit_metric("sweep.purged", report.purged)
        self.emit_metric("sweep.retained_present", report.retained_present)
        self.emit_metric("sweep.errors", report.errors)
        logger.info(
            "Sweep finished: %d containers, %d examined, %d purged, %d retained, %d errors",
            report.containers_scanned,
            report.examined,
            report.purged,
            report.retained_present,
            report.errors,
        )
        if self.bus:
            self.bus.publish(MessageEnvelope(topic=SWEEP_TOPIC, payload=report.to_payload(include_paths=False)))
        return report

    def _sweep_container(self, owner_id: str, container_id: str, now: datetime, report: SweepReport) -> None:
        for record in self.repository.list_trash_due(owner_id, container_id, now):
            report.examined += 1
            decision, result = self.lifecycle.sweep_purge(owner_id, container_id, record.full_path, now)
            if decision == SweepDecision.PURGED:
                report.purged += 1
                report.purged_paths.append(result.full_path)
            elif decision == SweepDecision.RETAINED:
                report.retained_present += 1
            else:
                report.skipped += 1


@dataclass
class SweepRunner:
    """Runs a sweep every ``interval_seconds`` until stopped."""

    sweep: ReconciliationSweep
    interval_seconds: float
    stop_event: threading.Event = field(default_factory=threading.Event)
    runs: int = 0

    def run_once(self) -> SweepReport:
        self.runs += 1
        return self.sweep.run()

    def run_forever(self, max_runs: Optional[int] = None) -> None:
        while not self.stop_event.is_set():
            try:
                self.run_once()
            except TransientError as exc:
                logger.warning("Sweep run failed: %s", exc)
            except Exception:
                logger.exception("Sweep run crashed; retrying after %ss", self.interval_seconds)
            if max_runs is not None and self.runs >= max_runs:
                return
            self.stop_event.wait(self.interval_seconds)

    def stop(self) -> None:
        self.stop_event.set()
