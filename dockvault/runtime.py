"""Runtime wiring for the dockvault storage core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import DockvaultConfig
from .domain.timestamps import Clock
from .messaging import InMemoryBus, build_bus
from .services.activity_service import ActivityService
from .services.api_gateway import APIGateway
from .services.cache import TTLCache
from .services.consistency import ObjectConsistencyLayer
from .services.healing_service import ReconciliationSweep, SweepRunner
from .services.lifecycle_service import FileLifecycleService
from .services.metadata_service import MetadataRepository
from .storage import build_index, build_object_store
from .storage.index import MetadataIndex
from .storage.object_store import ObjectStore
from .telemetry import TelemetryCollector


@dataclass
class DockvaultRuntime:
    config: DockvaultConfig
    bus: InMemoryBus
    telemetry: TelemetryCollector
    index: MetadataIndex
    object_store: ObjectStore
    repository: MetadataRepository
    consistency: ObjectConsistencyLayer
    lifecycle: FileLifecycleService
    sweep: ReconciliationSweep
    activity_service: ActivityService
    api_gateway: APIGateway

    @classmethod
    def bootstrap(
        cls,
        config: Optional[DockvaultConfig] = None,
        *,
        index: Optional[MetadataIndex] = None,
        object_store: Optional[ObjectStore] = None,
        clock: Optional[Clock] = None,
    ) -> "DockvaultRuntime":
        cfg = config or DockvaultConfig.default()
        bus = build_bus(cfg.message_bus.backend, topics=cfg.message_bus.topics)
        telemetry = TelemetryCollector(cfg.observability)
        index = index if index is not None else build_index(cfg.index)
        object_store = object_store if object_store is not None else build_object_store(cfg.object_store)

        repository = MetadataRepository(config=cfg, telemetry=telemetry, index=index, clock=clock)
        consistency = ObjectConsistencyLayer(config=cfg, telemetry=telemetry, store=object_store, clock=clock)
        lifecycle = FileLifecycleService(
            config=cfg,
            telemetry=telemetry,
            repository=repository,
            consistency=consistency,
            bus=bus,
            clock=clock,
        )
        sweep = ReconciliationSweep(
            config=cfg,
            telemetry=telemetry,
            repository=repository,
            lifecycle=lifecycle,
            bus=bus,
            clock=clock,
        )
        activity_service = ActivityService(
            bus=bus,
            telemetry=telemetry,
            max_events=cfg.observability.activity_feed_size,
        )
        api_gateway = APIGateway(
            repository=repository,
            lifecycle=lifecycle,
            sweep=sweep,
            activity_service=activity_service,
            container_cache=TTLCache(cfg.cache.container_ttl_seconds),
            bus=bus,
        )
        return cls(
            config=cfg,
            bus=bus,
            telemetry=telemetry,
            index=index,
            object_store=object_store,
            repository=repository,
            consistency=consistency,
            lifecycle=lifecycle,
            sweep=sweep,
            activity_service=activity_service,
            api_gateway=api_gateway,
        )

    def build_sweep_runner(self, interval_seconds: Optional[float] = None) -> SweepRunner:
        interval = interval_seconds if interval_seconds is not None else self.config.sweep.interval_seconds
        return SweepRunner(sweep=self.sweep, interval_seconds=interval)
