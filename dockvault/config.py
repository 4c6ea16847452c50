"""Configuration primitives for the dockvault storage core."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional


@dataclass
class IndexConfig:
    backend: str = "in-memory"
    table_name: str = "dockvault"
    state_path: Optional[str] = None
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    page_size: int = 100
    connect_timeout_seconds: float = 3.0
    read_timeout_seconds: float = 10.0
    max_attempts: int = 3


@dataclass
class ObjectStoreConfig:
    backend: str = "in-memory"
    bucket_name: str = "dockvault-objects"
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    connect_timeout_seconds: float = 3.0
    read_timeout_seconds: float = 10.0
    max_attempts: int = 3


@dataclass
class LifecyclePolicyConfig:
    trash_retention_days: int = 30
    trash_tag_key: str = "state"
    trash_tag_value: str = "TRASH"


@dataclass
class SweepConfig:
    interval_seconds: int = 3600


@dataclass
class CacheConfig:
    container_ttl_seconds: float = 60.0


@dataclass
class MessageBusConfig:
    backend: str = "in-memory"
    topics: List[str] = field(default_factory=lambda: [
        "lifecycle.transitions",
        "sweep.events",
        "containers.created",
    ])


@dataclass
class ObservabilityConfig:
    log_level: str = "INFO"
    activity_feed_size: int = 200
    metric_buffer_size: int = 10000


@dataclass
class DockvaultConfig:
    index: IndexConfig
    object_store: ObjectStoreConfig
    lifecycle: LifecyclePolicyConfig
    sweep: SweepConfig
    cache: CacheConfig
    message_bus: MessageBusConfig
    observability: ObservabilityConfig

    @staticmethod
    def default() -> "DockvaultConfig":
        return DockvaultConfig(
            index=IndexConfig(),
            object_store=ObjectStoreConfig(),
            lifecycle=LifecyclePolicyConfig(),
            sweep=SweepConfig(),
            cache=CacheConfig(),
            message_bus=MessageBusConfig(),
            observability=ObservabilityConfig(),
        )

    @staticmethod
    def from_env(environ: Optional[Mapping[str, str]] = None) -> "DockvaultConfig":
        """Build a config from process environment variables.

        ``TABLE_NAME`` and ``BUCKET_NAME`` are required once an AWS backend is
        selected; the in-memory backends fall back to the defaults.
        """
        env = os.environ if environ is None else environ
        cfg = DockvaultConfig.default()
        region = env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION")

        cfg.index.backend = env.get("DOCKVAULT_INDEX_BACKEND", cfg.index.backend)
        cfg.index.table_name = env.get("TABLE_NAME", cfg.index.table_name)
        cfg.index.state_path = env.get("DOCKVAULT_INDEX_STATE_PATH") or None
        cfg.index.endpoint_url = env.get("DOCKVAULT_DYNAMODB_ENDPOINT") or None
        cfg.index.region = region

        cfg.object_store.backend = env.get("DOCKVAULT_OBJECT_BACKEND", cfg.object_store.backend)
        cfg.object_store.bucket_name = env.get("BUCKET_NAME", cfg.object_store.bucket_name)
        cfg.object_store.endpoint_url = env.get("DOCKVAULT_S3_ENDPOINT") or None
        cfg.object_store.region = region

        if cfg.index.backend == "dynamodb" and not env.get("TABLE_NAME"):
            raise ValueError("Missing required env var: TABLE_NAME")
        if cfg.object_store.backend == "s3" and not env.get("BUCKET_NAME"):
            raise ValueError("Missing required env var: BUCKET_NAME")

        cfg.lifecycle.trash_retention_days = _int_env(env, "TRASH_RETENTION_DAYS", cfg.lifecycle.trash_retention_days)
        cfg.sweep.interval_seconds = _int_env(env, "DOCKVAULT_SWEEP_INTERVAL_SECONDS", cfg.sweep.interval_seconds)
        cfg.cache.container_ttl_seconds = float(
            env.get("DOCKVAULT_CONTAINER_CACHE_TTL_SECONDS", cfg.cache.container_ttl_seconds)
        )
        cfg.observability.log_level = env.get("DOCKVAULT_LOG_LEVEL", cfg.observability.log_level)
        return cfg


def _int_env(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
