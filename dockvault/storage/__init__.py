"""Storage backends for the metadata index and the object store."""

from __future__ import annotations

from ..config import IndexConfig, ObjectStoreConfig
from .index import InMemoryIndex, MetadataIndex, Page  # noqa: F401
from .object_store import InMemoryObjectStore, ObjectStore, ObjectVersion  # noqa: F401


def build_index(config: IndexConfig) -> MetadataIndex:
    if config.backend == "in-memory":
        return InMemoryIndex(state_path=config.state_path)
    if config.backend == "dynamodb":
        from .dynamo_index import DynamoIndex

        return DynamoIndex.from_config(config)
    raise NotImplementedError(f"Unsupported metadata index backend: {config.backend}")


def build_object_store(config: ObjectStoreConfig) -> ObjectStore:
    if config.backend == "in-memory":
        return InMemoryObjectStore()
    if config.backend == "s3":
        from .s3_store import S3ObjectStore

        return S3ObjectStore.from_config(config)
    raise NotImplementedError(f"Unsupported object store backend: {config.backend}")
