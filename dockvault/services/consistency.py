"""Object-store side of every lifecycle transition."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..domain import keys
from ..domain.timestamps import Clock
from ..models import PurgeResult
from ..storage.object_store import InMemoryObjectStore, ObjectStore
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass
class ObjectConsistencyLayer(BaseService):
    """Existence checks, trash tagging and version purges for file objects.

    Every store failure surfaces as :class:`~dockvault.errors.TransientError`;
    nothing here trusts metadata, callers re-check existence instead.
    """

    store: ObjectStore = None
    clock: Optional[Clock] = None

    def __post_init__(self) -> None:
        if self.store is None:
            self.store = InMemoryObjectStore()

    @staticmethod
    def object_key_for(owner_id: str, container_id: str, path: str) -> str:
        return keys.object_key(owner_id, container_id, path)

    def exists(self, key: str) -> bool:
        return self.store.exists(key)

    def tag_as_trash(self, key: str) -> None:
        policy = self.config.lifecycle
        tags = self.store.get_tags(key)
        tags[policy.trash_tag_key] = policy.trash_tag_value
        self.store.put_tags(key, tags)
        self.emit_metric("objects.tagged_trash", 1)

    def clear_trash_tag(self, key: str) -> None:
        tag_key = self.config.lifecycle.trash_tag_key
        tags = self.store.get_tags(key)
        if tag_key not in tags:
            return
        tags.pop(tag_key)
        if tags:
            self.store.put_tags(key, tags)
        else:
            self.store.delete_tags(key)
        self.emit_metric("objects.trash_tag_cleared", 1)

    def purge_all_versions(self, key: str) -> PurgeResult:
        """Delete every version and delete marker, then count what is left."""
        versions = self.store.list_versions(key)
        if not versions:
            return PurgeResult(discovered=0, deleted=0, remaining=0)
        failed = self.store.delete_versions(key, [version.version_id for version in versions])
        remaining = len(self.store.list_versions(key))
        result = PurgeResult(
            discovered=len(versions),
            deleted=len(versions) - len(failed),
            remaining=remaining,
        )
        self.emit_metric("objects.versions_purged", result.deleted)
        if not result.complete:
            logger.warning(
                "Purge of %s incomplete: %d of %d versions remain",
                key,
                result.remaining,
                result.discovered,
            )
        return result

    def abort_multipart_session(self, key: str, session_id: str) -> None:
        self.store.abort_multipart_upload(key, session_id)
        self.emit_event("multipart_aborted", key=key, session_id=session_id)
