"""Object store contract and an in-process versioned implementation."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from ..errors import TransientError


@dataclass
class ObjectVersion:
    version_id: str
    size: int
    etag: Optional[str] = None
    is_delete_marker: bool = False


class ObjectStore:
    """Interface for a versioned blob store keyed by string."""

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def get_tags(self, key: str) -> Dict[str, str]:
        raise NotImplementedError

    def put_tags(self, key: str, tags: Dict[str, str]) -> None:
        raise NotImplementedError

    def delete_tags(self, key: str) -> None:
        raise NotImplementedError

    def list_versions(self, key: str) -> List[ObjectVersion]:
        """Every stored version of ``key`` including delete markers."""
        raise NotImplementedError

    def delete_versions(self, key: str, version_ids: List[str]) -> List[str]:
        """Delete the given versions; return the ids that could not be removed."""
        raise NotImplementedError

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        """Cancel an in-flight upload; unknown uploads are ignored."""
        raise NotImplementedError


@dataclass
class _StoredObject:
    versions: List[ObjectVersion] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)


class InMemoryObjectStore(ObjectStore):
    """Versioned bucket emulation for local runs and tests.

    ``failing_operations`` names operations that raise :class:`TransientError`
    and ``locked_keys`` names keys whose versions refuse deletion, which is how
    tests reproduce an unavailable or partially purgeable store.
    """

    def __init__(self) -> None:
        self._objects: Dict[str, _StoredObject] = {}
        self._uploads: Dict[str, str] = {}
        self._lock = threading.Lock()
        self.failing_operations: Set[str] = set()
        self.locked_keys: Set[str] = set()
        self.aborted_uploads: List[str] = []

    # Helpers used by tests and local tooling ------------------------------

    def put_object(self, key: str, data: bytes = b"", *, etag: Optional[str] = None) -> str:
        version = ObjectVersion(version_id=uuid.uuid4().hex, size=len(data), etag=etag)
        with self._lock:
            self._objects.setdefault(key, _StoredObject()).versions.append(version)
        return version.version_id

    def delete_object(self, key: str) -> None:
        """Out-of-band delete: leaves a delete marker like a versioned bucket."""
        with self._lock:
            stored = self._objects.setdefault(key, _StoredObject())
            stored.versions.append(ObjectVersion(version_id=uuid.uuid4().hex, size=0, is_delete_marker=True))

    def create_multipart_upload(self, key: str) -> str:
        upload_id = uuid.uuid4().hex
        with self._lock:
            self._uploads[upload_id] = key
        return upload_id

    def has_upload(self, upload_id: str) -> bool:
        with self._lock:
            return upload_id in self._uploads

    # ObjectStore contract ---------------------------------------------------

    def exists(self, key: str) -> bool:
        self._check("exists")
        with self._lock:
            stored = self._objects.get(key)
            return bool(stored and stored.versions and not stored.versions[-1].is_delete_marker)

    def get_tags(self, key: str) -> Dict[str, str]:
        self._check("get_tags")
        with self._lock:
            return dict(self._require(key).tags)

    def put_tags(self, key: str, tags: Dict[str, str]) -> None:
        self._check("put_tags")
        with self._lock:
            self._require(key).tags = dict(tags)

    def delete_tags(self, key: str) -> None:
        self._check("delete_tags")
        with self._lock:
            self._require(key).tags = {}

    def list_versions(self, key: str) -> List[ObjectVersion]:
        self._check("list_versions")
        with self._lock:
            stored = self._objects.get(key)
            return list(stored.versions) if stored else []

    def delete_versions(self, key: str, version_ids: List[str]) -> List[str]:
        self._check("delete_versions")
        if key in self.locked_keys:
            return list(version_ids)
        with self._lock:
            stored = self._objects.get(key)
            if stored is None:
                return []
            doomed = set(version_ids)
            stored.versions = [version for version in stored.versions if version.version_id not in doomed]
            if not stored.versions:
                self._objects.pop(key, None)
        return []

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        self._check("abort_multipart_upload")
        with self._lock:
            if self._uploads.get(upload_id) == key:
                self._uploads.pop(upload_id)
                self.aborted_uploads.append(upload_id)

    def _require(self, key: str) -> _StoredObject:
        stored = self._objects.get(key)
        if stored is None or not stored.versions or stored.versions[-1].is_delete_marker:
            raise TransientError(f"Object {key} not found while updating tags")
        return stored

    def _check(self, operation: str) -> None:
        if operation in self.failing_operations:
            raise TransientError(f"Object store operation {operation} unavailable")
