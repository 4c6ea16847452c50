"""File lifecycle state machine: ACTIVE -> TRASH -> PURGED, and back to ACTIVE."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from ..domain import keys
from ..domain.paths import ROOT, normalize_folder_path, normalize_full_path, split_full_path
from ..domain.timestamps import Clock, plus_days
from ..errors import ConflictError, NotFoundError, TransientError, ValidationError
from ..messaging import InMemoryBus, MessageEnvelope
from ..models import DownloadGrant, FileNode, FileState, FolderTrashResult, TransitionResult
from .base import BaseService
from .consistency import ObjectConsistencyLayer
from .metadata_service import MetadataRepository

logger = logging.getLogger(__name__)

TRANSITIONS_TOPIC = "lifecycle.transitions"


class SweepDecision(str, Enum):
    PURGED = "purged"
    RETAINED = "retained"
    SKIPPED = "skipped"


@dataclass
class FileLifecycleService(BaseService):
    """Applies every user-visible transition in a fixed order.

    Each operation re-reads the stored record right before deciding, writes
    metadata conditionally and only then touches the object store.
    """

    repository: MetadataRepository
    consistency: ObjectConsistencyLayer
    bus: Optional[InMemoryBus] = None
    clock: Optional[Clock] = None

    # Uploads -------------------------------------------------------------

    def confirm_upload(
        self,
        owner_id: str,
        container_id: str,
        path: str,
        *,
        size: int,
        content_type: Optional[str] = None,
        fingerprint: str = "",
    ) -> TransitionResult:
        full_path = normalize_full_path(path)
        if size < 0:
            raise ValidationError("size must be non-negative")
        object_key = self.consistency.object_key_for(owner_id, container_id, full_path)
        if not self.consistency.exists(object_key):
            raise ConflictError(f"Uploaded object not found in storage: {full_path}")
        previous = self.repository.get_file(owner_id, container_id, full_path)
        node = self.repository.upsert_active_file(
            owner_id,
            container_id,
            full_path,
            size,
            content_type or "application/octet-stream",
            fingerprint,
            self.now(),
        )
        if previous is not None and previous.state == FileState.TRASH:
            try:
                self.consistency.clear_trash_tag(object_key)
            except TransientError as exc:
                logger.warning("Confirmed %s over a trashed record but could not clear its tag: %s", full_path, exc)
                self.emit_metric("lifecycle.tag_failures", 1, operation="confirm_upload")
        return self._publish("confirm_upload", node)

    def abort_upload(self, owner_id: str, container_id: str, object_key: str, upload_id: str) -> None:
        if keys.parse_object_key(owner_id, container_id, (object_key or "").strip()) is None:
            raise ValidationError("Invalid objectKey")
        if not (upload_id or "").strip():
            raise ValidationError("uploadId is required")
        self.consistency.abort_multipart_session(object_key.strip(), upload_id.strip())

    # Trash ---------------------------------------------------------------

    def move_to_trash(self, owner_id: str, container_id: str, path: str) -> TransitionResult:
        full_path = normalize_full_path(path)
        record = self.repository.get_file(owner_id, container_id, full_path)
        if record is None or record.state != FileState.ACTIVE:
            raise NotFoundError(f"Active file not found: {full_path}")
        now = self.now()
        trashed = self._trash_record(record, now, self._deadline(now))
        return self._publish("move_to_trash", trashed)

    def trash_folder(self, owner_id: str, container_id: str, path: str) -> FolderTrashResult:
        folder_path = normalize_folder_path(path)
        if folder_path == ROOT:
            raise ValidationError("Root folder cannot be moved to trash")
        if self.repository.get_folder(owner_id, container_id, folder_path) is None:
            raise NotFoundError(f"Active folder not found: {folder_path}")
        now = self.now()
        deadline = self._deadline(now)

        trashed = 0
        for record in self.repository.list_by_state(owner_id, container_id, FileState.ACTIVE, folder_path):
            try:
                node = self._trash_record(record, now, deadline)
            except ConflictError:
                logger.info("Skipping %s: changed while trashing %s", record.full_path, folder_path)
                continue
            self._publish("move_to_trash", node)
            trashed += 1

        folders = self.repository.list_folders_under(owner_id, container_id, folder_path)
        for folder in sorted(folders, key=lambda item: item.folder_path.count("/"), reverse=True):
            self.repository.delete_folder(folder)

        self.emit_metric("lifecycle.folder_trashed", 1, container_id=container_id)
        return FolderTrashResult(
            folder_path=folder_path,
            flagged_for_delete_at=deadline,
            trashed_files=trashed,
            removed_folders=len(folders),
        )

    # Restore / purge -----------------------------------------------------

    def restore(self, owner_id: str, container_id: str, path: str) -> TransitionResult:
        full_path = normalize_full_path(path)
        record = self._require_trashed(owner_id, container_id, full_path)
        now = self.now()
        if not self.consistency.exists(record.object_key):
            purged = self.repository.update_state(record, FileState.PURGED, now)
            result = self._publish("restore_self_heal", purged)
            raise ConflictError(f"Object already purged from storage: {full_path}", result=result)

        _, file_name, _, folder_path = split_full_path(full_path)
        clashes = self.repository.find_files_named(owner_id, container_id, folder_path, file_name)
        if any(entry.child_id != record.file_node_id for entry in clashes):
            raise ConflictError(f"A file named {file_name} already exists in {folder_path}")

        restored = self.repository.update_state(record, FileState.ACTIVE, now)
        try:
            self.consistency.clear_trash_tag(restored.object_key)
        except TransientError as exc:
            logger.warning("Restored %s but could not clear trash tag: %s", full_path, exc)
            self.emit_metric("lifecycle.tag_failures", 1, operation="restore")
        return self._publish("restore", restored)

    def purge_now(self, owner_id: str, container_id: str, path: str) -> TransitionResult:
        full_path = normalize_full_path(path)
        record = self._require_trashed(owner_id, container_id, full_path)
        outcome = self.consistency.purge_all_versions(record.object_key)
        if not outcome.complete:
            raise ConflictError(
                f"Could not fully purge object versions for {full_path}",
                result=TransitionResult.from_node(record),
            )
        purged = self.repository.update_state(record, FileState.PURGED, self.now())
        return self._publish("purge_now", purged)

    def sweep_purge(
        self,
        owner_id: str,
        container_id: str,
        path: str,
        now: Optional[datetime] = None,
    ) -> Tuple[SweepDecision, Optional[TransitionResult]]:
        """Retire one expired TRASH record whose object is already gone.

        Records that are no longer TRASH, not yet due, or whose object still
        exists are left untouched.
        """
        now = now or self.now()
        record = self.repository.get_file(owner_id, container_id, path)
        if record is None or record.state != FileState.TRASH:
            return SweepDecision.SKIPPED, None
        if record.flagged_for_delete_at is None or record.flagged_for_delete_at > now:
            return SweepDecision.SKIPPED, None
        if self.consistency.exists(record.object_key):
            return SweepDecision.RETAINED, None
        try:
            purged = self.repository.update_state(record, FileState.PURGED, now)
        except ConflictError:
            logger.info("Sweep lost a race on %s; leaving it for the next run", record.full_path)
            return SweepDecision.SKIPPED, None
        return SweepDecision.PURGED, self._publish("sweep_purge", purged)

    # Downloads -----------------------------------------------------------

    def authorize_download(self, owner_id: str, container_id: str, path: str) -> DownloadGrant:
        full_path = normalize_full_path(path)
        record = self.repository.get_file(owner_id, container_id, full_path)
        if record is None or record.state != FileState.ACTIVE:
            raise NotFoundError(f"Downloadable file not found: {full_path}")
        if not self.consistency.exists(record.object_key):
            raise ConflictError(f"Object not found in storage: {full_path}")
        return DownloadGrant(
            full_path=record.full_path,
            object_key=record.object_key,
            content_type=record.content_type,
            size=record.size,
            fingerprint=record.fingerprint,
        )

    # Helpers -------------------------------------------------------------

    def _deadline(self, now: datetime) -> datetime:
        return plus_days(now, self.config.lifecycle.trash_retention_days)

    def _require_trashed(self, owner_id: str, container_id: str, full_path: str) -> FileNode:
        record = self.repository.get_file(owner_id, container_id, full_path)
        if record is None or record.state != FileState.TRASH:
            raise NotFoundError(f"Trashed file not found: {full_path}")
        return record

    def _trash_record(self, record: FileNode, now: datetime, deadline: datetime) -> FileNode:
        trashed = self.repository.update_state(record, FileState.TRASH, now, deadline)
        try:
            self.consistency.tag_as_trash(trashed.object_key)
        except TransientError as exc:
            logger.warning("Trashed %s but could not tag its object: %s", trashed.full_path, exc)
            self.emit_metric("lifecycle.tag_failures", 1, operation="move_to_trash")
        return trashed

    def _publish(self, operation: str, node: FileNode) -> TransitionResult:
        result = TransitionResult.from_node(node)
        self.emit_metric(f"lifecycle.{operation}", 1, container_id=node.container_id)
        if self.bus:
            payload = result.to_payload()
            payload.update(operation=operation, ownerId=node.owner_id, containerId=node.container_id)
            self.bus.publish(MessageEnvelope(topic=TRANSITIONS_TOPIC, payload=payload))
        return result
