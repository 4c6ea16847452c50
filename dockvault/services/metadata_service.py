"""Metadata repository over the shared partitioned index."""

from __future__ import annotations

import dataclasses
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from ..domain import keys
from ..domain.paths import (
    ROOT,
    normalize_folder_path,
    normalize_full_path,
    normalize_node_name,
    split_folder_path,
    split_full_path,
)
from ..domain.timestamps import Clock, to_iso
from ..errors import ConditionFailedError, ConflictError, IntegrityError, ValidationError
from ..models import (
    Container,
    ContainerKind,
    DirectoryEntry,
    FileNode,
    FileState,
    FolderNode,
    FolderResult,
)
from ..storage.index import SECONDARY_INDEX, InMemoryIndex, Item, MetadataIndex
from .base import BaseService

logger = logging.getLogger(__name__)

_LEGAL_TRANSITIONS = {
    (FileState.ACTIVE, FileState.TRASH),
    (FileState.TRASH, FileState.ACTIVE),
    (FileState.TRASH, FileState.PURGED),
}


@dataclass
class MetadataRepository(BaseService):
    """Read/write operations scoped to one (owner, container) pair per call."""

    index: MetadataIndex = None
    clock: Optional[Clock] = None

    def __post_init__(self) -> None:
        if self.index is None:
            self.index = InMemoryIndex()

    # Containers -------------------------------------------------------------

    def create_container(
        self,
        owner_id: str,
        name: str,
        *,
        kind: ContainerKind = ContainerKind.VAULT,
        container_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Container:
        cleaned = (name or "").strip()
        if not cleaned:
            raise ValidationError("Container name cannot be empty")
        container = Container(
            owner_id=owner_id,
            container_id=container_id or uuid.uuid4().hex,
            name=cleaned,
            kind=kind,
            created_at=now or self.now(),
        )
        try:
            self.index.put(container.to_item(), if_absent=True)
        except ConditionFailedError as exc:
            raise ConflictError(f"Container {container.container_id} already exists") from exc
        self.emit_event("container_created", owner_id=owner_id, container_id=container.container_id)
        return container

    def get_container(self, owner_id: str, container_id: str) -> Optional[Container]:
        item = self.index.get(keys.container_pk(owner_id), keys.container_sk(container_id))
        return Container.from_item(item) if item else None

    def list_containers(self, owner_id: str, *, kind: Optional[ContainerKind] = None) -> List[Container]:
        items = self.index.query_all(keys.container_pk(owner_id), prefix=keys.CONTAINER_SK_PREFIX)
        containers = [Container.from_item(item) for item in items if item.get("type") == "CONTAINER"]
        if kind is not None:
            containers = [container for container in containers if container.kind == kind]
        return containers

    def scan_all_containers(self, *, start_key: Optional[Item] = None) -> Iterator[Container]:
        """Lazily walk every container system-wide, page by page."""
        page_size = self.config.index.page_size
        for item in self.index.scan_all(item_type="CONTAINER", page_size=page_size, start_key=start_key):
            yield Container.from_item(item)

    # Files ------------------------------------------------------------------

    def get_file(self, owner_id: str, container_id: str, path: str) -> Optional[FileNode]:
        full_path = normalize_full_path(path)
        item = self.index.get(keys.partition_key(owner_id, container_id), keys.file_sk(full_path))
        return FileNode.from_item(item) if item else None

    def upsert_active_file(
        self,
        owner_id: str,
        container_id: str,
        path: str,
        size: int,
        content_type: str,
        fingerprint: str,
        now: datetime,
    ) -> FileNode:
        full_path, file_name, _, folder_path = split_full_path(path)
        parent_id = self.ensure_folder_chain(owner_id, container_id, folder_path, now)
        current = self.get_file(owner_id, container_id, full_path)
        if current is not None and current.state == FileState.PURGED:
            self._archive_tombstone(current)
            current = None

        node = FileNode(
            owner_id=owner_id,
            container_id=container_id,
            file_node_id=current.file_node_id if current else uuid.uuid4().hex,
            full_path=full_path,
            size=int(size),
            content_type=content_type,
            fingerprint=fingerprint,
            object_key=keys.object_key(owner_id, container_id, full_path),
            state=FileState.ACTIVE,
            created_at=current.created_at if current else now,
            updated_at=now,
            parent_folder_node_id=parent_id,
        )
        self.index.put(node.to_item())
        self._put_directory_entry(
            owner_id,
            container_id,
            parent_id,
            keys.KIND_FILE,
            node.file_node_id,
            file_name,
            full_path,
            created_at=node.created_at,
            updated_at=now,
        )
        self.emit_event("file_upserted", container_id=container_id, full_path=full_path)
        return node

    def update_state(
        self,
        record: FileNode,
        new_state: FileState,
        now: datetime,
        deadline: Optional[datetime] = None,
    ) -> FileNode:
        """Conditionally move ``record`` to ``new_state``.

        The write only lands if the stored record still holds the state and
        node id that ``record`` was read with; otherwise ConflictError.
        """
        if record.state == FileState.PURGED:
            raise IntegrityError(f"{record.full_path} is PURGED; no transition leaves PURGED")
        if (record.state, new_state) not in _LEGAL_TRANSITIONS:
            raise IntegrityError(f"Illegal transition {record.state.value} -> {new_state.value}")
        if new_state == FileState.TRASH and deadline is None:
            raise IntegrityError("Moving to TRASH requires a deletion deadline")
        if new_state != FileState.TRASH and deadline is not None:
            raise IntegrityError(f"A deletion deadline is only valid for TRASH, not {new_state.value}")

        if new_state == FileState.TRASH:
            updated = dataclasses.replace(
                record,
                state=new_state,
                updated_at=now,
                deleted_at=now,
                flagged_for_delete_at=deadline,
                purged_at=None,
            )
        elif new_state == FileState.ACTIVE:
            _, _, _, folder_path = split_full_path(record.full_path)
            parent_id = self.ensure_folder_chain(record.owner_id, record.container_id, folder_path, now)
            updated = dataclasses.replace(
                record,
                state=new_state,
                updated_at=now,
                deleted_at=None,
                flagged_for_delete_at=None,
                purged_at=None,
                parent_folder_node_id=parent_id,
            )
        else:
            updated = dataclasses.replace(
                record,
                state=new_state,
                updated_at=now,
                flagged_for_delete_at=None,
                purged_at=now,
            )

        try:
            self.index.put(
                updated.to_item(),
                expect={"state": record.state.value, "fileNodeId": record.file_node_id},
            )
        except ConditionFailedError as exc:
            raise ConflictError(
                f"{record.full_path} changed concurrently; expected {record.state.value}"
            ) from exc

        if new_state == FileState.ACTIVE:
            self._put_directory_entry(
                updated.owner_id,
                updated.container_id,
                updated.parent_folder_node_id,
                keys.KIND_FILE,
                updated.file_node_id,
                updated.name,
                updated.full_path,
                created_at=updated.created_at,
                updated_at=now,
            )
        else:
            self._delete_directory_entry(
                updated.owner_id,
                updated.container_id,
                record.parent_folder_node_id,
                keys.KIND_FILE,
                updated.name,
                updated.file_node_id,
            )
        self.emit_event(
            "file_state_changed",
            container_id=record.container_id,
            full_path=record.full_path,
            state=new_state.value,
        )
        return updated

    def list_by_state(
        self,
        owner_id: str,
        container_id: str,
        state: FileState,
        path_prefix: Optional[str] = None,
    ) -> List[FileNode]:
        folder_prefix = self._folder_prefix(path_prefix)
        items = self.index.query_all(
            keys.partition_key(owner_id, container_id),
            prefix=keys.state_prefix(state.value, folder_prefix),
            index=SECONDARY_INDEX,
        )
        nodes = [FileNode.from_item(item) for item in items if item.get("type") == "FILE"]
        if folder_prefix:
            nodes = [node for node in nodes if node.full_path.startswith(folder_prefix)]
        return nodes

    def list_trash_due(self, owner_id: str, container_id: str, now: datetime) -> List[FileNode]:
        items = self.index.query_all(
            keys.partition_key(owner_id, container_id),
            between=keys.trash_due_range(now),
            index=SECONDARY_INDEX,
        )
        return [FileNode.from_item(item) for item in items if item.get("type") == "FILE"]

    # Folders ----------------------------------------------------------------

    def get_folder(self, owner_id: str, container_id: str, path: str) -> Optional[FolderNode]:
        folder_path = normalize_folder_path(path)
        if folder_path == ROOT:
            return None
        item = self.index.get(keys.partition_key(owner_id, container_id), keys.folder_sk(folder_path))
        return FolderNode.from_item(item) if item else None

    def upsert_folder(self, owner_id: str, container_id: str, path: str, now: datetime) -> FolderResult:
        folder_path = normalize_folder_path(path)
        if folder_path == ROOT:
            raise ValidationError("Root folder cannot be created")
        result: Optional[FolderResult] = None
        for result in self._walk_folder_chain(owner_id, container_id, folder_path, now):
            pass
        if result is None:
            raise IntegrityError(f"Folder chain for {folder_path} produced no folder")
        return result

    def ensure_folder_chain(self, owner_id: str, container_id: str, path: str, now: datetime) -> str:
        """Create missing folders along ``path`` and return the leaf folder node id."""
        folder_path = normalize_folder_path(path)
        if folder_path == ROOT:
            return keys.ROOT_FOLDER_NODE_ID
        return self.upsert_folder(owner_id, container_id, folder_path, now).folder.folder_node_id

    def list_folders_under(self, owner_id: str, container_id: str, path: str) -> List[FolderNode]:
        """The folder at ``path`` and every folder below it."""
        folder_path = normalize_folder_path(path)
        items = self.index.query_all(
            keys.partition_key(owner_id, container_id),
            prefix=keys.folder_sk(folder_path),
        )
        folders = [FolderNode.from_item(item) for item in items if item.get("type") == "FOLDER"]
        return [
            folder for folder in folders
            if folder.folder_path == folder_path or folder.folder_path.startswith(folder_path + "/")
        ]

    def delete_folder(self, folder: FolderNode) -> None:
        self._delete_directory_entry(
            folder.owner_id,
            folder.container_id,
            folder.parent_folder_node_id,
            keys.KIND_FOLDER,
            folder.name,
            folder.folder_node_id,
        )
        self.index.delete(keys.partition_key(folder.owner_id, folder.container_id), keys.folder_sk(folder.folder_path))
        self.emit_event("folder_removed", container_id=folder.container_id, folder_path=folder.folder_path)

    def list_children_of(self, owner_id: str, container_id: str, folder_node_id: str) -> List[DirectoryEntry]:
        """Immediate children of a folder node: folders first, then files, by name."""
        items = self.index.query_all(
            keys.partition_key(owner_id, container_id),
            prefix=keys.directory_prefix(folder_node_id),
        )
        return [DirectoryEntry.from_item(item) for item in items if item.get("type") == "DIRECTORY"]

    def find_files_named(self, owner_id: str, container_id: str, folder_path: str, name: str) -> List[DirectoryEntry]:
        """File rows in ``folder_path`` whose name collides with ``name`` once normalized."""
        folder_path = normalize_folder_path(folder_path)
        if folder_path == ROOT:
            parent_id = keys.ROOT_FOLDER_NODE_ID
        else:
            folder = self.get_folder(owner_id, container_id, folder_path)
            if folder is None:
                return []
            parent_id = folder.folder_node_id
        normalized = normalize_node_name(name)
        prefix = f"{keys.directory_prefix(parent_id, keys.KIND_FILE)}{normalized}#"
        items = self.index.query_all(keys.partition_key(owner_id, container_id), prefix=prefix)
        entries = [DirectoryEntry.from_item(item) for item in items if item.get("type") == "DIRECTORY"]
        return [entry for entry in entries if entry.normalized_name == normalized]

    # Internal helpers -------------------------------------------------------

    def _walk_folder_chain(self, owner_id: str, container_id: str, folder_path: str, now: datetime):
        parent_id = keys.ROOT_FOLDER_NODE_ID
        current_path = ""
        for segment in split_folder_path(folder_path):
            current_path = f"{current_path}/{segment}"
            existing = self.get_folder(owner_id, container_id, current_path)
            if existing is not None:
                parent_id = existing.folder_node_id
                yield FolderResult(folder=existing, created=False)
                continue
            folder = FolderNode(
                owner_id=owner_id,
                container_id=container_id,
                folder_path=current_path,
                folder_node_id=uuid.uuid4().hex,
                parent_folder_node_id=parent_id,
                name=segment,
                created_at=now,
                updated_at=now,
            )
            try:
                self.index.put(folder.to_item(), if_absent=True)
            except ConditionFailedError:
                # Lost a race with a concurrent creator; converge on its node.
                winner = self.get_folder(owner_id, container_id, current_path)
                if winner is None:
                    raise
                parent_id = winner.folder_node_id
                yield FolderResult(folder=winner, created=False)
                continue
            self._put_directory_entry(
                owner_id,
                container_id,
                parent_id,
                keys.KIND_FOLDER,
                folder.folder_node_id,
                segment,
                current_path,
                created_at=now,
                updated_at=now,
            )
            self.emit_event("folder_created", container_id=container_id, folder_path=current_path)
            parent_id = folder.folder_node_id
            yield FolderResult(folder=folder, created=True)

    def _put_directory_entry(
        self,
        owner_id: str,
        container_id: str,
        parent_id: str,
        kind: str,
        child_id: str,
        name: str,
        full_path: str,
        *,
        created_at: datetime,
        updated_at: datetime,
    ) -> None:
        entry = DirectoryEntry(
            owner_id=owner_id,
            container_id=container_id,
            parent_folder_node_id=parent_id,
            kind=kind,
            child_id=child_id,
            name=name,
            normalized_name=normalize_node_name(name),
            full_path=full_path,
            created_at=created_at,
            updated_at=updated_at,
        )
        self.index.put(entry.to_item())

    def _delete_directory_entry(
        self,
        owner_id: str,
        container_id: str,
        parent_id: str,
        kind: str,
        name: str,
        child_id: str,
    ) -> None:
        self.index.delete(
            keys.partition_key(owner_id, container_id),
            keys.directory_sk(parent_id, kind, normalize_node_name(name), child_id),
        )

    def _archive_tombstone(self, tombstone: FileNode) -> None:
        """Re-key a PURGED record so a new upload can take over its path."""
        item = tombstone.to_item()
        stamp = to_iso(tombstone.purged_at or tombstone.updated_at)
        item["SK"] = f"T#{tombstone.full_path}#{stamp}#{tombstone.file_node_id}"
        try:
            self.index.put(item, if_absent=True)
        except ConditionFailedError:
            logger.debug("Tombstone for %s already archived", tombstone.full_path)

    @staticmethod
    def _folder_prefix(path_prefix: Optional[str]) -> Optional[str]:
        if path_prefix is None:
            return None
        folder_path = normalize_folder_path(path_prefix)
        if folder_path == ROOT:
            return None
        return folder_path + "/"
