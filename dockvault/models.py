"""Data models shared across the storage core services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .domain import keys
from .domain.timestamps import parse_iso, to_iso


class FileState(str, Enum):
    ACTIVE = keys.STATE_ACTIVE
    TRASH = keys.STATE_TRASH
    PURGED = keys.STATE_PURGED


class ContainerKind(str, Enum):
    VAULT = "VAULT"
    DOCKSPACE = "DOCKSPACE"


def _opt_iso(value: Optional[datetime]) -> Optional[str]:
    return to_iso(value) if value is not None else None


def _opt_parse(value: Optional[str]) -> Optional[datetime]:
    return parse_iso(value) if value else None


@dataclass
class Container:
    owner_id: str
    container_id: str
    name: str
    kind: ContainerKind
    created_at: datetime

    def to_item(self) -> Dict[str, Any]:
        return {
            "PK": keys.container_pk(self.owner_id),
            "SK": keys.container_sk(self.container_id),
            "type": "CONTAINER",
            "userId": self.owner_id,
            "containerId": self.container_id,
            "name": self.name,
            "kind": self.kind.value,
            "createdAt": to_iso(self.created_at),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "Container":
        return cls(
            owner_id=item["userId"],
            container_id=item["containerId"],
            name=item["name"],
            kind=ContainerKind(item.get("kind", ContainerKind.VAULT.value)),
            created_at=parse_iso(item["createdAt"]),
        )


@dataclass
class FolderNode:
    owner_id: str
    container_id: str
    folder_path: str
    folder_node_id: str
    parent_folder_node_id: str
    name: str
    created_at: datetime
    updated_at: datetime

    def to_item(self) -> Dict[str, Any]:
        return {
            "PK": keys.partition_key(self.owner_id, self.container_id),
            "SK": keys.folder_sk(self.folder_path),
            "type": "FOLDER",
            "userId": self.owner_id,
            "containerId": self.container_id,
            "folderPath": self.folder_path,
            "folderNodeId": self.folder_node_id,
            "parentFolderNodeId": self.parent_folder_node_id,
            "name": self.name,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "FolderNode":
        return cls(
            owner_id=item["userId"],
            container_id=item["containerId"],
            folder_path=item["folderPath"],
            folder_node_id=item["folderNodeId"],
            parent_folder_node_id=item["parentFolderNodeId"],
            name=item["name"],
            created_at=parse_iso(item["createdAt"]),
            updated_at=parse_iso(item["updatedAt"]),
        )


@dataclass
class FileNode:
    owner_id: str
    container_id: str
    file_node_id: str
    full_path: str
    size: int
    content_type: str
    fingerprint: str
    object_key: str
    state: FileState
    created_at: datetime
    updated_at: datetime
    parent_folder_node_id: str = keys.ROOT_FOLDER_NODE_ID
    deleted_at: Optional[datetime] = None
    flagged_for_delete_at: Optional[datetime] = None
    purged_at: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.full_path.rsplit("/", 1)[-1]

    def to_item(self) -> Dict[str, Any]:
        item: Dict[str, Any] = {
            "PK": keys.partition_key(self.owner_id, self.container_id),
            "SK": keys.file_sk(self.full_path),
            "type": "FILE",
            "userId": self.owner_id,
            "containerId": self.container_id,
            "fileNodeId": self.file_node_id,
            "fullPath": self.full_path,
            "parentFolderNodeId": self.parent_folder_node_id,
            "size": int(self.size),
            "contentType": self.content_type,
            "etag": self.fingerprint,
            "s3Key": self.object_key,
            "state": self.state.value,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "GSI1PK": keys.partition_key(self.owner_id, self.container_id),
            "GSI1SK": keys.state_key_for(self.state.value, self.full_path, self.flagged_for_delete_at).encode(),
        }
        for attr, value in (
            ("deletedAt", self.deleted_at),
            ("flaggedForDeleteAt", self.flagged_for_delete_at),
            ("purgedAt", self.purged_at),
        ):
            if value is not None:
                item[attr] = to_iso(value)
        return item

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "FileNode":
        return cls(
            owner_id=item["userId"],
            container_id=item["containerId"],
            file_node_id=item["fileNodeId"],
            full_path=item["fullPath"],
            size=int(item.get("size", 0)),
            content_type=item.get("contentType", "application/octet-stream"),
            fingerprint=item.get("etag", ""),
            object_key=item["s3Key"],
            state=FileState(item["state"]),
            created_at=parse_iso(item["createdAt"]),
            updated_at=parse_iso(item["updatedAt"]),
            parent_folder_node_id=item.get("parentFolderNodeId", keys.ROOT_FOLDER_NODE_ID),
            deleted_at=_opt_parse(item.get("deletedAt")),
            flagged_for_delete_at=_opt_parse(item.get("flaggedForDeleteAt")),
            purged_at=_opt_parse(item.get("purgedAt")),
        )


@dataclass
class DirectoryEntry:
    owner_id: str
    container_id: str
    parent_folder_node_id: str
    kind: str
    child_id: str
    name: str
    normalized_name: str
    full_path: str
    created_at: datetime
    updated_at: datetime

    @property
    def is_folder(self) -> bool:
        return self.kind == keys.KIND_FOLDER

    def to_item(self) -> Dict[str, Any]:
        return {
            "PK": keys.partition_key(self.owner_id, self.container_id),
            "SK": keys.directory_sk(self.parent_folder_node_id, self.kind, self.normalized_name, self.child_id),
            "type": "DIRECTORY",
            "userId": self.owner_id,
            "containerId": self.container_id,
            "parentFolderNodeId": self.parent_folder_node_id,
            "childType": self.kind,
            "childId": self.child_id,
            "name": self.name,
            "normalizedName": self.normalized_name,
            "fullPath": self.full_path,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "DirectoryEntry":
        return cls(
            owner_id=item["userId"],
            container_id=item["containerId"],
            parent_folder_node_id=item["parentFolderNodeId"],
            kind=item["childType"],
            child_id=item["childId"],
            name=item["name"],
            normalized_name=item["normalizedName"],
            full_path=item["fullPath"],
            created_at=parse_iso(item["createdAt"]),
            updated_at=parse_iso(item["updatedAt"]),
        )


@dataclass
class FolderResult:
    folder: FolderNode
    created: bool


@dataclass
class TransitionResult:
    """Minimum payload every front end must be able to render."""

    full_path: str
    state: FileState
    updated_at: datetime
    flagged_for_delete_at: Optional[datetime] = None
    purged_at: Optional[datetime] = None
    file_node_id: Optional[str] = None

    @classmethod
    def from_node(cls, node: FileNode) -> "TransitionResult":
        return cls(
            full_path=node.full_path,
            state=node.state,
            updated_at=node.updated_at,
            flagged_for_delete_at=node.flagged_for_delete_at,
            purged_at=node.purged_at,
            file_node_id=node.file_node_id,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "fullPath": self.full_path,
            "state": self.state.value,
            "updatedAt": to_iso(self.updated_at),
            "flaggedForDeleteAt": _opt_iso(self.flagged_for_delete_at),
            "purgedAt": _opt_iso(self.purged_at),
            "fileNodeId": self.file_node_id,
        }


@dataclass
class FolderTrashResult:
    folder_path: str
    flagged_for_delete_at: datetime
    trashed_files: int
    removed_folders: int


@dataclass
class DownloadGrant:
    full_path: str
    object_key: str
    content_type: str
    size: int
    fingerprint: str


@dataclass
class PurgeResult:
    discovered: int
    deleted: int
    remaining: int

    @property
    def complete(self) -> bool:
        return self.remaining == 0


@dataclass
class ObservabilityEvent:
    event_type: str
    message: str
    attributes: Optional[dict] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
