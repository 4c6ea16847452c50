"""API gateway façade for handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Union

from ..errors import NotFoundError, ValidationError
from ..messaging import InMemoryBus, MessageEnvelope
from ..models import (
    Container,
    ContainerKind,
    DirectoryEntry,
    DownloadGrant,
    FileNode,
    FileState,
    FolderResult,
    FolderTrashResult,
    TransitionResult,
)
from .activity_service import ActivityService
from .cache import TTLCache
from .healing_service import ReconciliationSweep, SweepReport
from .lifecycle_service import FileLifecycleService
from .metadata_service import MetadataRepository

CONTAINERS_TOPIC = "containers.created"


@dataclass
class APIGateway:
    repository: MetadataRepository
    lifecycle: FileLifecycleService
    sweep: ReconciliationSweep
    activity_service: ActivityService
    container_cache: TTLCache
    bus: Optional[InMemoryBus] = None

    # Containers ------------------------------------------------------------

    def create_container(self, owner_id: str, name: str, kind: Union[str, ContainerKind] = ContainerKind.VAULT) -> Container:
        container = self.repository.create_container(owner_id, name, kind=_parse_kind(kind))
        self.container_cache.set((owner_id, container.container_id), container)
        if self.bus:
            self.bus.publish(
                MessageEnvelope(
                    topic=CONTAINERS_TOPIC,
                    payload={
                        "ownerId": owner_id,
                        "containerId": container.container_id,
                        "kind": container.kind.value,
                    },
                )
            )
        return container

    def list_containers(self, owner_id: str, *, kind: Optional[str] = None) -> List[Container]:
        return self.repository.list_containers(owner_id, kind=_parse_kind(kind) if kind else None)

    def require_container(self, owner_id: str, container_id: str) -> Container:
        cache_key = (owner_id, container_id)
        cached = self.container_cache.get(cache_key)
        if cached is not None:
            return cached
        container = self.repository.get_container(owner_id, container_id)
        if container is None:
            raise NotFoundError(f"Container not found: {container_id}")
        self.container_cache.set(cache_key, container)
        return container

    # Folders & listings ----------------------------------------------------

    def create_folder(self, owner_id: str, container_id: str, path: str) -> FolderResult:
        self.require_container(owner_id, container_id)
        return self.repository.upsert_folder(owner_id, container_id, path, self.lifecycle.now())

    def list_children(self, owner_id: str, container_id: str, folder_node_id: str) -> List[DirectoryEntry]:
        self.require_container(owner_id, container_id)
        return self.repository.list_children_of(owner_id, container_id, folder_node_id)

    def list_files(self, owner_id: str, container_id: str, prefix: Optional[str] = None) -> List[FileNode]:
        self.require_container(owner_id, container_id)
        return self.repository.list_by_state(owner_id, container_id, FileState.ACTIVE, prefix)

    def list_trash(self, owner_id: str, container_id: str, prefix: Optional[str] = None) -> List[FileNode]:
        self.require_container(owner_id, container_id)
        return self.repository.list_by_state(owner_id, container_id, FileState.TRASH, prefix)

    def list_purged(self, owner_id: str, container_id: str, prefix: Optional[str] = None) -> List[FileNode]:
        self.require_container(owner_id, container_id)
        return self.repository.list_by_state(owner_id, container_id, FileState.PURGED, prefix)

    # Upload lifecycle ------------------------------------------------------

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
        self.require_container(owner_id, container_id)
        return self.lifecycle.confirm_upload(
            owner_id,
            container_id,
            path,
            size=size,
            content_type=content_type,
            fingerprint=fingerprint,
        )

    def abort_upload(self, owner_id: str, container_id: str, object_key: str, upload_id: str) -> None:
        self.require_container(owner_id, container_id)
        self.lifecycle.abort_upload(owner_id, container_id, object_key, upload_id)

    # Trash lifecycle -------------------------------------------------------

    def trash(
        self,
        owner_id: str,
        container_id: str,
        path: str,
        *,
        target_type: str = "file",
    ) -> Union[TransitionResult, FolderTrashResult]:
        self.require_container(owner_id, container_id)
        if target_type == "file":
            return self.lifecycle.move_to_trash(owner_id, container_id, path)
        if target_type == "folder":
            return self.lifecycle.trash_folder(owner_id, container_id, path)
        raise ValidationError(f"Unknown target type: {target_type!r}")

    def restore(self, owner_id: str, container_id: str, path: str) -> TransitionResult:
        self.require_container(owner_id, container_id)
        return self.lifecycle.restore(owner_id, container_id, path)

    def purge(self, owner_id: str, container_id: str, path: str) -> TransitionResult:
        self.require_container(owner_id, container_id)
        return self.lifecycle.purge_now(owner_id, container_id, path)

    def authorize_download(self, owner_id: str, container_id: str, path: str) -> DownloadGrant:
        self.require_container(owner_id, container_id)
        return self.lifecycle.authorize_download(owner_id, container_id, path)

    # Operations ------------------------------------------------------------

    def run_sweep(self) -> SweepReport:
        return self.sweep.run()

    def list_activity(
        self,
        owner_id: Optional[str] = None,
        limit: int = 50,
        *,
        include_system: bool = False,
    ) -> List[MessageEnvelope]:
        return self.activity_service.recent(owner_id=owner_id, include_system=include_system, limit=limit)


def _parse_kind(kind: Union[str, ContainerKind]) -> ContainerKind:
    if isinstance(kind, ContainerKind):
        return kind
    try:
        return ContainerKind(str(kind).strip().upper())
    except ValueError as exc:
        raise ValidationError(f"Unknown container kind: {kind!r}") from exc
