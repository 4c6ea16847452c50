"""FastAPI handler layer for the dockvault storage core."""

from __future__ import annotations

import logging
import os
import threading
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import DockvaultConfig
from ..domain.timestamps import to_iso
from ..errors import (
    ConflictError,
    DockvaultError,
    IntegrityError,
    NotFoundError,
    TransientError,
    ValidationError,
)
from ..models import Container, DirectoryEntry, FileNode, FolderResult, FolderTrashResult, TransitionResult
from ..runtime import DockvaultRuntime
from ..telemetry import configure_logging

_config = DockvaultConfig.from_env()
configure_logging(_config.observability.log_level)
runtime = DockvaultRuntime.bootstrap(_config)
logger = logging.getLogger(__name__)

_sweep_in_process = os.environ.get("DOCKVAULT_SWEEP_IN_PROCESS", "").strip().lower() in {"1", "true", "yes"}


@asynccontextmanager
async def _lifespan(app: FastAPI):
    runner = None
    thread = None
    if _sweep_in_process:
        runner = runtime.build_sweep_runner()
        thread = threading.Thread(target=runner.run_forever, name="dockvault-sweep", daemon=True)
        thread.start()
        logger.info("In-process sweep started (interval=%ss)", runner.interval_seconds)
    try:
        yield
    finally:
        if runner:
            runner.stop()
            thread.join(timeout=5)
            logger.info("In-process sweep stopped")


app = FastAPI(title="Dockvault API", version="0.1.0", lifespan=_lifespan)

_cors_origins = [origin.strip() for origin in os.environ.get("DOCKVAULT_CORS_ORIGINS", "*").split(",") if origin.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins or ["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


class AuthContext(BaseModel):
    user_id: str
    roles: list[str] = Field(default_factory=list)

    @property
    def is_ops_admin(self) -> bool:
        return "ops.admin" in {role.lower() for role in self.roles}


async def get_auth_context(request: Request) -> AuthContext:
    """Identity is verified upstream; the handler only reads the forwarded headers."""
    user_id = (request.headers.get("x-user-id") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail={"error": "Unauthorized"})
    roles = [part for part in (request.headers.get("x-user-roles") or "").replace(",", " ").split() if part]
    return AuthContext(user_id=user_id, roles=roles)


def _ensure_ops_admin(ctx: AuthContext) -> None:
    if not ctx.is_ops_admin:
        raise HTTPException(status_code=403, detail={"error": "ops.admin role required"})


@app.exception_handler(RequestValidationError)
async def _invalid_body(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": {"error": "Invalid request body"}})


def _http_error(exc: DockvaultError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail={"error": str(exc)})
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail={"error": str(exc)})
    if isinstance(exc, ConflictError):
        detail: dict[str, Any] = {"error": str(exc)}
        if isinstance(exc.result, TransitionResult):
            detail.update(exc.result.to_payload())
        return HTTPException(status_code=409, detail=detail)
    if isinstance(exc, TransientError):
        logger.warning("Store unavailable: %s", exc)
        return HTTPException(status_code=503, detail={"error": "Storage temporarily unavailable"})
    if isinstance(exc, IntegrityError):
        logger.error("Integrity violation: %s", exc)
    return HTTPException(status_code=500, detail={"error": "Internal error"})


class _CamelAliasModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ContainerCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    kind: str = Field(default="VAULT")


class FolderCreateRequest(_CamelAliasModel):
    folder_path: str = Field(alias="folderPath", min_length=1)


class UploadConfirmRequest(_CamelAliasModel):
    full_path: str = Field(alias="fullPath", min_length=2)
    size: int = Field(ge=0)
    content_type: Optional[str] = Field(default=None, alias="contentType")
    etag: str = Field(default="")


class UploadAbortRequest(_CamelAliasModel):
    object_key: str = Field(alias="objectKey", min_length=3)
    upload_id: str = Field(alias="uploadId", min_length=1)


class TrashRequest(_CamelAliasModel):
    full_path: str = Field(alias="fullPath", min_length=2)
    target_type: str = Field(default="file", alias="targetType", pattern="^(file|folder)$")


class PathRequest(_CamelAliasModel):
    full_path: str = Field(alias="fullPath", min_length=2)


# Containers -----------------------------------------------------------------


@app.post("/containers", status_code=201)
async def create_container(payload: ContainerCreateRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        container = runtime.api_gateway.create_container(ctx.user_id, payload.name, payload.kind)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return _serialize_container(container)


@app.get("/containers")
async def list_containers(kind: Optional[str] = None, ctx: AuthContext = Depends(get_auth_context)):
    try:
        containers = runtime.api_gateway.list_containers(ctx.user_id, kind=kind)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {"items": [_serialize_container(container) for container in containers]}


# Folders & listings ---------------------------------------------------------


@app.post("/containers/{container_id}/folders")
async def create_folder(
    container_id: str,
    payload: FolderCreateRequest,
    response: Response,
    ctx: AuthContext = Depends(get_auth_context),
):
    try:
        result = runtime.api_gateway.create_folder(ctx.user_id, container_id, payload.folder_path)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    response.status_code = 201 if result.created else 200
    return _serialize_folder(result)


@app.get("/containers/{container_id}/folders/{folder_node_id}/children")
async def list_folder_children(container_id: str, folder_node_id: str, ctx: AuthContext = Depends(get_auth_context)):
    try:
        entries = runtime.api_gateway.list_children(ctx.user_id, container_id, folder_node_id)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {
        "parentFolderNodeId": folder_node_id,
        "items": [_serialize_entry(entry) for entry in entries],
    }


@app.get("/containers/{container_id}/files")
async def list_files(container_id: str, prefix: Optional[str] = None, ctx: AuthContext = Depends(get_auth_context)):
    try:
        files = runtime.api_gateway.list_files(ctx.user_id, container_id, prefix)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {"items": [_serialize_file(node) for node in files]}


@app.get("/containers/{container_id}/trash")
async def list_trash(container_id: str, prefix: Optional[str] = None, ctx: AuthContext = Depends(get_auth_context)):
    try:
        files = runtime.api_gateway.list_trash(ctx.user_id, container_id, prefix)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {"items": [_serialize_file(node) for node in files]}


@app.get("/containers/{container_id}/purged")
async def list_purged(container_id: str, prefix: Optional[str] = None, ctx: AuthContext = Depends(get_auth_context)):
    try:
        files = runtime.api_gateway.list_purged(ctx.user_id, container_id, prefix)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {"items": [_serialize_file(node) for node in files]}


# Uploads --------------------------------------------------------------------


@app.post("/containers/{container_id}/uploads:confirm", status_code=201)
async def confirm_upload(container_id: str, payload: UploadConfirmRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        result = runtime.api_gateway.confirm_upload(
            ctx.user_id,
            container_id,
            payload.full_path,
            size=payload.size,
            content_type=payload.content_type,
            fingerprint=payload.etag,
        )
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return result.to_payload()


@app.post("/containers/{container_id}/uploads:abort")
async def abort_upload(container_id: str, payload: UploadAbortRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        runtime.api_gateway.abort_upload(ctx.user_id, container_id, payload.object_key, payload.upload_id)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {"aborted": True}


# Trash lifecycle ------------------------------------------------------------


@app.post("/containers/{container_id}/files:trash")
async def move_to_trash(container_id: str, payload: TrashRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        result = runtime.api_gateway.trash(
            ctx.user_id,
            container_id,
            payload.full_path,
            target_type=payload.target_type,
        )
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    if isinstance(result, FolderTrashResult):
        return _serialize_folder_trash(result)
    return {"targetType": "file", "trashedFilesCount": 1, **result.to_payload()}


@app.post("/containers/{container_id}/files:restore")
async def restore_file(container_id: str, payload: PathRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        result = runtime.api_gateway.restore(ctx.user_id, container_id, payload.full_path)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return result.to_payload()


@app.post("/containers/{container_id}/files:purge")
async def purge_file(container_id: str, payload: PathRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        result = runtime.api_gateway.purge(ctx.user_id, container_id, payload.full_path)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return result.to_payload()


@app.post("/containers/{container_id}/files:download")
async def authorize_download(container_id: str, payload: PathRequest, ctx: AuthContext = Depends(get_auth_context)):
    try:
        grant = runtime.api_gateway.authorize_download(ctx.user_id, container_id, payload.full_path)
    except DockvaultError as exc:
        raise _http_error(exc) from exc
    return {
        "fullPath": grant.full_path,
        "objectKey": grant.object_key,
        "fileName": grant.full_path.rsplit("/", 1)[-1],
        "contentType": grant.content_type,
        "size": grant.size,
        "etag": grant.fingerprint,
    }


# Operations -----------------------------------------------------------------


@app.post("/ops/sweep")
async def run_sweep(ctx: AuthContext = Depends(get_auth_context)):
    _ensure_ops_admin(ctx)
    report = runtime.api_gateway.run_sweep()
    return report.to_payload()


@app.get("/activity")
async def list_activity(limit: int = 50, ctx: AuthContext = Depends(get_auth_context)):
    events = runtime.api_gateway.list_activity(
        ctx.user_id,
        limit=max(0, min(limit, 200)),
        include_system=ctx.is_ops_admin,
    )
    return [{"topic": event.topic, "payload": event.payload} for event in events]


def _serialize_container(container: Container) -> dict:
    return {
        "containerId": container.container_id,
        "name": container.name,
        "kind": container.kind.value,
        "createdAt": to_iso(container.created_at),
    }


def _serialize_folder(result: FolderResult) -> dict:
    folder = result.folder
    return {
        "folderPath": folder.folder_path,
        "folderNodeId": folder.folder_node_id,
        "parentFolderNodeId": folder.parent_folder_node_id,
        "name": folder.name,
        "created": result.created,
    }


def _serialize_entry(entry: DirectoryEntry) -> dict:
    return {
        "childType": "folder" if entry.is_folder else "file",
        "childId": entry.child_id,
        "name": entry.name,
        "fullPath": entry.full_path,
        "updatedAt": to_iso(entry.updated_at),
    }


def _serialize_file(node: FileNode) -> dict:
    return {
        "fileNodeId": node.file_node_id,
        "fullPath": node.full_path,
        "name": node.name,
        "size": node.size,
        "contentType": node.content_type,
        "etag": node.fingerprint,
        "state": node.state.value,
        "createdAt": to_iso(node.created_at),
        "updatedAt": to_iso(node.updated_at),
        "deletedAt": to_iso(node.deleted_at) if node.deleted_at else None,
        "flaggedForDeleteAt": to_iso(node.flagged_for_delete_at) if node.flagged_for_delete_at else None,
        "purgedAt": to_iso(node.purged_at) if node.purged_at else None,
    }


def _serialize_folder_trash(result: FolderTrashResult) -> dict:
    return {
        "targetType": "folder",
        "folderPath": result.folder_path,
        "state": "TRASH",
        "flaggedForDeleteAt": to_iso(result.flagged_for_delete_at),
        "trashedFilesCount": result.trashed_files,
        "trashedFoldersCount": result.removed_folders,
    }
