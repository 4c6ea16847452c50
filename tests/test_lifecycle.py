"""State machine transitions against in-memory stores."""

from __future__ import annotations

from datetime import timedelta

import pytest

from dockvault.domain import keys
from dockvault.errors import ConflictError, NotFoundError, TransientError, ValidationError
from dockvault.models import FileState
from dockvault.runtime import DockvaultRuntime

OWNER = "u1"
CONTAINER = "c1"


def _bootstrap(runtime: DockvaultRuntime) -> DockvaultRuntime:
    runtime.repository.create_container(OWNER, "Vault", container_id=CONTAINER)
    return runtime


def _upload(runtime: DockvaultRuntime, path: str, data: bytes = b"payload"):
    key = keys.object_key(OWNER, CONTAINER, path)
    runtime.object_store.put_object(key, data)
    return runtime.lifecycle.confirm_upload(OWNER, CONTAINER, path, size=len(data), content_type="text/plain")


def test_confirm_requires_uploaded_object(runtime) -> None:
    _bootstrap(runtime)
    with pytest.raises(ConflictError):
        runtime.lifecycle.confirm_upload(OWNER, CONTAINER, "/missing.txt", size=3)
    assert runtime.repository.get_file(OWNER, CONTAINER, "/missing.txt") is None

    result = _upload(runtime, "docs//a.txt")
    assert result.full_path == "/docs/a.txt"
    assert result.state == FileState.ACTIVE
    assert result.flagged_for_delete_at is None


def test_move_to_trash_sets_deadline_and_tags_object(runtime, clock) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    key = keys.object_key(OWNER, CONTAINER, "/a.txt")
    runtime.object_store.put_tags(key, {"owner": "u1"})

    result = runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "a.txt")

    assert result.state == FileState.TRASH
    assert result.flagged_for_delete_at == clock() + timedelta(days=30)
    assert runtime.object_store.get_tags(key) == {"owner": "u1", "state": "TRASH"}
    with pytest.raises(NotFoundError):
        runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")
    with pytest.raises(NotFoundError):
        runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/never.txt")


def test_trash_survives_tagging_failure(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    runtime.object_store.failing_operations.add("put_tags")

    result = runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")

    assert result.state == FileState.TRASH
    assert runtime.telemetry.metric_total("lifecycle.tag_failures") == 1


def test_restore_clears_only_the_trash_tag(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/docs/a.txt")
    key = keys.object_key(OWNER, CONTAINER, "/docs/a.txt")
    runtime.object_store.put_tags(key, {"owner": "u1"})
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/docs/a.txt")

    result = runtime.lifecycle.restore(OWNER, CONTAINER, "/docs/a.txt")

    assert result.state == FileState.ACTIVE
    assert result.flagged_for_delete_at is None
    assert runtime.object_store.get_tags(key) == {"owner": "u1"}
    with pytest.raises(NotFoundError):
        runtime.lifecycle.restore(OWNER, CONTAINER, "/docs/a.txt")


def test_restore_self_heals_when_object_is_gone(runtime, clock) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")
    runtime.object_store.delete_object(keys.object_key(OWNER, CONTAINER, "/a.txt"))

    with pytest.raises(ConflictError) as excinfo:
        runtime.lifecycle.restore(OWNER, CONTAINER, "/a.txt")

    assert excinfo.value.result.state == FileState.PURGED
    assert excinfo.value.result.purged_at == clock()
    stored = runtime.repository.get_file(OWNER, CONTAINER, "/a.txt")
    assert stored.state == FileState.PURGED
    assert stored.flagged_for_delete_at is None


def test_purge_now_removes_every_version(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt", b"v1")
    key = keys.object_key(OWNER, CONTAINER, "/a.txt")
    runtime.object_store.put_object(key, b"v2")
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")

    result = runtime.lifecycle.purge_now(OWNER, CONTAINER, "/a.txt")

    assert result.state == FileState.PURGED
    assert runtime.object_store.list_versions(key) == []
    assert not runtime.object_store.exists(key)


def test_incomplete_purge_leaves_record_in_trash(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    key = keys.object_key(OWNER, CONTAINER, "/a.txt")
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")
    runtime.object_store.locked_keys.add(key)

    with pytest.raises(ConflictError) as excinfo:
        runtime.lifecycle.purge_now(OWNER, CONTAINER, "/a.txt")

    assert excinfo.value.result.state == FileState.TRASH
    assert runtime.repository.get_file(OWNER, CONTAINER, "/a.txt").state == FileState.TRASH

    runtime.object_store.locked_keys.clear()
    assert runtime.lifecycle.purge_now(OWNER, CONTAINER, "/a.txt").state == FileState.PURGED


def test_purge_requires_trash(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    with pytest.raises(NotFoundError):
        runtime.lifecycle.purge_now(OWNER, CONTAINER, "/a.txt")


def test_trash_folder_trashes_descendants_only(runtime) -> None:
    _bootstrap(runtime)
    for path in ("/docs/a.txt", "/docs/sub/b.txt", "/other/c.txt"):
        _upload(runtime, path)

    result = runtime.lifecycle.trash_folder(OWNER, CONTAINER, "/docs/")

    assert result.folder_path == "/docs"
    assert result.trashed_files == 2
    assert result.removed_folders == 2
    states = {
        path: runtime.repository.get_file(OWNER, CONTAINER, path).state
        for path in ("/docs/a.txt", "/docs/sub/b.txt", "/other/c.txt")
    }
    assert states == {
        "/docs/a.txt": FileState.TRASH,
        "/docs/sub/b.txt": FileState.TRASH,
        "/other/c.txt": FileState.ACTIVE,
    }
    assert runtime.repository.get_folder(OWNER, CONTAINER, "/docs") is None
    root_children = runtime.repository.list_children_of(OWNER, CONTAINER, keys.ROOT_FOLDER_NODE_ID)
    assert [entry.name for entry in root_children] == ["other"]


def test_trash_folder_rejects_root_and_unknown(runtime) -> None:
    _bootstrap(runtime)
    with pytest.raises(ValidationError):
        runtime.lifecycle.trash_folder(OWNER, CONTAINER, "/")
    with pytest.raises(NotFoundError):
        runtime.lifecycle.trash_folder(OWNER, CONTAINER, "/nope")


def test_restore_from_trashed_folder_recreates_chain(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/docs/sub/b.txt")
    runtime.lifecycle.trash_folder(OWNER, CONTAINER, "/docs")

    runtime.lifecycle.restore(OWNER, CONTAINER, "/docs/sub/b.txt")

    sub = runtime.repository.get_folder(OWNER, CONTAINER, "/docs/sub")
    assert sub is not None
    children = runtime.repository.list_children_of(OWNER, CONTAINER, sub.folder_node_id)
    assert [entry.name for entry in children] == ["b.txt"]


def test_authorize_download(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt", b"hello")

    grant = runtime.lifecycle.authorize_download(OWNER, CONTAINER, "/a.txt")
    assert grant.object_key == "u1/c1/a.txt"
    assert grant.size == 5

    runtime.object_store.delete_object(grant.object_key)
    with pytest.raises(ConflictError):
        runtime.lifecycle.authorize_download(OWNER, CONTAINER, "/a.txt")
    with pytest.raises(NotFoundError):
        runtime.lifecycle.authorize_download(OWNER, CONTAINER, "/b.txt")


def test_abort_upload_checks_key_ownership(runtime) -> None:
    _bootstrap(runtime)
    key = keys.object_key(OWNER, CONTAINER, "/big.bin")
    upload_id = runtime.object_store.create_multipart_upload(key)

    with pytest.raises(ValidationError):
        runtime.lifecycle.abort_upload(OWNER, CONTAINER, "u2/c1/big.bin", upload_id)
    with pytest.raises(ValidationError):
        runtime.lifecycle.abort_upload(OWNER, CONTAINER, key, "  ")

    runtime.lifecycle.abort_upload(OWNER, CONTAINER, key, upload_id)
    runtime.lifecycle.abort_upload(OWNER, CONTAINER, key, "unknown-session")
    assert runtime.object_store.aborted_uploads == [upload_id]
    assert not runtime.object_store.has_upload(upload_id)


def test_store_outage_surfaces_as_transient(runtime) -> None:
    _bootstrap(runtime)
    runtime.object_store.failing_operations.add("exists")
    with pytest.raises(TransientError):
        runtime.lifecycle.confirm_upload(OWNER, CONTAINER, "/a.txt", size=1)


def test_transitions_reach_the_activity_feed(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")

    events = runtime.activity_service.recent(owner_id=OWNER)
    assert [event.payload["operation"] for event in events] == ["move_to_trash", "confirm_upload"]
    assert events[0].payload["state"] == "TRASH"
    assert runtime.activity_service.recent(owner_id="someone-else") == []


def test_restore_refuses_a_name_taken_in_the_folder(runtime) -> None:
    _bootstrap(runtime)
    trashed = _upload(runtime, "/docs/Report.txt")
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/docs/Report.txt")
    _upload(runtime, "/docs/report.txt")

    with pytest.raises(ConflictError):
        runtime.lifecycle.restore(OWNER, CONTAINER, "/docs/Report.txt")

    assert runtime.repository.get_file(OWNER, CONTAINER, "/docs/Report.txt").state == FileState.TRASH
    folder = runtime.repository.get_folder(OWNER, CONTAINER, "/docs")
    children = runtime.repository.list_children_of(OWNER, CONTAINER, folder.folder_node_id)
    assert [entry.full_path for entry in children] == ["/docs/report.txt"]
    assert children[0].child_id != trashed.file_node_id


def test_reconfirm_over_trash_clears_the_tag(runtime) -> None:
    _bootstrap(runtime)
    _upload(runtime, "/a.txt")
    key = keys.object_key(OWNER, CONTAINER, "/a.txt")
    runtime.object_store.put_tags(key, {"owner": "u1"})
    runtime.lifecycle.move_to_trash(OWNER, CONTAINER, "/a.txt")

    result = runtime.lifecycle.confirm_upload(OWNER, CONTAINER, "/a.txt", size=7)

    assert result.state == FileState.ACTIVE
    assert runtime.object_store.get_tags(key) == {"owner": "u1"}
