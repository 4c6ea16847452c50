"""Consistency layer over the in-memory store, and the S3 adapter contract."""

from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from dockvault.config import DockvaultConfig
from dockvault.errors import TransientError
from dockvault.services.consistency import ObjectConsistencyLayer
from dockvault.storage.object_store import InMemoryObjectStore
from dockvault.storage.s3_store import S3ObjectStore
from dockvault.telemetry import TelemetryCollector

KEY = "u1/c1/docs/a.txt"


def _layer() -> ObjectConsistencyLayer:
    config = DockvaultConfig.default()
    return ObjectConsistencyLayer(
        config=config,
        telemetry=TelemetryCollector(config.observability),
        store=InMemoryObjectStore(),
    )


def test_object_key_for() -> None:
    assert ObjectConsistencyLayer.object_key_for("u1", "c1", "docs//a.txt") == KEY


def test_trash_tag_round_trip_keeps_other_tags() -> None:
    layer = _layer()
    layer.store.put_object(KEY, b"x")
    layer.store.put_tags(KEY, {"owner": "u1"})

    layer.tag_as_trash(KEY)
    assert layer.store.get_tags(KEY) == {"owner": "u1", "state": "TRASH"}

    layer.clear_trash_tag(KEY)
    assert layer.store.get_tags(KEY) == {"owner": "u1"}


def test_clear_trash_tag_drops_empty_tag_set() -> None:
    layer = _layer()
    layer.store.put_object(KEY, b"x")
    layer.tag_as_trash(KEY)
    layer.clear_trash_tag(KEY)
    assert layer.store.get_tags(KEY) == {}
    layer.clear_trash_tag(KEY)


def test_purge_all_versions_counts_delete_markers() -> None:
    layer = _layer()
    layer.store.put_object(KEY, b"v1")
    layer.store.put_object(KEY, b"v2")
    layer.store.delete_object(KEY)

    result = layer.purge_all_versions(KEY)

    assert (result.discovered, result.deleted, result.remaining) == (3, 3, 0)
    assert result.complete
    assert layer.purge_all_versions(KEY).discovered == 0


def test_purge_reports_remaining_versions() -> None:
    layer = _layer()
    layer.store.put_object(KEY, b"v1")
    layer.store.locked_keys.add(KEY)

    result = layer.purge_all_versions(KEY)

    assert result.remaining == 1
    assert not result.complete


def test_store_failures_are_transient() -> None:
    layer = _layer()
    layer.store.failing_operations.add("exists")
    with pytest.raises(TransientError):
        layer.exists(KEY)
    with pytest.raises(TransientError):
        layer.tag_as_trash("u1/c1/missing.txt")


# S3 adapter ----------------------------------------------------------------


@pytest.fixture
def s3_stub():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield S3ObjectStore(client, "bucket"), stubber
        stubber.assert_no_pending_responses()


def test_s3_exists(s3_stub) -> None:
    store, stubber = s3_stub
    stubber.add_response("head_object", {"ContentLength": 1}, {"Bucket": "bucket", "Key": KEY})
    stubber.add_client_error(
        "head_object",
        service_error_code="404",
        http_status_code=404,
        expected_params={"Bucket": "bucket", "Key": KEY},
    )
    stubber.add_client_error("head_object", service_error_code="InternalError", http_status_code=500)

    assert store.exists(KEY) is True
    assert store.exists(KEY) is False
    with pytest.raises(TransientError):
        store.exists(KEY)


def test_s3_tagging(s3_stub) -> None:
    store, stubber = s3_stub
    stubber.add_response(
        "get_object_tagging",
        {"TagSet": [{"Key": "state", "Value": "TRASH"}]},
        {"Bucket": "bucket", "Key": KEY},
    )
    stubber.add_response(
        "put_object_tagging",
        {},
        {"Bucket": "bucket", "Key": KEY, "Tagging": {"TagSet": [{"Key": "owner", "Value": "u1"}]}},
    )
    stubber.add_response("delete_object_tagging", {}, {"Bucket": "bucket", "Key": KEY})

    assert store.get_tags(KEY) == {"state": "TRASH"}
    store.put_tags(KEY, {"owner": "u1"})
    store.delete_tags(KEY)


def test_s3_list_versions_filters_to_exact_key(s3_stub) -> None:
    store, stubber = s3_stub
    stubber.add_response(
        "list_object_versions",
        {
            "Versions": [
                {"Key": KEY, "VersionId": "v1", "Size": 3, "ETag": '"abc"'},
                {"Key": KEY + ".bak", "VersionId": "v9", "Size": 3},
            ],
            "DeleteMarkers": [{"Key": KEY, "VersionId": "m1"}],
            "IsTruncated": False,
        },
        {"Bucket": "bucket", "Prefix": KEY},
    )

    versions = store.list_versions(KEY)

    assert [(v.version_id, v.is_delete_marker) for v in versions] == [("v1", False), ("m1", True)]
    assert versions[0].etag == "abc"


def test_s3_delete_versions_reports_failures(s3_stub) -> None:
    store, stubber = s3_stub
    stubber.add_response(
        "delete_objects",
        {"Errors": [{"Key": KEY, "VersionId": "v2", "Code": "AccessDenied", "Message": "denied"}]},
        {
            "Bucket": "bucket",
            "Delete": {
                "Objects": [{"Key": KEY, "VersionId": "v1"}, {"Key": KEY, "VersionId": "v2"}],
                "Quiet": True,
            },
        },
    )

    assert store.delete_versions(KEY, ["v1", "v2"]) == ["v2"]


def test_s3_abort_ignores_unknown_upload(s3_stub) -> None:
    store, stubber = s3_stub
    stubber.add_client_error(
        "abort_multipart_upload",
        service_error_code="NoSuchUpload",
        http_status_code=404,
        expected_params={"Bucket": "bucket", "Key": KEY, "UploadId": "up-1"},
    )
    store.abort_multipart_upload(KEY, "up-1")
