"""S3-backed object store for versioned buckets."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..config import ObjectStoreConfig
from ..errors import TransientError
from .object_store import ObjectStore, ObjectVersion

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}
_DELETE_BATCH = 1000


def build_s3_client(config: ObjectStoreConfig):
    return boto3.client(
        "s3",
        region_name=config.region,
        endpoint_url=config.endpoint_url,
        config=BotoConfig(
            signature_version="s3v4",
            connect_timeout=config.connect_timeout_seconds,
            read_timeout=config.read_timeout_seconds,
            retries={"max_attempts": config.max_attempts, "mode": "standard"},
        ),
    )


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class S3ObjectStore(ObjectStore):
    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, config: ObjectStoreConfig) -> "S3ObjectStore":
        return cls(build_s3_client(config), config.bucket_name)

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return False
            raise self._transient("head_object", key, exc) from exc
        except BotoCoreError as exc:
            raise self._transient("head_object", key, exc) from exc
        return True

    def get_tags(self, key: str) -> Dict[str, str]:
        response = self._call("get_object_tagging", key)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    def put_tags(self, key: str, tags: Dict[str, str]) -> None:
        tag_set = [{"Key": name, "Value": value} for name, value in tags.items()]
        self._call("put_object_tagging", key, Tagging={"TagSet": tag_set})

    def delete_tags(self, key: str) -> None:
        self._call("delete_object_tagging", key)

    def list_versions(self, key: str) -> List[ObjectVersion]:
        versions: List[ObjectVersion] = []
        params: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": key}
        while True:
            try:
                response = self.client.list_object_versions(**params)
            except (ClientError, BotoCoreError) as exc:
                raise self._transient("list_object_versions", key, exc) from exc
            for entry in response.get("Versions", []):
                if entry.get("Key") == key:
                    versions.append(ObjectVersion(
                        version_id=entry["VersionId"],
                        size=int(entry.get("Size", 0)),
                        etag=(entry.get("ETag") or "").strip('"') or None,
                    ))
            for entry in response.get("DeleteMarkers", []):
                if entry.get("Key") == key:
                    versions.append(ObjectVersion(version_id=entry["VersionId"], size=0, is_delete_marker=True))
            if not response.get("IsTruncated"):
                return versions
            params["KeyMarker"] = response.get("NextKeyMarker")
            params["VersionIdMarker"] = response.get("NextVersionIdMarker")

    def delete_versions(self, key: str, version_ids: List[str]) -> List[str]:
        failed: List[str] = []
        for start in range(0, len(version_ids), _DELETE_BATCH):
            batch = version_ids[start:start + _DELETE_BATCH]
            response = self._call(
                "delete_objects",
                None,
                Delete={"Objects": [{"Key": key, "VersionId": version_id} for version_id in batch], "Quiet": True},
            )
            for error in response.get("Errors", []):
                logger.warning(
                    "Version %s of %s not deleted: %s", error.get("VersionId"), key, error.get("Code")
                )
                failed.append(error.get("VersionId", ""))
        return failed

    def abort_multipart_upload(self, key: str, upload_id: str) -> None:
        try:
            self.client.abort_multipart_upload(Bucket=self.bucket, Key=key, UploadId=upload_id)
        except ClientError as exc:
            if _error_code(exc) == "NoSuchUpload":
                return
            raise self._transient("abort_multipart_upload", key, exc) from exc
        except BotoCoreError as exc:
            raise self._transient("abort_multipart_upload", key, exc) from exc

    def _call(self, operation: str, key: Any, **params: Any) -> Dict[str, Any]:
        if key is not None:
            params["Key"] = key
        try:
            return getattr(self.client, operation)(Bucket=self.bucket, **params)
        except (ClientError, BotoCoreError) as exc:
            raise self._transient(operation, key, exc) from exc

    def _transient(self, operation: str, key: Any, exc: Exception) -> TransientError:
        logger.warning("S3 %s failed for %s/%s: %s", operation, self.bucket, key, exc)
        return TransientError(f"S3 {operation} failed for {key}: {exc}")
