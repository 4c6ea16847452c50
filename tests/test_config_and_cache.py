from __future__ import annotations

import pytest

from dockvault.config import DockvaultConfig
from dockvault.errors import NotFoundError
from dockvault.services.cache import TTLCache
from dockvault.storage import build_index, build_object_store
from dockvault.storage.index import InMemoryIndex


class _Ticker:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_ttl_cache_expires_entries() -> None:
    ticker = _Ticker()
    cache = TTLCache(10, clock=ticker)
    cache.set("k", "v")

    ticker.now = 9.9
    assert cache.get("k") == "v"
    ticker.now = 10.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_ttl_cache_invalidate_and_validation() -> None:
    cache = TTLCache(60)
    cache.set(("u1", "c1"), "container")
    cache.invalidate(("u1", "c1"))
    assert cache.get(("u1", "c1"), "missing") == "missing"
    with pytest.raises(ValueError):
        TTLCache(-1)


def test_gateway_does_not_cache_absent_containers(runtime) -> None:
    gateway = runtime.api_gateway
    with pytest.raises(NotFoundError):
        gateway.require_container("u1", "c1")

    runtime.repository.create_container("u1", "Late", container_id="c1")
    assert gateway.require_container("u1", "c1").name == "Late"
    assert gateway.container_cache.get(("u1", "c1")).name == "Late"


def test_from_env_defaults() -> None:
    cfg = DockvaultConfig.from_env({})
    assert cfg.index.backend == "in-memory"
    assert cfg.object_store.backend == "in-memory"
    assert cfg.lifecycle.trash_retention_days == 30


def test_from_env_reads_aws_settings() -> None:
    cfg = DockvaultConfig.from_env(
        {
            "DOCKVAULT_INDEX_BACKEND": "dynamodb",
            "DOCKVAULT_OBJECT_BACKEND": "s3",
            "TABLE_NAME": "files",
            "BUCKET_NAME": "blobs",
            "TRASH_RETENTION_DAYS": "7",
            "AWS_REGION": "eu-west-1",
        }
    )
    assert cfg.index.table_name == "files"
    assert cfg.object_store.bucket_name == "blobs"
    assert cfg.index.region == cfg.object_store.region == "eu-west-1"
    assert cfg.lifecycle.trash_retention_days == 7


@pytest.mark.parametrize(
    "environ",
    [
        {"DOCKVAULT_INDEX_BACKEND": "dynamodb"},
        {"DOCKVAULT_OBJECT_BACKEND": "s3"},
        {"TRASH_RETENTION_DAYS": "thirty"},
    ],
)
def test_from_env_rejects_incomplete_settings(environ) -> None:
    with pytest.raises(ValueError):
        DockvaultConfig.from_env(environ)


def test_backend_factories(tmp_path) -> None:
    cfg = DockvaultConfig.default()
    cfg.index.state_path = str(tmp_path / "index.pkl")
    index = build_index(cfg.index)
    assert isinstance(index, InMemoryIndex)
    index.put({"PK": "U#u1", "SK": "S#c1", "type": "CONTAINER"})
    assert InMemoryIndex(state_path=cfg.index.state_path).get("U#u1", "S#c1") is not None

    cfg.object_store.backend = "ftp"
    with pytest.raises(NotImplementedError):
        build_object_store(cfg.object_store)


def test_not_found_error_renders_its_message() -> None:
    error = NotFoundError("Trashed file not found: /a.txt")
    assert str(error) == "Trashed file not found: /a.txt"
    assert isinstance(error, LookupError)
