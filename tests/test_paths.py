from __future__ import annotations

import pytest

from dockvault.domain.paths import (
    ROOT,
    CanonicalPath,
    build_full_path,
    normalize_folder_path,
    normalize_full_path,
    normalize_node_name,
    split_folder_path,
    split_full_path,
    to_folder_prefix,
    to_relative_path,
)
from dockvault.errors import ValidationError


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("docs/a.txt", "/docs/a.txt"),
        ("//docs///a.txt", "/docs/a.txt"),
        ("  /docs/a.txt  ", "/docs/a.txt"),
        ("/a", "/a"),
    ],
)
def test_normalize_full_path(raw: str, expected: str) -> None:
    assert normalize_full_path(raw) == expected
    assert normalize_full_path(normalize_full_path(raw)) == expected


@pytest.mark.parametrize("raw", ["", "   ", "/", "//", "/docs/../etc", "..", "/a/..b"])
def test_normalize_full_path_rejects(raw: str) -> None:
    with pytest.raises(ValidationError):
        normalize_full_path(raw)


def test_validation_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        normalize_full_path("")


def test_normalize_folder_path() -> None:
    assert normalize_folder_path("") == ROOT
    assert normalize_folder_path("/") == ROOT
    assert normalize_folder_path("docs/") == "/docs"
    assert normalize_folder_path("/docs//reports/") == "/docs/reports"
    with pytest.raises(ValidationError):
        normalize_folder_path("/docs/../x")


def test_relative_and_prefix_forms() -> None:
    assert to_relative_path("/docs/x.txt") == "docs/x.txt"
    assert to_folder_prefix("/docs") == "/docs/"
    assert to_folder_prefix("docs") == "/docs/"


def test_normalize_node_name_folds_width_and_case() -> None:
    assert normalize_node_name("Ｒeport.PDF") == "report.pdf"
    assert normalize_node_name("  Notes ") == "notes"
    with pytest.raises(ValidationError):
        normalize_node_name("   ")


def test_split_full_path() -> None:
    assert split_full_path("/a/b/c.txt") == ("/a/b/c.txt", "c.txt", ["a", "b"], "/a/b")
    assert split_full_path("top.txt") == ("/top.txt", "top.txt", [], ROOT)
    assert split_folder_path("/a/b") == ["a", "b"]
    assert split_folder_path("/") == []


def test_build_full_path() -> None:
    assert build_full_path("/", "x.txt") == "/x.txt"
    assert build_full_path("/docs/", "x.txt") == "/docs/x.txt"
    with pytest.raises(ValidationError):
        build_full_path("/docs", "a/b")
    with pytest.raises(ValidationError):
        build_full_path("/docs", " ")


def test_canonical_path_forms() -> None:
    path = CanonicalPath.parse("docs//reports/q1.csv")
    assert path.full == "/docs/reports/q1.csv"
    assert path.relative == "docs/reports/q1.csv"
    assert path.folder_prefix == "/docs/reports/q1.csv/"
    assert path.name == "q1.csv"
    assert path.parent == "/docs/reports"
    assert CanonicalPath.parse("/top.txt").parent == ROOT
    assert str(path) == "/docs/reports/q1.csv"
