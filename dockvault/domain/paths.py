"""Canonical path handling for container-scoped files and folders.

Rules for a canonical full path:

- starts with a single ``/`` and never contains ``//``;
- never contains a ``..`` segment;
- is never the bare root ``/`` when naming a file.

Folder paths follow the same rules, except that ``/`` is the valid root folder
and trailing separators are dropped.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import List, Tuple

from ..errors import ValidationError

SEPARATOR = "/"
ROOT = "/"

_MULTI_SLASH_RE = re.compile(r"/{2,}")


def _collapse(raw: str) -> str:
    if not isinstance(raw, str):
        raise ValidationError("Path must be a string")
    cleaned = raw.strip()
    if not cleaned:
        raise ValidationError("Path cannot be empty")
    collapsed = _MULTI_SLASH_RE.sub(SEPARATOR, cleaned)
    return collapsed if collapsed.startswith(SEPARATOR) else SEPARATOR + collapsed


def normalize_full_path(raw: str) -> str:
    normalized = _collapse(raw)
    if normalized == ROOT:
        raise ValidationError("Root path is not a valid file path")
    if ".." in normalized:
        raise ValidationError("Parent traversal is not allowed")
    return normalized


def normalize_folder_path(raw: str) -> str:
    if isinstance(raw, str) and raw.strip() in ("", ROOT):
        return ROOT
    normalized = _collapse(raw)
    if normalized.endswith(SEPARATOR):
        normalized = normalized[:-1]
    if ".." in normalized:
        raise ValidationError("Parent traversal is not allowed")
    return normalized or ROOT


def to_relative_path(path: str) -> str:
    return normalize_full_path(path)[1:]


def to_folder_prefix(path: str) -> str:
    normalized = normalize_full_path(path)
    return normalized if normalized.endswith(SEPARATOR) else normalized + SEPARATOR


def normalize_node_name(name: str) -> str:
    """Case-folded form used for sorting and collision checks."""
    cleaned = unicodedata.normalize("NFKC", (name or "").strip())
    if not cleaned:
        raise ValidationError("Name cannot be empty")
    return cleaned.lower()


def split_full_path(path: str) -> Tuple[str, str, List[str], str]:
    """Return ``(full_path, file_name, folder_segments, folder_path)``."""
    normalized = normalize_full_path(path)
    segments = [segment for segment in normalized[1:].split(SEPARATOR) if segment]
    if not segments:
        raise ValidationError("Path must include a file name")
    folder_segments = segments[:-1]
    folder_path = SEPARATOR + SEPARATOR.join(folder_segments) if folder_segments else ROOT
    return normalized, segments[-1], folder_segments, folder_path


def split_folder_path(path: str) -> List[str]:
    normalized = normalize_folder_path(path)
    if normalized == ROOT:
        return []
    return [segment for segment in normalized[1:].split(SEPARATOR) if segment]


def build_full_path(folder_path: str, name: str) -> str:
    folder = normalize_folder_path(folder_path)
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Name cannot be empty")
    if SEPARATOR in cleaned:
        raise ValidationError("Name cannot contain a path separator")
    joined = SEPARATOR + cleaned if folder == ROOT else f"{folder}{SEPARATOR}{cleaned}"
    return normalize_full_path(joined)


@dataclass(frozen=True)
class CanonicalPath:
    """A validated full path plus the derived forms callers keep asking for."""

    full: str

    @classmethod
    def parse(cls, raw: str) -> "CanonicalPath":
        return cls(normalize_full_path(raw))

    @property
    def relative(self) -> str:
        return self.full[1:]

    @property
    def folder_prefix(self) -> str:
        return self.full if self.full.endswith(SEPARATOR) else self.full + SEPARATOR

    @property
    def name(self) -> str:
        return self.full.rsplit(SEPARATOR, 1)[-1]

    @property
    def parent(self) -> str:
        head = self.full.rsplit(SEPARATOR, 1)[0]
        return head or ROOT

    def __str__(self) -> str:
        return self.full
