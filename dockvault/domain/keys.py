"""Key encoding for the shared partitioned metadata index.

Layout (``PK`` / ``SK`` on the base table, ``GSI1PK`` / ``GSI1SK`` on the
state-ordered secondary index):

- container: ``U#{owner}`` / ``S#{container}``
- file: ``U#{owner}#S#{container}`` / ``L#{full_path}``
- folder: ``U#{owner}#S#{container}`` / ``F#{folder_path}``
- directory row: ``U#{owner}#S#{container}`` / ``D#{parent}#{kind}#{normalized}#{id}``

File records also carry ``GSI1PK`` (same value as ``PK``) and a ``GSI1SK``
built from one of the :class:`StateKey` variants below.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from ..errors import IntegrityError, ValidationError
from .paths import normalize_full_path, to_relative_path
from .timestamps import to_iso

ROOT_FOLDER_NODE_ID = "root"

FILE_SK_PREFIX = "L#"
FOLDER_SK_PREFIX = "F#"
DIRECTORY_SK_PREFIX = "D#"
CONTAINER_SK_PREFIX = "S#"

KIND_FOLDER = "F"
KIND_FILE = "L"

STATE_ACTIVE = "ACTIVE"
STATE_TRASH = "TRASH"
STATE_PURGED = "PURGED"

# Sorts after any character a path or timestamp can contain.
_HIGH_SENTINEL = "\uffff"


def _require(value: str, label: str) -> str:
    if not value or "#" in value or "/" in value:
        raise ValidationError(f"Invalid {label}: {value!r}")
    return value


def container_pk(owner_id: str) -> str:
    return f"U#{_require(owner_id, 'owner id')}"


def container_sk(container_id: str) -> str:
    return f"{CONTAINER_SK_PREFIX}{_require(container_id, 'container id')}"


def partition_key(owner_id: str, container_id: str) -> str:
    return f"U#{_require(owner_id, 'owner id')}#S#{_require(container_id, 'container id')}"


def parse_partition_key(pk: str) -> Optional[Tuple[str, str]]:
    parts = pk.split("#")
    if len(parts) != 4 or parts[0] != "U" or parts[2] != "S" or not parts[1] or not parts[3]:
        return None
    return parts[1], parts[3]


def file_sk(full_path: str) -> str:
    return f"{FILE_SK_PREFIX}{full_path}"


def folder_sk(folder_path: str) -> str:
    return f"{FOLDER_SK_PREFIX}{folder_path}"


def directory_sk(parent_id: str, kind: str, normalized_name: str, child_id: str) -> str:
    if kind not in (KIND_FOLDER, KIND_FILE):
        raise IntegrityError(f"Unknown directory kind: {kind!r}")
    return f"{DIRECTORY_SK_PREFIX}{parent_id}#{kind}#{normalized_name}#{child_id}"


def directory_prefix(parent_id: str, kind: Optional[str] = None) -> str:
    if kind is None:
        return f"{DIRECTORY_SK_PREFIX}{parent_id}#"
    return f"{DIRECTORY_SK_PREFIX}{parent_id}#{kind}#"


# State-ordered secondary keys -------------------------------------------------


@dataclass(frozen=True)
class ActiveStateKey:
    path: str

    def encode(self) -> str:
        return f"S#{STATE_ACTIVE}#P#{self.path}"


@dataclass(frozen=True)
class TrashStateKey:
    path: str
    deadline: datetime

    def __post_init__(self) -> None:
        if self.deadline is None:
            raise IntegrityError(f"TRASH key for {self.path} requires a deletion deadline")

    def encode(self) -> str:
        return f"S#{STATE_TRASH}#D#{to_iso(self.deadline)}#P#{self.path}"


@dataclass(frozen=True)
class PurgedStateKey:
    path: str

    def encode(self) -> str:
        return f"S#{STATE_PURGED}#P#{self.path}"


StateKey = Union[ActiveStateKey, TrashStateKey, PurgedStateKey]


def state_key_for(state: str, path: str, deadline: Optional[datetime] = None) -> StateKey:
    if state == STATE_TRASH:
        return TrashStateKey(path, deadline)  # type: ignore[arg-type]
    if deadline is not None:
        raise IntegrityError(f"A deletion deadline is only valid for TRASH, not {state}")
    if state == STATE_ACTIVE:
        return ActiveStateKey(path)
    if state == STATE_PURGED:
        return PurgedStateKey(path)
    raise IntegrityError(f"Unknown lifecycle state: {state!r}")


def state_prefix(state: str, path_prefix: Optional[str] = None) -> str:
    """Range-key prefix for ``begins_with`` queries on the secondary index.

    TRASH keys put the deadline before the path, so a path prefix cannot narrow
    the range there; callers filter TRASH results by path afterwards.
    """
    if state == STATE_TRASH:
        return f"S#{STATE_TRASH}#D#"
    if state not in (STATE_ACTIVE, STATE_PURGED):
        raise IntegrityError(f"Unknown lifecycle state: {state!r}")
    return f"S#{state}#P#{path_prefix or ''}"


def trash_due_range(now: datetime) -> Tuple[str, str]:
    """Inclusive ``(lower, upper)`` bounds for TRASH keys whose deadline <= now."""
    return f"S#{STATE_TRASH}#D#", f"S#{STATE_TRASH}#D#{to_iso(now)}#P#{_HIGH_SENTINEL}"


# Object keys ------------------------------------------------------------------


def object_key(owner_id: str, container_id: str, full_path: str) -> str:
    return f"{_require(owner_id, 'owner id')}/{_require(container_id, 'container id')}/{to_relative_path(full_path)}"


def parse_object_key(owner_id: str, container_id: str, key: str) -> Optional[str]:
    """Return the canonical full path for ``key`` if it belongs to the container."""
    prefix = f"{owner_id}/{container_id}/"
    if not key.startswith(prefix):
        return None
    relative = key[len(prefix):]
    if not relative.strip():
        return None
    try:
        full_path = normalize_full_path(relative)
    except ValidationError:
        return None
    if full_path[1:] != relative:
        return None
    return full_path
