"""Metadata index contract and the in-process implementation.

The contract mirrors a partitioned key-value table with one state-ordered
secondary index (``GSI1``): point get/put by ``(PK, SK)``, range queries by
partition key plus sort-key prefix or bounds, and a paginated scan.
"""

from __future__ import annotations

import copy
import logging
import pickle
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import ConditionFailedError

logger = logging.getLogger(__name__)

Item = Dict[str, Any]

SECONDARY_INDEX = "GSI1"
_INDEX_KEYS = {
    None: ("PK", "SK"),
    SECONDARY_INDEX: ("GSI1PK", "GSI1SK"),
}


@dataclass
class Page:
    items: List[Item] = field(default_factory=list)
    next_key: Optional[Item] = None


class MetadataIndex:
    """Interface implemented by every metadata index backend."""

    def get(self, pk: str, sk: str) -> Optional[Item]:
        raise NotImplementedError

    def put(self, item: Item, *, if_absent: bool = False, expect: Optional[Dict[str, Any]] = None) -> None:
        """Write ``item``.

        ``if_absent`` refuses to overwrite an existing key; ``expect`` requires
        the stored item to hold the given attribute values. Either violation
        raises :class:`ConditionFailedError`.
        """
        raise NotImplementedError

    def delete(self, pk: str, sk: str) -> None:
        raise NotImplementedError

    def query(
        self,
        pk: str,
        *,
        prefix: Optional[str] = None,
        between: Optional[Tuple[str, str]] = None,
        index: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        raise NotImplementedError

    def scan(
        self,
        *,
        item_type: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        raise NotImplementedError

    # Convenience iterators -------------------------------------------------

    def query_all(self, pk: str, **kwargs: Any) -> Iterator[Item]:
        start_key = kwargs.pop("start_key", None)
        while True:
            page = self.query(pk, start_key=start_key, **kwargs)
            yield from page.items
            if not page.next_key:
                return
            start_key = page.next_key

    def scan_all(self, *, item_type: Optional[str] = None, page_size: Optional[int] = None,
                 start_key: Optional[Item] = None) -> Iterator[Item]:
        while True:
            page = self.scan(item_type=item_type, limit=page_size, start_key=start_key)
            yield from page.items
            if not page.next_key:
                return
            start_key = page.next_key


class InMemoryIndex(MetadataIndex):
    """Thread-safe dict-backed index for local development and unit tests."""

    def __init__(self, state_path: Optional[str] = None) -> None:
        self._items: Dict[Tuple[str, str], Item] = {}
        self._lock = threading.Lock()
        self._state_file: Optional[Path] = None
        if state_path:
            self._state_file = Path(state_path).expanduser()
            self._state_file.parent.mkdir(parents=True, exist_ok=True)
            self._load_state()

    def get(self, pk: str, sk: str) -> Optional[Item]:
        with self._lock:
            stored = self._items.get((pk, sk))
            return copy.deepcopy(stored) if stored is not None else None

    def put(self, item: Item, *, if_absent: bool = False, expect: Optional[Dict[str, Any]] = None) -> None:
        key = (item["PK"], item["SK"])
        with self._lock:
            current = self._items.get(key)
            if if_absent and current is not None:
                raise ConditionFailedError(f"Item already exists: {key}")
            if expect:
                if current is None:
                    raise ConditionFailedError(f"Item missing for conditional write: {key}")
                for attr, value in expect.items():
                    if current.get(attr) != value:
                        raise ConditionFailedError(
                            f"Condition failed on {key}: {attr}={current.get(attr)!r}, expected {value!r}"
                        )
            self._items[key] = copy.deepcopy(item)
            self._persist_state()

    def delete(self, pk: str, sk: str) -> None:
        with self._lock:
            if self._items.pop((pk, sk), None) is not None:
                self._persist_state()

    def query(
        self,
        pk: str,
        *,
        prefix: Optional[str] = None,
        between: Optional[Tuple[str, str]] = None,
        index: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        pk_attr, sk_attr = _INDEX_KEYS[index]
        with self._lock:
            matches = [
                item for item in self._items.values()
                if item.get(pk_attr) == pk and sk_attr in item
            ]
        matches.sort(key=lambda item: (item[sk_attr], item["SK"]))
        if prefix is not None:
            matches = [item for item in matches if item[sk_attr].startswith(prefix)]
        if between is not None:
            lower, upper = between
            matches = [item for item in matches if lower <= item[sk_attr] <= upper]
        if start_key:
            cursor = (start_key[sk_attr], start_key["SK"])
            matches = [item for item in matches if (item[sk_attr], item["SK"]) > cursor]
        return self._paginate(matches, limit, key_attrs=("PK", "SK", pk_attr, sk_attr))

    def scan(
        self,
        *,
        item_type: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[Item] = None,
    ) -> Page:
        with self._lock:
            matches = sorted(self._items.values(), key=lambda item: (item["PK"], item["SK"]))
        if item_type is not None:
            matches = [item for item in matches if item.get("type") == item_type]
        if start_key:
            cursor = (start_key["PK"], start_key["SK"])
            matches = [item for item in matches if (item["PK"], item["SK"]) > cursor]
        return self._paginate(matches, limit, key_attrs=("PK", "SK"))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    @staticmethod
    def _paginate(matches: List[Item], limit: Optional[int], *, key_attrs: Tuple[str, ...]) -> Page:
        if limit is None or limit <= 0 or len(matches) <= limit:
            return Page(items=copy.deepcopy(matches))
        window = matches[:limit]
        last = window[-1]
        next_key = {attr: last[attr] for attr in key_attrs if attr in last}
        return Page(items=copy.deepcopy(window), next_key=next_key)

    # Persistence helpers --------------------------------------------------

    def _load_state(self) -> None:
        if not self._state_file or not self._state_file.exists():
            return
        try:
            with self._state_file.open("rb") as handle:
                snapshot = pickle.load(handle)
        except (OSError, pickle.PickleError) as exc:
            logger.warning("Ignoring unreadable index snapshot %s: %s", self._state_file, exc)
            return
        self._items = snapshot.get("items", self._items)

    def _persist_state(self) -> None:
        if not self._state_file:
            return
        temp_path = self._state_file.with_suffix(self._state_file.suffix + ".tmp")
        try:
            with temp_path.open("wb") as handle:
                pickle.dump({"items": self._items}, handle)
            temp_path.replace(self._state_file)
        except OSError as exc:
            logger.warning("Unable to persist index snapshot %s: %s", self._state_file, exc)
