"""Key-value persistence contract consumed by the session and thread layers.

Both session and thread records are plain JSON-compatible dicts addressed by a
string key. Implementations must make each single call atomic:

* ``upsert`` merges ``fields`` into the record (creating it if needed) and
  returns the merged record as of that write.
* ``append_if_absent`` appends ``value`` to the list stored under
  ``list_field`` unless it is already present, and returns the value's index.
"""

from __future__ import annotations

import copy
from typing import Any, Mapping, Optional, Protocol


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[dict[str, Any]]: ...

    async def upsert(self, key: str, fields: Mapping[str, Any]) -> dict[str, Any]: ...

    async def append_if_absent(self, key: str, list_field: str, value: Any) -> int: ...


class MemoryKeyValueStore:
    """In-process store; every method completes without yielding to the loop."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def keys(self) -> list[str]:
        return sorted(self._records)

    async def get(self, key: str) -> Optional[dict[str, Any]]:
        record = self._records.get(key)
        return copy.deepcopy(record) if record is not None else None

    async def upsert(self, key: str, fields: Mapping[str, Any]) -> dict[str, Any]:
        record = self._records.setdefault(key, {})
        record.update(copy.deepcopy(dict(fields)))
        return copy.deepcopy(record)

    async def append_if_absent(self, key: str, list_field: str, value: Any) -> int:
        record = self._records.setdefault(key, {})
        return append_to_record(record, list_field, value)


def append_to_record(record: dict[str, Any], list_field: str, value: Any) -> int:
    items = record.get(list_field)
    if items is None:
        items = []
        record[list_field] = items
    elif not isinstance(items, list):
        raise TypeError(f"field {list_field!r} is not a list")
    if value in items:
        return items.index(value)
    items.append(value)
    return len(items) - 1
