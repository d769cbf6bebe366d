from __future__ import annotations

import pytest

from telehole.core.store import MemoryKeyValueStore, append_to_record


@pytest.mark.anyio
async def test_upsert_merges_and_returns_copy() -> None:
    store = MemoryKeyValueStore()

    first = await store.upsert("k", {"a": 1, "b": [1]})
    first["b"].append(2)
    merged = await store.upsert("k", {"c": 3})

    assert merged == {"a": 1, "b": [1], "c": 3}
    assert await store.get("k") == merged
    assert await store.get("missing") is None
    assert store.keys() == ["k"]


@pytest.mark.anyio
async def test_append_if_absent_returns_existing_index() -> None:
    store = MemoryKeyValueStore()

    assert await store.append_if_absent("k", "items", "x") == 0
    assert await store.append_if_absent("k", "items", "y") == 1
    assert await store.append_if_absent("k", "items", "x") == 0
    assert await store.get("k") == {"items": ["x", "y"]}


def test_append_to_record_rejects_non_list_field() -> None:
    with pytest.raises(TypeError):
        append_to_record({"items": "nope"}, "items", 1)
