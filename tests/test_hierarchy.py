import asyncio
import json
from pathlib import Path

import numpy as np
import pytest
from pytest import fixture

from zarrkv import (
    ArrayV2,
    GroupV2,
    LocalStore,
    MemoryStore,
    NodeNotFoundError,
    PathConflictError,
    Store,
    UnexpectedFieldError,
    create_array,
    create_array_async,
    delete_node_async,
    ensure_group,
    ensure_group_async,
    get_attrs,
    get_attrs_async,
    list_children,
    list_children_async,
    open_node,
    open_node_async,
    set_attrs,
    set_attrs_async,
)


@fixture
def store() -> Store:
    return MemoryStore()


async def snapshot(store: Store):
    keys = await store.list_prefix_async("")
    return {key: await store.get_async(key) for key in keys}


@pytest.mark.asyncio
async def test_ensure_group(store: Store):
    await ensure_group_async(store, "a/b")
    assert await store.list_prefix_async("") == [".zgroup", "a/.zgroup", "a/b/.zgroup"]
    assert json.loads(await store.get_async("a/b/.zgroup")) == {"zarr_format": 2}


@pytest.mark.asyncio
async def test_ensure_group_is_idempotent(store: Store):
    await ensure_group_async(store, "/a//b/")
    before = await snapshot(store)
    await ensure_group_async(store, "a/b")
    await ensure_group_async(store, "a")
    assert await snapshot(store) == before


@pytest.mark.asyncio
async def test_ensure_group_conflicts_with_array(store: Store):
    await create_array_async(store, "a", shape=(4,), chunks=(2,), dtype="<i4")
    with pytest.raises(PathConflictError):
        await ensure_group_async(store, "a")
    with pytest.raises(PathConflictError):
        await ensure_group_async(store, "a/b")
    assert not await store.exists_async("a/.zgroup")
    assert not await store.exists_async("a/b/.zgroup")


@pytest.mark.asyncio
async def test_create_array_creates_ancestors(store: Store):
    a = await create_array_async(
        store, "a/b/c", shape=(20, 20), chunks=(10, 10), dtype="<f4"
    )
    assert a.path == "a/b/c"
    assert await store.list_prefix_async("") == [
        ".zgroup",
        "a/.zgroup",
        "a/b/.zgroup",
        "a/b/c/.zarray",
    ]

    await a.write_chunk_async((1, 0), np.ones((10, 10), dtype="<f4"))
    assert await store.exists_async("a/b/c/1.0")


@pytest.mark.asyncio
async def test_create_array_under_array(store: Store):
    await create_array_async(store, "a", shape=(4,), chunks=(2,), dtype="<i4")
    with pytest.raises(PathConflictError):
        await create_array_async(store, "a/b", shape=(4,), chunks=(2,), dtype="<i4")


@pytest.mark.asyncio
async def test_concurrent_siblings(store: Store):
    arrays = await asyncio.gather(
        *[
            create_array_async(store, f"g/x{i}", shape=(4,), chunks=(2,), dtype="|u1")
            for i in range(5)
        ]
    )
    assert [a.path for a in arrays] == [f"g/x{i}" for i in range(5)]
    assert await list_children_async(store, "g") == {
        f"x{i}": "array" for i in range(5)
    }


@pytest.mark.asyncio
async def test_list_children(store: Store):
    await create_array_async(store, "b", shape=(4,), chunks=(2,), dtype="<i4")
    await ensure_group_async(store, "a/nested")
    await create_array_async(
        store, "c", shape=(4, 4), chunks=(2, 2), dtype="<i4", dimension_separator="/"
    )
    await (await ArrayV2.open_async(store / "c")).write_chunk_async(
        (1, 1), np.zeros((2, 2), dtype="<i4")
    )
    await store.set_async("stray/file", b"")

    children = await list_children_async(store)
    assert children == {"a": "group", "b": "array", "c": "array"}
    assert list(children) == ["a", "b", "c"]
    assert await list_children_async(store, "a") == {"nested": "group"}
    assert await list_children_async(store, "a/nested") == {}
    assert await list_children_async(store, "b") == {}


@pytest.mark.asyncio
async def test_attrs(store: Store):
    await ensure_group_async(store, "g")
    assert await get_attrs_async(store, "g") == {}
    assert await get_attrs_async(store, "missing") == {}

    await set_attrs_async(store, "g", {"a": 1, "b": [1, 2]})
    assert await get_attrs_async(store, "g") == {"a": 1, "b": [1, 2]}
    await set_attrs_async(store, "g", {"c": "d"})
    assert await get_attrs_async(store, "g") == {"c": "d"}

    with pytest.raises(NodeNotFoundError):
        await set_attrs_async(store, "missing", {"a": 1})


@pytest.mark.asyncio
async def test_open_node(store: Store):
    await create_array_async(store, "g/a", shape=(4,), chunks=(2,), dtype="<i4")
    await set_attrs_async(store, "g", {"foo": "bar"})

    group = await open_node_async(store, "g")
    assert isinstance(group, GroupV2)
    assert group.attributes == {"foo": "bar"}
    assert isinstance(await open_node_async(store, ""), GroupV2)

    array = await open_node_async(store, "g/a")
    assert isinstance(array, ArrayV2)
    assert array.shape == (4,)

    with pytest.raises(NodeNotFoundError):
        await open_node_async(store, "g/b")


@pytest.mark.asyncio
async def test_open_invalid_group(store: Store):
    await store.set_async(".zgroup", b'{"zarr_format": 2, "extra": 1}')
    with pytest.raises(UnexpectedFieldError):
        await open_node_async(store)


@pytest.mark.asyncio
async def test_group_and_array_at_same_path(store: Store):
    await create_array_async(store, "both", shape=(4,), chunks=(2,), dtype="<i4")
    await store.set_async("both/.zgroup", b'{"zarr_format": 2}')

    assert await list_children_async(store) == {"both": "group"}
    assert isinstance(await open_node_async(store, "both"), GroupV2)


@pytest.mark.asyncio
async def test_delete_node(store: Store):
    a = await create_array_async(store, "g/a", shape=(4,), chunks=(2,), dtype="<i4")
    await a.write_chunk_async((0,), np.zeros(2, dtype="<i4"))
    await create_array_async(store, "g/sub/b", shape=(4,), chunks=(2,), dtype="<i4")
    await create_array_async(store, "gg", shape=(4,), chunks=(2,), dtype="<i4")

    await delete_node_async(store, "g/a")
    assert await list_children_async(store, "g") == {"sub": "group"}
    assert await store.list_prefix_async("g/a/") == []

    await delete_node_async(store, "g")
    assert await store.list_prefix_async("") == [".zgroup", "gg/.zarray"]

    await delete_node_async(store, "")
    assert await store.list_prefix_async("") == []


@pytest.mark.asyncio
async def test_group(store: Store):
    root = await GroupV2.create_async(store, attributes={"title": "root"})
    assert json.loads(await store.get_async(".zattrs")) == {"title": "root"}

    g = await root.create_group_async("foo/bar")
    assert g.path == "foo/bar"
    assert await store.exists_async("foo/.zgroup")
    assert await store.exists_async("foo/bar/.zgroup")

    a = await g.create_array_async("data", shape=(4,), chunks=(2,), dtype="<u2")
    assert a.path == "foo/bar/data"
    assert await g.children_async() == {"data": "array"}
    assert await root.children_async() == {"foo": "group"}

    assert isinstance(await root.get_async("foo/bar/data"), ArrayV2)
    assert isinstance(await g.get_async(""), GroupV2)

    g = await g.update_attributes_async({"a": 1})
    assert (await GroupV2.open_async(store / "foo/bar")).attributes == {"a": 1}


@pytest.mark.asyncio
async def test_group_conflicts(store: Store):
    await GroupV2.create_async(store / "g")
    with pytest.raises(PathConflictError):
        await GroupV2.create_async(store / "g")
    await GroupV2.create_async(store / "g", exists_ok=True, attributes={"a": 1})
    assert await get_attrs_async(store, "g") == {"a": 1}
    g = await GroupV2.create_async(store / "g", exists_ok=True)
    assert g.attributes == {"a": 1}
    assert await get_attrs_async(store, "g") == {"a": 1}
    await GroupV2.create_async(store / "g", exists_ok=True, attributes={})
    assert not await store.exists_async("g/.zattrs")

    await create_array_async(store, "arr", shape=(4,), chunks=(2,), dtype="<i4")
    with pytest.raises(PathConflictError):
        await GroupV2.create_async(store / "arr", exists_ok=True)
    with pytest.raises(NodeNotFoundError):
        await GroupV2.open_async(store / "arr")


def test_sync_api(tmp_path: Path):
    store = LocalStore(tmp_path)
    ensure_group(store, "a")
    ensure_group(store, "a")
    create_array(store, "a/b/c", shape=(4,), chunks=(2,), dtype="<i4")
    assert (tmp_path / ".zgroup").is_file()
    assert (tmp_path / "a" / "b" / ".zgroup").is_file()
    assert (tmp_path / "a" / "b" / "c" / ".zarray").is_file()

    assert list_children(store, "a") == {"b": "group"}
    set_attrs(store, "a/b/c", {"units": "m"})
    assert get_attrs(store, "a/b/c") == {"units": "m"}
    assert isinstance(open_node(store, "a/b/c"), ArrayV2)

    root = GroupV2.open(store)
    group = root["a/b"]
    assert isinstance(group, GroupV2)
    assert group.children() == {"c": "array"}
    x = group.create_array("x", shape=(2,), chunks=(2,), dtype="|u1")
    x.write_chunk((0,), np.array([1, 2], dtype="|u1"))
    assert np.array_equal(open_node(store, "a/b/x").read_chunk((0,)), [1, 2])
    assert repr(group.create_group("y")) == f"<Group_v2 file://{tmp_path}/a/b/y>"
    assert group.children() == {"c": "array", "x": "array", "y": "group"}
