"""Group/array hierarchy on top of a flat key/value store.

The store's key set is the only source of truth: the members of a group are
derived from key listings on demand and never cached.
"""
import logging
from typing import Any, Dict, Literal, Optional

from zarrkv.array_v2 import ArrayV2
from zarrkv.common import (
    ZARRAY_JSON,
    ZATTRS_JSON,
    ZGROUP_JSON,
    concurrent_map,
    json_decode_object,
    json_encode_object,
)
from zarrkv.errors import NodeNotFoundError, PathConflictError
from zarrkv.metadata import GroupV2Metadata
from zarrkv.path import ancestor_paths
from zarrkv.store import StoreLike, StorePath, make_store_path
from zarrkv.sync import sync

logger = logging.getLogger(__name__)

NodeKind = Literal["array", "group"]


async def _ensure_group_at(store_path: StorePath) -> None:
    if await store_path.exists_async(ZARRAY_JSON):
        raise PathConflictError(
            f"cannot create a group at {store_path}, an array already exists there"
        )
    if not await store_path.exists_async(ZGROUP_JSON):
        logger.debug("Creating group at %s", store_path)
        await store_path.set_async(
            ZGROUP_JSON, json_encode_object(GroupV2Metadata().to_json())
        )


async def ensure_ancestors_async(store_path: StorePath) -> None:
    for path in ancestor_paths(store_path.path):
        await _ensure_group_at(StorePath(store_path.store, path))


async def ensure_group_async(store: StoreLike, path: str = "") -> None:
    """Make `path` and all of its ancestors groups, root first.

    Existing groups are left untouched, so calling this twice is a no-op.
    """
    store_path = make_store_path(store) / path
    await ensure_ancestors_async(store_path)
    await _ensure_group_at(store_path)


def ensure_group(store: StoreLike, path: str = "") -> None:
    sync(ensure_group_async(store, path))


async def create_array_async(store: StoreLike, path: str, **kwargs: Any) -> ArrayV2:
    store_path = make_store_path(store) / path
    await ensure_ancestors_async(store_path)
    return await ArrayV2.create_async(store_path, **kwargs)


def create_array(store: StoreLike, path: str, **kwargs: Any) -> ArrayV2:
    return sync(create_array_async(store, path, **kwargs))


async def list_children_async(store: StoreLike, path: str = "") -> Dict[str, NodeKind]:
    store_path = make_store_path(store) / path
    prefix = store_path.prefix
    children: Dict[str, NodeKind] = {}

    for key in await store_path.list_async():
        segments = key[len(prefix) :].split("/")
        if len(segments) != 2:
            continue
        name, document = segments
        # a group wins over an array at the same path, as in `open_node`
        if document == ZGROUP_JSON:
            children[name] = "group"
        elif document == ZARRAY_JSON:
            children.setdefault(name, "array")

    # sort by name for readability
    return dict(sorted(children.items()))


def list_children(store: StoreLike, path: str = "") -> Dict[str, NodeKind]:
    return sync(list_children_async(store, path))


async def get_attrs_async(store: StoreLike, path: str = "") -> Dict[str, Any]:
    zattrs_bytes = await (make_store_path(store) / path).get_async(ZATTRS_JSON)
    if zattrs_bytes is None:
        return {}
    return json_decode_object(zattrs_bytes, ZATTRS_JSON)


def get_attrs(store: StoreLike, path: str = "") -> Dict[str, Any]:
    return sync(get_attrs_async(store, path))


async def set_attrs_async(
    store: StoreLike, path: str, attributes: Dict[str, Any]
) -> None:
    """Replace the whole ``.zattrs`` document of an existing node."""
    store_path = make_store_path(store) / path
    if not (
        await store_path.exists_async(ZARRAY_JSON)
        or await store_path.exists_async(ZGROUP_JSON)
    ):
        raise NodeNotFoundError(store_path.path)
    await store_path.set_async(ZATTRS_JSON, json_encode_object(attributes))


def set_attrs(store: StoreLike, path: str, attributes: Dict[str, Any]) -> None:
    sync(set_attrs_async(store, path, attributes))


async def delete_node_async(
    store: StoreLike, path: str, concurrency: Optional[int] = None
) -> None:
    """Delete a node with all of its descendants and chunks."""
    store_path = make_store_path(store) / path
    keys = await store_path.list_async()
    logger.debug("Deleting %d keys under %s", len(keys), store_path)
    await concurrent_map(
        [(key,) for key in keys], store_path.store.delete_async, concurrency
    )


def delete_node(
    store: StoreLike, path: str, concurrency: Optional[int] = None
) -> None:
    sync(delete_node_async(store, path, concurrency))
