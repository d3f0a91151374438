from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Union

from attr import field, frozen

from zarrkv.array_v2 import ArrayRuntimeConfiguration, ArrayV2
from zarrkv.common import (
    ZARRAY_JSON,
    ZATTRS_JSON,
    ZGROUP_JSON,
    json_decode_object,
    json_encode_object,
)
from zarrkv.errors import NodeNotFoundError, PathConflictError
from zarrkv.hierarchy import (
    NodeKind,
    create_array_async as _create_array_async,
    ensure_ancestors_async,
    list_children_async,
)
from zarrkv.metadata import GroupV2Metadata
from zarrkv.store import StoreLike, StorePath, make_store_path
from zarrkv.sync import sync


@frozen
class GroupV2:
    metadata: GroupV2Metadata
    store_path: StorePath
    attributes: Dict[str, Any] = field(factory=dict)

    @classmethod
    async def create_async(
        cls,
        store: StoreLike,
        *,
        attributes: Optional[Dict[str, Any]] = None,
        exists_ok: bool = False,
    ) -> GroupV2:
        store_path = make_store_path(store)
        await ensure_ancestors_async(store_path)
        if await store_path.exists_async(ZARRAY_JSON):
            raise PathConflictError(f"an array already exists at {store_path}")
        if await store_path.exists_async(ZGROUP_JSON):
            if not exists_ok:
                raise PathConflictError(f"a group already exists at {store_path}")
            if attributes is None:
                # keep the attributes of the existing group
                return await cls.open_async(store_path)
        group = cls(
            metadata=GroupV2Metadata(),
            store_path=store_path,
            attributes=dict(attributes) if attributes else {},
        )
        await group._save_metadata()
        return group

    @classmethod
    def create(
        cls,
        store: StoreLike,
        *,
        attributes: Optional[Dict[str, Any]] = None,
        exists_ok: bool = False,
    ) -> GroupV2:
        return sync(cls.create_async(store, attributes=attributes, exists_ok=exists_ok))

    @classmethod
    async def open_async(cls, store: StoreLike) -> GroupV2:
        store_path = make_store_path(store)
        zgroup_bytes, zattrs_bytes = await asyncio.gather(
            store_path.get_async(ZGROUP_JSON),
            store_path.get_async(ZATTRS_JSON),
        )
        if zgroup_bytes is None:
            raise NodeNotFoundError(store_path.path)
        return cls.from_json(
            store_path,
            json_decode_object(zgroup_bytes, ZGROUP_JSON),
            json_decode_object(zattrs_bytes, ZATTRS_JSON)
            if zattrs_bytes is not None
            else None,
        )

    @classmethod
    def open(cls, store: StoreLike) -> GroupV2:
        return sync(cls.open_async(store))

    @classmethod
    def from_json(
        cls,
        store_path: StorePath,
        zgroup_json: Dict[str, Any],
        zattrs_json: Optional[Dict[str, Any]] = None,
    ) -> GroupV2:
        return cls(
            metadata=GroupV2Metadata.from_json(zgroup_json),
            store_path=store_path,
            attributes=zattrs_json or {},
        )

    @staticmethod
    async def open_or_array(
        store: StoreLike,
        runtime_configuration: Optional[ArrayRuntimeConfiguration] = None,
    ) -> Union[ArrayV2, GroupV2]:
        """Open whatever node lives at `store`.

        A ``.zgroup`` wins over a ``.zarray`` at the same path.
        """
        store_path = make_store_path(store)
        zgroup_bytes, zarray_bytes, zattrs_bytes = await asyncio.gather(
            store_path.get_async(ZGROUP_JSON),
            store_path.get_async(ZARRAY_JSON),
            store_path.get_async(ZATTRS_JSON),
        )
        zattrs_json = (
            json_decode_object(zattrs_bytes, ZATTRS_JSON)
            if zattrs_bytes is not None
            else None
        )
        if zgroup_bytes is not None:
            return GroupV2.from_json(
                store_path, json_decode_object(zgroup_bytes, ZGROUP_JSON), zattrs_json
            )
        if zarray_bytes is not None:
            return ArrayV2.from_json(
                store_path,
                json_decode_object(zarray_bytes, ZARRAY_JSON),
                zattrs_json,
                runtime_configuration=runtime_configuration,
            )
        raise NodeNotFoundError(store_path.path)

    async def _save_metadata(self) -> None:
        await self.store_path.set_async(
            ZGROUP_JSON, json_encode_object(self.metadata.to_json())
        )
        if self.attributes:
            await self.store_path.set_async(
                ZATTRS_JSON, json_encode_object(self.attributes)
            )
        else:
            await self.store_path.delete_async(ZATTRS_JSON)

    @property
    def path(self) -> str:
        return self.store_path.path

    async def get_async(self, path: str) -> Union[ArrayV2, GroupV2]:
        return await self.__class__.open_or_array(self.store_path / path)

    def __getitem__(self, path: str) -> Union[ArrayV2, GroupV2]:
        return sync(self.get_async(path))

    async def create_group_async(self, path: str, **kwargs: Any) -> GroupV2:
        return await self.__class__.create_async(self.store_path / path, **kwargs)

    def create_group(self, path: str, **kwargs: Any) -> GroupV2:
        return sync(self.create_group_async(path, **kwargs))

    async def create_array_async(self, path: str, **kwargs: Any) -> ArrayV2:
        return await _create_array_async(self.store_path, path, **kwargs)

    def create_array(self, path: str, **kwargs: Any) -> ArrayV2:
        return sync(self.create_array_async(path, **kwargs))

    async def children_async(self) -> Dict[str, NodeKind]:
        return await list_children_async(self.store_path)

    def children(self) -> Dict[str, NodeKind]:
        return sync(self.children_async())

    async def update_attributes_async(self, new_attributes: Dict[str, Any]) -> GroupV2:
        new_group = self.__class__(
            metadata=self.metadata,
            store_path=self.store_path,
            attributes=dict(new_attributes),
        )
        await new_group._save_metadata()
        return new_group

    def update_attributes(self, new_attributes: Dict[str, Any]) -> GroupV2:
        return sync(self.update_attributes_async(new_attributes))

    def __repr__(self) -> str:
        return f"<Group_v2 {self.store_path}>"
