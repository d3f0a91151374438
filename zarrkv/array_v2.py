from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Union

import attr
import numpy as np
from attr import field, frozen

from zarrkv.codecs import CodecLike, CodecPipeline, normalize_codec_spec
from zarrkv.common import (
    ZARRAY_JSON,
    ZATTRS_JSON,
    ZGROUP_JSON,
    BytesLike,
    ChunkCoords,
    concurrent_map,
    json_decode_object,
    json_encode_object,
    to_thread,
)
from zarrkv.dtype import as_dtype_descriptor
from zarrkv.errors import NodeNotFoundError, PathConflictError
from zarrkv.fill_value import normalize_fill_value
from zarrkv.metadata import ArrayV2Metadata
from zarrkv.store import StoreLike, StorePath, make_store_path
from zarrkv.sync import sync

logger = logging.getLogger(__name__)


@frozen
class ArrayRuntimeConfiguration:
    order: Literal["C", "F"] = "C"
    concurrency: Optional[int] = None
    write_empty_chunks: bool = True


def runtime_configuration(
    order: Literal["C", "F"] = "C",
    concurrency: Optional[int] = None,
    write_empty_chunks: bool = True,
) -> ArrayRuntimeConfiguration:
    return ArrayRuntimeConfiguration(
        order=order, concurrency=concurrency, write_empty_chunks=write_empty_chunks
    )


@frozen
class ArrayV2:
    metadata: ArrayV2Metadata
    store_path: StorePath
    attributes: Dict[str, Any] = field(factory=dict)
    runtime_configuration: ArrayRuntimeConfiguration = field(
        factory=ArrayRuntimeConfiguration
    )
    codec_pipeline: CodecPipeline = field(init=False, eq=False)

    def __attrs_post_init__(self) -> None:
        object.__setattr__(self, "codec_pipeline", self.metadata.codec_pipeline())

    @classmethod
    async def create_async(
        cls,
        store: StoreLike,
        *,
        shape: Sequence[int],
        dtype: Any,
        chunks: Sequence[int],
        dimension_separator: Literal[".", "/"] = ".",
        fill_value: Any = 0,
        order: Literal["C", "F"] = "C",
        filters: Optional[Iterable[CodecLike]] = None,
        compressor: Optional[CodecLike] = None,
        attributes: Optional[Dict[str, Any]] = None,
        runtime_configuration: Optional[ArrayRuntimeConfiguration] = None,
        exists_ok: bool = False,
    ) -> ArrayV2:
        store_path = make_store_path(store)
        if await store_path.exists_async(ZGROUP_JSON):
            raise PathConflictError(f"a group already exists at {store_path}")
        if not exists_ok and await store_path.exists_async(ZARRAY_JSON):
            raise PathConflictError(f"an array already exists at {store_path}")

        dtype_descriptor = as_dtype_descriptor(dtype)
        metadata = ArrayV2Metadata(
            shape=tuple(int(s) for s in shape),
            chunks=tuple(int(c) for c in chunks),
            dtype=dtype_descriptor,
            compressor=normalize_codec_spec(compressor)
            if compressor is not None
            else None,
            fill_value=normalize_fill_value(fill_value, dtype_descriptor),
            order=order,
            filters=tuple(normalize_codec_spec(f) for f in filters)
            if filters is not None
            else None,
            dimension_separator=dimension_separator,
        )
        array = cls(
            metadata=metadata,
            store_path=store_path,
            attributes=dict(attributes) if attributes else {},
            runtime_configuration=runtime_configuration or ArrayRuntimeConfiguration(),
        )
        await array._save_metadata()
        return array

    @classmethod
    def create(cls, store: StoreLike, **kwargs: Any) -> ArrayV2:
        return sync(cls.create_async(store, **kwargs))

    @classmethod
    async def open_async(
        cls,
        store: StoreLike,
        runtime_configuration: Optional[ArrayRuntimeConfiguration] = None,
    ) -> ArrayV2:
        store_path = make_store_path(store)
        zarray_bytes, zattrs_bytes = await asyncio.gather(
            store_path.get_async(ZARRAY_JSON),
            store_path.get_async(ZATTRS_JSON),
        )
        if zarray_bytes is None:
            raise NodeNotFoundError(store_path.path)
        return cls.from_json(
            store_path,
            zarray_json=json_decode_object(zarray_bytes, ZARRAY_JSON),
            zattrs_json=json_decode_object(zattrs_bytes, ZATTRS_JSON)
            if zattrs_bytes is not None
            else None,
            runtime_configuration=runtime_configuration,
        )

    @classmethod
    def open(
        cls,
        store: StoreLike,
        runtime_configuration: Optional[ArrayRuntimeConfiguration] = None,
    ) -> ArrayV2:
        return sync(cls.open_async(store, runtime_configuration))

    @classmethod
    def from_json(
        cls,
        store_path: StorePath,
        zarray_json: Dict[str, Any],
        zattrs_json: Optional[Dict[str, Any]],
        runtime_configuration: Optional[ArrayRuntimeConfiguration] = None,
    ) -> ArrayV2:
        return cls(
            metadata=ArrayV2Metadata.from_json(zarray_json),
            store_path=store_path,
            attributes=zattrs_json or {},
            runtime_configuration=runtime_configuration or ArrayRuntimeConfiguration(),
        )

    async def _save_metadata(self) -> None:
        await self.store_path.set_async(
            ZARRAY_JSON, json_encode_object(self.metadata.to_json())
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

    @property
    def ndim(self) -> int:
        return self.metadata.ndim

    @property
    def shape(self) -> ChunkCoords:
        return self.metadata.shape

    @property
    def chunks(self) -> ChunkCoords:
        return self.metadata.chunks

    @property
    def dtype(self) -> np.dtype:
        return self.metadata.dtype.to_numpy()

    @property
    def fill_value(self) -> Any:
        return self.metadata.fill_value

    @property
    def nchunks(self) -> int:
        return self.metadata.chunk_grid.nchunks

    def chunk_key(self, chunk_coords: Sequence[int]) -> str:
        return self.metadata.chunk_grid.key_for(
            chunk_coords,
            self.store_path.prefix,
            self.metadata.dimension_separator,
        )

    async def read_chunk_bytes_async(
        self, chunk_coords: Sequence[int]
    ) -> Optional[bytes]:
        """Decoded bytes of one chunk, ``None`` if it was never written."""
        chunk_bytes = await self.store_path.store.get_async(
            self.chunk_key(chunk_coords)
        )
        if chunk_bytes is None:
            return None
        return await to_thread(
            self.codec_pipeline.decode_chunk, chunk_bytes, self.metadata.chunk_nbytes
        )

    async def read_chunk_async(self, chunk_coords: Sequence[int]) -> np.ndarray:
        raw = await self.read_chunk_bytes_async(chunk_coords)
        order = self.runtime_configuration.order
        if raw is None:
            return self._empty_chunk(order)

        chunk_array = np.frombuffer(raw, dtype=self.dtype).reshape(
            self.metadata.chunks, order=self.metadata.order
        )
        if order == self.metadata.order:
            return chunk_array
        return chunk_array.copy(order=order)

    def read_chunk(self, chunk_coords: Sequence[int]) -> np.ndarray:
        return sync(self.read_chunk_async(chunk_coords))

    def _empty_chunk(self, order: Literal["C", "F"]) -> np.ndarray:
        chunk_array = np.empty(self.metadata.chunks, dtype=self.dtype, order=order)
        # a `null` fill value leaves the contents undefined
        if self.metadata.fill_value is not None:
            chunk_array[...] = self.metadata.fill_value
        return chunk_array

    def _is_all_fill_value(self, chunk_array: np.ndarray) -> bool:
        fill_value = self.metadata.fill_value
        if fill_value is None:
            return False
        if chunk_array.dtype.kind in "fc" and np.isnan(fill_value):
            return bool(np.all(np.isnan(chunk_array)))
        return bool(np.all(chunk_array == fill_value))

    def _as_chunk_array(self, value: Union[np.ndarray, BytesLike]) -> np.ndarray:
        if isinstance(value, (bytes, bytearray, memoryview)):
            if len(value) != self.metadata.chunk_nbytes:
                raise ValueError(
                    f"chunk bytes must hold exactly {self.metadata.chunk_nbytes} "
                    f"bytes, found {len(value)}"
                )
            return np.frombuffer(value, dtype=self.dtype).reshape(
                self.metadata.chunks, order=self.metadata.order
            )
        chunk_array = np.asarray(value)
        if chunk_array.shape != self.metadata.chunks:
            raise ValueError(
                f"chunk data must have shape {self.metadata.chunks}, "
                f"found {chunk_array.shape}"
            )
        if chunk_array.dtype != self.dtype:
            chunk_array = chunk_array.astype(self.dtype, order="A")
        return chunk_array

    async def write_chunk_async(
        self,
        chunk_coords: Sequence[int],
        value: Union[np.ndarray, BytesLike],
    ) -> None:
        chunk_key = self.chunk_key(chunk_coords)
        chunk_array = self._as_chunk_array(value)

        if not self.runtime_configuration.write_empty_chunks and (
            self._is_all_fill_value(chunk_array)
        ):
            # chunks that only contain fill_value will be removed
            logger.debug("Removing chunk %s holding only the fill value", chunk_key)
            await self.store_path.store.delete_async(chunk_key)
            return

        encoded_chunk_bytes = await to_thread(
            self.codec_pipeline.encode_chunk,
            chunk_array.ravel(order=self.metadata.order),
        )
        await self.store_path.store.set_async(chunk_key, encoded_chunk_bytes)

    def write_chunk(
        self,
        chunk_coords: Sequence[int],
        value: Union[np.ndarray, BytesLike],
    ) -> None:
        sync(self.write_chunk_async(chunk_coords, value))

    async def delete_chunk_async(self, chunk_coords: Sequence[int]) -> None:
        await self.store_path.store.delete_async(self.chunk_key(chunk_coords))

    def delete_chunk(self, chunk_coords: Sequence[int]) -> None:
        sync(self.delete_chunk_async(chunk_coords))

    async def initialized_chunk_coords_async(self) -> List[ChunkCoords]:
        chunk_grid = self.metadata.chunk_grid
        prefix = self.store_path.prefix
        separator = self.metadata.dimension_separator
        out = []
        for key in await self.store_path.list_async():
            chunk_coords = chunk_grid.parse_key(key, prefix, separator)
            if chunk_coords is not None:
                out.append(chunk_coords)
        return sorted(out)

    async def nchunks_initialized_async(self) -> int:
        return len(await self.initialized_chunk_coords_async())

    def nchunks_initialized(self) -> int:
        return sync(self.nchunks_initialized_async())

    async def resize_async(self, new_shape: Sequence[int]) -> ArrayV2:
        new_shape = tuple(int(s) for s in new_shape)
        new_metadata = attr.evolve(self.metadata, shape=new_shape)
        new_grid = new_metadata.chunk_grid

        async def _delete_key(key: str) -> None:
            await self.store_path.store.delete_async(key)

        # Remove all chunks outside of the new shape
        obsolete_keys = [
            (self.chunk_key(chunk_coords),)
            for chunk_coords in await self.initialized_chunk_coords_async()
            if not new_grid.contains(chunk_coords)
        ]
        logger.debug("Resizing %s deletes %d chunks", self, len(obsolete_keys))
        await concurrent_map(
            obsolete_keys, _delete_key, self.runtime_configuration.concurrency
        )

        await self.store_path.set_async(
            ZARRAY_JSON, json_encode_object(new_metadata.to_json())
        )
        return attr.evolve(self, metadata=new_metadata)

    def resize(self, new_shape: Sequence[int]) -> ArrayV2:
        return sync(self.resize_async(new_shape))

    async def update_attributes_async(self, new_attributes: Dict[str, Any]) -> ArrayV2:
        await self.store_path.set_async(
            ZATTRS_JSON, json_encode_object(new_attributes)
        )
        return attr.evolve(self, attributes=dict(new_attributes))

    def update_attributes(self, new_attributes: Dict[str, Any]) -> ArrayV2:
        return sync(self.update_attributes_async(new_attributes))

    def __repr__(self) -> str:
        return f"<Array_v2 {self.store_path}>"
