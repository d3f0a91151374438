import math
from typing import Any, Dict, Literal, Optional, Tuple

import attr
from attr import frozen

from zarrkv.codecs import CodecPipeline, CodecSpec
from zarrkv.common import ZARR_FORMAT, ZARRAY_JSON, ZGROUP_JSON, ChunkCoords, make_cattr
from zarrkv.dtype import DTypeDescriptor
from zarrkv.errors import MetadataError, MissingFieldError, UnexpectedFieldError
from zarrkv.fill_value import decode_fill_value, encode_fill_value
from zarrkv.indexing import DIMENSION_SEPARATORS, ChunkGrid

ARRAY_REQUIRED_FIELDS = (
    "zarr_format",
    "shape",
    "chunks",
    "dtype",
    "compressor",
    "fill_value",
    "order",
    "filters",
)


def _check_zarr_format(zarr_format: Any, document: str) -> None:
    if isinstance(zarr_format, bool) or zarr_format != ZARR_FORMAT:
        raise MetadataError(
            f"unsupported zarr_format {zarr_format!r} in {document}, "
            f"expected {ZARR_FORMAT}"
        )


def _check_int_list(value: Any, name: str) -> None:
    if not isinstance(value, (list, tuple)) or any(
        isinstance(v, bool) or not isinstance(v, int) for v in value
    ):
        raise MetadataError(f"`{name}` must be a list of integers, found {value!r}")


@frozen
class ArrayV2Metadata:
    shape: ChunkCoords
    chunks: ChunkCoords
    dtype: DTypeDescriptor
    compressor: Optional[CodecSpec]
    fill_value: Any
    order: Literal["C", "F"]
    filters: Optional[Tuple[CodecSpec, ...]]
    dimension_separator: Literal[".", "/"] = "."
    zarr_format: Literal[2] = 2

    def __attrs_post_init__(self) -> None:
        _check_zarr_format(self.zarr_format, ZARRAY_JSON)
        if self.order not in ("C", "F"):
            raise MetadataError(f"order must be 'C' or 'F', found {self.order!r}")
        if self.dimension_separator not in DIMENSION_SEPARATORS:
            raise MetadataError(
                f"dimension_separator must be one of {DIMENSION_SEPARATORS}, "
                f"found {self.dimension_separator!r}"
            )
        # validates rank and extents
        ChunkGrid(self.shape, self.chunks)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def chunk_grid(self) -> ChunkGrid:
        return ChunkGrid(self.shape, self.chunks)

    @property
    def chunk_nbytes(self) -> int:
        return self.dtype.itemsize * math.prod(self.chunks)

    def codec_pipeline(self) -> CodecPipeline:
        return CodecPipeline.from_metadata(self.filters, self.compressor)

    def to_json(self) -> Dict[str, Any]:
        out = make_cattr().unstructure(self)
        out["shape"] = list(self.shape)
        out["chunks"] = list(self.chunks)
        if out["filters"] is not None:
            out["filters"] = list(out["filters"])
        out["fill_value"] = encode_fill_value(self.fill_value, self.dtype)
        return out

    @classmethod
    def from_json(cls, zarray_json: Dict[str, Any]) -> "ArrayV2Metadata":
        """Validate and decode a ``.zarray`` document.

        Every required field must be present, `null` included; unknown fields
        are ignored. `dimension_separator` defaults to ``"."``.
        """
        for name in ARRAY_REQUIRED_FIELDS:
            if name not in zarray_json:
                raise MissingFieldError(name, ZARRAY_JSON)
        _check_zarr_format(zarray_json["zarr_format"], ZARRAY_JSON)
        _check_int_list(zarray_json["shape"], "shape")
        _check_int_list(zarray_json["chunks"], "chunks")
        filters = zarray_json["filters"]
        if filters is not None and not isinstance(filters, list):
            raise MetadataError(f"`filters` must be null or a list, found {filters!r}")
        if zarray_json["order"] not in ("C", "F"):
            raise MetadataError(
                f"order must be 'C' or 'F', found {zarray_json['order']!r}"
            )
        dimension_separator = zarray_json.get("dimension_separator", ".")
        if dimension_separator not in DIMENSION_SEPARATORS:
            raise MetadataError(
                f"dimension_separator must be one of {DIMENSION_SEPARATORS}, "
                f"found {dimension_separator!r}"
            )

        metadata = make_cattr().structure(
            {
                **{name: zarray_json[name] for name in ARRAY_REQUIRED_FIELDS},
                "dimension_separator": dimension_separator,
                "fill_value": None,
            },
            cls,
        )
        return attr.evolve(
            metadata,
            fill_value=decode_fill_value(zarray_json["fill_value"], metadata.dtype),
        )


@frozen
class GroupV2Metadata:
    zarr_format: Literal[2] = 2

    def to_json(self) -> Dict[str, Any]:
        return {"zarr_format": self.zarr_format}

    @classmethod
    def from_json(cls, zgroup_json: Dict[str, Any]) -> "GroupV2Metadata":
        if "zarr_format" not in zgroup_json:
            raise MissingFieldError("zarr_format", ZGROUP_JSON)
        for name in zgroup_json:
            if name != "zarr_format":
                raise UnexpectedFieldError(name, ZGROUP_JSON)
        _check_zarr_format(zgroup_json["zarr_format"], ZGROUP_JSON)
        return cls(zarr_format=zgroup_json["zarr_format"])
