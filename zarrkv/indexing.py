import itertools
import math
import numbers
from typing import Iterator, Literal, Optional, Sequence

from attr import frozen

from zarrkv.common import ChunkCoords
from zarrkv.errors import InvalidChunkCoordinateError, MetadataError

DimensionSeparator = Literal[".", "/"]
DIMENSION_SEPARATORS = (".", "/")


def _ceildiv(a: int, b: int) -> int:
    return -(-a // b)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _check_separator(separator: str) -> None:
    if separator not in DIMENSION_SEPARATORS:
        raise MetadataError(
            f"dimension_separator must be one of {DIMENSION_SEPARATORS}, "
            f"found {separator!r}"
        )


@frozen
class ChunkGrid:
    """The regular grid of chunks covering an array.

    Chunks overhanging the array boundary are stored at full chunk size; the
    overhang is undefined and never masked here.
    """

    shape: ChunkCoords
    chunks: ChunkCoords

    def __attrs_post_init__(self) -> None:
        if len(self.shape) != len(self.chunks):
            raise MetadataError(
                "`chunks` and `shape` need to have the same number of dimensions, "
                f"found {len(self.chunks)} and {len(self.shape)}."
            )
        if any(not _is_int(s) or s < 0 for s in self.shape):
            raise MetadataError(f"shape must hold non-negative integers: {self.shape}")
        if any(not _is_int(c) or c < 1 for c in self.chunks):
            raise MetadataError(f"chunks must hold positive integers: {self.chunks}")

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def grid_shape(self) -> ChunkCoords:
        return tuple(_ceildiv(s, c) for s, c in zip(self.shape, self.chunks))

    @property
    def nchunks(self) -> int:
        return math.prod(self.grid_shape)

    def contains(self, chunk_coords: Sequence[int]) -> bool:
        return len(chunk_coords) == self.ndim and all(
            not isinstance(c, bool) and isinstance(c, numbers.Integral) and 0 <= c < g
            for c, g in zip(chunk_coords, self.grid_shape)
        )

    def all_chunk_coords(self) -> Iterator[ChunkCoords]:
        return itertools.product(*(range(g) for g in self.grid_shape))

    def key_for(
        self,
        chunk_coords: Sequence[int],
        prefix: str = "",
        separator: DimensionSeparator = ".",
    ) -> str:
        _check_separator(separator)
        if not self.contains(chunk_coords):
            raise InvalidChunkCoordinateError(
                f"chunk coordinate {tuple(chunk_coords)} is outside of the chunk "
                f"grid {self.grid_shape}"
            )
        chunk_identifier = separator.join(map(str, chunk_coords))
        return prefix + ("0" if chunk_identifier == "" else chunk_identifier)

    def parse_key(
        self,
        key: str,
        prefix: str = "",
        separator: DimensionSeparator = ".",
    ) -> Optional[ChunkCoords]:
        """Like `coord_for`, but returns ``None`` for keys that are not chunk keys."""
        if not key.startswith(prefix):
            return None
        suffix = key[len(prefix) :]
        if self.ndim == 0:
            return () if suffix == "0" else None
        segments = suffix.split(separator)
        if len(segments) != self.ndim:
            return None
        for segment in segments:
            # canonical decimal only, so that parsing inverts `key_for`
            if not (segment.isascii() and segment.isdigit()):
                return None
            if segment != str(int(segment)):
                return None
        return tuple(int(s) for s in segments)

    def coord_for(
        self,
        key: str,
        prefix: str = "",
        separator: DimensionSeparator = ".",
    ) -> ChunkCoords:
        _check_separator(separator)
        chunk_coords = self.parse_key(key, prefix, separator)
        if chunk_coords is None:
            raise InvalidChunkCoordinateError(
                f"key {key!r} is not a chunk key of a {self.ndim}-dimensional array "
                f"under prefix {prefix!r}"
            )
        return chunk_coords
