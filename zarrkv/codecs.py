from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numcodecs
import numpy as np
from attr import field, frozen
from numcodecs.abc import Codec
from numcodecs.compat import ensure_bytes
from numcodecs.registry import codec_registry, register_codec  # noqa: F401

from zarrkv.common import BytesLike
from zarrkv.errors import (
    CodecFailureError,
    MetadataError,
    MissingFieldError,
    UnknownCodecError,
)

logger = logging.getLogger(__name__)

# See https://zarr.readthedocs.io/en/stable/tutorial.html#configuring-blosc
numcodecs.blosc.use_threads = False


@frozen
class CodecSpec:
    """A filter or compressor as it appears in ``.zarray``.

    ``{"id": "blosc", "cname": "lz4"}`` becomes
    ``CodecSpec("blosc", {"cname": "lz4"})``.
    """

    id: str
    params: Dict[str, Any] = field(factory=dict)

    @classmethod
    def from_json(cls, config: Any) -> CodecSpec:
        if isinstance(config, CodecSpec):
            return config
        if not isinstance(config, dict):
            raise MetadataError(f"codec configuration must be an object: {config!r}")
        if "id" not in config:
            raise MissingFieldError("id", "codec configuration")
        codec_id = config["id"]
        if not isinstance(codec_id, str):
            raise MetadataError(f"codec id must be a string, found {codec_id!r}")
        return cls(codec_id, {k: v for k, v in config.items() if k != "id"})

    def to_json(self) -> Dict[str, Any]:
        return {"id": self.id, **self.params}


CodecLike = Union[CodecSpec, Dict[str, Any], Codec]


def get_codec(spec: CodecLike) -> Codec:
    if isinstance(spec, Codec):
        return spec
    spec = CodecSpec.from_json(spec)
    try:
        return numcodecs.get_codec(spec.to_json())
    except (KeyError, ValueError, TypeError) as e:
        if spec.id not in codec_registry:
            raise UnknownCodecError(spec.id) from e
        raise CodecFailureError(
            f"cannot configure codec {spec.id!r} with {spec.params!r}: {e}"
        ) from e


def normalize_codec_spec(spec: CodecLike) -> CodecSpec:
    """Resolve `spec` and return the codec's complete configuration."""
    config = get_codec(spec).get_config()
    # numcodecs emits numpy dtypes in some configs, e.g. `delta`
    for k, v in config.items():
        if isinstance(v, np.dtype):
            config[k] = v.str
    return CodecSpec.from_json(config)


@frozen
class CodecPipeline:
    filters: Tuple[Codec, ...]
    compressor: Optional[Codec]

    @classmethod
    def from_metadata(
        cls,
        filters: Optional[Iterable[CodecLike]],
        compressor: Optional[CodecLike],
    ) -> CodecPipeline:
        return cls(
            filters=tuple(get_codec(f) for f in filters or []),
            compressor=get_codec(compressor) if compressor is not None else None,
        )

    @property
    def codec_ids(self) -> List[str]:
        codecs = list(self.filters)
        if self.compressor is not None:
            codecs.append(self.compressor)
        return [codec.codec_id for codec in codecs]

    def encode_chunk(self, chunk: Union[BytesLike, np.ndarray]) -> bytes:
        """Apply the filters in declared order, then the compressor.

        `chunk` is either raw bytes or a flat array; arrays keep their dtype
        through the filters so that typesize-aware compressors see it.
        """
        chunk_data: Any = chunk
        for codec in self.filters:
            chunk_data = self._apply(codec.encode, codec, chunk_data, "encode")

        if self.compressor is not None:
            if isinstance(chunk_data, np.ndarray) and not (
                chunk_data.flags.c_contiguous or chunk_data.flags.f_contiguous
            ):
                chunk_data = chunk_data.copy(order="A")
            chunk_data = self._apply(
                self.compressor.encode, self.compressor, chunk_data, "encode"
            )

        return ensure_bytes(chunk_data)

    def decode_chunk(
        self, stored: BytesLike, expected_nbytes: Optional[int] = None
    ) -> bytes:
        """Decompress, then invert the filters in reverse order."""
        chunk_data: Any = stored
        if self.compressor is not None:
            chunk_data = self._apply(
                self.compressor.decode, self.compressor, chunk_data, "decode"
            )

        for codec in self.filters[::-1]:
            chunk_data = self._apply(codec.decode, codec, chunk_data, "decode")

        raw = ensure_bytes(chunk_data)
        if expected_nbytes is not None and len(raw) != expected_nbytes:
            raise CodecFailureError(
                f"decoded chunk holds {len(raw)} bytes, expected {expected_nbytes} "
                f"bytes (codecs: {self.codec_ids})"
            )
        return raw

    @staticmethod
    def _apply(func: Any, codec: Codec, chunk_data: Any, action: str) -> Any:
        try:
            return func(chunk_data)
        except Exception as e:
            logger.debug("codec %r failed to %s chunk", codec.codec_id, action)
            raise CodecFailureError(
                f"codec {codec.codec_id!r} failed to {action} chunk: {e}"
            ) from e
