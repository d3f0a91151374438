import asyncio
import contextvars
import functools
import json
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
    Union,
)

from cattr import Converter

from zarrkv.errors import MetadataError

ZARRAY_JSON = ".zarray"
ZGROUP_JSON = ".zgroup"
ZATTRS_JSON = ".zattrs"

ZARR_FORMAT = 2

BytesLike = Union[bytes, bytearray, memoryview]
ChunkCoords = Tuple[int, ...]

T = TypeVar("T")
V = TypeVar("V")


async def to_thread(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    loop = asyncio.get_running_loop()
    ctx = contextvars.copy_context()
    func_call = functools.partial(ctx.run, func, *args, **kwargs)
    return await loop.run_in_executor(None, func_call)


async def concurrent_map(
    items: List[Tuple[Any, ...]],
    func: Callable[..., Awaitable[V]],
    limit: Optional[int] = None,
) -> List[V]:
    if limit is None:
        return await asyncio.gather(*[func(*item) for item in items])

    sem = asyncio.Semaphore(limit)

    async def run(item: Tuple[Any, ...]) -> V:
        async with sem:
            return await func(*item)

    return await asyncio.gather(*[asyncio.ensure_future(run(item)) for item in items])


def json_encode_object(o: Mapping[str, Any]) -> bytes:
    assert isinstance(o, Mapping)
    s = json.dumps(o, ensure_ascii=False, allow_nan=False, indent=4, sort_keys=False)
    return s.encode("utf8")


def json_decode_object(b: BytesLike, document: str) -> Dict[str, Any]:
    try:
        o = json.loads(bytes(b))
    except ValueError as e:
        raise MetadataError(f"{document} is not valid JSON: {e}") from e
    if not isinstance(o, dict):
        raise MetadataError(f"{document} must hold a JSON object, found {type(o)}")
    return o


def make_cattr() -> Converter:
    from zarrkv.codecs import CodecSpec
    from zarrkv.dtype import (
        DTypeDescriptor,
        PrimitiveDType,
        StructuredDType,
        parse_dtype,
        serialize_dtype,
    )

    # errors raised by the hooks below must reach the caller unwrapped
    converter = Converter(detailed_validation=False)

    def _structure_dtype(d: Any, _t: Any) -> DTypeDescriptor:
        return parse_dtype(d)

    converter.register_structure_hook(DTypeDescriptor, _structure_dtype)
    converter.register_unstructure_hook(PrimitiveDType, serialize_dtype)
    converter.register_unstructure_hook(StructuredDType, serialize_dtype)

    def _structure_codec_spec(d: Any, _t: Any) -> CodecSpec:
        return CodecSpec.from_json(d)

    converter.register_structure_hook(CodecSpec, _structure_codec_spec)
    converter.register_unstructure_hook(CodecSpec, lambda spec: spec.to_json())

    return converter
