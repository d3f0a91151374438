import math
import re
from typing import Any, List, Literal, Optional, Tuple, Union

import numpy as np
from attr import frozen

from zarrkv.errors import InvalidDTypeError

_PRIMITIVE_DTYPE_RE = re.compile(
    r"^(?P<byteorder>.)(?P<kind>.)(?P<size>0|[1-9][0-9]*)"
    r"(?:\[(?P<unit>[^\]]*)\])?$"
)
_TIME_UNIT_RE = re.compile(r"^(?:[1-9][0-9]*)?(?:Y|M|W|D|h|m|s|ms|us|ns|ps|fs|as)$")

BYTEORDERS = ("<", ">", "|")
KINDS = ("b", "i", "u", "f", "c", "m", "M", "S", "U", "V")

_FIXED_ITEMSIZES = {
    "b": (1,),
    "i": (1, 2, 4, 8),
    "u": (1, 2, 4, 8),
    "f": (2, 4, 8),
    "c": (8, 16),
    "m": (8,),
    "M": (8,),
}


@frozen
class PrimitiveDType:
    byteorder: Literal["<", ">", "|"]
    kind: str
    # characters for "U", bytes for every other kind
    size: int
    time_unit: Optional[str] = None

    @property
    def itemsize(self) -> int:
        if self.kind == "U":
            return 4 * self.size
        return self.size

    def to_json(self) -> str:
        s = f"{self.byteorder}{self.kind}{self.size}"
        if self.time_unit is not None:
            s += f"[{self.time_unit}]"
        return s

    def to_numpy(self) -> np.dtype:
        return np.dtype(self.to_json())

    @property
    def is_structured(self) -> bool:
        return False


@frozen
class StructuredField:
    name: str
    dtype: "DTypeDescriptor"
    subshape: Optional[Tuple[int, ...]] = None

    @property
    def itemsize(self) -> int:
        count = math.prod(self.subshape) if self.subshape is not None else 1
        return self.dtype.itemsize * count

    def to_json(self) -> List[Any]:
        out: List[Any] = [self.name, self.dtype.to_json()]
        if self.subshape is not None:
            out.append(list(self.subshape))
        return out


@frozen
class StructuredDType:
    fields: Tuple[StructuredField, ...]

    @property
    def itemsize(self) -> int:
        return sum(f.itemsize for f in self.fields)

    @property
    def kind(self) -> str:
        return "V"

    @property
    def is_structured(self) -> bool:
        return True

    def to_json(self) -> List[Any]:
        return [f.to_json() for f in self.fields]

    def to_numpy(self) -> np.dtype:
        descr = []
        for f in self.fields:
            if f.subshape is not None:
                descr.append((f.name, f.dtype.to_numpy(), f.subshape))
            else:
                descr.append((f.name, f.dtype.to_numpy()))
        return np.dtype(descr)


DTypeDescriptor = Union[PrimitiveDType, StructuredDType]


def _parse_primitive(spec: str) -> PrimitiveDType:
    match = _PRIMITIVE_DTYPE_RE.match(spec)
    if match is None:
        raise InvalidDTypeError(f"malformed dtype string {spec!r}")
    byteorder, kind = match.group("byteorder"), match.group("kind")
    size, unit = int(match.group("size")), match.group("unit")

    if byteorder not in BYTEORDERS:
        raise InvalidDTypeError(f"invalid byteorder {byteorder!r} in dtype {spec!r}")
    if kind not in KINDS:
        raise InvalidDTypeError(f"invalid kind {kind!r} in dtype {spec!r}")

    allowed = _FIXED_ITEMSIZES.get(kind)
    if allowed is not None and size not in allowed:
        raise InvalidDTypeError(
            f"invalid itemsize {size} for kind {kind!r} in dtype {spec!r}"
        )
    if allowed is None and size < 1:
        raise InvalidDTypeError(f"size must be positive in dtype {spec!r}")

    if kind in ("m", "M"):
        if unit is None:
            raise InvalidDTypeError(f"dtype {spec!r} requires a time unit")
        if not _TIME_UNIT_RE.match(unit):
            raise InvalidDTypeError(f"invalid time unit {unit!r} in dtype {spec!r}")
    elif unit is not None:
        raise InvalidDTypeError(f"dtype {spec!r} must not carry a time unit")

    return PrimitiveDType(
        byteorder=byteorder,  # type: ignore[arg-type]
        kind=kind,
        size=size,
        time_unit=unit,
    )


def _parse_subshape(spec: Any, name: str) -> Tuple[int, ...]:
    if not isinstance(spec, (list, tuple)):
        raise InvalidDTypeError(f"subshape of field {name!r} must be a list")
    for s in spec:
        if isinstance(s, bool) or not isinstance(s, int) or s < 1:
            raise InvalidDTypeError(
                f"subshape of field {name!r} must hold positive integers, found {s!r}"
            )
    return tuple(spec)


def _parse_structured(spec: Union[list, tuple]) -> StructuredDType:
    if len(spec) == 0:
        raise InvalidDTypeError("structured dtype must have at least one field")
    fields = []
    seen = set()
    for item in spec:
        if not isinstance(item, (list, tuple)) or len(item) not in (2, 3):
            raise InvalidDTypeError(
                f"structured dtype fields must be [name, dtype] or "
                f"[name, dtype, subshape], found {item!r}"
            )
        name = item[0]
        if not isinstance(name, str) or name == "":
            raise InvalidDTypeError(f"invalid field name {name!r}")
        if name in seen:
            raise InvalidDTypeError(f"duplicate field name {name!r}")
        seen.add(name)
        subshape = _parse_subshape(item[2], name) if len(item) == 3 else None
        fields.append(StructuredField(name, parse_dtype(item[1]), subshape))
    return StructuredDType(tuple(fields))


def parse_dtype(spec: Any) -> DTypeDescriptor:
    """Parse the JSON encoding of a Zarr v2 dtype.

    A string is parsed as a primitive (``"<u2"``, ``"<M8[ns]"``), a list as a
    structured dtype whose fields may themselves be structured.
    """
    if isinstance(spec, str):
        return _parse_primitive(spec)
    if isinstance(spec, (list, tuple)):
        return _parse_structured(spec)
    raise InvalidDTypeError(f"dtype must be a string or a list, found {spec!r}")


def serialize_dtype(dtype: DTypeDescriptor) -> Union[str, List[Any]]:
    return dtype.to_json()


def _descr_to_json(descr: Any) -> Any:
    if isinstance(descr, str):
        return descr
    return [
        [item[0], _descr_to_json(item[1]), *[list(s) for s in item[2:]]]
        for item in descr
    ]


def dtype_from_numpy(dtype: np.dtype) -> DTypeDescriptor:
    if dtype.fields is None:
        if dtype.subdtype is not None:
            raise InvalidDTypeError(f"sub-array dtype {dtype} needs a field name")
        return parse_dtype(dtype.str)
    return parse_dtype(_descr_to_json(dtype.descr))


def as_dtype_descriptor(value: Any) -> DTypeDescriptor:
    if isinstance(value, (PrimitiveDType, StructuredDType)):
        return value
    if isinstance(value, np.dtype):
        return dtype_from_numpy(value)
    if isinstance(value, str) and value[:1] in BYTEORDERS:
        return parse_dtype(value)
    if isinstance(value, list):
        return parse_dtype(value)
    try:
        np_dtype = np.dtype(value)
    except (TypeError, ValueError) as e:
        raise InvalidDTypeError(f"cannot interpret {value!r} as a dtype") from e
    return dtype_from_numpy(np_dtype)
