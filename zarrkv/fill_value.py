import base64
import binascii
import math
from typing import Any, List, Union

import numpy as np

from zarrkv.dtype import DTypeDescriptor
from zarrkv.errors import InvalidFillValueError

_FLOAT_LITERALS = {
    "NaN": math.nan,
    "Infinity": math.inf,
    "-Infinity": -math.inf,
}

JSONFillValue = Union[None, bool, int, float, str, List[Any]]


def _kind(dtype: DTypeDescriptor) -> str:
    return "structured" if dtype.is_structured else dtype.kind


def normalize_fill_value(value: Any, dtype: DTypeDescriptor) -> Any:
    """Coerce a user-supplied fill value to a scalar of `dtype`.

    ``None`` stays ``None``. A plain ``0`` means "all zero bytes" for every
    dtype, including byte strings and structured dtypes.
    """
    if value is None:
        return None
    np_dtype = dtype.to_numpy()
    kind = _kind(dtype)
    if isinstance(value, (bytes, bytearray, memoryview)) and kind in (
        "V",
        "structured",
    ):
        return np.frombuffer(_check_size(bytes(value), dtype), dtype=np_dtype)[0]
    if (
        isinstance(value, (int, float, np.integer, np.floating))
        and not isinstance(value, (bool, np.bool_))
        and value == 0
    ):
        return np.zeros((), dtype=np_dtype)[()]
    if kind == "structured" and isinstance(value, list):
        value = tuple(value)
    if kind == "S" and isinstance(value, bytes) and len(value) > dtype.itemsize:
        _check_size(value, dtype)
    try:
        return np.array(value, dtype=np_dtype)[()]
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidFillValueError(
            f"fill value {value!r} is not compatible with dtype {dtype.to_json()!r}"
        ) from e


def _check_size(raw: bytes, dtype: DTypeDescriptor) -> bytes:
    if len(raw) != dtype.itemsize:
        raise InvalidFillValueError(
            f"fill value holds {len(raw)} bytes but dtype {dtype.to_json()!r} "
            f"has an item size of {dtype.itemsize} bytes"
        )
    return raw


def _encode_float(value: Any) -> Union[float, str]:
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _decode_float(encoded: Any, dtype: DTypeDescriptor) -> float:
    if isinstance(encoded, str):
        if encoded not in _FLOAT_LITERALS:
            raise InvalidFillValueError(
                f"invalid floating point fill value literal {encoded!r}"
            )
        return _FLOAT_LITERALS[encoded]
    if isinstance(encoded, bool) or not isinstance(encoded, (int, float)):
        raise InvalidFillValueError(
            f"fill value {encoded!r} is not a number for dtype {dtype.to_json()!r}"
        )
    return float(encoded)


def _encode_bytes(value: Any, dtype: DTypeDescriptor) -> str:
    if isinstance(value, (bytes, bytearray, memoryview)) and _kind(dtype) != "S":
        raw = _check_size(bytes(value), dtype)
    elif isinstance(value, bytes) and len(value) > dtype.itemsize:
        raw = _check_size(value, dtype)
    else:
        if isinstance(value, list):
            value = tuple(value)
        try:
            raw = np.array(value, dtype=dtype.to_numpy()).tobytes()
        except (TypeError, ValueError) as e:
            raise InvalidFillValueError(
                f"fill value {value!r} is not compatible with dtype "
                f"{dtype.to_json()!r}"
            ) from e
    return base64.standard_b64encode(raw).decode("ascii")


def _decode_bytes(encoded: Any, dtype: DTypeDescriptor) -> bytes:
    if not isinstance(encoded, str):
        raise InvalidFillValueError(
            f"fill value for dtype {dtype.to_json()!r} must be a base64 string"
        )
    try:
        raw = base64.b64decode(encoded.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise InvalidFillValueError(f"fill value {encoded!r} is not base64") from e
    return _check_size(raw, dtype)


def _check_int_range(value: int, dtype: DTypeDescriptor) -> int:
    info = np.iinfo(dtype.to_numpy())
    if not info.min <= value <= info.max:
        raise InvalidFillValueError(
            f"fill value {value} is out of range for dtype {dtype.to_json()!r}"
        )
    return value


def encode_fill_value(value: Any, dtype: DTypeDescriptor) -> JSONFillValue:
    if value is None:
        return None
    kind = _kind(dtype)
    if kind in ("S", "V", "structured"):
        return _encode_bytes(value, dtype)
    try:
        if kind == "f":
            return _encode_float(value)
        if kind == "c":
            value = complex(value)
            return [_encode_float(value.real), _encode_float(value.imag)]
        if kind == "b":
            return bool(value)
        if kind in ("i", "u"):
            if isinstance(value, (float, np.floating)) and not (
                float(value).is_integer()
            ):
                raise InvalidFillValueError(f"fill value {value!r} is not an integer")
            return _check_int_range(int(value), dtype)
        if kind in ("m", "M"):
            np_dtype = dtype.to_numpy().newbyteorder("=")
            return int(np.array(value, dtype=np_dtype).view("i8"))
        if kind == "U":
            return str(value)
    except InvalidFillValueError:
        raise
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidFillValueError(
            f"fill value {value!r} is not compatible with dtype {dtype.to_json()!r}"
        ) from e
    raise InvalidFillValueError(f"unsupported dtype kind {kind!r}")


def decode_fill_value(encoded: JSONFillValue, dtype: DTypeDescriptor) -> Any:
    """Decode the ``fill_value`` member of ``.zarray``.

    ``None`` is returned for a JSON ``null``: chunks that were never written
    have undefined contents.
    """
    if encoded is None:
        return None
    kind = _kind(dtype)
    if kind == "S":
        return _decode_bytes(encoded, dtype)
    if kind in ("V", "structured"):
        raw = _decode_bytes(encoded, dtype)
        return np.frombuffer(raw, dtype=dtype.to_numpy())[0]
    if kind == "f":
        return _decode_float(encoded, dtype)
    if kind == "c":
        if not isinstance(encoded, list) or len(encoded) != 2:
            raise InvalidFillValueError(
                f"complex fill value must be [real, imag], found {encoded!r}"
            )
        return complex(
            _decode_float(encoded[0], dtype), _decode_float(encoded[1], dtype)
        )
    if kind == "b":
        if not isinstance(encoded, bool):
            raise InvalidFillValueError(
                f"boolean fill value expected, found {encoded!r}"
            )
        return encoded
    if kind in ("i", "u", "m", "M"):
        if isinstance(encoded, float) and encoded.is_integer():
            encoded = int(encoded)
        if isinstance(encoded, bool) or not isinstance(encoded, int):
            raise InvalidFillValueError(
                f"integer fill value expected, found {encoded!r}"
            )
        if kind in ("i", "u"):
            return _check_int_range(encoded, dtype)
        np_dtype = dtype.to_numpy().newbyteorder("=")
        return np.array(encoded, dtype="i8").view(np_dtype)[()]
    if kind == "U":
        if not isinstance(encoded, str):
            raise InvalidFillValueError(
                f"string fill value expected, found {encoded!r}"
            )
        return encoded
    raise InvalidFillValueError(f"unsupported dtype kind {kind!r}")
