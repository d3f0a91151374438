import math

import numpy as np
import pytest

from zarrkv.dtype import parse_dtype
from zarrkv.errors import InvalidFillValueError
from zarrkv.fill_value import (
    decode_fill_value,
    encode_fill_value,
    normalize_fill_value,
)

RGB = parse_dtype([["r", "|u1"], ["g", "|u1"], ["b", "|u1"]])


@pytest.mark.parametrize("spec", ["<f2", "<f4", ">f8", "<c8", "<i4", "|S3", "|b1"])
def test_null(spec: str):
    assert encode_fill_value(None, parse_dtype(spec)) is None
    assert decode_fill_value(None, parse_dtype(spec)) is None
    assert normalize_fill_value(None, parse_dtype(spec)) is None


@pytest.mark.parametrize(
    "value,encoded",
    [
        (math.nan, "NaN"),
        (math.inf, "Infinity"),
        (-math.inf, "-Infinity"),
        (1.5, 1.5),
        (np.float32(0.25), 0.25),
    ],
)
def test_float(value, encoded):
    dtype = parse_dtype("<f8")
    assert encode_fill_value(value, dtype) == encoded
    decoded = decode_fill_value(encoded, dtype)
    if math.isnan(value):
        assert math.isnan(decoded)
    else:
        assert decoded == value


def test_float_invalid_literal():
    dtype = parse_dtype("<f4")
    with pytest.raises(InvalidFillValueError):
        decode_fill_value("nan", dtype)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(True, dtype)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value([1.0], dtype)


def test_complex():
    dtype = parse_dtype("<c16")
    assert encode_fill_value(complex(1, math.nan), dtype) == [1.0, "NaN"]
    assert decode_fill_value([1.0, "-Infinity"], dtype) == complex(1, -math.inf)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(1.0, dtype)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value([1.0, 2.0, 3.0], dtype)


def test_integer():
    assert encode_fill_value(-1, parse_dtype("|i1")) == -1
    assert encode_fill_value(np.uint16(7), parse_dtype("<u2")) == 7
    assert encode_fill_value(3.0, parse_dtype("<i4")) == 3
    assert decode_fill_value(3.0, parse_dtype("<i4")) == 3
    assert decode_fill_value(255, parse_dtype("|u1")) == 255

    with pytest.raises(InvalidFillValueError):
        encode_fill_value(300, parse_dtype("|u1"))
    with pytest.raises(InvalidFillValueError):
        encode_fill_value(2.5, parse_dtype("<i4"))
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(-1, parse_dtype("<u8"))
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(True, parse_dtype("<i4"))
    with pytest.raises(InvalidFillValueError):
        decode_fill_value("1", parse_dtype("<i4"))


def test_bool():
    dtype = parse_dtype("|b1")
    assert encode_fill_value(np.bool_(True), dtype) is True
    assert decode_fill_value(False, dtype) is False
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(1, dtype)


def test_datetime():
    dtype = parse_dtype("<M8[ns]")
    assert encode_fill_value(np.datetime64(1, "ns"), dtype) == 1
    assert decode_fill_value(1, dtype) == np.datetime64(1, "ns")

    nat = encode_fill_value(np.datetime64("NaT"), dtype)
    assert nat == np.iinfo(np.int64).min
    assert np.isnat(decode_fill_value(nat, dtype))

    assert decode_fill_value(5, parse_dtype(">m8[s]")) == np.timedelta64(5, "s")


def test_unicode():
    dtype = parse_dtype("<U8")
    assert encode_fill_value("hé", dtype) == "hé"
    assert decode_fill_value("hé", dtype) == "hé"
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(5, dtype)

    dtype = parse_dtype("<U1")
    assert normalize_fill_value("x", dtype) == "x"
    assert encode_fill_value(normalize_fill_value(0, dtype), dtype) == ""


def test_bytes():
    dtype = parse_dtype("|S4")
    assert encode_fill_value(b"ab", dtype) == "YWIAAA=="
    assert decode_fill_value("YWIAAA==", dtype) == b"ab\x00\x00"

    with pytest.raises(InvalidFillValueError):
        encode_fill_value(b"abcde", dtype)
    # wrong length after decoding
    with pytest.raises(InvalidFillValueError):
        decode_fill_value("AQI=", dtype)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value("!!!!", dtype)
    with pytest.raises(InvalidFillValueError):
        decode_fill_value(0, dtype)


def test_void():
    dtype = parse_dtype("|V2")
    assert encode_fill_value(b"\x01\x02", dtype) == "AQI="
    decoded = decode_fill_value("AQI=", dtype)
    assert decoded.tobytes() == b"\x01\x02"
    with pytest.raises(InvalidFillValueError):
        encode_fill_value(b"\x01", dtype)


def test_structured_raw_bytes():
    assert encode_fill_value(bytes([10, 20, 30]), RGB) == "ChQe"

    decoded = decode_fill_value("ChQe", RGB)
    assert decoded.tobytes() == bytes([10, 20, 30])
    assert (decoded["r"], decoded["g"], decoded["b"]) == (10, 20, 30)


def test_structured_tuple():
    dtype = parse_dtype([["a", "<i4"], ["b", "|u1"]])
    assert encode_fill_value((1, 2), dtype) == "AQAAAAI="
    assert encode_fill_value([1, 2], dtype) == "AQAAAAI="
    decoded = decode_fill_value("AQAAAAI=", dtype)
    assert decoded["a"] == 1
    assert decoded["b"] == 2


def test_normalize():
    value = normalize_fill_value(1.5, parse_dtype("<f4"))
    assert value == np.float32(1.5)
    assert value.dtype == np.dtype("<f4")

    assert normalize_fill_value(np.nan, parse_dtype("<f8")) != 0
    assert normalize_fill_value(True, parse_dtype("|b1")) == np.bool_(True)

    with pytest.raises(InvalidFillValueError):
        normalize_fill_value("abc", parse_dtype("<i4"))
    with pytest.raises(InvalidFillValueError):
        normalize_fill_value(b"abcde", parse_dtype("|S4"))


def test_normalize_zero_means_zero_bytes():
    bytes_dtype = parse_dtype("|S4")
    float_dtype = parse_dtype("<f8")
    zero = normalize_fill_value(0, bytes_dtype)
    assert encode_fill_value(zero, bytes_dtype) == "AAAAAA=="
    assert encode_fill_value(normalize_fill_value(0, RGB), RGB) == "AAAA"
    assert encode_fill_value(normalize_fill_value(0, float_dtype), float_dtype) == 0.0


def test_normalize_structured_bytes():
    value = normalize_fill_value(bytes([10, 20, 30]), RGB)
    assert value.tobytes() == bytes([10, 20, 30])
    assert encode_fill_value(value, RGB) == "ChQe"
    with pytest.raises(InvalidFillValueError):
        normalize_fill_value(bytes([10, 20]), RGB)
