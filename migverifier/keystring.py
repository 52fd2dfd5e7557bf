"""Decoder for the server's KeyString index-key encoding.

Inverted field ordering, type information and full Decimal128 values are not
supported. Decimal continuations are skipped, and the value is returned as
the nearest double.
"""

from __future__ import annotations

import binascii
import enum
import math
import struct
from typing import Any, Union

from bson import SON, Binary, Code, DBRef, MaxKey, MinKey, ObjectId, Regex, Timestamp
from bson.datetime_ms import DatetimeMS
from bson.int64 import Int64

__all__ = ["KeyStringVersion", "KeyStringError", "UNDEFINED", "keystring_to_bson"]

_MASK64 = (1 << 64) - 1

# Type bytes.
_MIN_KEY = 10
_UNDEFINED = 15
_NULLISH = 20
_NUMERIC = 30
_STRING_LIKE = 60
_OBJECT = 70
_ARRAY = 80
_BIN_DATA = 90
_OID = 100
_BOOL = 110
_DATE = 120
_TIMESTAMP = 130
_REGEX = 140
_DBREF = 150
_CODE = 160
_CODE_WITH_SCOPE = 170
_MAX_KEY = 240

_NUMERIC_NAN = _NUMERIC + 0
_NUMERIC_NEGATIVE_LARGE_MAGNITUDE = _NUMERIC + 1
_NUMERIC_NEGATIVE_8_BYTE_INT = _NUMERIC + 2
_NUMERIC_NEGATIVE_1_BYTE_INT = _NUMERIC + 9
_NUMERIC_NEGATIVE_SMALL_MAGNITUDE = _NUMERIC + 10
_NUMERIC_ZERO = _NUMERIC + 11
_NUMERIC_POSITIVE_SMALL_MAGNITUDE = _NUMERIC + 12
_NUMERIC_POSITIVE_1_BYTE_INT = _NUMERIC + 13
_NUMERIC_POSITIVE_8_BYTE_INT = _NUMERIC + 20
_NUMERIC_POSITIVE_LARGE_MAGNITUDE = _NUMERIC + 21

_BOOL_FALSE = _BOOL + 0
_BOOL_TRUE = _BOOL + 1

_END = 4
_LESS = 1
_GREATER = 254


class KeyStringVersion(enum.IntEnum):
    """KeyString format version."""

    V0 = 0
    V1 = 1


class KeyStringError(ValueError):
    """Raised when a KeyString cannot be decoded."""


class _Undefined:
    """The BSON 'undefined' value."""

    _instance: "_Undefined | None" = None

    def __new__(cls) -> "_Undefined":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED = _Undefined()


class _Mode(enum.Enum):
    TOP_LEVEL = enum.auto()
    SINGLE = enum.auto()
    NAMED = enum.auto()


def _float_from_bits(bits: int) -> float:
    return struct.unpack(">d", (bits & _MASK64).to_bytes(8, "big"))[0]


def _num_bytes_for_int(ctype: int) -> int:
    if ctype >= _NUMERIC_POSITIVE_1_BYTE_INT:
        return ctype - _NUMERIC_POSITIVE_1_BYTE_INT + 1
    return _NUMERIC_NEGATIVE_1_BYTE_INT - ctype + 1


class _Reader:
    """Sequential reader over a byte string."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def has_byte(self) -> bool:
        return self._pos < len(self._data)

    def peek(self) -> int:
        return self._data[self._pos]

    def read_byte(self) -> int:
        if self._pos >= len(self._data):
            raise KeyStringError("Unexpected end of input")
        self._pos += 1
        return self._data[self._pos - 1]

    def read_bytes(self, n: int) -> bytes:
        if self._pos + n > len(self._data):
            raise KeyStringError("unexpected end of input")
        chunk = self._data[self._pos : self._pos + n]
        self._pos += n
        return chunk

    def read_u32(self) -> int:
        return int.from_bytes(self.read_bytes(4), "big")

    def read_u64(self) -> int:
        return int.from_bytes(self.read_bytes(8), "big")

    def read_cstring(self) -> str:
        nul = self._data.find(b"\x00", self._pos)
        length = len(self._data) - self._pos if nul == -1 else nul - self._pos
        raw = self.read_bytes(length)
        self.read_byte()  # the terminating NUL
        return raw.decode("utf-8", errors="surrogateescape")

    def read_cstring_with_nuls(self) -> str:
        text = self.read_cstring()
        while self.has_byte() and self.peek() == 0xFF:
            self.read_byte()
            text += "\x00" + self.read_cstring()
        return text


def _read_large_magnitude(negative: bool, version: KeyStringVersion, reader: _Reader) -> float:
    encoded = reader.read_u64()
    if negative:
        encoded ^= _MASK64
    if version == KeyStringVersion.V0:
        return _float_from_bits(encoded)
    if encoded & (1 << 63) == 0:
        has_continuation = encoded & 1 != 0
        encoded = (encoded >> 1) | (1 << 62)
        value = _float_from_bits(encoded)
        if negative:
            value = -value
        if has_continuation:
            reader.read_u64()
        return value
    if encoded != _MASK64:
        # Decimal128 of too large a magnitude: skip its low bits.
        reader.read_u64()
    return -math.inf if negative else math.inf


def _read_small_magnitude(
    negative: bool, version: KeyStringVersion, reader: _Reader
) -> Union[int, float]:
    encoded = reader.read_u64()
    if negative:
        encoded ^= _MASK64
    if version == KeyStringVersion.V0:
        return _float_from_bits(encoded)
    top = encoded >> 62
    if top == 0:
        # A decimal smaller in magnitude than the smallest double.
        reader.read_u64()
        return 0
    if top in (1, 2):
        has_continuation = encoded & 1 != 0
        encoded = (encoded - (1 << 62)) >> 1
        value = math.ldexp(_float_from_bits(encoded), -256)
        if has_continuation:
            reader.read_u64()
        return -value if negative else value
    value = _float_from_bits(encoded >> 2)
    return -value if negative else value


def _read_integer_like(
    ctype: int, version: KeyStringVersion, reader: _Reader
) -> Union[int, Int64, float]:
    negative = ctype <= _NUMERIC_NEGATIVE_1_BYTE_INT
    int_bytes = _num_bytes_for_int(ctype)

    def next_byte() -> int:
        byte = reader.read_byte()
        return byte ^ 0xFF if negative else byte

    encoded_integer = 0
    for _ in range(int_bytes):
        encoded_integer = (encoded_integer << 8) | next_byte()

    has_fraction = encoded_integer & 1 != 0
    integer_part = encoded_integer >> 1

    if not has_fraction:
        max_int32 = 1 << 31
        fits_int32 = integer_part < max_int32 or (negative and integer_part == max_int32)
        value = -integer_part if negative else integer_part
        return value if fits_int32 else Int64(value)

    if version == KeyStringVersion.V0:
        exponent = integer_part.bit_length() - 1
        fractional_bits = 52 - exponent
        if fractional_bits < 0:
            raise KeyStringError("fractional value with an oversized integer part")
        fractional_bytes = (fractional_bits + 7) // 8

        double_bits = (integer_part << fractional_bits) & _MASK64
        double_bits &= ~(1 << 52) & _MASK64
        double_bits |= ((exponent + 1023) << 52) & _MASK64
        if negative:
            double_bits |= 1 << 63
        for shift in reversed(range(fractional_bytes)):
            double_bits |= next_byte() << (shift * 8)
        return _float_from_bits(double_bits)

    frac_bytes = 8 - int_bytes
    encoded_fraction = integer_part
    for _ in range(frac_bytes):
        encoded_fraction = ((encoded_fraction << 8) | next_byte()) & _MASK64

    value = math.ldexp(float(encoded_fraction & ~3 & _MASK64), -8 * frac_bytes)
    dcm = encoded_fraction & 3 if frac_bytes > 0 else 3
    if dcm not in (0, 2):
        reader.read_u64()
    return -value if negative else value


def _read_value(ctype: int, version: KeyStringVersion, reader: _Reader) -> Any:
    if ctype == _MIN_KEY:
        return MinKey()
    if ctype == _MAX_KEY:
        return MaxKey()
    if ctype == _NULLISH:
        return None
    if ctype == _UNDEFINED:
        return UNDEFINED
    if ctype == _BOOL_TRUE:
        return True
    if ctype == _BOOL_FALSE:
        return False
    if ctype == _DATE:
        millis = reader.read_u64() ^ (1 << 63)
        if millis >= 1 << 63:
            millis -= 1 << 64
        return DatetimeMS(millis)
    if ctype == _TIMESTAMP:
        seconds = reader.read_u32()
        increment = reader.read_u32()
        return Timestamp(seconds, increment)
    if ctype == _OID:
        return ObjectId(reader.read_bytes(12))
    if ctype == _STRING_LIKE:
        return reader.read_cstring_with_nuls()
    if ctype == _CODE:
        return Code(reader.read_cstring_with_nuls())
    if ctype == _CODE_WITH_SCOPE:
        code = reader.read_cstring_with_nuls()
        scope = _decode_partial(version, reader, _Mode.NAMED)
        return Code(code, scope)
    if ctype == _BIN_DATA:
        size = reader.read_byte()
        if size == 0xFF:
            size = reader.read_u32()
        subtype = reader.read_byte()
        return Binary(reader.read_bytes(size), subtype)
    if ctype == _REGEX:
        pattern = reader.read_cstring()
        flags = reader.read_cstring()
        return Regex(pattern, flags)
    if ctype == _DBREF:
        size = reader.read_u32()
        namespace = reader.read_bytes(size).decode("utf-8", errors="surrogateescape")
        return DBRef(namespace, ObjectId(reader.read_bytes(12)))
    if ctype == _OBJECT:
        return _decode_partial(version, reader, _Mode.NAMED)
    if ctype == _ARRAY:
        items = []
        while reader.has_byte() and reader.peek() != 0:
            items.append(_decode_partial(version, reader, _Mode.SINGLE))
        reader.read_byte()
        return items
    if ctype == _NUMERIC_NAN:
        return math.nan
    if ctype == _NUMERIC_ZERO:
        return 0
    if ctype in (_NUMERIC_NEGATIVE_LARGE_MAGNITUDE, _NUMERIC_POSITIVE_LARGE_MAGNITUDE):
        return _read_large_magnitude(
            ctype == _NUMERIC_NEGATIVE_LARGE_MAGNITUDE, version, reader
        )
    if ctype in (_NUMERIC_NEGATIVE_SMALL_MAGNITUDE, _NUMERIC_POSITIVE_SMALL_MAGNITUDE):
        return _read_small_magnitude(
            ctype == _NUMERIC_NEGATIVE_SMALL_MAGNITUDE, version, reader
        )
    if (
        _NUMERIC_NEGATIVE_8_BYTE_INT <= ctype <= _NUMERIC_NEGATIVE_1_BYTE_INT
        or _NUMERIC_POSITIVE_1_BYTE_INT <= ctype <= _NUMERIC_POSITIVE_8_BYTE_INT
    ):
        return _read_integer_like(ctype, version, reader)
    raise KeyStringError(f"Unknown keystring ctype {ctype}")


def _decode_partial(version: KeyStringVersion, reader: _Reader, mode: _Mode) -> Any:
    top_level: list[tuple[str, Any]] = []
    named: SON = SON()
    while reader.has_byte():
        ctype = reader.read_byte()
        if ctype in (_LESS, _GREATER):
            ctype = reader.read_byte()
        if ctype == _END:
            break
        if mode is _Mode.NAMED:
            if ctype == 0:
                break
            key = reader.read_cstring()
            ctype = reader.read_byte()  # the precise type byte
            named[key] = _read_value(ctype, version, reader)
        elif mode is _Mode.SINGLE:
            return _read_value(ctype, version, reader)
        else:
            top_level.append(("", _read_value(ctype, version, reader)))
    return top_level if mode is _Mode.TOP_LEVEL else named


def keystring_to_bson(
    version: KeyStringVersion | int, data: Union[bytes, bytearray, memoryview, str]
) -> list[tuple[str, Any]]:
    """Decode a KeyString (raw bytes or a hex string) into (key, value) pairs.

    Top-level keys are always the empty string.
    """
    version = KeyStringVersion(version)
    if isinstance(data, str):
        try:
            raw = binascii.unhexlify(data)
        except (binascii.Error, ValueError) as exc:
            raise KeyStringError(f"invalid hex string: {exc}") from exc
    elif isinstance(data, (bytes, bytearray, memoryview)):
        raw = bytes(data)
    else:
        raise TypeError("keystring_to_bson accepts only bytes or a hex string")
    return _decode_partial(version, _Reader(raw), _Mode.TOP_LEVEL)