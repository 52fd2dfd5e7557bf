"""Compare raw BSON documents, ignoring field order within documents."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import bson

_TYPE_DOCUMENT = 0x03
_TYPE_ARRAY = 0x04

_FIXED_SIZES = {
    0x01: 8,  # double
    0x06: 0,  # undefined
    0x07: 12,  # ObjectId
    0x08: 1,  # bool
    0x09: 8,  # datetime
    0x0A: 0,  # null
    0x10: 4,  # int32
    0x11: 8,  # timestamp
    0x12: 8,  # int64
    0x13: 16,  # decimal128
    0xFF: 0,  # min key
    0x7F: 0,  # max key
}
_STRING_TYPES = {0x02, 0x0D, 0x0E}
_LENGTH_PREFIXED_TYPES = {_TYPE_DOCUMENT, _TYPE_ARRAY, 0x0F}


class BsonCompareError(ValueError):
    """Raised when documents cannot be parsed for comparison."""


@dataclass
class MismatchDetails:
    """Top-level field names that differ between two documents."""

    missing_field_on_src: list[str] = field(default_factory=list)
    missing_field_on_dst: list[str] = field(default_factory=list)
    field_contents_differ: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Element:
    key: str
    type: int
    value: bytes


def _as_bytes(doc: Any) -> bytes:
    raw = getattr(doc, "raw", None)
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if isinstance(doc, Mapping):
        return bson.encode(doc)
    return bytes(doc)


def _read_int32(data: bytes, pos: int, end: int) -> int:
    if pos + 4 > end:
        raise ValueError("insufficient bytes to read length")
    (value,) = struct.unpack_from("<i", data, pos)
    if value < 0:
        raise ValueError(f"invalid length {value}")
    return value


def _value_size(etype: int, data: bytes, pos: int, end: int) -> int:
    if etype in _FIXED_SIZES:
        return _FIXED_SIZES[etype]
    if etype in _STRING_TYPES:
        return 4 + _read_int32(data, pos, end)
    if etype in _LENGTH_PREFIXED_TYPES:
        return _read_int32(data, pos, end)
    if etype == 0x05:
        return 5 + _read_int32(data, pos, end)
    if etype == 0x0B:
        first = data.find(b"\x00", pos, end)
        second = data.find(b"\x00", first + 1, end) if first >= 0 else -1
        if second < 0:
            raise ValueError("unterminated regular expression")
        return second + 1 - pos
    if etype == 0x0C:
        return 4 + _read_int32(data, pos, end) + 12
    raise ValueError(f"unknown element type 0x{etype:02x}")


def _elements(data: bytes) -> list[_Element]:
    if len(data) < 5:
        raise ValueError("document too short")
    (length,) = struct.unpack_from("<i", data, 0)
    if length < 5 or length > len(data):
        raise ValueError(f"invalid document length {length}")
    end = length - 1
    if data[end] != 0:
        raise ValueError("document is not null-terminated")

    elements = []
    pos = 4
    while pos < end:
        etype = data[pos]
        pos += 1
        nul = data.find(b"\x00", pos, end)
        if nul < 0:
            raise ValueError("unterminated element key")
        key = data[pos:nul].decode("utf-8")
        pos = nul + 1
        size = _value_size(etype, data, pos, end)
        if pos + size > end:
            raise ValueError(f"element {key!r} runs past end of document")
        elements.append(_Element(key, etype, data[pos : pos + size]))
        pos += size
    return elements


def _parse_documents(src_raw: Any, dst_raw: Any) -> tuple[list[_Element], list[_Element]]:
    try:
        src = _elements(_as_bytes(src_raw))
    except (ValueError, struct.error) as exc:
        raise BsonCompareError(f"Error parsing source document for compare: {exc}") from exc
    try:
        dst = _elements(_as_bytes(dst_raw))
    except (ValueError, struct.error) as exc:
        raise BsonCompareError(f"Error parsing dest document for compare: {exc}") from exc
    return src, dst


def _values_match(src: _Element, dst: _Element) -> bool:
    if src.type != dst.type:
        return False
    if src.type == _TYPE_ARRAY:
        return _arrays_match(src.value, dst.value)
    if src.type == _TYPE_DOCUMENT:
        return documents_match(src.value, dst.value)
    return src.value == dst.value


def _arrays_match(src_raw: bytes, dst_raw: bytes) -> bool:
    src, dst = _parse_documents(src_raw, dst_raw)
    if len(src) != len(dst):
        return False
    for src_el, dst_el in zip(src, dst):
        if src_el.key != dst_el.key:
            raise BsonCompareError(f"Array keys differ: {src_el.key} {dst_el.key}")
        if not _values_match(src_el, dst_el):
            return False
    return True


def _compare_elements(
    src: list[_Element], dst: list[_Element], stop_on_mismatch: bool
) -> Optional[MismatchDetails]:
    details = MismatchDetails()
    any_mismatch = False
    src_map = {el.key: el for el in src}
    used: set[str] = set()

    for dst_el in dst:
        src_el = src_map.get(dst_el.key)
        if src_el is None:
            details.missing_field_on_src.append(dst_el.key)
            any_mismatch = True
        else:
            used.add(dst_el.key)
            if not _values_match(src_el, dst_el):
                details.field_contents_differ.append(dst_el.key)
                any_mismatch = True
        if stop_on_mismatch and any_mismatch:
            return details

    for key in src_map:
        if key not in used:
            details.missing_field_on_dst.append(key)
            any_mismatch = True
            if stop_on_mismatch:
                return details

    return details if any_mismatch else None


def compare_documents_with_details(src_raw: Any, dst_raw: Any) -> Optional[MismatchDetails]:
    """Compare two documents ignoring field order; return None if they match.

    Arrays keep their order, but documents inside them are compared unordered.
    """
    src, dst = _parse_documents(src_raw, dst_raw)
    return _compare_elements(src, dst, stop_on_mismatch=False)


def documents_match(src_raw: Any, dst_raw: Any) -> bool:
    """Whether two documents match, ignoring field order."""
    src, dst = _parse_documents(src_raw, dst_raw)
    return _compare_elements(src, dst, stop_on_mismatch=True) is None