"""UUID conversion to and from BSON binary values and map keys."""

from __future__ import annotations

import uuid

from bson.binary import Binary

UUID_BINARY_SUBTYPE = 4


def new_uuid() -> uuid.UUID:
    """A new random UUID."""
    return uuid.uuid4()


def uuid_to_binary(value: uuid.UUID) -> Binary:
    """Encode a UUID as BSON binary of the UUID subtype."""
    return Binary(value.bytes, UUID_BINARY_SUBTYPE)


def uuid_from_binary(binary: bytes) -> uuid.UUID:
    """Decode a UUID from BSON binary (or plain 16 bytes)."""
    subtype = getattr(binary, "subtype", UUID_BINARY_SUBTYPE)
    if subtype != UUID_BINARY_SUBTYPE:
        raise ValueError(
            f"expected BSON value {bytes(binary)!r} to have subtype "
            f"{UUID_BINARY_SUBTYPE}, got {subtype}"
        )
    data = bytes(binary)
    if len(data) != 16:
        raise ValueError(f"invalid UUID (got {len(data)} bytes)")
    return uuid.UUID(bytes=data)


def uuid_to_key(value: uuid.UUID) -> str:
    """The string form of a UUID, for use as a document key."""
    return str(value)


def uuid_from_key(key: str) -> uuid.UUID:
    """Parse a UUID from its string form."""
    try:
        return uuid.UUID(key)
    except (ValueError, TypeError, AttributeError) as exc:
        raise ValueError(f"error parsing string as UUID: {exc}") from exc