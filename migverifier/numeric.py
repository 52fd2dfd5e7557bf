"""Numeric conversion helpers."""

from __future__ import annotations

from typing import TypeVar, Union

N = TypeVar("N", int, float)


def _is_real_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_numeric_type_of(value: Union[int, float], like: N) -> N:
    """Convert `value` to the numeric type of `like`.

    Conversion to an integer type truncates toward zero.
    """
    if not _is_real_number(like):
        raise TypeError(f"cannot convert to the type of {like!r}: not a real number")
    if not _is_real_number(value):
        raise TypeError(f"cannot convert {value!r}: not a real number")
    return type(like)(value)