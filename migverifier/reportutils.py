"""Consistent formatting helpers for durations, byte counts and percentages."""

from __future__ import annotations

import enum
import math
from datetime import timedelta
from typing import Union

DECIMAL_PRECISION = 2

Number = Union[int, float]


class DataUnit(str, enum.Enum):
    """A unit of data size."""

    BYTES = "bytes"
    KIB = "KiB"
    MIB = "MiB"
    GIB = "GiB"
    TIB = "TiB"
    PIB = "PiB"


_UNIT_SIZE = {
    DataUnit.KIB: 1 << 10,
    DataUnit.MIB: 1 << 20,
    DataUnit.GIB: 1 << 30,
    DataUnit.TIB: 1 << 40,
    DataUnit.PIB: 1 << 50,
}


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _round_float(value: float, precision: int = DECIMAL_PRECISION) -> float:
    if not math.isfinite(value):
        return value
    ratio = 10**precision
    return _round_half_away(value * ratio) / ratio


def _ftoa(num: float) -> str:
    if math.isnan(num):
        return "NaN"
    if math.isinf(num):
        return "+Inf" if num > 0 else "-Inf"
    text = f"{num:.6f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def fmt_float(num: Number) -> str:
    """Format a number with two decimals at most and no trailing zeros."""
    return _ftoa(_round_float(float(num)))


def _fmt_quotient(dividend: Number, divisor: Number) -> str:
    if divisor == 0:
        if dividend == 0 or (isinstance(dividend, float) and math.isnan(dividend)):
            quotient = math.nan
        else:
            quotient = math.copysign(math.inf, dividend)
    else:
        quotient = dividend / divisor
    return fmt_float(quotient)


def duration_to_hms(duration: timedelta | Number) -> str:
    """Format a duration (timedelta or seconds) as e.g. "1h 22m 3.23s"."""
    if isinstance(duration, timedelta):
        seconds = duration.total_seconds()
    else:
        seconds = float(duration)

    hours = math.floor(seconds / 3600)
    minutes = int(math.fmod(math.floor(seconds / 60), 60))
    secs = math.fmod(seconds, 60)

    text = fmt_float(secs) + "s"
    if hours > 0:
        return f"{hours}h {minutes}m {text}"
    if minutes > 0:
        return f"{minutes}m {text}"
    return text


def bytes_to_unit(count: Number, unit: DataUnit | str) -> str:
    """Express `count` bytes as a number of the given unit."""
    unit = DataUnit(unit)
    if unit is DataUnit.BYTES:
        value = float(count)
    else:
        value = float(count) / float(_UNIT_SIZE[unit])
    return fmt_float(value)


def fmt_percent(numerator: Number, denominator: Number) -> str:
    """Format numerator/denominator as a percentage without the `%` sign.

    A ratio below one is never reported as "100".
    """
    text = _fmt_quotient(100 * numerator, denominator)
    if text == "100" and numerator != denominator and numerator < denominator:
        return "99." + "9" * DECIMAL_PRECISION
    return text


def find_best_unit(count: Number) -> DataUnit:
    """Return the most readable unit for a count of bytes."""
    if count < _UNIT_SIZE[DataUnit.KIB]:
        return DataUnit.BYTES

    log2 = math.log2(count)
    unit_num = 1 << (10 * math.floor(log2 / 10))

    for unit, size in _UNIT_SIZE.items():
        if size == unit_num:
            return unit

    return max(_UNIT_SIZE, key=_UNIT_SIZE.__getitem__)


def fmt_bytes(count: Number) -> str:
    """Format a single count of bytes with its best unit."""
    unit = find_best_unit(count)
    return f"{bytes_to_unit(count, unit)} {unit.value}"