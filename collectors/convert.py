"""Conversion of raw measurement values into gauge-friendly floats."""

from __future__ import annotations

import math

from .base import EmptyValue, NonFiniteValue, RawValue, UnsupportedType

MAX_INT64 = 2**63 - 1
MIN_INT64 = -(2**63)


def to_float(value: RawValue) -> float:
    """Convert a raw value to a finite float.

    Integers beyond the signed 64-bit range are clamped, since the metrics
    backend has no unsigned 64-bit gauge. Strings model a liveness state:
    ``"up"`` (any case) is 1.0, anything else 0.0.
    """
    if value is None:
        raise EmptyValue("unable to convert metric value: value is empty")
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, int):
        if value > MAX_INT64:
            return float(MAX_INT64)
        if value < MIN_INT64:
            return float(MIN_INT64)
        return float(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise NonFiniteValue(f"unable to convert metric value: {value} is not finite")
        return value
    if isinstance(value, str):
        return 1.0 if value.lower() == "up" else 0.0
    raise UnsupportedType(
        f"unable to convert metric value: invalid type {type(value).__name__!r}"
    )
