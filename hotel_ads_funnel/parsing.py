"""
Numeric coercion for ad-platform payloads.

Ad APIs return counts and money as strings, sometimes missing or garbled.
Reports should still complete, so anything unparsable or negative becomes
zero. This is the only place that policy lives.
"""

import math
import re

_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int_or_0(value) -> int:
    """Leading-integer parse ("12abc" -> 12, "3.7" -> 3); junk or negatives -> 0."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        if not math.isfinite(value):
            return 0
        return max(int(value), 0)

    match = _INT_PREFIX.match(str(value))
    if not match:
        return 0
    return max(int(match.group(1)), 0)


def parse_float_or_0(value) -> float:
    """Leading-float parse ("150.50" -> 150.5); junk, NaN/inf or negatives -> 0.0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _FLOAT_PREFIX.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(1))

    if not math.isfinite(number) or number < 0:
        return 0.0
    return number
