"""Integer coercion for stock counts read out of extracted report cells."""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

# Digit-group separators seen in exported reports: comma, apostrophe,
# underscore and the various non-breaking/thin spaces.
_GROUP_SEPARATORS = re.compile(r"[,'_\s\u00a0\u2009\u202f]")
_PLAIN_NUMBER = re.compile(r"^\+?(\d+)(?:\.\d*)?$")


def coerce_count(value: Any) -> int:
    """Return ``value`` as a non-negative integer, or ``0`` when it is not one.

    Blank cells, ``None``, booleans, NaN, negative numbers and text that is
    not a plain number all collapse to ``0``. Fractions truncate toward zero.
    """

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value) or value <= 0:
            return 0
        return int(value)
    if isinstance(value, Decimal):
        try:
            return max(0, int(value))
        except (InvalidOperation, ValueError, OverflowError):
            return 0

    text = _GROUP_SEPARATORS.sub("", str(value))
    match = _PLAIN_NUMBER.match(text)
    if not match:
        return 0
    return int(match.group(1))


__all__ = ["coerce_count"]
