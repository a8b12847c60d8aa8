"""
Helpers for coercing loosely-typed field values to numbers.
"""

import math
import re
from typing import Any, Optional

_STRICT_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_EMBEDDED_NUMBER = re.compile(r"[+-]?\d+(\.\d+)?")


def is_blank(value: Any) -> bool:
    """True for values treated as "not supplied" (None, empty or whitespace strings)."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def coerce_number(value: Any, lenient: bool = False) -> Optional[float]:
    """
    Convert a value to float when it is numeric or looks numeric.

    Strict mode accepts only strings that are entirely a number (thousands
    separators allowed). Lenient mode takes the first number embedded in the
    string, so "12.5 kg/t" becomes 12.5.

    Returns None when no finite number can be obtained.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None

    text = value.replace(",", "").strip()
    if _STRICT_NUMBER.match(text):
        number = float(text)
    elif lenient:
        match = _EMBEDDED_NUMBER.search(text)
        if not match:
            return None
        number = float(match.group(0))
    else:
        return None
    return number if math.isfinite(number) else None
