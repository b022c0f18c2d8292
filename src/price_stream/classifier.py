"""Three-way price direction classification."""

import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .models import Direction


def _to_float(value: Any) -> Optional[float]:
    """Coerce a numeric-ish value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        if isinstance(value, Decimal):
            number = float(value)
        else:
            number = float(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not math.isfinite(number):
        return None
    return number


def classify(current: Any, reference: Any) -> Direction:
    """
    Classify ``current`` against ``reference``.

    Never raises: missing, non-numeric or non-finite inputs on either side
    yield ``Direction.NONE``.
    """
    cur = _to_float(current)
    ref = _to_float(reference)
    if cur is None or ref is None:
        return Direction.NONE

    if cur > ref:
        return Direction.INCREASE
    if cur < ref:
        return Direction.DECREASE
    return Direction.NONE
