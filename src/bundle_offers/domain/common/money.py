from __future__ import annotations

import math
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal


def round_money(value: float) -> float:
    """Round to 2 decimals, half away from zero."""
    if not math.isfinite(value):
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def ceil_money(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_CEILING))


def amounts_match(a: float, b: float) -> bool:
    return abs(float(a or 0) - float(b or 0)) < 0.01
