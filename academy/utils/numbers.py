"""
Numeric helpers shared by progress, scoring and stats code.
"""
import math


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for positive values (2.5 -> 3).

    The builtin ``round`` uses banker's rounding which makes percentages
    such as 12.5 round down.
    """
    factor = 10 ** digits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result


def percent(part: float, whole: float) -> int:
    """Whole-number percentage; 0 when ``whole`` is 0."""
    if not whole:
        return 0
    return round_half_up(part / whole * 100)
