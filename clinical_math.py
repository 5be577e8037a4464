import math


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation with t clamped to [0, 1]."""
    return a + (b - a) * max(0.0, min(1.0, t))


def round_half_up(value: float, places: int = 0) -> float:
    """
    Bedside rounding (2.5 -> 3), unlike Python's banker's round().
    Returns an int-valued float when places == 0.
    """
    factor = 10 ** places
    return math.floor(value * factor + 0.5) / factor


def round_int(value: float) -> int:
    return int(math.floor(value + 0.5))
