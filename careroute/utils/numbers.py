import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (63.5 -> 64)."""
    return int(math.floor(value + 0.5))
