"""Small numeric helpers shared by recipes and scoring."""
from __future__ import annotations
import math


def round_half_up(value: float) -> int:
    """Round halves towards positive infinity (2.5 -> 3, -2.5 -> -2).

    The built-in round() rounds halves to even, which shifts quality
    scores sitting exactly on a .5 boundary.
    """
    return int(math.floor(value + 0.5))
