"""
Utility helpers for CareRoute.
"""

from .geo import calculate_distance, is_within_radius
from .numbers import round_half_up

__all__ = ["calculate_distance", "is_within_radius", "round_half_up"]
