"""
Load-band classification shared by the capacity and ranking services.

Both services must agree on where "available" ends and "unavailable"
begins, so the bands live here and nowhere else.
"""

from typing import Optional

from careroute.core.config import AvailabilityThresholds, Config
from careroute.models.provider import AvailabilityStatus


def determine_availability_status(
    current_load: float,
    is_active: bool = True,
    thresholds: Optional[AvailabilityThresholds] = None
) -> AvailabilityStatus:
    """
    Classify a provider's availability.

    Inactive providers are always unavailable. Otherwise, with the default
    bands: load < 70 is available, 70 <= load < 95 is busy, load >= 95 is
    unavailable.
    """
    if not is_active:
        return AvailabilityStatus.UNAVAILABLE

    bands = thresholds or Config.get_availability_thresholds()
    if current_load < bands.available_below:
        return AvailabilityStatus.AVAILABLE
    if current_load < bands.unavailable_at:
        return AvailabilityStatus.BUSY
    return AvailabilityStatus.UNAVAILABLE
