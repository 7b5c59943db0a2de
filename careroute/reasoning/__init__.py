"""
Reasoning package for CareRoute provider selection.
"""

from .availability import determine_availability_status
from .ranking import ProviderRankingService

__all__ = [
    "determine_availability_status",
    "ProviderRankingService"
]
