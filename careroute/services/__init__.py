"""
Service layer for CareRoute: validation queue and provider capacity.
"""

from .validation_queue import ValidationQueueManager
from .capacity import ProviderCapacityService, validate_update_capacity_input

__all__ = [
    "ValidationQueueManager",
    "ProviderCapacityService",
    "validate_update_capacity_input"
]
