"""
Core package for CareRoute.
"""

from .config import Config, AvailabilityThresholds, RankingWeights, QueueSettings
from .event_bus import EventBus, get_event_bus, create_event_id
from .storage import StorageBackend, InMemoryStorage, get_storage, set_storage, record_exists

__all__ = [
    "Config",
    "AvailabilityThresholds",
    "RankingWeights",
    "QueueSettings",
    "EventBus",
    "get_event_bus",
    "create_event_id",
    "StorageBackend",
    "InMemoryStorage",
    "get_storage",
    "set_storage",
    "record_exists"
]
