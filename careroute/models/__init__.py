"""
Models package for CareRoute.
"""

from .episode import (
    UrgencyLevel,
    EpisodeStatus,
    ValidationStatus,
    InputMethod,
    Symptoms,
    AIAssessment,
    TriageAssessment,
    Episode,
    QueueItem,
    QueueStatistics
)

from .provider import (
    ProviderType,
    AvailabilityStatus,
    Coordinates,
    Location,
    ProviderCapabilities,
    Capacity,
    QualityMetrics,
    CostStructure,
    Provider,
    LocationCriteria,
    SearchCriteria,
    RankedResult,
    CapacityInfo,
    UpdateCapacityInput,
    CapacityStatistics
)

from .events import (
    EventType,
    EventSource,
    CareEvent,
    QueueEvent,
    CapacityEvent
)

__all__ = [
    # Episode / queue
    "UrgencyLevel",
    "EpisodeStatus",
    "ValidationStatus",
    "InputMethod",
    "Symptoms",
    "AIAssessment",
    "TriageAssessment",
    "Episode",
    "QueueItem",
    "QueueStatistics",

    # Provider / capacity
    "ProviderType",
    "AvailabilityStatus",
    "Coordinates",
    "Location",
    "ProviderCapabilities",
    "Capacity",
    "QualityMetrics",
    "CostStructure",
    "Provider",
    "LocationCriteria",
    "SearchCriteria",
    "RankedResult",
    "CapacityInfo",
    "UpdateCapacityInput",
    "CapacityStatistics",

    # Events
    "EventType",
    "EventSource",
    "CareEvent",
    "QueueEvent",
    "CapacityEvent"
]
