"""
Event models for queue and capacity notifications in CareRoute.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field

from careroute.models.episode import UrgencyLevel
from careroute.models.provider import AvailabilityStatus


class EventType(str, Enum):
    """Types of events in the system."""
    # Validation queue
    QUEUE_ITEM_ADDED = "queue_item_added"
    QUEUE_ITEM_REMOVED = "queue_item_removed"
    EPISODE_REASSIGNED = "episode_reassigned"

    # Provider capacity
    CAPACITY_UPDATED = "capacity_updated"
    LOW_CAPACITY_ALERT = "low_capacity_alert"


class EventSource(str, Enum):
    """Component that emitted an event."""
    VALIDATION_QUEUE = "validation_queue"
    CAPACITY_SERVICE = "capacity_service"


class CareEvent(BaseModel):
    """Base event class."""
    id: str = Field(..., description="Unique event ID")
    event_type: EventType
    timestamp: datetime = Field(default_factory=datetime.now)
    source: EventSource
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(5, ge=1, le=10, description="Event priority 1-10 (10=highest)")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.value,
            "payload": self.payload,
            "priority": self.priority
        }


class QueueEvent(CareEvent):
    """Emitted by the validation queue when an episode enters, leaves or moves."""
    source: EventSource = EventSource.VALIDATION_QUEUE
    episode_id: str
    urgency_level: Optional[UrgencyLevel] = None
    supervisor_id: Optional[str] = None

    @property
    def is_emergency(self) -> bool:
        return self.urgency_level == UrgencyLevel.EMERGENCY


class CapacityEvent(CareEvent):
    """Emitted by the capacity service after a provider's load changes."""
    source: EventSource = EventSource.CAPACITY_SERVICE
    provider_id: str
    current_load: int = Field(..., ge=0, le=100)
    available_beds: Optional[int] = None
    availability_status: AvailabilityStatus
