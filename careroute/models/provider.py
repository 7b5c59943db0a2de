"""
Provider, capacity and ranking models for CareRoute.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, field_validator


class ProviderType(str, Enum):
    """Kind of care provider."""
    HOSPITAL = "hospital"
    CLINIC = "clinic"
    SPECIALIST = "specialist"
    PHARMACY = "pharmacy"


class AvailabilityStatus(str, Enum):
    """Derived availability classification."""
    AVAILABLE = "available"
    BUSY = "busy"
    UNAVAILABLE = "unavailable"


class Coordinates(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Location(BaseModel):
    state: Optional[str] = None
    district: Optional[str] = None
    pincode: Optional[str] = None
    coordinates: Coordinates


class ProviderCapabilities(BaseModel):
    specialties: List[str] = Field(default_factory=list)
    services: List[str] = Field(default_factory=list)
    equipment: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)


class Capacity(BaseModel):
    """Stored capacity of a provider."""
    total_beds: Optional[int] = Field(None, ge=0)
    available_beds: Optional[int] = Field(None, ge=0)
    daily_patient_capacity: int = Field(0, ge=0)
    current_load: int = Field(0, ge=0, le=100, description="Load percentage")
    last_updated: Optional[datetime] = None


class QualityMetrics(BaseModel):
    rating: float = Field(..., ge=0, le=5)
    patient_reviews: int = Field(0, ge=0)
    success_rate: float = Field(0, ge=0, le=100)
    average_wait_time: float = Field(0, ge=0, description="Minutes")


class CostStructure(BaseModel):
    consultation_fee: float = Field(0, ge=0)
    insurance_accepted: List[str] = Field(default_factory=list)
    payment_methods: List[str] = Field(default_factory=list)


class Provider(BaseModel):
    """A registered care provider (read-mostly)."""
    provider_id: str = Field(..., min_length=1)
    type: ProviderType = ProviderType.CLINIC
    name: str = ""
    is_active: bool = True
    location: Location
    capabilities: ProviderCapabilities = Field(default_factory=ProviderCapabilities)
    capacity: Capacity = Field(default_factory=Capacity)
    quality_metrics: QualityMetrics
    cost_structure: CostStructure = Field(default_factory=CostStructure)
    updated_at: Optional[datetime] = None


class LocationCriteria(BaseModel):
    coordinates: Coordinates
    max_distance: float = Field(..., ge=0, le=1000, description="Kilometers")


class SearchCriteria(BaseModel):
    """Optional facets of a provider search."""
    type: Optional[ProviderType] = None
    specialties: Optional[List[str]] = None
    location: Optional[LocationCriteria] = None
    available_now: Optional[bool] = None
    max_cost: Optional[float] = Field(None, ge=0)
    min_rating: Optional[float] = Field(None, ge=1, le=5)
    accepts_insurance: Optional[List[str]] = None
    languages: Optional[List[str]] = None


class RankedResult(BaseModel):
    """A provider scored against a search."""
    provider: Provider
    match_score: int = Field(..., ge=0, le=100)
    availability_status: AvailabilityStatus
    distance: Optional[float] = Field(None, description="Kilometers")
    estimated_wait_time: Optional[int] = Field(None, description="Minutes")
    score_breakdown: Dict[str, float] = Field(default_factory=dict)


class CapacityInfo(BaseModel):
    """Capacity view of a provider; status is recomputed on every read."""
    provider_id: str
    total_beds: int = 0
    available_beds: int = 0
    current_load: int = Field(..., ge=0, le=100)
    daily_patient_capacity: int = 0
    availability_status: AvailabilityStatus
    last_updated: Optional[datetime] = None

    def to_summary(self) -> Dict[str, Any]:
        """Return summary for monitoring dashboards."""
        return {
            "provider_id": self.provider_id,
            "current_load": self.current_load,
            "available_beds": self.available_beds,
            "availability_status": self.availability_status.value,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }


class UpdateCapacityInput(BaseModel):
    """Validated capacity update request."""
    provider_id: str
    current_load: int = Field(..., ge=0, le=100)
    available_beds: Optional[int] = Field(None, ge=0)

    @field_validator("provider_id")
    @classmethod
    def provider_id_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("provider_id must not be empty")
        if value != value.strip():
            raise ValueError("provider_id must not have surrounding whitespace")
        return value


class CapacityStatistics(BaseModel):
    """Partition of active providers by availability."""
    total_providers: int = 0
    available_providers: int = 0
    busy_providers: int = 0
    unavailable_providers: int = 0
    average_load: int = 0
