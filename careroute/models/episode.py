"""
Episode and validation queue models for CareRoute.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class UrgencyLevel(str, Enum):
    """Coarse triage severity driving queue priority."""
    EMERGENCY = "emergency"
    URGENT = "urgent"
    ROUTINE = "routine"
    SELF_CARE = "self-care"


class EpisodeStatus(str, Enum):
    """Lifecycle of a patient episode."""
    ACTIVE = "active"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    CANCELLED = "cancelled"


class ValidationStatus(str, Enum):
    """Human validation state of an episode."""
    PENDING = "pending"
    COMPLETED = "completed"


class InputMethod(str, Enum):
    TEXT = "text"
    VOICE = "voice"


class Symptoms(BaseModel):
    """Reported symptoms for an episode."""
    primary_complaint: str = Field(..., min_length=1)
    duration: Optional[str] = None
    severity: int = Field(..., ge=1, le=10, description="Self-reported severity 1-10")
    associated_symptoms: List[str] = Field(default_factory=list)
    input_method: InputMethod = InputMethod.TEXT


class AIAssessment(BaseModel):
    """AI triage assessment attached to an episode."""
    used: bool = False
    confidence: Optional[float] = Field(None, ge=0, le=1)
    reasoning: Optional[str] = None
    model_used: Optional[str] = None


class TriageAssessment(BaseModel):
    """Triage result produced upstream of the validation queue."""
    urgency_level: UrgencyLevel = UrgencyLevel.ROUTINE
    rule_based_score: Optional[float] = None
    ai_assessment: AIAssessment = Field(default_factory=AIAssessment)


class Episode(BaseModel):
    """A patient's symptom-reporting session."""
    episode_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)
    status: EpisodeStatus = EpisodeStatus.ACTIVE
    symptoms: Symptoms
    triage: Optional[TriageAssessment] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def urgency_level(self) -> UrgencyLevel:
        """Triage urgency, ROUTINE when the episode has not been triaged."""
        if self.triage is None:
            return UrgencyLevel.ROUTINE
        return self.triage.urgency_level


class QueueSymptoms(BaseModel):
    primary_complaint: str
    severity: int


class QueueAIAssessment(BaseModel):
    confidence: Optional[float] = None
    reasoning: Optional[str] = None


class QueueItem(BaseModel):
    """An episode awaiting supervisor validation."""
    episode_id: str
    patient_id: str
    urgency_level: UrgencyLevel
    priority: int
    assigned_supervisor: Optional[str] = None
    queued_at: datetime
    symptoms: QueueSymptoms
    ai_assessment: Optional[QueueAIAssessment] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any], priority: int) -> "QueueItem":
        """Build a queue item from a stored episode record."""
        triage = record.get("triage") or {}
        symptoms = record.get("symptoms") or {}
        ai = triage.get("ai_assessment") or {}
        return cls(
            episode_id=record["episode_id"],
            patient_id=record["patient_id"],
            urgency_level=triage.get("urgency_level", UrgencyLevel.ROUTINE),
            priority=priority,
            assigned_supervisor=record.get("assigned_supervisor"),
            queued_at=record.get("queued_at") or record.get("created_at"),
            symptoms=QueueSymptoms(
                primary_complaint=symptoms.get("primary_complaint", ""),
                severity=symptoms.get("severity", 0)
            ),
            ai_assessment=QueueAIAssessment(
                confidence=ai.get("confidence"),
                reasoning=ai.get("reasoning")
            ) if ai.get("used") else None
        )

    def to_summary(self) -> Dict[str, Any]:
        """Return a summary dict for supervisor dashboards."""
        return {
            "episode_id": self.episode_id,
            "patient_id": self.patient_id,
            "urgency_level": self.urgency_level.value,
            "priority": self.priority,
            "assigned_supervisor": self.assigned_supervisor,
            "queued_at": self.queued_at.isoformat(),
            "primary_complaint": self.symptoms.primary_complaint,
        }


class QueueStatistics(BaseModel):
    """Counts of pending episodes by urgency."""
    total_pending: int = 0
    emergency_count: int = 0
    urgent_count: int = 0
    routine_count: int = 0
    self_care_count: int = 0
    average_wait_time: int = Field(0, description="Minutes per validation")
