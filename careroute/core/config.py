"""
Configuration for the CareRoute backend.
Values are read from the environment (and a local .env file when present).
"""

import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _get_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class AvailabilityThresholds:
    """Load bands used to classify provider availability (percent)."""
    available_below: int = 70
    unavailable_at: int = 95


@dataclass
class RankingWeights:
    """Points each factor contributes to a provider match score (sum = 100)."""
    active: float = 10
    quality: float = 25
    availability: float = 20
    specialty: float = 15
    cost: float = 10
    insurance: float = 10
    language: float = 5
    distance: float = 5

    def total(self) -> float:
        return (
            self.active + self.quality + self.availability + self.specialty +
            self.cost + self.insurance + self.language + self.distance
        )

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "quality": self.quality,
            "availability": self.availability,
            "specialty": self.specialty,
            "cost": self.cost,
            "insurance": self.insurance,
            "language": self.language,
            "distance": self.distance,
        }


@dataclass
class QueueSettings:
    """Validation queue tuning."""
    default_limit: int = 20
    overdue_threshold_minutes: int = 30
    average_validation_time_minutes: int = 15
    history_size: int = 100
    priorities: dict = field(default_factory=lambda: {
        "emergency": 100,
        "urgent": 75,
        "routine": 50,
        "self-care": 25,
    })
    default_priority: int = 50


class Config:
    """Application configuration."""

    # Server
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = _get_bool("DEBUG", False)
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS: List[str] = _get_list(
        "CORS_ORIGINS", ["http://localhost:3000", "http://localhost:5173"]
    )

    # Storage
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "memory")
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./careroute.db")
    EPISODE_TABLE: str = os.getenv("EPISODE_TABLE", "episodes")
    PROVIDER_TABLE: str = os.getenv("PROVIDER_TABLE", "providers")
    BATCH_GET_LIMIT: int = int(os.getenv("BATCH_GET_LIMIT", "100"))

    # Validation queue
    QUEUE_DEFAULT_LIMIT: int = int(os.getenv("QUEUE_DEFAULT_LIMIT", "20"))
    OVERDUE_THRESHOLD_MINUTES: int = int(os.getenv("OVERDUE_THRESHOLD_MINUTES", "30"))
    AVERAGE_VALIDATION_TIME_MINUTES: int = int(os.getenv("AVERAGE_VALIDATION_TIME_MINUTES", "15"))
    VALIDATION_HISTORY_SIZE: int = int(os.getenv("VALIDATION_HISTORY_SIZE", "100"))

    # Provider capacity
    CAPACITY_UPDATE_CONCURRENCY: int = int(os.getenv("CAPACITY_UPDATE_CONCURRENCY", "10"))
    LOW_CAPACITY_THRESHOLD: int = int(os.getenv("LOW_CAPACITY_THRESHOLD", "90"))
    AVAILABLE_LOAD_THRESHOLD: int = int(os.getenv("AVAILABLE_LOAD_THRESHOLD", "70"))
    UNAVAILABLE_LOAD_THRESHOLD: int = int(os.getenv("UNAVAILABLE_LOAD_THRESHOLD", "95"))

    @classmethod
    def get_availability_thresholds(cls) -> AvailabilityThresholds:
        return AvailabilityThresholds(
            available_below=cls.AVAILABLE_LOAD_THRESHOLD,
            unavailable_at=cls.UNAVAILABLE_LOAD_THRESHOLD,
        )

    @classmethod
    def get_ranking_weights(cls) -> RankingWeights:
        return RankingWeights()

    @classmethod
    def get_queue_settings(cls) -> QueueSettings:
        return QueueSettings(
            default_limit=cls.QUEUE_DEFAULT_LIMIT,
            overdue_threshold_minutes=cls.OVERDUE_THRESHOLD_MINUTES,
            average_validation_time_minutes=cls.AVERAGE_VALIDATION_TIME_MINUTES,
            history_size=cls.VALIDATION_HISTORY_SIZE,
        )
