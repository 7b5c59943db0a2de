"""
Pytest Configuration and Fixtures

Shared fixtures for the CareRoute queue, capacity and ranking tests.
"""
from datetime import datetime, timedelta
from typing import Any, Dict

import pytest

from careroute.core.config import Config
from careroute.core.event_bus import EventBus
from careroute.core.storage import InMemoryStorage
from careroute.models.episode import Episode, Symptoms, TriageAssessment, UrgencyLevel
from careroute.models.provider import Provider


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 9, 0, 0))


@pytest.fixture
def storage() -> InMemoryStorage:
    """Fresh in-memory store per test."""
    return InMemoryStorage()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


def provider_record(provider_id: str, current_load: int = 0, **overrides: Any) -> Dict[str, Any]:
    """A stored provider record with sensible defaults."""
    record = {
        "provider_id": provider_id,
        "type": "clinic",
        "name": f"Provider {provider_id}",
        "is_active": True,
        "location": {"coordinates": {"lat": 12.9716, "lng": 77.5946}},
        "capabilities": {"specialties": [], "languages": []},
        "capacity": {
            "total_beds": 50,
            "available_beds": 10,
            "daily_patient_capacity": 100,
            "current_load": current_load,
        },
        "quality_metrics": {"rating": 4.0, "average_wait_time": 20},
        "cost_structure": {"consultation_fee": 500, "insurance_accepted": []},
    }
    record.update(overrides)
    return record


@pytest.fixture
def make_provider():
    """Factory for Provider models; keyword overrides replace whole sections."""
    def _make(provider_id: str = "p1", current_load: int = 0, **overrides: Any) -> Provider:
        return Provider.model_validate(provider_record(provider_id, current_load, **overrides))
    return _make


@pytest.fixture
def seed_providers(storage):
    """Store providers by load: seed_providers({"p1": 30, ...})."""
    async def _seed(loads: Dict[str, int], **overrides: Any) -> None:
        for provider_id, load in loads.items():
            await storage.put(
                Config.PROVIDER_TABLE, provider_id, provider_record(provider_id, load, **overrides)
            )
    return _seed


@pytest.fixture
def make_episode():
    """Factory for triaged episodes."""
    def _make(
        episode_id: str,
        urgency: UrgencyLevel = UrgencyLevel.ROUTINE,
        patient_id: str = "patient-1"
    ) -> Episode:
        return Episode(
            episode_id=episode_id,
            patient_id=patient_id,
            symptoms=Symptoms(primary_complaint="Headache", severity=4),
            triage=TriageAssessment(urgency_level=urgency)
        )
    return _make
