"""
Tests for the validation queue manager.
"""
import pytest

from careroute.core.config import Config
from careroute.core.exceptions import NotFoundError, StorageError, ValidationError
from careroute.core.storage import InMemoryStorage
from careroute.models.episode import UrgencyLevel, ValidationStatus
from careroute.models.events import EventType
from careroute.services.validation_queue import ValidationQueueManager


class FailingQueryStorage(InMemoryStorage):
    """Store whose queries always fail."""

    async def query(self, table, where, filter=None, limit=None, sort_by=None, descending=False):
        raise StorageError("query unavailable", operation="query")


@pytest.fixture
def manager(storage, event_bus, clock):
    return ValidationQueueManager(storage, event_bus=event_bus, clock=clock)


def test_calculate_priority(manager):
    assert manager.calculate_priority(UrgencyLevel.EMERGENCY) == 100
    assert manager.calculate_priority(UrgencyLevel.URGENT) == 75
    assert manager.calculate_priority(UrgencyLevel.ROUTINE) == 50
    assert manager.calculate_priority(UrgencyLevel.SELF_CARE) == 25
    assert manager.calculate_priority("self-care") == 25
    assert manager.calculate_priority("unknown") == 50
    assert manager.calculate_priority(None) == 50


@pytest.mark.asyncio
async def test_queue_orders_by_priority_then_time(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-routine", UrgencyLevel.ROUTINE))
    clock.advance(minutes=1)
    await manager.add_to_queue(make_episode("ep-emergency", UrgencyLevel.EMERGENCY))
    clock.advance(minutes=1)
    await manager.add_to_queue(make_episode("ep-urgent", UrgencyLevel.URGENT))
    clock.advance(minutes=1)
    await manager.add_to_queue(make_episode("ep-self-care", UrgencyLevel.SELF_CARE))

    queue = await manager.get_queue()

    assert [item.episode_id for item in queue] == [
        "ep-emergency", "ep-urgent", "ep-routine", "ep-self-care"
    ]
    for earlier, later in zip(queue, queue[1:]):
        assert earlier.priority > later.priority or (
            earlier.priority == later.priority and earlier.queued_at <= later.queued_at
        )


@pytest.mark.asyncio
async def test_equal_priority_is_first_in_first_out(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-first", UrgencyLevel.URGENT))
    clock.advance(seconds=30)
    await manager.add_to_queue(make_episode("ep-second", UrgencyLevel.URGENT))

    queue = await manager.get_queue()

    assert [item.episode_id for item in queue] == ["ep-first", "ep-second"]


@pytest.mark.asyncio
async def test_add_to_queue_returns_item(manager, make_episode, clock):
    item = await manager.add_to_queue(make_episode("ep-1", UrgencyLevel.URGENT), supervisor_id="sup-1")

    assert item.episode_id == "ep-1"
    assert item.priority == 75
    assert item.assigned_supervisor == "sup-1"
    assert item.queued_at == clock.now
    assert item.symptoms.primary_complaint == "Headache"


@pytest.mark.asyncio
async def test_requeue_replaces_queue_state(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-1"))
    clock.advance(minutes=5)
    await manager.add_to_queue(make_episode("ep-1", UrgencyLevel.EMERGENCY))

    queue = await manager.get_queue()

    assert len(queue) == 1
    assert queue[0].priority == 100
    assert queue[0].queued_at == clock.now


@pytest.mark.asyncio
async def test_get_queue_filters(manager, make_episode):
    await manager.add_to_queue(make_episode("ep-1", UrgencyLevel.URGENT), supervisor_id="sup-1")
    await manager.add_to_queue(make_episode("ep-2", UrgencyLevel.ROUTINE), supervisor_id="sup-1")
    await manager.add_to_queue(make_episode("ep-3", UrgencyLevel.URGENT), supervisor_id="sup-2")

    by_supervisor = await manager.get_queue(supervisor_id="sup-1")
    by_urgency = await manager.get_queue(urgency_filter="urgent")
    both = await manager.get_queue(supervisor_id="sup-1", urgency_filter=UrgencyLevel.URGENT)

    assert {item.episode_id for item in by_supervisor} == {"ep-1", "ep-2"}
    assert {item.episode_id for item in by_urgency} == {"ep-1", "ep-3"}
    assert [item.episode_id for item in both] == ["ep-1"]


@pytest.mark.asyncio
async def test_get_queue_rejects_unknown_urgency(manager):
    with pytest.raises(ValidationError):
        await manager.get_queue(urgency_filter="critical")


@pytest.mark.asyncio
async def test_get_queue_applies_default_limit(manager, make_episode, clock):
    for i in range(Config.QUEUE_DEFAULT_LIMIT + 5):
        await manager.add_to_queue(make_episode(f"ep-{i}"))
        clock.advance(seconds=1)

    assert len(await manager.get_queue()) == Config.QUEUE_DEFAULT_LIMIT
    assert len(await manager.get_queue(limit=3)) == 3


@pytest.mark.asyncio
async def test_queue_position(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-routine"))
    clock.advance(minutes=1)
    await manager.add_to_queue(make_episode("ep-emergency", UrgencyLevel.EMERGENCY))

    assert await manager.get_queue_position("ep-emergency") == 1
    assert await manager.get_queue_position("ep-routine") == 2
    assert await manager.get_queue_position("ep-missing") == -1


@pytest.mark.asyncio
async def test_estimated_wait_time(manager, make_episode, clock):
    for i, urgency in enumerate([UrgencyLevel.EMERGENCY, UrgencyLevel.URGENT, UrgencyLevel.ROUTINE]):
        await manager.add_to_queue(make_episode(f"ep-{i}", urgency))
        clock.advance(seconds=1)

    waits = [await manager.get_estimated_wait_time(f"ep-{i}") for i in range(3)]

    assert waits == [0, 15, 30]
    assert await manager.get_estimated_wait_time("ep-missing") == 0


@pytest.mark.asyncio
async def test_remove_from_queue(manager, storage, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-1"), supervisor_id="sup-1")
    clock.advance(minutes=12)

    await manager.remove_from_queue("ep-1")

    assert await manager.get_queue_position("ep-1") == -1
    record = await storage.get(Config.EPISODE_TABLE, "ep-1")
    assert record["validation_status"] == ValidationStatus.COMPLETED.value
    assert record["validation_duration_minutes"] == 12
    assert "queued_at" not in record
    assert "queue_priority" not in record
    assert "assigned_supervisor" not in record


@pytest.mark.asyncio
async def test_remove_unknown_episode_is_noop(manager, storage):
    await manager.remove_from_queue("ep-missing")

    assert await storage.get(Config.EPISODE_TABLE, "ep-missing") is None


@pytest.mark.asyncio
async def test_reassign_episode(manager, make_episode):
    await manager.add_to_queue(make_episode("ep-1"), supervisor_id="sup-1")

    await manager.reassign_episode("ep-1", "sup-2")

    assert await manager.get_queue(supervisor_id="sup-1") == []
    assert [item.episode_id for item in await manager.get_queue(supervisor_id="sup-2")] == ["ep-1"]


@pytest.mark.asyncio
async def test_reassign_unknown_episode(manager, storage):
    with pytest.raises(NotFoundError):
        await manager.reassign_episode("ep-missing", "sup-2")

    assert await storage.get(Config.EPISODE_TABLE, "ep-missing") is None


@pytest.mark.asyncio
async def test_reassign_requires_supervisor(manager, make_episode):
    await manager.add_to_queue(make_episode("ep-1"))

    with pytest.raises(ValidationError):
        await manager.reassign_episode("ep-1", "  ")


@pytest.mark.asyncio
async def test_overdue_episodes(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-old"))
    clock.advance(minutes=31)
    await manager.add_to_queue(make_episode("ep-new"))

    overdue = await manager.get_overdue_episodes()

    assert [item.episode_id for item in overdue] == ["ep-old"]
    assert {item.episode_id for item in await manager.get_overdue_episodes(threshold_minutes=0)} == {"ep-old"}


@pytest.mark.asyncio
async def test_overdue_episodes_degrade_on_storage_failure(event_bus, clock):
    manager = ValidationQueueManager(FailingQueryStorage(), event_bus=event_bus, clock=clock)

    assert await manager.get_overdue_episodes() == []


@pytest.mark.asyncio
async def test_queue_reads_propagate_storage_failure(event_bus, clock):
    manager = ValidationQueueManager(FailingQueryStorage(), event_bus=event_bus, clock=clock)

    with pytest.raises(StorageError):
        await manager.get_queue()
    with pytest.raises(StorageError):
        await manager.get_queue_position("ep-1")


@pytest.mark.asyncio
async def test_queue_statistics(manager, make_episode):
    urgencies = [
        UrgencyLevel.EMERGENCY,
        UrgencyLevel.URGENT,
        UrgencyLevel.URGENT,
        UrgencyLevel.ROUTINE,
        UrgencyLevel.SELF_CARE,
    ]
    for i, urgency in enumerate(urgencies):
        await manager.add_to_queue(make_episode(f"ep-{i}", urgency))

    stats = await manager.get_queue_statistics()

    assert stats.total_pending == 5
    assert stats.emergency_count == 1
    assert stats.urgent_count == 2
    assert stats.routine_count == 1
    assert stats.self_care_count == 1
    assert stats.average_wait_time == Config.AVERAGE_VALIDATION_TIME_MINUTES


@pytest.mark.asyncio
async def test_average_validation_time_uses_history(manager, make_episode, clock):
    await manager.add_to_queue(make_episode("ep-1"))
    clock.advance(minutes=10)
    await manager.remove_from_queue("ep-1")

    await manager.add_to_queue(make_episode("ep-2"))
    clock.advance(minutes=25)
    await manager.remove_from_queue("ep-2")

    assert await manager.get_average_validation_time() == 18


@pytest.mark.asyncio
async def test_queue_events(manager, make_episode, event_bus):
    await manager.add_to_queue(make_episode("ep-1", UrgencyLevel.EMERGENCY))
    await manager.remove_from_queue("ep-1")

    added = event_bus.get_history(EventType.QUEUE_ITEM_ADDED)
    removed = event_bus.get_history(EventType.QUEUE_ITEM_REMOVED)

    assert len(added) == 1
    assert added[0].episode_id == "ep-1"
    assert added[0].is_emergency
    assert added[0].priority == 10
    assert len(removed) == 1


@pytest.mark.asyncio
async def test_get_queue_rejects_negative_limit(manager, make_episode):
    await manager.add_to_queue(make_episode("ep-1"))

    with pytest.raises(ValidationError):
        await manager.get_queue(limit=-1)
    assert await manager.get_queue(limit=0) == []


@pytest.mark.asyncio
async def test_average_validation_time_reads_only_recent_history(storage, event_bus, make_episode, clock):
    settings = Config.get_queue_settings()
    settings.history_size = 2
    manager = ValidationQueueManager(storage, event_bus=event_bus, settings=settings, clock=clock)
    seen = []
    original_query = storage.query

    async def recording_query(table, where, **kwargs):
        results = await original_query(table, where, **kwargs)
        seen.append(len(results))
        return results

    for minutes in (60, 10, 20):
        await manager.add_to_queue(make_episode(f"ep-{minutes}"))
        clock.advance(minutes=minutes)
        await manager.remove_from_queue(f"ep-{minutes}")

    storage.query = recording_query
    average = await manager.get_average_validation_time()

    assert average == 15
    assert seen == [2]


@pytest.mark.asyncio
async def test_queue_event_payloads(manager, make_episode, event_bus, clock):
    await manager.add_to_queue(make_episode("ep-1", UrgencyLevel.URGENT), supervisor_id="sup-1")
    await manager.reassign_episode("ep-1", "sup-2")
    clock.advance(minutes=7)
    await manager.remove_from_queue("ep-1")

    added = event_bus.get_history(EventType.QUEUE_ITEM_ADDED)[0]
    reassigned = event_bus.get_history(EventType.EPISODE_REASSIGNED)[0]
    removed = event_bus.get_history(EventType.QUEUE_ITEM_REMOVED)[0]

    assert added.payload["priority"] == 75
    assert added.payload["assigned_supervisor"] == "sup-1"
    assert reassigned.payload == {"assigned_supervisor": "sup-2"}
    assert removed.payload == {"validation_duration_minutes": 7}
