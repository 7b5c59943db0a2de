"""
Tests for the SQLAlchemy storage backend against in-memory SQLite.
"""
import pytest

from careroute.core.config import Config
from careroute.core.exceptions import BatchUpdateError, ConditionalCheckFailedError, StorageError
from careroute.core.storage import record_exists
from careroute.db.sql_storage import SQLStorage
from careroute.models.episode import UrgencyLevel
from careroute.services.capacity import ProviderCapacityService
from careroute.services.validation_queue import ValidationQueueManager

from conftest import provider_record

PROVIDERS = Config.PROVIDER_TABLE


@pytest.fixture
def sql_storage():
    return SQLStorage("sqlite://")


@pytest.mark.asyncio
async def test_put_and_get(sql_storage):
    await sql_storage.put(PROVIDERS, "p1", {"name": "Clinic", "capacity": {"current_load": 10}})

    record = await sql_storage.get(PROVIDERS, "p1")

    assert record == {"provider_id": "p1", "name": "Clinic", "capacity": {"current_load": 10}}
    assert await sql_storage.get(PROVIDERS, "p-missing") is None


@pytest.mark.asyncio
async def test_update_patches_nested_paths(sql_storage):
    await sql_storage.put(PROVIDERS, "p1", {"capacity": {"current_load": 10, "total_beds": 5}})

    updated = await sql_storage.update(
        PROVIDERS, "p1", {"capacity.current_load": 70, "updated_at": "2024-03-01T09:00:00"}
    )

    assert updated["capacity"] == {"current_load": 70, "total_beds": 5}
    assert (await sql_storage.get(PROVIDERS, "p1"))["capacity"]["current_load"] == 70


@pytest.mark.asyncio
async def test_update_removes_attributes(sql_storage):
    await sql_storage.put(Config.EPISODE_TABLE, "ep-1", {"queued_at": "x", "validation_status": "pending"})

    updated = await sql_storage.update(
        Config.EPISODE_TABLE, "ep-1", {"validation_status": "completed"}, remove=["queued_at"]
    )

    assert updated == {"episode_id": "ep-1", "validation_status": "completed"}


@pytest.mark.asyncio
async def test_conditional_update_on_missing_record(sql_storage):
    with pytest.raises(ConditionalCheckFailedError):
        await sql_storage.update(PROVIDERS, "p-missing", {"capacity.current_load": 5}, condition=record_exists)

    assert await sql_storage.get(PROVIDERS, "p-missing") is None


@pytest.mark.asyncio
async def test_query_batch_get_and_scan(sql_storage):
    await sql_storage.put(PROVIDERS, "p1", {"is_active": True, "capacity": {"current_load": 95}})
    await sql_storage.put(PROVIDERS, "p2", {"is_active": True, "capacity": {"current_load": 20}})
    await sql_storage.put(PROVIDERS, "p3", {"is_active": False, "capacity": {"current_load": 99}})

    active = await sql_storage.query(PROVIDERS, where={"is_active": True})
    busy = await sql_storage.query(
        PROVIDERS, where={"is_active": True}, filter=lambda r: r["capacity"]["current_load"] >= 90
    )
    batch = await sql_storage.batch_get(PROVIDERS, ["p1", "p3", "p-missing"])
    everything = await sql_storage.scan(PROVIDERS)

    assert {r["provider_id"] for r in active} == {"p1", "p2"}
    assert [r["provider_id"] for r in busy] == ["p1"]
    assert {r["provider_id"] for r in batch} == {"p1", "p3"}
    assert len(everything) == 3


@pytest.mark.asyncio
async def test_batch_get_rejects_oversized_batches(sql_storage):
    with pytest.raises(StorageError):
        await sql_storage.batch_get(PROVIDERS, [f"p{i}" for i in range(sql_storage.max_batch_size + 1)])


@pytest.mark.asyncio
async def test_services_run_on_sql_backend(sql_storage, make_episode, clock):
    await sql_storage.put(PROVIDERS, "p1", provider_record("p1", 30))
    capacity = ProviderCapacityService(sql_storage, clock=clock)
    queue = ValidationQueueManager(sql_storage, clock=clock)

    info = await capacity.update_capacity("p1", 96)
    await queue.add_to_queue(make_episode("ep-1", UrgencyLevel.URGENT))
    await queue.add_to_queue(make_episode("ep-2", UrgencyLevel.EMERGENCY))

    assert info.current_load == 96
    assert (await capacity.get_capacity_statistics()).unavailable_providers == 1
    assert await queue.get_queue_position("ep-2") == 1
    assert await queue.get_queue_position("ep-1") == 2


@pytest.mark.asyncio
async def test_batch_update_capacity_on_sql_backend(sql_storage, clock):
    for i in range(40):
        await sql_storage.put(PROVIDERS, f"p{i}", provider_record(f"p{i}", 10))
    capacity = ProviderCapacityService(sql_storage, clock=clock)

    infos = await capacity.batch_update_capacity(
        [{"provider_id": f"p{i}", "current_load": 77} for i in range(40)]
    )

    assert len(infos) == 40
    assert all(info.current_load == 77 for info in infos)
    stored = await capacity.check_capacity([f"p{i}" for i in range(40)])
    assert {info.current_load for info in stored} == {77}


@pytest.mark.asyncio
async def test_batch_update_with_missing_providers_on_file_database(tmp_path, clock):
    storage = SQLStorage(f"sqlite:///{tmp_path / 'careroute.db'}")
    for i in range(60):
        await storage.put(PROVIDERS, f"p{i}", provider_record(f"p{i}", 10))
    capacity = ProviderCapacityService(storage, clock=clock)
    updates = [{"provider_id": f"p{i}", "current_load": 50} for i in range(60)]
    updates += [{"provider_id": f"p-missing-{i}", "current_load": 50} for i in range(30)]

    with pytest.raises(BatchUpdateError) as exc_info:
        await capacity.batch_update_capacity(updates)

    assert set(exc_info.value.failures) == {f"p-missing-{i}" for i in range(30)}
    stored = await capacity.check_capacity([f"p{i}" for i in range(60)])
    assert {info.current_load for info in stored} == {50}
    assert await storage.get(PROVIDERS, "p-missing-0") is None
    storage.engine.dispose()
