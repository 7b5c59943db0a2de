"""
Provider capacity service for CareRoute.
Single source of truth for provider load, with availability classification.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from careroute.core.config import AvailabilityThresholds, Config
from careroute.core.event_bus import EventBus, create_event_id
from careroute.core.exceptions import (
    BatchUpdateError,
    ConditionalCheckFailedError,
    ProviderNotFoundError,
    StorageError,
    ValidationError,
)
from careroute.core.storage import Record, StorageBackend, get_path, record_exists
from careroute.models.events import CapacityEvent, EventType
from careroute.models.provider import (
    AvailabilityStatus,
    CapacityInfo,
    CapacityStatistics,
    UpdateCapacityInput,
)
from careroute.reasoning.availability import determine_availability_status
from careroute.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

CapacityUpdate = Union[UpdateCapacityInput, Mapping[str, Any]]


def validate_update_capacity_input(data: CapacityUpdate) -> UpdateCapacityInput:
    """
    Validate a capacity update before any storage access.

    Raises:
        ValidationError: provider_id blank or current_load outside 0-100
    """
    if isinstance(data, UpdateCapacityInput):
        data = data.model_dump()
    try:
        return UpdateCapacityInput.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or "input"
        raise ValidationError(
            f"Invalid capacity update data: {first.get('msg')}",
            field=field,
            details={"errors": [err.get("msg") for err in e.errors()]}
        ) from e


class ProviderCapacityService:
    """
    Tracks provider load and classifies availability.

    Writes go through a conditional update so a capacity report can never
    create a provider record. Availability status is never stored; it is
    recomputed from current load every time capacity is read.
    """

    def __init__(
        self,
        storage: StorageBackend,
        table_name: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
        batch_size: Optional[int] = None,
        concurrency_limit: Optional[int] = None,
        thresholds: Optional[AvailabilityThresholds] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize the capacity service.

        Args:
            storage: Key-value store holding provider records
            table_name: Provider table, default from config
            event_bus: Optional bus for capacity notifications
            batch_size: Max keys per batch read (capped by the store's limit)
            concurrency_limit: Max updates in flight during a batch update
            thresholds: Availability bands, default from config
            clock: Source of "now" for timestamps
        """
        self.storage = storage
        self.table_name = table_name or Config.PROVIDER_TABLE
        self.event_bus = event_bus
        self.batch_size = min(batch_size or Config.BATCH_GET_LIMIT, storage.max_batch_size)
        self.concurrency_limit = concurrency_limit or Config.CAPACITY_UPDATE_CONCURRENCY
        self.thresholds = thresholds or Config.get_availability_thresholds()
        self.low_capacity_threshold = Config.LOW_CAPACITY_THRESHOLD
        self._clock = clock

        logger.info(
            f"Capacity service initialized (table={self.table_name}, "
            f"batch_size={self.batch_size}, concurrency={self.concurrency_limit})"
        )

    # ========================
    # Writes
    # ========================

    async def update_capacity(
        self,
        provider_id: str,
        current_load: int,
        available_beds: Optional[int] = None
    ) -> CapacityInfo:
        """
        Update a provider's load (and optionally available beds).

        Raises:
            ValidationError: bad input; storage is not touched
            ProviderNotFoundError: the provider is not registered
            StorageError: the store failed
        """
        update = validate_update_capacity_input({
            "provider_id": provider_id,
            "current_load": current_load,
            "available_beds": available_beds,
        })
        return await self._apply_update(update)

    async def _apply_update(self, update: UpdateCapacityInput) -> CapacityInfo:
        now = self._clock().isoformat()
        patch: Dict[str, Any] = {
            "capacity.current_load": update.current_load,
            "capacity.last_updated": now,
            "updated_at": now,
        }
        if update.available_beds is not None:
            patch["capacity.available_beds"] = update.available_beds

        try:
            record = await self.storage.update(
                self.table_name,
                update.provider_id,
                patch,
                condition=record_exists
            )
        except ConditionalCheckFailedError as e:
            logger.warning(f"Capacity update for unknown provider: {update.provider_id}")
            raise ProviderNotFoundError(update.provider_id) from e
        except StorageError:
            logger.error(f"Error updating capacity for provider {update.provider_id}")
            raise

        info = self._to_capacity_info(record)
        logger.info(
            f"Capacity updated for provider {update.provider_id}: "
            f"load={info.current_load} ({info.availability_status.value})"
        )
        await self._notify(info)
        return info

    async def batch_update_capacity(self, updates: List[CapacityUpdate]) -> List[CapacityInfo]:
        """
        Apply many capacity updates with bounded concurrency.

        Every input is validated before any write. At most
        ``concurrency_limit`` updates are in flight at once; the call returns
        after the whole batch has finished.

        Raises:
            ValidationError: any input is invalid (nothing is written)
            BatchUpdateError: one or more updates failed; the rest applied
        """
        validated = [validate_update_capacity_input(update) for update in updates]
        if not validated:
            return []

        semaphore = asyncio.Semaphore(self.concurrency_limit)

        async def bounded_update(update: UpdateCapacityInput) -> CapacityInfo:
            async with semaphore:
                return await self._apply_update(update)

        results = await asyncio.gather(
            *(bounded_update(update) for update in validated),
            return_exceptions=True
        )

        infos: List[CapacityInfo] = []
        failures: Dict[str, str] = {}
        for update, result in zip(validated, results):
            if isinstance(result, Exception):
                failures[update.provider_id] = str(result)
            else:
                infos.append(result)

        if failures:
            logger.error(f"Batch capacity update failed for {len(failures)}/{len(validated)} providers")
            raise BatchUpdateError(failures, total=len(validated))

        logger.info(f"Batch updated capacity for {len(validated)} providers")
        return infos

    # ========================
    # Reads
    # ========================

    async def check_capacity(self, provider_ids: List[str]) -> List[CapacityInfo]:
        """
        Capacity for many providers, read in store-sized batches.

        Chunks run one after another. Unknown ids are skipped, so the result
        may be shorter than the input; order is not guaranteed.
        """
        if not provider_ids:
            return []

        capacity_infos: List[CapacityInfo] = []
        try:
            for start in range(0, len(provider_ids), self.batch_size):
                batch = provider_ids[start:start + self.batch_size]
                records = await self.storage.batch_get(self.table_name, batch)
                capacity_infos.extend(self._to_capacity_info(record) for record in records)
        except StorageError as e:
            logger.error(f"Error checking provider capacity: {e}")
            raise StorageError(
                f"Failed to check provider capacity: {e.message}",
                operation="check_capacity"
            ) from e

        logger.debug(f"Checked capacity for {len(capacity_infos)}/{len(provider_ids)} providers")
        return capacity_infos

    async def get_provider_capacity(self, provider_id: str) -> Optional[CapacityInfo]:
        """Capacity for one provider, or None if it is not registered."""
        try:
            record = await self.storage.get(self.table_name, provider_id)
        except StorageError as e:
            logger.error(f"Error getting capacity for provider {provider_id}: {e}")
            raise StorageError(
                f"Failed to get provider capacity: {e.message}",
                operation="get_provider_capacity"
            ) from e

        if record is None:
            return None
        return self._to_capacity_info(record)

    async def get_providers_with_low_capacity(
        self,
        threshold: Optional[int] = None
    ) -> List[CapacityInfo]:
        """Active providers whose load is at or above ``threshold`` (default 90)."""
        limit = self.low_capacity_threshold if threshold is None else threshold
        try:
            records = await self.storage.query(
                self.table_name,
                where={"is_active": True},
                filter=lambda record: get_path(record, "capacity.current_load", 0) >= limit
            )
        except StorageError as e:
            logger.error(f"Error getting providers with low capacity: {e}")
            raise StorageError(
                f"Failed to get providers with low capacity: {e.message}",
                operation="get_providers_with_low_capacity"
            ) from e

        return [self._to_capacity_info(record) for record in records]

    async def get_capacity_statistics(self) -> CapacityStatistics:
        """Partition active providers by availability and average their load."""
        try:
            records = await self.storage.scan(
                self.table_name,
                filter=lambda record: record.get("is_active") is True
            )
        except StorageError as e:
            logger.error(f"Error getting capacity statistics: {e}")
            raise StorageError(
                f"Failed to get capacity statistics: {e.message}",
                operation="get_capacity_statistics"
            ) from e

        counts = {status: 0 for status in AvailabilityStatus}
        total_load = 0
        for record in records:
            load = get_path(record, "capacity.current_load", 0)
            total_load += load
            counts[self.determine_availability_status(load)] += 1

        total = len(records)
        return CapacityStatistics(
            total_providers=total,
            available_providers=counts[AvailabilityStatus.AVAILABLE],
            busy_providers=counts[AvailabilityStatus.BUSY],
            unavailable_providers=counts[AvailabilityStatus.UNAVAILABLE],
            average_load=round_half_up(total_load / total) if total > 0 else 0
        )

    def determine_availability_status(self, current_load: float) -> AvailabilityStatus:
        """Load-band classification (<70 available, <95 busy, else unavailable)."""
        return determine_availability_status(current_load, thresholds=self.thresholds)

    # ========================
    # Helpers
    # ========================

    def _to_capacity_info(self, record: Record) -> CapacityInfo:
        capacity = record.get("capacity") or {}
        current_load = capacity.get("current_load", 0)
        return CapacityInfo(
            provider_id=record["provider_id"],
            total_beds=capacity.get("total_beds") or 0,
            available_beds=capacity.get("available_beds") or 0,
            current_load=current_load,
            daily_patient_capacity=capacity.get("daily_patient_capacity") or 0,
            availability_status=determine_availability_status(
                current_load, record.get("is_active", True), self.thresholds
            ),
            last_updated=capacity.get("last_updated") or record.get("updated_at")
        )

    async def _notify(self, info: CapacityInfo) -> None:
        if self.event_bus is None:
            return

        await self.event_bus.publish(CapacityEvent(
            id=create_event_id(),
            event_type=EventType.CAPACITY_UPDATED,
            provider_id=info.provider_id,
            current_load=info.current_load,
            available_beds=info.available_beds,
            availability_status=info.availability_status,
            payload=info.to_summary()
        ))

        if info.current_load >= self.low_capacity_threshold:
            await self.event_bus.publish(CapacityEvent(
                id=create_event_id(),
                event_type=EventType.LOW_CAPACITY_ALERT,
                provider_id=info.provider_id,
                current_load=info.current_load,
                available_beds=info.available_beds,
                availability_status=info.availability_status,
                priority=9,
                payload={**info.to_summary(), "threshold": self.low_capacity_threshold}
            ))
