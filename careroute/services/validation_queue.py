"""
Validation queue manager for CareRoute.
Orders and tracks episodes awaiting supervisor review.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Union

from careroute.core.config import Config, QueueSettings
from careroute.core.event_bus import EventBus, create_event_id
from careroute.core.exceptions import (
    ConditionalCheckFailedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from careroute.core.storage import StorageBackend, record_exists
from careroute.models.episode import (
    Episode,
    QueueItem,
    QueueStatistics,
    UrgencyLevel,
    ValidationStatus,
)
from careroute.models.events import EventType, QueueEvent
from careroute.utils.numbers import round_half_up

logger = logging.getLogger(__name__)

# Attributes that exist only while an episode is queued
QUEUE_FIELDS = ("queued_at", "queue_priority", "assigned_supervisor")


class ValidationQueueManager:
    """
    Queue of episodes awaiting human validation.

    Queue state lives on the episode records themselves; there is no stored
    ordering. Every read fetches the pending episodes and sorts them by
    priority (highest first), then by time queued (earliest first).
    """

    def __init__(
        self,
        storage: StorageBackend,
        table_name: Optional[str] = None,
        event_bus: Optional[EventBus] = None,
        settings: Optional[QueueSettings] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.storage = storage
        self.table_name = table_name or Config.EPISODE_TABLE
        self.event_bus = event_bus
        self.settings = settings or Config.get_queue_settings()
        self._clock = clock

        logger.info(f"Validation queue manager initialized (table={self.table_name})")

    def calculate_priority(self, urgency_level: Union[UrgencyLevel, str, None]) -> int:
        """EMERGENCY=100, URGENT=75, ROUTINE=50, SELF_CARE=25, anything else 50."""
        if isinstance(urgency_level, UrgencyLevel):
            urgency_level = urgency_level.value
        return self.settings.priorities.get(urgency_level, self.settings.default_priority)

    # ========================
    # Writes
    # ========================

    async def add_to_queue(self, episode: Episode, supervisor_id: Optional[str] = None) -> QueueItem:
        """
        Put an episode in the queue, replacing any earlier queue state.

        Storage errors propagate unchanged.
        """
        now = self._clock()
        priority = self.calculate_priority(episode.urgency_level)
        triage = episode.triage.model_dump(mode="json") if episode.triage else {
            "urgency_level": episode.urgency_level.value
        }

        record = await self.storage.update(
            self.table_name,
            episode.episode_id,
            {
                "patient_id": episode.patient_id,
                "symptoms": episode.symptoms.model_dump(mode="json"),
                "triage": triage,
                "created_at": episode.created_at.isoformat(),
                "validation_status": ValidationStatus.PENDING.value,
                "assigned_supervisor": supervisor_id,
                "queued_at": now.isoformat(),
                "queue_priority": priority,
                "updated_at": now.isoformat(),
            }
        )

        logger.info(f"Episode {episode.episode_id} added to validation queue with priority {priority}")
        item = QueueItem.from_record(record, priority)
        await self._publish(
            EventType.QUEUE_ITEM_ADDED,
            episode.episode_id,
            urgency_level=item.urgency_level,
            supervisor_id=supervisor_id,
            priority=10 if item.urgency_level == UrgencyLevel.EMERGENCY else 5,
            payload=item.to_summary()
        )
        return item

    async def remove_from_queue(self, episode_id: str) -> None:
        """
        Take an episode out of the queue and mark validation completed.

        Succeeds without changes when the episode was never stored. The time
        spent queued is kept as validation history.
        """
        record = await self.storage.get(self.table_name, episode_id)
        if record is None:
            logger.info(f"Episode {episode_id} not in validation queue, nothing to remove")
            return

        now = self._clock()
        patch: Dict[str, Any] = {
            "validation_status": ValidationStatus.COMPLETED.value,
            "validated_at": now.isoformat(),
            "updated_at": now.isoformat(),
        }
        queued_at = record.get("queued_at")
        if queued_at:
            waited = now - datetime.fromisoformat(queued_at)
            patch["validation_duration_minutes"] = max(0.0, waited.total_seconds() / 60)

        await self.storage.update(self.table_name, episode_id, patch, remove=QUEUE_FIELDS)

        logger.info(f"Episode {episode_id} removed from validation queue")
        await self._publish(
            EventType.QUEUE_ITEM_REMOVED,
            episode_id,
            payload={"validation_duration_minutes": patch.get("validation_duration_minutes")}
        )

    async def reassign_episode(self, episode_id: str, new_supervisor_id: str) -> None:
        """Change the supervisor assigned to an episode; the episode must exist."""
        if not new_supervisor_id or not new_supervisor_id.strip():
            raise ValidationError("Supervisor ID is required", field="supervisor_id")

        try:
            await self.storage.update(
                self.table_name,
                episode_id,
                {"assigned_supervisor": new_supervisor_id},
                condition=record_exists
            )
        except ConditionalCheckFailedError as e:
            raise NotFoundError(f"Episode {episode_id} not found", resource="episode", key=episode_id) from e

        logger.info(f"Episode {episode_id} reassigned to supervisor {new_supervisor_id}")
        await self._publish(
            EventType.EPISODE_REASSIGNED,
            episode_id,
            supervisor_id=new_supervisor_id,
            payload={"assigned_supervisor": new_supervisor_id}
        )

    # ========================
    # Reads
    # ========================

    async def get_queue(
        self,
        supervisor_id: Optional[str] = None,
        urgency_filter: Optional[Union[UrgencyLevel, str]] = None,
        limit: Optional[int] = None
    ) -> List[QueueItem]:
        """
        Pending episodes in review order.

        Args:
            supervisor_id: Only episodes assigned to this supervisor
            urgency_filter: Only episodes at this urgency level
            limit: Maximum items returned (default 20)
        """
        if limit is not None and limit < 0:
            raise ValidationError(f"Limit must not be negative: {limit}", field="limit")

        items = await self._load_sorted_queue(supervisor_id)

        if urgency_filter:
            try:
                urgency = UrgencyLevel(urgency_filter)
            except ValueError as e:
                raise ValidationError(f"Unknown urgency level: {urgency_filter}", field="urgency") from e
            items = [item for item in items if item.urgency_level == urgency]

        return items[:limit if limit is not None else self.settings.default_limit]

    async def get_queue_position(self, episode_id: str) -> int:
        """1-based position in the full queue, or -1 if the episode is not pending."""
        items = await self._load_sorted_queue()
        for index, item in enumerate(items):
            if item.episode_id == episode_id:
                return index + 1
        return -1

    async def get_estimated_wait_time(self, episode_id: str) -> int:
        """Minutes until review: (position - 1) x average validation time."""
        position = await self.get_queue_position(episode_id)
        if position <= 0:
            return 0

        average = await self.get_average_validation_time()
        return max(0, (position - 1) * average)

    async def get_overdue_episodes(self, threshold_minutes: Optional[int] = None) -> List[QueueItem]:
        """
        Pending episodes queued longer than the threshold (default 30 minutes).

        Monitoring read: a storage failure yields an empty list.
        """
        minutes = self.settings.overdue_threshold_minutes if threshold_minutes is None else threshold_minutes
        cutoff = self._clock() - timedelta(minutes=minutes)

        try:
            items = await self._load_sorted_queue()
        except StorageError as e:
            logger.error(f"Error getting overdue episodes: {e}", exc_info=True)
            return []

        return [item for item in items if item.queued_at < cutoff]

    async def get_queue_statistics(self) -> QueueStatistics:
        """Pending counts by urgency plus the average validation time."""
        items = await self._load_sorted_queue()
        counts = {level: 0 for level in UrgencyLevel}
        for item in items:
            counts[item.urgency_level] += 1

        return QueueStatistics(
            total_pending=len(items),
            emergency_count=counts[UrgencyLevel.EMERGENCY],
            urgent_count=counts[UrgencyLevel.URGENT],
            routine_count=counts[UrgencyLevel.ROUTINE],
            self_care_count=counts[UrgencyLevel.SELF_CARE],
            average_wait_time=await self.get_average_validation_time()
        )

    async def get_average_validation_time(self) -> int:
        """
        Average minutes a completed episode spent queued.

        Uses the most recent completed validations; falls back to the
        configured estimate when there is no history yet.
        """
        recent = await self.storage.query(
            self.table_name,
            where={"validation_status": ValidationStatus.COMPLETED.value},
            filter=lambda record: record.get("validation_duration_minutes") is not None,
            limit=self.settings.history_size,
            sort_by="validated_at",
            descending=True
        )
        if not recent:
            return self.settings.average_validation_time_minutes

        total = sum(record["validation_duration_minutes"] for record in recent)
        return round_half_up(total / len(recent))

    # ========================
    # Helpers
    # ========================

    async def _load_sorted_queue(self, supervisor_id: Optional[str] = None) -> List[QueueItem]:
        where: Dict[str, Any] = {"validation_status": ValidationStatus.PENDING.value}
        if supervisor_id:
            where["assigned_supervisor"] = supervisor_id

        records = await self.storage.query(self.table_name, where=where)
        items = [self._to_queue_item(record) for record in records]
        items.sort(key=lambda item: (-item.priority, item.queued_at))
        return items

    def _to_queue_item(self, record: Dict[str, Any]) -> QueueItem:
        priority = record.get("queue_priority")
        if priority is None:
            priority = self.calculate_priority((record.get("triage") or {}).get("urgency_level"))
        return QueueItem.from_record(record, priority)

    async def _publish(
        self,
        event_type: EventType,
        episode_id: str,
        urgency_level: Optional[UrgencyLevel] = None,
        supervisor_id: Optional[str] = None,
        priority: int = 5,
        payload: Optional[Dict[str, Any]] = None
    ) -> None:
        if self.event_bus is None:
            return
        await self.event_bus.publish(QueueEvent(
            id=create_event_id(),
            event_type=event_type,
            episode_id=episode_id,
            urgency_level=urgency_level,
            supervisor_id=supervisor_id,
            priority=priority,
            payload=payload or {}
        ))
