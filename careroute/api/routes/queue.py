"""
Validation queue routes for the CareRoute API.

Supervisors pull pending episodes from here in review order.
"""
from typing import Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from careroute.models.episode import Episode
from careroute.services.validation_queue import ValidationQueueManager

router = APIRouter()


class EnqueueRequest(BaseModel):
    episode: Episode
    supervisor_id: Optional[str] = None


class ReassignRequest(BaseModel):
    supervisor_id: str


def _manager(request: Request) -> ValidationQueueManager:
    return request.app.state.queue_manager


@router.post("/", status_code=201)
async def add_to_queue(body: EnqueueRequest, request: Request):
    """Queue an episode for supervisor validation."""
    item = await _manager(request).add_to_queue(body.episode, body.supervisor_id)
    return item.model_dump(mode="json")


@router.get("/")
async def get_queue(
    request: Request,
    supervisor_id: Optional[str] = None,
    urgency: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=0)
):
    """Pending episodes, highest priority first."""
    items = await _manager(request).get_queue(supervisor_id, urgency, limit)
    return {"items": [item.model_dump(mode="json") for item in items], "count": len(items)}


@router.get("/overdue")
async def get_overdue(request: Request, threshold_minutes: Optional[int] = Query(None, ge=0)):
    """Episodes waiting longer than the overdue threshold."""
    items = await _manager(request).get_overdue_episodes(threshold_minutes)
    return {"items": [item.to_summary() for item in items], "count": len(items)}


@router.get("/statistics")
async def get_statistics(request: Request):
    stats = await _manager(request).get_queue_statistics()
    return stats.model_dump()


@router.get("/{episode_id}/position")
async def get_position(episode_id: str, request: Request):
    """Queue position and estimated wait for one episode."""
    manager = _manager(request)
    position = await manager.get_queue_position(episode_id)
    wait = await manager.get_estimated_wait_time(episode_id)
    return {
        "episode_id": episode_id,
        "position": position,
        "estimated_wait_minutes": wait
    }


@router.put("/{episode_id}/supervisor")
async def reassign(episode_id: str, body: ReassignRequest, request: Request):
    await _manager(request).reassign_episode(episode_id, body.supervisor_id)
    return {"episode_id": episode_id, "assigned_supervisor": body.supervisor_id}


@router.delete("/{episode_id}")
async def remove_from_queue(episode_id: str, request: Request):
    """Mark an episode validated and drop it from the queue."""
    await _manager(request).remove_from_queue(episode_id)
    return {"episode_id": episode_id, "removed": True}
