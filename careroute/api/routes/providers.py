"""
Provider capacity and ranking routes for the CareRoute API.

Capacity payloads are validated by the capacity service itself so bad
input surfaces as a 400 with the offending field.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Request
from pydantic import BaseModel

from careroute.models.provider import Provider, SearchCriteria

router = APIRouter()


class BatchUpdateRequest(BaseModel):
    updates: List[Dict[str, Any]]


class CheckCapacityRequest(BaseModel):
    provider_ids: List[str]


class RankRequest(BaseModel):
    providers: List[Provider]
    criteria: Optional[SearchCriteria] = None
    eligible_only: bool = False


@router.post("/capacity/update")
async def update_capacity(request: Request, body: Dict[str, Any] = Body(...)):
    """Report a provider's current load."""
    info = await request.app.state.capacity_service.update_capacity(
        body.get("provider_id"),
        body.get("current_load"),
        body.get("available_beds")
    )
    return info.model_dump(mode="json")


@router.post("/capacity/batch-update")
async def batch_update_capacity(body: BatchUpdateRequest, request: Request):
    infos = await request.app.state.capacity_service.batch_update_capacity(body.updates)
    return {"updated": [info.to_summary() for info in infos], "count": len(infos)}


@router.post("/capacity/check")
async def check_capacity(body: CheckCapacityRequest, request: Request):
    """Current capacity for many providers; unknown ids are omitted."""
    infos = await request.app.state.capacity_service.check_capacity(body.provider_ids)
    return {"providers": [info.model_dump(mode="json") for info in infos], "count": len(infos)}


@router.get("/capacity/low")
async def get_low_capacity(request: Request, threshold: Optional[int] = Query(None, ge=0, le=100)):
    infos = await request.app.state.capacity_service.get_providers_with_low_capacity(threshold)
    return {"providers": [info.to_summary() for info in infos], "count": len(infos)}


@router.get("/capacity/statistics")
async def get_capacity_statistics(request: Request):
    stats = await request.app.state.capacity_service.get_capacity_statistics()
    return stats.model_dump()


@router.get("/{provider_id}/capacity")
async def get_provider_capacity(provider_id: str, request: Request):
    info = await request.app.state.capacity_service.get_provider_capacity(provider_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Provider not found")
    return info.model_dump(mode="json")


@router.post("/rank")
async def rank_providers(body: RankRequest, request: Request):
    """Rank candidate providers for a search."""
    results = await request.app.state.ranking_service.rank_providers(
        body.providers, body.criteria, eligible_only=body.eligible_only
    )
    return {"results": [result.model_dump(mode="json") for result in results], "count": len(results)}
