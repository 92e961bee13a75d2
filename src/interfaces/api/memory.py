"""Long-term memory routes for the authenticated user."""

import logging

from fastapi import APIRouter, Depends, Query

from .auth import get_current_user_id
from .dependencies import ChatServices, get_services
from .schemas import DeleteMemoryResponse, MemoryListResponse, MemoryStatsResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/memory", tags=["memory"])


@router.get("", response_model=MemoryListResponse)
async def list_memories(
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> MemoryListResponse:
    """Categorized memories; empty when memory is unavailable."""
    if services.memory is None:
        return MemoryListResponse()

    categorized = await services.memory.retrieve_all(user_id)
    return MemoryListResponse(
        facts=categorized.facts,
        preferences=categorized.preferences,
        context=categorized.context,
        total=categorized.total,
    )


@router.get("/stats", response_model=MemoryStatsResponse)
async def memory_stats(
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> MemoryStatsResponse:
    if services.memory is None:
        return MemoryStatsResponse()

    stats = await services.memory.compute_stats(user_id)
    return MemoryStatsResponse(**stats.model_dump())


@router.delete("", response_model=DeleteMemoryResponse)
async def delete_memories(
    days: int = Query(0, ge=0, description="Delete entries older than this; 0 wipes all"),
    user_id: str = Depends(get_current_user_id),
    services: ChatServices = Depends(get_services),
) -> DeleteMemoryResponse:
    """Wipe (``days=0``) or prune the caller's memories.

    A full wipe reports failure as 502; pruning is best-effort.
    """
    if services.memory is None:
        return DeleteMemoryResponse(deleted=0)

    if days == 0:
        deleted = await services.memory.clear_all(user_id)
    else:
        deleted = await services.memory.delete_older_than(user_id, days)

    logger.info(f"Deleted {deleted} memories for user {user_id} (days={days})")
    return DeleteMemoryResponse(deleted=deleted)
