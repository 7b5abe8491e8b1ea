"""Offender merge API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..models import MergePreview, MergeResult
from ..resolution import MergeCoordinator
from .deps import get_merge_coordinator

router = APIRouter(prefix="/offenders/merge", tags=["merge"])


class MergeRequest(BaseModel):
    """Master offender and the duplicates to fold into it."""

    master_id: UUID
    duplicate_ids: list[UUID] = Field(min_length=1)


@router.post("/preview", response_model=MergePreview)
async def preview_merge(
    request: MergeRequest,
    coordinator: MergeCoordinator = Depends(get_merge_coordinator),
) -> MergePreview:
    """Dry-run a merge. Blocking problems are returned as findings."""
    return await coordinator.preview_merge(request.master_id, request.duplicate_ids)


@router.post("", response_model=MergeResult)
async def execute_merge(
    request: MergeRequest,
    coordinator: MergeCoordinator = Depends(get_merge_coordinator),
) -> MergeResult:
    """Merge duplicates into the master and delete them."""
    return await coordinator.execute_merge(request.master_id, request.duplicate_ids)
