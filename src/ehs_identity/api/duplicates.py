"""Duplicate detection API endpoints."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import CaseRef, NoticeRef, OffenderRef
from ..resolution import DuplicateDetector
from .deps import get_duplicate_detector, get_session

router = APIRouter(prefix="/duplicates", tags=["duplicates"])


class CaseDuplicatesResponse(BaseModel):
    groups: list[list[CaseRef]]
    total_groups: int


class NoticeDuplicatesResponse(BaseModel):
    groups: list[list[NoticeRef]]
    total_groups: int


class OffenderDuplicatesResponse(BaseModel):
    groups: list[list[OffenderRef]]
    total_groups: int


@router.get("/cases", response_model=CaseDuplicatesResponse)
async def duplicate_cases(
    agency_id: str | None = None,
    session: AsyncSession = Depends(get_session),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
) -> CaseDuplicatesResponse:
    """Cases sharing an agency and reference code."""
    groups = await detector.find_duplicate_cases(session, agency_id=agency_id)
    return CaseDuplicatesResponse(groups=groups, total_groups=len(groups))


@router.get("/notices", response_model=NoticeDuplicatesResponse)
async def duplicate_notices(
    agency_id: str | None = None,
    session: AsyncSession = Depends(get_session),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
) -> NoticeDuplicatesResponse:
    """Notices sharing an agency and reference code."""
    groups = await detector.find_duplicate_notices(session, agency_id=agency_id)
    return NoticeDuplicatesResponse(groups=groups, total_groups=len(groups))


@router.get("/offenders", response_model=OffenderDuplicatesResponse)
async def duplicate_offenders(
    limit: int | None = Query(default=None, ge=1, le=5000),
    normalized: bool = False,
    session: AsyncSession = Depends(get_session),
    detector: DuplicateDetector = Depends(get_duplicate_detector),
) -> OffenderDuplicatesResponse:
    """Offenders with coinciding names (advisory)."""
    groups = await detector.find_duplicate_offenders(
        session, limit=limit, normalized=normalized
    )
    return OffenderDuplicatesResponse(groups=groups, total_groups=len(groups))
