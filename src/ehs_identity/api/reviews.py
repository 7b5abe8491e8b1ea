"""Offender match review API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from ..models import MatchReview, ReviewStats
from ..resolution import MatchReviewQueue
from .deps import get_review_queue, get_session

router = APIRouter(prefix="/reviews", tags=["reviews"])


class ReviewListResponse(BaseModel):
    items: list[MatchReview]
    stats: ReviewStats


class ReviewDecision(BaseModel):
    reviewed_by: str | None = None
    notes: str | None = None


class ApproveDecision(ReviewDecision):
    company_number: str


@router.get("", response_model=ReviewListResponse)
async def list_reviews(
    limit: int = Query(default=50, ge=1, le=500),
    include_deferred: bool = False,
    session: AsyncSession = Depends(get_session),
    queue: MatchReviewQueue = Depends(get_review_queue),
) -> ReviewListResponse:
    """Open reviews, highest confidence first."""
    items = await queue.list_pending(session, limit=limit, include_deferred=include_deferred)
    return ReviewListResponse(items=items, stats=await queue.stats(session))


@router.post("/{review_id}/approve", response_model=MatchReview)
async def approve_review(
    review_id: UUID,
    decision: ApproveDecision,
    session: AsyncSession = Depends(get_session),
    queue: MatchReviewQueue = Depends(get_review_queue),
) -> MatchReview:
    """Attach the chosen company number to the offender."""
    return await queue.approve(
        session,
        review_id,
        decision.company_number,
        reviewed_by=decision.reviewed_by,
        notes=decision.notes,
    )


@router.post("/{review_id}/skip", response_model=MatchReview)
async def skip_review(
    review_id: UUID,
    decision: ReviewDecision,
    session: AsyncSession = Depends(get_session),
    queue: MatchReviewQueue = Depends(get_review_queue),
) -> MatchReview:
    """Reject all candidates."""
    return await queue.skip(
        session, review_id, reviewed_by=decision.reviewed_by, notes=decision.notes
    )


@router.post("/{review_id}/defer", response_model=MatchReview)
async def defer_review(
    review_id: UUID,
    decision: ReviewDecision,
    session: AsyncSession = Depends(get_session),
    queue: MatchReviewQueue = Depends(get_review_queue),
) -> MatchReview:
    """Flag the review for a second look."""
    return await queue.defer(
        session, review_id, reviewed_by=decision.reviewed_by, notes=decision.notes
    )
