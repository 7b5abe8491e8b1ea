"""Offender match review models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .base import ReviewStatus


class CandidateCompany(BaseModel):
    """A registry company proposed as the identity of an offender."""

    company_number: str
    company_name: str
    company_status: str | None = None
    company_type: str | None = None
    address: str | None = None
    similarity_score: float = Field(ge=0.0, le=1.0)


class MatchReview(BaseModel):
    """A pending or decided human review of registry candidates."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    offender_id: UUID
    status: ReviewStatus = ReviewStatus.PENDING
    candidate_companies: list[CandidateCompany] = Field(default_factory=list)
    confidence_score: float | None = None
    selected_company_number: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    review_notes: str | None = None
    created_at: datetime | None = None


class ReviewStats(BaseModel):
    """Counts of reviews by status."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    skipped: int = 0
    needs_review: int = 0
