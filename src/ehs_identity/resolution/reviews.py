"""Offender match review queue.

Holds medium-confidence registry matches that need a human decision before
a company number is attached to an offender.
"""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import InvalidInput, NotFound
from ..logging import get_context_logger
from ..models import CandidateCompany, MatchReview, ReviewStats, ReviewStatus
from ..schema import offender_match_reviews, offenders
from .normalize import clean_company_number
from .offenders import load_offender

logger = get_context_logger(__name__)

# Statuses from which a review may still be decided
OPEN_STATUSES = (ReviewStatus.PENDING.value, ReviewStatus.NEEDS_REVIEW.value)


def _to_model(row) -> MatchReview:
    return MatchReview.model_validate(dict(row._mapping))


class MatchReviewQueue:
    """Queue for reviewing offender/company matches.

    Manages the lifecycle of a review:
    - Create a pending review from registry search candidates
    - List open reviews
    - Approve (attach the company number), skip or defer
    """

    async def create_review(
        self,
        session: AsyncSession,
        offender_id: UUID,
        candidates: list[CandidateCompany],
    ) -> MatchReview:
        """Create a pending review for an offender.

        An offender has at most one review; creating another returns the
        existing one.

        Raises:
            InvalidInput: No candidates given
            NotFound: Offender does not exist
        """
        if not candidates:
            raise InvalidInput("A review needs at least one candidate company")
        await load_offender(session, offender_id)

        ranked = sorted(candidates, key=lambda c: c.similarity_score, reverse=True)
        review_id = uuid4()
        try:
            async with session.begin_nested():
                await session.execute(
                    sa.insert(offender_match_reviews).values(
                        id=review_id,
                        offender_id=offender_id,
                        status=ReviewStatus.PENDING.value,
                        candidate_companies=[c.model_dump() for c in ranked],
                        confidence_score=ranked[0].similarity_score,
                    )
                )
        except IntegrityError:
            logger.info(f"Review already exists for offender {offender_id}")
            return await self.get_for_offender(session, offender_id)

        logger.info(
            f"Created match review {review_id} for offender {offender_id} "
            f"(confidence: {ranked[0].similarity_score:.2f})"
        )
        return await self.get(session, review_id)

    async def get(self, session: AsyncSession, review_id: UUID) -> MatchReview:
        result = await session.execute(
            sa.select(offender_match_reviews).where(offender_match_reviews.c.id == review_id)
        )
        row = result.first()
        if row is None:
            raise NotFound("MatchReview", review_id)
        return _to_model(row)

    async def get_for_offender(self, session: AsyncSession, offender_id: UUID) -> MatchReview:
        result = await session.execute(
            sa.select(offender_match_reviews).where(
                offender_match_reviews.c.offender_id == offender_id
            )
        )
        row = result.first()
        if row is None:
            raise NotFound("MatchReview", offender_id)
        return _to_model(row)

    async def list_pending(
        self,
        session: AsyncSession,
        limit: int = 50,
        include_deferred: bool = False,
    ) -> list[MatchReview]:
        """Open reviews, highest confidence first."""
        statuses = OPEN_STATUSES if include_deferred else (ReviewStatus.PENDING.value,)
        result = await session.execute(
            sa.select(offender_match_reviews)
            .where(offender_match_reviews.c.status.in_(statuses))
            .order_by(
                offender_match_reviews.c.confidence_score.desc(),
                offender_match_reviews.c.created_at,
            )
            .limit(limit)
        )
        return [_to_model(row) for row in result]

    async def approve(
        self,
        session: AsyncSession,
        review_id: UUID,
        company_number: str,
        reviewed_by: str | None = None,
        notes: str | None = None,
    ) -> MatchReview:
        """Accept a candidate and attach its number to the offender.

        Raises:
            NotFound: Review does not exist
            InvalidInput: Review already decided, empty number, or the number
                belongs to another offender
        """
        review = await self._open_review(session, review_id)
        number = clean_company_number(company_number)
        if not number:
            raise InvalidInput(f"Invalid company number: {company_number!r}")

        holder = (
            await session.execute(
                sa.select(offenders.c.id).where(
                    offenders.c.company_registration_number == number,
                    offenders.c.id != review.offender_id,
                )
            )
        ).scalar_one_or_none()
        if holder is not None:
            raise InvalidInput(
                f"Company number {number} already belongs to offender {holder}",
                {"offender_id": str(holder)},
            )

        await session.execute(
            sa.update(offenders)
            .where(offenders.c.id == review.offender_id)
            .values(company_registration_number=number, updated_at=sa.func.now())
        )
        return await self._decide(
            session,
            review_id,
            ReviewStatus.APPROVED,
            reviewed_by,
            notes,
            selected_company_number=number,
        )

    async def skip(
        self,
        session: AsyncSession,
        review_id: UUID,
        reviewed_by: str | None = None,
        notes: str | None = None,
    ) -> MatchReview:
        """Reject all candidates."""
        await self._open_review(session, review_id)
        return await self._decide(session, review_id, ReviewStatus.SKIPPED, reviewed_by, notes)

    async def defer(
        self,
        session: AsyncSession,
        review_id: UUID,
        reviewed_by: str | None = None,
        notes: str | None = None,
    ) -> MatchReview:
        """Flag for a second look."""
        await self._open_review(session, review_id)
        return await self._decide(
            session, review_id, ReviewStatus.NEEDS_REVIEW, reviewed_by, notes
        )

    async def stats(self, session: AsyncSession) -> ReviewStats:
        result = await session.execute(
            sa.select(offender_match_reviews.c.status, sa.func.count()).group_by(
                offender_match_reviews.c.status
            )
        )
        counts = {status: count for status, count in result.all()}
        return ReviewStats(total=sum(counts.values()), **counts)

    async def _open_review(self, session: AsyncSession, review_id: UUID) -> MatchReview:
        review = await self.get(session, review_id)
        if review.status.value not in OPEN_STATUSES:
            raise InvalidInput(f"Review {review_id} is already {review.status.value}")
        return review

    async def _decide(
        self,
        session: AsyncSession,
        review_id: UUID,
        status: ReviewStatus,
        reviewed_by: str | None,
        notes: str | None,
        selected_company_number: str | None = None,
    ) -> MatchReview:
        await session.execute(
            sa.update(offender_match_reviews)
            .where(offender_match_reviews.c.id == review_id)
            .values(
                status=status.value,
                reviewed_by=reviewed_by,
                reviewed_at=datetime.now(timezone.utc),
                review_notes=notes,
                selected_company_number=selected_company_number,
            )
        )
        logger.info(f"Review {review_id} {status.value} by {reviewed_by or 'unknown'}")
        return await self.get(session, review_id)
