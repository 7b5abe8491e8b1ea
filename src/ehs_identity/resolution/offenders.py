"""Offender find-or-create resolution.

Resolution flow:
1. Registration number lookup (authoritative legal-entity key) → confidence 1.0
2. Exact (normalized_name, postcode) lookup → confidence 1.0
3. Fuzzy candidate search scored with the similarity scorer → confidence > 0.7
4. Create a new offender inside a SAVEPOINT
5. On a uniqueness violation (another worker won the race), look up once more

Creation is optimistic. Concurrent calls for the same name degrade into the
single re-lookup in step 5 rather than taking locks.
"""

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import ValidationError
from rapidfuzz import fuzz, process
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..db import is_postgres
from ..errors import ConstraintViolation, InvalidInput, NotFound, PersistenceError, ResolutionError
from ..logging import get_context_logger, log_resolution_event
from ..models import Offender, OffenderAttrs, Resolution, ResolutionStrategy
from ..schema import offenders
from .normalize import normalize_company_name
from .scoring import MATCH_THRESHOLD, MatchCandidate, find_best_match

logger = get_context_logger(__name__)

# Names this short are too ambiguous for fuzzy matching
MIN_FUZZY_NAME_LENGTH = 3

# Upper bound on rows ranked in memory when pg_trgm is unavailable
FALLBACK_SCAN_LIMIT = 10000


# =========================
# Row loaders
# =========================


async def load_offender(session: AsyncSession, offender_id: UUID) -> Offender:
    """Load one offender or raise NotFound."""
    result = await session.execute(
        sa.select(offenders).where(offenders.c.id == offender_id)
    )
    row = result.first()
    if row is None:
        raise NotFound("Offender", offender_id)
    return Offender.model_validate(dict(row._mapping))


async def load_offenders(session: AsyncSession, offender_ids: list[UUID]) -> list[Offender]:
    """Load offenders in the given order, raising NotFound for any missing ID."""
    if not offender_ids:
        return []
    result = await session.execute(
        sa.select(offenders).where(offenders.c.id.in_(offender_ids))
    )
    by_id = {row.id: Offender.model_validate(dict(row._mapping)) for row in result}
    for offender_id in offender_ids:
        if offender_id not in by_id:
            raise NotFound("Offender", offender_id)
    return [by_id[offender_id] for offender_id in offender_ids]


class OffenderResolver:
    """Find-or-create resolver for offenders.

    Every call runs inside the caller's session; the caller owns the
    transaction and commits once the case/notice referencing the offender
    has been written.
    """

    def __init__(
        self,
        match_threshold: float = MATCH_THRESHOLD,
        candidate_limit: int = 10,
        trigram_threshold: float = 0.3,
    ):
        """Initialize the resolver.

        Args:
            match_threshold: Minimum similarity for a fuzzy match
            candidate_limit: Top-N candidates fetched by the fuzzy search
            trigram_threshold: pg_trgm similarity cut-off for the search
        """
        self.match_threshold = match_threshold
        self.candidate_limit = candidate_limit
        self.trigram_threshold = trigram_threshold

    @classmethod
    def from_settings(cls, settings: Settings) -> "OffenderResolver":
        return cls(
            match_threshold=settings.offender_match_threshold or MATCH_THRESHOLD,
            candidate_limit=settings.fuzzy_candidate_limit,
            trigram_threshold=settings.trigram_search_threshold,
        )

    async def resolve_or_create(
        self,
        session: AsyncSession,
        attrs: OffenderAttrs | Mapping[str, Any],
    ) -> Resolution:
        """Return the ID of the offender described by `attrs`, creating it if needed.

        Args:
            session: Session holding the caller's transaction
            attrs: Typed attributes or the raw scraper map

        Returns:
            Resolution with the offender ID and the strategy that found it

        Raises:
            InvalidInput: Name is empty after trimming
            PersistenceError: Unexpected storage failure
        """
        if not isinstance(attrs, OffenderAttrs):
            try:
                attrs = OffenderAttrs.model_validate(attrs)
            except ValidationError as e:
                raise InvalidInput(f"Invalid offender attributes: {e}") from e

        if not attrs.name:
            raise InvalidInput("Offender name cannot be empty")

        normalized = normalize_company_name(attrs.name)

        try:
            return await self._resolve(session, attrs, normalized)
        except ResolutionError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Offender resolution failed for {attrs.name!r}: {e}")
            raise PersistenceError(f"Failed to resolve offender: {e}") from e

    async def _resolve(
        self,
        session: AsyncSession,
        attrs: OffenderAttrs,
        normalized: str,
    ) -> Resolution:
        number = attrs.company_registration_number

        if number:
            offender_id = await self.find_by_registration_number(session, number)
            if offender_id:
                return self._found(attrs, offender_id, ResolutionStrategy.REGISTRATION_NUMBER)

        offender_id = await self.find_exact(session, normalized, attrs.postcode, number)
        if offender_id:
            return self._found(attrs, offender_id, ResolutionStrategy.EXACT)

        if len(normalized) >= MIN_FUZZY_NAME_LENGTH:
            candidates = await self.search_candidates(session, normalized, number)
            best = find_best_match(
                attrs.name, attrs.postcode, candidates, threshold=self.match_threshold
            )
            if best:
                return self._found(
                    attrs,
                    best.candidate.entity_id,
                    ResolutionStrategy.FUZZY,
                    confidence=best.similarity,
                )

        try:
            offender_id = await self.create(session, attrs, normalized)
        except ConstraintViolation:
            logger.info(
                f"Offender {normalized!r} created concurrently, re-running lookup",
                extra={"normalized_name": normalized, "postcode": attrs.postcode},
            )
            offender_id = await self._lookup_after_conflict(session, attrs, normalized)
            if offender_id is None:
                raise PersistenceError(
                    f"Offender {normalized!r} violated a uniqueness constraint "
                    "but no conflicting row was found"
                )
            return self._found(attrs, offender_id, ResolutionStrategy.RETRY)

        return self._found(attrs, offender_id, ResolutionStrategy.CREATED)

    def _found(
        self,
        attrs: OffenderAttrs,
        offender_id: UUID,
        strategy: ResolutionStrategy,
        confidence: float = 1.0,
    ) -> Resolution:
        log_resolution_event(
            entity_type="offender",
            strategy=strategy.value,
            source_name=attrs.name,
            matched_id=str(offender_id),
            confidence=confidence,
            created=strategy == ResolutionStrategy.CREATED,
        )
        return Resolution(entity_id=offender_id, strategy=strategy, confidence=confidence)

    # =========================
    # Lookups
    # =========================

    async def find_by_registration_number(
        self, session: AsyncSession, number: str
    ) -> UUID | None:
        result = await session.execute(
            sa.select(offenders.c.id).where(
                offenders.c.company_registration_number == number
            )
        )
        return result.scalar_one_or_none()

    async def find_exact(
        self,
        session: AsyncSession,
        normalized_name: str,
        postcode: str | None,
        number: str | None = None,
    ) -> UUID | None:
        """Exact lookup on (normalized_name, postcode).

        A missing postcode only matches offenders that also have none.
        Offenders registered under a different company number are skipped.
        """
        query = sa.select(offenders.c.id).where(
            offenders.c.normalized_name == normalized_name
        )
        if postcode is None:
            query = query.where(offenders.c.postcode.is_(None))
        else:
            query = query.where(offenders.c.postcode == postcode)
        query = self._exclude_other_numbers(query, number)

        result = await session.execute(
            query.order_by(offenders.c.created_at, offenders.c.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def search_candidates(
        self,
        session: AsyncSession,
        normalized_name: str,
        number: str | None = None,
    ) -> list[MatchCandidate]:
        """Fetch the top-N offenders with names nearest to `normalized_name`.

        Uses the pg_trgm index on PostgreSQL; elsewhere (or when the
        extension is missing) ranks a bounded scan with rapidfuzz.
        """
        if is_postgres(session):
            try:
                async with session.begin_nested():
                    return await self._trigram_candidates(session, normalized_name, number)
            except DBAPIError as e:
                logger.warning(f"Trigram search unavailable, scanning instead: {e}")

        return await self._scan_candidates(session, normalized_name, number)

    async def _trigram_candidates(
        self,
        session: AsyncSession,
        normalized_name: str,
        number: str | None,
    ) -> list[MatchCandidate]:
        score = sa.func.similarity(offenders.c.normalized_name, normalized_name)
        query = (
            sa.select(offenders.c.id, offenders.c.name, offenders.c.postcode)
            .where(score > self.trigram_threshold)
            .order_by(score.desc())
            .limit(self.candidate_limit)
        )
        query = self._exclude_other_numbers(query, number)
        result = await session.execute(query)
        return [
            MatchCandidate(entity_id=row.id, name=row.name, postcode=row.postcode)
            for row in result
        ]

    async def _scan_candidates(
        self,
        session: AsyncSession,
        normalized_name: str,
        number: str | None,
    ) -> list[MatchCandidate]:
        query = (
            sa.select(
                offenders.c.id,
                offenders.c.name,
                offenders.c.normalized_name,
                offenders.c.postcode,
            )
            .order_by(offenders.c.created_at, offenders.c.id)
            .limit(FALLBACK_SCAN_LIMIT + 1)
        )
        query = self._exclude_other_numbers(query, number)
        rows = (await session.execute(query)).all()
        if not rows:
            return []
        if len(rows) > FALLBACK_SCAN_LIMIT:
            logger.warning(
                f"Candidate scan for {normalized_name!r} truncated at {FALLBACK_SCAN_LIMIT} "
                "offenders; newer offenders were not ranked",
                extra={"scan_limit": FALLBACK_SCAN_LIMIT},
            )
            rows = rows[:FALLBACK_SCAN_LIMIT]

        choices = {i: row.normalized_name for i, row in enumerate(rows)}
        nearest = process.extract(
            normalized_name,
            choices,
            scorer=fuzz.token_set_ratio,
            limit=self.candidate_limit,
        )
        return [
            MatchCandidate(
                entity_id=rows[key].id,
                name=rows[key].name,
                postcode=rows[key].postcode,
            )
            for _, _, key in nearest
        ]

    @staticmethod
    def _exclude_other_numbers(query, number: str | None):
        if not number:
            return query
        return query.where(
            sa.or_(
                offenders.c.company_registration_number.is_(None),
                offenders.c.company_registration_number == number,
            )
        )

    async def _lookup_after_conflict(
        self,
        session: AsyncSession,
        attrs: OffenderAttrs,
        normalized: str,
    ) -> UUID | None:
        number = attrs.company_registration_number
        if number:
            offender_id = await self.find_by_registration_number(session, number)
            if offender_id:
                return offender_id

        offender_id = await self.find_exact(session, normalized, attrs.postcode, number)
        if offender_id or number:
            return offender_id

        # The unnumbered-name index was violated by an offender at another postcode
        result = await session.execute(
            sa.select(offenders.c.id).where(
                offenders.c.normalized_name == normalized,
                offenders.c.company_registration_number.is_(None),
            )
        )
        return result.scalar_one_or_none()

    # =========================
    # Creation
    # =========================

    async def create(
        self,
        session: AsyncSession,
        attrs: OffenderAttrs,
        normalized_name: str,
    ) -> UUID:
        """Insert a new offender inside a SAVEPOINT.

        Raises:
            ConstraintViolation: A uniqueness invariant was violated
        """
        offender_id = uuid4()
        values = {
            "id": offender_id,
            "name": attrs.name,
            "normalized_name": normalized_name,
            "address": attrs.address,
            "local_authority": attrs.local_authority,
            "country": attrs.country,
            "postcode": attrs.postcode,
            "town": attrs.town,
            "county": attrs.county,
            "main_activity": attrs.main_activity,
            "business_type": attrs.business_type.value if attrs.business_type else None,
            "industry": attrs.industry,
            "industry_sectors": attrs.industry_sectors,
            "agencies": [],
            "company_registration_number": attrs.company_registration_number,
            "total_cases": 0,
            "total_notices": 0,
            "total_fines": 0,
        }

        try:
            async with session.begin_nested():
                await session.execute(sa.insert(offenders).values(**values))
        except IntegrityError as e:
            raise ConstraintViolation(
                f"Offender {normalized_name!r} already exists",
                {"normalized_name": normalized_name},
            ) from e

        logger.info(
            f"Created offender {attrs.name!r}",
            extra={"offender_id": str(offender_id), "postcode": attrs.postcode},
        )
        return offender_id
