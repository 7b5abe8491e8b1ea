"""Legislation find-or-create resolution.

Titles are normalized to title case before any lookup, so "HEALTH AND
SAFETY AT WORK ETC. ACT" and "Health and Safety at Work etc. Act" are the
same reference. Resolution then tries:

1. Exact (title, year, number) via the identity key
2. Fuzzy title match among legislation with the same year or no year
3. Create
"""

from collections import defaultdict
from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings
from ..errors import ConstraintViolation, InvalidInput, NotFound, PersistenceError, ResolutionError
from ..logging import get_context_logger, log_resolution_event
from ..models import Legislation, LegislationAttrs, LegislationType, Resolution, ResolutionStrategy
from ..schema import legislation
from .normalize import (
    determine_legislation_type,
    extract_year,
    legislation_identity_key,
    normalize_legislation_title,
)
from .scoring import LEGISLATION_MATCH_THRESHOLD, LEGISLATION_SEARCH_THRESHOLD, name_similarity

logger = get_context_logger(__name__)


class LegislationMatch(BaseModel):
    """A legislation record with its similarity to a searched title."""

    legislation: Legislation
    similarity: float


class DuplicateTitleGroup(BaseModel):
    """Legislation records sharing a normalized title and year."""

    normalized_title: str
    year: int | None = None
    count: int
    records: list[UUID]


class LegislationStats(BaseModel):
    """Duplicate-prevention monitoring figures."""

    total_count: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    missing_year: int = 0
    missing_number: int = 0
    potential_duplicates: list[DuplicateTitleGroup] = Field(default_factory=list)


def validate_legislation(attrs: LegislationAttrs) -> LegislationAttrs:
    """Normalize a legislation reference ready for lookup.

    Normalizes the title, derives the type from the title unless given and
    extracts the year from the title when missing.

    Raises:
        InvalidInput: Title is empty
    """
    if not attrs.title:
        raise InvalidInput("Legislation title cannot be empty")

    title = normalize_legislation_title(attrs.title)
    return LegislationAttrs(
        title=title,
        year=attrs.year if attrs.year is not None else extract_year(attrs.title),
        number=attrs.number,
        type=attrs.type or LegislationType(determine_legislation_type(title)),
    )


def _to_model(row) -> Legislation:
    return Legislation.model_validate(dict(row._mapping))


def _coerce_attrs(item: LegislationAttrs | Mapping[str, Any]) -> LegislationAttrs:
    if isinstance(item, LegislationAttrs):
        return item
    try:
        return LegislationAttrs.model_validate(item)
    except ValidationError as e:
        raise InvalidInput(f"Invalid legislation reference: {e}") from e


class LegislationResolver:
    """Find-or-create resolver for legislation references."""

    def __init__(
        self,
        match_threshold: float = LEGISLATION_MATCH_THRESHOLD,
        search_threshold: float = LEGISLATION_SEARCH_THRESHOLD,
    ):
        self.match_threshold = match_threshold
        self.search_threshold = search_threshold

    @classmethod
    def from_settings(cls, settings: Settings) -> "LegislationResolver":
        return cls(
            match_threshold=settings.legislation_match_threshold
            or LEGISLATION_MATCH_THRESHOLD
        )

    async def resolve_or_create(
        self,
        session: AsyncSession,
        title: str,
        year: int | None = None,
        number: int | None = None,
        type: LegislationType | str | None = None,
    ) -> Resolution:
        """Return the ID of the referenced legislation, creating it if needed.

        Raises:
            InvalidInput: Title is empty
            PersistenceError: Unexpected storage failure
        """
        attrs = _coerce_attrs({"title": title, "year": year, "number": number, "type": type})
        record, strategy, confidence = await self._resolve(session, attrs)
        return Resolution(entity_id=record.id, strategy=strategy, confidence=confidence)

    async def resolve_batch(
        self,
        session: AsyncSession,
        items: list[LegislationAttrs | Mapping[str, Any]],
    ) -> dict[str, Legislation]:
        """Resolve several references atomically.

        The whole batch runs in one SAVEPOINT; the first failure rolls back
        every record the batch created and propagates.

        Returns:
            Mapping from each input title to its legislation record
        """
        resolved: dict[str, Legislation] = {}
        async with session.begin_nested():
            for item in items:
                attrs = _coerce_attrs(item)
                record, _, _ = await self._resolve(session, attrs)
                resolved[attrs.title] = record
        return resolved

    async def _resolve(
        self,
        session: AsyncSession,
        attrs: LegislationAttrs,
    ) -> tuple[Legislation, ResolutionStrategy, float]:
        validated = validate_legislation(attrs)

        try:
            record = await self.find_exact(session, validated.title, validated.year, validated.number)
            if record:
                return self._found(attrs, record, ResolutionStrategy.EXACT, 1.0)

            match = await self.find_similar(session, validated.title, validated.year)
            if match:
                logger.info(
                    f"Found similar legislation: {validated.title} -> {match.legislation.title}"
                )
                return self._found(
                    attrs, match.legislation, ResolutionStrategy.FUZZY, match.similarity
                )

            try:
                record = await self.create(session, validated)
            except ConstraintViolation:
                logger.info(f"Legislation {validated.title!r} created concurrently, re-running lookup")
                record = await self.find_exact(
                    session, validated.title, validated.year, validated.number
                )
                if record is None:
                    raise PersistenceError(
                        f"Legislation {validated.title!r} violated its identity key "
                        "but no conflicting row was found"
                    )
                return self._found(attrs, record, ResolutionStrategy.RETRY, 1.0)

            return self._found(attrs, record, ResolutionStrategy.CREATED, 1.0)
        except ResolutionError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Legislation resolution failed for {attrs.title!r}: {e}")
            raise PersistenceError(f"Failed to resolve legislation: {e}") from e

    def _found(
        self,
        attrs: LegislationAttrs,
        record: Legislation,
        strategy: ResolutionStrategy,
        confidence: float,
    ) -> tuple[Legislation, ResolutionStrategy, float]:
        log_resolution_event(
            entity_type="legislation",
            strategy=strategy.value,
            source_name=attrs.title,
            matched_id=str(record.id),
            confidence=confidence,
            created=strategy == ResolutionStrategy.CREATED,
        )
        return record, strategy, confidence

    # =========================
    # Lookups
    # =========================

    async def get(self, session: AsyncSession, legislation_id: UUID) -> Legislation:
        result = await session.execute(
            sa.select(legislation).where(legislation.c.id == legislation_id)
        )
        row = result.first()
        if row is None:
            raise NotFound("Legislation", legislation_id)
        return _to_model(row)

    async def find_exact(
        self,
        session: AsyncSession,
        title: str,
        year: int | None,
        number: int | None,
    ) -> Legislation | None:
        key = legislation_identity_key(title, year, number)
        result = await session.execute(
            sa.select(legislation).where(legislation.c.identity_key == key)
        )
        row = result.first()
        return _to_model(row) if row else None

    async def find_similar(
        self,
        session: AsyncSession,
        title: str,
        year: int | None,
    ) -> LegislationMatch | None:
        """Best match above the threshold among records with this year or none."""
        query = sa.select(legislation)
        if year is None:
            query = query.where(legislation.c.year.is_(None))
        else:
            query = query.where(
                sa.or_(legislation.c.year == year, legislation.c.year.is_(None))
            )

        best: LegislationMatch | None = None
        for row in (await session.execute(query)).all():
            score = name_similarity(title, row.title)
            if score >= self.match_threshold and (best is None or score > best.similarity):
                best = LegislationMatch(legislation=_to_model(row), similarity=score)
        return best

    async def create(self, session: AsyncSession, attrs: LegislationAttrs) -> Legislation:
        """Insert a validated legislation record inside a SAVEPOINT.

        Raises:
            ConstraintViolation: The (title, year, number) triple already exists
        """
        record = Legislation(
            id=uuid4(),
            title=attrs.title,
            year=attrs.year,
            number=attrs.number,
            type=(attrs.type or LegislationType.ACT).value,
        )
        try:
            async with session.begin_nested():
                await session.execute(
                    sa.insert(legislation).values(
                        **record.model_dump(),
                        identity_key=legislation_identity_key(
                            record.title, record.year, record.number
                        ),
                    )
                )
        except IntegrityError as e:
            raise ConstraintViolation(f"Legislation {attrs.title!r} already exists") from e

        logger.info(f"Created legislation {record.title!r}", extra={"legislation_id": str(record.id)})
        return record

    # =========================
    # Search and monitoring
    # =========================

    async def search_fuzzy(
        self,
        session: AsyncSession,
        title: str,
        threshold: float | None = None,
    ) -> list[LegislationMatch]:
        """All legislation scoring at or above `threshold` against `title`, best first."""
        threshold = self.search_threshold if threshold is None else threshold
        normalized = normalize_legislation_title(title)

        matches = []
        for row in (await session.execute(sa.select(legislation))).all():
            score = name_similarity(normalized, row.title)
            if score >= threshold:
                matches.append(LegislationMatch(legislation=_to_model(row), similarity=score))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches

    async def stats(self, session: AsyncSession) -> LegislationStats:
        """Counts by type, missing fields and potential duplicate titles."""
        rows = (await session.execute(sa.select(legislation))).all()

        by_type: dict[str, int] = defaultdict(int)
        groups: dict[tuple[str, int | None], list[UUID]] = defaultdict(list)
        for row in rows:
            by_type[row.type] += 1
            groups[(normalize_legislation_title(row.title), row.year)].append(row.id)

        return LegislationStats(
            total_count=len(rows),
            by_type=dict(by_type),
            missing_year=sum(1 for row in rows if row.year is None),
            missing_number=sum(1 for row in rows if row.number is None),
            potential_duplicates=[
                DuplicateTitleGroup(
                    normalized_title=title,
                    year=year,
                    count=len(ids),
                    records=ids,
                )
                for (title, year), ids in groups.items()
                if len(ids) > 1
            ],
        )
