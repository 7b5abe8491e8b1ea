"""Unit tests for LegislationResolver.

Run with: pytest tests/unit/test_legislation_resolver.py -v
"""

import pytest
import sqlalchemy as sa

from ehs_identity.errors import InvalidInput, NotFound
from ehs_identity.models import LegislationAttrs, LegislationType, ResolutionStrategy
from ehs_identity.resolution import LegislationResolver
from ehs_identity.resolution.legislation import validate_legislation
from ehs_identity.schema import legislation


async def count_legislation(session) -> int:
    return await session.scalar(sa.select(sa.func.count()).select_from(legislation))


class TestValidateLegislation:
    """Tests for reference validation and normalization."""

    def test_normalizes_title_and_infers_type(self):
        validated = validate_legislation(
            LegislationAttrs(title="CONTROL OF ASBESTOS REGULATIONS 2012")
        )
        assert validated.title == "Control of Asbestos Regulations 2012"
        assert validated.year == 2012
        assert validated.type == LegislationType.REGULATION

    def test_explicit_year_kept(self):
        validated = validate_legislation(LegislationAttrs(title="Factories Act 1937", year=1961))
        assert validated.year == 1961

    def test_explicit_type_kept(self):
        validated = validate_legislation(
            LegislationAttrs(title="Work at Height Regulations", type="guidance")
        )
        assert validated.type == LegislationType.GUIDANCE

    @pytest.mark.parametrize("given", ["Statutory Instrument", "SI", 7])
    def test_unknown_type_derived_from_title(self, given):
        validated = validate_legislation(
            LegislationAttrs(title="Work at Height Regulations 2005", type=given)
        )
        assert validated.type == LegislationType.REGULATION

    def test_empty_title_rejected(self):
        with pytest.raises(InvalidInput):
            validate_legislation(LegislationAttrs(title="   "))

    def test_numeric_strings_parsed(self):
        attrs = LegislationAttrs.model_validate({"title": "Factories Act", "year": "1961", "number": "34"})
        assert attrs.year == 1961
        assert attrs.number == 34


class TestResolveOrCreate:
    """Tests for the legislation find-or-create flow."""

    @pytest.mark.asyncio
    async def test_exact_lookup_is_idempotent(self, session):
        resolver = LegislationResolver()

        first = await resolver.resolve_or_create(
            session, "Health and Safety at Work etc. Act", year=1974, number=37
        )
        second = await resolver.resolve_or_create(
            session, "HEALTH AND SAFETY AT WORK ETC. ACT", year=1974, number=37
        )

        assert first.strategy == ResolutionStrategy.CREATED
        assert second.strategy == ResolutionStrategy.EXACT
        assert second.entity_id == first.entity_id
        assert await count_legislation(session) == 1

    @pytest.mark.asyncio
    async def test_fuzzy_match_without_number(self, session):
        """Test that a variant title with no number reuses the existing record."""
        resolver = LegislationResolver()
        existing = await resolver.resolve_or_create(
            session, "Health and Safety at Work etc. Act", year=1974, number=37
        )

        resolution = await resolver.resolve_or_create(
            session, "HEALTH AND SAFETY AT WORK ACT 1974", year=1974, number=None
        )

        assert resolution.entity_id == existing.entity_id
        assert resolution.strategy == ResolutionStrategy.FUZZY
        assert resolution.confidence > 0.85
        assert await count_legislation(session) == 1

    @pytest.mark.asyncio
    async def test_different_year_creates_new_record(self, session):
        """Test that a reissued instrument with another year is kept distinct."""
        resolver = LegislationResolver()
        first = await resolver.resolve_or_create(
            session, "Management of Health and Safety at Work Regulations", year=1992
        )

        second = await resolver.resolve_or_create(
            session, "Management of Health and Safety at Work Regulations", year=1999
        )

        assert second.entity_id != first.entity_id
        assert second.strategy == ResolutionStrategy.CREATED
        assert await count_legislation(session) == 2

    @pytest.mark.asyncio
    async def test_created_record_fields(self, session):
        resolver = LegislationResolver()

        resolution = await resolver.resolve_or_create(
            session, "control of substances hazardous to health regulations 2002"
        )
        record = await resolver.get(session, resolution.entity_id)

        assert record.title == "Control of Substances Hazardous to Health Regulations 2002"
        assert record.year == 2002
        assert record.number is None
        assert record.type == "regulation"

    @pytest.mark.asyncio
    async def test_unknown_type_does_not_reject_reference(self, session):
        resolver = LegislationResolver()

        resolution = await resolver.resolve_or_create(
            session, "Health and Safety at Work etc. Act", 1974, 37, "Statutory Instrument"
        )
        record = await resolver.get(session, resolution.entity_id)

        assert resolution.strategy == ResolutionStrategy.CREATED
        assert record.type == "act"

    @pytest.mark.asyncio
    async def test_empty_title_rejected(self, session):
        with pytest.raises(InvalidInput):
            await LegislationResolver().resolve_or_create(session, "")

    @pytest.mark.asyncio
    async def test_get_missing(self, session):
        from uuid import uuid4

        with pytest.raises(NotFound):
            await LegislationResolver().get(session, uuid4())

    @pytest.mark.asyncio
    async def test_create_conflict_falls_back_to_lookup(self, session):
        """Test the re-lookup when the identity key is taken concurrently."""

        class BlindResolver(LegislationResolver):
            async def find_similar(self, session, title, year):
                return None

        resolver = BlindResolver()
        validated = validate_legislation(LegislationAttrs(title="Factories Act", year=1961))
        created = await resolver.create(session, validated)

        calls = []
        original = resolver.find_exact

        async def first_miss(session, title, year, number):
            calls.append(title)
            if len(calls) == 1:
                return None
            return await original(session, title, year, number)

        resolver.find_exact = first_miss
        resolution = await resolver.resolve_or_create(session, "Factories Act", year=1961)

        assert resolution.entity_id == created.id
        assert resolution.strategy == ResolutionStrategy.RETRY


class TestResolveBatch:
    """Tests for atomic batch resolution."""

    @pytest.mark.asyncio
    async def test_batch_maps_titles_to_records(self, session):
        resolver = LegislationResolver()

        resolved = await resolver.resolve_batch(
            session,
            [
                {"title": "Health and Safety at Work etc. Act", "year": 1974, "number": 37},
                {"title": "Work at Height Regulations 2005"},
            ],
        )

        assert set(resolved) == {
            "Health and Safety at Work etc. Act",
            "Work at Height Regulations 2005",
        }
        assert resolved["Work at Height Regulations 2005"].year == 2005
        assert await count_legislation(session) == 2

    @pytest.mark.asyncio
    async def test_batch_tolerates_unknown_types(self, session):
        resolved = await LegislationResolver().resolve_batch(
            session,
            [
                {"title": "Work at Height Regulations 2005", "type": "SI"},
                {"title": "Factories Act 1961", "type": "Statutory Instrument"},
            ],
        )

        assert resolved["Work at Height Regulations 2005"].type == "regulation"
        assert resolved["Factories Act 1961"].type == "act"

    @pytest.mark.asyncio
    async def test_batch_failure_rolls_back_everything(self, session):
        """Test that one invalid reference discards the whole batch."""
        resolver = LegislationResolver()

        with pytest.raises(InvalidInput):
            await resolver.resolve_batch(
                session,
                [
                    {"title": "Work at Height Regulations 2005"},
                    {"title": ""},
                ],
            )

        assert await count_legislation(session) == 0


class TestSearchAndStats:
    """Tests for fuzzy search and monitoring statistics."""

    @pytest.mark.asyncio
    async def test_search_fuzzy_best_first(self, session):
        resolver = LegislationResolver()
        await resolver.resolve_or_create(session, "Health and Safety at Work etc. Act", 1974, 37)
        await resolver.resolve_or_create(session, "Control of Asbestos Regulations", 2012)

        matches = await resolver.search_fuzzy(session, "health and safety at work act")

        assert len(matches) == 1
        assert matches[0].legislation.title == "Health and Safety at Work etc. Act"

    @pytest.mark.asyncio
    async def test_stats_reports_potential_duplicates(self, session):
        resolver = LegislationResolver()
        await resolver.create(
            session,
            LegislationAttrs(
                title="Health and Safety at Work etc. Act", year=1974, number=37, type="act"
            ),
        )
        await resolver.create(
            session,
            LegislationAttrs(title="HEALTH AND SAFETY AT WORK ETC. ACT", year=1974, type="act"),
        )
        await resolver.create(
            session, LegislationAttrs(title="Work at Height Regulations", type="regulation")
        )

        stats = await resolver.stats(session)

        assert stats.total_count == 3
        assert stats.by_type == {"act": 2, "regulation": 1}
        assert stats.missing_year == 1
        assert stats.missing_number == 2
        assert len(stats.potential_duplicates) == 1
        group = stats.potential_duplicates[0]
        assert group.normalized_title == "Health and Safety at Work etc. Act"
        assert group.year == 1974
        assert group.count == 2
