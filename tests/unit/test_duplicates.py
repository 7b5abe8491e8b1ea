"""Unit tests for DuplicateDetector.

Run with: pytest tests/unit/test_duplicates.py -v
"""

from datetime import date
from decimal import Decimal

import pytest
import sqlalchemy as sa

from ehs_identity.resolution import DuplicateDetector
from ehs_identity.schema import cases

REUSED_CODE = "T/H/2005/257487/02"


class TestDuplicateCases:
    """Tests for case grouping by (agency, reference code)."""

    @pytest.mark.asyncio
    async def test_distinct_actions_sharing_a_code_stay_separate_rows(self, seed, session):
        """Test that two actions with one code are stored as two cases and surfaced together."""
        offender = await seed.offender("ACME Limited")
        first = await seed.case(
            offender, regulator_id=REUSED_CODE, fine="5000", action_date=date(2005, 3, 1)
        )
        second = await seed.case(
            offender, regulator_id=REUSED_CODE, fine="12000", action_date=date(2006, 7, 14)
        )

        stored = await session.scalar(
            sa.select(sa.func.count()).select_from(cases).where(cases.c.regulator_id == REUSED_CODE)
        )
        groups = await DuplicateDetector().find_duplicate_cases(session)

        assert stored == 2
        assert len(groups) == 1
        assert {ref.id for ref in groups[0]} == {first, second}
        assert {ref.offence_fine for ref in groups[0]} == {Decimal("5000"), Decimal("12000")}

    @pytest.mark.asyncio
    async def test_same_code_in_different_agencies_not_grouped(self, seed, session):
        """Test that a reference code alone never groups records."""
        offender = await seed.offender("ACME Limited")
        await seed.case(offender, agency_id="hse", regulator_id=REUSED_CODE)
        await seed.case(offender, agency_id="ea", regulator_id=REUSED_CODE)

        groups = await DuplicateDetector().find_duplicate_cases(session)

        assert groups == []

    @pytest.mark.asyncio
    async def test_codes_compared_after_trimming(self, seed, session):
        offender = await seed.offender("ACME Limited")
        await seed.case(offender, regulator_id=" 4432118 ")
        await seed.case(offender, regulator_id="4432118")

        groups = await DuplicateDetector().find_duplicate_cases(session)

        assert len(groups) == 1
        assert all(ref.regulator_id == "4432118" for ref in groups[0])

    @pytest.mark.asyncio
    async def test_codes_with_trailing_newline_or_tab_grouped(self, seed, session):
        offender = await seed.offender("ACME Limited")
        await seed.case(offender, regulator_id=REUSED_CODE)
        await seed.case(offender, regulator_id=f"{REUSED_CODE}\n")
        await seed.case(offender, regulator_id=f"\t{REUSED_CODE}\r\n")

        groups = await DuplicateDetector().find_duplicate_cases(session)

        assert len(groups) == 1
        assert len(groups[0]) == 3
        assert {ref.regulator_id for ref in groups[0]} == {REUSED_CODE}

    @pytest.mark.asyncio
    async def test_blank_codes_ignored(self, seed, session):
        offender = await seed.offender("ACME Limited")
        await seed.case(offender, regulator_id="   ")
        await seed.case(offender, regulator_id="   ")

        assert await DuplicateDetector().find_duplicate_cases(session) == []

    @pytest.mark.asyncio
    async def test_agency_filter_and_ordering(self, seed, session):
        """Test scoping to one agency and largest-group-first ordering."""
        offender = await seed.offender("ACME Limited")
        await seed.cases(offender, 3, agency_id="hse", regulator_id="A")
        await seed.cases(offender, 2, agency_id="hse", regulator_id="B")
        await seed.cases(offender, 2, agency_id="ea", regulator_id="A")

        detector = DuplicateDetector()
        all_groups = await detector.find_duplicate_cases(session)
        hse_groups = await detector.find_duplicate_cases(session, agency_id="hse")

        assert [len(g) for g in all_groups] == [3, 2, 2]
        assert [len(g) for g in hse_groups] == [3, 2]
        assert all(ref.agency_id == "hse" for g in hse_groups for ref in g)


class TestDuplicateNotices:
    """Tests for notice grouping."""

    @pytest.mark.asyncio
    async def test_notices_grouped_by_agency_and_code(self, seed, session):
        offender = await seed.offender("ACME Limited")
        await seed.notice(offender, agency_id="hse", regulator_id="310123456")
        await seed.notice(offender, agency_id="hse", regulator_id="310123456")
        await seed.notice(offender, agency_id="onr", regulator_id="310123456")

        groups = await DuplicateDetector().find_duplicate_notices(session)

        assert len(groups) == 1
        assert len(groups[0]) == 2
        assert groups[0][0].agency_id == "hse"


class TestDuplicateOffenders:
    """Tests for the advisory offender name heuristic."""

    @pytest.mark.asyncio
    async def test_case_and_whitespace_variants_grouped(self, seed, session):
        a = await seed.offender("ACME Ltd", company_registration_number="01234567")
        b = await seed.offender("acme ltd ", company_registration_number="07654321")
        await seed.offender("Beta Works Limited")

        groups = await DuplicateDetector().find_duplicate_offenders(session)

        assert len(groups) == 1
        assert {ref.id for ref in groups[0]} == {a, b}

    @pytest.mark.asyncio
    async def test_normalized_grouping_folds_suffixes(self, seed, session):
        """Test that suffix variants only group with normalized=True."""
        await seed.offender("ACME Ltd", company_registration_number="01234567")
        await seed.offender("ACME Limited", company_registration_number="07654321")

        detector = DuplicateDetector()

        assert await detector.find_duplicate_offenders(session) == []
        groups = await detector.find_duplicate_offenders(session, normalized=True)
        assert len(groups) == 1
        assert len(groups[0]) == 2

    @pytest.mark.asyncio
    async def test_scan_is_bounded(self, seed, session):
        await seed.offender("Zeta Ltd", company_registration_number="00000001")
        await seed.offender("Zeta Ltd", company_registration_number="00000002")
        await seed.offender("Alpha Ltd")

        groups = await DuplicateDetector(offender_scan_limit=2).find_duplicate_offenders(session)

        assert groups == []
