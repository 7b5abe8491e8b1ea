"""Shared fixtures for EHS Identity tests.

Every test gets its own SQLite database file (via aiosqlite) with the full
schema created from ``ehs_identity.schema.metadata``.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
import sqlalchemy as sa

from ehs_identity.db import create_engine_for_url, create_session_factory, session_scope
from ehs_identity.errors import ExternalLookupFailed
from ehs_identity.models import RegistryCompany
from ehs_identity.resolution.normalize import normalize_company_name
from ehs_identity.schema import agencies, cases, metadata, notices, offenders

# =========================
# Database Fixtures
# =========================


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ehs_identity.db'}"


@pytest_asyncio.fixture
async def engine(database_url):
    """Async engine with the schema created."""
    engine = create_engine_for_url(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    """Session for a single test. Tests commit explicitly when needed."""
    async with session_factory() as session:
        yield session


# =========================
# Data Seeding
# =========================


class Seeder:
    """Writes offenders, cases and notices directly, bypassing the resolvers.

    Each call commits in its own session so the data is visible to any
    session the code under test opens.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._agencies: set[str] = set()

    async def agency(self, agency_id: str, name: str | None = None) -> str:
        if agency_id not in self._agencies:
            async with session_scope(self.session_factory) as session:
                await session.execute(
                    sa.insert(agencies).values(
                        id=agency_id, name=name or agency_id.upper(), enabled=True
                    )
                )
            self._agencies.add(agency_id)
        return agency_id

    async def offender(
        self,
        name: str,
        postcode: str | None = None,
        company_registration_number: str | None = None,
        **fields,
    ) -> UUID:
        offender_id = uuid4()
        values = {
            "id": offender_id,
            "name": name,
            "normalized_name": normalize_company_name(name),
            "postcode": postcode,
            "company_registration_number": company_registration_number,
            "agencies": [],
            "industry_sectors": [],
            "total_cases": 0,
            "total_notices": 0,
            "total_fines": Decimal("0"),
        }
        values.update(fields)
        async with session_scope(self.session_factory) as session:
            await session.execute(sa.insert(offenders).values(**values))
        return offender_id

    async def case(
        self,
        offender_id: UUID,
        agency_id: str = "hse",
        regulator_id: str | None = None,
        fine: Decimal | str | None = None,
        action_date: date | None = None,
    ) -> UUID:
        await self.agency(agency_id)
        case_id = uuid4()
        async with session_scope(self.session_factory) as session:
            await session.execute(
                sa.insert(cases).values(
                    id=case_id,
                    agency_id=agency_id,
                    offender_id=offender_id,
                    regulator_id=regulator_id or f"C-{case_id.hex[:8]}",
                    offence_fine=Decimal(fine) if fine is not None else None,
                    offence_action_date=action_date,
                )
            )
        return case_id

    async def cases(self, offender_id: UUID, count: int, **kwargs) -> list[UUID]:
        return [await self.case(offender_id, **kwargs) for _ in range(count)]

    async def notice(
        self,
        offender_id: UUID,
        agency_id: str = "hse",
        regulator_id: str | None = None,
        notice_date: date | None = None,
    ) -> UUID:
        await self.agency(agency_id)
        notice_id = uuid4()
        async with session_scope(self.session_factory) as session:
            await session.execute(
                sa.insert(notices).values(
                    id=notice_id,
                    agency_id=agency_id,
                    offender_id=offender_id,
                    regulator_id=regulator_id or f"N-{notice_id.hex[:8]}",
                    notice_type="Improvement Notice",
                    notice_date=notice_date,
                )
            )
        return notice_id


@pytest.fixture
def seed(session_factory) -> Seeder:
    return Seeder(session_factory)


# =========================
# Registry Fakes
# =========================


class FakeRegistry:
    """In-memory company registry.

    Set ``error`` to make every lookup fail the way an unreachable registry
    does.
    """

    def __init__(self):
        self.companies: dict[str, RegistryCompany] = {}
        self.error: ExternalLookupFailed | None = None
        self.lookups: list[str] = []

    def add(
        self,
        company_number: str,
        company_name: str,
        **address: str,
    ) -> RegistryCompany:
        company = RegistryCompany(
            company_number=company_number,
            company_name=company_name,
            company_status="active",
            address=address,
        )
        self.companies[company_number] = company
        return company

    async def lookup_company(self, company_number: str | None) -> RegistryCompany | None:
        self.lookups.append(company_number)
        if self.error is not None:
            raise self.error
        return self.companies.get(company_number)


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()
