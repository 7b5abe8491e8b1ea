"""API tests for the administration endpoints.

The app is built around the per-test SQLite database and the in-memory
registry fake, and driven through ``httpx.ASGITransport``.
"""

from uuid import uuid4

import httpx
import pytest
import pytest_asyncio

from ehs_identity.config import Settings
from ehs_identity.main import create_app
from ehs_identity.models import CandidateCompany
from ehs_identity.resolution import MatchReviewQueue


@pytest_asyncio.fixture
async def client(session_factory, registry):
    app = create_app(settings=Settings(), session_factory=session_factory, registry=registry)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_ready_checks_database(self, client):
        response = await client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["checks"] == {"database": "healthy"}


class TestDuplicateEndpoints:
    @pytest.mark.asyncio
    async def test_duplicate_cases(self, seed, client):
        offender = await seed.offender("ACME Limited")
        await seed.case(offender, regulator_id="T/H/2005/257487/02")
        await seed.case(offender, regulator_id="T/H/2005/257487/02")
        await seed.case(offender, regulator_id="4432118")

        response = await client.get("/api/v1/duplicates/cases", params={"agency_id": "hse"})

        body = response.json()
        assert response.status_code == 200
        assert body["total_groups"] == 1
        assert {ref["regulator_id"] for ref in body["groups"][0]} == {"T/H/2005/257487/02"}

    @pytest.mark.asyncio
    async def test_duplicate_offenders_limit_validated(self, client):
        response = await client.get("/api/v1/duplicates/offenders", params={"limit": 0})
        assert response.status_code == 422


class TestMergeEndpoints:
    @pytest.mark.asyncio
    async def test_preview_then_execute(self, seed, client):
        master = await seed.offender("ACME Limited")
        dup = await seed.offender("ACME Contractors Ltd", postcode="AB1 2CD")
        await seed.cases(dup, 2, fine="750")
        payload = {"master_id": str(master), "duplicate_ids": [str(dup)]}

        preview = await client.post("/api/v1/offenders/merge/preview", json=payload)
        assert preview.status_code == 200
        assert preview.json()["can_merge"] is True
        assert preview.json()["projected_totals"]["total_cases"] == 2

        merged = await client.post("/api/v1/offenders/merge", json=payload)
        body = merged.json()
        assert merged.status_code == 200
        assert body["deleted_ids"] == [str(dup)]
        assert body["master"]["total_cases"] == 2
        assert body["cases_moved"] == 2

    @pytest.mark.asyncio
    async def test_unknown_master_is_404(self, seed, client):
        dup = await seed.offender("ACME Ltd")

        response = await client.post(
            "/api/v1/offenders/merge",
            json={"master_id": str(uuid4()), "duplicate_ids": [str(dup)]},
        )

        assert response.status_code == 404
        assert response.json()["error_code"] == "NOT_FOUND"
        assert response.headers["X-Error-Code"] == "NOT_FOUND"

    @pytest.mark.asyncio
    async def test_registry_mismatch_is_409(self, seed, registry, client):
        registry.add("01234567", "Zenith Holdings PLC")
        master = await seed.offender("ACME Limited", company_registration_number="01234567")
        dup = await seed.offender("ACME Ltd")

        response = await client.post(
            "/api/v1/offenders/merge",
            json={"master_id": str(master), "duplicate_ids": [str(dup)]},
        )

        body = response.json()
        assert response.status_code == 409
        assert body["error_code"] == "VALIDATION_FAILED"
        assert body["details"][0]["details"]["canonical_name"] == "Zenith Holdings PLC"

    @pytest.mark.asyncio
    async def test_preview_reports_blocking_finding_instead_of_error(self, seed, registry, client):
        registry.add("01234567", "Zenith Holdings PLC")
        master = await seed.offender("ACME Limited", company_registration_number="01234567")
        dup = await seed.offender("ACME Ltd")

        response = await client.post(
            "/api/v1/offenders/merge/preview",
            json={"master_id": str(master), "duplicate_ids": [str(dup)]},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["can_merge"] is False
        assert "VALIDATION_FAILED" in {f["code"] for f in body["findings"] if f["blocking"]}

    @pytest.mark.asyncio
    async def test_master_among_duplicates_is_400(self, seed, client):
        master = await seed.offender("ACME Limited")

        response = await client.post(
            "/api/v1/offenders/merge",
            json={"master_id": str(master), "duplicate_ids": [str(master)]},
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_INPUT"

    @pytest.mark.asyncio
    async def test_empty_duplicate_list_rejected_by_schema(self, seed, client):
        master = await seed.offender("ACME Limited")

        response = await client.post(
            "/api/v1/offenders/merge",
            json={"master_id": str(master), "duplicate_ids": []},
        )

        assert response.status_code == 422


class TestReviewEndpoints:
    @pytest.mark.asyncio
    async def test_list_and_approve(self, seed, session, client):
        offender = await seed.offender("ACME Limited")
        review = await MatchReviewQueue().create_review(
            session,
            offender,
            [
                CandidateCompany(
                    company_number="01234567",
                    company_name="ACME LIMITED",
                    similarity_score=0.82,
                )
            ],
        )
        await session.commit()

        listed = await client.get("/api/v1/reviews")
        assert listed.status_code == 200
        assert [item["id"] for item in listed.json()["items"]] == [str(review.id)]
        assert listed.json()["stats"]["pending"] == 1

        approved = await client.post(
            f"/api/v1/reviews/{review.id}/approve",
            json={"company_number": "01234567", "reviewed_by": "analyst"},
        )
        assert approved.status_code == 200
        assert approved.json()["status"] == "approved"

        again = await client.post(f"/api/v1/reviews/{review.id}/skip", json={})
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_review_is_404(self, client):
        response = await client.post(f"/api/v1/reviews/{uuid4()}/defer", json={})
        assert response.status_code == 404
