"""Unit tests for the Companies House client.

Requests are served by ``httpx.MockTransport``; nothing leaves the process.
"""

import base64

import httpx
import pytest

from ehs_identity.cache import InMemoryCache, registry_company_key
from ehs_identity.errors import ExternalLookupFailed, InvalidInput
from ehs_identity.registry import (
    CompaniesHouseClient,
    extract_address_components,
    format_registered_office,
)

PROFILE = {
    "company_number": "01234567",
    "company_name": "ACME CONSTRUCTION LIMITED",
    "company_status": "active",
    "type": "ltd",
    "registered_office_address": {
        "address_line_1": "1 High Street",
        "locality": "Leeds",
        "region": "West Yorkshire",
        "postal_code": "LS1 1AA",
    },
}


class RecordingHandler:
    """Serves canned responses and records every request."""

    def __init__(self, status: int = 200, payload: dict | None = None, error: Exception | None = None):
        self.status = status
        self.payload = payload if payload is not None else PROFILE
        self.error = error
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, json=self.payload)


def make_client(handler, api_key="test-key", cache=None) -> CompaniesHouseClient:
    return CompaniesHouseClient(
        api_key=api_key,
        base_url="https://registry.test",
        cache=cache,
        transport=httpx.MockTransport(handler),
    )


class TestAddressHelpers:
    def test_format_registered_office(self):
        assert format_registered_office(PROFILE) == (
            "1 High Street, Leeds, West Yorkshire, LS1 1AA"
        )
        assert format_registered_office({}) is None

    def test_extract_drops_empty_components(self):
        profile = {"registered_office_address": {"locality": "Leeds", "postal_code": ""}}
        assert extract_address_components(profile) == {"town": "Leeds"}
        assert extract_address_components(None) == {}


class TestLookupCompany:
    """Tests for lookup by registration number."""

    @pytest.mark.asyncio
    async def test_parses_profile(self):
        handler = RecordingHandler()
        async with make_client(handler) as client:
            company = await client.lookup_company("1234567")

        assert company.company_number == "01234567"
        assert company.company_name == "ACME CONSTRUCTION LIMITED"
        assert company.company_type == "ltd"
        assert company.address == {
            "address": "1 High Street",
            "town": "Leeds",
            "county": "West Yorkshire",
            "postcode": "LS1 1AA",
        }
        assert handler.requests[0].url.path == "/company/01234567"

    @pytest.mark.asyncio
    async def test_uses_basic_auth_with_key_as_username(self):
        handler = RecordingHandler()
        async with make_client(handler) as client:
            await client.lookup_company("01234567")

        expected = base64.b64encode(b"test-key:").decode()
        assert handler.requests[0].headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_successful_lookup_is_cached(self):
        handler = RecordingHandler()
        cache = InMemoryCache()
        async with make_client(handler, cache=cache) as client:
            first = await client.lookup_company("01234567")
            second = await client.lookup_company("01234567")

        assert first == second
        assert len(handler.requests) == 1
        assert await cache.exists(registry_company_key("01234567"))

    @pytest.mark.asyncio
    async def test_not_found_returns_none_and_is_not_cached(self):
        handler = RecordingHandler(status=404, payload={"errors": []})
        cache = InMemoryCache()
        async with make_client(handler, cache=cache) as client:
            assert await client.lookup_company("09999999") is None
            assert await client.lookup_company("09999999") is None

        assert len(handler.requests) == 2
        assert not await cache.exists(registry_company_key("09999999"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,reason",
        [(401, "unauthorized"), (429, "rate_limited"), (500, "http_error")],
    )
    async def test_error_statuses(self, status, reason):
        async with make_client(RecordingHandler(status=status, payload={})) as client:
            with pytest.raises(ExternalLookupFailed) as exc_info:
                await client.lookup_company("01234567")

        assert exc_info.value.reason == reason

    @pytest.mark.asyncio
    async def test_timeout(self):
        handler = RecordingHandler(error=httpx.ReadTimeout("slow"))
        async with make_client(handler) as client:
            with pytest.raises(ExternalLookupFailed) as exc_info:
                await client.lookup_company("01234567")

        assert exc_info.value.reason == "timeout"

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self):
        handler = RecordingHandler(status=429, payload={})
        cache = InMemoryCache()
        async with make_client(handler, cache=cache) as client:
            with pytest.raises(ExternalLookupFailed):
                await client.lookup_company("01234567")

            handler.status = 200
            handler.payload = PROFILE
            company = await client.lookup_company("01234567")

        assert company.company_name == "ACME CONSTRUCTION LIMITED"
        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"company_number": "01234567", "company_name": "  "}])
    async def test_profile_without_name_is_a_lookup_failure(self, payload):
        handler = RecordingHandler(payload=payload)
        cache = InMemoryCache()
        async with make_client(handler, cache=cache) as client:
            with pytest.raises(ExternalLookupFailed) as exc_info:
                await client.lookup_company("01234567")

        assert exc_info.value.reason == "malformed_response"
        assert not await cache.exists(registry_company_key("01234567"))

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        handler = RecordingHandler()
        async with make_client(handler, api_key=None) as client:
            with pytest.raises(ExternalLookupFailed) as exc_info:
                await client.lookup_company("01234567")

        assert exc_info.value.reason == "missing_api_key"
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_empty_number(self):
        async with make_client(RecordingHandler()) as client:
            with pytest.raises(InvalidInput):
                await client.lookup_company("  ")


class TestSearchAndValidate:
    @pytest.mark.asyncio
    async def test_search_params(self):
        handler = RecordingHandler(
            payload={
                "items": [
                    {
                        "company_number": "01234567",
                        "company_name": "ACME CONSTRUCTION LIMITED",
                        "company_status": "active",
                        "address_snippet": "1 High Street, Leeds",
                    }
                ]
            }
        )
        async with make_client(handler) as client:
            results = await client.search_companies("Acme Construction", items_per_page=3)

        params = handler.requests[0].url.params
        assert handler.requests[0].url.path == "/search/companies"
        assert params["q"] == "Acme Construction"
        assert params["items_per_page"] == "3"
        assert [r.company_number for r in results] == ["01234567"]
        assert results[0].address_snippet == "1 High Street, Leeds"

    @pytest.mark.asyncio
    async def test_search_rejects_empty_name(self):
        async with make_client(RecordingHandler()) as client:
            with pytest.raises(InvalidInput):
                await client.search_companies(" ")

    @pytest.mark.asyncio
    async def test_validate_matching_name(self):
        async with make_client(RecordingHandler()) as client:
            validation = await client.validate_company("01234567", "Acme Construction Ltd")

        assert validation.valid
        assert validation.similarity >= 0.7
        assert validation.canonical_name == "ACME CONSTRUCTION LIMITED"
        assert validation.address["postcode"] == "LS1 1AA"

    @pytest.mark.asyncio
    async def test_validate_mismatched_name(self):
        async with make_client(RecordingHandler()) as client:
            validation = await client.validate_company("01234567", "Zenith Logistics")

        assert not validation.valid
        assert validation.similarity < 0.7

    @pytest.mark.asyncio
    async def test_validate_unknown_company(self):
        handler = RecordingHandler(status=404, payload={})
        async with make_client(handler) as client:
            assert await client.validate_company("09999999", "Acme") is None
