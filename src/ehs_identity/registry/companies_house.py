"""Companies House API client.

Looks up canonical company data by registration number. Authentication
is HTTP basic with the API key as username and an empty password.

Successful lookups are cached; failures are not, so a transient outage
never pins a company as missing.
"""

from typing import Any

import httpx
from pydantic import BaseModel

from ..cache import CacheBackend, registry_company_key
from ..config import Settings, get_settings
from ..errors import ExternalLookupFailed, InvalidInput
from ..logging import get_context_logger
from ..models import RegistryCompany
from ..resolution.normalize import clean_company_number
from ..resolution.scoring import MERGE_VALIDATION_THRESHOLD, name_similarity

logger = get_context_logger(__name__)


class CompanySearchResult(BaseModel):
    """One hit from the company name search."""

    company_number: str
    company_name: str
    company_status: str | None = None
    company_type: str | None = None
    address_snippet: str | None = None


class CompanyValidation(BaseModel):
    """Registry check of a company number against an expected name."""

    valid: bool
    similarity: float
    canonical_name: str
    company_status: str | None = None
    address: dict[str, str] = {}


def format_registered_office(profile: dict[str, Any] | None) -> str | None:
    """Join the registered office address into one line."""
    if not profile:
        return None
    address = profile.get("registered_office_address")
    if not address:
        return None

    parts = [
        address.get("address_line_1"),
        address.get("address_line_2"),
        address.get("locality"),
        address.get("region"),
        address.get("postal_code"),
    ]
    return ", ".join(p for p in parts if p)


def extract_address_components(profile: dict[str, Any] | None) -> dict[str, str]:
    """Map the registered office address onto offender address fields.

    Empty values are dropped so they never overwrite existing data.
    """
    if not profile:
        return {}
    address = profile.get("registered_office_address")
    if not address:
        return {}

    components = {
        "address": address.get("address_line_1"),
        "town": address.get("locality"),
        "county": address.get("region"),
        "postcode": address.get("postal_code"),
    }
    return {k: v for k, v in components.items() if v}


def parse_company_profile(profile: dict[str, Any]) -> RegistryCompany:
    """Build a RegistryCompany from a company profile response."""
    return RegistryCompany(
        company_number=profile.get("company_number", ""),
        company_name=profile.get("company_name", ""),
        company_status=profile.get("company_status"),
        company_type=profile.get("type"),
        address=extract_address_components(profile),
        raw=profile,
    )


class CompaniesHouseClient:
    """Client for the Companies House public data API."""

    BASE_URL = "https://api.company-information.service.gov.uk"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 10.0,
        cache: CacheBackend | None = None,
        cache_ttl: int = 86400,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            api_key: Companies House API key
            base_url: API root (override for testing)
            timeout: Request timeout in seconds
            cache: Cache for successful lookups (optional)
            cache_ttl: Cache TTL in seconds
            transport: httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.api_key = api_key
        self.base_url = base_url or self.BASE_URL
        self.timeout = timeout
        self.cache = cache
        self.cache_ttl = cache_ttl
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        cache: CacheBackend | None = None,
    ) -> "CompaniesHouseClient":
        settings = settings or get_settings()
        return cls(
            api_key=settings.companies_house_api_key or None,
            base_url=settings.companies_house_base_url,
            timeout=settings.companies_house_timeout_seconds,
            cache=cache,
            cache_ttl=settings.registry_cache_ttl_seconds,
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get the shared HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                auth=httpx.BasicAuth(self.api_key or "", ""),
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._http_client

    async def close(self):
        """Close the client connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "CompaniesHouseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        if not self.api_key:
            logger.error("Companies House API key is not configured")
            raise ExternalLookupFailed(
                "Companies House API key is not configured", reason="missing_api_key"
            )

        try:
            return await self.http_client.get(path, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Companies House request timed out: {path}")
            raise ExternalLookupFailed(
                f"Companies House request timed out: {path}", reason="timeout"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Companies House request failed: {e}")
            raise ExternalLookupFailed(
                f"Companies House request failed: {e}", reason="transport"
            ) from e

    @staticmethod
    def _raise_for_status(response: httpx.Response, context: str) -> None:
        status = response.status_code
        if status == 401:
            logger.error("Companies House API: Unauthorized - check API key")
            raise ExternalLookupFailed("Companies House rejected the API key", reason="unauthorized")
        if status == 429:
            logger.warning("Companies House API: Rate limit exceeded")
            raise ExternalLookupFailed("Companies House rate limit exceeded", reason="rate_limited")
        if status != 200:
            logger.error(f"Companies House API {context}: Unexpected status {status}")
            raise ExternalLookupFailed(
                f"Companies House returned HTTP {status}", reason="http_error"
            )

    # =========================
    # Lookups
    # =========================

    async def lookup_company(self, company_number: str | None) -> RegistryCompany | None:
        """Get a company profile by registration number.

        Args:
            company_number: Registration number (cleaned before use)

        Returns:
            Company data, or None when the registry has no such company

        Raises:
            InvalidInput: Number is empty after cleaning
            ExternalLookupFailed: Auth, rate limiting, HTTP error or timeout
        """
        cleaned = clean_company_number(company_number)
        if not cleaned:
            raise InvalidInput(f"Invalid company number: {company_number!r}")

        cache_key = registry_company_key(cleaned)
        if self.cache is not None:
            cached = await self.cache.get(cache_key)
            if cached:
                return parse_company_profile(cached)

        response = await self._get(f"/company/{cleaned}")
        if response.status_code == 404:
            logger.debug(f"Companies House API: Company {cleaned} not found")
            return None
        self._raise_for_status(response, "lookup")

        try:
            profile = response.json()
        except ValueError as e:
            raise ExternalLookupFailed(
                f"Companies House returned invalid JSON for {cleaned}",
                reason="malformed_response",
            ) from e

        name = profile.get("company_name") if isinstance(profile, dict) else None
        if not isinstance(name, str) or not name.strip():
            logger.warning(f"Companies House API: profile for {cleaned} has no company name")
            raise ExternalLookupFailed(
                f"Companies House profile for {cleaned} has no company name",
                reason="malformed_response",
            )

        if self.cache is not None:
            await self.cache.set(cache_key, profile, ttl=self.cache_ttl)
        return parse_company_profile(profile)

    async def search_companies(
        self,
        company_name: str,
        items_per_page: int = 5,
        start_index: int = 0,
    ) -> list[CompanySearchResult]:
        """Search companies by name.

        Raises:
            InvalidInput: Name is empty
            ExternalLookupFailed: Auth, rate limiting, HTTP error or timeout
        """
        if not company_name or not company_name.strip():
            raise InvalidInput("Company name cannot be empty")

        response = await self._get(
            "/search/companies",
            params={
                "q": company_name,
                "items_per_page": items_per_page,
                "start_index": start_index,
            },
        )
        self._raise_for_status(response, "search")

        items = response.json().get("items") or []
        return [
            CompanySearchResult(
                company_number=item.get("company_number", ""),
                company_name=item.get("company_name", ""),
                company_status=item.get("company_status"),
                company_type=item.get("company_type"),
                address_snippet=item.get("address_snippet"),
            )
            for item in items
        ]

    async def validate_company(
        self,
        company_number: str,
        expected_name: str,
        threshold: float = MERGE_VALIDATION_THRESHOLD,
    ) -> CompanyValidation | None:
        """Check that a registration number belongs to a company named `expected_name`.

        Returns:
            Validation result, or None when the company does not exist
        """
        company = await self.lookup_company(company_number)
        if company is None:
            return None

        similarity = name_similarity(expected_name, company.company_name)
        valid = similarity >= threshold
        if not valid:
            logger.warning(
                f"Company name mismatch: expected '{expected_name}', "
                f"got '{company.company_name}' (similarity: {similarity:.2f})"
            )

        return CompanyValidation(
            valid=valid,
            similarity=similarity,
            canonical_name=company.company_name,
            company_status=company.company_status,
            address=company.address,
        )
