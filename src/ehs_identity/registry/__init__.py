"""External company registry integration."""

from typing import Protocol

from ..models import RegistryCompany
from .companies_house import (
    CompaniesHouseClient,
    CompanySearchResult,
    CompanyValidation,
    extract_address_components,
    format_registered_office,
    parse_company_profile,
)


class CompanyRegistry(Protocol):
    """Anything that can look up a company by registration number.

    Returns None for an unknown company and raises ExternalLookupFailed
    when the registry cannot answer.
    """

    async def lookup_company(self, company_number: str | None) -> RegistryCompany | None: ...


__all__ = [
    "CompaniesHouseClient",
    "CompanyRegistry",
    "CompanySearchResult",
    "CompanyValidation",
    "extract_address_components",
    "format_registered_office",
    "parse_company_profile",
]
