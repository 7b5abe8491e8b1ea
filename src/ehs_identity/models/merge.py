"""Models for registry data, merge previews and merge results."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, computed_field

from .entities import Offender

# Offender fields that registry data may overwrite
CANONICAL_FIELDS = ("name", "address", "town", "county", "postcode")


class RegistryCompany(BaseModel):
    """Canonical company data returned by the registry."""

    company_number: str
    company_name: str
    company_status: str | None = None
    company_type: str | None = None
    address: dict[str, str] = Field(default_factory=dict)
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)


class RegistryValidation(BaseModel):
    """Result of checking the master offender against the registry."""

    company_number: str | None = None
    checked: bool = False
    found: bool = False
    canonical_name: str | None = None
    company_status: str | None = None
    similarity: float | None = None
    threshold: float
    passed: bool = True
    warning: str | None = None


class CanonicalChange(BaseModel):
    """One field the registry overlay would change on the master."""

    field: str
    current: str | None = None
    canonical: str | None = None


class MergeFinding(BaseModel):
    """A problem discovered while planning a merge."""

    code: str
    message: str
    blocking: bool = False
    details: dict[str, Any] = Field(default_factory=dict)


class ProjectedTotals(BaseModel):
    """Aggregates the master will carry after the merge."""

    total_cases: int = 0
    total_notices: int = 0
    total_fines: Decimal = Decimal("0")


class MergePreview(BaseModel):
    """Dry-run summary of a merge. Nothing is persisted to produce it."""

    master: Offender
    duplicates: list[Offender]
    registry: RegistryValidation
    canonical_changes: list[CanonicalChange] = Field(default_factory=list)
    projected_totals: ProjectedTotals
    projected_agencies: list[str] = Field(default_factory=list)
    projected_industry_sectors: list[str] = Field(default_factory=list)
    records_to_delete: list[UUID] = Field(default_factory=list)
    cases_to_move: int = 0
    notices_to_move: int = 0
    findings: list[MergeFinding] = Field(default_factory=list)

    @computed_field
    @property
    def can_merge(self) -> bool:
        """True when no finding blocks the merge."""
        return not any(f.blocking for f in self.findings)


class MergeResult(BaseModel):
    """Outcome of an executed merge."""

    master: Offender
    deleted_ids: list[UUID]
    cases_moved: int = 0
    notices_moved: int = 0
    registry: RegistryValidation
