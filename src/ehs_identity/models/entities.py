"""Offender, legislation and enforcement record models."""

from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .base import BusinessType, LegislationType, ResolutionStrategy


def _stringify_keys(data: Any) -> Any:
    """Accept mappings keyed by strings or enum members."""
    if not isinstance(data, Mapping):
        return data
    result = {}
    for key, value in data.items():
        if isinstance(key, Enum):
            key = key.value
        result[str(key)] = value
    return result


# =========================
# Boundary inputs
# =========================


class OffenderAttrs(BaseModel):
    """Offender attributes as delivered by a scraper.

    Unknown keys are ignored and optional fields may be missing. Postcode,
    registration number and business type are cleaned on construction.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str = ""
    address: str | None = None
    local_authority: str | None = None
    country: str | None = None
    postcode: str | None = None
    town: str | None = None
    county: str | None = None
    main_activity: str | None = None
    business_type: BusinessType | None = None
    industry: str | None = None
    industry_sectors: list[str] = Field(default_factory=list)
    company_registration_number: str | None = None

    @model_validator(mode="before")
    @classmethod
    def coerce_keys(cls, data: Any) -> Any:
        return _stringify_keys(data)

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator(
        "address",
        "local_authority",
        "country",
        "town",
        "county",
        "main_activity",
        "industry",
        mode="before",
    )
    @classmethod
    def blank_to_none(cls, v: Any) -> str | None:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("postcode", mode="before")
    @classmethod
    def clean_postcode(cls, v: Any) -> str | None:
        from ..resolution.normalize import normalize_postcode

        return normalize_postcode(v)

    @field_validator("company_registration_number", mode="before")
    @classmethod
    def clean_registration_number(cls, v: Any) -> str | None:
        from ..resolution.normalize import clean_company_number

        return clean_company_number(v)

    @field_validator("business_type", mode="before")
    @classmethod
    def drop_unknown_business_type(cls, v: Any) -> str | None:
        if isinstance(v, BusinessType):
            return v
        if isinstance(v, str) and v.strip().lower() in {b.value for b in BusinessType}:
            return v.strip().lower()
        return None

    @field_validator("industry_sectors", mode="before")
    @classmethod
    def coerce_sectors(cls, v: Any) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.split(",")
        return [str(s).strip() for s in v if s and str(s).strip()]


class LegislationAttrs(BaseModel):
    """Legislation reference as delivered by a scraper."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    title: str = ""
    year: int | None = None
    number: int | None = None
    type: LegislationType | None = None

    @model_validator(mode="before")
    @classmethod
    def coerce_keys(cls, data: Any) -> Any:
        return _stringify_keys(data)

    @field_validator("title", mode="before")
    @classmethod
    def coerce_title(cls, v: Any) -> str:
        return v if isinstance(v, str) else ""

    @field_validator("type", mode="before")
    @classmethod
    def drop_unknown_type(cls, v: Any) -> str | None:
        """Unrecognised types are dropped and later derived from the title."""
        if isinstance(v, LegislationType):
            return v
        if isinstance(v, str) and v.strip().lower() in {t.value for t in LegislationType}:
            return v.strip().lower()
        return None

    @field_validator("year", "number", mode="before")
    @classmethod
    def parse_int(cls, v: Any) -> int | None:
        if v is None or isinstance(v, int):
            return v
        digits = str(v).strip()
        if not digits.isdigit():
            return None
        return int(digits)


# =========================
# Entities
# =========================


class Offender(BaseModel):
    """A persisted offender."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    normalized_name: str
    address: str | None = None
    local_authority: str | None = None
    country: str | None = None
    postcode: str | None = None
    town: str | None = None
    county: str | None = None
    main_activity: str | None = None
    business_type: str | None = None
    industry: str | None = None
    industry_sectors: list[str] = Field(default_factory=list)
    agencies: list[str] = Field(default_factory=list)
    company_registration_number: str | None = None
    total_cases: int = 0
    total_notices: int = 0
    total_fines: Decimal = Decimal("0")
    first_seen_date: date | None = None
    last_seen_date: date | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Legislation(BaseModel):
    """A persisted legislation reference."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    year: int | None = None
    number: int | None = None
    type: str = LegislationType.ACT.value


class Resolution(BaseModel):
    """Outcome of a find-or-create call."""

    entity_id: UUID
    strategy: ResolutionStrategy
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    @property
    def created(self) -> bool:
        return self.strategy == ResolutionStrategy.CREATED


# =========================
# Record references
# =========================


class OffenderRef(BaseModel):
    """Lightweight offender reference used in duplicate groups."""

    id: UUID
    name: str
    normalized_name: str
    postcode: str | None = None
    company_registration_number: str | None = None
    total_cases: int = 0
    total_notices: int = 0


class CaseRef(BaseModel):
    """Reference to a case row."""

    id: UUID
    agency_id: str
    regulator_id: str
    offender_id: UUID
    case_reference: str | None = None
    offence_action_date: date | None = None
    offence_fine: Decimal | None = None


class NoticeRef(BaseModel):
    """Reference to a notice row."""

    id: UUID
    agency_id: str
    regulator_id: str
    offender_id: UUID
    notice_type: str | None = None
    notice_date: date | None = None
