"""Base enums for EHS Identity models."""

from enum import Enum


class BusinessType(str, Enum):
    """Legal form of an offender."""

    LIMITED_COMPANY = "limited_company"
    INDIVIDUAL = "individual"
    PARTNERSHIP = "partnership"
    PLC = "plc"
    OTHER = "other"


class LegislationType(str, Enum):
    """Kind of legislation reference."""

    ACT = "act"
    REGULATION = "regulation"
    ORDER = "order"
    ACOP = "acop"
    GUIDANCE = "guidance"


class RecordKind(str, Enum):
    """Enforcement record tables that reference an offender."""

    CASE = "case"
    NOTICE = "notice"


class ReviewStatus(str, Enum):
    """Outcome of a human match review."""

    PENDING = "pending"
    APPROVED = "approved"
    SKIPPED = "skipped"
    NEEDS_REVIEW = "needs_review"


class ResolutionStrategy(str, Enum):
    """How a resolver arrived at its answer."""

    REGISTRATION_NUMBER = "registration_number"
    EXACT = "exact"
    FUZZY = "fuzzy"
    CREATED = "created"
    RETRY = "retry"
