"""Domain models for EHS Identity."""

from .base import (
    BusinessType,
    LegislationType,
    RecordKind,
    ResolutionStrategy,
    ReviewStatus,
)
from .entities import (
    CaseRef,
    Legislation,
    LegislationAttrs,
    NoticeRef,
    Offender,
    OffenderAttrs,
    OffenderRef,
    Resolution,
)
from .merge import (
    CANONICAL_FIELDS,
    CanonicalChange,
    MergeFinding,
    MergePreview,
    MergeResult,
    ProjectedTotals,
    RegistryCompany,
    RegistryValidation,
)
from .reviews import CandidateCompany, MatchReview, ReviewStats

__all__ = [
    # Base
    "BusinessType",
    "LegislationType",
    "RecordKind",
    "ResolutionStrategy",
    "ReviewStatus",
    # Entities
    "CaseRef",
    "Legislation",
    "LegislationAttrs",
    "NoticeRef",
    "Offender",
    "OffenderAttrs",
    "OffenderRef",
    "Resolution",
    # Merge
    "CANONICAL_FIELDS",
    "CanonicalChange",
    "MergeFinding",
    "MergePreview",
    "MergeResult",
    "ProjectedTotals",
    "RegistryCompany",
    "RegistryValidation",
    # Reviews
    "CandidateCompany",
    "MatchReview",
    "ReviewStats",
]
