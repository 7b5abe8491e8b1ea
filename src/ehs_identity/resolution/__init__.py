"""Identity resolution for EHS enforcement records.

Provides:
- Name normalization and location-aware similarity scoring
- Find-or-create resolvers for offenders and legislation
- Duplicate detection for cases, notices and offenders
- Transactional offender merging with registry validation
- Offender statistics and the match review queue
"""

from .duplicates import DuplicateDetector
from .legislation import LegislationMatch, LegislationResolver, LegislationStats
from .merge import MergeCoordinator
from .normalize import (
    clean_company_number,
    normalize_company_name,
    normalize_legislation_title,
    normalize_postcode,
)
from .offenders import OffenderResolver, load_offender, load_offenders
from .reviews import MatchReviewQueue
from .scoring import (
    LEGISLATION_MATCH_THRESHOLD,
    MATCH_THRESHOLD,
    MERGE_VALIDATION_THRESHOLD,
    MatchCandidate,
    ScoredMatch,
    find_best_match,
    name_similarity,
    similarity,
)
from .statistics import (
    AgencyRecomputeSummary,
    recompute_agencies,
    recompute_all_agencies,
    record_enforcement_action,
)

__all__ = [
    # Normalization
    "clean_company_number",
    "normalize_company_name",
    "normalize_legislation_title",
    "normalize_postcode",
    # Scoring
    "LEGISLATION_MATCH_THRESHOLD",
    "MATCH_THRESHOLD",
    "MERGE_VALIDATION_THRESHOLD",
    "MatchCandidate",
    "ScoredMatch",
    "find_best_match",
    "name_similarity",
    "similarity",
    # Resolvers
    "LegislationMatch",
    "LegislationResolver",
    "LegislationStats",
    "OffenderResolver",
    "load_offender",
    "load_offenders",
    # Duplicates and merging
    "DuplicateDetector",
    "MergeCoordinator",
    # Statistics
    "AgencyRecomputeSummary",
    "recompute_agencies",
    "recompute_all_agencies",
    "record_enforcement_action",
    # Reviews
    "MatchReviewQueue",
]
