"""Similarity scoring for offender and legislation names.

Scores are floats in [0, 1] built from token-set Jaccard similarity with a
Jaro floor for near-identical strings, then adjusted by postcode:
a postcode conflict means a different legal entity (branches of a chain
share a name but not an address).

Every threshold used by the resolvers and the merge coordinator is a named
constant here so it can be tested and overridden independently.
"""

from uuid import UUID

from pydantic import BaseModel
from rapidfuzz.distance import Jaro

from .normalize import normalize_company_name, normalize_postcode

# Minimum score for "same entity" decisions (offender fuzzy match)
MATCH_THRESHOLD = 0.7

# Minimum score for a legislation fuzzy fallback match
LEGISLATION_MATCH_THRESHOLD = 0.85

# Default threshold for legislation title search
LEGISLATION_SEARCH_THRESHOLD = 0.7

# Minimum master-vs-registry name similarity for a merge to proceed
MERGE_VALIDATION_THRESHOLD = 0.9

# Jaro similarity above which the score is floored at JARO_FLOOR_SCORE
JARO_BOOST_TRIGGER = 0.85
JARO_FLOOR_SCORE = 0.9

# Matching postcodes boost scores above the floor by this amount
POSTCODE_BOOST_FLOOR = 0.6
POSTCODE_BOOST = 0.15


class MatchCandidate(BaseModel):
    """An existing entity considered as a match."""

    entity_id: UUID
    name: str
    postcode: str | None = None


class ScoredMatch(BaseModel):
    """A candidate with its adjusted similarity score."""

    candidate: MatchCandidate
    similarity: float
    postcode_match: bool = False


def jaccard_similarity(name1: str, name2: str) -> float:
    """Token-set Jaccard similarity of two normalized names."""
    tokens1 = set(name1.split())
    tokens2 = set(name2.split())
    union = tokens1 | tokens2
    if not union:
        return 0.0
    return len(tokens1 & tokens2) / len(union)


def name_similarity(name1: str | None, name2: str | None) -> float:
    """Score two raw names, ignoring location.

    Args:
        name1: First name (normalized internally)
        name2: Second name (normalized internally)

    Returns:
        Similarity in [0, 1]; 1.0 for identical normalized names
    """
    if not isinstance(name1, str) or not isinstance(name2, str):
        return 0.0

    normalized1 = normalize_company_name(name1)
    normalized2 = normalize_company_name(name2)

    if normalized1 == normalized2:
        return 1.0 if normalized1 else 0.0

    score = jaccard_similarity(normalized1, normalized2)
    if Jaro.similarity(normalized1, normalized2) > JARO_BOOST_TRIGGER:
        score = max(score, JARO_FLOOR_SCORE)
    return score


def apply_postcode_adjustment(
    score: float,
    postcode1: str | None,
    postcode2: str | None,
) -> float:
    """Adjust a name score for location evidence.

    Differing postcodes force 0.0; matching postcodes boost a score above
    POSTCODE_BOOST_FLOOR by POSTCODE_BOOST, capped at 1.0.
    """
    pc1 = normalize_postcode(postcode1)
    pc2 = normalize_postcode(postcode2)

    if pc1 and pc2:
        if pc1 != pc2:
            return 0.0
        if score > POSTCODE_BOOST_FLOOR:
            return min(score + POSTCODE_BOOST, 1.0)
    return score


def similarity(
    name1: str | None,
    name2: str | None,
    postcode1: str | None = None,
    postcode2: str | None = None,
) -> float:
    """Location-aware similarity between two names."""
    return apply_postcode_adjustment(name_similarity(name1, name2), postcode1, postcode2)


def rank_candidates(
    name: str,
    postcode: str | None,
    candidates: list[MatchCandidate],
    threshold: float = MATCH_THRESHOLD,
) -> list[ScoredMatch]:
    """Score candidates against a name and keep those above the threshold.

    Results are sorted best first; equal scores prefer an exact postcode
    match.
    """
    search_postcode = normalize_postcode(postcode)
    scored = []

    for candidate in candidates:
        score = similarity(name, candidate.name, postcode, candidate.postcode)
        if score > threshold:
            candidate_postcode = normalize_postcode(candidate.postcode)
            scored.append(
                ScoredMatch(
                    candidate=candidate,
                    similarity=score,
                    postcode_match=bool(
                        search_postcode and search_postcode == candidate_postcode
                    ),
                )
            )

    scored.sort(key=lambda m: (m.similarity, m.postcode_match), reverse=True)
    return scored


def find_best_match(
    name: str,
    postcode: str | None,
    candidates: list[MatchCandidate],
    threshold: float = MATCH_THRESHOLD,
) -> ScoredMatch | None:
    """Return the best candidate scoring above the threshold, if any."""
    ranked = rank_candidates(name, postcode, candidates, threshold)
    return ranked[0] if ranked else None
