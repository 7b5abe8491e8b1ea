"""Error taxonomy for identity resolution and merging.

Caller-visible: InvalidInput, NotFound, ValidationFailed,
MergeTransactionFailed and PersistenceError. ExternalLookupFailed and
ConstraintViolation are raised and handled inside the core.
"""

from typing import Any


class ResolutionError(Exception):
    """Base class for identity resolution errors."""

    code = "RESOLUTION_ERROR"
    retryable = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidInput(ResolutionError):
    """Input rejected at the boundary (e.g. empty name). Never retried."""

    code = "INVALID_INPUT"


class NotFound(ResolutionError):
    """A referenced entity ID does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, identifier: Any):
        super().__init__(
            f"{entity} not found: {identifier}",
            {"entity": entity, "id": str(identifier)},
        )
        self.entity = entity
        self.identifier = identifier


class ValidationFailed(ResolutionError):
    """Registry name similarity below the merge validation threshold."""

    code = "VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        similarity: float,
        threshold: float,
        canonical_name: str | None = None,
    ):
        super().__init__(
            message,
            {
                "similarity": similarity,
                "threshold": threshold,
                "canonical_name": canonical_name,
            },
        )
        self.similarity = similarity
        self.threshold = threshold
        self.canonical_name = canonical_name


class ExternalLookupFailed(ResolutionError):
    """The company registry was unreachable or refused the request."""

    code = "EXTERNAL_LOOKUP_FAILED"

    def __init__(self, message: str, reason: str = "error"):
        super().__init__(message, {"reason": reason})
        self.reason = reason


class ConstraintViolation(ResolutionError):
    """A uniqueness invariant was violated by a concurrent writer."""

    code = "CONSTRAINT_VIOLATION"


class MergeTransactionFailed(ResolutionError):
    """A step inside the merge transaction failed; everything was rolled back."""

    code = "MERGE_TRANSACTION_FAILED"
    retryable = True


class PersistenceError(ResolutionError):
    """Unexpected storage failure."""

    code = "PERSISTENCE_ERROR"
