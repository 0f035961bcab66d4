"""Error taxonomy for resolution, scoring and section reads."""

from __future__ import annotations


class TrendPulseError(Exception):
    """Base class for domain errors."""


class ValidationError(TrendPulseError, ValueError):
    """Malformed raw signal or invalid admin argument.

    Batch ingestion rejects and skips the record; it never aborts the batch.
    """


class NotFoundError(TrendPulseError, LookupError):
    """Operation on an entity that does not exist."""

    def __init__(self, entity_id: int) -> None:
        super().__init__(f"Entity {entity_id} not found")
        self.entity_id = entity_id


class MergeAmbiguous(TrendPulseError):
    """Best fuzzy candidate scored below the match threshold.

    Resolved by not merging: a duplicate entity is preferred over a wrong merge.
    """

    def __init__(self, candidate_id: int, similarity: float, threshold: float) -> None:
        super().__init__(
            f"Best candidate {candidate_id} similarity {similarity:.2f} < {threshold:.2f}"
        )
        self.candidate_id = candidate_id
        self.similarity = similarity
        self.threshold = threshold


class PersistenceUnavailable(TrendPulseError):
    """Backing store is down or did not answer within the query timeout."""


def store_unavailable(exc: Exception) -> PersistenceUnavailable:
    """Wrap a connection-level driver error raised on the write path."""
    return PersistenceUnavailable(f"Store unavailable: {exc}")
