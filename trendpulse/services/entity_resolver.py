"""Entity resolver for matching raw signals to canonical entities.

Resolution order:
1. Canonical key match (marketplace URL/ASIN). Always wins over fuzzy matching.
   When several entities share the key, they are first collapsed into one survivor.
2. Fuzzy name match over prefiltered candidates (shared first token or equal
   normalized brand), scored by a pluggable similarity strategy plus a brand bonus.
3. No match: a new entity is created.

Matching is best-effort. Missed merges can be repaired later by
reconciliation; wrong merges are not reversible, so below-threshold matches
are never merged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import func, or_
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from trendpulse.config import get_settings
from trendpulse.models.entity import STATUS_PUBLISHED, Entity
from trendpulse.models.signal import SOURCE_MOMENTUM, SOURCE_SEARCH_TREND, SOURCE_SOCIAL, Signal
from trendpulse.schemas.signal import RawSignal
from trendpulse.services.age_decay import as_utc, refresh_entity_scores
from trendpulse.services.errors import MergeAmbiguous, store_unavailable
from trendpulse.services.score_composer import rescore_entity
from trendpulse.services.similarity import (
    SimilarityStrategy,
    TokenSetSimilarity,
    normalize_brand,
    normalize_name,
    tokenize,
)

logger = logging.getLogger(__name__)

MATCH_CANONICAL_KEY = "canonical_key"
MATCH_FUZZY = "fuzzy"
MATCH_CREATED = "created"

DEFAULT_SIGNAL_TYPES = {
    SOURCE_MOMENTUM: "sales_rank_jump",
    SOURCE_SOCIAL: "mention",
    SOURCE_SEARCH_TREND: "search_spike",
}

# Fields copied from the losing side only when the survivor has no value
_FILL_FIELDS = (
    "brand",
    "brand_key",
    "category",
    "price",
    "canonical_key",
    "legacy_score",
    "content_generated_at",
)


@dataclass
class ResolveOutcome:
    """Result of resolving one raw observation."""

    entity: Entity
    match: str  # canonical_key | fuzzy | created
    similarity: float | None = None

    @property
    def created(self) -> bool:
        return self.match == MATCH_CREATED


def _utcnow(now: datetime | None) -> datetime:
    return as_utc(now) or datetime.now(UTC)


def survivor_priority(entity: Entity) -> tuple:
    """Sort key for duplicate survivors: Published, then on momentum list, then earliest created."""
    created = as_utc(entity.created_at) or datetime.max.replace(tzinfo=UTC)
    return (
        entity.status != STATUS_PUBLISHED,
        not entity.on_momentum_list,
        created,
        entity.id or 0,
    )


def select_survivor(entities: list[Entity]) -> Entity:
    """Deterministically pick the surviving entity among duplicates."""
    if not entities:
        raise ValueError("select_survivor requires at least one entity")
    return min(entities, key=survivor_priority)


def merge_into(
    db: Session, survivor: Entity, loser: Entity, now: datetime | None = None
) -> int:
    """Merge ``loser`` into ``survivor`` and delete the loser. Does not commit.

    - All signals move to the survivor
    - Null survivor fields are filled from the loser (survivor wins ties)
    - Momentum membership is OR-ed, the latest last-seen and earliest
      first-detected timestamps are kept, traffic counters are summed
    - Base and peak scores never decrease

    Returns the number of signals transferred.
    """
    if survivor.id is not None and survivor.id == loser.id:
        raise ValueError("Cannot merge an entity into itself")

    moved = list(loser.signals)
    for signal in moved:
        signal.entity = survivor

    for field in _FILL_FIELDS:
        if getattr(survivor, field) is None and getattr(loser, field) is not None:
            setattr(survivor, field, getattr(loser, field))

    if loser.on_momentum_list:
        survivor.on_momentum_list = True
    seen = [
        t
        for t in (
            as_utc(survivor.last_seen_on_momentum_list_at),
            as_utc(loser.last_seen_on_momentum_list_at),
        )
        if t is not None
    ]
    if seen:
        survivor.last_seen_on_momentum_list_at = max(seen)

    detected = [
        t for t in (as_utc(survivor.first_detected_at), as_utc(loser.first_detected_at)) if t
    ]
    if detected:
        survivor.first_detected_at = min(detected)

    viewed = [t for t in (as_utc(survivor.last_viewed_at), as_utc(loser.last_viewed_at)) if t]
    if viewed:
        survivor.last_viewed_at = max(viewed)

    survivor.page_views = (survivor.page_views or 0) + (loser.page_views or 0)
    survivor.clicks = (survivor.clicks or 0) + (loser.clicks or 0)
    survivor.base_score = max(survivor.base_score or 0, loser.base_score or 0)
    peaks = [p for p in (survivor.peak_score, loser.peak_score) if p is not None]
    if peaks:
        survivor.peak_score = max(peaks)

    db.delete(loser)
    rescore_entity(survivor)
    refresh_entity_scores(survivor, now)
    logger.info(
        "Merged entity %s into %s (%d signals transferred)",
        loser.id,
        survivor.id,
        len(moved),
    )
    return len(moved)


def collapse_duplicate_key(
    db: Session, canonical_key: str, now: datetime | None = None
) -> Entity | None:
    """Merge every entity sharing ``canonical_key`` into one survivor. Does not commit.

    Returns the survivor, or None when no entity has the key.
    """
    entities = (
        db.query(Entity)
        .filter(Entity.canonical_key == canonical_key)
        .with_for_update()
        .all()
    )
    if not entities:
        return None
    survivor = select_survivor(entities)
    if len(entities) > 1:
        logger.warning(
            "Duplicate canonical_key=%s on %d entities; survivor=%s",
            canonical_key,
            len(entities),
            survivor.id,
        )
        for dup in entities:
            if dup.id != survivor.id:
                merge_into(db, survivor, dup, now)
    return survivor


def collapse_duplicate_keys(db: Session, now: datetime | None = None) -> dict:
    """Collapse all duplicate canonical keys. Commits.

    Returns dict with keys_collapsed and entities_merged.
    """
    duplicate_keys = [
        row[0]
        for row in db.query(Entity.canonical_key)
        .filter(Entity.canonical_key.isnot(None))
        .group_by(Entity.canonical_key)
        .having(func.count(Entity.id) > 1)
        .all()
    ]
    merged = 0
    for key in duplicate_keys:
        count = db.query(Entity).filter(Entity.canonical_key == key).count()
        collapse_duplicate_key(db, key, now)
        merged += count - 1
    db.commit()
    if duplicate_keys:
        logger.info(
            "Collapsed %d duplicate canonical keys (%d entities merged)",
            len(duplicate_keys),
            merged,
        )
    return {"keys_collapsed": len(duplicate_keys), "entities_merged": merged}


class EntityResolver:
    """Matches raw observations to canonical entities, attaching their signals.

    The similarity strategy, threshold and brand bonus are injectable; defaults
    come from settings.
    """

    def __init__(
        self,
        similarity: SimilarityStrategy | None = None,
        threshold: float | None = None,
        brand_bonus: float | None = None,
    ) -> None:
        settings = get_settings()
        self.similarity = similarity or TokenSetSimilarity()
        self.threshold = settings.match_threshold if threshold is None else threshold
        self.brand_bonus = settings.brand_bonus if brand_bonus is None else brand_bonus

    # ── Matching ────────────────────────────────────────────────────

    def score_candidate(self, name: str, brand_key: str | None, candidate: Entity) -> float:
        """Name similarity plus brand bonus, capped at 1.0."""
        score = self.similarity.score(name, candidate.canonical_name)
        if brand_key and candidate.brand_key == brand_key:
            score += self.brand_bonus
        return min(score, 1.0)

    def _candidates(self, db: Session, raw: RawSignal, brand_key: str | None) -> list[Entity]:
        tokens = tokenize(raw.raw_name)
        conditions = []
        if tokens:
            first = tokens[0]
            conditions.append(Entity.normalized_name == first)
            conditions.append(Entity.normalized_name.startswith(f"{first} ", autoescape=True))
        if brand_key:
            conditions.append(Entity.brand_key == brand_key)
        if not conditions:
            return []
        query = db.query(Entity).filter(or_(*conditions))
        if raw.canonical_key:
            # A different non-null key means a different listing
            query = query.filter(Entity.canonical_key.is_(None))
        return query.with_for_update().all()

    def find_fuzzy_match(self, db: Session, raw: RawSignal) -> tuple[Entity, float] | None:
        """Return (entity, similarity) for the best candidate at or above threshold.

        Returns None when there are no candidates at all. Raises MergeAmbiguous
        when the best candidate falls below the threshold.
        """
        brand_key = normalize_brand(raw.raw_brand) or None
        candidates = self._candidates(db, raw, brand_key)
        if not candidates:
            return None
        scored = sorted(
            ((self.score_candidate(raw.raw_name, brand_key, c), c) for c in candidates),
            key=lambda pair: (-pair[0], survivor_priority(pair[1])),
        )
        best_score, best = scored[0]
        if best_score < self.threshold:
            raise MergeAmbiguous(best.id, best_score, self.threshold)
        return best, best_score

    def match(self, db: Session, raw: RawSignal, now: datetime | None = None) -> ResolveOutcome | None:
        """Find the entity a raw observation belongs to, without attaching it."""
        if raw.canonical_key:
            existing = collapse_duplicate_key(db, raw.canonical_key, now)
            if existing is not None:
                return ResolveOutcome(entity=existing, match=MATCH_CANONICAL_KEY, similarity=1.0)
        try:
            fuzzy = self.find_fuzzy_match(db, raw)
        except MergeAmbiguous as exc:
            logger.info(
                "No merge for %r: candidate %s similarity %.2f below %.2f",
                raw.raw_name,
                exc.candidate_id,
                exc.similarity,
                exc.threshold,
            )
            return None
        if fuzzy is None:
            return None
        entity, similarity = fuzzy
        return ResolveOutcome(entity=entity, match=MATCH_FUZZY, similarity=similarity)

    # ── Attach / create ─────────────────────────────────────────────

    def _new_entity(self, raw: RawSignal) -> Entity:
        return Entity(
            canonical_name=raw.raw_name,
            normalized_name=normalize_name(raw.raw_name),
            brand=raw.raw_brand,
            brand_key=normalize_brand(raw.raw_brand) or None,
            category=raw.category,
            price=raw.price,
            canonical_key=raw.canonical_key,
            base_score=0,
            page_views=0,
            clicks=0,
            on_momentum_list=False,
        )

    def _attach(self, entity: Entity, raw: RawSignal, now: datetime) -> Signal:
        observed = min(as_utc(raw.observed_at), now)
        if entity.brand is None and raw.raw_brand:
            entity.brand = raw.raw_brand
            entity.brand_key = normalize_brand(raw.raw_brand) or None
        if entity.canonical_key is None and raw.canonical_key:
            entity.canonical_key = raw.canonical_key
        if entity.price is None and raw.price is not None:
            entity.price = raw.price
        if entity.category is None and raw.category:
            entity.category = raw.category

        signal = Signal(
            source=raw.source.value,
            signal_type=raw.signal_type or DEFAULT_SIGNAL_TYPES[raw.source.value],
            magnitude=raw.magnitude,
            meta=raw.metadata or None,
            observed_at=observed,
        )
        entity.signals.append(signal)

        if raw.source.value == SOURCE_MOMENTUM:
            entity.on_momentum_list = True
            last_seen = as_utc(entity.last_seen_on_momentum_list_at)
            if last_seen is None or observed > last_seen:
                entity.last_seen_on_momentum_list_at = observed

        if entity.first_detected_at is None:
            entity.first_detected_at = observed

        rescore_entity(entity)
        refresh_entity_scores(entity, now)
        return signal

    def resolve(self, db: Session, raw: RawSignal, now: datetime | None = None) -> ResolveOutcome:
        """Resolve, attach and rescore one observation as a single transaction.

        Returns ResolveOutcome with the entity and how it was matched. On any
        failure the transaction is rolled back and the error propagates; a
        lost connection surfaces as PersistenceUnavailable.
        """
        current = _utcnow(now)
        try:
            outcome = self.match(db, raw, current)
            if outcome is None:
                entity = self._new_entity(raw)
                db.add(entity)
                outcome = ResolveOutcome(entity=entity, match=MATCH_CREATED)
            self._attach(outcome.entity, raw, current)
            db.commit()
        except (OperationalError, InterfaceError) as exc:
            db.rollback()
            raise store_unavailable(exc) from exc
        except Exception:
            db.rollback()
            raise
        db.refresh(outcome.entity)
        logger.debug(
            "Resolved %r -> entity %s (%s, similarity=%s)",
            raw.raw_name,
            outcome.entity.id,
            outcome.match,
            outcome.similarity,
        )
        return outcome
