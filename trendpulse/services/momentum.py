"""Momentum list membership: presence updates and the drop-off transition."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from trendpulse.models.entity import Entity
from trendpulse.services.age_decay import apply_drop_off, as_utc, refresh_entity_scores
from trendpulse.services.score_composer import rescore_entity

logger = logging.getLogger(__name__)


def set_presence(entity: Entity, present: bool, now: datetime | None = None) -> bool:
    """Set momentum-list membership for one entity in place. Does not commit.

    Leaving the list applies the drop-off transition; re-entering restores
    momentum scoring. Returns True if membership changed.
    """
    current = as_utc(now) or datetime.now(UTC)
    if present:
        was_on = entity.on_momentum_list
        entity.on_momentum_list = True
        entity.last_seen_on_momentum_list_at = current
        if entity.first_detected_at is None:
            entity.first_detected_at = current
        rescore_entity(entity)
        refresh_entity_scores(entity, current)
        return not was_on
    if not entity.on_momentum_list:
        return False
    apply_drop_off(entity, current)
    return True


def apply_momentum_snapshot(
    db: Session,
    present_keys: Iterable[str],
    now: datetime | None = None,
    *,
    present_ids: Iterable[int] = (),
    seen_since: datetime | None = None,
) -> int:
    """Drop off entities flagged on the momentum list but absent from this pass.

    ``present_keys`` is the complete set of canonical keys seen on the
    authoritative momentum list in a finished collection pass. Entities in
    ``present_ids`` were attached by momentum records of the same pass and
    stay on the list whatever their key. A keyless entity last seen on the
    list at or after ``seen_since`` is also kept. Commits. Returns the number
    of entities that dropped off.
    """
    keys = {k.strip() for k in present_keys if k and k.strip()}
    ids = set(present_ids)
    since = as_utc(seen_since)
    flagged = db.query(Entity).filter(Entity.on_momentum_list.is_(True)).with_for_update().all()
    dropped = 0
    for entity in flagged:
        if entity.id in ids:
            continue
        if entity.canonical_key:
            if entity.canonical_key in keys:
                continue
        elif since is not None:
            last_seen = as_utc(entity.last_seen_on_momentum_list_at)
            if last_seen is not None and last_seen >= since:
                continue
        apply_drop_off(entity, now)
        dropped += 1
    db.commit()
    if dropped:
        logger.info(
            "Momentum snapshot: %d entities dropped off (%d keys present)", dropped, len(keys)
        )
    return dropped
