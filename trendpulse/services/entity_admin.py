"""Entity read mapping and the administrative mutation surface.

setMomentumPresence, setBaseScore, mergeEntities, deleteEntity and publish,
plus traffic counters. Each mutation is one transaction.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from trendpulse.models.entity import STATUS_PUBLISHED, Entity
from trendpulse.schemas.entity import EntityRead, TrendBadge
from trendpulse.services.age_decay import (
    as_utc,
    refresh_entity_scores,
    should_show_on_homepage,
    timeline_text,
    trend_badge,
)
from trendpulse.services.entity_resolver import merge_into
from trendpulse.services.errors import NotFoundError, ValidationError, store_unavailable
from trendpulse.services.momentum import set_presence

logger = logging.getLogger(__name__)


# ── Field mapping ────────────────────────────────────────────────────


def entity_to_read(entity: Entity, signal_count: int | None = None) -> EntityRead:
    """Map an Entity ORM instance to EntityRead with derived display fields."""
    days = entity.days_trending
    return EntityRead(
        id=entity.id,
        canonical_name=entity.canonical_name,
        brand=entity.brand,
        category=entity.category,
        price=entity.price,
        canonical_key=entity.canonical_key,
        status=entity.status,
        base_score=entity.base_score or 0,
        current_score=entity.current_score,
        peak_score=entity.peak_score,
        days_trending=days,
        should_show_on_homepage=should_show_on_homepage(days, entity.current_score),
        timeline_text=timeline_text(days) if entity.first_detected_at else None,
        trend_badge=TrendBadge(**trend_badge(entity.current_score)),
        first_detected_at=as_utc(entity.first_detected_at),
        last_updated_at=as_utc(entity.last_updated_at),
        on_momentum_list=entity.on_momentum_list,
        last_seen_on_momentum_list_at=as_utc(entity.last_seen_on_momentum_list_at),
        page_views=entity.page_views or 0,
        clicks=entity.clicks or 0,
        signal_count=len(entity.signals) if signal_count is None else signal_count,
    )


# ── Lookups ──────────────────────────────────────────────────────────


def get_entity(db: Session, entity_id: int, *, for_update: bool = False) -> Entity:
    """Return the entity or raise NotFoundError."""
    query = db.query(Entity).filter(Entity.id == entity_id)
    if for_update:
        query = query.with_for_update()
    entity = query.first()
    if entity is None:
        raise NotFoundError(entity_id)
    return entity


@contextmanager
def _write(db: Session):
    """Roll back on failure; a lost connection becomes PersistenceUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        db.rollback()
        raise store_unavailable(exc) from exc
    except Exception:
        db.rollback()
        raise


def _commit(db: Session) -> None:
    with _write(db):
        db.commit()


# ── Mutations ────────────────────────────────────────────────────────


def set_momentum_presence(
    db: Session, entity_id: int, present: bool, now: datetime | None = None
) -> Entity:
    """Admin override of momentum-list membership; leaving triggers drop-off."""
    entity = get_entity(db, entity_id, for_update=True)
    changed = set_presence(entity, present, now)
    _commit(db)
    db.refresh(entity)
    logger.info(
        "set_momentum_presence: entity_id=%s present=%s changed=%s", entity_id, present, changed
    )
    return entity


def set_base_score(
    db: Session, entity_id: int, score: int, now: datetime | None = None
) -> Entity:
    """Admin override of the base score (may lower it); derived fields are refreshed."""
    if not 0 <= score <= 100:
        raise ValidationError(f"Base score must be within 0-100, got {score}")
    entity = get_entity(db, entity_id, for_update=True)
    previous = entity.base_score
    entity.base_score = score
    if entity.first_detected_at is None:
        entity.first_detected_at = as_utc(now) or datetime.now(UTC)
    refresh_entity_scores(entity, now)
    _commit(db)
    db.refresh(entity)
    logger.info("set_base_score: entity_id=%s %s -> %s", entity_id, previous, score)
    return entity


def merge_entities(
    db: Session, winner_id: int, loser_id: int, now: datetime | None = None
) -> tuple[Entity, int]:
    """Merge loser into winner and delete the loser.

    Returns (winner, signals_transferred). Raises ValidationError when both
    ids are the same, NotFoundError when either is missing.
    """
    if winner_id == loser_id:
        raise ValidationError("Cannot merge an entity with itself")
    winner = get_entity(db, winner_id, for_update=True)
    loser = get_entity(db, loser_id, for_update=True)
    with _write(db):
        moved = merge_into(db, winner, loser, now)
        db.commit()
    db.refresh(winner)
    return winner, moved


def delete_entity(db: Session, entity_id: int) -> None:
    """Delete an entity and its signals."""
    entity = get_entity(db, entity_id)
    db.delete(entity)
    _commit(db)
    logger.info("delete_entity: entity_id=%s", entity_id)


def publish_entity(db: Session, entity_id: int) -> Entity:
    """Mark an entity Published. Content generation is an external step."""
    entity = get_entity(db, entity_id, for_update=True)
    entity.status = STATUS_PUBLISHED
    _commit(db)
    db.refresh(entity)
    logger.info("publish_entity: entity_id=%s", entity_id)
    return entity


def track_view(db: Session, entity_id: int, now: datetime | None = None) -> None:
    """Increment the page-view counter; the boost applies on the next recalculation."""
    with _write(db):
        updated = (
            db.query(Entity)
            .filter(Entity.id == entity_id)
            .update(
                {
                    Entity.page_views: Entity.page_views + 1,
                    Entity.last_viewed_at: as_utc(now) or datetime.now(UTC),
                },
                synchronize_session=False,
            )
        )
    if not updated:
        db.rollback()
        raise NotFoundError(entity_id)
    _commit(db)


def track_click(db: Session, entity_id: int) -> None:
    """Increment the outbound-click counter."""
    with _write(db):
        updated = (
            db.query(Entity)
            .filter(Entity.id == entity_id)
            .update({Entity.clicks: Entity.clicks + 1}, synchronize_session=False)
        )
    if not updated:
        db.rollback()
        raise NotFoundError(entity_id)
    _commit(db)
