"""Age-based decay for trending entities.

Entities lose relevance over time to keep the homepage fresh. Entities that
dropped off the momentum list decay on a faster curve. Traffic (page views,
clicks) adds a bounded boost.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trendpulse.models.entity import Entity

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

# (max_days_inclusive, multiplier); the last entry covers everything beyond
NORMAL_CURVE: tuple[tuple[int, float], ...] = (
    (1, 1.0),
    (3, 0.95),
    (7, 0.85),
    (14, 0.7),
    (21, 0.5),
    (30, 0.3),
)
NORMAL_TAIL = 0.0

ACCELERATED_CURVE: tuple[tuple[int, float], ...] = (
    (1, 0.9),
    (3, 0.8),
    (7, 0.65),
    (14, 0.5),
    (30, 0.3),
)
ACCELERATED_TAIL = 0.2

PAGE_VIEWS_PER_POINT = 100
PAGE_VIEWS_MAX_BOOST = 10
CLICKS_PER_POINT = 10
CLICKS_MAX_BOOST = 5

HOMEPAGE_MAX_DAYS = 30
HOMEPAGE_MIN_SCORE = 40

DROP_OFF_RATE = 0.12
DROP_OFF_MIN = 10
DROP_OFF_MAX = 15


@dataclass(frozen=True)
class DecayResult:
    """Derived scoring fields for one entity at one instant."""

    current_score: int
    multiplier: float
    days_trending: int
    traffic_boost: int
    should_show_on_homepage: bool


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_days_trending(first_detected_at: datetime | None, now: datetime | None = None) -> int:
    """Whole days since first detection; 0 when never detected or in the future."""
    first = as_utc(first_detected_at)
    if first is None:
        return 0
    current = as_utc(now) or datetime.now(UTC)
    elapsed = (current - first).total_seconds()
    return max(0, math.floor(elapsed / SECONDS_PER_DAY))


def get_age_multiplier(days_trending: int, dropped_off: bool = False) -> float:
    """Decay multiplier for the age in days; non-increasing in days for either curve."""
    curve, tail = (
        (ACCELERATED_CURVE, ACCELERATED_TAIL) if dropped_off else (NORMAL_CURVE, NORMAL_TAIL)
    )
    for max_days, multiplier in curve:
        if days_trending <= max_days:
            return multiplier
    return tail


def calculate_traffic_boost(page_views: int | None, clicks: int | None) -> int:
    """Up to +10 from page views and +5 from clicks."""
    views_boost = min((page_views or 0) // PAGE_VIEWS_PER_POINT, PAGE_VIEWS_MAX_BOOST)
    clicks_boost = min((clicks or 0) // CLICKS_PER_POINT, CLICKS_MAX_BOOST)
    return max(0, views_boost) + max(0, clicks_boost)


def calculate_current_score(
    base_score: int | None,
    first_detected_at: datetime | None,
    *,
    now: datetime | None = None,
    page_views: int | None = 0,
    clicks: int | None = 0,
    dropped_off: bool = False,
) -> DecayResult:
    """Apply age decay and traffic boost to a base score."""
    days = calculate_days_trending(first_detected_at, now)
    multiplier = get_age_multiplier(days, dropped_off)
    boost = calculate_traffic_boost(page_views, clicks)
    raw = (base_score or 0) * multiplier + boost
    current = max(0, min(_round_half_up(raw), 100))
    return DecayResult(
        current_score=current,
        multiplier=multiplier,
        days_trending=days,
        traffic_boost=boost,
        should_show_on_homepage=should_show_on_homepage(days, current),
    )


def should_show_on_homepage(days_trending: int | None, current_score: int | None) -> bool:
    """Advisory flag: still within 30 days and scoring at least 40."""
    if current_score is None:
        return False
    return (days_trending or 0) <= HOMEPAGE_MAX_DAYS and current_score >= HOMEPAGE_MIN_SCORE


def update_peak_score(current_score: int, existing_peak: int | None) -> int:
    """Monotonic watermark of the current score."""
    if existing_peak is None:
        return current_score
    return max(current_score, existing_peak)


def drop_off_reduction(base_score: int | None) -> int:
    """Points removed from the base score at drop-off: ~12%, bounded to 10–15."""
    return min(DROP_OFF_MAX, max(DROP_OFF_MIN, math.floor((base_score or 0) * DROP_OFF_RATE)))


def refresh_entity_scores(entity: Entity, now: datetime | None = None) -> bool:
    """Recompute current/peak/days for an entity in place.

    Only assigns fields whose value changes, and touches last_updated_at only
    then, so repeated calls with the same ``now`` are no-ops.
    Returns True if any field changed.
    """
    result = calculate_current_score(
        entity.base_score,
        entity.first_detected_at,
        now=now,
        page_views=entity.page_views,
        clicks=entity.clicks,
        dropped_off=entity.dropped_off,
    )
    peak = update_peak_score(result.current_score, entity.peak_score)
    changed = False
    if entity.current_score != result.current_score:
        entity.current_score = result.current_score
        changed = True
    if entity.peak_score != peak:
        entity.peak_score = peak
        changed = True
    if entity.days_trending != result.days_trending:
        entity.days_trending = result.days_trending
        changed = True
    if changed:
        entity.last_updated_at = as_utc(now) or datetime.now(UTC)
    return changed


def apply_drop_off(entity: Entity, now: datetime | None = None) -> int:
    """Transition an entity off the momentum list.

    Reduces the base score by a bounded 10–15 points (never below 0) and
    switches the entity to the accelerated curve. first_detected_at is left
    untouched. Returns the new base score.
    """
    previous = entity.base_score or 0
    entity.base_score = max(0, previous - drop_off_reduction(previous))
    entity.on_momentum_list = False
    if entity.last_seen_on_momentum_list_at is None:
        entity.last_seen_on_momentum_list_at = as_utc(now) or datetime.now(UTC)
    refresh_entity_scores(entity, now)
    logger.info(
        "Entity %s dropped off momentum list (base %d -> %d, current %s)",
        entity.id,
        previous,
        entity.base_score,
        entity.current_score,
    )
    return entity.base_score


def timeline_text(days_trending: int | None) -> str:
    """Human timeline label for the age in days."""
    days = days_trending or 0
    if days == 0:
        return "New today"
    if days == 1:
        return "Just detected"
    if days <= 7:
        return f"Trending for {days} days"
    if days <= 14:
        return f"Hot for {days} days"
    return f"Peaked {days} days ago"


def trend_badge(current_score: int | None) -> dict[str, str]:
    """Badge for the current score: Peak Viral, Hot, Rising or Watching."""
    score = current_score or 0
    if score >= 80:
        return {"emoji": "🔥🔥🔥", "label": "Peak Viral", "color": "red"}
    if score >= 60:
        return {"emoji": "🔥🔥", "label": "Hot", "color": "orange"}
    if score >= 40:
        return {"emoji": "🔥", "label": "Rising", "color": "yellow"}
    return {"emoji": "📈", "label": "Watching", "color": "gray"}
