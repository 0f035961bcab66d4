"""Score composer: bounded composite base score from an entity's signals.

Momentum (10–70) + Social (0–30) + Search trend (0 or 20), clamped to 0–100.
The momentum sub-score uses the bounded policy; a flat 100 for any list
presence is not used.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from trendpulse.models.signal import SOURCE_MOMENTUM, SOURCE_SEARCH_TREND, SOURCE_SOCIAL

if TYPE_CHECKING:
    from trendpulse.models.entity import Entity

logger = logging.getLogger(__name__)

MOMENTUM_DIVISOR = 20
MOMENTUM_MIN = 10
MOMENTUM_MAX = 70

SOCIAL_HIGH_MAGNITUDE = 500  # strictly greater than
SOCIAL_HIGH_POINTS = 20
SOCIAL_MID_MAGNITUDE = 300  # greater than or equal
SOCIAL_MID_POINTS = 15
SOCIAL_MAX_SCORED = 2
SOCIAL_VOLUME_BONUS_3 = 10
SOCIAL_VOLUME_BONUS_2 = 5
SOCIAL_CAP = 30

SEARCH_TREND_POINTS = 20


class _SignalLike(Protocol):
    source: str
    magnitude: float | None


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-source sub-scores and their clamped total."""

    momentum: int = 0
    social: int = 0
    search_trend: int = 0

    @property
    def total(self) -> int:
        return max(0, min(self.momentum + self.social + self.search_trend, 100))


def _magnitude(signal: _SignalLike) -> float:
    m = signal.magnitude
    if m is None or not math.isfinite(m):
        return 0.0
    return float(m)


def momentum_subscore(signals: Iterable[_SignalLike]) -> int:
    """Return 0 with no momentum signals, 10 for presence, else clamp(floor(m/20), 10, 70)."""
    magnitudes = [_magnitude(s) for s in signals if s.source == SOURCE_MOMENTUM]
    if not magnitudes:
        return 0
    best = max(magnitudes)
    if best <= 0:
        return MOMENTUM_MIN
    return max(MOMENTUM_MIN, min(math.floor(best / MOMENTUM_DIVISOR), MOMENTUM_MAX))


def social_subscore(signals: Iterable[_SignalLike]) -> int:
    """Top two engagements by magnitude plus a volume bonus, capped at 30."""
    social = sorted(
        (_magnitude(s) for s in signals if s.source == SOURCE_SOCIAL), reverse=True
    )
    if not social:
        return 0
    score = 0
    scored = 0
    for magnitude in social:
        if scored >= SOCIAL_MAX_SCORED:
            break
        if magnitude > SOCIAL_HIGH_MAGNITUDE:
            score += SOCIAL_HIGH_POINTS
            scored += 1
        elif magnitude >= SOCIAL_MID_MAGNITUDE:
            score += SOCIAL_MID_POINTS
            scored += 1
    if len(social) >= 3:
        score += SOCIAL_VOLUME_BONUS_3
    elif len(social) >= 2:
        score += SOCIAL_VOLUME_BONUS_2
    return min(score, SOCIAL_CAP)


def search_trend_subscore(signals: Iterable[_SignalLike]) -> int:
    return SEARCH_TREND_POINTS if any(s.source == SOURCE_SEARCH_TREND for s in signals) else 0


def compose_base_score(
    signals: Iterable[_SignalLike], *, include_momentum: bool = True
) -> ScoreBreakdown:
    """Compose the bounded base score from signals.

    include_momentum=False skips momentum signals; used for entities that have
    dropped off the momentum list so re-observation on another source does not
    undo the drop-off reduction.
    """
    signals = list(signals)
    return ScoreBreakdown(
        momentum=momentum_subscore(signals) if include_momentum else 0,
        social=social_subscore(signals),
        search_trend=search_trend_subscore(signals),
    )


def rescore_entity(entity: Entity) -> int:
    """Recompose and store the entity's base score; never lowers it.

    Lowering happens only through the drop-off transition or an explicit
    admin override. Returns the stored base score.
    """
    breakdown = compose_base_score(entity.signals, include_momentum=not entity.dropped_off)
    previous = entity.base_score or 0
    entity.base_score = max(previous, breakdown.total)
    if entity.base_score != previous:
        logger.debug(
            "rescore_entity: entity_id=%s base %s -> %s (%s)",
            entity.id,
            previous,
            entity.base_score,
            breakdown,
        )
    return entity.base_score
