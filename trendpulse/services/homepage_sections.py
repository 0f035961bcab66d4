"""Homepage section selector.

Produces five ranked, mutually exclusive lists over Published entities with
generated content and a displayable price:

1. Trending Now      score >= 60, days <= 14 (<= 21 when score >= 70)
2. About to Explode  days <= 7 and score 50-69, early signal, or score 10-49;
                     excludes anything qualifying for Trending Now
3. Recently Hot      peak >= 60, days 7-45, by peak
4. Rising Fast       score 40-69, days <= 14
5. Warming Up        score 10-39

Scores fall back to the legacy score when the current score is unset; a
null days_trending satisfies upper bounds. Each section excludes entities
already placed in a higher-priority section of the same invocation.
Reads are cached and bounded by a timeout; an unavailable store yields
empty sections instead of blocking.

The same filter and degradation also back the browse reads: one category,
name or brand search, Peak Viral (score >= 80, days <= 30) and New This Week
(created in the last 7 days).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import UTC, datetime, timedelta
from typing import TypeVar

from sqlalchemy import and_, func, not_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trendpulse.config import get_settings
from trendpulse.models.entity import STATUS_PUBLISHED, Entity
from trendpulse.models.signal import EARLY_SIGNAL_TYPE, Signal
from trendpulse.schemas.entity import EntityRead
from trendpulse.schemas.sections import HomepageSections, SectionResponse
from trendpulse.services.age_decay import as_utc
from trendpulse.services.entity_admin import entity_to_read
from trendpulse.services.errors import PersistenceUnavailable
from trendpulse.services.section_cache import SectionCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

SECTION_NAMES = (
    "trending_now",
    "about_to_explode",
    "recently_hot",
    "rising_fast",
    "warming_up",
)

TRENDING_MIN_SCORE = 60
TRENDING_MAX_DAYS = 14
TRENDING_EXTENDED_MIN_SCORE = 70
TRENDING_EXTENDED_MAX_DAYS = 21
EXPLODE_MAX_DAYS = 7
RECENTLY_HOT_MIN_PEAK = 60
RECENTLY_HOT_MIN_DAYS = 7
RECENTLY_HOT_MAX_DAYS = 45
RISING_MAX_DAYS = 14

# Browse reads outside the homepage sections
PEAK_VIRAL_MIN_SCORE = 80
PEAK_VIRAL_MAX_DAYS = 30
NEW_THIS_WEEK_DAYS = 7
CATEGORY_MIN_SCORE = 30
CATEGORY_MAX_DAYS = 30

# Null-safe effective scores: current, then legacy, then 0
_effective = func.coalesce(Entity.current_score, Entity.legacy_score, 0)
_effective_peak = func.coalesce(
    Entity.peak_score, Entity.current_score, Entity.legacy_score, 0
)


def _days_at_most(days: int):
    return or_(Entity.days_trending <= days, Entity.days_trending.is_(None))


def trending_now_condition():
    """SQL condition for Trending Now membership."""
    return and_(
        _effective >= TRENDING_MIN_SCORE,
        or_(
            _days_at_most(TRENDING_MAX_DAYS),
            and_(
                _effective >= TRENDING_EXTENDED_MIN_SCORE,
                Entity.days_trending <= TRENDING_EXTENDED_MAX_DAYS,
            ),
        ),
    )


def effective_score(entity: Entity) -> int:
    if entity.current_score is not None:
        return entity.current_score
    return entity.legacy_score or 0


def _signal_counts(db: Session, entity_ids: set[int]) -> dict[int, int]:
    if not entity_ids:
        return {}
    return dict(
        db.query(Signal.entity_id, func.count(Signal.id))
        .filter(Signal.entity_id.in_(sorted(entity_ids)))
        .group_by(Signal.entity_id)
        .all()
    )


class HomepageSectionSelector:
    """Builds and caches homepage sections.

    ``session_factory`` returns a context-managed Session (``SessionLocal``
    in production). Owns a small worker pool so reads can be abandoned after
    ``timeout`` seconds; call ``close()`` on shutdown.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: SectionCache,
        *,
        timeout: float | None = None,
        min_price: float | None = None,
        max_workers: int = 2,
    ) -> None:
        settings = get_settings()
        self.session_factory = session_factory
        self.cache = cache
        self.timeout = settings.section_query_timeout if timeout is None else timeout
        self.min_price = settings.min_display_price if min_price is None else min_price
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="sections"
        )

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    def invalidate(self) -> None:
        self.cache.invalidate()

    # ── Read path ───────────────────────────────────────────────────

    def select(self, limit: int, now: datetime | None = None) -> HomepageSections:
        """Return all sections, each capped at ``limit``.

        Served from cache when fresh. On timeout or store failure, returns
        empty sections flagged ``degraded`` and does not cache them.
        """
        cached = self.cache.get(limit)
        if cached is not None:
            return cached
        try:
            sections = self._run_with_timeout(self._load, limit, now)
        except PersistenceUnavailable as exc:
            logger.warning("Homepage sections unavailable, returning empty: %s", exc)
            return HomepageSections(degraded=True)
        self.cache.set(limit, sections)
        return sections

    def _run_with_timeout(self, fn: Callable[..., T], *args) -> T:
        """Run ``fn`` on the worker pool; timeouts and store errors become PersistenceUnavailable."""
        future = self._executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as exc:
            future.cancel()
            raise PersistenceUnavailable(
                f"Section query exceeded {self.timeout:.1f}s timeout"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(str(exc)) from exc

    def _load(self, limit: int, now: datetime | None) -> HomepageSections:
        with self.session_factory() as db:
            return self.build_sections(db, limit, now)

    def _read_list(
        self,
        name: str,
        key: tuple | None,
        query: Callable[[Session], list[Entity]],
    ) -> SectionResponse:
        """Run one browse query through the cache and timeout; ``key=None`` skips the cache."""
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached
        try:
            entities = self._run_with_timeout(self._load_list, query)
        except PersistenceUnavailable as exc:
            logger.warning("Browse read %s unavailable, returning empty: %s", name, exc)
            return SectionResponse(name=name, degraded=True)
        response = SectionResponse(name=name, entities=entities)
        if key is not None:
            self.cache.set(key, response)
        return response

    def _load_list(self, query: Callable[[Session], list[Entity]]) -> list[EntityRead]:
        with self.session_factory() as db:
            entities = query(db)
            counts = _signal_counts(db, {e.id for e in entities})
            return [entity_to_read(e, counts.get(e.id, 0)) for e in entities]

    def select_category(self, category: str, limit: int) -> SectionResponse:
        """Trending entities in one category (case-insensitive)."""
        name = category.strip()
        return self._read_list(
            "category",
            ("category", name.lower(), limit),
            lambda db: self.in_category(db, name, limit),
        )

    def select_search(self, term: str, limit: int) -> SectionResponse:
        """Name or brand substring search. Blank terms return nothing; results are not cached."""
        needle = term.strip()
        if not needle:
            return SectionResponse(name="search")
        return self._read_list("search", None, lambda db: self.matching(db, needle, limit))

    def select_peak_viral(self, limit: int) -> SectionResponse:
        return self._read_list(
            "peak_viral", ("peak_viral", limit), lambda db: self.peak_viral(db, limit)
        )

    def select_new_this_week(self, limit: int, now: datetime | None = None) -> SectionResponse:
        return self._read_list(
            "new_this_week",
            ("new_this_week", limit),
            lambda db: self.new_this_week(db, limit, now),
        )

    # ── Queries ─────────────────────────────────────────────────────

    def _base_query(self, db: Session, exclude_ids: set[int] | None = None):
        query = db.query(Entity).filter(
            Entity.status == STATUS_PUBLISHED,
            Entity.content_generated_at.isnot(None),
            or_(Entity.price >= self.min_price, Entity.price.is_(None)),
        )
        if exclude_ids:
            query = query.filter(Entity.id.notin_(sorted(exclude_ids)))
        return query

    def trending_now(self, db: Session, limit: int) -> list[Entity]:
        return (
            self._base_query(db)
            .filter(trending_now_condition())
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def about_to_explode(
        self, db: Session, limit: int, exclude_ids: set[int] | None = None
    ) -> list[Entity]:
        """Union of three sub-queries (score 50-69, early signal, new low scorers), deduped."""
        base = (
            self._base_query(db, exclude_ids)
            .filter(_days_at_most(EXPLODE_MAX_DAYS))
            .filter(not_(trending_now_condition()))
        )
        fetch = limit * 2
        score_band = (
            base.filter(_effective >= 50, _effective <= 69)
            .order_by(_effective.desc(), Entity.id)
            .limit(fetch)
            .all()
        )
        early_signal = (
            base.filter(Entity.signals.any(Signal.signal_type == EARLY_SIGNAL_TYPE))
            .order_by(_effective.desc(), Entity.id)
            .limit(fetch)
            .all()
        )
        new_low = (
            base.filter(_effective >= 10, _effective < 50)
            .order_by(_effective.desc(), Entity.id)
            .limit(fetch)
            .all()
        )
        seen: dict[int, Entity] = {}
        for entity in [*score_band, *early_signal, *new_low]:
            seen.setdefault(entity.id, entity)
        ranked = sorted(seen.values(), key=lambda e: (-effective_score(e), e.id))
        return ranked[:limit]

    def recently_hot(
        self,
        db: Session,
        limit: int,
        exclude_ids: set[int] | None = None,
        now: datetime | None = None,
    ) -> list[Entity]:
        current = as_utc(now) or datetime.now(UTC)
        created_cutoff = current - timedelta(days=RECENTLY_HOT_MIN_DAYS)
        return (
            self._base_query(db, exclude_ids)
            .filter(
                _effective_peak >= RECENTLY_HOT_MIN_PEAK,
                or_(
                    and_(
                        Entity.days_trending >= RECENTLY_HOT_MIN_DAYS,
                        Entity.days_trending <= RECENTLY_HOT_MAX_DAYS,
                    ),
                    and_(
                        Entity.days_trending.is_(None),
                        Entity.created_at <= created_cutoff,
                    ),
                ),
            )
            .order_by(_effective_peak.desc(), _effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def rising_fast(
        self, db: Session, limit: int, exclude_ids: set[int] | None = None
    ) -> list[Entity]:
        return (
            self._base_query(db, exclude_ids)
            .filter(
                _effective >= 40,
                _effective <= 69,
                _days_at_most(RISING_MAX_DAYS),
            )
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def warming_up(
        self, db: Session, limit: int, exclude_ids: set[int] | None = None
    ) -> list[Entity]:
        return (
            self._base_query(db, exclude_ids)
            .filter(_effective >= 10, _effective <= 39)
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def build_sections(
        self, db: Session, limit: int, now: datetime | None = None
    ) -> HomepageSections:
        """Run all section queries in priority order without caching."""
        placed: set[int] = set()
        lists: dict[str, list[Entity]] = {}

        lists["trending_now"] = self.trending_now(db, limit)
        placed.update(e.id for e in lists["trending_now"])
        lists["about_to_explode"] = self.about_to_explode(db, limit, placed)
        placed.update(e.id for e in lists["about_to_explode"])
        lists["recently_hot"] = self.recently_hot(db, limit, placed, now)
        placed.update(e.id for e in lists["recently_hot"])
        lists["rising_fast"] = self.rising_fast(db, limit, placed)
        placed.update(e.id for e in lists["rising_fast"])
        lists["warming_up"] = self.warming_up(db, limit, placed)
        placed.update(e.id for e in lists["warming_up"])

        counts = _signal_counts(db, placed)
        return HomepageSections(
            **{
                name: [entity_to_read(e, counts.get(e.id, 0)) for e in entities]
                for name, entities in lists.items()
            }
        )

    # ── Browse queries ──────────────────────────────────────────────

    def in_category(self, db: Session, category: str, limit: int) -> list[Entity]:
        return (
            self._base_query(db)
            .filter(
                func.lower(Entity.category) == category.lower(),
                _effective >= CATEGORY_MIN_SCORE,
                _days_at_most(CATEGORY_MAX_DAYS),
            )
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def matching(self, db: Session, term: str, limit: int) -> list[Entity]:
        return (
            self._base_query(db)
            .filter(
                or_(
                    Entity.canonical_name.icontains(term, autoescape=True),
                    Entity.brand.icontains(term, autoescape=True),
                )
            )
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def peak_viral(self, db: Session, limit: int) -> list[Entity]:
        return (
            self._base_query(db)
            .filter(
                _effective >= PEAK_VIRAL_MIN_SCORE,
                _days_at_most(PEAK_VIRAL_MAX_DAYS),
            )
            .order_by(_effective.desc(), Entity.id)
            .limit(limit)
            .all()
        )

    def new_this_week(
        self, db: Session, limit: int, now: datetime | None = None
    ) -> list[Entity]:
        """Most recently added entities, regardless of score."""
        current = as_utc(now) or datetime.now(UTC)
        return (
            self._base_query(db)
            .filter(Entity.created_at >= current - timedelta(days=NEW_THIS_WEEK_DAYS))
            .order_by(Entity.created_at.desc(), Entity.id.desc())
            .limit(limit)
            .all()
        )
