"""Tests for homepage section selection, caching and degradation."""

from __future__ import annotations

import threading
from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from trendpulse.models import Signal
from trendpulse.models.entity import STATUS_PUBLISHED
from trendpulse.models.signal import EARLY_SIGNAL_TYPE
from trendpulse.services.homepage_sections import SECTION_NAMES, HomepageSectionSelector
from trendpulse.services.section_cache import SectionCache


@pytest.fixture
def publish(make_entity, now):
    """Factory for displayable entities: Published, with content and a price."""

    def _publish(name: str, score: int | None, days: int | None, **kwargs):
        kwargs.setdefault("status", STATUS_PUBLISHED)
        kwargs.setdefault("content_generated_at", now)
        kwargs.setdefault("price", 24.0)
        kwargs.setdefault("base_score", score or 0)
        kwargs.setdefault("peak_score", score)
        return make_entity(name, current_score=score, days_trending=days, **kwargs)

    return _publish


def _ids(entities) -> list[int]:
    return [e.id for e in entities]


class TestSections:
    def test_trending_now_rules(self, db, section_selector, publish, now):
        fresh = publish("Fresh Hit", 65, 10)
        extended = publish("Extended Hit", 75, 18)
        publish("Too Old For 65", 65, 18)
        unknown_age = publish("Unknown Age", 60, None)

        sections = section_selector.build_sections(db, limit=10, now=now)

        assert set(_ids(sections.trending_now)) == {fresh.id, extended.id, unknown_age.id}
        assert _ids(sections.trending_now)[0] == extended.id

    def test_about_to_explode_subqueries(self, db, section_selector, publish, now):
        band = publish("Score Band", 55, 5)
        publish("Trending Instead", 65, 5)
        early = publish("Early Mover", 5, 2)
        early.signals.append(
            Signal(source="social", signal_type=EARLY_SIGNAL_TYPE, magnitude=50, observed_at=now)
        )
        db.commit()
        low = publish("New Low", 30, 3)
        publish("Too Old", 55, 10)

        sections = section_selector.build_sections(db, limit=10, now=now)

        assert _ids(sections.about_to_explode) == [band.id, low.id, early.id]
        assert sections.about_to_explode[2].signal_count == 1

    def test_recently_hot_by_peak(self, db, section_selector, publish, now):
        faded = publish("Faded", 30, 20, peak_score=80)
        undated_old = publish(
            "Undated Old", None, None, peak_score=70, created_at=now - timedelta(days=10)
        )
        publish("Undated New", None, None, peak_score=70, created_at=now)
        publish("Too Far Gone", 30, 60, peak_score=90)

        sections = section_selector.build_sections(db, limit=10, now=now)

        assert _ids(sections.recently_hot) == [faded.id, undated_old.id]

    def test_rising_fast_and_warming_up(self, db, section_selector, publish, now):
        rising = publish("Rising", 45, 12)
        explode = publish("Young Riser", 45, 3)
        warming = publish("Warming", 20, 25)
        publish("Cold", 5, 25)

        sections = section_selector.build_sections(db, limit=10, now=now)

        assert _ids(sections.rising_fast) == [rising.id]
        assert _ids(sections.about_to_explode) == [explode.id]
        assert _ids(sections.warming_up) == [warming.id]

    def test_legacy_score_fallback(self, db, section_selector, publish, now):
        legacy = publish("Legacy", None, None, legacy_score=72)
        sections = section_selector.build_sections(db, limit=10, now=now)
        assert _ids(sections.trending_now) == [legacy.id]

    def test_display_filters(self, db, section_selector, publish, now):
        publish("Draft", 80, 2, status="draft")
        publish("No Content", 80, 2, content_generated_at=None)
        publish("Too Cheap", 80, 2, price=3.0)
        unpriced = publish("Unpriced", 80, 2, price=None)

        sections = section_selector.build_sections(db, limit=10, now=now)

        assert _ids(sections.trending_now) == [unpriced.id]

    def test_sections_are_disjoint_and_capped(self, db, section_selector, publish, now):
        for i in range(6):
            publish(f"Hot {i}", 60 + i, i)
            publish(f"Mid {i}", 50 + i, i)
            publish(f"Low {i}", 10 + i, i + 3)
            publish(f"Rise {i}", 40 + i, 9)

        sections = section_selector.build_sections(db, limit=4, now=now)

        seen: set[int] = set()
        for name in SECTION_NAMES:
            ids = _ids(getattr(sections, name))
            assert len(ids) <= 4
            assert seen.isdisjoint(ids), name
            seen.update(ids)
        assert not set(_ids(sections.trending_now)) & set(_ids(sections.about_to_explode))

    def test_explode_excludes_trending_qualifiers_beyond_limit(
        self, db, section_selector, publish, now
    ):
        for i in range(3):
            publish(f"Hot {i}", 80 - i, 1)

        sections = section_selector.build_sections(db, limit=1, now=now)

        assert len(sections.trending_now) == 1
        assert sections.about_to_explode == []


class TestBrowse:
    def test_category_case_insensitive_and_bounded(self, db, section_selector, publish, now):
        serum = publish("Glow Serum", 55, 5, category="Skincare")
        publish("Faded Serum", 55, 40, category="skincare")
        publish("Quiet Serum", 20, 5, category="skincare")
        publish("Lip Oil", 55, 5, category="Makeup")

        assert _ids(section_selector.in_category(db, "SKINCARE", 10)) == [serum.id]

    def test_search_matches_name_or_brand(self, db, section_selector, publish):
        by_name = publish("Rose Lip Oil", 40, 3)
        by_brand = publish("Cloud Cream", 70, 3, brand="Rosebud Co")
        publish("Hair Mask", 90, 3)
        publish("Rose Toner", 50, 3, status="draft")

        assert _ids(section_selector.matching(db, "rose", 10)) == [by_brand.id, by_name.id]

    def test_search_escapes_wildcards(self, db, section_selector, publish):
        publish("Serum 100 Percent", 50, 3)
        assert section_selector.matching(db, "%", 10) == []

    def test_blank_search_returns_nothing(self, section_selector):
        response = section_selector.select_search("   ", 10)
        assert response.entities == []
        assert response.degraded is False

    def test_peak_viral(self, db, section_selector, publish):
        viral = publish("Viral", 85, 20)
        publish("Viral But Old", 90, 31)
        publish("Only Hot", 79, 2)

        assert _ids(section_selector.peak_viral(db, 10)) == [viral.id]

    def test_new_this_week_by_created_desc(self, db, section_selector, publish, now):
        older = publish("Older", 20, 5, created_at=now - timedelta(days=5))
        newest = publish("Newest", None, None, created_at=now - timedelta(hours=2))
        publish("Last Month", 90, 30, created_at=now - timedelta(days=30))

        assert _ids(section_selector.new_this_week(db, 10, now)) == [newest.id, older.id]

    def test_browse_reads_cached_except_search(self, db, section_selector, publish, now):
        publish("Viral", 85, 2, category="Skincare")

        first = section_selector.select_peak_viral(8)
        assert section_selector.select_peak_viral(8) is first
        section_selector.select_category("Skincare", 8)
        section_selector.select_search("viral", 8)
        assert len(section_selector.cache) == 2

    def test_browse_degrades_on_store_error(self):
        def failing_factory():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        selector = HomepageSectionSelector(
            failing_factory, SectionCache(60), timeout=1.0, min_price=5.0
        )
        try:
            response = selector.select_category("Skincare", 8)
        finally:
            selector.close()

        assert response.degraded is True
        assert response.entities == []
        assert len(selector.cache) == 0


class TestCaching:
    def test_second_select_served_from_cache(self, db, section_selector, publish, now):
        publish("Cached", 70, 1)
        with patch.object(
            section_selector, "build_sections", wraps=section_selector.build_sections
        ) as spy:
            first = section_selector.select(8, now)
            second = section_selector.select(8, now)
            assert spy.call_count == 1
            assert second is first

            section_selector.invalidate()
            section_selector.select(8, now)
            assert spy.call_count == 2

    def test_limit_is_part_of_key(self, db, section_selector, now):
        section_selector.select(3, now)
        section_selector.select(5, now)
        assert len(section_selector.cache) == 2


class TestDegradation:
    def test_timeout_returns_empty_and_is_not_cached(self):
        release = threading.Event()

        def blocked_factory():
            release.wait(2)
            raise RuntimeError("store unreachable")

        cache = SectionCache(60)
        selector = HomepageSectionSelector(blocked_factory, cache, timeout=0.05, min_price=5.0)
        try:
            result = selector.select(8)
        finally:
            release.set()
            selector.close()

        assert result.degraded is True
        assert all(getattr(result, name) == [] for name in SECTION_NAMES)
        assert len(cache) == 0

    def test_store_error_returns_empty(self):
        def failing_factory():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        selector = HomepageSectionSelector(
            failing_factory, SectionCache(60), timeout=1.0, min_price=5.0
        )
        try:
            result = selector.select(8)
        finally:
            selector.close()

        assert result.degraded is True
        assert len(selector.cache) == 0


class TestSectionCache:
    def test_entries_expire_after_ttl(self):
        clock = [100.0]
        cache = SectionCache(60, clock=lambda: clock[0])
        cache.set("k", "v")

        clock[0] = 159.9
        assert cache.get("k") == "v"
        clock[0] = 160.0
        assert cache.get("k") is None

    def test_zero_ttl_disables_caching(self):
        cache = SectionCache(0)
        cache.set("k", "v")
        assert cache.get("k") is None

    def test_invalidate_clears_everything(self):
        cache = SectionCache(60)
        cache.set(1, "a")
        cache.set(2, "b")
        cache.invalidate()
        assert len(cache) == 0
