"""Tests for entity resolution: canonical keys, fuzzy matching and merges."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from trendpulse.models import Entity, Signal
from trendpulse.models.entity import STATUS_PUBLISHED
from trendpulse.schemas.signal import RawSignal
from trendpulse.services.age_decay import as_utc
from trendpulse.services.entity_resolver import (
    MATCH_CANONICAL_KEY,
    MATCH_CREATED,
    MATCH_FUZZY,
    EntityResolver,
    merge_into,
    select_survivor,
)
from trendpulse.services.errors import MergeAmbiguous, PersistenceUnavailable


@pytest.fixture
def resolver() -> EntityResolver:
    return EntityResolver(threshold=0.5, brand_bonus=0.12)


def _raw(now, name: str, **kwargs) -> RawSignal:
    kwargs.setdefault("source", "social")
    kwargs.setdefault("magnitude", 350)
    kwargs.setdefault("observed_at", now)
    return RawSignal(raw_name=name, **kwargs)


def _add_signal(db, entity, source="social", magnitude=100.0, observed_at=None):
    entity.signals.append(
        Signal(
            source=source,
            signal_type="mention",
            magnitude=magnitude,
            observed_at=observed_at or entity.created_at,
        )
    )
    db.commit()


class TestCreate:
    def test_first_observation_creates_entity(self, db, resolver, now):
        outcome = resolver.resolve(db, _raw(now, "Snail Mucin Essence", raw_brand="COSRX"), now)

        assert outcome.created
        assert outcome.match == MATCH_CREATED
        entity = outcome.entity
        assert entity.normalized_name == "snail mucin essence"
        assert entity.brand_key == "cosrx"
        assert len(entity.signals) == 1
        assert as_utc(entity.first_detected_at) == now
        # one social signal >= 300
        assert entity.base_score == 15
        assert entity.current_score == 15

    def test_future_observation_clamped_to_now(self, db, resolver, now):
        raw = _raw(now, "Lip Oil", observed_at=now + timedelta(days=2))
        outcome = resolver.resolve(db, raw, now)
        assert as_utc(outcome.entity.first_detected_at) == now
        assert outcome.entity.days_trending == 0

    def test_momentum_observation_sets_membership(self, db, resolver, now):
        raw = _raw(now, "Heatless Curler", source="momentum", magnitude=900, canonical_key="B0CURL")
        entity = resolver.resolve(db, raw, now).entity
        assert entity.on_momentum_list is True
        assert as_utc(entity.last_seen_on_momentum_list_at) == now
        assert entity.base_score == 45
        assert entity.signals[0].signal_type == "sales_rank_jump"


class TestFuzzyMatch:
    def test_cerave_pair_merges_with_brand_bonus(self, db, resolver, make_entity, now):
        existing = make_entity("CeraVe Moisturizing Cream", brand="CeraVe")

        outcome = resolver.resolve(
            db, _raw(now, "CeraVe Daily Moisturizing Lotion", raw_brand="CeraVe"), now
        )

        assert outcome.match == MATCH_FUZZY
        assert outcome.entity.id == existing.id
        assert outcome.similarity == pytest.approx(0.52)
        assert db.query(Entity).count() == 1

    def test_below_threshold_creates_new_entity(self, db, resolver, make_entity, now):
        make_entity("CeraVe Moisturizing Cream")

        outcome = resolver.resolve(db, _raw(now, "CeraVe Daily Moisturizing Lotion"), now)

        assert outcome.created
        assert db.query(Entity).count() == 2

    def test_find_fuzzy_match_raises_when_ambiguous(self, db, resolver, make_entity, now):
        make_entity("CeraVe Moisturizing Cream")
        with pytest.raises(MergeAmbiguous) as exc_info:
            resolver.find_fuzzy_match(db, _raw(now, "CeraVe Daily Moisturizing Lotion"))
        assert exc_info.value.similarity == pytest.approx(0.4)

    def test_no_candidates_returns_none(self, db, resolver, make_entity, now):
        make_entity("Hair Mask")
        assert resolver.find_fuzzy_match(db, _raw(now, "Lip Oil")) is None

    def test_best_candidate_wins(self, db, resolver, make_entity, now):
        make_entity("Glow Recipe Toner")
        best = make_entity("Glow Recipe Watermelon Toner")
        outcome = resolver.resolve(db, _raw(now, "Glow Recipe Watermelon Glow Toner"), now)
        assert outcome.entity.id == best.id

    def test_fills_missing_fields_keeps_existing(self, db, resolver, make_entity, now):
        existing = make_entity("Vitamin C Serum", brand="Truskin", category=None, price=None)
        raw = _raw(
            now, "Vitamin C Serum", raw_brand="Other Brand", price=19.99, category="Skincare"
        )
        entity = resolver.resolve(db, raw, now).entity
        assert entity.id == existing.id
        assert entity.brand == "Truskin"
        assert entity.price == 19.99
        assert entity.category == "Skincare"

    def test_first_detected_not_reset(self, db, resolver, make_entity, now):
        first = now - timedelta(days=10)
        existing = make_entity("Vitamin C Serum", first_detected_at=first, base_score=60)
        entity = resolver.resolve(db, _raw(now, "Vitamin C Serum"), now).entity
        assert entity.id == existing.id
        assert as_utc(entity.first_detected_at) == first
        assert entity.base_score == 60
        assert entity.days_trending == 10


class TestCanonicalKey:
    def test_exact_key_always_wins(self, db, resolver, make_entity, now):
        existing = make_entity("Completely Different Listing", canonical_key="B00KEY")
        outcome = resolver.resolve(db, _raw(now, "Lip Oil", canonical_key="B00KEY"), now)
        assert outcome.match == MATCH_CANONICAL_KEY
        assert outcome.entity.id == existing.id

    def test_different_key_never_fuzzy_merges(self, db, resolver, make_entity, now):
        make_entity("Rose Lip Oil", canonical_key="A1")
        outcome = resolver.resolve(db, _raw(now, "Rose Lip Oil", canonical_key="A2"), now)
        assert outcome.created
        assert db.query(Entity).count() == 2

    def test_keyed_observation_can_adopt_unkeyed_entity(self, db, resolver, make_entity, now):
        existing = make_entity("Rose Lip Oil")
        entity = resolver.resolve(db, _raw(now, "Rose Lip Oil", canonical_key="A3"), now).entity
        assert entity.id == existing.id
        assert entity.canonical_key == "A3"

    def test_duplicate_keys_collapse_into_priority_survivor(
        self, db, resolver, make_entity, now
    ):
        draft = make_entity("Dup One", canonical_key="DUP")
        published = make_entity("Dup Two", canonical_key="DUP", status=STATUS_PUBLISHED)
        listed = make_entity("Dup Three", canonical_key="DUP", on_momentum_list=True)
        for entity in (draft, published, listed):
            _add_signal(db, entity)
        draft_id, listed_id = draft.id, listed.id

        outcome = resolver.resolve(db, _raw(now, "Dup", canonical_key="DUP"), now)

        assert outcome.entity.id == published.id
        assert db.get(Entity, draft_id) is None
        assert db.get(Entity, listed_id) is None
        assert len(outcome.entity.signals) == 4
        assert outcome.entity.on_momentum_list is True


class TestSurvivorSelection:
    def test_priority_published_then_listed_then_earliest(self, now):
        older = Entity(canonical_name="a", id=1, status="draft", on_momentum_list=False,
                       created_at=now - timedelta(days=5))
        newer = Entity(canonical_name="b", id=2, status="draft", on_momentum_list=False,
                       created_at=now)
        listed = Entity(canonical_name="c", id=3, status="draft", on_momentum_list=True,
                        created_at=now)
        published = Entity(canonical_name="d", id=4, status=STATUS_PUBLISHED,
                           on_momentum_list=False, created_at=now)

        assert select_survivor([newer, older]) is older
        assert select_survivor([older, listed]) is listed
        assert select_survivor([listed, published, older]) is published

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            select_survivor([])


class TestMerge:
    def _pair(self, db, make_entity, now, suffix: str):
        a = make_entity(f"Alpha {suffix}", base_score=30, page_views=10, clicks=1,
                        first_detected_at=now - timedelta(days=2))
        b = make_entity(f"Beta {suffix}", base_score=50, page_views=5, clicks=2, price=12.0,
                        first_detected_at=now - timedelta(days=6))
        _add_signal(db, a, magnitude=310.0, observed_at=now)
        _add_signal(db, b, magnitude=600.0, observed_at=now)
        _add_signal(db, b, source="search_trend", magnitude=1.0, observed_at=now)
        return a, b

    def test_merge_moves_signals_and_fields(self, db, make_entity, now):
        a, b = self._pair(db, make_entity, now, "x")
        b_id = b.id

        moved = merge_into(db, a, b, now)
        db.commit()

        assert moved == 2
        assert db.get(Entity, b_id) is None
        assert len(a.signals) == 3
        assert a.price == 12.0
        assert a.page_views == 15
        assert a.clicks == 3
        assert as_utc(a.first_detected_at) == now - timedelta(days=6)
        assert a.base_score >= 50
        assert a.peak_score >= a.current_score

    def test_merge_order_independent_signal_set(self, db, make_entity, now):
        a1, b1 = self._pair(db, make_entity, now, "one")
        a2, b2 = self._pair(db, make_entity, now, "two")

        merge_into(db, a1, b1, now)
        merge_into(db, b2, a2, now)
        db.commit()

        def signal_set(entity):
            return sorted((s.source, s.magnitude) for s in entity.signals)

        assert signal_set(a1) == signal_set(b2)
        assert a1.base_score == b2.base_score
        assert a1.current_score == b2.current_score

    def test_merge_into_self_rejected(self, db, make_entity, now):
        a = make_entity("Solo")
        with pytest.raises(ValueError):
            merge_into(db, a, a, now)


class TestTransactions:
    def test_failed_attach_rolls_back(self, db, resolver, now):
        with patch.object(EntityResolver, "_attach", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                resolver.resolve(db, _raw(now, "Lip Oil"), now)
        assert db.query(Entity).count() == 0

    def test_lost_connection_becomes_persistence_unavailable(self, db, resolver, now):
        lost = OperationalError("COMMIT", {}, Exception("server closed the connection"))
        with patch.object(db, "commit", side_effect=lost):
            with pytest.raises(PersistenceUnavailable):
                resolver.resolve(db, _raw(now, "Lip Oil"), now)
        assert db.query(Entity).count() == 0
