"""Tests for momentum-list presence and the drop-off transition."""

from __future__ import annotations

from datetime import timedelta

from trendpulse.models import Entity
from trendpulse.services.age_decay import as_utc
from trendpulse.services.momentum import apply_momentum_snapshot, set_presence


def _listed(make_entity, now, key: str, base: int = 100, days: int = 0):
    return make_entity(
        f"Listed {key}",
        canonical_key=key,
        base_score=base,
        on_momentum_list=True,
        first_detected_at=now - timedelta(days=days),
        last_seen_on_momentum_list_at=now - timedelta(days=1),
    )


class TestSetPresence:
    def test_leaving_list_applies_drop_off(self, db, make_entity, now):
        entity = _listed(make_entity, now, "K1")
        assert set_presence(entity, False, now) is True
        db.commit()

        assert entity.base_score == 88
        assert entity.dropped_off is True
        assert entity.current_score == 79

    def test_absent_when_already_off_is_noop(self, db, make_entity, now):
        entity = make_entity("Never Listed", base_score=40)
        assert set_presence(entity, False, now) is False
        assert entity.base_score == 40

    def test_joining_sets_timestamps(self, db, make_entity, now):
        entity = make_entity("Newcomer")
        assert set_presence(entity, True, now) is True
        assert entity.on_momentum_list is True
        assert as_utc(entity.last_seen_on_momentum_list_at) == now
        assert as_utc(entity.first_detected_at) == now

    def test_rejoining_keeps_first_detected(self, db, make_entity, now):
        entity = _listed(make_entity, now, "K2", days=12)
        set_presence(entity, False, now)
        first = as_utc(entity.first_detected_at)

        later = now + timedelta(days=2)
        set_presence(entity, True, later)

        assert as_utc(entity.first_detected_at) == first
        assert entity.dropped_off is False
        assert entity.days_trending == 14


class TestSnapshot:
    def test_absent_keys_drop_off(self, db, make_entity, now):
        stay = _listed(make_entity, now, "STAY")
        gone = _listed(make_entity, now, "GONE")
        unkeyed = make_entity("No Key", base_score=50, on_momentum_list=True,
                              first_detected_at=now)

        dropped = apply_momentum_snapshot(db, ["STAY", " "], now)

        assert dropped == 2
        assert db.get(Entity, stay.id).on_momentum_list is True
        assert db.get(Entity, gone.id).base_score == 88
        assert db.get(Entity, unkeyed.id).dropped_off is True

    def test_repeat_snapshot_does_not_reduce_again(self, db, make_entity, now):
        gone = _listed(make_entity, now, "GONE")
        apply_momentum_snapshot(db, [], now)
        apply_momentum_snapshot(db, [], now)
        assert db.get(Entity, gone.id).base_score == 88

    def test_present_ids_kept_without_key(self, db, make_entity, now):
        unkeyed = make_entity("Velvet Lip Tint", base_score=60, on_momentum_list=True,
                              first_detected_at=now, last_seen_on_momentum_list_at=now)

        dropped = apply_momentum_snapshot(db, ["K1"], now, present_ids=[unkeyed.id])

        assert dropped == 0
        assert db.get(Entity, unkeyed.id).on_momentum_list is True
        assert db.get(Entity, unkeyed.id).base_score == 60

    def test_keyless_seen_since_pass_start_kept(self, db, make_entity, now):
        fresh = make_entity("Fresh", base_score=60, on_momentum_list=True,
                            first_detected_at=now, last_seen_on_momentum_list_at=now)
        stale = make_entity("Stale", base_score=60, on_momentum_list=True,
                            first_detected_at=now - timedelta(days=3),
                            last_seen_on_momentum_list_at=now - timedelta(days=2))

        dropped = apply_momentum_snapshot(db, [], now, seen_since=now - timedelta(hours=1))

        assert dropped == 1
        assert db.get(Entity, fresh.id).on_momentum_list is True
        assert db.get(Entity, stale.id).dropped_off is True
