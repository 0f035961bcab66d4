"""Ingestion orchestrator: records -> validate -> resolve -> attach -> rescore."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from trendpulse.ingestion.base import SourceAdapter
from trendpulse.ingestion.normalize import parse_raw_signal
from trendpulse.models.signal import SOURCE_MOMENTUM
from trendpulse.schemas.signal import RawSignal
from trendpulse.services.age_decay import as_utc
from trendpulse.services.entity_resolver import EntityResolver
from trendpulse.services.errors import ValidationError
from trendpulse.services.momentum import apply_momentum_snapshot

logger = logging.getLogger(__name__)


def run_ingest(
    db: Session,
    records: Iterable[dict[str, Any] | RawSignal],
    resolver: EntityResolver | None = None,
    momentum_snapshot: Iterable[str] | None = None,
    now: datetime | None = None,
) -> dict:
    """Resolve a batch of raw observations.

    Each observation is its own transaction: an invalid record is skipped
    and counted, a failing record is logged and does not stop the run.
    When ``momentum_snapshot`` is given (the full set of canonical keys on
    the momentum list this pass), flagged entities absent from it drop off
    after all records are attached. Entities attached by a momentum record
    of this batch count as present, keyed or not.

    Returns
    -------
    dict
        {created: int, attached: int, skipped_invalid: int, dropped_off: int, errors: list}
    """
    resolver = resolver or EntityResolver()
    current = as_utc(now) or datetime.now(UTC)
    created = 0
    attached = 0
    skipped_invalid = 0
    errors: list[str] = []
    momentum_ids: set[int] = set()
    momentum_since: datetime | None = None

    for index, record in enumerate(records):
        try:
            raw = record if isinstance(record, RawSignal) else parse_raw_signal(record)
        except ValidationError as exc:
            skipped_invalid += 1
            logger.warning("Skipping invalid record %d: %s", index, exc)
            continue
        try:
            outcome = resolver.resolve(db, raw, current)
        except Exception as exc:
            errors.append(f"{raw.source.value}:{raw.raw_name}: {exc}")
            logger.exception("Ingest failed for record %d (%r)", index, raw.raw_name)
            continue
        if outcome.created:
            created += 1
        else:
            attached += 1
        if raw.source.value == SOURCE_MOMENTUM:
            momentum_ids.add(outcome.entity.id)
            observed = min(as_utc(raw.observed_at), current)
            if momentum_since is None or observed < momentum_since:
                momentum_since = observed

    dropped_off = 0
    if momentum_snapshot is not None:
        dropped_off = apply_momentum_snapshot(
            db,
            momentum_snapshot,
            current,
            present_ids=momentum_ids,
            seen_since=momentum_since,
        )

    logger.info(
        "Ingest completed: created=%d, attached=%d, skipped_invalid=%d, dropped_off=%d, errors=%d",
        created,
        attached,
        skipped_invalid,
        dropped_off,
        len(errors),
    )
    return {
        "created": created,
        "attached": attached,
        "skipped_invalid": skipped_invalid,
        "dropped_off": dropped_off,
        "errors": errors,
    }


def run_adapter_ingest(
    db: Session,
    adapter: SourceAdapter,
    since: datetime,
    resolver: EntityResolver | None = None,
    now: datetime | None = None,
) -> dict:
    """Fetch from a source adapter and ingest its observations."""
    raw_signals = adapter.fetch_signals(since)
    logger.info("Adapter %s returned %d signals", adapter.source_name, len(raw_signals))
    result = run_ingest(
        db,
        raw_signals,
        resolver=resolver,
        momentum_snapshot=adapter.momentum_snapshot(),
        now=now,
    )
    result["source"] = adapter.source_name
    return result
