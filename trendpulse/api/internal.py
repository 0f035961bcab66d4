"""Internal job and admin endpoints for cron/scripts and operators.

These endpoints are secured with a static token (X-Internal-Token header).
They are meant for automated triggers and administrative overrides only.
Every mutation invalidates the homepage section cache.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from trendpulse.api.deps import (
    get_db,
    get_resolver,
    get_section_selector,
    http_error,
    require_internal_token,
)
from trendpulse.ingestion.ingest import run_ingest
from trendpulse.schemas.entity import (
    BaseScoreUpdate,
    EntityRead,
    MergeResponse,
    MomentumPresenceUpdate,
)
from trendpulse.schemas.signal import IngestRequest
from trendpulse.services.entity_admin import (
    delete_entity,
    entity_to_read,
    merge_entities,
    publish_entity,
    set_base_score,
    set_momentum_presence,
)
from trendpulse.services.entity_resolver import EntityResolver
from trendpulse.services.errors import TrendPulseError
from trendpulse.services.homepage_sections import HomepageSectionSelector
from trendpulse.services.recalculate import run_recalculate, run_reconcile

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/internal",
    include_in_schema=False,
    dependencies=[Depends(require_internal_token)],
)


def _conflict(exc: StaleDataError) -> HTTPException:
    logger.warning("Concurrent modification detected: %s", exc)
    return HTTPException(status_code=409, detail="Entity was modified concurrently; retry")


# ── Jobs ────────────────────────────────────────────────────────────


@router.post("/run_ingest")
def run_ingest_endpoint(
    body: IngestRequest,
    db: Session = Depends(get_db),
    resolver: EntityResolver = Depends(get_resolver),
    selector: HomepageSectionSelector = Depends(get_section_selector),
):
    """Resolve a batch of collector records and apply the momentum snapshot.

    Invalid records are skipped and counted. Returns created, attached,
    skipped_invalid, dropped_off and errors.
    """
    try:
        result = run_ingest(
            db,
            body.records,
            resolver=resolver,
            momentum_snapshot=body.momentum_snapshot,
        )
    except Exception as exc:
        logger.exception("Internal ingest failed")
        return {"status": "failed", "error": str(exc)}
    selector.invalidate()
    return {"status": "completed", **result}


@router.post("/run_recalculate")
def run_recalculate_endpoint(
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
    x_idempotency_key: str | None = Header(None, alias="X-Idempotency-Key"),
):
    """Trigger the daily age-decay recalculation.

    Pass X-Idempotency-Key to skip duplicate runs (e.g. ``recalc:{date}``).
    """
    result = run_recalculate(db, idempotency_key=x_idempotency_key)
    selector.invalidate()
    return result


@router.post("/run_reconcile")
def run_reconcile_endpoint(
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
):
    """Collapse duplicate canonical keys, rescore from signals, then recalculate."""
    result = run_reconcile(db)
    selector.invalidate()
    return result


# ── Entity administration ───────────────────────────────────────────


@router.post("/entities/{entity_id}/momentum", response_model=EntityRead)
def set_momentum_endpoint(
    entity_id: int,
    body: MomentumPresenceUpdate,
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> EntityRead:
    try:
        entity = set_momentum_presence(db, entity_id, body.present)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    except StaleDataError as exc:
        raise _conflict(exc) from exc
    selector.invalidate()
    return entity_to_read(entity)


@router.post("/entities/{entity_id}/base-score", response_model=EntityRead)
def set_base_score_endpoint(
    entity_id: int,
    body: BaseScoreUpdate,
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> EntityRead:
    try:
        entity = set_base_score(db, entity_id, body.score)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    except StaleDataError as exc:
        raise _conflict(exc) from exc
    selector.invalidate()
    return entity_to_read(entity)


@router.post("/entities/{winner_id}/merge/{loser_id}", response_model=MergeResponse)
def merge_endpoint(
    winner_id: int,
    loser_id: int,
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> MergeResponse:
    """Merge loser into winner: signals move, fields fill, loser is deleted."""
    try:
        winner, moved = merge_entities(db, winner_id, loser_id)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    except StaleDataError as exc:
        raise _conflict(exc) from exc
    selector.invalidate()
    return MergeResponse(
        winner_id=winner_id,
        loser_id=loser_id,
        signals_transferred=moved,
        entity=entity_to_read(winner),
    )


@router.delete("/entities/{entity_id}")
def delete_endpoint(
    entity_id: int,
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> dict:
    try:
        delete_entity(db, entity_id)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    selector.invalidate()
    return {"status": "deleted", "entity_id": entity_id}


@router.post("/entities/{entity_id}/publish", response_model=EntityRead)
def publish_endpoint(
    entity_id: int,
    db: Session = Depends(get_db),
    selector: HomepageSectionSelector = Depends(get_section_selector),
) -> EntityRead:
    try:
        entity = publish_entity(db, entity_id)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    selector.invalidate()
    return entity_to_read(entity)
