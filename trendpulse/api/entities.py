"""Public entity routes: detail view and traffic counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from trendpulse.api.deps import get_db, http_error
from trendpulse.schemas.entity import EntityRead
from trendpulse.services.entity_admin import entity_to_read, get_entity, track_click, track_view
from trendpulse.services.errors import TrendPulseError

router = APIRouter()


@router.get("/{entity_id}", response_model=EntityRead, summary="Get an entity")
def read_entity(entity_id: int, db: Session = Depends(get_db)) -> EntityRead:
    try:
        return entity_to_read(get_entity(db, entity_id))
    except TrendPulseError as exc:
        raise http_error(exc) from exc


@router.post("/{entity_id}/track-view", summary="Record a page view")
def post_track_view(entity_id: int, db: Session = Depends(get_db)) -> dict:
    """Page views feed the traffic boost on the next recalculation."""
    try:
        track_view(db, entity_id)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    return {"status": "ok"}


@router.post("/{entity_id}/track-click", summary="Record an outbound click")
def post_track_click(entity_id: int, db: Session = Depends(get_db)) -> dict:
    try:
        track_click(db, entity_id)
    except TrendPulseError as exc:
        raise http_error(exc) from exc
    return {"status": "ok"}
