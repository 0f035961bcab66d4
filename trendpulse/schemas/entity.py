"""Entity schemas for request/response validation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class EntityStatus(str, Enum):
    """Publication state of an entity."""

    draft = "draft"
    flagged = "flagged"
    published = "published"


class TrendBadge(BaseModel):
    """Display badge derived from the current score."""

    emoji: str
    label: str
    color: str


class EntityRead(BaseModel):
    """Entity with derived scoring fields (response)."""

    id: int
    canonical_name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = None
    canonical_key: Optional[str] = None
    status: EntityStatus
    base_score: int
    current_score: Optional[int] = None
    peak_score: Optional[int] = None
    days_trending: Optional[int] = None
    should_show_on_homepage: bool = False
    timeline_text: Optional[str] = None
    trend_badge: Optional[TrendBadge] = None
    first_detected_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    on_momentum_list: bool = False
    last_seen_on_momentum_list_at: Optional[datetime] = None
    page_views: int = 0
    clicks: int = 0
    signal_count: int = 0


class MomentumPresenceUpdate(BaseModel):
    """Body for setMomentumPresence."""

    present: bool


class BaseScoreUpdate(BaseModel):
    """Body for setBaseScore."""

    score: int = Field(..., ge=0, le=100)


class MergeResponse(BaseModel):
    """Result of merging a loser entity into a winner."""

    winner_id: int
    loser_id: int
    signals_transferred: int
    entity: EntityRead
