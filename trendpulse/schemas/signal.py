"""Raw signal and signal schemas for request/response validation."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignalSource(str, Enum):
    """Collector that produced a signal."""

    momentum = "momentum"
    social = "social"
    search_trend = "search_trend"


# ── RawSignal (collector input) ─────────────────────────────────────────────


class RawSignal(BaseModel):
    """Raw signal record from a source collector before resolution.

    Collectors return RawSignal instances; the resolver matches each one to a
    canonical Entity (or creates one) and attaches it as a Signal.
    """

    source: SignalSource
    raw_name: str = Field(..., min_length=1, max_length=512)
    raw_brand: Optional[str] = Field(None, max_length=255)
    canonical_key: Optional[str] = Field(None, max_length=512)
    signal_type: Optional[str] = Field(None, max_length=64)
    magnitude: float = Field(0.0, allow_inf_nan=False)
    metadata: dict[str, Any] = Field(default_factory=dict)
    observed_at: datetime
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    category: Optional[str] = Field(None, max_length=128)

    @field_validator("raw_name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("raw_name must not be blank")
        return v.strip()

    @field_validator("raw_brand", "canonical_key", "signal_type", "category")
    @classmethod
    def _blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class SignalRead(BaseModel):
    """Schema for reading a signal (response)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    entity_id: int
    source: str
    signal_type: str
    magnitude: Optional[float] = None
    observed_at: datetime


class IngestRequest(BaseModel):
    """Body for POST /internal/run_ingest.

    ``records`` are validated one by one so a malformed record is skipped
    instead of rejecting the batch. ``momentum_snapshot`` carries the complete
    set of canonical keys seen on the authoritative momentum list in this
    pass; entities absent from it drop off.
    """

    records: list[dict[str, Any]] = Field(default_factory=list)
    momentum_snapshot: Optional[list[str]] = None
