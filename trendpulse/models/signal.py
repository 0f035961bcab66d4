"""Signal model: one observed trend data point from a single source."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trendpulse.db.session import Base

SOURCE_MOMENTUM = "momentum"
SOURCE_SOCIAL = "social"
SOURCE_SEARCH_TREND = "search_trend"
SIGNAL_SOURCES = frozenset({SOURCE_MOMENTUM, SOURCE_SOCIAL, SOURCE_SEARCH_TREND})

EARLY_SIGNAL_TYPE = "early_signal"


class Signal(Base):
    """Trend signal owned by exactly one Entity (reassigned on merge)."""

    __tablename__ = "signals"
    __table_args__ = (Index("ix_signals_entity_id", "entity_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("entities.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    signal_type: Mapped[str] = mapped_column(String(64), nullable=False)
    magnitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    meta: Mapped[dict | None] = mapped_column(
        "metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    observed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )

    entity: Mapped["Entity"] = relationship("Entity", back_populates="signals")
