"""Entity model: one canonical, deduplicated trending item."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trendpulse.db.session import Base

STATUS_DRAFT = "draft"
STATUS_FLAGGED = "flagged"
STATUS_PUBLISHED = "published"


class Entity(Base):
    """Canonical item tracked across momentum, social and search-trend sources."""

    __tablename__ = "entities"
    __table_args__ = (
        Index("ix_entities_canonical_key", "canonical_key"),
        Index("ix_entities_normalized_name", "normalized_name"),
        Index("ix_entities_brand_key", "brand_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    canonical_name: Mapped[str] = mapped_column(String(512), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    brand: Mapped[str | None] = mapped_column(String(255), nullable=True)
    brand_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str | None] = mapped_column(String(128), nullable=True)
    price: Mapped[float | None] = mapped_column(Float, nullable=True)
    # Marketplace URL/ASIN; not unique at the DB level, reconcile collapses duplicates
    canonical_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=STATUS_DRAFT, nullable=False)

    base_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    peak_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    days_trending: Mapped[int | None] = mapped_column(Integer, nullable=True)
    legacy_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    first_detected_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    on_momentum_list: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_seen_on_momentum_list_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    page_views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    clicks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_viewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    content_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    signals: Mapped[list["Signal"]] = relationship(
        "Signal", back_populates="entity", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def dropped_off(self) -> bool:
        """True once the entity has left the momentum list after being on it."""
        return not self.on_momentum_list and self.last_seen_on_momentum_list_at is not None

    @property
    def has_content(self) -> bool:
        return self.content_generated_at is not None
