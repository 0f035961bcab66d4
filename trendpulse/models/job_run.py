"""JobRun model."""

from datetime import UTC, datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from trendpulse.db.session import Base


class JobRun(Base):
    """Records for batch jobs (/internal/run_recalculate, /internal/run_reconcile, ingest)."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_job_type_idempotency_key", "job_type", "idempotency_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    entities_processed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    entities_unchanged: Mapped[int | None] = mapped_column(Integer, nullable=True)
    entities_failed: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
