"""Initial schema: entities, signals, job_runs.

Revision ID: 001
Revises:
Create Date: 2026-10-18

canonical_key is indexed but not unique; duplicate keys are collapsed by the
reconcile job rather than rejected at insert time.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "entities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("canonical_name", sa.String(length=512), nullable=False),
        sa.Column("normalized_name", sa.String(length=512), nullable=False),
        sa.Column("brand", sa.String(length=255), nullable=True),
        sa.Column("brand_key", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=128), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("canonical_key", sa.String(length=512), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("base_score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("current_score", sa.Integer(), nullable=True),
        sa.Column("peak_score", sa.Integer(), nullable=True),
        sa.Column("days_trending", sa.Integer(), nullable=True),
        sa.Column("legacy_score", sa.Integer(), nullable=True),
        sa.Column("first_detected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "on_momentum_list", sa.Boolean(), server_default=sa.text("false"), nullable=False
        ),
        sa.Column("last_seen_on_momentum_list_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("page_views", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("clicks", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_viewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("content_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_entities_canonical_key", "entities", ["canonical_key"])
    op.create_index("ix_entities_normalized_name", "entities", ["normalized_name"])
    op.create_index("ix_entities_brand_key", "entities", ["brand_key"])

    op.create_table(
        "signals",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(length=32), nullable=False),
        sa.Column("signal_type", sa.String(length=64), nullable=False),
        sa.Column("magnitude", sa.Float(), nullable=True),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["entity_id"], ["entities.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_signals_entity_id", "signals", ["entity_id"])

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_type", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entities_processed", sa.Integer(), nullable=True),
        sa.Column("entities_unchanged", sa.Integer(), nullable=True),
        sa.Column("entities_failed", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_job_runs_job_type_idempotency_key", "job_runs", ["job_type", "idempotency_key"]
    )


def downgrade() -> None:
    op.drop_index("ix_job_runs_job_type_idempotency_key", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_index("ix_signals_entity_id", table_name="signals")
    op.drop_table("signals")
    op.drop_index("ix_entities_brand_key", table_name="entities")
    op.drop_index("ix_entities_normalized_name", table_name="entities")
    op.drop_index("ix_entities_canonical_key", table_name="entities")
    op.drop_table("entities")
