"""Daily age-decay recalculation and on-demand reconciliation jobs.

Recalculation re-runs the age-decay engine over every entity with a
first-detected timestamp. Reconciliation is the single repair pass: collapse
duplicate canonical keys, recompose base scores from signals, then recalculate.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from trendpulse.models import Entity, JobRun
from trendpulse.services.age_decay import as_utc, refresh_entity_scores
from trendpulse.services.entity_resolver import collapse_duplicate_keys
from trendpulse.services.score_composer import rescore_entity

logger = logging.getLogger(__name__)

JOB_RECALCULATE = "recalculate"
JOB_RECONCILE = "reconcile"


def _cached_result(job: JobRun) -> dict:
    """Build response dict from a completed JobRun."""
    return {
        "status": job.status,
        "job_run_id": job.id,
        "entities_updated": job.entities_processed or 0,
        "entities_unchanged": job.entities_unchanged or 0,
        "entities_failed": job.entities_failed or 0,
        "error": job.error_message,
        "cached": True,
    }


def _find_completed(db: Session, job_type: str, idempotency_key: str) -> JobRun | None:
    existing = (
        db.query(JobRun)
        .filter(
            JobRun.idempotency_key == idempotency_key,
            JobRun.job_type == job_type,
        )
        .order_by(JobRun.started_at.desc(), JobRun.id.desc())
        .first()
    )
    if existing is not None and existing.status == "completed":
        return existing
    return None


def _recalculate_entities(db: Session, now: datetime) -> tuple[int, int, list[str]]:
    """Refresh every detected entity; one failure does not stop the pass."""
    entity_ids = [
        row[0]
        for row in db.query(Entity.id)
        .filter(Entity.first_detected_at.isnot(None))
        .order_by(Entity.id)
        .all()
    ]
    updated = 0
    unchanged = 0
    errors: list[str] = []
    for entity_id in entity_ids:
        try:
            entity = db.query(Entity).filter(Entity.id == entity_id).first()
            if entity is None:
                # merged or deleted since the id scan
                continue
            if refresh_entity_scores(entity, now):
                db.commit()
                updated += 1
            else:
                unchanged += 1
        except Exception as exc:
            db.rollback()
            logger.exception("Recalculation failed for entity %s", entity_id)
            errors.append(f"Entity {entity_id}: {exc}")
    return updated, unchanged, errors


def run_recalculate(
    db: Session,
    now: datetime | None = None,
    idempotency_key: str | None = None,
) -> dict:
    """Recompute current score, peak score and days trending for all entities.

    Idempotent: a second run with unchanged inputs and the same ``now``
    writes nothing. Per-entity failures are rolled back and counted.
    Creates a JobRun record for audit. When ``idempotency_key`` matches a
    completed run, that run's result is returned without recalculating.

    Returns:
        dict with status, job_run_id, entities_updated, entities_unchanged,
        entities_failed, error
    """
    if idempotency_key:
        existing = _find_completed(db, JOB_RECALCULATE, idempotency_key)
        if existing is not None:
            logger.info(
                "Idempotent skip: job_type=%s idempotency_key=%s job_run_id=%s",
                JOB_RECALCULATE,
                idempotency_key,
                existing.id,
            )
            return _cached_result(existing)

    current = as_utc(now) or datetime.now(UTC)
    job = JobRun(job_type=JOB_RECALCULATE, status="running", idempotency_key=idempotency_key)
    db.add(job)
    db.commit()
    db.refresh(job)
    job_id = job.id

    try:
        logger.info("Starting recalculation, now=%s", current.isoformat())
        updated, unchanged, errors = _recalculate_entities(db, current)

        job = db.get(JobRun, job_id)
        job.finished_at = datetime.now(UTC)
        job.status = "completed"
        job.entities_processed = updated
        job.entities_unchanged = unchanged
        job.entities_failed = len(errors)
        job.error_message = "; ".join(errors[:10]) if errors else None
        db.commit()

        logger.info(
            "Recalculation completed: updated=%d, unchanged=%d, failed=%d",
            updated,
            unchanged,
            len(errors),
        )
        return {
            "status": "completed",
            "job_run_id": job_id,
            "entities_updated": updated,
            "entities_unchanged": unchanged,
            "entities_failed": len(errors),
            "error": "; ".join(errors) if errors else None,
        }

    except Exception as exc:
        logger.exception("Recalculation job failed")
        db.rollback()
        job = db.get(JobRun, job_id)
        if job is not None:
            job.finished_at = datetime.now(UTC)
            job.status = "failed"
            job.error_message = str(exc)
            db.commit()
        return {
            "status": "failed",
            "job_run_id": job_id,
            "entities_updated": 0,
            "entities_unchanged": 0,
            "entities_failed": 0,
            "error": str(exc),
        }


def _rescore_all(db: Session) -> tuple[int, list[str]]:
    """Recompose base scores from attached signals (never lowers them)."""
    rescored = 0
    errors: list[str] = []
    for (entity_id,) in db.query(Entity.id).order_by(Entity.id).all():
        try:
            entity = db.query(Entity).filter(Entity.id == entity_id).first()
            if entity is None:
                continue
            before = entity.base_score
            if rescore_entity(entity) != before:
                db.commit()
                rescored += 1
        except Exception as exc:
            db.rollback()
            logger.exception("Rescore failed for entity %s", entity_id)
            errors.append(f"Entity {entity_id}: {exc}")
    return rescored, errors


def run_reconcile(db: Session, now: datetime | None = None) -> dict:
    """Single idempotent repair pass replacing ad hoc score-fix scripts.

    1. Collapse entities sharing a canonical key into one survivor
    2. Recompose base scores from signals (non-decreasing)
    3. Recalculate derived scores

    Returns:
        dict with status, job_run_id, keys_collapsed, entities_merged,
        entities_rescored, recalculation, error
    """
    current = as_utc(now) or datetime.now(UTC)
    job = JobRun(job_type=JOB_RECONCILE, status="running")
    db.add(job)
    db.commit()
    db.refresh(job)
    job_id = job.id

    try:
        collapsed = collapse_duplicate_keys(db, current)
        rescored, errors = _rescore_all(db)
        recalculation = run_recalculate(db, now=current)

        job = db.get(JobRun, job_id)
        job.finished_at = datetime.now(UTC)
        job.status = "completed"
        job.entities_processed = collapsed["entities_merged"] + rescored
        job.entities_failed = len(errors) + recalculation["entities_failed"]
        job.error_message = "; ".join(errors[:10]) if errors else None
        db.commit()

        logger.info(
            "Reconcile completed: keys_collapsed=%d, merged=%d, rescored=%d",
            collapsed["keys_collapsed"],
            collapsed["entities_merged"],
            rescored,
        )
        return {
            "status": "completed",
            "job_run_id": job_id,
            "keys_collapsed": collapsed["keys_collapsed"],
            "entities_merged": collapsed["entities_merged"],
            "entities_rescored": rescored,
            "recalculation": recalculation,
            "error": "; ".join(errors) if errors else None,
        }

    except Exception as exc:
        logger.exception("Reconcile job failed")
        db.rollback()
        job = db.get(JobRun, job_id)
        if job is not None:
            job.finished_at = datetime.now(UTC)
            job.status = "failed"
            job.error_message = str(exc)
            db.commit()
        return {
            "status": "failed",
            "job_run_id": job_id,
            "keys_collapsed": 0,
            "entities_merged": 0,
            "entities_rescored": 0,
            "recalculation": None,
            "error": str(exc),
        }
