#!/usr/bin/env python3
"""Run the daily age-decay recalculation locally.

Usage:
    python scripts/run_recalculate.py [--idempotency-key recalc:2026-10-18]

Recomputes current score, peak score and days trending for every entity.
Exits 0 on success, 1 on failure.

Running web workers keep serving their cached sections until
SECTION_CACHE_TTL expires. Schedule cron against POST /internal/run_recalculate
when sections must refresh immediately.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trendpulse.db.session import SessionLocal
from trendpulse.services.recalculate import run_recalculate


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate age-decayed scores")
    parser.add_argument("--idempotency-key", default=None)
    args = parser.parse_args(argv)

    db = SessionLocal()
    try:
        result = run_recalculate(db, idempotency_key=args.idempotency_key)
        print(
            f"status={result['status']} "
            f"job_run_id={result['job_run_id']} "
            f"entities_updated={result['entities_updated']} "
            f"entities_unchanged={result['entities_unchanged']} "
            f"entities_failed={result['entities_failed']}"
        )
        if result.get("error"):
            print(f"error={result['error']}", file=sys.stderr)
        return 0 if result["status"] == "completed" else 1
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
