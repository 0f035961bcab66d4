#!/usr/bin/env python3
"""Run the reconcile repair pass locally.

Usage:
    python scripts/run_reconcile.py

Collapses duplicate canonical keys, recomposes base scores from signals and
recalculates derived scores. Safe to re-run. Exits 0 on success, 1 on failure.

Running web workers keep serving their cached sections until
SECTION_CACHE_TTL expires. Use POST /internal/run_reconcile to invalidate
them at once.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from trendpulse.db.session import SessionLocal
from trendpulse.services.recalculate import run_reconcile


def main() -> int:
    db = SessionLocal()
    try:
        result = run_reconcile(db)
        print(
            f"status={result['status']} "
            f"job_run_id={result['job_run_id']} "
            f"keys_collapsed={result['keys_collapsed']} "
            f"entities_merged={result['entities_merged']} "
            f"entities_rescored={result['entities_rescored']}"
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
