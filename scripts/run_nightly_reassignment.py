"""Run one pass of the nightly stale-review reassignment outside the scheduler.

Run:
  PYTHONPATH=backend python scripts/run_nightly_reassignment.py
"""

from __future__ import annotations

import logging
import sys

from app.db.session import SessionLocal
from app.services.reassignment_job import run_nightly_reassignment


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    summary = run_nightly_reassignment(SessionLocal)
    if summary is None:
        print("Reassignment failed; see log output above.")
        return 1
    print(
        f"Checked {summary.checked} pending review(s): {summary.stale} stale, "
        f"{summary.reassigned} reassigned, {summary.unresolved} without a future session, "
        f"{summary.failed} failed."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
