"""Move review access expiries that land on a Sunday to the following Monday.

Run:
  PYTHONPATH=backend python scripts/remediate_sunday_expirations.py
"""

from __future__ import annotations

import logging

from app.db.session import SessionLocal
from app.services.allocation import remediate_sunday_expirations


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    session = SessionLocal()
    try:
        updated = remediate_sunday_expirations(session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
    print(f"Updated {updated} review assignment(s) with Sunday expiry.")


if __name__ == "__main__":
    main()
