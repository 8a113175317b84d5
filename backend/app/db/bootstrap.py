from __future__ import annotations

import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.db.session import engine as default_engine

logger = logging.getLogger(__name__)

ASSIGNMENT_KEY_COLUMNS = ["project_id", "faculty_id", "review_phase"]
ASSIGNMENT_UNIQUE_NAME = "uq_review_assignments_project_faculty_phase"


def has_assignment_uniqueness(inspector) -> bool:
    for constraint in inspector.get_unique_constraints("review_assignments"):
        if sorted(constraint.get("column_names") or []) == sorted(ASSIGNMENT_KEY_COLUMNS):
            return True
    for index in inspector.get_indexes("review_assignments"):
        if index.get("unique") and sorted(index.get("column_names") or []) == sorted(ASSIGNMENT_KEY_COLUMNS):
            return True
    return False


def ensure_review_assignment_uniqueness(engine: Engine | None = None) -> bool:
    """Make sure the store rejects a second (project, faculty, phase) assignment.

    Returns False when the table exists but the index could not be created,
    typically because duplicate rows are already present.
    """
    engine = engine or default_engine
    with engine.begin() as connection:
        inspector = inspect(connection)
        if "review_assignments" not in set(inspector.get_table_names()):
            return True
        if has_assignment_uniqueness(inspector):
            return True

    try:
        with engine.begin() as connection:
            connection.execute(
                text(
                    f"CREATE UNIQUE INDEX {ASSIGNMENT_UNIQUE_NAME} "
                    f"ON review_assignments ({', '.join(ASSIGNMENT_KEY_COLUMNS)})"
                )
            )
    except SQLAlchemyError:
        logger.exception("Unable to enforce unique review assignments; remove duplicate rows first")
        return False
    logger.info("Created unique index %s", ASSIGNMENT_UNIQUE_NAME)
    return True


def ensure_runtime_schema_compatibility(engine: Engine | None = None) -> None:
    ensure_review_assignment_uniqueness(engine)
