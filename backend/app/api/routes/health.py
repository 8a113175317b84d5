from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import inspect, text

from app.db.bootstrap import ASSIGNMENT_KEY_COLUMNS, has_assignment_uniqueness
from app.db.session import engine

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/health/live")
def health_live() -> dict:
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@router.get("/health/ready")
def health_ready() -> JSONResponse:
    required_tables = {
        "users",
        "teams",
        "projects",
        "reviews",
        "review_assignments",
        "venues",
        "lab_sessions",
        "lab_session_students",
    }
    db_ok = True
    missing_tables: list[str] = []
    assignments_unique = False
    db_error: str | None = None

    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            inspector = inspect(connection)
            table_names = set(inspector.get_table_names())
            missing_tables = sorted(required_tables - table_names)
            if "review_assignments" in table_names:
                assignments_unique = has_assignment_uniqueness(inspector)
    except Exception as exc:  # pragma: no cover - environment dependent
        db_ok = False
        db_error = str(exc)

    schema_ok = not missing_tables and assignments_unique
    ready = db_ok and schema_ok
    payload = {
        "status": "ok" if ready else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "ok": db_ok,
            "schema_ok": schema_ok,
            "missing_tables": missing_tables,
            "review_assignments_unique": assignments_unique,
            "unique_key": ASSIGNMENT_KEY_COLUMNS,
            "error": db_error,
        },
    }
    return JSONResponse(status_code=200 if ready else 503, content=payload)
