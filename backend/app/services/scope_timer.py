from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRequestError
from app.models.scope import Scope
from app.services.college_hours import get_college_seconds_between, is_college_working_hour


def remaining_seconds(scope: Scope, now: datetime) -> int:
    stored = scope.current_remaining_seconds or 0
    if not scope.is_timer_running or scope.timer_last_updated is None:
        return stored
    elapsed = get_college_seconds_between(scope.timer_last_updated, now)
    return max(0, stored - elapsed)


def timer_snapshot(scope: Scope, now: datetime) -> dict:
    return {
        "scope_id": scope.id,
        "timer_total_hours": scope.timer_total_hours,
        "is_timer_running": scope.is_timer_running,
        "remaining_seconds": remaining_seconds(scope, now),
        "is_counting_down": scope.is_timer_running and is_college_working_hour(now),
        "server_time": now,
    }


def _require_timer(scope: Scope) -> None:
    if not scope.timer_total_hours:
        raise InvalidRequestError("Scope has no timer configured", details={"scope_id": scope.id})


def start_timer(db: Session, scope: Scope, now: datetime) -> Scope:
    _require_timer(scope)
    if scope.current_remaining_seconds is None:
        scope.current_remaining_seconds = scope.timer_total_hours * 3600
    if not scope.is_timer_running:
        scope.is_timer_running = True
        scope.timer_last_updated = now
    db.flush()
    return scope


def pause_timer(db: Session, scope: Scope, now: datetime) -> Scope:
    _require_timer(scope)
    if scope.is_timer_running:
        # Persist the working-hour seconds consumed since the last checkpoint.
        scope.current_remaining_seconds = remaining_seconds(scope, now)
        scope.is_timer_running = False
        scope.timer_last_updated = now
    db.flush()
    return scope


def reset_timer(db: Session, scope: Scope, now: datetime) -> Scope:
    _require_timer(scope)
    scope.current_remaining_seconds = scope.timer_total_hours * 3600
    scope.is_timer_running = False
    scope.timer_last_updated = now
    db.flush()
    return scope
