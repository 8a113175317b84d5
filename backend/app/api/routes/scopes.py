from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_now, require_roles
from app.db.errors import persistence_errors
from app.models.scope import Scope
from app.models.user import User, UserRole
from app.schemas.scope import ScopeTimerOut
from app.services.audit import log_activity
from app.services.scope_timer import pause_timer, reset_timer, start_timer, timer_snapshot

router = APIRouter()


def _get_scope(db: Session, scope_id: str) -> Scope:
    scope = db.get(Scope, scope_id)
    if scope is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scope not found")
    return scope


@router.get("/{scope_id}/timer", response_model=ScopeTimerOut)
def get_timer(
    scope_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScopeTimerOut:
    return ScopeTimerOut(**timer_snapshot(_get_scope(db, scope_id), now))


def _timer_action(db: Session, scope_id: str, action, name: str, user: User, now: datetime) -> ScopeTimerOut:
    scope = _get_scope(db, scope_id)
    with persistence_errors(db, f"{name} scope timer"):
        action(db, scope, now)
        log_activity(
            db,
            actor_id=user.id,
            action=f"scope.timer_{name}",
            entity_type="scope",
            entity_id=scope.id,
            details={"remaining_seconds": scope.current_remaining_seconds},
        )
        db.commit()
    db.refresh(scope)
    return ScopeTimerOut(**timer_snapshot(scope, now))


@router.post("/{scope_id}/timer/start", response_model=ScopeTimerOut)
def start_scope_timer(
    scope_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScopeTimerOut:
    return _timer_action(db, scope_id, start_timer, "start", current_user, now)


@router.post("/{scope_id}/timer/pause", response_model=ScopeTimerOut)
def pause_scope_timer(
    scope_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScopeTimerOut:
    return _timer_action(db, scope_id, pause_timer, "pause", current_user, now)


@router.post("/{scope_id}/timer/reset", response_model=ScopeTimerOut)
def reset_scope_timer(
    scope_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ScopeTimerOut:
    return _timer_action(db, scope_id, reset_timer, "reset", current_user, now)
