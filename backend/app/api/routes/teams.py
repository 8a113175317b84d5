from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_now, require_roles
from app.db.errors import persistence_errors
from app.models.team import TeamStatus
from app.models.user import User, UserRole
from app.schemas.team import EligibleTeamOut, TeamMemberOut, TeamOut, TeamProjectOut, TeamStatusUpdate
from app.services.eligibility import eligible_teams
from app.services.team_status import update_team_status

router = APIRouter()


@router.get("/eligible", response_model=list[EligibleTeamOut])
def list_eligible_teams(
    scope_id: str | None = Query(default=None),
    phase: int = Query(default=1, ge=1),
    search: str | None = Query(default=None, max_length=100),
    team_status: TeamStatus | None = Query(default=None, alias="status"),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> list[EligibleTeamOut]:
    return [
        EligibleTeamOut(
            id=item.team.id,
            status=item.team.status,
            project_id=item.team.project_id,
            target_project_id=item.target_project_id,
            project=TeamProjectOut.model_validate(item.project) if item.project else None,
            members=[TeamMemberOut.model_validate(member) for member in item.members],
            pending_project_ids=item.pending_project_ids,
        )
        for item in eligible_teams(db, scope_id, phase, search=search, status=team_status)
    ]


@router.patch("/{team_id}/status", response_model=TeamOut)
def change_team_status(
    team_id: str,
    payload: TeamStatusUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> TeamOut:
    with persistence_errors(db, "update team status"):
        team = update_team_status(db, team_id, payload.status, now=now, actor_id=current_user.id)
        db.commit()
    db.refresh(team)
    return team
