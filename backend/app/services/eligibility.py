from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.models.project import Project, ProjectRequest, ProjectRequestStatus
from app.models.review import Review, ReviewStatus
from app.models.team import Team, TeamMember, TeamStatus
from app.models.user import User


@dataclass
class EligibleTeam:
    team: Team
    project: Project | None
    members: list[User] = field(default_factory=list)
    pending_project_ids: list[str] = field(default_factory=list)

    @property
    def target_project_id(self) -> str | None:
        """The assigned project, else the project of the earliest pending request."""
        if self.team.project_id:
            return self.team.project_id
        return self.pending_project_ids[0] if self.pending_project_ids else None

    def matches(self, term: str) -> bool:
        if self.project is not None and term in self.project.title.lower():
            return True
        for member in self.members:
            if term in member.name.lower():
                return True
            if member.roll_number and term in member.roll_number.lower():
                return True
        return False


def load_team_members(db: Session, team_ids: list[str]) -> dict[str, list[User]]:
    members: dict[str, list[User]] = defaultdict(list)
    if not team_ids:
        return members
    rows = db.execute(
        select(TeamMember.team_id, User)
        .join(User, User.id == TeamMember.user_id)
        .where(TeamMember.team_id.in_(team_ids))
        .order_by(User.roll_number, User.name)
    ).all()
    for team_id, user in rows:
        members[team_id].append(user)
    return members


def eligible_teams(
    db: Session,
    scope_id: str | None,
    phase: int,
    *,
    search: str | None = None,
    status: TeamStatus | None = None,
) -> list[EligibleTeam]:
    """Teams of ``scope_id`` with a project (or pending request) and no completed review for ``phase``."""
    if not scope_id:
        return []

    pending_requests = (
        select(ProjectRequest.team_id)
        .where(ProjectRequest.status == ProjectRequestStatus.pending)
    )
    completed_for_phase = (
        select(Review.team_id)
        .where(Review.review_phase == phase, Review.status == ReviewStatus.completed)
    )
    scope_projects = select(Project.id).where(Project.scope_id == scope_id)

    stmt = (
        select(Team)
        .where(
            or_(Team.scope_id == scope_id, Team.project_id.in_(scope_projects)),
            or_(Team.project_id.is_not(None), Team.id.in_(pending_requests)),
            Team.id.not_in(completed_for_phase),
        )
        .order_by(Team.created_at, Team.id)
    )
    if status is not None:
        stmt = stmt.where(Team.status == status)
    teams = list(db.execute(stmt).scalars())
    if not teams:
        return []

    team_ids = [team.id for team in teams]
    project_ids = {team.project_id for team in teams if team.project_id}
    projects = {
        project.id: project
        for project in db.execute(select(Project).where(Project.id.in_(project_ids))).scalars()
    } if project_ids else {}

    requests: dict[str, list[str]] = defaultdict(list)
    for request in db.execute(
        select(ProjectRequest)
        .where(ProjectRequest.team_id.in_(team_ids), ProjectRequest.status == ProjectRequestStatus.pending)
        .order_by(ProjectRequest.requested_at, ProjectRequest.id)
    ).scalars():
        requests[request.team_id].append(request.project_id)

    members = load_team_members(db, team_ids)
    results = [
        EligibleTeam(
            team=team,
            project=projects.get(team.project_id) if team.project_id else None,
            members=members.get(team.id, []),
            pending_project_ids=requests.get(team.id, []),
        )
        for team in teams
    ]

    term = (search or "").strip().lower()
    if term:
        results = [item for item in results if item.matches(term)]
    return results
