from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.exceptions import ConflictError, ResourceNotFoundError
from app.models.project import Project, ProjectStatus
from app.models.review import Review, ReviewStatus
from app.models.review_assignment import ReviewAssignment
from app.models.team import Team, TeamMember, TeamStatus
from app.services.audit import log_activity

_WORK_STATES = {
    TeamStatus.not_completed,
    TeamStatus.in_progress,
    TeamStatus.ready_for_review,
    TeamStatus.changes_required,
    TeamStatus.completed,
}

# Successor sets. Every state may fall back to pending except pending itself;
# completed may be reopened.
TEAM_STATUS_TRANSITIONS: dict[TeamStatus, frozenset[TeamStatus]] = {
    TeamStatus.pending: frozenset({TeamStatus.approved}),
    TeamStatus.approved: frozenset({TeamStatus.pending} | _WORK_STATES - {TeamStatus.completed}),
    TeamStatus.not_completed: frozenset({TeamStatus.pending, TeamStatus.in_progress, TeamStatus.ready_for_review}),
    TeamStatus.in_progress: frozenset({TeamStatus.pending} | _WORK_STATES - {TeamStatus.in_progress}),
    TeamStatus.ready_for_review: frozenset({TeamStatus.pending} | _WORK_STATES - {TeamStatus.ready_for_review}),
    TeamStatus.changes_required: frozenset({TeamStatus.pending} | _WORK_STATES - {TeamStatus.changes_required}),
    TeamStatus.completed: frozenset(
        {TeamStatus.not_completed, TeamStatus.in_progress, TeamStatus.changes_required}
    ),
}

RESET_STATES = {TeamStatus.pending, TeamStatus.not_completed, TeamStatus.in_progress}
OPEN_REVIEW_STATES = (ReviewStatus.pending, ReviewStatus.in_progress)


def can_transition(current: TeamStatus, target: TeamStatus) -> bool:
    return current == target or target in TEAM_STATUS_TRANSITIONS[current]


def update_team_status(
    db: Session,
    team_id: str,
    target: TeamStatus,
    *,
    now: datetime,
    actor_id: str | None = None,
) -> Team:
    team = db.get(Team, team_id)
    if team is None:
        raise ResourceNotFoundError("Team", team_id)
    previous = team.status
    if not can_transition(previous, target):
        raise ConflictError(
            f"Cannot move team from {previous.value} to {target.value}",
            details={
                "current": previous.value,
                "requested": target.value,
                "allowed": sorted(item.value for item in TEAM_STATUS_TRANSITIONS[previous]),
            },
        )

    team.status = target
    if target != TeamStatus.pending:
        db.execute(
            update(TeamMember)
            .where(TeamMember.team_id == team.id)
            .values(approved=True)
            .execution_options(synchronize_session="fetch")
        )

    if target in RESET_STATES:
        # Open reviews would block the team from resubmitting.
        db.execute(
            update(Review)
            .where(Review.team_id == team.id, Review.status.in_(OPEN_REVIEW_STATES))
            .values(status=ReviewStatus.not_completed)
            .execution_options(synchronize_session="fetch")
        )
    elif target == TeamStatus.changes_required and team.project_id:
        latest_phase = db.execute(
            select(Review.review_phase)
            .where(Review.team_id == team.id)
            .order_by(Review.created_at.desc(), Review.review_phase.desc())
            .limit(1)
        ).scalar_one_or_none()
        stmt = update(ReviewAssignment).where(ReviewAssignment.project_id == team.project_id)
        if latest_phase is not None:
            stmt = stmt.where(ReviewAssignment.review_phase == latest_phase)
        extension = timedelta(hours=get_settings().review_access_extension_hours)
        db.execute(
            stmt.values(access_expires_at=now + extension).execution_options(synchronize_session="fetch")
        )
    elif target == TeamStatus.completed and team.project_id:
        project = db.get(Project, team.project_id)
        if project is not None:
            project.status = ProjectStatus.completed

    log_activity(
        db,
        actor_id=actor_id,
        action="team.status_update",
        entity_type="team",
        entity_id=team.id,
        details={"from": previous.value, "to": target.value},
    )
    db.flush()
    return team
