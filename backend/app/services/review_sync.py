from __future__ import annotations

from datetime import datetime, timedelta
import logging

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.review import Review, ReviewStatus
from app.models.review_assignment import ReviewAssignment, ReviewMode
from app.models.team import Team, TeamMember, TeamStatus
from app.services.allocation import upsert_assignment
from app.services.college_hours import add_duration_excluding_sundays

logger = logging.getLogger(__name__)


def current_phase(db: Session, team: Team, now: datetime) -> int:
    """Highest phase the team has reached through submissions, reviews or lapsed access."""
    phases = [team.submission_phase or 0]
    phases.extend(db.execute(select(Review.review_phase).where(Review.team_id == team.id)).scalars())
    if team.project_id:
        phases.extend(
            db.execute(
                select(ReviewAssignment.review_phase).where(
                    ReviewAssignment.project_id == team.project_id,
                    ReviewAssignment.access_expires_at.is_not(None),
                    ReviewAssignment.access_expires_at < now,
                )
            ).scalars()
        )
    return max(1, *phases)


def reassign_pending_review(
    db: Session,
    team: Team,
    faculty_id: str,
    review_phase: int,
    now: datetime,
    actor_id: str | None = None,
) -> bool:
    """Point the team's pending review for ``review_phase`` at ``faculty_id``.

    Returns True when an existing review was transferred away from another faculty.
    """
    transferred = False
    existing = db.execute(
        select(Review)
        .where(
            Review.team_id == team.id,
            Review.review_phase == review_phase,
            Review.status == ReviewStatus.pending,
        )
        .order_by(Review.created_at.desc(), Review.id)
        .limit(1)
    ).scalar_one_or_none()

    if existing is None:
        db.add(
            Review(
                team_id=team.id,
                project_id=team.project_id,
                faculty_id=faculty_id,
                review_phase=review_phase,
                status=ReviewStatus.pending,
                scheduled_at=now,
            )
        )
    elif existing.faculty_id != faculty_id:
        previous_faculty_id = existing.faculty_id
        existing.faculty_id = faculty_id
        if team.project_id and previous_faculty_id:
            db.execute(
                update(ReviewAssignment)
                .where(
                    ReviewAssignment.project_id == team.project_id,
                    ReviewAssignment.faculty_id == previous_faculty_id,
                    ReviewAssignment.review_phase == review_phase,
                )
                .values(access_expires_at=now)
                .execution_options(synchronize_session="fetch")
            )
        transferred = True

    if team.project_id:
        hours = get_settings().review_access_extension_hours
        upsert_assignment(
            db,
            project_id=team.project_id,
            faculty_id=faculty_id,
            review_phase=review_phase,
            mode=ReviewMode.offline,
            access_starts_at=now,
            access_expires_at=add_duration_excluding_sundays(now, timedelta(hours=hours)),
            assigned_by_id=actor_id,
            now=now,
            preserve_origin=True,
        )
    db.flush()
    return transferred


def sync_team_reviews_with_session(
    db: Session,
    student_ids: list[str],
    faculty_id: str,
    now: datetime,
    actor_id: str | None = None,
) -> int:
    """Move the pending reviews of every team seated in a session to the session's faculty."""
    if not student_ids:
        return 0
    teams = list(
        db.execute(
            select(Team)
            .where(
                Team.id.in_(select(TeamMember.team_id).where(TeamMember.user_id.in_(student_ids))),
                Team.project_id.is_not(None),
            )
            .order_by(Team.created_at, Team.id)
        ).scalars()
    )
    for team in teams:
        phase = current_phase(db, team, now)
        if reassign_pending_review(db, team, faculty_id, phase, now, actor_id):
            logger.info("Transferred phase %s review of team %s to faculty %s", phase, team.id, faculty_id)
        team.status = TeamStatus.in_progress
    db.flush()
    return len(teams)
