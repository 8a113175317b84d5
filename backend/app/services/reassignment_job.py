"""Nightly reassignment of stale pending reviews.

A pending review whose scheduled time lies more than the stale threshold in
the past is moved to the faculty and start time of the team's next upcoming
lab session. Reviews with no upcoming session stay pending and are logged for
manual follow-up.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.models.project import Project
from app.models.review import Review, ReviewStatus
from app.models.review_assignment import ReviewAssignment, ReviewMode
from app.models.team import Team, TeamMember
from app.models.venue import LabSession, LabSessionStudent
from app.services.audit import log_activity
from app.services.college_hours import college_now

logger = logging.getLogger(__name__)

JOB_ID = "nightly_review_reassignment"


@dataclass
class ReassignmentSummary:
    checked: int = 0
    stale: int = 0
    reassigned: int = 0
    unresolved: int = 0
    failed: int = 0


def is_stale(review: Review, now: datetime, threshold: timedelta) -> bool:
    return now - review.scheduled_at > threshold


def next_session_for(db: Session, student_ids: list[str], now: datetime) -> LabSession | None:
    """Earliest session starting after ``now`` that seats any of ``student_ids``."""
    if not student_ids:
        return None
    return db.execute(
        select(LabSession)
        .join(LabSessionStudent, LabSessionStudent.session_id == LabSession.id)
        .where(LabSessionStudent.student_id.in_(student_ids), LabSession.start_time > now)
        .order_by(LabSession.start_time, LabSession.id)
        .limit(1)
    ).scalars().first()


def ensure_session_assignment(db: Session, project_id: str, session: LabSession, review_phase: int) -> bool:
    """Create a permanent offline assignment for the session faculty unless one exists."""
    existing = db.execute(
        select(ReviewAssignment.id).where(
            ReviewAssignment.project_id == project_id,
            ReviewAssignment.faculty_id == session.faculty_id,
            ReviewAssignment.review_phase == review_phase,
        )
    ).scalar_one_or_none()
    if existing is not None:
        return False
    db.add(
        ReviewAssignment(
            project_id=project_id,
            faculty_id=session.faculty_id,
            review_phase=review_phase,
            mode=ReviewMode.offline,
            access_starts_at=session.start_time,
            access_expires_at=None,
        )
    )
    return True


def _describe(db: Session, team: Team | None, review: Review) -> str:
    if team is not None and team.project_id:
        project = db.get(Project, team.project_id)
        if project is not None:
            return project.title
    return review.team_id


def _reassign(db: Session, review: Review, now: datetime, summary: ReassignmentSummary) -> None:
    team = db.get(Team, review.team_id)
    member_ids = list(
        db.execute(select(TeamMember.user_id).where(TeamMember.team_id == review.team_id)).scalars()
    )
    session = next_session_for(db, member_ids, now)
    if session is None:
        summary.unresolved += 1
        logger.warning(
            "No future session found for stale review %s (team: %s); manual intervention may be needed",
            review.id,
            _describe(db, team, review),
        )
        return

    logger.info(
        "Moving review %s from %s to %s (faculty %s)",
        review.id,
        review.scheduled_at.isoformat(),
        session.start_time.isoformat(),
        session.faculty_id,
    )
    previous_faculty_id = review.faculty_id
    review.faculty_id = session.faculty_id
    review.scheduled_at = session.start_time

    project_id = (team.project_id if team is not None else None) or review.project_id
    if project_id:
        ensure_session_assignment(db, project_id, session, review.review_phase)
    log_activity(
        db,
        actor_id=None,
        action="review.nightly_reassign",
        entity_type="review",
        entity_id=review.id,
        details={"from_faculty_id": previous_faculty_id, "to_faculty_id": session.faculty_id},
    )
    db.flush()
    summary.reassigned += 1


def reassign_stale_reviews(
    db: Session,
    now: datetime | None = None,
    settings: Settings | None = None,
) -> ReassignmentSummary:
    """Run one reassignment pass. Reviews are processed one at a time in a SAVEPOINT each."""
    settings = settings or get_settings()
    now = now or college_now(settings)
    threshold = timedelta(hours=settings.stale_review_threshold_hours)

    reviews = list(
        db.execute(
            select(Review)
            .where(Review.status == ReviewStatus.pending)
            .order_by(Review.scheduled_at, Review.id)
        ).scalars()
    )
    summary = ReassignmentSummary(checked=len(reviews))
    logger.info("Found %d pending reviews to check", len(reviews))

    for review in reviews:
        if not is_stale(review, now, threshold):
            continue
        summary.stale += 1
        try:
            with db.begin_nested():
                _reassign(db, review, now, summary)
        except SQLAlchemyError:
            summary.failed += 1
            logger.exception("Failed to reassign stale review %s", review.id)

    logger.info(
        "Nightly reassignment finished: %d stale, %d reassigned, %d unresolved, %d failed",
        summary.stale,
        summary.reassigned,
        summary.unresolved,
        summary.failed,
    )
    return summary


def run_nightly_reassignment(session_factory: Callable[[], Session]) -> ReassignmentSummary | None:
    """Scheduler entry point. Never raises into the scheduler thread."""
    logger.info("Running nightly review reassignment job")
    db = session_factory()
    try:
        summary = reassign_stale_reviews(db)
        db.commit()
        return summary
    except Exception:
        db.rollback()
        logger.exception("Nightly review reassignment job failed")
        return None
    finally:
        db.close()


def create_scheduler(
    session_factory: Callable[[], Session],
    settings: Settings | None = None,
) -> BackgroundScheduler:
    settings = settings or get_settings()
    scheduler = BackgroundScheduler(timezone=settings.college_timezone)
    scheduler.add_job(
        func=run_nightly_reassignment,
        trigger=CronTrigger.from_crontab(settings.nightly_reassignment_cron, timezone=settings.college_timezone),
        args=[session_factory],
        id=JOB_ID,
        name="Reassign stale pending reviews",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    logger.info(
        "Scheduler initialized: nightly review reassignment planned for cron '%s'",
        settings.nightly_reassignment_cron,
    )
    return scheduler
