from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidRequestError, ResourceNotFoundError
from app.models.project import Project, ProjectRequest, ProjectRequestStatus
from app.models.review_assignment import ReviewAssignment, ReviewMode
from app.models.scope import Scope
from app.models.team import Team, TeamMember
from app.models.user import User, UserRole
from app.models.venue import LabSession, LabSessionStudent
from app.services.audit import log_activity
from app.services.college_hours import access_expiry, correct_sunday_expiry, day_bounds, to_college_local

logger = logging.getLogger(__name__)


@dataclass
class SkippedItem:
    reference: str
    reason: str


@dataclass
class AllocationResult:
    created: int = 0
    updated: int = 0
    skipped: list[SkippedItem] = field(default_factory=list)

    def skip(self, reference: str, reason: str) -> None:
        logger.info("Skipping %s: %s", reference, reason)
        self.skipped.append(SkippedItem(reference=reference, reason=reason))


@dataclass
class AllocationTarget:
    project_id: str
    team_id: str | None = None
    member_ids: list[str] = field(default_factory=list)


def _unique(values) -> list[str]:
    return [item for item in dict.fromkeys(values or []) if item]


def round_robin_pairs(project_ids: list[str], faculty_ids: list[str]) -> list[tuple[str, str]]:
    """Deal projects to faculty in input order; earlier faculty take the remainder."""
    if not faculty_ids:
        return []
    return [(project_id, faculty_ids[index % len(faculty_ids)]) for index, project_id in enumerate(project_ids)]


def cross_pairs(project_ids: list[str], faculty_ids: list[str]) -> list[tuple[str, str]]:
    return [(project_id, faculty_id) for project_id in project_ids for faculty_id in faculty_ids]


def upsert_assignment(
    db: Session,
    *,
    project_id: str,
    faculty_id: str,
    review_phase: int,
    mode: ReviewMode,
    access_starts_at: datetime | None,
    access_expires_at: datetime | None,
    assigned_by_id: str | None,
    now: datetime,
    preserve_origin: bool = False,
) -> tuple[ReviewAssignment, bool]:
    """Create the (project, faculty, phase) assignment or refresh its access window.

    With ``preserve_origin`` an existing row keeps its original access start
    and assigner; only mode, expiry and ``assigned_at`` are refreshed.
    Returns the row and whether it was newly created.
    """
    existing = db.execute(
        select(ReviewAssignment).where(
            ReviewAssignment.project_id == project_id,
            ReviewAssignment.faculty_id == faculty_id,
            ReviewAssignment.review_phase == review_phase,
        )
    ).scalar_one_or_none()
    if existing is not None:
        existing.mode = mode
        existing.access_expires_at = access_expires_at
        existing.assigned_at = now
        if not preserve_origin:
            existing.access_starts_at = access_starts_at
            existing.assigned_by_id = assigned_by_id
        db.flush()
        return existing, False

    assignment = ReviewAssignment(
        project_id=project_id,
        faculty_id=faculty_id,
        review_phase=review_phase,
        mode=mode,
        access_starts_at=access_starts_at,
        access_expires_at=access_expires_at,
        assigned_by_id=assigned_by_id,
        assigned_at=now,
    )
    db.add(assignment)
    db.flush()
    return assignment, True


def _isolated_upsert(db: Session, **values) -> bool:
    """Upsert inside a savepoint, retrying once if a concurrent insert won the race.

    Returns whether a row was created. Errors from the retry propagate.
    """
    try:
        with db.begin_nested():
            _, created = upsert_assignment(db, **values)
    except IntegrityError:
        with db.begin_nested():
            _, created = upsert_assignment(db, **values)
    return created


def _validate_faculty(db: Session, faculty_ids: list[str]) -> None:
    found = {
        user.id: user
        for user in db.execute(select(User).where(User.id.in_(faculty_ids))).scalars()
    }
    for faculty_id in faculty_ids:
        user = found.get(faculty_id)
        if user is None:
            raise ResourceNotFoundError("Faculty", faculty_id)
        if user.role != UserRole.faculty:
            raise InvalidRequestError(
                "Invalid faculty member",
                details={"faculty_id": faculty_id, "role": user.role.value},
            )


def _validate_phase(db: Session, scope_id: str | None, review_phase: int) -> None:
    if review_phase < 1:
        raise InvalidRequestError("Review phase must be a positive integer")
    if scope_id is None:
        return
    scope = db.get(Scope, scope_id)
    if scope is None:
        raise ResourceNotFoundError("Scope", scope_id)
    if review_phase > scope.number_of_phases:
        raise InvalidRequestError(
            f"Scope {scope.name} only has {scope.number_of_phases} review phases",
            details={"review_phase": review_phase, "number_of_phases": scope.number_of_phases},
        )


def _first_pending_request(db: Session, team_id: str) -> str | None:
    return db.execute(
        select(ProjectRequest.project_id)
        .where(ProjectRequest.team_id == team_id, ProjectRequest.status == ProjectRequestStatus.pending)
        .order_by(ProjectRequest.requested_at, ProjectRequest.id)
        .limit(1)
    ).scalar_one_or_none()


def _member_ids(db: Session, team_id: str) -> list[str]:
    return list(db.execute(select(TeamMember.user_id).where(TeamMember.team_id == team_id)).scalars())


def _team_for_project(db: Session, project_id: str) -> Team | None:
    team = db.execute(
        select(Team).where(Team.project_id == project_id).order_by(Team.created_at, Team.id).limit(1)
    ).scalar_one_or_none()
    if team is not None:
        return team
    return db.execute(
        select(Team)
        .join(ProjectRequest, ProjectRequest.team_id == Team.id)
        .where(ProjectRequest.project_id == project_id, ProjectRequest.status == ProjectRequestStatus.pending)
        .order_by(ProjectRequest.requested_at, Team.id)
        .limit(1)
    ).scalar_one_or_none()


def resolve_targets(
    db: Session,
    result: AllocationResult,
    *,
    project_ids: list[str],
    team_ids: list[str],
    roll_numbers: list[str],
) -> list[AllocationTarget]:
    targets: dict[str, AllocationTarget] = {}

    for project_id in project_ids:
        if db.get(Project, project_id) is None:
            raise ResourceNotFoundError("Project", project_id)
        team = _team_for_project(db, project_id)
        targets.setdefault(
            project_id,
            AllocationTarget(
                project_id=project_id,
                team_id=team.id if team else None,
                member_ids=_member_ids(db, team.id) if team else [],
            ),
        )

    for team_id in team_ids:
        team = db.get(Team, team_id)
        if team is None:
            raise ResourceNotFoundError("Team", team_id)
    if roll_numbers:
        rows = db.execute(
            select(User.roll_number, TeamMember.team_id)
            .join(TeamMember, TeamMember.user_id == User.id)
            .where(User.roll_number.in_(roll_numbers))
        ).all()
        team_by_roll = {roll: team_id for roll, team_id in rows}
        for roll_number in roll_numbers:
            if roll_number not in team_by_roll:
                result.skip(roll_number, "no team found for roll number")
        team_ids = _unique([*team_ids, *(team_by_roll[roll] for roll in roll_numbers if roll in team_by_roll)])

    for team_id in team_ids:
        team = db.get(Team, team_id)
        project_id = team.project_id or _first_pending_request(db, team.id)
        if project_id is None:
            result.skip(team.id, "team has no assigned project or pending project request")
            continue
        targets.setdefault(
            project_id,
            AllocationTarget(project_id=project_id, team_id=team.id, member_ids=_member_ids(db, team.id)),
        )

    return list(targets.values())


def venue_faculty_for_members(
    db: Session,
    member_ids: list[str],
    *,
    scope_id: str | None,
    window_start: datetime,
    window_end: datetime,
) -> str | None:
    """Faculty of the earliest session in the window that seats any of ``member_ids``."""
    if not member_ids:
        return None
    stmt = (
        select(LabSession.faculty_id)
        .join(LabSessionStudent, LabSessionStudent.session_id == LabSession.id)
        .where(
            LabSessionStudent.student_id.in_(member_ids),
            LabSession.start_time < window_end,
            LabSession.end_time > window_start,
        )
        .order_by(LabSession.start_time, LabSession.id)
        .limit(1)
    )
    if scope_id:
        stmt = stmt.where(LabSession.scope_id == scope_id)
    return db.execute(stmt).scalar_one_or_none()


def allocate(
    db: Session,
    *,
    review_phase: int,
    now: datetime,
    project_ids: list[str] | None = None,
    team_ids: list[str] | None = None,
    roll_numbers: list[str] | None = None,
    faculty_ids: list[str] | None = None,
    use_venue_faculty: bool = False,
    mode: ReviewMode = ReviewMode.offline,
    access_starts_at: datetime | None = None,
    duration_hours: float = 0,
    distribute_evenly: bool = False,
    scope_id: str | None = None,
    session_date: date | None = None,
    assigned_by_id: str | None = None,
) -> AllocationResult:
    project_ids = _unique(project_ids)
    team_ids = _unique(team_ids)
    roll_numbers = _unique(item.strip() for item in roll_numbers or [])
    faculty_ids = _unique(faculty_ids)

    if not (project_ids or team_ids or roll_numbers):
        raise InvalidRequestError("Select at least one project or team")
    if not use_venue_faculty and not faculty_ids:
        raise InvalidRequestError("Select faculty members or enable venue-based assignment")
    if duration_hours < 0:
        raise InvalidRequestError("Access duration cannot be negative")
    _validate_phase(db, scope_id, review_phase)
    if not use_venue_faculty:
        _validate_faculty(db, faculty_ids)

    result = AllocationResult()
    targets = resolve_targets(
        db, result, project_ids=project_ids, team_ids=team_ids, roll_numbers=roll_numbers
    )

    starts_at = to_college_local(access_starts_at) if access_starts_at else now
    expires_at = access_expiry(starts_at, duration_hours)

    if use_venue_faculty:
        window_start, window_end = day_bounds(session_date or starts_at.date())
        pairs = []
        for target in targets:
            faculty_id = venue_faculty_for_members(
                db,
                target.member_ids,
                scope_id=scope_id,
                window_start=window_start,
                window_end=window_end,
            )
            if faculty_id is None:
                result.skip(target.team_id or target.project_id, "no scheduled lab session for team")
                continue
            pairs.append((target.project_id, faculty_id))
    elif distribute_evenly:
        pairs = round_robin_pairs([target.project_id for target in targets], faculty_ids)
    else:
        pairs = cross_pairs([target.project_id for target in targets], faculty_ids)

    for project_id, faculty_id in pairs:
        try:
            created = _isolated_upsert(
                db,
                project_id=project_id,
                faculty_id=faculty_id,
                review_phase=review_phase,
                mode=mode,
                access_starts_at=starts_at,
                access_expires_at=expires_at,
                assigned_by_id=assigned_by_id,
                now=now,
            )
        except SQLAlchemyError:
            logger.exception("Failed to assign faculty %s to project %s", faculty_id, project_id)
            result.skip(f"{project_id}:{faculty_id}", "persistence error")
            continue
        if created:
            result.created += 1
        else:
            result.updated += 1

    log_activity(
        db,
        actor_id=assigned_by_id,
        action="review_assignment.allocate",
        entity_type="review_assignment",
        details={
            "review_phase": review_phase,
            "created": result.created,
            "updated": result.updated,
            "skipped": len(result.skipped),
            "use_venue_faculty": use_venue_faculty,
            "distribute_evenly": distribute_evenly,
        },
    )
    return result


def assign_faculty(
    db: Session,
    *,
    project_id: str,
    faculty_id: str,
    review_phase: int,
    now: datetime,
    mode: ReviewMode = ReviewMode.offline,
    access_starts_at: datetime | None = None,
    duration_hours: float = 0,
    assigned_by_id: str | None = None,
) -> ReviewAssignment:
    if review_phase < 1:
        raise InvalidRequestError("Review phase must be a positive integer")
    if db.get(Project, project_id) is None:
        raise ResourceNotFoundError("Project", project_id)
    _validate_faculty(db, [faculty_id])
    starts_at = to_college_local(access_starts_at) if access_starts_at else now
    assignment, _ = upsert_assignment(
        db,
        project_id=project_id,
        faculty_id=faculty_id,
        review_phase=review_phase,
        mode=mode,
        access_starts_at=starts_at,
        access_expires_at=access_expiry(starts_at, duration_hours),
        assigned_by_id=assigned_by_id,
        now=now,
    )
    return assignment


def update_access(
    db: Session,
    assignment_id: str,
    *,
    duration_hours: float,
    now: datetime,
    access_starts_at: datetime | None = None,
) -> ReviewAssignment:
    assignment = db.get(ReviewAssignment, assignment_id)
    if assignment is None:
        raise ResourceNotFoundError("Review assignment", assignment_id)
    if access_starts_at is not None:
        assignment.access_starts_at = to_college_local(access_starts_at)
    start = assignment.access_starts_at or now
    assignment.access_expires_at = access_expiry(start, duration_hours)
    db.flush()
    return assignment


def bulk_unassign(db: Session, assignment_ids: list[str], *, actor_id: str | None = None) -> int:
    assignment_ids = _unique(assignment_ids)
    if not assignment_ids:
        raise InvalidRequestError("Select at least one assignment")
    deleted = db.execute(
        delete(ReviewAssignment).where(ReviewAssignment.id.in_(assignment_ids))
    ).rowcount
    log_activity(
        db,
        actor_id=actor_id,
        action="review_assignment.bulk_unassign",
        entity_type="review_assignment",
        details={"requested": len(assignment_ids), "deleted": deleted},
    )
    return deleted


def bulk_update_access(
    db: Session,
    assignment_ids: list[str],
    *,
    duration_hours: float,
    now: datetime,
    access_starts_at: datetime | None = None,
    actor_id: str | None = None,
) -> int:
    assignment_ids = _unique(assignment_ids)
    if not assignment_ids:
        raise InvalidRequestError("Select at least one assignment")
    if duration_hours < 0:
        raise InvalidRequestError("Access duration cannot be negative")
    starts_at = to_college_local(access_starts_at) if access_starts_at else None
    values: dict = {"access_expires_at": access_expiry(starts_at or now, duration_hours)}
    if starts_at is not None:
        values["access_starts_at"] = starts_at
    updated = db.execute(
        update(ReviewAssignment)
        .where(ReviewAssignment.id.in_(assignment_ids))
        .values(**values)
        .execution_options(synchronize_session="fetch")
    ).rowcount
    log_activity(
        db,
        actor_id=actor_id,
        action="review_assignment.bulk_update_access",
        entity_type="review_assignment",
        details={"requested": len(assignment_ids), "updated": updated, "duration_hours": duration_hours},
    )
    return updated


def release_guide_reviews(
    db: Session,
    *,
    scope_id: str,
    review_phase: int,
    now: datetime,
    duration_hours: float = 0,
    access_starts_at: datetime | None = None,
    assigned_by_id: str | None = None,
) -> AllocationResult:
    """Give every guided team's guide review access for ``review_phase``."""
    _validate_phase(db, scope_id, review_phase)
    rows = db.execute(
        select(Team.project_id, Team.guide_id)
        .join(Project, Project.id == Team.project_id)
        .where(Project.scope_id == scope_id, Team.guide_id.is_not(None))
        .order_by(Team.created_at, Team.id)
    ).all()
    if not rows:
        raise ResourceNotFoundError("Guided teams for scope", scope_id)

    starts_at = to_college_local(access_starts_at) if access_starts_at else now
    expires_at = access_expiry(starts_at, duration_hours)
    result = AllocationResult()
    for project_id, guide_id in rows:
        _, created = upsert_assignment(
            db,
            project_id=project_id,
            faculty_id=guide_id,
            review_phase=review_phase,
            mode=ReviewMode.offline,
            access_starts_at=starts_at,
            access_expires_at=expires_at,
            assigned_by_id=assigned_by_id,
            now=now,
        )
        if created:
            result.created += 1
        else:
            result.updated += 1
    return result


def remediate_sunday_expirations(db: Session) -> int:
    assignments = db.execute(
        select(ReviewAssignment).where(ReviewAssignment.access_expires_at.is_not(None))
    ).scalars()
    updated = 0
    for assignment in assignments:
        corrected = correct_sunday_expiry(assignment.access_expires_at)
        if corrected == assignment.access_expires_at:
            continue
        logger.info(
            "Moving Sunday expiry of assignment %s from %s to %s",
            assignment.id,
            assignment.access_expires_at.isoformat(),
            corrected.isoformat(),
        )
        assignment.access_expires_at = corrected
        updated += 1
    db.flush()
    return updated
