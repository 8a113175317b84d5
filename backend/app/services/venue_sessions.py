"""Lab session booking across venues and dates.

Sessions occupy the fixed college working window of their date. A student may
sit in several sessions; a faculty member may not run two overlapping ones.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
import logging

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, InvalidRequestError, ResourceNotFoundError
from app.models.project import Project
from app.models.scope import Scope, ScopeStudent
from app.models.team import Team, TeamMember
from app.models.user import User, UserRole
from app.models.venue import LabSession, LabSessionStudent, Venue
from app.services.audit import log_activity
from app.services.college_hours import day_bounds, working_window
from app.services.review_sync import sync_team_reviews_with_session

logger = logging.getLogger(__name__)


@dataclass
class SessionView:
    session: LabSession
    venue: Venue | None
    faculty: User | None
    students: list[User] = field(default_factory=list)


@dataclass
class CopyDayResult:
    sessions_copied: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


def _require(db: Session, model, resource_type: str, resource_id: str):
    record = db.get(model, resource_id)
    if record is None:
        raise ResourceNotFoundError(resource_type, resource_id)
    return record


def _require_faculty(db: Session, faculty_id: str) -> User:
    user = _require(db, User, "Faculty", faculty_id)
    if user.role != UserRole.faculty:
        raise InvalidRequestError("Invalid faculty member", details={"faculty_id": faculty_id})
    return user


def _require_students(db: Session, student_ids: list[str]) -> list[str]:
    unique_ids = list(dict.fromkeys(student_ids))
    if not unique_ids:
        return []
    found = set(
        db.execute(
            select(User.id).where(User.id.in_(unique_ids), User.role == UserRole.student)
        ).scalars()
    )
    for student_id in unique_ids:
        if student_id not in found:
            raise ResourceNotFoundError("Student", student_id)
    return unique_ids


def session_student_ids(db: Session, session_id: str) -> list[str]:
    return list(
        db.execute(
            select(LabSessionStudent.student_id).where(LabSessionStudent.session_id == session_id)
        ).scalars()
    )


def faculty_busy(
    db: Session,
    faculty_id: str,
    start: datetime,
    end: datetime,
    *,
    exclude_session_id: str | None = None,
) -> bool:
    stmt = select(LabSession.id).where(
        LabSession.faculty_id == faculty_id,
        LabSession.start_time < end,
        LabSession.end_time > start,
    )
    if exclude_session_id is not None:
        stmt = stmt.where(LabSession.id != exclude_session_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none() is not None


def _set_students(db: Session, session_id: str, student_ids: list[str]) -> None:
    db.execute(delete(LabSessionStudent).where(LabSessionStudent.session_id == session_id))
    for student_id in student_ids:
        db.add(LabSessionStudent(session_id=session_id, student_id=student_id))


def create_session(
    db: Session,
    *,
    venue_id: str,
    faculty_id: str,
    scope_id: str,
    session_date: date,
    student_ids: list[str] | None = None,
    title: str | None = None,
    actor_id: str | None = None,
) -> LabSession:
    _require(db, Venue, "Venue", venue_id)
    _require(db, Scope, "Scope", scope_id)
    _require_faculty(db, faculty_id)
    students = _require_students(db, student_ids or [])

    start, end = working_window(session_date)
    if faculty_busy(db, faculty_id, start, end):
        raise ConflictError("Faculty is already busy at this time", details={"faculty_id": faculty_id})

    session = LabSession(
        venue_id=venue_id,
        faculty_id=faculty_id,
        scope_id=scope_id,
        title=title,
        start_time=start,
        end_time=end,
    )
    db.add(session)
    db.flush()
    _set_students(db, session.id, students)
    log_activity(
        db,
        actor_id=actor_id,
        action="lab_session.create",
        entity_type="lab_session",
        entity_id=session.id,
        details={"venue_id": venue_id, "faculty_id": faculty_id, "students": len(students)},
    )
    db.flush()
    return session


def update_session(
    db: Session,
    session_id: str,
    *,
    now: datetime,
    faculty_id: str | None = None,
    student_ids: list[str] | None = None,
    actor_id: str | None = None,
) -> LabSession:
    """Replace a session's faculty and/or students; venue and window stay fixed."""
    session = _require(db, LabSession, "Lab session", session_id)

    if faculty_id and faculty_id != session.faculty_id:
        _require_faculty(db, faculty_id)
        if faculty_busy(db, faculty_id, session.start_time, session.end_time, exclude_session_id=session.id):
            raise ConflictError("Faculty is already busy at this time", details={"faculty_id": faculty_id})
        session.faculty_id = faculty_id

    if student_ids is not None:
        _set_students(db, session.id, _require_students(db, student_ids))
    db.flush()

    if faculty_id or student_ids is not None:
        affected = session_student_ids(db, session.id)
        sync_team_reviews_with_session(db, affected, session.faculty_id, now, actor_id)

    log_activity(
        db,
        actor_id=actor_id,
        action="lab_session.update",
        entity_type="lab_session",
        entity_id=session.id,
        details={"faculty_id": session.faculty_id, "students_replaced": student_ids is not None},
    )
    db.flush()
    return session


def delete_session(db: Session, session_id: str, *, actor_id: str | None = None) -> None:
    session = _require(db, LabSession, "Lab session", session_id)
    db.execute(delete(LabSessionStudent).where(LabSessionStudent.session_id == session.id))
    log_activity(
        db,
        actor_id=actor_id,
        action="lab_session.delete",
        entity_type="lab_session",
        entity_id=session.id,
        details={"venue_id": session.venue_id, "faculty_id": session.faculty_id},
    )
    db.delete(session)
    db.flush()


def sessions_on(db: Session, day: date, *, scope_id: str | None = None) -> list[LabSession]:
    start, end = day_bounds(day)
    stmt = (
        select(LabSession)
        .where(LabSession.start_time < end, LabSession.end_time > start)
        .order_by(LabSession.start_time, LabSession.id)
    )
    if scope_id:
        stmt = stmt.where(LabSession.scope_id == scope_id)
    return list(db.execute(stmt).scalars())


def copy_day(
    db: Session,
    from_date: date,
    to_date: date,
    *,
    scope_id: str | None = None,
    actor_id: str | None = None,
) -> CopyDayResult:
    """Replicate ``from_date``'s sessions onto ``to_date`` at the same time of day.

    A source session is skipped when ``to_date`` already holds a session for the
    same venue and faculty, or when its faculty is busy in the target window, so
    repeating a copy creates nothing new.
    """
    day_start = day_bounds(from_date)[0]
    source = [
        session for session in sessions_on(db, from_date, scope_id=scope_id)
        if session.start_time >= day_start
    ]
    if not source:
        raise ResourceNotFoundError("Lab sessions on date", from_date.isoformat())

    target_start, target_end = day_bounds(to_date)
    result = CopyDayResult()
    for session in source:
        new_start = datetime.combine(to_date, session.start_time.time())
        new_end = datetime.combine(to_date, session.end_time.time())

        duplicate = db.execute(
            select(LabSession.id).where(
                LabSession.venue_id == session.venue_id,
                LabSession.faculty_id == session.faculty_id,
                LabSession.start_time >= target_start,
                LabSession.start_time < target_end,
            ).limit(1)
        ).scalar_one_or_none()
        if duplicate is not None or faculty_busy(db, session.faculty_id, new_start, new_end):
            result.skipped += 1
            continue

        try:
            with db.begin_nested():
                copy = LabSession(
                    venue_id=session.venue_id,
                    faculty_id=session.faculty_id,
                    scope_id=session.scope_id,
                    title=session.title,
                    start_time=new_start,
                    end_time=new_end,
                )
                db.add(copy)
                db.flush()
                _set_students(db, copy.id, session_student_ids(db, session.id))
                db.flush()
        except SQLAlchemyError:
            logger.exception("Failed to copy lab session %s to %s", session.id, to_date.isoformat())
            result.errors.append(session.id)
            continue
        result.sessions_copied += 1

    log_activity(
        db,
        actor_id=actor_id,
        action="lab_session.copy_day",
        entity_type="lab_session",
        details={
            "from_date": from_date.isoformat(),
            "to_date": to_date.isoformat(),
            "copied": result.sessions_copied,
            "skipped": result.skipped,
        },
    )
    return result


def swap_venues(
    db: Session,
    venue_a_id: str,
    venue_b_id: str,
    day: date,
    *,
    actor_id: str | None = None,
) -> bool:
    """Exchange the two venues' sessions starting on ``day``."""
    _require(db, Venue, "Venue", venue_a_id)
    if venue_a_id == venue_b_id:
        return True
    _require(db, Venue, "Venue", venue_b_id)

    start, end = day_bounds(day)

    def session_ids(venue_id: str) -> list[str]:
        return list(
            db.execute(
                select(LabSession.id).where(
                    LabSession.venue_id == venue_id,
                    LabSession.start_time >= start,
                    LabSession.start_time < end,
                )
            ).scalars()
        )

    # Collect both sides before moving anything so no session moves twice.
    sessions_a = session_ids(venue_a_id)
    sessions_b = session_ids(venue_b_id)
    for ids, target in ((sessions_a, venue_b_id), (sessions_b, venue_a_id)):
        if ids:
            db.execute(
                update(LabSession)
                .where(LabSession.id.in_(ids))
                .values(venue_id=target)
                .execution_options(synchronize_session="fetch")
            )

    log_activity(
        db,
        actor_id=actor_id,
        action="lab_session.swap_venues",
        entity_type="venue",
        details={"venue_a_id": venue_a_id, "venue_b_id": venue_b_id, "date": day.isoformat()},
    )
    db.flush()
    return True


def _student_project(db: Session, student_ids: list[str]) -> dict[str, Project | None]:
    rows = db.execute(
        select(TeamMember.user_id, Project)
        .join(Team, Team.id == TeamMember.team_id)
        .outerjoin(Project, Project.id == Team.project_id)
        .where(TeamMember.user_id.in_(student_ids))
        .order_by(Team.created_at, Team.id)
    ).all()
    projects: dict[str, Project | None] = {}
    for user_id, project in rows:
        projects.setdefault(user_id, project)
    return projects


def unscheduled_students(db: Session, day: date, scope_id: str) -> list[dict]:
    """Students of ``scope_id`` who sit in no session overlapping ``day``."""
    _require(db, Scope, "Scope", scope_id)
    students = list(
        db.execute(
            select(User)
            .join(ScopeStudent, ScopeStudent.student_id == User.id)
            .where(ScopeStudent.scope_id == scope_id, User.role == UserRole.student)
            .order_by(User.roll_number, User.name)
        ).scalars()
    )

    start, end = day_bounds(day)
    scheduled = set(
        db.execute(
            select(LabSessionStudent.student_id)
            .join(LabSession, LabSession.id == LabSessionStudent.session_id)
            .where(LabSession.start_time < end, LabSession.end_time > start)
        ).scalars()
    )

    remaining = [student for student in students if student.id not in scheduled]
    projects = _student_project(db, [student.id for student in remaining]) if remaining else {}
    response = []
    for student in remaining:
        project = projects.get(student.id)
        response.append(
            {
                "id": student.id,
                "name": student.name,
                "roll_number": student.roll_number,
                "email": student.email,
                "project_title": project.title if project else "No Project",
                "project_category": project.category if project else "N/A",
            }
        )
    return response


def scheduled_students(db: Session, day: date, scope_id: str | None = None) -> list[dict]:
    """Every student seated on ``day``, with the first session they appear in."""
    sessions = sessions_on(db, day, scope_id=scope_id)
    if not sessions:
        return []
    views = load_session_views(db, sessions)
    seen: set[str] = set()
    response = []
    for view in views:
        for student in view.students:
            if student.id in seen:
                continue
            seen.add(student.id)
            response.append(
                {
                    "id": student.id,
                    "name": student.name,
                    "roll_number": student.roll_number,
                    "session_id": view.session.id,
                    "venue_id": view.session.venue_id,
                    "venue_name": view.venue.name if view.venue else None,
                    "faculty_id": view.session.faculty_id,
                    "faculty_name": view.faculty.name if view.faculty else None,
                    "start_time": view.session.start_time,
                    "end_time": view.session.end_time,
                }
            )
    return response


def load_session_views(db: Session, sessions: list[LabSession]) -> list[SessionView]:
    if not sessions:
        return []
    session_ids = [session.id for session in sessions]
    venue_ids = {session.venue_id for session in sessions}
    faculty_ids = {session.faculty_id for session in sessions}

    venues = {venue.id: venue for venue in db.execute(select(Venue).where(Venue.id.in_(venue_ids))).scalars()}
    faculty = {user.id: user for user in db.execute(select(User).where(User.id.in_(faculty_ids))).scalars()}
    students: dict[str, list[User]] = defaultdict(list)
    for session_id, user in db.execute(
        select(LabSessionStudent.session_id, User)
        .join(User, User.id == LabSessionStudent.student_id)
        .where(LabSessionStudent.session_id.in_(session_ids))
        .order_by(User.roll_number, User.name)
    ).all():
        students[session_id].append(user)

    return [
        SessionView(
            session=session,
            venue=venues.get(session.venue_id),
            faculty=faculty.get(session.faculty_id),
            students=students.get(session.id, []),
        )
        for session in sessions
    ]


def list_sessions(
    db: Session,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    venue_id: str | None = None,
    scope_id: str | None = None,
    search: str | None = None,
) -> list[SessionView]:
    stmt = select(LabSession).order_by(LabSession.start_time, LabSession.id)
    if venue_id:
        stmt = stmt.where(LabSession.venue_id == venue_id)
    if scope_id:
        stmt = stmt.where(LabSession.scope_id == scope_id)
    if start is not None and end is not None:
        stmt = stmt.where(LabSession.start_time >= start, LabSession.end_time <= end)

    term = (search or "").strip().lower()
    if term:
        pattern = f"%{term}%"
        matching_venues = select(Venue.id).where(
            or_(Venue.name.ilike(pattern), Venue.location.ilike(pattern))
        )
        matching_users = select(User.id).where(
            or_(User.name.ilike(pattern), User.email.ilike(pattern), User.roll_number.ilike(pattern))
        )
        seated = select(LabSessionStudent.session_id).where(LabSessionStudent.student_id.in_(matching_users))
        stmt = stmt.where(
            or_(
                LabSession.venue_id.in_(matching_venues),
                LabSession.faculty_id.in_(matching_users),
                LabSession.id.in_(seated),
            )
        )
    return load_session_views(db, list(db.execute(stmt).scalars()))
