from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_now, require_roles
from app.db.errors import persistence_errors
from app.models.user import User, UserRole
from app.models.venue import LabSession, Venue
from app.schemas.venue import (
    CopyDayRequest,
    CopyDayResponse,
    LabSessionCreate,
    LabSessionOut,
    LabSessionUpdate,
    ScheduledStudentOut,
    SessionPersonOut,
    SwapVenuesRequest,
    SwapVenuesResponse,
    UnscheduledStudentOut,
    VenueCreate,
    VenueOut,
    VenueUpdate,
)
from app.services.audit import log_activity
from app.services.college_hours import day_bounds
from app.services.venue_sessions import (
    SessionView,
    copy_day,
    create_session,
    delete_session,
    list_sessions,
    load_session_views,
    scheduled_students,
    swap_venues,
    unscheduled_students,
    update_session,
)

router = APIRouter()


def _session_out(view: SessionView) -> LabSessionOut:
    session = view.session
    return LabSessionOut(
        id=session.id,
        venue_id=session.venue_id,
        faculty_id=session.faculty_id,
        scope_id=session.scope_id,
        title=session.title,
        start_time=session.start_time,
        end_time=session.end_time,
        venue=VenueOut.model_validate(view.venue) if view.venue else None,
        faculty=SessionPersonOut.model_validate(view.faculty) if view.faculty else None,
        students=[SessionPersonOut.model_validate(student) for student in view.students],
    )


def _view(db: Session, session: LabSession) -> LabSessionOut:
    return _session_out(load_session_views(db, [session])[0])


@router.get("/", response_model=list[VenueOut])
def list_venues(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> list[VenueOut]:
    return list(db.execute(select(Venue).order_by(Venue.name)).scalars())


@router.post("/", response_model=VenueOut, status_code=status.HTTP_201_CREATED)
def create_venue(
    payload: VenueCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> VenueOut:
    existing = db.execute(select(Venue).where(Venue.name == payload.name)).scalar_one_or_none()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Venue name already exists")
    venue = Venue(**payload.model_dump())
    with persistence_errors(db, "create venue"):
        db.add(venue)
        db.flush()
        log_activity(db, actor_id=current_user.id, action="venue.create", entity_type="venue", entity_id=venue.id)
        db.commit()
    db.refresh(venue)
    return venue


@router.put("/{venue_id}", response_model=VenueOut)
def update_venue(
    venue_id: str,
    payload: VenueUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> VenueOut:
    venue = db.get(Venue, venue_id)
    if venue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")

    data = payload.model_dump(exclude_unset=True)
    if "name" in data:
        existing = db.execute(
            select(Venue).where(Venue.name == data["name"], Venue.id != venue_id)
        ).scalar_one_or_none()
        if existing:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Venue name already exists")

    for key, value in data.items():
        setattr(venue, key, value)
    if data:
        log_activity(
            db,
            actor_id=current_user.id,
            action="venue.update",
            entity_type="venue",
            entity_id=venue.id,
            details={"fields": sorted(data)},
        )
    with persistence_errors(db, "update venue"):
        db.commit()
    db.refresh(venue)
    return venue


@router.delete("/{venue_id}")
def delete_venue(
    venue_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    venue = db.get(Venue, venue_id)
    if venue is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Venue not found")
    in_use = db.execute(select(LabSession.id).where(LabSession.venue_id == venue_id).limit(1)).scalar_one_or_none()
    if in_use is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Venue still has lab sessions")
    with persistence_errors(db, "delete venue"):
        log_activity(db, actor_id=current_user.id, action="venue.delete", entity_type="venue", entity_id=venue.id)
        db.delete(venue)
        db.commit()
    return {"success": True}


@router.get("/sessions", response_model=list[LabSessionOut])
def get_sessions(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    venue_id: str | None = Query(default=None),
    scope_id: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[LabSessionOut]:
    start = end = None
    if start_date is not None:
        start = day_bounds(start_date)[0]
        end = day_bounds(end_date or start_date)[1]
    views = list_sessions(db, start=start, end=end, venue_id=venue_id, scope_id=scope_id, search=search)
    return [_session_out(view) for view in views]


@router.post("/sessions", response_model=LabSessionOut, status_code=status.HTTP_201_CREATED)
def add_session(
    payload: LabSessionCreate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> LabSessionOut:
    with persistence_errors(db, "create lab session"):
        session = create_session(
            db,
            venue_id=payload.venue_id,
            faculty_id=payload.faculty_id,
            scope_id=payload.scope_id,
            session_date=payload.session_date,
            student_ids=payload.student_ids,
            title=payload.title,
            actor_id=current_user.id,
        )
        db.commit()
    return _view(db, session)


@router.put("/sessions/{session_id}", response_model=LabSessionOut)
def edit_session(
    session_id: str,
    payload: LabSessionUpdate,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> LabSessionOut:
    with persistence_errors(db, "update lab session"):
        session = update_session(
            db,
            session_id,
            now=now,
            faculty_id=payload.faculty_id,
            student_ids=payload.student_ids,
            actor_id=current_user.id,
        )
        db.commit()
    return _view(db, session)


@router.delete("/sessions/{session_id}")
def remove_session(
    session_id: str,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> dict:
    with persistence_errors(db, "delete lab session"):
        delete_session(db, session_id, actor_id=current_user.id)
        db.commit()
    return {"success": True}


@router.post("/sessions/copy", response_model=CopyDayResponse)
def copy_sessions(
    payload: CopyDayRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> CopyDayResponse:
    result = copy_day(db, payload.from_date, payload.to_date, scope_id=payload.scope_id, actor_id=current_user.id)
    db.commit()
    return CopyDayResponse(sessions_copied=result.sessions_copied, skipped=result.skipped, errors=result.errors)


@router.post("/swap", response_model=SwapVenuesResponse)
def swap(
    payload: SwapVenuesRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> SwapVenuesResponse:
    swapped = swap_venues(db, payload.venue_a_id, payload.venue_b_id, payload.date, actor_id=current_user.id)
    db.commit()
    return SwapVenuesResponse(swapped=swapped)


@router.get("/unscheduled-students", response_model=list[UnscheduledStudentOut])
def get_unscheduled_students(
    day: date = Query(alias="date"),
    scope_id: str = Query(),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> list[UnscheduledStudentOut]:
    return [UnscheduledStudentOut(**item) for item in unscheduled_students(db, day, scope_id)]


@router.get("/scheduled-students", response_model=list[ScheduledStudentOut])
def get_scheduled_students(
    day: date = Query(alias="date"),
    scope_id: str | None = Query(default=None),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> list[ScheduledStudentOut]:
    return [ScheduledStudentOut(**item) for item in scheduled_students(db, day, scope_id)]
