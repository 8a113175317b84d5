from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, get_now, require_roles
from app.db.errors import persistence_errors
from app.models.review_assignment import ReviewAssignment
from app.models.user import User, UserRole
from app.schemas.assignment import (
    AllocationRequest,
    AllocationResponse,
    AssignFacultyRequest,
    BulkUnassignRequest,
    BulkUnassignResponse,
    BulkUpdateAccessRequest,
    BulkUpdateAccessResponse,
    GuideReleaseRequest,
    RemediationResponse,
    ReviewAssignmentOut,
    SkippedItemOut,
    UpdateAccessRequest,
)
from app.services.allocation import (
    AllocationResult,
    allocate,
    assign_faculty,
    bulk_unassign,
    bulk_update_access,
    release_guide_reviews,
    remediate_sunday_expirations,
    update_access,
)
from app.services.audit import log_activity

router = APIRouter()


def _allocation_response(result: AllocationResult) -> AllocationResponse:
    return AllocationResponse(
        created=result.created,
        updated=result.updated,
        skipped=[SkippedItemOut(reference=item.reference, reason=item.reason) for item in result.skipped],
    )


@router.get("/", response_model=list[ReviewAssignmentOut])
def list_assignments(
    project_id: str | None = Query(default=None),
    faculty_id: str | None = Query(default=None),
    review_phase: int | None = Query(default=None, ge=1),
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> list[ReviewAssignmentOut]:
    stmt = select(ReviewAssignment).order_by(ReviewAssignment.assigned_at.desc(), ReviewAssignment.id)
    if current_user.role == UserRole.faculty:
        faculty_id = current_user.id
    if project_id:
        stmt = stmt.where(ReviewAssignment.project_id == project_id)
    if faculty_id:
        stmt = stmt.where(ReviewAssignment.faculty_id == faculty_id)
    if review_phase is not None:
        stmt = stmt.where(ReviewAssignment.review_phase == review_phase)
    return list(db.execute(stmt).scalars())


@router.post("/allocate", response_model=AllocationResponse)
def allocate_reviews(
    payload: AllocationRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> AllocationResponse:
    result = allocate(
        db,
        review_phase=payload.review_phase,
        now=now,
        project_ids=payload.project_ids,
        team_ids=payload.team_ids,
        roll_numbers=payload.roll_numbers,
        faculty_ids=payload.faculty_ids,
        use_venue_faculty=payload.use_venue_faculty,
        mode=payload.mode,
        access_starts_at=payload.access_starts_at,
        duration_hours=payload.access_duration_hours,
        distribute_evenly=payload.distribute_evenly,
        scope_id=payload.scope_id,
        session_date=payload.session_date,
        assigned_by_id=current_user.id,
    )
    db.commit()
    return _allocation_response(result)


@router.post("/", response_model=ReviewAssignmentOut, status_code=status.HTTP_201_CREATED)
def create_assignment(
    payload: AssignFacultyRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ReviewAssignmentOut:
    with persistence_errors(db, "assign faculty"):
        assignment = assign_faculty(
            db,
            project_id=payload.project_id,
            faculty_id=payload.faculty_id,
            review_phase=payload.review_phase,
            now=now,
            mode=payload.mode,
            access_starts_at=payload.access_starts_at,
            duration_hours=payload.access_duration_hours,
            assigned_by_id=current_user.id,
        )
        log_activity(
            db,
            actor_id=current_user.id,
            action="review_assignment.assign",
            entity_type="review_assignment",
            entity_id=assignment.id,
            details={"project_id": payload.project_id, "faculty_id": payload.faculty_id},
        )
        db.commit()
    db.refresh(assignment)
    return assignment


@router.put("/{assignment_id}/access", response_model=ReviewAssignmentOut)
def update_assignment_access(
    assignment_id: str,
    payload: UpdateAccessRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> ReviewAssignmentOut:
    with persistence_errors(db, "update review access"):
        assignment = update_access(
            db,
            assignment_id,
            duration_hours=payload.access_duration_hours,
            now=now,
            access_starts_at=payload.access_starts_at,
        )
        db.commit()
    db.refresh(assignment)
    return assignment


@router.post("/bulk-unassign", response_model=BulkUnassignResponse)
def unassign_many(
    payload: BulkUnassignRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> BulkUnassignResponse:
    deleted = bulk_unassign(db, payload.assignment_ids, actor_id=current_user.id)
    db.commit()
    return BulkUnassignResponse(deleted_count=deleted)


@router.post("/bulk-update-access", response_model=BulkUpdateAccessResponse)
def update_access_many(
    payload: BulkUpdateAccessRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> BulkUpdateAccessResponse:
    updated = bulk_update_access(
        db,
        payload.assignment_ids,
        duration_hours=payload.access_duration_hours,
        now=now,
        access_starts_at=payload.access_starts_at,
        actor_id=current_user.id,
    )
    db.commit()
    return BulkUpdateAccessResponse(updated_count=updated)


@router.post("/release-guide-reviews", response_model=AllocationResponse)
def release_guide(
    payload: GuideReleaseRequest,
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
) -> AllocationResponse:
    result = release_guide_reviews(
        db,
        scope_id=payload.scope_id,
        review_phase=payload.review_phase,
        now=now,
        duration_hours=payload.access_duration_hours,
        access_starts_at=payload.access_starts_at,
        assigned_by_id=current_user.id,
    )
    log_activity(
        db,
        actor_id=current_user.id,
        action="review_assignment.release_guide",
        entity_type="scope",
        entity_id=payload.scope_id,
        details={"review_phase": payload.review_phase, "created": result.created, "updated": result.updated},
    )
    db.commit()
    return _allocation_response(result)


@router.post("/remediate-sunday-expirations", response_model=RemediationResponse)
def remediate_sunday(
    current_user: User = Depends(require_roles(UserRole.admin)),
    db: Session = Depends(get_db),
) -> RemediationResponse:
    updated = remediate_sunday_expirations(db)
    log_activity(
        db,
        actor_id=current_user.id,
        action="review_assignment.remediate_sunday",
        entity_type="review_assignment",
        details={"updated": updated},
    )
    db.commit()
    return RemediationResponse(updated_count=updated)


@router.get("/mine", response_model=list[ReviewAssignmentOut])
def my_assignments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ReviewAssignmentOut]:
    return list(
        db.execute(
            select(ReviewAssignment)
            .where(ReviewAssignment.faculty_id == current_user.id)
            .order_by(ReviewAssignment.review_phase, ReviewAssignment.id)
        ).scalars()
    )
