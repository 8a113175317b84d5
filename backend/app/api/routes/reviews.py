from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_roles
from app.db.errors import persistence_errors
from app.models.review import ReviewMark
from app.models.user import User, UserRole
from app.schemas.review import CriterionMarks, ReviewMarkOut, ReviewMarkUpdate

router = APIRouter()


def _mark_out(mark: ReviewMark) -> ReviewMarkOut:
    return ReviewMarkOut(
        id=mark.id,
        review_id=mark.review_id,
        student_id=mark.student_id,
        marks=mark.marks,
        criterion_marks=CriterionMarks(criterion_scores=mark.criterion_scores or {}),
        is_absent=mark.is_absent,
    )


@router.get("/marks/{mark_id}", response_model=ReviewMarkOut)
def get_mark(
    mark_id: str,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> ReviewMarkOut:
    mark = db.get(ReviewMark, mark_id)
    if mark is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review mark not found")
    return _mark_out(mark)


@router.patch("/marks/{mark_id}", response_model=ReviewMarkOut)
def update_mark(
    mark_id: str,
    payload: ReviewMarkUpdate,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.faculty)),
    db: Session = Depends(get_db),
) -> ReviewMarkOut:
    mark = db.get(ReviewMark, mark_id)
    if mark is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Review mark not found")

    if payload.is_absent is not None:
        mark.is_absent = payload.is_absent
    if payload.marks is not None:
        mark.marks = payload.marks
    if payload.criterion_marks is not None:
        mark.criterion_scores = {
            name: item.model_dump() for name, item in payload.criterion_marks.criterion_scores.items()
        }
        mark.criterion_total = payload.criterion_marks.total
        if payload.marks is None:
            mark.marks = payload.criterion_marks.total
    if mark.is_absent:
        mark.marks = 0
    with persistence_errors(db, "save review marks"):
        db.commit()
    db.refresh(mark)
    return _mark_out(mark)
