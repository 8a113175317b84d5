from datetime import date, datetime

from pydantic import BaseModel, Field, model_validator

from app.models.review_assignment import ReviewMode


class AllocationRequest(BaseModel):
    project_ids: list[str] = Field(default_factory=list, max_length=5000)
    team_ids: list[str] = Field(default_factory=list, max_length=5000)
    roll_numbers: list[str] = Field(default_factory=list, max_length=5000)
    faculty_ids: list[str] = Field(default_factory=list, max_length=1000)
    use_venue_faculty: bool = False
    scope_id: str | None = None
    session_date: date | None = None
    review_phase: int = Field(default=1, ge=1)
    mode: ReviewMode = ReviewMode.offline
    access_starts_at: datetime | None = None
    access_duration_hours: float = Field(default=0, ge=0)
    distribute_evenly: bool = False

    @model_validator(mode="after")
    def validate_targets(self) -> "AllocationRequest":
        if not (self.project_ids or self.team_ids or self.roll_numbers):
            raise ValueError("Select at least one project or team")
        if not self.use_venue_faculty and not self.faculty_ids:
            raise ValueError("Select faculty members or enable venue-based assignment")
        return self


class SkippedItemOut(BaseModel):
    reference: str
    reason: str


class AllocationResponse(BaseModel):
    created: int
    updated: int
    skipped: list[SkippedItemOut]


class AssignFacultyRequest(BaseModel):
    project_id: str
    faculty_id: str
    review_phase: int = Field(default=1, ge=1)
    mode: ReviewMode = ReviewMode.offline
    access_starts_at: datetime | None = None
    access_duration_hours: float = Field(default=0, ge=0)


class ReviewAssignmentOut(BaseModel):
    id: str
    project_id: str
    faculty_id: str
    review_phase: int
    mode: ReviewMode
    access_starts_at: datetime | None
    access_expires_at: datetime | None
    assigned_by_id: str | None
    assigned_at: datetime | None

    model_config = {"from_attributes": True}


class UpdateAccessRequest(BaseModel):
    access_duration_hours: float = Field(ge=0)
    access_starts_at: datetime | None = None


class BulkUnassignRequest(BaseModel):
    assignment_ids: list[str] = Field(min_length=1, max_length=5000)


class BulkUnassignResponse(BaseModel):
    deleted_count: int


class BulkUpdateAccessRequest(BaseModel):
    assignment_ids: list[str] = Field(min_length=1, max_length=5000)
    access_duration_hours: float = Field(ge=0)
    access_starts_at: datetime | None = None


class BulkUpdateAccessResponse(BaseModel):
    updated_count: int


class GuideReleaseRequest(BaseModel):
    scope_id: str
    review_phase: int = Field(ge=1)
    access_duration_hours: float = Field(default=0, ge=0)
    access_starts_at: datetime | None = None


class RemediationResponse(BaseModel):
    updated_count: int
