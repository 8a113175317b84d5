from datetime import date, datetime

from pydantic import BaseModel, Field


class VenueBase(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    capacity: int | None = Field(default=None, ge=1, le=1000)


class VenueCreate(VenueBase):
    pass


class VenueUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    location: str | None = Field(default=None, max_length=200)
    capacity: int | None = Field(default=None, ge=1, le=1000)


class VenueOut(VenueBase):
    id: str

    model_config = {"from_attributes": True}


class SessionPersonOut(BaseModel):
    id: str
    name: str
    email: str
    roll_number: str | None

    model_config = {"from_attributes": True}


class LabSessionCreate(BaseModel):
    venue_id: str
    faculty_id: str
    scope_id: str
    session_date: date
    title: str | None = Field(default=None, max_length=200)
    student_ids: list[str] = Field(default_factory=list, max_length=1000)


class LabSessionUpdate(BaseModel):
    faculty_id: str | None = None
    student_ids: list[str] | None = Field(default=None, max_length=1000)


class LabSessionOut(BaseModel):
    id: str
    venue_id: str
    faculty_id: str
    scope_id: str | None
    title: str | None
    start_time: datetime
    end_time: datetime
    venue: VenueOut | None = None
    faculty: SessionPersonOut | None = None
    students: list[SessionPersonOut] = Field(default_factory=list)


class CopyDayRequest(BaseModel):
    from_date: date
    to_date: date
    scope_id: str | None = None


class CopyDayResponse(BaseModel):
    sessions_copied: int
    skipped: int
    errors: list[str]


class SwapVenuesRequest(BaseModel):
    venue_a_id: str
    venue_b_id: str
    date: date


class SwapVenuesResponse(BaseModel):
    swapped: bool


class UnscheduledStudentOut(BaseModel):
    id: str
    name: str
    roll_number: str | None
    email: str
    project_title: str
    project_category: str


class ScheduledStudentOut(BaseModel):
    id: str
    name: str
    roll_number: str | None
    session_id: str
    venue_id: str
    venue_name: str | None
    faculty_id: str
    faculty_name: str | None
    start_time: datetime
    end_time: datetime
