from pydantic import BaseModel

from app.models.team import TeamStatus


class TeamMemberOut(BaseModel):
    id: str
    name: str
    roll_number: str | None

    model_config = {"from_attributes": True}


class TeamProjectOut(BaseModel):
    id: str
    title: str
    category: str

    model_config = {"from_attributes": True}


class EligibleTeamOut(BaseModel):
    id: str
    status: TeamStatus
    project_id: str | None
    target_project_id: str | None
    project: TeamProjectOut | None
    members: list[TeamMemberOut]
    pending_project_ids: list[str]


class TeamStatusUpdate(BaseModel):
    status: TeamStatus


class TeamOut(BaseModel):
    id: str
    project_id: str | None
    scope_id: str | None
    guide_id: str | None
    status: TeamStatus
    submission_phase: int

    model_config = {"from_attributes": True}
