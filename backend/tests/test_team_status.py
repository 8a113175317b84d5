from datetime import timedelta

import pytest
from sqlalchemy import select

from app.core.exceptions import ConflictError, ResourceNotFoundError
from app.models.project import ProjectStatus
from app.models.review import ReviewStatus
from app.models.team import TeamMember, TeamStatus
from app.services.team_status import TEAM_STATUS_TRANSITIONS, can_transition, update_team_status
from conftest import NOW


def test_every_status_has_a_transition_entry():
    assert set(TEAM_STATUS_TRANSITIONS) == set(TeamStatus)


def test_transition_table():
    assert can_transition(TeamStatus.pending, TeamStatus.approved)
    assert not can_transition(TeamStatus.pending, TeamStatus.completed)
    assert can_transition(TeamStatus.ready_for_review, TeamStatus.completed)
    assert can_transition(TeamStatus.completed, TeamStatus.changes_required)
    assert not can_transition(TeamStatus.completed, TeamStatus.pending)
    assert can_transition(TeamStatus.in_progress, TeamStatus.in_progress)


def test_illegal_transition_is_a_conflict(db, factory):
    team = factory.team(status=TeamStatus.pending)
    with pytest.raises(ConflictError) as excinfo:
        update_team_status(db, team.id, TeamStatus.completed, now=NOW)
    assert excinfo.value.status_code == 409
    assert excinfo.value.details["allowed"] == ["approved"]
    assert team.status == TeamStatus.pending


def test_unknown_team_is_not_found(db):
    with pytest.raises(ResourceNotFoundError):
        update_team_status(db, "missing", TeamStatus.approved, now=NOW)


def test_approval_approves_members(db, factory):
    team = factory.team(members=[factory.user(), factory.user()], status=TeamStatus.pending)
    db.query(TeamMember).update({TeamMember.approved: False})

    update_team_status(db, team.id, TeamStatus.approved, now=NOW)

    db.expire_all()
    approvals = db.execute(select(TeamMember.approved).where(TeamMember.team_id == team.id)).scalars().all()
    assert approvals == [True, True]


def test_reset_cancels_open_reviews(db, factory):
    team = factory.team(members=[factory.user()], project=factory.project(), status=TeamStatus.ready_for_review)
    open_review = factory.review(team, factory.faculty(), phase=1)
    done_review = factory.review(team, factory.faculty(), phase=1, status=ReviewStatus.completed)

    update_team_status(db, team.id, TeamStatus.in_progress, now=NOW)

    db.expire_all()
    assert open_review.status == ReviewStatus.not_completed
    assert done_review.status == ReviewStatus.completed


def test_changes_required_extends_latest_phase_access(db, factory):
    project = factory.project()
    team = factory.team(members=[factory.user()], project=project, status=TeamStatus.ready_for_review)
    faculty = factory.faculty()
    factory.review(team, faculty, phase=1, status=ReviewStatus.completed, scheduled_at=NOW - timedelta(days=9))
    factory.review(team, faculty, phase=2, status=ReviewStatus.completed, scheduled_at=NOW - timedelta(days=1))
    phase_one = factory.assignment(project, faculty, phase=1, expires_at=NOW - timedelta(days=8))
    phase_two = factory.assignment(project, faculty, phase=2, expires_at=NOW - timedelta(hours=1))

    update_team_status(db, team.id, TeamStatus.changes_required, now=NOW)

    db.expire_all()
    assert phase_two.access_expires_at == NOW + timedelta(hours=24)
    assert phase_one.access_expires_at == NOW - timedelta(days=8)


def test_completion_marks_project_completed(db, factory):
    project = factory.project()
    team = factory.team(members=[factory.user()], project=project, status=TeamStatus.ready_for_review)

    update_team_status(db, team.id, TeamStatus.completed, now=NOW)

    assert team.status == TeamStatus.completed
    assert project.status == ProjectStatus.completed
