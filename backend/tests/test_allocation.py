from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError

from app.core.exceptions import InvalidRequestError, ResourceNotFoundError
from app.models.project import ProjectRequest
from app.models.review_assignment import ReviewAssignment, ReviewMode
from app.models.team import TeamStatus
from app.services import allocation
from app.services.allocation import (
    allocate,
    assign_faculty,
    bulk_unassign,
    bulk_update_access,
    release_guide_reviews,
    remediate_sunday_expirations,
    round_robin_pairs,
    update_access,
)
from conftest import NOW


def _assignment_count(db) -> int:
    return db.execute(select(func.count()).select_from(ReviewAssignment)).scalar_one()


@pytest.mark.parametrize("projects,faculty", [(7, 3), (6, 3), (10, 4), (5, 5), (1, 1)])
def test_round_robin_is_balanced_and_covers_every_project(projects, faculty):
    project_ids = [f"p{i}" for i in range(projects)]
    faculty_ids = [f"f{i}" for i in range(faculty)]

    pairs = round_robin_pairs(project_ids, faculty_ids)

    loads = Counter(faculty_id for _, faculty_id in pairs)
    floor, ceil = projects // faculty, -(-projects // faculty)
    assert set(loads.values()) <= {floor, ceil}
    assert sorted(project_id for project_id, _ in pairs) == sorted(project_ids)
    assert len(pairs) == len(set(pairs))


def test_round_robin_remainder_goes_to_earlier_faculty():
    pairs = round_robin_pairs(["a", "b", "c", "d", "e"], ["x", "y", "z"])
    loads = Counter(faculty_id for _, faculty_id in pairs)
    assert loads == {"x": 2, "y": 2, "z": 1}


def test_allocate_cross_product_creates_one_row_per_pair(db, factory):
    scope = factory.scope()
    projects = [factory.project(scope) for _ in range(2)]
    faculty = [factory.faculty() for _ in range(2)]

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        project_ids=[project.id for project in projects],
        faculty_ids=[member.id for member in faculty],
        duration_hours=24,
    )

    assert (result.created, result.updated, result.skipped) == (4, 0, [])
    row = db.execute(select(ReviewAssignment).limit(1)).scalar_one()
    assert row.access_starts_at == NOW
    assert row.access_expires_at == NOW + timedelta(hours=24)


def test_allocating_the_same_pair_twice_updates_the_existing_row(db, factory):
    project = factory.project()
    faculty = factory.faculty()

    first = allocate(db, review_phase=2, now=NOW, project_ids=[project.id], faculty_ids=[faculty.id])
    later = NOW + timedelta(hours=2)
    second = allocate(
        db,
        review_phase=2,
        now=later,
        project_ids=[project.id],
        faculty_ids=[faculty.id],
        mode=ReviewMode.online,
        duration_hours=5,
    )

    assert (first.created, first.updated) == (1, 0)
    assert (second.created, second.updated) == (0, 1)
    assert _assignment_count(db) == 1
    row = db.execute(select(ReviewAssignment)).scalar_one()
    assert row.mode == ReviewMode.online
    assert row.access_expires_at == later + timedelta(hours=5)


def test_distribute_evenly_spreads_projects(db, factory):
    projects = [factory.project() for _ in range(5)]
    faculty = [factory.faculty() for _ in range(2)]

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        project_ids=[project.id for project in projects],
        faculty_ids=[member.id for member in faculty],
        distribute_evenly=True,
    )

    assert result.created == 5
    loads = Counter(db.execute(select(ReviewAssignment.faculty_id)).scalars())
    assert loads == {faculty[0].id: 3, faculty[1].id: 2}


def test_team_targets_resolve_to_project_or_pending_request(db, factory):
    assigned = factory.project()
    requested = factory.project()
    team_with_project = factory.team(members=[factory.user()], project=assigned)
    team_with_request = factory.team(members=[factory.user()], status=TeamStatus.pending)
    db.add(ProjectRequest(team_id=team_with_request.id, project_id=requested.id))
    team_without_project = factory.team(members=[factory.user()], status=TeamStatus.pending)
    faculty = factory.faculty()
    db.flush()

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        team_ids=[team_with_project.id, team_with_request.id, team_without_project.id],
        faculty_ids=[faculty.id],
    )

    assert result.created == 2
    assert [item.reference for item in result.skipped] == [team_without_project.id]
    assert set(db.execute(select(ReviewAssignment.project_id)).scalars()) == {assigned.id, requested.id}


def test_roll_numbers_resolve_through_team_membership(db, factory):
    project = factory.project()
    student = factory.user(roll_number="CB.EN.U4CSE21001")
    factory.team(members=[student], project=project)
    faculty = factory.faculty()

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        roll_numbers=[" CB.EN.U4CSE21001 ", "UNKNOWN-ROLL"],
        faculty_ids=[faculty.id],
    )

    assert result.created == 1
    assert [item.reference for item in result.skipped] == ["UNKNOWN-ROLL"]


def test_venue_inference_uses_session_faculty_and_skips_unseated_teams(db, factory):
    scope = factory.scope()
    seated, unseated = factory.user(), factory.user()
    seated_project, unseated_project = factory.project(scope), factory.project(scope)
    seated_team = factory.team(members=[seated], project=seated_project)
    unseated_team = factory.team(members=[unseated], project=unseated_project)
    session_faculty = factory.faculty()
    factory.session(factory.venue(), session_faculty, datetime(2024, 3, 7, 8, 45), students=[seated], scope=scope)

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        team_ids=[seated_team.id, unseated_team.id],
        use_venue_faculty=True,
        scope_id=scope.id,
        session_date=datetime(2024, 3, 7).date(),
    )

    assert result.created == 1
    assert [item.reference for item in result.skipped] == [unseated_team.id]
    row = db.execute(select(ReviewAssignment)).scalar_one()
    assert (row.project_id, row.faculty_id) == (seated_project.id, session_faculty.id)


def test_missing_targets_or_faculty_rejected_before_any_write(db, factory):
    project = factory.project()
    with pytest.raises(InvalidRequestError):
        allocate(db, review_phase=1, now=NOW, faculty_ids=[factory.faculty().id])
    with pytest.raises(InvalidRequestError):
        allocate(db, review_phase=1, now=NOW, project_ids=[project.id])
    assert _assignment_count(db) == 0


def test_unknown_references_are_not_found(db, factory):
    project = factory.project()
    faculty = factory.faculty()
    with pytest.raises(ResourceNotFoundError):
        allocate(db, review_phase=1, now=NOW, project_ids=["missing"], faculty_ids=[faculty.id])
    with pytest.raises(ResourceNotFoundError):
        allocate(db, review_phase=1, now=NOW, project_ids=[project.id], faculty_ids=["missing"])
    with pytest.raises(ResourceNotFoundError):
        allocate(db, review_phase=1, now=NOW, project_ids=[project.id], faculty_ids=[faculty.id], scope_id="missing")
    assert _assignment_count(db) == 0


def test_non_faculty_reviewer_and_out_of_range_phase_are_rejected(db, factory):
    scope = factory.scope(phases=2)
    project = factory.project(scope)
    student = factory.user()
    with pytest.raises(InvalidRequestError):
        allocate(db, review_phase=1, now=NOW, project_ids=[project.id], faculty_ids=[student.id])
    with pytest.raises(InvalidRequestError):
        allocate(
            db,
            review_phase=3,
            now=NOW,
            project_ids=[project.id],
            faculty_ids=[factory.faculty().id],
            scope_id=scope.id,
        )


def test_assign_faculty_and_update_access(db, factory):
    project = factory.project()
    faculty = factory.faculty()

    assignment = assign_faculty(db, project_id=project.id, faculty_id=faculty.id, review_phase=1, now=NOW)
    assert assignment.access_expires_at is None

    start = datetime(2024, 3, 8, 9, 0)
    update_access(db, assignment.id, duration_hours=12, now=NOW, access_starts_at=start)
    assert assignment.access_starts_at == start
    assert assignment.access_expires_at == start + timedelta(hours=12)

    with pytest.raises(ResourceNotFoundError):
        update_access(db, "missing", duration_hours=1, now=NOW)


def test_bulk_unassign_is_idempotent(db, factory):
    faculty = factory.faculty()
    rows = [factory.assignment(factory.project(), faculty) for _ in range(3)]
    ids = [row.id for row in rows[:2]]

    assert bulk_unassign(db, ids) == 2
    assert bulk_unassign(db, ids) == 0
    assert _assignment_count(db) == 1


def test_bulk_update_access_sets_window_and_permanent(db, factory):
    faculty = factory.faculty()
    rows = [factory.assignment(factory.project(), faculty, expires_at=NOW) for _ in range(2)]
    ids = [row.id for row in rows]

    assert bulk_update_access(db, ids, duration_hours=6, now=NOW) == 2
    db.expire_all()
    assert {row.access_expires_at for row in db.execute(select(ReviewAssignment)).scalars()} == {
        NOW + timedelta(hours=6)
    }

    assert bulk_update_access(db, ids, duration_hours=0, now=NOW) == 2
    db.expire_all()
    assert {row.access_expires_at for row in db.execute(select(ReviewAssignment)).scalars()} == {None}


def test_guide_release_assigns_each_guide(db, factory):
    scope = factory.scope()
    guides = [factory.faculty(), factory.faculty()]
    for guide in guides:
        factory.team(members=[factory.user()], project=factory.project(scope), guide=guide)
    factory.team(members=[factory.user()], project=factory.project(scope))

    result = release_guide_reviews(db, scope_id=scope.id, review_phase=1, now=NOW, duration_hours=24)

    assert (result.created, result.updated) == (2, 0)
    assert set(db.execute(select(ReviewAssignment.faculty_id)).scalars()) == {guide.id for guide in guides}


def test_guide_release_without_guided_teams_is_not_found(db, factory):
    scope = factory.scope()
    factory.team(members=[factory.user()], project=factory.project(scope))
    with pytest.raises(ResourceNotFoundError):
        release_guide_reviews(db, scope_id=scope.id, review_phase=1, now=NOW)


def test_sunday_expiry_remediation(db, factory):
    faculty = factory.faculty()
    sunday = factory.assignment(factory.project(), faculty, expires_at=datetime(2024, 3, 10, 18, 30))
    monday = factory.assignment(factory.project(), faculty, expires_at=datetime(2024, 3, 11, 18, 30))
    permanent = factory.assignment(factory.project(), faculty)

    assert remediate_sunday_expirations(db) == 1
    assert sunday.access_expires_at == datetime(2024, 3, 11, 18, 30)
    assert monday.access_expires_at == datetime(2024, 3, 11, 18, 30)
    assert permanent.access_expires_at is None
    assert remediate_sunday_expirations(db) == 0


def test_aware_access_start_is_stored_as_college_local_time(db, factory):
    faculty = factory.faculty()
    projects = [factory.project() for _ in range(2)]
    utc_start = datetime(2024, 3, 6, 4, 30, tzinfo=timezone.utc)

    allocate(
        db,
        review_phase=1,
        now=NOW,
        project_ids=[projects[0].id],
        faculty_ids=[faculty.id],
        access_starts_at=utc_start,
        duration_hours=2,
    )
    single = assign_faculty(
        db, project_id=projects[1].id, faculty_id=faculty.id, review_phase=1, now=NOW, access_starts_at=utc_start
    )

    rows = list(db.execute(select(ReviewAssignment)).scalars())
    assert {row.access_starts_at for row in rows} == {datetime(2024, 3, 6, 10, 0)}
    allocated = next(row for row in rows if row.project_id == projects[0].id)
    assert allocated.access_expires_at == datetime(2024, 3, 6, 12, 0)

    thursday_start = datetime(2024, 3, 7, 3, 30, tzinfo=timezone.utc)
    update_access(db, single.id, duration_hours=1, now=NOW, access_starts_at=thursday_start)
    assert single.access_starts_at == datetime(2024, 3, 7, 9, 0)
    assert single.access_expires_at == datetime(2024, 3, 7, 10, 0)

    bulk_update_access(db, [allocated.id], duration_hours=1, now=NOW, access_starts_at=utc_start)
    db.expire_all()
    refreshed = db.get(ReviewAssignment, allocated.id)
    assert (refreshed.access_starts_at, refreshed.access_expires_at) == (
        datetime(2024, 3, 6, 10, 0),
        datetime(2024, 3, 6, 11, 0),
    )


def test_venue_inference_uses_the_college_date_of_an_aware_start(db, factory):
    scope = factory.scope()
    student = factory.user()
    team = factory.team(members=[student], project=factory.project(scope))
    session_faculty = factory.faculty()
    factory.session(factory.venue(), session_faculty, datetime(2024, 3, 7, 8, 45), students=[student], scope=scope)

    # 20:00 UTC on the 6th is already the 7th in college time.
    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        team_ids=[team.id],
        use_venue_faculty=True,
        scope_id=scope.id,
        access_starts_at=datetime(2024, 3, 6, 20, 0, tzinfo=timezone.utc),
    )

    assert (result.created, result.skipped) == (1, [])
    row = db.execute(select(ReviewAssignment)).scalar_one()
    assert row.faculty_id == session_faculty.id
    assert row.access_starts_at == datetime(2024, 3, 7, 1, 30)


def _flaky_upsert(monkeypatch, *, failing_id, racing_id, race_attempts):
    real_upsert = allocation.upsert_assignment
    calls = Counter()

    def upsert(db, **values):
        project_id = values["project_id"]
        calls[project_id] += 1
        if project_id == failing_id:
            raise OperationalError("UPDATE review_assignments", {}, Exception("database is locked"))
        if project_id == racing_id and calls[project_id] <= race_attempts:
            raise IntegrityError("INSERT INTO review_assignments", {}, Exception("UNIQUE constraint failed"))
        return real_upsert(db, **values)

    monkeypatch.setattr(allocation, "upsert_assignment", upsert)
    return calls


def test_allocate_isolates_store_failures_and_retries_lost_insert_races(db, factory, monkeypatch):
    failing, racing, healthy = [factory.project() for _ in range(3)]
    faculty = factory.faculty()
    factory.assignment(racing, faculty)
    calls = _flaky_upsert(monkeypatch, failing_id=failing.id, racing_id=racing.id, race_attempts=1)

    result = allocate(
        db,
        review_phase=1,
        now=NOW,
        project_ids=[failing.id, racing.id, healthy.id],
        faculty_ids=[faculty.id],
    )

    assert (result.created, result.updated) == (1, 1)
    assert [(item.reference, item.reason) for item in result.skipped] == [
        (f"{failing.id}:{faculty.id}", "persistence error")
    ]
    assert calls[racing.id] == 2
    assert set(db.execute(select(ReviewAssignment.project_id)).scalars()) == {racing.id, healthy.id}


def test_retry_that_inserts_counts_as_created(db, factory, monkeypatch):
    project = factory.project()
    faculty = factory.faculty()
    _flaky_upsert(monkeypatch, failing_id=None, racing_id=project.id, race_attempts=1)

    result = allocate(db, review_phase=1, now=NOW, project_ids=[project.id], faculty_ids=[faculty.id])

    assert (result.created, result.updated, result.skipped) == (1, 0, [])
    assert _assignment_count(db) == 1


def test_failed_retry_skips_only_that_pair(db, factory, monkeypatch):
    racing, healthy = factory.project(), factory.project()
    faculty = factory.faculty()
    _flaky_upsert(monkeypatch, failing_id=None, racing_id=racing.id, race_attempts=2)

    result = allocate(db, review_phase=1, now=NOW, project_ids=[racing.id, healthy.id], faculty_ids=[faculty.id])

    assert (result.created, result.updated) == (1, 0)
    assert [item.reference for item in result.skipped] == [f"{racing.id}:{faculty.id}"]
    assert list(db.execute(select(ReviewAssignment.project_id)).scalars()) == [healthy.id]
