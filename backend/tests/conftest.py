import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("ENABLE_NIGHTLY_SCHEDULER", "false")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.api.deps import get_db, get_now  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.main import app  # noqa: E402
from app.models.project import Project, ProjectStatus  # noqa: E402
from app.models.review import Review, ReviewStatus  # noqa: E402
from app.models.review_assignment import ReviewAssignment, ReviewMode  # noqa: E402
from app.models.scope import Scope, ScopeStudent  # noqa: E402
from app.models.team import Team, TeamMember, TeamStatus  # noqa: E402
from app.models.user import User, UserRole  # noqa: E402
from app.models.venue import LabSession, LabSessionStudent, Venue  # noqa: E402

# Wednesday, inside working hours.
NOW = datetime(2024, 3, 6, 10, 0)


class Factory:
    """Seeds rows straight into the test session."""

    def __init__(self, db):
        self.db = db
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(self, role=UserRole.student, name=None, roll_number=None, **extra) -> User:
        index = self._next()
        user = User(
            name=name or f"{role.value.title()} {index}",
            email=f"{role.value}{index}@college.test",
            roll_number=roll_number if roll_number is not None else (
                f"CB.EN.U4CSE{index:05d}" if role == UserRole.student else None
            ),
            role=role,
            **extra,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def admin(self) -> User:
        return self.user(UserRole.admin)

    def faculty(self, name=None) -> User:
        return self.user(UserRole.faculty, name=name)

    def scope(self, name=None, phases=3, students=(), **extra) -> Scope:
        scope = Scope(name=name or f"Scope {self._next()}", number_of_phases=phases, **extra)
        self.db.add(scope)
        self.db.flush()
        for student in students:
            self.db.add(ScopeStudent(scope_id=scope.id, student_id=student.id))
        self.db.flush()
        return scope

    def project(self, scope=None, title=None, category="Web", status=ProjectStatus.assigned) -> Project:
        project = Project(
            title=title or f"Project {self._next()}",
            category=category,
            scope_id=scope.id if scope else None,
            status=status,
        )
        self.db.add(project)
        self.db.flush()
        return project

    def team(self, members=(), project=None, scope=None, guide=None, status=TeamStatus.approved, created_at=None) -> Team:
        team = Team(
            project_id=project.id if project else None,
            scope_id=scope.id if scope else (project.scope_id if project else None),
            guide_id=guide.id if guide else None,
            status=status,
        )
        if created_at is not None:
            team.created_at = created_at
        self.db.add(team)
        self.db.flush()
        for index, member in enumerate(members):
            self.db.add(TeamMember(team_id=team.id, user_id=member.id, approved=True, is_leader=index == 0))
        self.db.flush()
        return team

    def venue(self, name=None, capacity=40) -> Venue:
        venue = Venue(name=name or f"Lab {self._next()}", location="Block A", capacity=capacity)
        self.db.add(venue)
        self.db.flush()
        return venue

    def session(self, venue, faculty, start, end=None, students=(), scope=None, **extra) -> LabSession:
        session = LabSession(
            venue_id=venue.id,
            faculty_id=faculty.id,
            scope_id=scope.id if scope else None,
            start_time=start,
            end_time=end or start.replace(hour=16, minute=20),
            **extra,
        )
        self.db.add(session)
        self.db.flush()
        for student in students:
            self.db.add(LabSessionStudent(session_id=session.id, student_id=student.id))
        self.db.flush()
        return session

    def review(self, team, faculty=None, phase=1, status=ReviewStatus.pending, scheduled_at=None) -> Review:
        review = Review(
            team_id=team.id,
            project_id=team.project_id,
            faculty_id=faculty.id if faculty else None,
            review_phase=phase,
            status=status,
            scheduled_at=scheduled_at or NOW,
            created_at=scheduled_at or NOW,
        )
        self.db.add(review)
        self.db.flush()
        return review

    def assignment(self, project, faculty, phase=1, starts_at=None, expires_at=None) -> ReviewAssignment:
        assignment = ReviewAssignment(
            project_id=project.id,
            faculty_id=faculty.id,
            review_phase=phase,
            mode=ReviewMode.offline,
            access_starts_at=starts_at or NOW,
            access_expires_at=expires_at,
            assigned_at=NOW - timedelta(days=1),
        )
        self.db.add(assignment)
        self.db.flush()
        return assignment


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def factory(db):
    return Factory(db)


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: NOW

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
