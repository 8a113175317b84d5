"""Seed a small scope with teams, venues and a lab session for manual API checks.

Run:
  PYTHONPATH=backend python scripts/seed_review_demo.py
"""

from __future__ import annotations

from datetime import date, timedelta
import os

from sqlalchemy import select

from app.core.security import create_access_token
from app.db.session import SessionLocal
from app.models.project import Project, ProjectStatus
from app.models.scope import Scope, ScopeStudent
from app.models.team import Team, TeamMember, TeamStatus
from app.models.user import User, UserRole
from app.models.venue import Venue
from app.services.college_hours import college_now
from app.services.venue_sessions import create_session

SCOPE_NAME = os.getenv("DEMO_SCOPE_NAME", "Demo Capstone")
DEPARTMENT = "CSE"

DEMO_USERS = [
    ("admin", "Demo Admin", UserRole.admin, None),
    ("faculty_1", "Demo Faculty One", UserRole.faculty, None),
    ("faculty_2", "Demo Faculty Two", UserRole.faculty, None),
    ("student_a", "Demo Student A", UserRole.student, "DEMO.CSE.001"),
    ("student_b", "Demo Student B", UserRole.student, "DEMO.CSE.002"),
    ("student_c", "Demo Student C", UserRole.student, "DEMO.CSE.003"),
]


def _upsert_user(session, key: str, name: str, role: UserRole, roll_number: str | None) -> User:
    email = f"{key.replace('_', '.')}@reviewdesk.demo"
    user = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if user is None:
        user = User(email=email, name=name, role=role, roll_number=roll_number, department=DEPARTMENT)
        session.add(user)
        session.flush()
    return user


def _next_working_day() -> date:
    day = college_now().date() + timedelta(days=1)
    while day.weekday() == 6:
        day += timedelta(days=1)
    return day


def main() -> None:
    session = SessionLocal()
    try:
        users = {key: _upsert_user(session, key, name, role, roll) for key, name, role, roll in DEMO_USERS}
        scope = session.execute(select(Scope).where(Scope.name == SCOPE_NAME)).scalar_one_or_none()
        if scope is not None:
            print(f"Scope {SCOPE_NAME!r} already seeded; nothing to do.")
            return

        scope = Scope(name=SCOPE_NAME, number_of_phases=3, timer_total_hours=40)
        session.add(scope)
        session.flush()
        students = [users["student_a"], users["student_b"], users["student_c"]]
        for student in students:
            session.add(ScopeStudent(scope_id=scope.id, student_id=student.id))

        for title, members, guide in (
            ("Smart Attendance", students[:2], users["faculty_1"]),
            ("Lab Inventory Tracker", students[2:], None),
        ):
            project = Project(title=title, category="Web", scope_id=scope.id, status=ProjectStatus.assigned)
            session.add(project)
            session.flush()
            team = Team(
                project_id=project.id,
                scope_id=scope.id,
                guide_id=guide.id if guide else None,
                status=TeamStatus.approved,
            )
            session.add(team)
            session.flush()
            for index, member in enumerate(members):
                session.add(TeamMember(team_id=team.id, user_id=member.id, approved=True, is_leader=index == 0))

        venue = Venue(name="Demo Lab 1", location="Block A", capacity=40)
        session.add(venue)
        session.add(Venue(name="Demo Lab 2", location="Block B", capacity=40))
        session.flush()
        create_session(
            session,
            venue_id=venue.id,
            faculty_id=users["faculty_2"].id,
            scope_id=scope.id,
            session_date=_next_working_day(),
            student_ids=[students[0].id, students[1].id],
            title="Phase 1 reviews",
        )
        session.commit()

        print("\nDemo data ready. Bearer tokens:")
        for key, user in users.items():
            print(f"  - {key} ({user.role.value}): {create_access_token(user.id)}")
    finally:
        session.close()


if __name__ == "__main__":
    main()
