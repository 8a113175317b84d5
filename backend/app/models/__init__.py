from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.project import Project, ProjectRequest, ProjectRequestStatus, ProjectStatus  # noqa: F401
from app.models.review import Review, ReviewMark, ReviewStatus  # noqa: F401
from app.models.review_assignment import ReviewAssignment, ReviewMode  # noqa: F401
from app.models.scope import Scope, ScopeStudent  # noqa: F401
from app.models.team import Team, TeamMember, TeamStatus  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
from app.models.venue import LabSession, LabSessionStudent, Venue  # noqa: F401
