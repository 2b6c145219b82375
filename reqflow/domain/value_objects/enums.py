"""Domain enums — pure Python, no external dependencies."""

from enum import Enum


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


OPEN_STATUSES = frozenset(
    {RequestStatus.SUBMITTED, RequestStatus.UNDER_REVIEW, RequestStatus.IN_PROGRESS}
)
TERMINAL_STATUSES = frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED})


class RequestPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    RequestPriority.LOW: 0,
    RequestPriority.MEDIUM: 1,
    RequestPriority.HIGH: 2,
    RequestPriority.URGENT: 3,
}


class UserRole(str, Enum):
    USER = "user"
    TEAM_LEADER = "team_leader"
    MANAGER = "manager"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"

    @property
    def seniority(self) -> int:
        return _ROLE_SENIORITY[self]


_ROLE_SENIORITY = {
    UserRole.USER: 0,
    UserRole.TEAM_LEADER: 1,
    UserRole.MANAGER: 2,
    UserRole.ADMIN: 3,
    UserRole.SUPERADMIN: 4,
}

# Recipients of "needs manual handling" alerts
ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


class RuleType(str, Enum):
    ROLE_BASED = "role_based"
    JOB_ROLE_BASED = "job_role_based"
    TEAM_HIERARCHY = "team_hierarchy"
    CUSTOM = "custom"

    @property
    def description(self) -> str:
        return _RULE_TYPE_DESCRIPTIONS[self]


_RULE_TYPE_DESCRIPTIONS = {
    RuleType.ROLE_BASED: "Assigns based on user roles in the organization",
    RuleType.JOB_ROLE_BASED: "Assigns based on specific job roles and responsibilities",
    RuleType.TEAM_HIERARCHY: "Assigns based on team membership and hierarchy",
    RuleType.CUSTOM: "Uses custom logic to determine assignment",
}


class AssignmentStrategy(str, Enum):
    FIRST_AVAILABLE = "first_available"
    LOAD_BALANCED = "load_balanced"
    EXPERTISE_BASED = "expertise_based"

    @property
    def description(self) -> str:
        return _STRATEGY_DESCRIPTIONS[self]


_STRATEGY_DESCRIPTIONS = {
    AssignmentStrategy.FIRST_AVAILABLE: "Offers the request to every eligible user; the first to accept owns it",
    AssignmentStrategy.LOAD_BALANCED: "Ranks eligible users by their open workload, least loaded first",
    AssignmentStrategy.EXPERTISE_BASED: "Ranks eligible users by role seniority and expertise",
}


class UpdateType(str, Enum):
    CREATED = "created"
    ASSIGNED = "assigned"
    UNASSIGNED = "unassigned"
    ACCEPTED = "accepted"
    ESCALATED = "escalated"
    ESCALATION_EXHAUSTED = "escalation_exhausted"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AssignmentOutcome(str, Enum):
    ASSIGNED = "assigned"
    NO_MATCHING_RULE = "no_matching_rule"
    NO_ELIGIBLE_USERS = "no_eligible_users"
