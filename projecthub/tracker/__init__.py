from projecthub.tracker.enums import DeletePolicy, TaskStatus, UserType
from projecthub.tracker.exceptions import (
    Conflict,
    NotFound,
    StoreUnavailable,
    TrackerError,
    Unauthenticated,
    Unauthorized,
    ValidationFailed,
)
from projecthub.tracker.graph import GraphWriter
from projecthub.tracker.identity import IdentityProvider
from projecthub.tracker.models import Comment, LoggedTime, Project, Task, User
from projecthub.tracker.policy import DEFAULT_POLICY, AccessPolicy, Caller, Decision, Membership, Operation, Relation
from projecthub.tracker.resolver import EntityResolver, format_hours, sum_hours
from projecthub.tracker.service import TrackerService
from projecthub.tracker.stores import TrackerStores

__all__ = [
    "AccessPolicy",
    "Caller",
    "Comment",
    "Conflict",
    "Decision",
    "DEFAULT_POLICY",
    "DeletePolicy",
    "EntityResolver",
    "format_hours",
    "GraphWriter",
    "IdentityProvider",
    "LoggedTime",
    "Membership",
    "NotFound",
    "Operation",
    "Project",
    "Relation",
    "StoreUnavailable",
    "sum_hours",
    "Task",
    "TaskStatus",
    "TrackerError",
    "TrackerService",
    "TrackerStores",
    "Unauthenticated",
    "Unauthorized",
    "User",
    "UserType",
    "ValidationFailed",
]
