"""Access policy for tracker operations.

Every operation maps to the relation the caller must hold with the target. The relation is evaluated against a
``Membership`` snapshot taken from the target Project (or the authoring reference for comments, or the user id for
self-service operations). One evaluator serves every operation; there are no per-operation checks elsewhere.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional

from beanie import PydanticObjectId

from projecthub.core import ProjectHub
from projecthub.tracker.enums import UserType
from projecthub.tracker.exceptions import NotFound, Unauthenticated, Unauthorized
from projecthub.tracker.models import Project


class Operation(str, Enum):
    CURRENT_USER = "current-user"
    MY_PROJECTS = "my-projects"
    GET_PROJECT = "get-project"
    GET_TASK = "get-task"
    UPDATE_USER = "update-user"
    DELETE_USER = "delete-user"
    CREATE_PROJECT = "create-project"
    RENAME_PROJECT = "rename-project"
    ADD_CLIENT_TO_PROJECT = "add-client-to-project"
    DELETE_PROJECT = "delete-project"
    CREATE_TASK = "create-task"
    UPDATE_TASK = "update-task"
    DELETE_TASK = "delete-task"
    ADD_COMMENT = "add-comment"
    DELETE_COMMENT = "delete-comment"
    ADD_LOGGED_TIME = "add-logged-time"
    DELETE_LOGGED_TIME = "delete-logged-time"


class Relation(str, Enum):
    AUTHENTICATED = "authenticated"
    MEMBER = "member"  # owner or client of the project
    OWNER = "owner"
    AUTHOR = "author"
    SELF = "self"


DEFAULT_POLICY: Mapping[Operation, Relation] = MappingProxyType(
    {
        Operation.CURRENT_USER: Relation.AUTHENTICATED,
        Operation.MY_PROJECTS: Relation.AUTHENTICATED,
        Operation.CREATE_PROJECT: Relation.AUTHENTICATED,
        Operation.GET_PROJECT: Relation.MEMBER,
        Operation.GET_TASK: Relation.MEMBER,
        Operation.ADD_COMMENT: Relation.MEMBER,
        Operation.RENAME_PROJECT: Relation.OWNER,
        Operation.ADD_CLIENT_TO_PROJECT: Relation.OWNER,
        Operation.DELETE_PROJECT: Relation.OWNER,
        Operation.CREATE_TASK: Relation.OWNER,
        Operation.UPDATE_TASK: Relation.OWNER,
        Operation.DELETE_TASK: Relation.OWNER,
        # Clients may comment on tasks but not log time against them.
        Operation.ADD_LOGGED_TIME: Relation.OWNER,
        Operation.DELETE_LOGGED_TIME: Relation.OWNER,
        Operation.DELETE_COMMENT: Relation.AUTHOR,
        Operation.UPDATE_USER: Relation.SELF,
        Operation.DELETE_USER: Relation.SELF,
    }
)


@dataclass(frozen=True)
class Caller:
    """An authenticated identity as supplied by the identity provider."""

    id: PydanticObjectId
    role: Optional[UserType] = None


@dataclass(frozen=True)
class Membership:
    """The relation-bearing references of a target entity."""

    entity: str
    exists: bool = True
    owners: FrozenSet[PydanticObjectId] = field(default_factory=frozenset)
    clients: FrozenSet[PydanticObjectId] = field(default_factory=frozenset)
    author: Optional[PydanticObjectId] = None
    subject: Optional[PydanticObjectId] = None

    @classmethod
    def of_project(cls, project: Optional[Project], entity: str = "Project") -> "Membership":
        if project is None:
            return cls.missing(entity)
        return cls(entity=entity, owners=frozenset(project.owners), clients=frozenset(project.clients))

    @classmethod
    def of_author(cls, author: Optional[PydanticObjectId], entity: str) -> "Membership":
        if author is None:
            return cls.missing(entity)
        return cls(entity=entity, author=author)

    @classmethod
    def of_user(cls, user_id: Optional[PydanticObjectId]) -> "Membership":
        if user_id is None:
            return cls.missing("User")
        return cls(entity="User", subject=user_id)

    @classmethod
    def missing(cls, entity: str) -> "Membership":
        return cls(entity=entity, exists=False)

    def satisfies(self, relation: Relation, caller_id: PydanticObjectId) -> bool:
        if relation == Relation.AUTHENTICATED:
            return True
        if relation == Relation.MEMBER:
            return caller_id in self.owners or caller_id in self.clients
        if relation == Relation.OWNER:
            return caller_id in self.owners
        if relation == Relation.AUTHOR:
            return self.author is not None and caller_id == self.author
        if relation == Relation.SELF:
            return self.subject is not None and caller_id == self.subject
        raise ValueError(f"Unknown relation: {relation}")


class DenyReason(str, Enum):
    NOT_LOGGED_IN = "not logged in"
    NOT_AUTHORIZED = "not authorized"
    NOT_FOUND = "not found"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    operation: Operation
    reason: Optional[DenyReason] = None
    entity: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    def enforce(self) -> None:
        """Raise the error kind matching this decision; do nothing when allowed."""
        if self.allowed:
            return
        if self.reason == DenyReason.NOT_LOGGED_IN:
            raise Unauthenticated("Not logged in.", operation=self.operation.value)
        if self.reason == DenyReason.NOT_FOUND:
            raise NotFound(f"{self.entity or 'Entity'} not found.", entity=self.entity, operation=self.operation.value)
        raise Unauthorized("Not authorized.", operation=self.operation.value)


class AccessPolicy(ProjectHub):
    """Evaluates callers against the operation policy table.

    Args:
        table: Overrides for ``DEFAULT_POLICY``. Operations missing from the overrides keep their default relation.

    Example:
        .. code-block:: python

            policy = AccessPolicy()
            decision = policy.authorize(caller, Operation.GET_PROJECT, Membership.of_project(project))
            decision.enforce()
    """

    def __init__(self, table: Optional[Mapping[Operation, Relation]] = None, **kwargs):
        super().__init__(**kwargs)
        self.table: Mapping[Operation, Relation] = MappingProxyType({**DEFAULT_POLICY, **(table or {})})

    def required_relation(self, operation: Operation) -> Relation:
        return self.table[operation]

    def authorize(
        self, caller: Optional[Caller], operation: Operation, membership: Optional[Membership] = None
    ) -> Decision:
        if caller is None:
            return Decision(False, operation, DenyReason.NOT_LOGGED_IN)

        relation = self.required_relation(operation)
        if relation == Relation.AUTHENTICATED:
            return Decision(True, operation)

        if membership is None or not membership.exists:
            entity = membership.entity if membership is not None else None
            return Decision(False, operation, DenyReason.NOT_FOUND, entity=entity)

        if membership.satisfies(relation, caller.id):
            return Decision(True, operation, entity=membership.entity)

        self.logger.info(f"Denied {operation.value} on {membership.entity} to {caller.id}: requires {relation.value}")
        return Decision(False, operation, DenyReason.NOT_AUTHORIZED, entity=membership.entity)

    def authenticate(self, caller: Optional[Caller], operation: Operation) -> Caller:
        """Raise ``Unauthenticated`` when there is no caller, before the target of ``operation`` is loaded."""
        if caller is None:
            Decision(False, operation, DenyReason.NOT_LOGGED_IN).enforce()
        return caller

    def enforce(self, caller: Optional[Caller], operation: Operation, membership: Optional[Membership] = None) -> Caller:
        """Authorize and raise on denial. Returns the caller so call sites can narrow its type."""
        self.authorize(caller, operation, membership).enforce()
        return caller
