"""Lazy expansion of stored references into read views."""

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional

from beanie import PydanticObjectId
from pydantic import BaseModel

from projecthub.core import ProjectHub
from projecthub.tracker.enums import TaskStatus, UserType
from projecthub.tracker.models import Comment, LoggedTime, Project, Task, User
from projecthub.tracker.stores import TrackerStores

_CENTS = Decimal("0.01")


def _to_decimal(value: Any) -> Decimal:
    """Numeric value of ``value``; anything missing or non-numeric counts as zero."""
    if value is None or isinstance(value, bool):
        return Decimal(0)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal(0)
    return number if number.is_finite() else Decimal(0)


def format_hours(value: Any) -> str:
    """Normalize an hours value to two decimal places, rounding half up.

    Example:
        .. code-block:: python

            format_hours("3.1")   # "3.10"
            format_hours(2.005)   # "2.01"
            format_hours(None)    # "0.00"
    """
    return str(_to_decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP))


def sum_hours(values: Iterable[Any]) -> str:
    """Sum hours values exactly, then normalize like ``format_hours``. The result does not depend on order."""
    return format_hours(sum((_to_decimal(value) for value in values), Decimal(0)))


class UserView(BaseModel):
    id: PydanticObjectId
    type: Optional[UserType] = None
    first_name: str
    last_name: str
    email: str
    projects: List[PydanticObjectId] = []
    project_count: int = 0


class CommentView(BaseModel):
    id: PydanticObjectId
    body: str
    user: PydanticObjectId
    task_id: PydanticObjectId
    created_at: datetime


class LoggedTimeView(BaseModel):
    id: PydanticObjectId
    description: Optional[str] = None
    date: datetime
    hours: float
    user: PydanticObjectId
    task_id: PydanticObjectId


class TaskView(BaseModel):
    id: PydanticObjectId
    title: str
    project: PydanticObjectId
    description: Optional[str] = None
    status: TaskStatus
    estimated_hours: str
    comments: List[CommentView] = []
    time_log: List[LoggedTimeView] = []
    total_hours: str = "0.00"


class ProjectView(BaseModel):
    id: PydanticObjectId
    title: str
    owners: List[UserView] = []
    clients: List[UserView] = []
    tasks: List[TaskView] = []


class AuthPayload(BaseModel):
    token: str
    user: UserView


class EntityResolver(ProjectHub):
    """Builds read views by following reference lists through the stores.

    Every reference is resolved when the view is built. Ids that no longer resolve (left behind by an interrupted
    write sequence or a delete without detach) are skipped. Password hashes never reach a view.
    """

    def __init__(self, stores: TrackerStores, **kwargs):
        super().__init__(**kwargs)
        self.stores = stores

    @staticmethod
    def project_count(user: User) -> int:
        return len(user.projects)

    def user_view(self, user: User) -> UserView:
        return UserView(
            id=user.id,
            type=user.type,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            projects=list(user.projects),
            project_count=self.project_count(user),
        )

    @staticmethod
    def comment_view(comment: Comment) -> CommentView:
        return CommentView(**comment.model_dump())

    @staticmethod
    def logged_time_view(entry: LoggedTime) -> LoggedTimeView:
        return LoggedTimeView(**entry.model_dump())

    async def total_hours(self, task: Task, entries: Optional[List[LoggedTime]] = None) -> str:
        """Sum of the hours of the task's resolvable LoggedTime entries. Pass ``entries`` if already loaded."""
        if entries is None:
            entries = await self.stores.logged_times.find_many(task.time_log)
        return sum_hours(entry.hours for entry in entries)

    async def task_view(self, task: Task) -> TaskView:
        comments = await self.stores.comments.find_many(task.comments)
        entries = await self.stores.logged_times.find_many(task.time_log)
        return TaskView(
            id=task.id,
            title=task.title,
            project=task.project,
            description=task.description,
            status=task.status,
            estimated_hours=format_hours(task.estimated_hours),
            comments=[self.comment_view(comment) for comment in comments],
            time_log=[self.logged_time_view(entry) for entry in entries],
            total_hours=await self.total_hours(task, entries),
        )

    async def project_view(self, project: Project) -> ProjectView:
        owners = await self.stores.users.find_many(project.owners)
        clients = await self.stores.users.find_many(project.clients)
        tasks = await self.stores.tasks.find_many(project.tasks)
        return ProjectView(
            id=project.id,
            title=project.title,
            owners=[self.user_view(user) for user in owners],
            clients=[self.user_view(user) for user in clients],
            tasks=[await self.task_view(task) for task in tasks],
        )

    async def my_projects(self, user: User) -> List[Project]:
        """Projects on the user's list that still exist and list the user as owner or client.

        A Project whose membership was only written on the user's side is left out until it is repaired.
        """
        projects = await self.stores.projects.find_many(user.projects)
        visible = [project for project in projects if project.is_member(user.id)]
        if len(visible) < len(user.projects):
            self.logger.debug(
                f"Skipped {len(user.projects) - len(visible)} unresolved or orphaned project(s) for user {user.id}"
            )
        return visible
