from datetime import UTC, datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pydantic import Field, field_validator
from pymongo import IndexModel

from projecthub.database import StoredDocument
from projecthub.tracker.enums import TaskStatus, UserType


def _utcnow() -> datetime:
    return datetime.now(UTC)


class User(StoredDocument):
    type: Optional[UserType] = None
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password_hash: str

    # Projects the user participates in; owner vs. client is recorded on the Project.
    projects: List[PydanticObjectId] = Field(default_factory=list)

    class Settings:
        name = "users"
        indexes = [IndexModel([("email", 1)], name="user_email_uq", unique=True)]

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value


class Project(StoredDocument):
    title: str = Field(min_length=1, max_length=80)
    owners: List[PydanticObjectId] = Field(default_factory=list)
    clients: List[PydanticObjectId] = Field(default_factory=list)
    tasks: List[PydanticObjectId] = Field(default_factory=list)

    class Settings:
        name = "projects"
        indexes = [IndexModel([("owners", 1)]), IndexModel([("clients", 1)])]

    def is_member(self, user_id: PydanticObjectId) -> bool:
        return user_id in self.owners or user_id in self.clients

    @property
    def members(self) -> List[PydanticObjectId]:
        return list(dict.fromkeys([*self.owners, *self.clients]))


class Task(StoredDocument):
    title: str = Field(min_length=1)
    project: PydanticObjectId
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.REQUESTED
    estimated_hours: float = 0
    comments: List[PydanticObjectId] = Field(default_factory=list)
    time_log: List[PydanticObjectId] = Field(default_factory=list)

    class Settings:
        name = "tasks"
        indexes = [IndexModel([("project", 1)])]


class Comment(StoredDocument):
    body: str = Field(min_length=1)
    user: PydanticObjectId
    task_id: PydanticObjectId
    created_at: datetime = Field(default_factory=_utcnow)

    class Settings:
        name = "comments"
        indexes = [IndexModel([("task_id", 1)])]


class LoggedTime(StoredDocument):
    description: Optional[str] = None
    date: datetime = Field(default_factory=_utcnow)
    hours: float = 0
    user: PydanticObjectId
    task_id: PydanticObjectId

    class Settings:
        name = "logged_times"
        indexes = [IndexModel([("task_id", 1)])]


def normalize_email(email: str) -> str:
    return email.strip().lower()
