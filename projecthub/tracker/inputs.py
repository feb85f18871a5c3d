from datetime import datetime
from typing import Optional

from beanie import PydanticObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from projecthub.tracker.enums import TaskStatus, UserType
from projecthub.tracker.models import normalize_email


class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NewUserInput(_Input):
    type: Optional[UserType] = None
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=5, max_length=50)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value


class ClientInput(NewUserInput):
    type: Optional[UserType] = UserType.CLIENT


class UserUpdateInput(_Input):
    type: Optional[UserType] = None
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = Field(default=None, min_length=3)
    password: Optional[str] = Field(default=None, min_length=5, max_length=50)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value


class LoginInput(_Input):
    email: str
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value):
        return normalize_email(value) if isinstance(value, str) else value


class PasswordInput(_Input):
    password: str


class ProjectInput(_Input):
    title: str = Field(min_length=1, max_length=80)


class TaskInput(_Input):
    project_id: PydanticObjectId
    title: str = Field(min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.REQUESTED
    estimated_hours: float = 0


class TaskUpdateInput(_Input):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    estimated_hours: Optional[float] = None


class CommentInput(_Input):
    body: str = Field(min_length=1)


class LoggedTimeInput(_Input):
    description: Optional[str] = None
    date: Optional[datetime] = None
    # Missing, null or empty hours are recorded as zero.
    hours: Optional[float] = None

    @field_validator("hours", mode="before")
    @classmethod
    def _blank_hours(cls, value):
        return None if isinstance(value, str) and not value.strip() else value
