from enum import Enum


class UserType(str, Enum):
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


class TaskStatus(str, Enum):
    REQUESTED = "REQUESTED"
    INPROGRESS = "INPROGRESS"
    COMPLETE = "COMPLETE"


class DeletePolicy(str, Enum):
    """What else is removed when a Project, User or Task is deleted."""

    NONE = "none"
    DETACH = "detach"
    CASCADE = "cascade"

    @property
    def detaches(self) -> bool:
        return self in (DeletePolicy.DETACH, DeletePolicy.CASCADE)

    @property
    def cascades(self) -> bool:
        return self == DeletePolicy.CASCADE
