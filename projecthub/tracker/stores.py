import asyncio
from dataclasses import dataclass, fields

from motor.motor_asyncio import AsyncIOMotorClient

from projecthub.core import CoreSettings, get_settings
from projecthub.database import EntityStore, InMemoryEntityStore, MongoEntityStore
from projecthub.tracker.models import Comment, LoggedTime, Project, Task, User


@dataclass
class TrackerStores:
    """One entity store per collection the tracker writes to."""

    users: EntityStore[User]
    projects: EntityStore[Project]
    tasks: EntityStore[Task]
    comments: EntityStore[Comment]
    logged_times: EntityStore[LoggedTime]

    @classmethod
    def in_memory(cls) -> "TrackerStores":
        return cls(
            users=InMemoryEntityStore(User),
            projects=InMemoryEntityStore(Project),
            tasks=InMemoryEntityStore(Task),
            comments=InMemoryEntityStore(Comment),
            logged_times=InMemoryEntityStore(LoggedTime),
        )

    @classmethod
    def mongo(cls, db_uri: str, db_name: str, client: AsyncIOMotorClient | None = None) -> "TrackerStores":
        client = client if client is not None else AsyncIOMotorClient(db_uri)

        def store(model_cls):
            return MongoEntityStore(model_cls, db_uri=db_uri, db_name=db_name, client=client)

        return cls(
            users=store(User),
            projects=store(Project),
            tasks=store(Task),
            comments=store(Comment),
            logged_times=store(LoggedTime),
        )

    @classmethod
    def from_settings(cls, settings: CoreSettings | None = None) -> "TrackerStores":
        settings = settings if settings is not None else get_settings()
        if settings.PROJECTHUB_API.STORE == "memory":
            return cls.in_memory()
        return cls.mongo(settings.PROJECTHUB_MONGO.URI, settings.PROJECTHUB_MONGO.DB_NAME)

    async def initialize(self):
        await asyncio.gather(*(getattr(self, f.name).initialize() for f in fields(self)))
