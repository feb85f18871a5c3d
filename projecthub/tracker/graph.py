"""Ordered multi-document writes that keep references between entities consistent.

The store offers no cross-document transactions. Every compound write is a sequence whose first step creates or
deletes a document and whose follow-up steps are idempotent list updates (``add_unique``/``pull``). A step whose write
landed but whose acknowledgement was lost can be retried without listing an id twice. Follow-up steps are retried on
transient store failures and never rolled back; readers skip references left dangling by a sequence that did not
finish.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from beanie import PydanticObjectId
from pymongo.errors import PyMongoError

from projecthub.core import ProjectHub
from projecthub.core.utils import ifnone
from projecthub.tracker.enums import DeletePolicy
from projecthub.tracker.models import Comment, LoggedTime, Project, Task, User, normalize_email
from projecthub.tracker.stores import TrackerStores


class GraphWriter(ProjectHub):
    """Applies the tracker's compound writes against a set of entity stores.

    Args:
        stores: The stores to write to.
        write_retries: Attempts per follow-up step. Defaults to ``PROJECTHUB_GRAPH.WRITE_RETRIES``.
        retry_delay: Base delay in seconds between attempts, doubled on each retry.
        delete_policy: What else is removed when a Project, User or Task is deleted.
    """

    def __init__(
        self,
        stores: TrackerStores,
        *,
        write_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        delete_policy: Optional[DeletePolicy] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        graph_settings = self.settings.PROJECTHUB_GRAPH
        self.stores = stores
        self.write_retries = max(1, ifnone(write_retries, graph_settings.WRITE_RETRIES))
        self.retry_delay = ifnone(retry_delay, graph_settings.RETRY_DELAY)
        self.delete_policy = DeletePolicy(ifnone(delete_policy, graph_settings.DELETE_POLICY))

    async def _apply(self, description: str, step: Callable[[], Awaitable[bool]]) -> bool:
        """Run an idempotent follow-up step, retrying transient store failures with exponential back-off."""
        for attempt in range(self.write_retries):
            try:
                matched = await step()
            except PyMongoError as e:
                if attempt < self.write_retries - 1:
                    self.logger.warning(f"{description} failed (attempt {attempt + 1}/{self.write_retries}): {e}")
                    await asyncio.sleep(self.retry_delay * (2**attempt))
                    continue
                self.logger.error(f"{description} failed after {self.write_retries} attempts: {e}")
                raise
            if not matched:
                self.logger.warning(f"{description}: target document no longer exists")
            else:
                self.logger.debug(description)
            return matched
        return False

    async def _apply_all(self, *steps: tuple[str, Callable[[], Awaitable[bool]]]) -> List[bool]:
        """Run independent follow-up steps concurrently; every step is attempted even if another fails."""
        results = await asyncio.gather(
            *(self._apply(description, step) for description, step in steps), return_exceptions=True
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)

    # ------------------------------ creation ---------------------------------

    async def create_project(self, creator_id: PydanticObjectId, title: str) -> Project:
        """Insert a Project and link it to its creator on both sides."""
        project = await self.stores.projects.create(Project(title=title))
        await self._apply_all(
            (
                f"add owner {creator_id} to project {project.id}",
                lambda: self.stores.projects.add_unique(project.id, "owners", creator_id),
            ),
            (
                f"add project {project.id} to user {creator_id}",
                lambda: self.stores.users.add_unique(creator_id, "projects", project.id),
            ),
        )
        self.logger.info(f"Created project {project.id} owned by {creator_id}")
        return ifnone(await self.stores.projects.find_by_id(project.id), project)

    async def attach_client(
        self, project_id: PydanticObjectId, email: str, build_client: Callable[[], User]
    ) -> User:
        """Attach the user with ``email`` to a Project as a client.

        ``build_client`` is only called when no user has the email yet; the new user is inserted with the Project
        already on its list.

        Raises:
            DuplicateInsertError: If another request created a user with the same email concurrently.
        """
        email = normalize_email(email)
        client = await self.stores.users.find_one({"email": email})
        if client is None:
            client = await self.stores.users.create(build_client().model_copy(update={"projects": [project_id]}))
            self.logger.info(f"Created client {client.id} for project {project_id}")
        else:
            await self._apply(
                f"add project {project_id} to user {client.id}",
                lambda: self.stores.users.add_unique(client.id, "projects", project_id),
            )
        await self._apply(
            f"add client {client.id} to project {project_id}",
            lambda: self.stores.projects.add_unique(project_id, "clients", client.id),
        )
        return client

    async def create_task(self, task: Task) -> Task:
        """Insert a Task and append it to its Project's task list.

        If the append cannot be applied the Task stays addressable by id but is not listed on the Project.
        """
        task = await self.stores.tasks.create(task)
        try:
            await self._apply(
                f"append task {task.id} to project {task.project}",
                lambda: self.stores.projects.add_unique(task.project, "tasks", task.id),
            )
        except PyMongoError:
            self.logger.exception(f"Task {task.id} is not listed on project {task.project}")
        return task

    async def add_comment(self, comment: Comment) -> Comment:
        comment = await self.stores.comments.create(comment)
        await self._apply(
            f"append comment {comment.id} to task {comment.task_id}",
            lambda: self.stores.tasks.add_unique(comment.task_id, "comments", comment.id),
        )
        return comment

    async def add_logged_time(self, entry: LoggedTime) -> LoggedTime:
        entry = await self.stores.logged_times.create(entry)
        await self._apply(
            f"append logged time {entry.id} to task {entry.task_id}",
            lambda: self.stores.tasks.add_unique(entry.task_id, "time_log", entry.id),
        )
        return entry

    # ------------------------------ deletion ---------------------------------

    async def delete_comment(self, comment: Comment) -> Optional[Comment]:
        deleted = await self.stores.comments.delete(comment.id)
        await self._apply(
            f"pull comment {comment.id} from task {comment.task_id}",
            lambda: self.stores.tasks.pull(comment.task_id, "comments", comment.id),
        )
        return deleted

    async def delete_logged_time(self, entry: LoggedTime) -> Optional[LoggedTime]:
        deleted = await self.stores.logged_times.delete(entry.id)
        await self._apply(
            f"pull logged time {entry.id} from task {entry.task_id}",
            lambda: self.stores.tasks.pull(entry.task_id, "time_log", entry.id),
        )
        return deleted

    async def delete_task(self, task: Task) -> Optional[Task]:
        deleted = await self.stores.tasks.delete(task.id)
        await self._apply(
            f"pull task {task.id} from project {task.project}",
            lambda: self.stores.projects.pull(task.project, "tasks", task.id),
        )
        if self.delete_policy.cascades:
            for comment in await self.stores.comments.find({"task_id": task.id}):
                await self.stores.comments.delete(comment.id)
            for entry in await self.stores.logged_times.find({"task_id": task.id}):
                await self.stores.logged_times.delete(entry.id)
            self.logger.debug(f"Cascaded delete of task {task.id} to its comments and logged time")
        return deleted

    async def delete_project(self, project: Project) -> Optional[Project]:
        deleted = await self.stores.projects.delete(project.id)
        if self.delete_policy.detaches:
            await self._apply(
                f"pull project {project.id} from its users",
                lambda: self._pull_all(self.stores.users, {"projects": project.id}, "projects", project.id),
            )
        if self.delete_policy.cascades:
            for task in await self.stores.tasks.find({"project": project.id}):
                await self.delete_task(task)
        self.logger.info(f"Deleted project {project.id} (delete policy: {self.delete_policy.value})")
        return deleted

    async def delete_user(self, user: User) -> Optional[User]:
        """Delete a User. Under ``detach`` and ``cascade`` the user is also removed from every Project's lists."""
        deleted = await self.stores.users.delete(user.id)
        if self.delete_policy.detaches:
            await self._apply_all(
                (
                    f"pull owner {user.id} from projects",
                    lambda: self._pull_all(self.stores.projects, {"owners": user.id}, "owners", user.id),
                ),
                (
                    f"pull client {user.id} from projects",
                    lambda: self._pull_all(self.stores.projects, {"clients": user.id}, "clients", user.id),
                ),
            )
        self.logger.info(f"Deleted user {user.id} (delete policy: {self.delete_policy.value})")
        return deleted

    @staticmethod
    async def _pull_all(store, query, field, value) -> bool:
        await store.pull_all(query, field, value)
        return True

    # ------------------------------- repair ----------------------------------

    async def repair_project(self, project_id: PydanticObjectId) -> Optional[Project]:
        """Re-link every owner and client of a Project to it. Idempotent; returns None if the Project is gone."""
        project = await self.stores.projects.find_by_id(project_id)
        if project is None:
            return None
        await self._apply_all(
            *(
                (
                    f"add project {project.id} to user {member}",
                    lambda member=member: self.stores.users.add_unique(member, "projects", project.id),
                )
                for member in project.members
            )
        )
        self.logger.info(f"Repaired membership links of project {project.id} ({len(project.members)} members)")
        return project
