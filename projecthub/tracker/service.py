"""The tracker's query and mutation surface.

Every operation follows the same order: authenticate the caller, parse the input, load the target, evaluate the access
policy, and only then write. Store errors are translated into tracker errors here so transports see a single error
vocabulary.
"""

from contextlib import contextmanager
from typing import Any, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

from projecthub.core import ProjectHub
from projecthub.core.utils import hash_password, verify_password
from projecthub.database import DocumentNotFoundError, DocumentValidationError, DuplicateInsertError
from projecthub.tracker.exceptions import (
    Conflict,
    NotFound,
    StoreUnavailable,
    Unauthenticated,
    Unauthorized,
    ValidationFailed,
)
from projecthub.tracker.graph import GraphWriter
from projecthub.tracker.identity import IdentityProvider
from projecthub.tracker.inputs import (
    ClientInput,
    CommentInput,
    LoggedTimeInput,
    LoginInput,
    NewUserInput,
    PasswordInput,
    ProjectInput,
    TaskInput,
    TaskUpdateInput,
    UserUpdateInput,
)
from projecthub.tracker.models import Comment, LoggedTime, Project, Task, User
from projecthub.tracker.policy import AccessPolicy, Caller, Membership, Operation
from projecthub.tracker.resolver import (
    AuthPayload,
    CommentView,
    EntityResolver,
    LoggedTimeView,
    ProjectView,
    TaskView,
    UserView,
)
from projecthub.tracker.stores import TrackerStores

InputT = TypeVar("InputT", bound=BaseModel)

_MEMBERSHIP_FIELDS = ("owners", "clients")


class TrackerService(ProjectHub):
    """Queries and mutations over Users, Projects, Tasks, Comments and LoggedTime.

    Args:
        stores: Entity stores to use. Defaults to the stores selected by ``PROJECTHUB_API.STORE``.
        policy: Access policy evaluator.
        identity: Token issuer and reader.
        graph: Writer for compound, reference-maintaining writes.
        resolver: Builder for read views.

    Example:
        .. code-block:: python

            service = TrackerService(TrackerStores.in_memory())
            auth = await service.register_user({"first_name": "Ada", "last_name": "L", "email": "ada@x.io",
                                                "password": "secret"})
            caller = service.identity.caller_from_token(auth.token)
            project = await service.create_project(caller, {"title": "Engine"})
    """

    def __init__(
        self,
        stores: Optional[TrackerStores] = None,
        *,
        policy: Optional[AccessPolicy] = None,
        identity: Optional[IdentityProvider] = None,
        graph: Optional[GraphWriter] = None,
        resolver: Optional[EntityResolver] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.stores = stores if stores is not None else TrackerStores.from_settings(self.settings)
        self.policy = policy if policy is not None else AccessPolicy(settings=self.settings)
        self.identity = identity if identity is not None else IdentityProvider(settings=self.settings)
        self.graph = graph if graph is not None else GraphWriter(self.stores, settings=self.settings)
        self.resolver = resolver if resolver is not None else EntityResolver(self.stores, settings=self.settings)

    async def initialize(self):
        await self.stores.initialize()

    # ------------------------------ helpers ----------------------------------

    @staticmethod
    def _parse(model_cls: Type[InputT], data: Union[InputT, Mapping[str, Any]]) -> InputT:
        if isinstance(data, model_cls):
            return data
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            raise ValidationFailed("Invalid input.", errors=e.errors()) from e

    @contextmanager
    def _store_errors(self, conflict_message: str = "Duplicate value."):
        try:
            yield
        except DuplicateInsertError as e:
            raise Conflict(conflict_message) from e
        except DocumentValidationError as e:
            raise ValidationFailed("Invalid input.", errors=e.errors) from e
        except DocumentNotFoundError as e:
            raise NotFound(str(e)) from e
        except PyMongoError as e:
            self.logger.error(f"Store failure: {e}")
            raise StoreUnavailable("The data store is unavailable. Retry the request.") from e

    async def _user(self, caller: Caller) -> User:
        user = await self.stores.users.find_by_id(caller.id)
        if user is None:
            raise NotFound("User not found.", entity="User")
        return user

    async def _project_membership(self, project_id: Any, entity: str = "Project") -> Membership:
        project = await self.stores.projects.find_by_id(project_id, fields=_MEMBERSHIP_FIELDS)
        return Membership.of_project(project, entity=entity)

    async def _task_membership(self, task: Optional[Task]) -> Membership:
        if task is None:
            return Membership.missing("Task")
        return await self._project_membership(task.project)

    async def _authorized_task(self, caller: Caller, operation: Operation, task_id: Any) -> Task:
        task = await self.stores.tasks.find_by_id(task_id)
        self.policy.enforce(caller, operation, await self._task_membership(task))
        return task

    async def _authorized_project(self, caller: Caller, operation: Operation, project_id: Any) -> Project:
        project = await self.stores.projects.find_by_id(project_id)
        self.policy.enforce(caller, operation, Membership.of_project(project))
        return project

    def _auth_payload(self, user: User) -> AuthPayload:
        return AuthPayload(token=self.identity.issue_token(user), user=self.resolver.user_view(user))

    # ------------------------------- queries ---------------------------------

    async def current_user(self, caller: Optional[Caller]) -> UserView:
        caller = self.policy.enforce(caller, Operation.CURRENT_USER)
        return self.resolver.user_view(await self._user(caller))

    async def my_projects(self, caller: Optional[Caller]) -> List[ProjectView]:
        caller = self.policy.enforce(caller, Operation.MY_PROJECTS)
        projects = await self.resolver.my_projects(await self._user(caller))
        return [await self.resolver.project_view(project) for project in projects]

    async def get_project(self, caller: Optional[Caller], project_id: Any) -> ProjectView:
        self.policy.authenticate(caller, Operation.GET_PROJECT)
        project = await self._authorized_project(caller, Operation.GET_PROJECT, project_id)
        return await self.resolver.project_view(project)

    async def get_task(self, caller: Optional[Caller], task_id: Any) -> TaskView:
        self.policy.authenticate(caller, Operation.GET_TASK)
        task = await self._authorized_task(caller, Operation.GET_TASK, task_id)
        return await self.resolver.task_view(task)

    # ---------------------------- users and auth -----------------------------

    async def register_user(self, data: Union[NewUserInput, Mapping[str, Any]]) -> AuthPayload:
        new_user = self._parse(NewUserInput, data)
        user = User(
            type=new_user.type,
            first_name=new_user.first_name,
            last_name=new_user.last_name,
            email=new_user.email,
            password_hash=hash_password(new_user.password),
        )
        with self._store_errors("Email is already in use."):
            user = await self.stores.users.create(user)
        self.logger.info(f"Registered user {user.id}")
        return self._auth_payload(user)

    async def login(self, email: str, password: str) -> AuthPayload:
        credentials = self._parse(LoginInput, {"email": email, "password": password})
        user = await self.stores.users.find_one({"email": credentials.email})
        if user is None or not verify_password(credentials.password, user.password_hash):
            self.logger.info("Rejected login attempt")
            raise Unauthenticated("Incorrect login credentials.")
        return self._auth_payload(user)

    async def update_user(
        self, caller: Optional[Caller], data: Union[UserUpdateInput, Mapping[str, Any]]
    ) -> UserView:
        self.policy.authenticate(caller, Operation.UPDATE_USER)
        changes = self._parse(UserUpdateInput, data)
        self.policy.enforce(caller, Operation.UPDATE_USER, Membership.of_user(caller.id))

        patch = changes.model_dump(exclude_unset=True)
        password = patch.pop("password", None)
        if password is not None:
            patch["password_hash"] = hash_password(password)
        with self._store_errors("Email is already in use."):
            user = await self.stores.users.update(caller.id, patch)
        if user is None:
            raise NotFound("User not found.", entity="User")
        return self.resolver.user_view(user)

    async def delete_user(self, caller: Optional[Caller], password: str) -> UserView:
        self.policy.authenticate(caller, Operation.DELETE_USER)
        credentials = self._parse(PasswordInput, {"password": password})
        self.policy.enforce(caller, Operation.DELETE_USER, Membership.of_user(caller.id))

        user = await self._user(caller)
        if not verify_password(credentials.password, user.password_hash):
            raise Unauthorized("Incorrect password.")
        with self._store_errors():
            deleted = await self.graph.delete_user(user)
        return self.resolver.user_view(deleted or user)

    # ------------------------------- projects --------------------------------

    async def create_project(
        self, caller: Optional[Caller], data: Union[ProjectInput, Mapping[str, Any]]
    ) -> ProjectView:
        caller = self.policy.enforce(caller, Operation.CREATE_PROJECT)
        project_input = self._parse(ProjectInput, data)
        creator = await self._user(caller)
        with self._store_errors():
            project = await self.graph.create_project(creator.id, project_input.title)
        return await self.resolver.project_view(project)

    async def rename_project(self, caller: Optional[Caller], project_id: Any, title: str) -> ProjectView:
        self.policy.authenticate(caller, Operation.RENAME_PROJECT)
        project_input = self._parse(ProjectInput, {"title": title})
        project = await self._authorized_project(caller, Operation.RENAME_PROJECT, project_id)
        with self._store_errors():
            project = await self.stores.projects.update(project.id, {"title": project_input.title})
        if project is None:
            raise NotFound("Project not found.", entity="Project")
        return await self.resolver.project_view(project)

    async def add_client_to_project(
        self, caller: Optional[Caller], project_id: Any, data: Union[ClientInput, Mapping[str, Any]]
    ) -> ProjectView:
        self.policy.authenticate(caller, Operation.ADD_CLIENT_TO_PROJECT)
        client_input = self._parse(ClientInput, data)
        project = await self._authorized_project(caller, Operation.ADD_CLIENT_TO_PROJECT, project_id)

        def build_client() -> User:
            return User(
                type=client_input.type,
                first_name=client_input.first_name,
                last_name=client_input.last_name,
                email=client_input.email,
                password_hash=hash_password(client_input.password),
            )

        with self._store_errors("A user with this email was created concurrently. Retry the request."):
            await self.graph.attach_client(project.id, client_input.email, build_client)
        project = await self.stores.projects.find_by_id(project.id)
        if project is None:
            raise NotFound("Project not found.", entity="Project")
        return await self.resolver.project_view(project)

    async def delete_project(self, caller: Optional[Caller], project_id: Any) -> ProjectView:
        self.policy.authenticate(caller, Operation.DELETE_PROJECT)
        project = await self._authorized_project(caller, Operation.DELETE_PROJECT, project_id)
        view = await self.resolver.project_view(project)
        with self._store_errors():
            await self.graph.delete_project(project)
        return view

    async def repair_project(self, project_id: Any) -> Optional[ProjectView]:
        """Re-link every member of a Project to it. Operator maintenance; not exposed to callers."""
        with self._store_errors():
            project = await self.graph.repair_project(project_id)
        return await self.resolver.project_view(project) if project is not None else None

    # -------------------------------- tasks ----------------------------------

    async def create_task(self, caller: Optional[Caller], data: Union[TaskInput, Mapping[str, Any]]) -> TaskView:
        self.policy.authenticate(caller, Operation.CREATE_TASK)
        task_input = self._parse(TaskInput, data)
        membership = await self._project_membership(task_input.project_id)
        self.policy.enforce(caller, Operation.CREATE_TASK, membership)

        task = Task(
            title=task_input.title,
            project=task_input.project_id,
            description=task_input.description,
            status=task_input.status,
            estimated_hours=task_input.estimated_hours,
        )
        with self._store_errors():
            task = await self.graph.create_task(task)
        return await self.resolver.task_view(task)

    async def update_task(
        self, caller: Optional[Caller], task_id: Any, data: Union[TaskUpdateInput, Mapping[str, Any]]
    ) -> TaskView:
        self.policy.authenticate(caller, Operation.UPDATE_TASK)
        changes = self._parse(TaskUpdateInput, data)
        task = await self._authorized_task(caller, Operation.UPDATE_TASK, task_id)
        with self._store_errors():
            task = await self.stores.tasks.update(task.id, changes.model_dump(exclude_unset=True))
        if task is None:
            raise NotFound("Task not found.", entity="Task")
        return await self.resolver.task_view(task)

    async def delete_task(self, caller: Optional[Caller], task_id: Any) -> TaskView:
        self.policy.authenticate(caller, Operation.DELETE_TASK)
        task = await self._authorized_task(caller, Operation.DELETE_TASK, task_id)
        view = await self.resolver.task_view(task)
        with self._store_errors():
            await self.graph.delete_task(task)
        return view

    # ------------------------- comments and logged time ------------------------

    async def add_comment(
        self, caller: Optional[Caller], task_id: Any, data: Union[CommentInput, Mapping[str, Any]]
    ) -> CommentView:
        self.policy.authenticate(caller, Operation.ADD_COMMENT)
        comment_input = self._parse(CommentInput, data)
        task = await self._authorized_task(caller, Operation.ADD_COMMENT, task_id)
        with self._store_errors():
            comment = await self.graph.add_comment(Comment(body=comment_input.body, user=caller.id, task_id=task.id))
        return self.resolver.comment_view(comment)

    async def delete_comment(self, caller: Optional[Caller], comment_id: Any) -> CommentView:
        self.policy.authenticate(caller, Operation.DELETE_COMMENT)
        comment = await self.stores.comments.find_by_id(comment_id)
        membership = Membership.of_author(comment.user if comment is not None else None, "Comment")
        self.policy.enforce(caller, Operation.DELETE_COMMENT, membership)
        with self._store_errors():
            await self.graph.delete_comment(comment)
        return self.resolver.comment_view(comment)

    async def add_logged_time(
        self, caller: Optional[Caller], task_id: Any, data: Union[LoggedTimeInput, Mapping[str, Any]]
    ) -> LoggedTimeView:
        self.policy.authenticate(caller, Operation.ADD_LOGGED_TIME)
        entry_input = self._parse(LoggedTimeInput, data)
        task = await self._authorized_task(caller, Operation.ADD_LOGGED_TIME, task_id)

        fields = {
            "description": entry_input.description,
            "hours": entry_input.hours or 0,
            "user": caller.id,
            "task_id": task.id,
        }
        if entry_input.date is not None:
            fields["date"] = entry_input.date
        with self._store_errors():
            entry = await self.graph.add_logged_time(LoggedTime(**fields))
        return self.resolver.logged_time_view(entry)

    async def delete_logged_time(self, caller: Optional[Caller], logged_time_id: Any) -> LoggedTimeView:
        self.policy.authenticate(caller, Operation.DELETE_LOGGED_TIME)
        entry = await self.stores.logged_times.find_by_id(logged_time_id)
        if entry is None:
            membership = Membership.missing("LoggedTime")
        else:
            membership = await self._task_membership(await self.stores.tasks.find_by_id(entry.task_id))
        self.policy.enforce(caller, Operation.DELETE_LOGGED_TIME, membership)
        with self._store_errors():
            await self.graph.delete_logged_time(entry)
        return self.resolver.logged_time_view(entry)
