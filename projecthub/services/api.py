from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from projecthub import __version__
from projecthub.core import get_logger
from projecthub.services.auth import get_caller, get_service
from projecthub.tracker import Caller, StoreUnavailable, TrackerError, TrackerService, ValidationFailed
from projecthub.tracker.resolver import AuthPayload, CommentView, LoggedTimeView, ProjectView, TaskView, UserView

logger = get_logger("services.api")


users = APIRouter(tags=["Users"])
projects = APIRouter(prefix="/projects", tags=["Projects"])
tasks = APIRouter(prefix="/tasks", tags=["Tasks"])
entries = APIRouter(tags=["Comments and logged time"])


# --------------------------------- users ------------------------------------


@users.post("/users", response_model=AuthPayload, status_code=status.HTTP_201_CREATED)
async def register_user(payload: dict, service: TrackerService = Depends(get_service)):
    return await service.register_user(payload)


@users.post("/login", response_model=AuthPayload)
async def login(payload: dict, service: TrackerService = Depends(get_service)):
    return await service.login(payload.get("email"), payload.get("password"))


@users.get("/me", response_model=UserView)
async def current_user(caller: Optional[Caller] = Depends(get_caller), service: TrackerService = Depends(get_service)):
    return await service.current_user(caller)


@users.patch("/me", response_model=UserView)
async def update_user(
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.update_user(caller, payload)


@users.delete("/me", response_model=UserView)
async def delete_user(
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.delete_user(caller, payload.get("password"))


# -------------------------------- projects ----------------------------------


@projects.get("", response_model=List[ProjectView])
async def my_projects(caller: Optional[Caller] = Depends(get_caller), service: TrackerService = Depends(get_service)):
    return await service.my_projects(caller)


@projects.post("", response_model=ProjectView, status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.create_project(caller, payload)


@projects.get("/{project_id}", response_model=ProjectView)
async def get_project(
    project_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.get_project(caller, project_id)


@projects.patch("/{project_id}", response_model=ProjectView)
async def rename_project(
    project_id: str,
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.rename_project(caller, project_id, payload.get("title"))


@projects.post("/{project_id}/clients", response_model=ProjectView)
async def add_client_to_project(
    project_id: str,
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.add_client_to_project(caller, project_id, payload)


@projects.delete("/{project_id}", response_model=ProjectView)
async def delete_project(
    project_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.delete_project(caller, project_id)


# --------------------------------- tasks ------------------------------------


@tasks.post("", response_model=TaskView, status_code=status.HTTP_201_CREATED)
async def create_task(
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.create_task(caller, payload)


@tasks.get("/{task_id}", response_model=TaskView)
async def get_task(
    task_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.get_task(caller, task_id)


@tasks.patch("/{task_id}", response_model=TaskView)
async def update_task(
    task_id: str,
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.update_task(caller, task_id, payload)


@tasks.delete("/{task_id}", response_model=TaskView)
async def delete_task(
    task_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.delete_task(caller, task_id)


@tasks.post("/{task_id}/comments", response_model=CommentView, status_code=status.HTTP_201_CREATED)
async def add_comment(
    task_id: str,
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.add_comment(caller, task_id, payload)


@tasks.post("/{task_id}/logged-time", response_model=LoggedTimeView, status_code=status.HTTP_201_CREATED)
async def add_logged_time(
    task_id: str,
    payload: dict,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.add_logged_time(caller, task_id, payload)


# ------------------------ comments and logged time --------------------------


@entries.delete("/comments/{comment_id}", response_model=CommentView)
async def delete_comment(
    comment_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.delete_comment(caller, comment_id)


@entries.delete("/logged-time/{logged_time_id}", response_model=LoggedTimeView)
async def delete_logged_time(
    logged_time_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    service: TrackerService = Depends(get_service),
):
    return await service.delete_logged_time(caller, logged_time_id)


async def handle_tracker_error(request: Request, exc: TrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code} {exc.kind}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await handle_tracker_error(request, ValidationFailed("Invalid input.", errors=list(exc.errors())))


async def handle_store_error(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} store failure: {exc}")
    return await handle_tracker_error(request, StoreUnavailable("The data store is unavailable. Retry the request."))


def create_app(service: Optional[TrackerService] = None) -> FastAPI:
    """Build the HTTP application around a tracker service.

    Args:
        service: The service to expose. Defaults to one built from the process settings.

    Example:
        .. code-block:: python

            import uvicorn
            from projecthub.services import create_app

            uvicorn.run(create_app(), host="127.0.0.1", port=4000)
    """
    service = service if service is not None else TrackerService()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.initialize()
        logger.info(f"Tracker API ready ({type(service.stores.users).__name__})")
        yield

    app = FastAPI(title="projecthub", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.add_exception_handler(TrackerError, handle_tracker_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(PyMongoError, handle_store_error)
    for router in (users, projects, tasks, entries):
        app.include_router(router)
    return app
