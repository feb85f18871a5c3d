import pytest

from projecthub.database import DuplicateInsertError
from projecthub.tracker import Conflict, GraphWriter, Task, User

pytestmark = [pytest.mark.asyncio, pytest.mark.integration]


def make_user(email="ada@example.com"):
    return User(first_name="Ada", last_name="Lovelace", email=email, password_hash="x")


async def test_unique_email_index(mongo_stores):
    await mongo_stores.users.create(make_user())

    with pytest.raises(DuplicateInsertError):
        await mongo_stores.users.create(make_user())


async def test_add_unique_is_idempotent(mongo_stores):
    user = await mongo_stores.users.create(make_user())
    project_id = user.id

    assert await mongo_stores.users.add_unique(user.id, "projects", project_id)
    await mongo_stores.users.add_unique(user.id, "projects", project_id)

    assert (await mongo_stores.users.find_by_id(user.id)).projects == [project_id]


async def test_graph_keeps_both_sides_linked(mongo_stores, settings):
    graph = GraphWriter(mongo_stores, settings=settings)
    owner = await mongo_stores.users.create(make_user())

    project = await graph.create_project(owner.id, "Engine")
    task = await graph.create_task(Task(title="Design", project=project.id))

    stored = await mongo_stores.projects.find_by_id(project.id)
    assert stored.owners == [owner.id]
    assert stored.tasks == [task.id]
    assert (await mongo_stores.users.find_by_id(owner.id)).projects == [project.id]

    await graph.delete_task(task)
    assert (await mongo_stores.projects.find_by_id(project.id)).tasks == []


async def test_service_flow(mongo_service):
    user = {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com", "password": "secret1"}
    auth = await mongo_service.register_user(user)
    caller = mongo_service.identity.caller_from_token(auth.token)
    project = await mongo_service.create_project(caller, {"title": "Engine"})
    task = await mongo_service.create_task(caller, {"project_id": str(project.id), "title": "Design"})
    await mongo_service.add_logged_time(caller, task.id, {"hours": 3.1})
    await mongo_service.add_logged_time(caller, task.id, {"hours": 2})

    assert (await mongo_service.get_task(caller, task.id)).total_hours == "5.10"
    assert [p.id for p in await mongo_service.my_projects(caller)] == [project.id]

    with pytest.raises(Conflict):
        await mongo_service.register_user(user)


async def test_documents_land_in_the_model_collection(mongo_stores):
    store = mongo_stores.users
    user = await store.create(make_user())
    collection = store.client[store.db_name]["users"]

    raw = await collection.find_one({"_id": user.id})
    indexes = await collection.index_information()

    assert raw["email"] == "ada@example.com"
    assert indexes["user_email_uq"]["unique"] is True
