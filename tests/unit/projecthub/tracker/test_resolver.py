import itertools

import pytest
from beanie import PydanticObjectId

from projecthub.tracker import (
    Comment,
    EntityResolver,
    GraphWriter,
    LoggedTime,
    Project,
    Task,
    User,
    format_hours,
    sum_hours,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0, "0.00"),
        (2, "2.00"),
        ("3.1", "3.10"),
        (2.005, "2.01"),
        (2.675, "2.68"),
        (-1.5, "-1.50"),
        (None, "0.00"),
        ("abc", "0.00"),
        (float("nan"), "0.00"),
        (True, "0.00"),
    ],
)
def test_format_hours(value, expected):
    assert format_hours(value) == expected


def test_sum_hours_of_strings():
    assert sum_hours(["3.1", "2"]) == "5.10"


def test_sum_hours_is_order_independent():
    values = [0.1, 0.2, 1.005, "2.675", 3]
    results = {sum_hours(permutation) for permutation in itertools.permutations(values)}

    assert results == {"6.98"}


def test_sum_hours_counts_bad_values_as_zero():
    assert sum_hours([1, None, "n/a", 2.5]) == "3.50"
    assert sum_hours([]) == "0.00"


@pytest.fixture
def resolver(stores, settings):
    return EntityResolver(stores, settings=settings)


@pytest.fixture
def graph(stores, settings):
    return GraphWriter(stores, settings=settings)


@pytest.fixture
async def user(stores):
    return await stores.users.create(
        User(first_name="Ada", last_name="Lovelace", email="ada@example.com", password_hash="secret-hash")
    )


def test_user_view_hides_password_hash(resolver):
    user = User(id=PydanticObjectId(), first_name="Ada", last_name="L", email="a@b.io", password_hash="h")

    view = resolver.user_view(user)

    assert "password_hash" not in view.model_dump()
    assert view.project_count == 0
    assert resolver.project_count(user.model_copy(update={"projects": [PydanticObjectId()]})) == 1


@pytest.mark.asyncio
async def test_task_view_totals_logged_time(resolver, graph, user):
    project = await graph.create_project(user.id, "Engine")
    task = await graph.create_task(Task(title="Design", project=project.id, estimated_hours=4.333))
    await graph.add_logged_time(LoggedTime(hours=3.1, user=user.id, task_id=task.id))
    await graph.add_logged_time(LoggedTime(hours=2, user=user.id, task_id=task.id))

    view = await resolver.task_view(await resolver.stores.tasks.find_by_id(task.id))

    assert view.total_hours == "5.10"
    assert view.estimated_hours == "4.33"
    assert len(view.time_log) == 2
    assert await resolver.total_hours(await resolver.stores.tasks.find_by_id(task.id)) == "5.10"


@pytest.mark.asyncio
async def test_dangling_references_are_skipped(resolver, graph, stores, user):
    project = await graph.create_project(user.id, "Engine")
    task = await graph.create_task(Task(title="Design", project=project.id))
    comment = await graph.add_comment(Comment(body="Hi", user=user.id, task_id=task.id))
    entry = await graph.add_logged_time(LoggedTime(hours=2, user=user.id, task_id=task.id))
    kept = await graph.add_logged_time(LoggedTime(hours=1, user=user.id, task_id=task.id))

    # Deleted without the follow-up pull: the ids stay on the task.
    await stores.comments.delete(comment.id)
    await stores.logged_times.delete(entry.id)

    stored = await stores.tasks.find_by_id(task.id)
    assert comment.id in stored.comments

    view = await resolver.task_view(stored)
    assert view.comments == []
    assert [e.id for e in view.time_log] == [kept.id]
    assert view.total_hours == "1.00"


@pytest.mark.asyncio
async def test_project_view_expands_members_and_tasks(resolver, graph, stores, user):
    project = await graph.create_project(user.id, "Engine")
    await graph.create_task(Task(title="Design", project=project.id))
    await stores.projects.add_unique(project.id, "clients", PydanticObjectId())

    view = await resolver.project_view(await stores.projects.find_by_id(project.id))

    assert [owner.email for owner in view.owners] == ["ada@example.com"]
    assert view.clients == []
    assert [task.title for task in view.tasks] == ["Design"]


@pytest.mark.asyncio
async def test_my_projects_hides_orphans_and_missing(resolver, graph, stores, user):
    linked = await graph.create_project(user.id, "Linked")
    orphan = await stores.projects.create(Project(title="Half written"))
    await stores.users.add_unique(user.id, "projects", orphan.id)
    await stores.users.add_unique(user.id, "projects", PydanticObjectId())

    visible = await resolver.my_projects(await stores.users.find_by_id(user.id))

    assert [project.id for project in visible] == [linked.id]
