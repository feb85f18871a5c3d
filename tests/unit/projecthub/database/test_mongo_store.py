from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from beanie import Document, PydanticObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from projecthub.database import DocumentValidationError, DuplicateInsertError, MongoEntityStore
from projecthub.database.backends.mongo_store import document_model
from projecthub.tracker import TrackerStores
from projecthub.tracker.models import Project, User

MONGO_URL = "mongodb://localhost:27017"
MONGO_DB = "test_db"


def user_doc(oid, email="ada@example.com"):
    return {
        "_id": oid,
        "type": None,
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": email,
        "password_hash": "x",
        "projects": [],
    }


@pytest.fixture
def collection():
    collection = MagicMock()
    for name in (
        "find_one",
        "find_one_and_update",
        "find_one_and_delete",
        "update_one",
        "update_many",
        "count_documents",
    ):
        setattr(collection, name, AsyncMock())
    return collection


@pytest.fixture
def init_beanie():
    with patch("projecthub.database.backends.mongo_store.init_beanie", new_callable=AsyncMock) as init_beanie:
        yield init_beanie


@pytest.fixture
def mongo_store(collection, init_beanie):
    """A MongoEntityStore for User whose Beanie initialization and Motor collection are mocked."""
    store = MongoEntityStore(User, MONGO_URL, MONGO_DB, client=MagicMock())
    with patch.object(store.document_cls, "get_motor_collection", MagicMock(return_value=collection)):
        yield store


def test_document_model_mirrors_stored_model():
    UserDocument = document_model(User)

    assert issubclass(UserDocument, Document)
    assert UserDocument.__name__ == "UserDocument"
    assert UserDocument.Settings.name == "users"
    assert UserDocument.Settings.indexes[0].document["unique"] is True
    assert set(User.model_fields) - {"id"} <= set(UserDocument.model_fields)


def test_each_store_binds_its_own_document_class():
    first = MongoEntityStore(User, MONGO_URL, MONGO_DB, client=MagicMock())
    second = MongoEntityStore(User, MONGO_URL, "other_db", client=MagicMock())

    assert first.document_cls is not second.document_cls


@pytest.mark.asyncio
async def test_initialize_binds_document_once(mongo_store, init_beanie):
    await mongo_store.initialize()
    await mongo_store.initialize()

    init_beanie.assert_awaited_once_with(
        database=mongo_store.client[MONGO_DB], document_models=[mongo_store.document_cls]
    )


@pytest.mark.asyncio
async def test_create_inserts_validated_document(mongo_store):
    oid = PydanticObjectId()
    inserted = []

    async def insert(document):
        document.id = oid
        inserted.append(document)
        return document

    with patch.object(mongo_store.document_cls, "insert", insert):
        user = await mongo_store.create(
            User(first_name=" Ada ", last_name="Lovelace", email="Ada@Example.com", password_hash="x")
        )

    assert user.id == oid
    assert isinstance(user, User)
    [document] = inserted
    assert document.email == "ada@example.com"
    assert document.first_name == "Ada"


@pytest.mark.asyncio
async def test_create_translates_duplicate_key(mongo_store):
    insert = AsyncMock(side_effect=DuplicateKeyError("E11000 duplicate key error"))

    with patch.object(mongo_store.document_cls, "insert", insert):
        with pytest.raises(DuplicateInsertError):
            await mongo_store.create(User(first_name="Ada", last_name="L", email="ada@example.com", password_hash="x"))


@pytest.mark.asyncio
async def test_find_by_id_uses_document_get(mongo_store):
    oid = PydanticObjectId()
    get = AsyncMock(return_value=mongo_store.document_cls.model_validate(user_doc(oid)))

    with patch.object(mongo_store.document_cls, "get", get):
        user = await mongo_store.find_by_id(str(oid))
        get.return_value = None
        missing = await mongo_store.find_by_id(oid)

    get.assert_awaited_with(oid)
    assert isinstance(user, User)
    assert user.id == oid and user.email == "ada@example.com"
    assert missing is None


@pytest.mark.asyncio
async def test_find_by_id_with_projection(mongo_store, collection):
    oid = PydanticObjectId()
    collection.find_one.return_value = {"_id": oid, "projects": []}

    user = await mongo_store.find_by_id(str(oid), fields=["projects"])

    collection.find_one.assert_awaited_once_with({"_id": oid}, {"projects": 1})
    assert user.id == oid
    assert user.projects == []


@pytest.mark.asyncio
async def test_find_by_id_invalid_id_skips_query(mongo_store, collection):
    get = AsyncMock()

    with patch.object(mongo_store.document_cls, "get", get):
        assert await mongo_store.find_by_id("not-an-id") is None

    get.assert_not_awaited()
    collection.find_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_find_translates_id_key(mongo_store):
    oid = PydanticObjectId()
    query = MagicMock()
    query.to_list = AsyncMock(return_value=[mongo_store.document_cls.model_validate(user_doc(oid))])
    find = MagicMock(return_value=query)

    with patch.object(mongo_store.document_cls, "find", find):
        users = await mongo_store.find({"id": oid})

    find.assert_called_once_with({"_id": oid})
    assert [user.id for user in users] == [oid]


@pytest.mark.asyncio
async def test_find_one(mongo_store):
    oid = PydanticObjectId()
    find_one = AsyncMock(return_value=mongo_store.document_cls.model_validate(user_doc(oid)))

    with patch.object(mongo_store.document_cls, "find_one", find_one):
        user = await mongo_store.find_one({"email": "ada@example.com"})
        find_one.return_value = None
        missing = await mongo_store.find_one({"email": "nobody@example.com"})

    find_one.assert_awaited_with({"email": "nobody@example.com"})
    assert user.id == oid
    assert missing is None
@pytest.mark.asyncio
async def test_update_sets_validated_values(mongo_store, collection):
    oid = PydanticObjectId()
    collection.find_one.return_value = user_doc(oid)
    collection.find_one_and_update.return_value = user_doc(oid, email="new@example.com")

    user = await mongo_store.update(oid, {"email": " NEW@example.com"})

    collection.find_one_and_update.assert_awaited_once_with(
        {"_id": oid}, {"$set": {"email": "new@example.com"}}, return_document=ReturnDocument.AFTER
    )
    assert user.email == "new@example.com"


@pytest.mark.asyncio
async def test_update_rejects_invalid_result(mongo_store, collection):
    oid = PydanticObjectId()
    collection.find_one.return_value = user_doc(oid)

    with pytest.raises(DocumentValidationError):
        await mongo_store.update(oid, {"first_name": ""})
    collection.find_one_and_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_missing_document(mongo_store, collection):
    collection.find_one.return_value = None

    assert await mongo_store.update(PydanticObjectId(), {"first_name": "Bob"}) is None


@pytest.mark.asyncio
async def test_delete(mongo_store, collection):
    oid = PydanticObjectId()
    collection.find_one_and_delete.return_value = user_doc(oid)

    deleted = await mongo_store.delete(oid)

    assert deleted.id == oid
    collection.find_one_and_delete.return_value = None
    assert await mongo_store.delete(oid) is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, operator",
    [("add_unique", "$addToSet"), ("push", "$push"), ("pull", "$pull")],
)
async def test_list_primitives_map_to_update_operators(mongo_store, collection, method, operator):
    oid, project_id = PydanticObjectId(), PydanticObjectId()
    collection.update_one.return_value = MagicMock(matched_count=1)

    assert await getattr(mongo_store, method)(oid, "projects", project_id) is True
    collection.update_one.assert_awaited_once_with({"_id": oid}, {operator: {"projects": project_id}})

    collection.update_one.return_value = MagicMock(matched_count=0)
    assert await getattr(mongo_store, method)(oid, "projects", project_id) is False


@pytest.mark.asyncio
async def test_pull_all_and_exists(mongo_store, collection):
    project_id = PydanticObjectId()
    collection.update_many.return_value = MagicMock(matched_count=2)
    collection.count_documents.return_value = 0

    assert await mongo_store.pull_all({"projects": project_id}, "projects", project_id) == 2
    collection.update_many.assert_awaited_once_with({"projects": project_id}, {"$pull": {"projects": project_id}})
    assert await mongo_store.exists({"projects": project_id}) is False


def test_tracker_stores_share_one_client():
    client = MagicMock()

    stores = TrackerStores.mongo(MONGO_URL, MONGO_DB, client=client)

    assert stores.users.client is client
    assert stores.projects.client is client
    assert stores.projects.model_cls is Project
    assert stores.logged_times.db_name == MONGO_DB
