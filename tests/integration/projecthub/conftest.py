import os

import pytest
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from projecthub.tracker import TrackerService, TrackerStores

MONGO_URL = os.environ.get("PROJECTHUB_MONGO__URI", "mongodb://localhost:27017")
MONGO_DB = "projecthub_test"


def mongo_available() -> bool:
    client = MongoClient(MONGO_URL, serverSelectionTimeoutMS=500)
    try:
        client.admin.command("ping")
        return True
    except PyMongoError:
        return False
    finally:
        client.close()


def pytest_collection_modifyitems(config, items):
    if mongo_available():
        return
    skip = pytest.mark.skip(reason=f"MongoDB is not reachable at {MONGO_URL}")
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(skip)


@pytest.fixture
async def mongo_client():
    client = AsyncIOMotorClient(MONGO_URL)
    try:
        yield client
    finally:
        await client.drop_database(MONGO_DB)
        client.close()


@pytest.fixture
async def mongo_stores(mongo_client):
    stores = TrackerStores.mongo(MONGO_URL, MONGO_DB, client=mongo_client)
    await stores.initialize()
    return stores


@pytest.fixture
async def mongo_service(mongo_stores, settings):
    service = TrackerService(mongo_stores, settings=settings)
    await service.initialize()
    return service
